"""Shared runtime singletons for web/CLI entrypoints."""

from __future__ import annotations

from typing import Optional

from orchestrator.service import MentionFlowService, build_default_service


_SERVICE: Optional[MentionFlowService] = None


def get_service() -> MentionFlowService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = build_default_service()
    return _SERVICE


def set_service(service: Optional[MentionFlowService]) -> None:
    global _SERVICE
    _SERVICE = service
