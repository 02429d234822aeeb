"""CLI entrypoint for the mention collection service.

``serve`` hosts the API. The other commands are clients of a running server,
since jobs and runs live in that process's store.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional

import httpx

from config import get_settings
from utils.logger import get_logger, setup_logger


logger = get_logger(__name__)


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _default_api_url() -> str:
    server = get_settings().server
    host = "127.0.0.1" if server.host in ("", "0.0.0.0") else server.host
    return f"http://{host}:{server.port}"


def _call(
    api_url: str,
    method: str,
    path: str,
    *,
    tenant_id: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> int:
    headers = {"X-Tenant-Id": tenant_id} if tenant_id else {}
    try:
        with httpx.Client(base_url=api_url, timeout=60.0, transport=transport) as client:
            response = client.request(method, path, headers=headers, params=params)
    except httpx.HTTPError as exc:
        logger.error("could not reach %s: %s", api_url, exc)
        return 2

    try:
        payload = response.json()
    except ValueError:
        payload = {"error": response.text}
    _print(payload)
    return 0 if response.is_success else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="MentionFlow CLI")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--api-url", default="", help="Base URL of a running `serve` instance")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="")
    serve.add_argument("--port", type=int, default=0)

    trigger = sub.add_parser("trigger", help="Start a run for a job on the running server")
    trigger.add_argument("--job-id", required=True)
    trigger.add_argument("--tenant-id", required=True)

    runs = sub.add_parser("runs", help="List recent runs of a job on the running server")
    runs.add_argument("--job-id", required=True)
    runs.add_argument("--tenant-id", required=True)
    runs.add_argument("--limit", type=int, default=10)

    reconcile = sub.add_parser("reconcile", help="Resolve stale running runs on the running server")
    reconcile.add_argument("--older-than-seconds", type=int, default=0)

    args = parser.parse_args()
    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.command == "serve":
        import uvicorn

        server = get_settings().server
        uvicorn.run(
            "webapp.app:app",
            host=args.host or server.host,
            port=args.port or server.port,
        )
        return

    api_url = args.api_url or _default_api_url()

    if args.command == "trigger":
        code = _call(api_url, "POST", f"/api/jobs/{args.job_id}/trigger", tenant_id=args.tenant_id)
    elif args.command == "runs":
        code = _call(
            api_url,
            "GET",
            f"/api/jobs/{args.job_id}/runs",
            tenant_id=args.tenant_id,
            params={"limit": args.limit},
        )
    else:
        code = _call(
            api_url,
            "POST",
            "/api/runs/reconcile",
            params={"older_than_seconds": args.older_than_seconds},
        )
    sys.exit(code)


if __name__ == "__main__":
    main()
