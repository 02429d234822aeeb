"""Industry-specific prompt context for tagging."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from core import IndustryTagTemplate
from storage import MentionStore


logger = logging.getLogger(__name__)

DEFAULT_PROMPT_CONTEXT = (
    "Analyze the social media mention for general business context. Focus on customer sentiment, "
    "feedback type, and any specific business aspects mentioned. Consider customer service quality, "
    "product/service feedback, and overall customer experience."
)


def _ordered_unique(values: Sequence[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def compose_prompt_context(templates: Sequence[IndustryTagTemplate]) -> str:
    """Join template contexts and list the topics/intents they declare."""
    if not templates:
        return DEFAULT_PROMPT_CONTEXT

    contexts = [item.ai_prompt_context for item in templates if item.ai_prompt_context]
    topics = _ordered_unique([topic for item in templates for topic in item.topics])
    intents = _ordered_unique([intent for item in templates for intent in item.intents])

    combined = " ".join(contexts) if contexts else DEFAULT_PROMPT_CONTEXT
    return f"{combined}\n\nAvailable topics: {', '.join(topics)}\nAvailable intents: {', '.join(intents)}"


async def resolve_prompt_context(store: MentionStore, industry_id: Optional[str]) -> str:
    """Prompt context for a brand's industry, or the general one."""
    if not industry_id:
        return DEFAULT_PROMPT_CONTEXT
    try:
        templates = await store.list_industry_templates(industry_id)
    except Exception as exc:
        logger.error("industry context lookup failed industry_id=%s error=%s", industry_id, exc)
        return DEFAULT_PROMPT_CONTEXT
    if not templates:
        logger.warning("no industry templates industry_id=%s, using general context", industry_id)
    return compose_prompt_context(templates)
