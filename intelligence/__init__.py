"""
Intelligence Module
AI judges for sentiment and tagging
"""
from .judges import (
    BaseAIProvider,
    LLMJudge,
    build_sentiment_prompt,
    build_tagging_prompt,
    extract_json_object,
    parse_sentiment_reply,
    parse_tag_reply,
)
from .industry_context import DEFAULT_PROMPT_CONTEXT, compose_prompt_context, resolve_prompt_context

__all__ = [
    "BaseAIProvider",
    "LLMJudge",
    "DEFAULT_PROMPT_CONTEXT",
    "build_sentiment_prompt",
    "build_tagging_prompt",
    "compose_prompt_context",
    "extract_json_object",
    "parse_sentiment_reply",
    "parse_tag_reply",
    "resolve_prompt_context",
]
