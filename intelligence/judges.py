"""
AI Judges
Sentiment and tag judgments behind a provider-neutral interface
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence
import json
import logging
import re

from config import get_llm_settings
from core import SentimentJudgment, TagCategory, TagIntent, TagJudgment, TopicJudgment
from utils.exceptions import ProviderError
from .llm import BaseLLM, get_llm


logger = logging.getLogger(__name__)


SENTIMENTS = ("positive", "negative", "neutral")
PRIORITIES = ("low", "medium", "high")
PARSE_FAILURE_REASON = "Failed to parse AI response"

SENTIMENT_SYSTEM_PROMPT = (
    "You are a sentiment analysis expert. Analyze the sentiment of social media mentions "
    "and reviews with high accuracy. Always respond with valid JSON only."
)

TAGGING_SYSTEM_PROMPT = (
    "You are an expert at analyzing social media mentions and applying structured tags "
    "based on industry-specific contexts. Always respond in valid JSON format."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class BaseAIProvider(ABC):
    """AI provider boundary used by enrichment"""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @property
    @abstractmethod
    def sentiment_model(self) -> str:
        pass

    @property
    @abstractmethod
    def tagging_model(self) -> str:
        pass

    @abstractmethod
    async def judge_sentiment(self, text: str, context: Optional[Dict[str, Any]] = None) -> SentimentJudgment:
        pass

    @abstractmethod
    async def judge_tags(
        self,
        text: str,
        industry_context: str,
        categories: Sequence[TagCategory],
        intents: Sequence[TagIntent],
        context: Optional[Dict[str, Any]] = None,
    ) -> TagJudgment:
        pass

    async def aclose(self) -> None:
        return None


def extract_json_object(raw: str) -> Dict[str, Any]:
    """Parse a JSON object out of a model reply, tolerating code fences and chatter"""
    cleaned = _FENCE_RE.sub("", (raw or "").strip()).strip()
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        match = _OBJECT_RE.search(cleaned)
        if not match:
            raise
        parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("model reply is not a JSON object")
    return parsed


def _unit_interval(value: Any, default: float = 0.5, *, clamp: bool = True) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if clamp:
        return max(0.0, min(1.0, float(value)))
    return float(value) if 0.0 <= value <= 1.0 else default


def _reasoning(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    return None


def parse_sentiment_reply(raw: str) -> SentimentJudgment:
    try:
        parsed = extract_json_object(raw)
    except ValueError:
        logger.warning(f"Failed to parse sentiment response: {raw!r}")
        return SentimentJudgment(reasoning=PARSE_FAILURE_REASON)

    sentiment = str(parsed.get("sentiment") or "").lower()
    return SentimentJudgment(
        sentiment=sentiment if sentiment in SENTIMENTS else "neutral",
        # out-of-range confidences are treated as missing, not clamped
        confidence=_unit_interval(parsed.get("confidence"), clamp=False),
        reasoning=_reasoning(parsed.get("reasoning")),
    )


def _topics(raw_topics: Any) -> list:
    topics = []
    for item in raw_topics if isinstance(raw_topics, list) else []:
        if isinstance(item, str) and item.strip():
            topics.append(TopicJudgment(name=item.strip()))
        elif isinstance(item, dict) and str(item.get("name") or "").strip():
            topics.append(
                TopicJudgment(name=str(item["name"]).strip(), confidence=_unit_interval(item.get("confidence")))
            )
    return topics


def parse_tag_reply(raw: str) -> TagJudgment:
    try:
        parsed = extract_json_object(raw)
    except ValueError:
        logger.warning(f"Failed to parse tagging response: {raw!r}")
        return TagJudgment(reasoning=PARSE_FAILURE_REASON)

    priority = str(parsed.get("priority") or "").lower()
    return TagJudgment(
        category=str(parsed.get("category") or "neutral").strip() or "neutral",
        intent=str(parsed.get("intent") or "general_feedback").strip() or "general_feedback",
        topics=_topics(parsed.get("topics")),
        priority=priority if priority in PRIORITIES else "medium",
        urgency_score=_unit_interval(parsed.get("urgency_score")),
        confidence=_unit_interval(parsed.get("confidence")),
        reasoning=_reasoning(parsed.get("reasoning")),
    )


def build_sentiment_prompt(text: str, context: Optional[Dict[str, Any]] = None) -> str:
    prompt = (
        "Analyze the sentiment of the following text and respond in JSON format with "
        "sentiment (positive/negative/neutral), confidence (0-1), and brief reasoning.\n\n"
        f'Text to analyze: "{text}"'
    )
    context = context or {}
    lines = [
        f"- {label}: {context[key]}"
        for key, label in (("source_type", "Source"), ("brand_name", "Brand"), ("author", "Author"))
        if context.get(key)
    ]
    if lines:
        prompt += "\n\nContext:\n" + "\n".join(lines)
    prompt += (
        "\n\nRespond only with valid JSON in this format:\n"
        "{\n"
        '  "sentiment": "positive|negative|neutral",\n'
        '  "confidence": 0.85,\n'
        '  "reasoning": "Brief explanation"\n'
        "}"
    )
    return prompt


def build_tagging_prompt(
    text: str,
    industry_context: str,
    categories: Sequence[TagCategory],
    intents: Sequence[TagIntent],
    context: Optional[Dict[str, Any]] = None,
) -> str:
    context = context or {}
    available_categories = "\n".join(f"{c.name}: {c.description or c.display_name}" for c in categories)
    available_intents = "\n".join(f"{i.name}: {i.description or i.display_name}" for i in intents)

    return f"""Analyze this social media mention and provide structured tagging based on the industry context.

MENTION TO ANALYZE:
"{text}"

CONTEXT:
- Source: {context.get("source_type") or "unknown"}
- Brand: {context.get("brand_name") or "Unknown"}
- Author: {context.get("author") or "Unknown"}
- Author Followers: {context.get("author_followers") or 0}
- Published: {context.get("published_at") or "unknown"}
- Language: {context.get("language") or "en"}
- Source URL: {context.get("source_url") or "N/A"}

INDUSTRY CONTEXT:
{industry_context}

AVAILABLE CATEGORIES:
{available_categories}

AVAILABLE INTENTS:
{available_intents}

Respond in JSON format with:
{{
  "category": "category_name_from_list",
  "intent": "intent_name_from_list",
  "topics": [{{"name": "topic1", "confidence": 0.9}}, {{"name": "topic2", "confidence": 0.7}}],
  "priority": "low|medium|high",
  "urgency_score": 0.85,
  "confidence": 0.92,
  "reasoning": "Brief explanation of the tagging decision"
}}

Rules:
- Use only category and intent names from the provided lists
- Topics should be specific aspects mentioned in the text
- Priority: high for complaints/urgent issues, medium for feedback, low for general mentions
- Urgency score: 0-1 scale based on need for immediate response
- Confidence: 0-1 scale for overall tagging confidence"""


class LLMJudge(BaseAIProvider):
    """
    Judges backed by the LLM layer.

    Transport and API failures surface as ProviderError so the enrichment
    loop can skip the item; malformed replies fall back to neutral defaults.
    """

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        sentiment_model: Optional[str] = None,
        tagging_model: Optional[str] = None,
    ):
        settings = get_llm_settings()
        self.llm = llm or get_llm()
        self._sentiment_model = sentiment_model or settings.sentiment_model
        self._tagging_model = tagging_model or settings.tagging_model

    @property
    def provider_name(self) -> str:
        return self.llm.provider

    @property
    def sentiment_model(self) -> str:
        return self._sentiment_model

    @property
    def tagging_model(self) -> str:
        return self._tagging_model

    async def _ask(self, system_prompt: str, prompt: str, *, model: str, max_tokens: int) -> str:
        try:
            response = await self.llm.achat(
                prompt,
                system_prompt=system_prompt,
                model=model,
                max_tokens=max_tokens,
            )
        except Exception as e:
            raise ProviderError(f"AI request failed: {e}", provider=self.provider_name, model=model) from e
        if not response.content.strip():
            raise ProviderError("No response from AI provider", provider=self.provider_name, model=model)
        return response.content

    async def judge_sentiment(self, text: str, context: Optional[Dict[str, Any]] = None) -> SentimentJudgment:
        reply = await self._ask(
            SENTIMENT_SYSTEM_PROMPT,
            build_sentiment_prompt(text, context),
            model=self._sentiment_model,
            max_tokens=150,
        )
        judgment = parse_sentiment_reply(reply)
        judgment.model = self._sentiment_model
        return judgment

    async def judge_tags(
        self,
        text: str,
        industry_context: str,
        categories: Sequence[TagCategory],
        intents: Sequence[TagIntent],
        context: Optional[Dict[str, Any]] = None,
    ) -> TagJudgment:
        reply = await self._ask(
            TAGGING_SYSTEM_PROMPT,
            build_tagging_prompt(text, industry_context, categories, intents, context),
            model=self._tagging_model,
            max_tokens=500,
        )
        judgment = parse_tag_reply(reply)
        judgment.model = self._tagging_model
        return judgment

    async def aclose(self) -> None:
        await self.llm.aclose()
