from __future__ import annotations

from typing import List

import pytest

from core import TagCategory, TagIntent
from intelligence import (
    LLMJudge,
    build_tagging_prompt,
    compose_prompt_context,
    DEFAULT_PROMPT_CONTEXT,
    extract_json_object,
    parse_sentiment_reply,
    parse_tag_reply,
)
from intelligence.llm import BaseLLM, LLMResponse, Message, get_llm
from utils.exceptions import ConfigurationError, ProviderError


class ScriptedLLM(BaseLLM):
    def __init__(self, replies: List[str]):
        super().__init__(model="scripted")
        self.replies = list(replies)
        self.calls: List[dict] = []

    @property
    def provider(self) -> str:
        return "scripted"

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        self.calls.append({"messages": messages, **kwargs})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(content=reply, model=kwargs.get("model") or self.model)


def test_extract_json_handles_fences_and_chatter() -> None:
    assert extract_json_object('```json\n{"sentiment": "positive"}\n```') == {"sentiment": "positive"}
    assert extract_json_object('Sure! Here you go: {"a": 1} hope that helps') == {"a": 1}
    with pytest.raises(ValueError):
        extract_json_object("no json here")


def test_sentiment_reply_parsing() -> None:
    judgment = parse_sentiment_reply('{"sentiment": "Negative", "confidence": 0.82, "reasoning": "rude staff"}')
    assert judgment.sentiment == "negative"
    assert judgment.confidence == 0.82
    assert judgment.reasoning == "rude staff"

    odd = parse_sentiment_reply('{"sentiment": "furious", "confidence": 7}')
    assert odd.sentiment == "neutral"
    assert odd.confidence == 0.5

    broken = parse_sentiment_reply("I think it is positive")
    assert broken.sentiment == "neutral"
    assert broken.confidence == 0.5
    assert broken.reasoning == "Failed to parse AI response"


def test_tag_reply_parsing_clamps_values() -> None:
    judgment = parse_tag_reply(
        """```json
        {"category": "complaint", "intent": "support_request",
         "topics": ["wifi", {"name": "breakfast", "confidence": 1.4}, {"bad": true}, ""],
         "priority": "URGENT", "urgency_score": 1.7, "confidence": -0.3}
        ```"""
    )
    assert judgment.category == "complaint"
    assert judgment.intent == "support_request"
    assert [(t.name, t.confidence) for t in judgment.topics] == [("wifi", 0.5), ("breakfast", 1.0)]
    assert judgment.priority == "medium"
    assert judgment.urgency_score == 1.0
    assert judgment.confidence == 0.0

    fallback = parse_tag_reply("")
    assert (fallback.category, fallback.intent, fallback.priority) == ("neutral", "general_feedback", "medium")


def test_non_text_reasoning_is_dropped() -> None:
    sentiment = parse_sentiment_reply('{"sentiment": "positive", "confidence": 0.8, "reasoning": {"why": "nice"}}')
    assert sentiment.sentiment == "positive"
    assert sentiment.reasoning is None

    tags = parse_tag_reply('{"category": "praise", "intent": "recommendation", "reasoning": ["a", "b"]}')
    assert tags.category == "praise"
    assert tags.reasoning is None

    assert parse_tag_reply('{"reasoning": 42}').reasoning is None


def test_tagging_prompt_lists_catalogue() -> None:
    prompt = build_tagging_prompt(
        "Room was cold",
        "Hotel context",
        [TagCategory(name="complaint", display_name="Complaint")],
        [TagIntent(name="support_request", display_name="Support request", description="Needs help")],
        {"source_type": "tripadvisor", "brand_name": "Acme Hotel"},
    )
    assert '"Room was cold"' in prompt
    assert "complaint: Complaint" in prompt
    assert "support_request: Needs help" in prompt
    assert "- Brand: Acme Hotel" in prompt
    assert "Hotel context" in prompt


def test_prompt_context_without_templates() -> None:
    assert compose_prompt_context([]) == DEFAULT_PROMPT_CONTEXT


@pytest.mark.asyncio
async def test_llm_judge_sends_model_and_parses_reply() -> None:
    llm = ScriptedLLM(['{"sentiment": "positive", "confidence": 0.9, "reasoning": "great"}'])
    judge = LLMJudge(llm=llm, sentiment_model="gpt-4o-mini", tagging_model="gpt-4o")

    judgment = await judge.judge_sentiment("Love it", {"brand_name": "Acme"})

    assert judgment.sentiment == "positive"
    assert judgment.model == "gpt-4o-mini"
    assert llm.calls[0]["model"] == "gpt-4o-mini"
    assert llm.calls[0]["max_tokens"] == 150
    assert "Brand: Acme" in llm.calls[0]["messages"][-1].content
    assert judge.provider_name == "scripted"


@pytest.mark.asyncio
async def test_llm_judge_wraps_transport_errors() -> None:
    judge = LLMJudge(llm=ScriptedLLM([RuntimeError("timeout"), "   "]), sentiment_model="m", tagging_model="m")

    with pytest.raises(ProviderError):
        await judge.judge_sentiment("text")
    with pytest.raises(ProviderError):
        await judge.judge_tags("text", "ctx", [], [])


def test_unknown_llm_provider_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        get_llm(provider="mystery")


def test_factory_builds_openai_compatible_clients() -> None:
    from intelligence.llm import DeepSeekLLM, OpenAILLM

    deepseek = get_llm(provider="deepseek", api_key="sk-test")
    assert isinstance(deepseek, DeepSeekLLM)
    assert deepseek.base_url == "https://api.deepseek.com"
    assert deepseek.provider == "deepseek"

    openai = get_llm(provider="openai", model="gpt-4o", api_key="sk-test", temperature=0.0)
    assert isinstance(openai, OpenAILLM)
    assert openai.model == "gpt-4o"
    assert openai.temperature == 0.0
