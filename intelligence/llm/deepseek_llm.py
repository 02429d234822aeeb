"""
DeepSeek LLM
OpenAI-compatible endpoint (deepseek-chat)
"""
from typing import List, Optional
import logging

from .base import Message, LLMResponse
from .openai_llm import OpenAILLM


logger = logging.getLogger(__name__)


class DeepSeekLLM(OpenAILLM):
    """
    DeepSeek implementation over the OpenAI SDK.

    deepseek-reasoner prepends its reasoning trace; it is dropped here since
    judges expect bare JSON.
    """

    DEFAULT_BASE_URL = "https://api.deepseek.com"

    def __init__(
        self,
        model: str = "deepseek-chat",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
        timeout: float = 120.0,  # slower than OpenAI under load
        **kwargs,
    ):
        super().__init__(
            model=model,
            api_key=api_key,
            base_url=base_url or self.DEFAULT_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            **kwargs,
        )

    @property
    def provider(self) -> str:
        return "deepseek"

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        response = await super().acomplete(messages, **kwargs)
        reasoning = getattr(response.raw_response.choices[0].message, "reasoning_content", None)
        if reasoning:
            logger.debug(f"[DeepSeek] reasoning trace of {len(reasoning)} chars dropped")
        return response
