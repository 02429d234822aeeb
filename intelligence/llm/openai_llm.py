"""
OpenAI LLM
Chat completions through the official SDK (gpt-4o-mini by default)
"""
from typing import List, Optional
import logging

from .base import BaseLLM, Message, LLMResponse


logger = logging.getLogger(__name__)


class OpenAILLM(BaseLLM):
    """
    OpenAI implementation.

    Also serves any OpenAI-compatible endpoint through ``base_url``.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self.base_url = base_url
        self._async_client = None

    @property
    def provider(self) -> str:
        return "openai"

    def _get_async_client(self):
        if self._async_client is None:
            from openai import AsyncOpenAI
            self._async_client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._async_client

    def _request_params(self, messages: List[Message], **kwargs) -> dict:
        params = {
            "model": kwargs.get("model") or self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        if kwargs.get("response_format"):
            params["response_format"] = kwargs["response_format"]
        return params

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        client = self._get_async_client()
        response = await client.chat.completions.create(**self._request_params(messages, **kwargs))

        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
                "total_tokens": usage.total_tokens if usage else 0,
            },
            finish_reason=choice.finish_reason,
            raw_response=response,
        )

    async def aclose(self) -> None:
        client = self._async_client
        if client is None:
            return
        self._async_client = None
        try:
            await client.close()
        except Exception as e:
            logger.debug(f"[OpenAI] client close failed: {e}")
