"""
LLM Module
Multi-vendor LLM layer
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole
from .openai_llm import OpenAILLM
from .deepseek_llm import DeepSeekLLM
from .factory import get_llm

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLM",
    "DeepSeekLLM",
    "get_llm",
]
