"""
Storage Module
Relational store interface and the in-memory implementation
"""
from .base import MentionStore
from .memory_store import DEFAULT_CATEGORIES, DEFAULT_INTENTS, InMemoryMentionStore

__all__ = [
    "MentionStore",
    "InMemoryMentionStore",
    "DEFAULT_CATEGORIES",
    "DEFAULT_INTENTS",
]
