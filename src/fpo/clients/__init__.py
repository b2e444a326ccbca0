"""LLM clients."""

from .base import BaseLLMClient
from .llm_client import LLMClient

__all__ = ["BaseLLMClient", "LLMClient"]
