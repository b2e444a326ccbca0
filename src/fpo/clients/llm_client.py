"""OpenAI-compatible LLM client with retry on rate limits."""

import asyncio
import time
from typing import Any, Dict, List, Optional

from loguru import logger
from openai import AsyncOpenAI, OpenAI, RateLimitError

from ..config import Settings
from .base import BaseLLMClient

MAX_RETRIES = 5
INITIAL_RETRY_DELAY = 1.0
BACKOFF_MULTIPLIER = 2.0


class LLMClient(BaseLLMClient):
    """OpenAI API client with exponential backoff on rate limits.

    Other API errors (timeouts, connection failures, bad requests) propagate
    unchanged so callers can decide whether they are transient.
    """

    def __init__(self, settings: Settings):
        client_kwargs: Dict[str, Any] = {"api_key": settings.api_key or "local"}
        if settings.base_url:
            client_kwargs["base_url"] = settings.base_url
        self.client = OpenAI(**client_kwargs)
        self.async_client = AsyncOpenAI(**client_kwargs)
        self.model = settings.model
        self.temperature = settings.temperature

    def _request_kwargs(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float],
        max_tokens: Optional[int],
        json_mode: bool
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else self.temperature,
        }
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> str:
        """Send synchronous chat completion request with retry logic."""
        kwargs = self._request_kwargs(messages, temperature, max_tokens, json_mode)
        retry_delay = INITIAL_RETRY_DELAY

        for attempt in range(MAX_RETRIES):
            try:
                start_time = time.time()
                response = self.client.chat.completions.create(**kwargs)
                latency = (time.time() - start_time) * 1000
                content = response.choices[0].message.content or ""
                logger.debug(f"LLM response: {len(content)} chars, {latency:.0f}ms")
                return content
            except RateLimitError:
                if attempt == MAX_RETRIES - 1:
                    logger.error(f"Rate limit exceeded after {MAX_RETRIES} attempts")
                    raise
                logger.warning(
                    f"Rate limit hit, retrying in {retry_delay}s... "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                time.sleep(retry_delay)
                retry_delay *= BACKOFF_MULTIPLIER

        raise RuntimeError("Unexpected end of retry loop")

    async def achat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> str:
        """Send asynchronous chat completion request with retry logic."""
        kwargs = self._request_kwargs(messages, temperature, max_tokens, json_mode)
        retry_delay = INITIAL_RETRY_DELAY

        for attempt in range(MAX_RETRIES):
            try:
                start_time = time.time()
                response = await self.async_client.chat.completions.create(**kwargs)
                latency = (time.time() - start_time) * 1000
                content = response.choices[0].message.content or ""
                logger.debug(f"LLM async response: {len(content)} chars, {latency:.0f}ms")
                return content
            except RateLimitError:
                if attempt == MAX_RETRIES - 1:
                    logger.error(f"Rate limit exceeded after {MAX_RETRIES} attempts")
                    raise
                logger.warning(
                    f"Rate limit hit, retrying in {retry_delay}s... "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                await asyncio.sleep(retry_delay)
                retry_delay *= BACKOFF_MULTIPLIER

        raise RuntimeError("Unexpected end of retry loop")
