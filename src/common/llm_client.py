"""
Text-generation client for the LLM-based recommendation strategy.

Wraps an OpenAI chat model (via ``langchain_openai``) behind a minimal
``complete(system_prompt, user_prompt) -> str`` contract and translates
transport failures into a small exception hierarchy. A missing API key is a
configuration condition: ``is_configured`` is ``False`` and callers are
expected to skip the call rather than treat it as an error.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

import httpx
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from .settings import Settings, settings
from .structured_logging import get_logger

logger = get_logger(__name__)


class LLMServiceError(Exception):
    """Base exception for text-generation failures."""
    pass


class LLMConfigurationError(LLMServiceError):
    """Raised when a call is attempted without credentials."""
    pass


class LLMServiceUnavailableError(LLMServiceError):
    """Raised when the provider cannot be reached."""
    pass


class LLMServiceTimeoutError(LLMServiceError):
    """Raised when the provider does not answer within the request timeout."""
    pass


class LLMClient:
    """Client for the external text-generation service."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or settings
        self.model = self.config.model_name
        self.timeout = self.config.llm_request_timeout
        self._chat_model: Optional[ChatOpenAI] = None

        # Metrics
        self.request_count = 0
        self.failure_count = 0

    @property
    def is_configured(self) -> bool:
        return self.config.llm_enabled

    def _get_chat_model(self) -> ChatOpenAI:
        if self._chat_model is None:
            self._chat_model = ChatOpenAI(
                model=self.model,
                api_key=self.config.openai_api_key,
                temperature=self.config.llm_temperature,
                max_tokens=self.config.max_tokens,
                timeout=self.timeout,
                max_retries=self.config.llm_max_retries,
            )
        return self._chat_model

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send one chat completion request and return the raw text answer.

        Raises:
            LLMConfigurationError: no API key is configured
            LLMServiceTimeoutError: the request exceeded ``llm_request_timeout``
            LLMServiceUnavailableError: the provider could not be reached
            LLMServiceError: any other provider failure
        """
        if not self.is_configured:
            raise LLMConfigurationError("OpenAI API key not configured")

        self.request_count += 1
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._get_chat_model().ainvoke(messages), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            self.failure_count += 1
            raise LLMServiceTimeoutError("Request timed out")
        except httpx.TimeoutException:
            self.failure_count += 1
            raise LLMServiceTimeoutError("Request timed out")
        except httpx.ConnectError:
            self.failure_count += 1
            raise LLMServiceUnavailableError("Cannot connect to text-generation service")
        except Exception as e:
            self.failure_count += 1
            raise LLMServiceError(f"Text generation failed: {e}") from e

        content = result.content if isinstance(result.content, str) else str(result.content or "")
        logger.info(
            "Text generation completed",
            extra={
                "model": self.model,
                "latency_ms": round((time.perf_counter() - start_time) * 1000, 1),
                "response_chars": len(content),
            },
        )
        return content

    def get_stats(self) -> dict:
        """Get client statistics."""
        return {
            "request_count": self.request_count,
            "failure_count": self.failure_count,
            "configured": self.is_configured,
            "model": self.model,
        }


# Global client instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the global LLM client instance."""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
