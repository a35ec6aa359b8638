"""LLM-backed recommendation client.

Sends the user's preference profile and the candidate pool to the
text-generation service and maps the IDs it answers with back onto the
candidate books. The mapping is the integrity guarantee of this module: a
book is only ever returned if the caller offered it as a candidate, so
hallucinated or malformed IDs are dropped silently.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Mapping, Optional, Protocol, runtime_checkable

from common.models import Book
from common.structured_logging import get_logger, log_error_with_context

from .prompts import SYSTEM_PROMPT, build_user_prompt, parse_book_ids

logger = get_logger(__name__)


@runtime_checkable
class TextGenerationService(Protocol):
    """External capability: one prompt in, raw text out."""

    @property
    def is_configured(self) -> bool: ...

    async def complete(self, system_prompt: str, user_prompt: str) -> str: ...


class LLMBookRecommender:
    """Chooses books from a candidate pool with an external language model."""

    def __init__(
        self,
        service: Optional[TextGenerationService],
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._service = service
        self._logger = log or logger

    async def get_book_recommendations(
        self,
        preferences: Mapping[str, Iterable[str]],
        candidate_books: List[Book],
        limit: int = 5,
    ) -> List[Book]:
        """Return up to *limit* candidates picked by the model; never raises."""
        try:
            if self._service is None or not self._service.is_configured:
                self._logger.warning("OpenAI API key not configured, skipping LLM recommendations")
                return []
            if limit <= 0 or not candidate_books:
                return []

            user_prompt = build_user_prompt(preferences, candidate_books, limit)
            content = await self._service.complete(SYSTEM_PROMPT, user_prompt)

            recommended_ids = set(parse_book_ids(content))
            if not recommended_ids:
                self._logger.info(
                    "LLM response contained no book IDs",
                    extra={"response_chars": len(content or "")},
                )
                return []

            picked = [b for b in candidate_books if b.id in recommended_ids]
            dropped = len(recommended_ids) - len(picked)
            if dropped > 0:
                self._logger.info(
                    "Dropped unknown book IDs from LLM response",
                    extra={"unknown_ids": dropped},
                )
            return picked[:limit]
        except Exception as e:
            log_error_with_context(
                self._logger, e, "llm_book_recommendations",
                candidate_count=len(candidate_books or []), limit=limit,
            )
            return []
