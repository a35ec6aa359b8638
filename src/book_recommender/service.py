"""Recommendation aggregator.

This module handles:
1.   Loading a user's reviews and favorites through the injected stores.
2.   Running every recommendation strategy concurrently against the shared
     candidate pool.
3.   Merging the strategy outputs in trust order (LLM, genre, favorite,
     top-rated), deduplicating by book ID and truncating to the request size.

Every public method returns a list and never raises: a failing strategy
answers with ``[]`` and a failure anywhere in the blended orchestration is
answered with the top-rated fallback.

It has no web-framework imports; the CLI and the tests drive it directly.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import math
import time
from typing import Any, Awaitable, Callable, Collection, List, Optional, TypeVar

from common.metrics import (
    FALLBACKS_TOTAL,
    SERVICE_NAME,
    STRATEGY_FAILURES,
    STRATEGY_LATENCY,
    STRATEGY_RESULTS,
)
from common.models import Book, Favorite, Review
from common.structured_logging import (
    PerformanceLogger,
    get_logger,
    log_error_with_context,
    set_request_context,
)

from .config import RecommenderConfig, recommender_config
from .llm_recommender import LLMBookRecommender
from .signals import build_preference_signals, describe_preferences, extract_preferred_genres
from .stores import BookStore, FavoriteStore, ReviewStore
from .strategies import (
    merge_unique,
    rank_by_favorites,
    rank_by_genres,
    select_popular,
    select_similar,
    select_top_rated,
)

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[List[Book]]])


def isolated_strategy(name: str) -> Callable[[F], F]:
    """Catch, log and count any error raised by a strategy; answer ``[]``."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(self: "RecommendationService", *args: Any, **kwargs: Any) -> List[Book]:
            start = time.perf_counter()
            try:
                books = await func(self, *args, **kwargs)
            except Exception as e:
                STRATEGY_FAILURES.labels(SERVICE_NAME, name).inc()
                log_error_with_context(self._logger, e, name, call_args=list(args))
                return []
            finally:
                STRATEGY_LATENCY.labels(SERVICE_NAME, name).observe(time.perf_counter() - start)
            STRATEGY_RESULTS.labels(SERVICE_NAME, name).observe(len(books))
            return books

        return wrapper  # type: ignore[return-value]

    return decorator


def _half(limit: int) -> int:
    return math.ceil(limit / 2)


class RecommendationService:
    """Blends the individual strategies into one recommendation list.

    Every strategy accepts already-loaded ``reviews`` / ``favorites`` /
    ``books`` as keyword arguments; the blended path loads them once and
    shares them, standalone calls load whatever they are missing.
    """

    def __init__(
        self,
        books: BookStore,
        reviews: ReviewStore,
        favorites: FavoriteStore,
        llm: Optional[LLMBookRecommender] = None,
        config: Optional[RecommenderConfig] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._books = books
        self._reviews = reviews
        self._favorites = favorites
        self._llm = llm or LLMBookRecommender(None, log)
        self._config = config or recommender_config
        self._logger = log or logger

    # ------------------------------------------------------------------
    # Blended entry point
    # ------------------------------------------------------------------

    async def get_recommendations_for_user(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[Book]:
        """Top *limit* books for *user_id* across all strategies."""
        limit = max(self._config.DEFAULT_LIMIT if limit is None else limit, 0)
        set_request_context(user_id=user_id)

        try:
            with PerformanceLogger(self._logger, "get_recommendations_for_user", limit=limit):
                reviews, favorites, books = await asyncio.gather(
                    self._reviews.find_by_user(user_id),
                    self._favorites.find_by_user(user_id),
                    self._books.find_all(),
                )

                if not reviews and not favorites:
                    self._logger.info(
                        "User has no reviews or favorites, returning top-rated books",
                        extra={"user_id": user_id},
                    )
                    FALLBACKS_TOTAL.labels(SERVICE_NAME, "no_history").inc()
                    return await self.get_top_rated_books(limit, books=books)

                exclude_ids = {r.book_id for r in reviews} | {f.book_id for f in favorites}
                half = _half(limit)

                llm_books, genre_books, favorite_books, top_rated = await asyncio.gather(
                    self.get_llm_recommendations(
                        user_id, limit, exclude_ids,
                        reviews=reviews, favorites=favorites, books=books,
                    ),
                    self.get_genre_based_recommendations(
                        user_id, half, exclude_ids, reviews=reviews, books=books
                    ),
                    self.get_favorite_based_recommendations(
                        user_id, half, exclude_ids, favorites=favorites, books=books
                    ),
                    self.get_top_rated_books(half, exclude_ids, books=books),
                )

                recommendations = merge_unique(
                    llm_books, genre_books, favorite_books, top_rated, limit=limit
                )

                if self._config.BACKFILL_WITH_POPULAR and len(recommendations) < limit:
                    chosen = exclude_ids | {b.id for b in recommendations}
                    extra = await self.get_popular_books(
                        limit - len(recommendations), chosen, books=books
                    )
                    recommendations = merge_unique(recommendations, extra, limit=limit)

                self._logger.info(
                    "Blended recommendations ready",
                    extra={
                        "user_id": user_id,
                        "pool": len(books),
                        "llm": len(llm_books),
                        "genre": len(genre_books),
                        "favorite": len(favorite_books),
                        "top_rated": len(top_rated),
                        "returned": len(recommendations),
                    },
                )
                return recommendations
        except Exception as e:
            log_error_with_context(
                self._logger, e, "get_recommendations_for_user", user_id=user_id, limit=limit
            )
            FALLBACKS_TOTAL.labels(SERVICE_NAME, "error").inc()
            return await self.get_top_rated_books(limit)

    # ------------------------------------------------------------------
    # Individual strategies
    # ------------------------------------------------------------------

    async def _pool(self, books: Optional[List[Book]]) -> List[Book]:
        return await self._books.find_all() if books is None else books

    @isolated_strategy("genre_based")
    async def get_genre_based_recommendations(
        self,
        user_id: str,
        limit: int,
        exclude_ids: Collection[str] = (),
        *,
        reviews: Optional[List[Review]] = None,
        books: Optional[List[Book]] = None,
    ) -> List[Book]:
        if reviews is None:
            reviews = await self._reviews.find_by_user(user_id)
        if not reviews:
            return []

        preferred = extract_preferred_genres(reviews, self._config.HIGH_RATING_THRESHOLD)
        if not preferred:
            self._logger.debug("No preferred genres found", extra={"user_id": user_id})
            return []

        return rank_by_genres(await self._pool(books), preferred, limit, exclude_ids)

    @isolated_strategy("favorite_based")
    async def get_favorite_based_recommendations(
        self,
        user_id: str,
        limit: int,
        exclude_ids: Collection[str] = (),
        *,
        favorites: Optional[List[Favorite]] = None,
        books: Optional[List[Book]] = None,
    ) -> List[Book]:
        if favorites is None:
            favorites = await self._favorites.find_by_user(user_id)
        if not favorites:
            return []

        return rank_by_favorites(
            await self._pool(books), favorites, limit, exclude_ids, self._config
        )

    @isolated_strategy("top_rated")
    async def get_top_rated_books(
        self,
        limit: Optional[int] = None,
        exclude_ids: Collection[str] = (),
        *,
        books: Optional[List[Book]] = None,
    ) -> List[Book]:
        limit = self._config.DEFAULT_LIMIT if limit is None else limit
        return select_top_rated(await self._pool(books), limit, exclude_ids, self._config)

    @isolated_strategy("popular")
    async def get_popular_books(
        self,
        limit: Optional[int] = None,
        exclude_ids: Collection[str] = (),
        *,
        books: Optional[List[Book]] = None,
    ) -> List[Book]:
        limit = self._config.DEFAULT_LIMIT if limit is None else limit
        return select_popular(await self._pool(books), limit, exclude_ids)

    @isolated_strategy("similar")
    async def get_similar_books(self, book_id: str, limit: Optional[int] = None) -> List[Book]:
        limit = self._config.SIMILAR_BOOKS_DEFAULT_LIMIT if limit is None else limit
        target = await self._books.find_one(book_id)
        if target is None:
            self._logger.warning("Book not found", extra={"book_id": book_id})
            return []
        if not target.genre_ids:
            return []

        return select_similar(await self._books.find_all(), target, limit)

    @isolated_strategy("llm")
    async def get_llm_recommendations(
        self,
        user_id: str,
        limit: int,
        exclude_ids: Collection[str] = (),
        *,
        reviews: Optional[List[Review]] = None,
        favorites: Optional[List[Favorite]] = None,
        books: Optional[List[Book]] = None,
    ) -> List[Book]:
        if reviews is None:
            reviews = await self._reviews.find_by_user(user_id)
        if favorites is None:
            favorites = await self._favorites.find_by_user(user_id)
        if not reviews and not favorites:
            return []

        signals = build_preference_signals(reviews, favorites, self._config.HIGH_RATING_THRESHOLD)
        excluded = set(exclude_ids or ())
        candidates = [b for b in await self._pool(books) if b.id not in excluded]
        return await self._llm.get_book_recommendations(
            describe_preferences(signals), candidates, limit
        )
