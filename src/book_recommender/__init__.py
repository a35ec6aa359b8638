"""
Book recommendation aggregator.
Import surface: `from book_recommender import RecommendationService, build_service`.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from common.llm_client import LLMClient
from common.settings import Settings, settings as default_settings

from .config import RecommenderConfig
from .llm_recommender import LLMBookRecommender
from .service import RecommendationService
from .stores import SqlBookStore, SqlFavoriteStore, SqlReviewStore


def build_service(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    settings: Optional[Settings] = None,
    config: Optional[RecommenderConfig] = None,
) -> RecommendationService:
    """Wire the SQL stores and the OpenAI-backed LLM client into a service.

    When *session_factory* is omitted an engine is created from
    ``settings.async_db_url``.
    """
    cfg = settings or default_settings
    if session_factory is None:
        engine = create_async_engine(cfg.async_db_url, echo=cfg.db_echo)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)

    return RecommendationService(
        books=SqlBookStore(session_factory),
        reviews=SqlReviewStore(session_factory),
        favorites=SqlFavoriteStore(session_factory),
        llm=LLMBookRecommender(LLMClient(cfg)),
        config=config,
    )


__all__ = [
    "RecommendationService",
    "build_service",
]
