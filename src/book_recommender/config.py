"""Tunable thresholds and weights for the recommendation strategies."""

from dataclasses import dataclass
import os


@dataclass
class RecommenderConfig:
    """Configuration for strategy scoring and fallbacks."""

    # Preference signals
    HIGH_RATING_THRESHOLD: int = 4  # reviews at or above count as "liked"

    # Favorite-based scoring weights
    AUTHOR_MATCH_WEIGHT: float = 5.0
    GENRE_MATCH_WEIGHT: float = 2.0  # per shared genre

    # Top-rated quality gate
    TOP_RATED_MIN_REVIEWS: int = 3
    TOP_RATED_MIN_RATING: float = 4.0

    # LLM payload
    DESCRIPTION_PREVIEW_CHARS: int = 100

    # Limits
    DEFAULT_LIMIT: int = 10
    SIMILAR_BOOKS_DEFAULT_LIMIT: int = 5

    # Feature flags
    BACKFILL_WITH_POPULAR: bool = False

    @classmethod
    def from_env(cls) -> "RecommenderConfig":
        """Create configuration from environment variables."""
        return cls(
            HIGH_RATING_THRESHOLD=int(os.getenv("RECO_HIGH_RATING_THRESHOLD", "4")),
            AUTHOR_MATCH_WEIGHT=float(os.getenv("RECO_AUTHOR_MATCH_WEIGHT", "5.0")),
            GENRE_MATCH_WEIGHT=float(os.getenv("RECO_GENRE_MATCH_WEIGHT", "2.0")),
            TOP_RATED_MIN_REVIEWS=int(os.getenv("RECO_TOP_RATED_MIN_REVIEWS", "3")),
            TOP_RATED_MIN_RATING=float(os.getenv("RECO_TOP_RATED_MIN_RATING", "4.0")),
            DESCRIPTION_PREVIEW_CHARS=int(os.getenv("RECO_DESCRIPTION_PREVIEW_CHARS", "100")),
            DEFAULT_LIMIT=int(os.getenv("RECO_DEFAULT_LIMIT", "10")),
            SIMILAR_BOOKS_DEFAULT_LIMIT=int(os.getenv("RECO_SIMILAR_BOOKS_DEFAULT_LIMIT", "5")),
            BACKFILL_WITH_POPULAR=os.getenv("RECO_BACKFILL_WITH_POPULAR", "false").lower() == "true",
        )


# Global configuration instance
recommender_config = RecommenderConfig.from_env()
