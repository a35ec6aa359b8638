import sys
from pathlib import Path
from unittest.mock import MagicMock

# Ensure the project's `src/` directory is on sys.path so test modules
# can import `common`, `book_recommender`, etc. without installing the
# package first.
root_dir = Path(__file__).resolve().parents[1]
src_dir = root_dir / "src"
if src_dir.exists() and str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))
tests_dir = Path(__file__).resolve().parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

import pytest

from book_recommender.config import RecommenderConfig
from book_recommender.llm_recommender import LLMBookRecommender
from book_recommender.service import RecommendationService
from book_recommender.stores import InMemoryBookStore, InMemoryFavoriteStore, InMemoryReviewStore
from factories import make_book, make_genre


class FakeTextService:
    """Text-generation double that replays a canned answer."""

    def __init__(self, answer: str = "[]", configured: bool = True, error: Exception | None = None):
        self.answer = answer
        self.configured = configured
        self.error = error
        self.calls: list[tuple[str, str]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def genres():
    return {
        "fiction": make_genre("Fiction"),
        "mystery": make_genre("Mystery"),
        "history": make_genre("History"),
        "poetry": make_genre("Poetry"),
    }


@pytest.fixture
def catalog(genres):
    """Small catalog keyed by a readable handle."""
    g = genres
    return {
        "seen_fiction": make_book(g["fiction"], id="A", title="Seen Fiction", author="Ann", average_rating=4.0, total_reviews=4),
        "fiction_high": make_book(g["fiction"], id="F1", title="Fiction High", author="Bob", average_rating=4.8, total_reviews=10),
        "fiction_mid": make_book(g["fiction"], g["mystery"], id="F2", title="Fiction Mid", author="Cat", average_rating=3.9, total_reviews=6),
        "fiction_low": make_book(g["fiction"], id="F3", title="Fiction Low", author="Ann", average_rating=2.5, total_reviews=3),
        "mystery": make_book(g["mystery"], id="M1", title="Mystery", author="Dan", average_rating=4.5, total_reviews=8),
        "history": make_book(g["history"], id="H1", title="History", author="Eve", average_rating=4.2, total_reviews=2),
        "poetry": make_book(g["poetry"], id="P1", title="Poetry", author="Fay", average_rating=4.1, total_reviews=12),
        "untagged": make_book(id="N1", title="Untagged", author="Gus", average_rating=0.0, total_reviews=0),
    }


@pytest.fixture
def logger():
    return MagicMock()


@pytest.fixture
def make_service(catalog, logger):
    """Build a service over in-memory stores; extra kwargs override parts."""

    def _make(reviews=(), favorites=(), books=None, text_service=None, config=None):
        llm = LLMBookRecommender(text_service, logger)
        return RecommendationService(
            books=InMemoryBookStore(catalog.values() if books is None else books),
            reviews=InMemoryReviewStore(reviews),
            favorites=InMemoryFavoriteStore(favorites),
            llm=llm,
            config=config or RecommenderConfig(),
            log=logger,
        )

    return _make
