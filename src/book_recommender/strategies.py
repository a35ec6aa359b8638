"""Pure, deterministic ranking of candidate books for each strategy.

Nothing in here touches storage or the network: the service loads the
candidate pool and user history, and these functions filter, score and
order it. Ties keep the candidate pool's order (Python's sort is stable,
also with ``reverse=True``).
"""

from __future__ import annotations

from typing import Collection, Iterable, List, Optional

from common.models import Book, Favorite, ScoredCandidate

from .config import RecommenderConfig, recommender_config


def _clamp(limit: int) -> int:
    return max(int(limit), 0)


def _eligible(books: Iterable[Book], exclude_ids: Collection[str]) -> List[Book]:
    excluded = set(exclude_ids or ())
    return [b for b in books if b.id not in excluded]


def _by_rating(books: Iterable[Book]) -> List[Book]:
    return sorted(books, key=lambda b: b.average_rating, reverse=True)


def rank_by_genres(
    books: Iterable[Book],
    preferred_genre_ids: Collection[str],
    limit: int,
    exclude_ids: Collection[str] = (),
) -> List[Book]:
    """Books sharing at least one preferred genre, best rated first."""
    preferred = set(preferred_genre_ids)
    if not preferred:
        return []
    matches = [b for b in _eligible(books, exclude_ids) if b.genre_ids & preferred]
    return _by_rating(matches)[: _clamp(limit)]


def score_by_favorites(
    books: Iterable[Book],
    favorites: Iterable[Favorite],
    exclude_ids: Collection[str] = (),
    config: Optional[RecommenderConfig] = None,
) -> List[ScoredCandidate]:
    """Return candidates sorted descending by favorite-similarity score.

    score = author match × AUTHOR_MATCH_WEIGHT
          + shared genres × GENRE_MATCH_WEIGHT
          + the book's own average rating

    Only candidates with a positive score survive.
    """
    cfg = config or recommender_config
    favorite_books = [f.book for f in favorites if f.book is not None]
    favorite_authors = {b.author for b in favorite_books}
    favorite_genres: set[str] = set()
    for b in favorite_books:
        favorite_genres.update(b.genre_ids)

    scored: List[ScoredCandidate] = []
    for book in _eligible(books, exclude_ids):
        score = 0.0
        if book.author in favorite_authors:
            score += cfg.AUTHOR_MATCH_WEIGHT
        score += cfg.GENRE_MATCH_WEIGHT * len(book.genre_ids & favorite_genres)
        score += book.average_rating
        if score > 0:
            scored.append(ScoredCandidate(book=book, score=score))

    scored.sort(key=lambda c: c.score, reverse=True)
    return scored


def rank_by_favorites(
    books: Iterable[Book],
    favorites: Iterable[Favorite],
    limit: int,
    exclude_ids: Collection[str] = (),
    config: Optional[RecommenderConfig] = None,
) -> List[Book]:
    scored = score_by_favorites(books, favorites, exclude_ids, config)
    return [c.book for c in scored[: _clamp(limit)]]


def select_top_rated(
    books: Iterable[Book],
    limit: int,
    exclude_ids: Collection[str] = (),
    config: Optional[RecommenderConfig] = None,
) -> List[Book]:
    """Books with at least ``TOP_RATED_MIN_REVIEWS`` reviews and an average
    of at least ``TOP_RATED_MIN_RATING``, best rated first."""
    cfg = config or recommender_config
    qualified = [
        b
        for b in _eligible(books, exclude_ids)
        if b.total_reviews >= cfg.TOP_RATED_MIN_REVIEWS
        and b.average_rating >= cfg.TOP_RATED_MIN_RATING
    ]
    return _by_rating(qualified)[: _clamp(limit)]


def select_popular(
    books: Iterable[Book],
    limit: int,
    exclude_ids: Collection[str] = (),
) -> List[Book]:
    """All eligible books by rating, then by review count."""
    ranked = sorted(
        _eligible(books, exclude_ids),
        key=lambda b: (b.average_rating, b.total_reviews),
        reverse=True,
    )
    return ranked[: _clamp(limit)]


def select_similar(
    books: Iterable[Book],
    target: Book,
    limit: int,
) -> List[Book]:
    """Other books sharing a genre with *target*, best rated first."""
    if not target.genre_ids:
        return []
    return rank_by_genres(books, target.genre_ids, limit, exclude_ids={target.id})


def merge_unique(*ranked_lists: Iterable[Book], limit: Optional[int] = None) -> List[Book]:
    """Concatenate in priority order, keep the first occurrence of each book."""
    seen: set[str] = set()
    merged: List[Book] = []
    for books in ranked_lists:
        for book in books:
            if book.id in seen:
                continue
            seen.add(book.id)
            merged.append(book)
    if limit is not None:
        return merged[: _clamp(limit)]
    return merged
