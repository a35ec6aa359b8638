"""Preference signals derived from a user's reviews and favorites.

All functions are pure: they only look at the materialised records they are
given and return fresh sets, so output never depends on input ordering.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from common.models import Favorite, PreferenceSignals, Review

from .config import recommender_config


def _threshold(threshold: Optional[int]) -> int:
    return recommender_config.HIGH_RATING_THRESHOLD if threshold is None else threshold


def extract_preferred_genres(
    reviews: Iterable[Review], threshold: Optional[int] = None
) -> set[str]:
    """Genre IDs attached to books the user rated at or above *threshold*.

    Reviews without a book, or books without genres, are skipped.
    """
    min_rating = _threshold(threshold)
    genre_ids: set[str] = set()
    for review in reviews:
        if review.rating < min_rating or review.book is None:
            continue
        genre_ids.update(review.book.genre_ids)
    return genre_ids


def build_preference_signals(
    reviews: Iterable[Review],
    favorites: Iterable[Favorite],
    threshold: Optional[int] = None,
) -> PreferenceSignals:
    """Summarise reviews and favorites into a :class:`PreferenceSignals`.

    Genre and author signals come from highly-rated reviews and from
    favorites; every reviewed title counts as recently read.
    """
    min_rating = _threshold(threshold)
    signals = PreferenceSignals()

    for review in reviews:
        book = review.book
        if book is None:
            continue
        signals.recently_read.add(book.title)
        if review.rating >= min_rating:
            signals.highly_rated.add(book.title)
            signals.favorite_authors.add(book.author)
            signals.preferred_genre_ids.update(book.genre_ids)
            signals.favorite_genre_names.update(book.genre_names)

    for favorite in favorites:
        book = favorite.book
        if book is None:
            continue
        signals.favorite_authors.add(book.author)
        signals.preferred_genre_ids.update(book.genre_ids)
        signals.favorite_genre_names.update(book.genre_names)

    return signals


def describe_preferences(signals: PreferenceSignals) -> Dict[str, List[str]]:
    """Natural-language preference profile sent to the LLM strategy."""
    return {
        "favorite_genres": sorted(signals.favorite_genre_names),
        "favorite_authors": sorted(signals.favorite_authors),
        "recently_read": sorted(signals.recently_read),
        "highly_rated": sorted(signals.highly_rated),
    }
