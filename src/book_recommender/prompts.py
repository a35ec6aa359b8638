"""Prompt & parser helpers for the LLM recommendation strategy.

The model is shown a compact projection of every candidate book and asked
to answer with a bare JSON array of candidate IDs, e.g. ``["b1", "b7"]``.
Models routinely wrap that array in prose or markdown fences, so
:func:`parse_book_ids` scans for the first substring that decodes as a JSON
array instead of parsing the whole reply.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

from langchain_core.prompts import PromptTemplate

from common.models import Book

from .config import recommender_config

__all__ = [
    "SYSTEM_PROMPT",
    "project_book",
    "build_user_prompt",
    "parse_book_ids",
]


SYSTEM_PROMPT = (
    "You are a book recommendation assistant. "
    "Respond only with the requested JSON format."
)

_USER_TMPL = PromptTemplate.from_template(
    """I need book recommendations for a user with these preferences:
- Favorite genres: {favorite_genres}
- Favorite authors: {favorite_authors}
- Recently read books: {recently_read}
- Highly rated books: {highly_rated}

Please recommend up to {limit} books from the following list that this user would enjoy.
Only choose IDs that appear in the list below.
Only respond with the book IDs in a JSON array format like ["id1", "id2", ...].

Available books:
{books}
"""
)


def project_book(book: Book, preview_chars: Optional[int] = None) -> Dict[str, Any]:
    """Compact representation of *book* that keeps the prompt small."""
    chars = recommender_config.DESCRIPTION_PREVIEW_CHARS if preview_chars is None else preview_chars
    description = book.description or ""
    if len(description) > chars:
        description = description[:chars] + "..."
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "genres": book.genre_names,
        "averageRating": book.average_rating,
        "description": description,
    }


def build_user_prompt(
    preferences: Mapping[str, Iterable[str]],
    candidate_books: Iterable[Book],
    limit: int,
) -> str:
    """Render the user message listing preferences and candidates."""

    def _join(key: str) -> str:
        values = list(preferences.get(key) or [])
        return ", ".join(values) if values else "none"

    books = [project_book(b) for b in candidate_books]
    return _USER_TMPL.format(
        favorite_genres=_join("favorite_genres"),
        favorite_authors=_join("favorite_authors"),
        recently_read=_join("recently_read"),
        highly_rated=_join("highly_rated"),
        limit=limit,
        books=json.dumps(books, indent=2),
    )


def parse_book_ids(content: Optional[str]) -> List[str]:
    """Return the IDs from the first well-formed JSON array in *content*.

    Returns ``[]`` when the reply holds no decodable array. Non-string
    entries (numbers) are stringified; nested containers are ignored.
    """
    if not content:
        return []

    decoder = json.JSONDecoder()
    start = content.find("[")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(content, start)
        except json.JSONDecodeError:
            start = content.find("[", start + 1)
            continue
        if isinstance(value, list):
            return [
                str(item)
                for item in value
                if isinstance(item, (str, int)) and not isinstance(item, bool)
            ]
        start = content.find("[", start + 1)
    return []
