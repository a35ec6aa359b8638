"""Read-only value models shared by the stores, strategies and the aggregator.

Relations (book → genres, review → book, favorite → book) are pre-joined and
fully materialised by the stores; nothing here lazy-loads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _RecordModel(BaseModel):
    """Shared config for record models."""

    model_config = ConfigDict(
        str_strip_whitespace=True, populate_by_name=True, from_attributes=True
    )


class Genre(_RecordModel):
    id: str
    name: str
    description: Optional[str] = None


class Book(_RecordModel):
    id: str
    title: str
    author: str
    isbn: Optional[str] = None
    description: Optional[str] = None
    published_date: Optional[date] = None
    cover_image_url: Optional[str] = None
    genres: List[Genre] = Field(default_factory=list)
    average_rating: float = Field(0.0, alias="averageRating", ge=0)
    total_reviews: int = Field(0, alias="totalReviews", ge=0)

    # ----------------------------- validators ----------------------------

    @field_validator("average_rating", mode="before")
    @classmethod
    def _coerce_rating(cls, v):
        """Books without reviews carry ``0.0``; SQL AVG yields NULL/Decimal."""
        if v in (None, "", "null", "NaN"):
            return 0.0
        return float(v)

    @field_validator("total_reviews", mode="before")
    @classmethod
    def _coerce_total(cls, v):
        if v in (None, ""):
            return 0
        return int(v)

    @field_validator("genres", mode="before")
    @classmethod
    def _drop_missing_genres(cls, v):
        if v is None:
            return []
        return [g for g in v if g is not None]

    # ----------------------------- helpers -------------------------------

    @property
    def genre_ids(self) -> set[str]:
        return {g.id for g in self.genres}

    @property
    def genre_names(self) -> list[str]:
        return [g.name for g in self.genres if g.name]


class Review(_RecordModel):
    id: str
    user_id: str
    book_id: str
    rating: int = Field(..., ge=1, le=5)
    content: str = ""
    book: Optional[Book] = None


class Favorite(_RecordModel):
    user_id: str
    book_id: str
    created_at: Optional[datetime] = None
    book: Optional[Book] = None


class PreferenceSignals(BaseModel):
    """Per-request summary of a user's demonstrated taste."""

    preferred_genre_ids: set[str] = Field(default_factory=set)
    favorite_authors: set[str] = Field(default_factory=set)
    recently_read: set[str] = Field(default_factory=set)
    highly_rated: set[str] = Field(default_factory=set)
    favorite_genre_names: set[str] = Field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not (
            self.preferred_genre_ids
            or self.favorite_authors
            or self.recently_read
            or self.highly_rated
        )


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate book paired with its favorite-similarity score."""

    book: Book
    score: float
