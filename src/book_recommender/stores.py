"""Finder interfaces consumed by the recommender, plus two implementations.

* ``InMemory*`` stores hold already-materialised models (tests, the CLI's
  JSON snapshots).
* ``Sql*`` stores read the relational schema in :mod:`db_models` through an
  ``async_sessionmaker`` and eagerly join every relation the strategies
  need, so the returned models never lazy-load.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from common.models import Book, Favorite, Genre, Review

from .db_models import BookRow, FavoriteRow, GenreRow, ReviewRow


class ReviewStore(Protocol):
    async def find_by_user(self, user_id: str) -> List[Review]: ...


class FavoriteStore(Protocol):
    async def find_by_user(self, user_id: str) -> List[Favorite]: ...


class BookStore(Protocol):
    async def find_all(self) -> List[Book]: ...

    async def find_one(self, book_id: str) -> Optional[Book]: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryBookStore:
    def __init__(self, books: Iterable[Book] = ()) -> None:
        self._books: Dict[str, Book] = {b.id: b for b in books}

    async def find_all(self) -> List[Book]:
        return list(self._books.values())

    async def find_one(self, book_id: str) -> Optional[Book]:
        return self._books.get(book_id)


class InMemoryReviewStore:
    def __init__(self, reviews: Iterable[Review] = ()) -> None:
        self._by_user: Dict[str, List[Review]] = defaultdict(list)
        for review in reviews:
            self._by_user[review.user_id].append(review)

    async def find_by_user(self, user_id: str) -> List[Review]:
        return list(self._by_user.get(user_id, []))


class InMemoryFavoriteStore:
    def __init__(self, favorites: Iterable[Favorite] = ()) -> None:
        self._by_user: Dict[str, List[Favorite]] = defaultdict(list)
        for favorite in favorites:
            self._by_user[favorite.user_id].append(favorite)

    async def find_by_user(self, user_id: str) -> List[Favorite]:
        return list(self._by_user.get(user_id, []))


class InMemoryCatalog:
    """The three in-memory stores built from one snapshot."""

    def __init__(
        self,
        books: InMemoryBookStore,
        reviews: InMemoryReviewStore,
        favorites: InMemoryFavoriteStore,
    ) -> None:
        self.books = books
        self.reviews = reviews
        self.favorites = favorites

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Any]) -> "InMemoryCatalog":
        """Build stores from ``{"genres", "books", "reviews", "favorites"}``.

        Books reference genres by ID (``"genre_ids"``); reviews and favorites
        reference books by ``"book_id"``. Relations are resolved here.
        Missing aggregate fields are computed from the snapshot's reviews.
        """
        genres = {g["id"]: Genre(**g) for g in snapshot.get("genres", [])}

        stats: Dict[str, List[int]] = defaultdict(list)
        for r in snapshot.get("reviews", []):
            stats[r["book_id"]].append(int(r["rating"]))

        books: Dict[str, Book] = {}
        for raw in snapshot.get("books", []):
            data = {k: v for k, v in raw.items() if k != "genre_ids"}
            data["genres"] = [genres[g] for g in raw.get("genre_ids", []) if g in genres]
            ratings = stats.get(raw["id"], [])
            if "average_rating" not in data and "averageRating" not in data:
                data["average_rating"] = sum(ratings) / len(ratings) if ratings else 0.0
            if "total_reviews" not in data and "totalReviews" not in data:
                data["total_reviews"] = len(ratings)
            book = Book(**data)
            books[book.id] = book

        reviews = [
            Review(**{**r, "book": books.get(r["book_id"])})
            for r in snapshot.get("reviews", [])
        ]
        favorites = [
            Favorite(**{**f, "book": books.get(f["book_id"])})
            for f in snapshot.get("favorites", [])
        ]
        return cls(
            InMemoryBookStore(books.values()),
            InMemoryReviewStore(reviews),
            InMemoryFavoriteStore(favorites),
        )


# ---------------------------------------------------------------------------
# SQLAlchemy (async)
# ---------------------------------------------------------------------------


def _to_genre(row: GenreRow) -> Genre:
    return Genre(id=row.id, name=row.name, description=row.description)


def _to_book(row: BookRow, stats: Mapping[str, Tuple[Any, int]]) -> Book:
    avg, count = stats.get(row.id, (None, 0))
    return Book(
        id=row.id,
        title=row.title,
        author=row.author,
        isbn=row.isbn,
        description=row.description,
        published_date=row.published_date,
        cover_image_url=row.cover_image_url,
        genres=[_to_genre(g) for g in row.genres],
        average_rating=avg,
        total_reviews=count,
    )


async def _rating_stats(
    session: AsyncSession, book_ids: Optional[Iterable[str]] = None
) -> Dict[str, Tuple[Any, int]]:
    """``book_id -> (AVG(rating), COUNT(*))`` over the reviews table."""
    query = select(
        ReviewRow.book_id, func.avg(ReviewRow.rating), func.count(ReviewRow.id)
    ).group_by(ReviewRow.book_id)
    if book_ids is not None:
        ids = list(book_ids)
        if not ids:
            return {}
        query = query.where(ReviewRow.book_id.in_(ids))
    result = await session.execute(query)
    return {book_id: (avg, count) for book_id, avg, count in result.all()}


class _SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory


class SqlBookStore(_SqlStore):
    async def find_all(self) -> List[Book]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(BookRow).options(selectinload(BookRow.genres)).order_by(BookRow.id)
            )
            rows = result.scalars().all()
            stats = await _rating_stats(session)
            return [_to_book(row, stats) for row in rows]

    async def find_one(self, book_id: str) -> Optional[Book]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(BookRow)
                .options(selectinload(BookRow.genres))
                .where(BookRow.id == book_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            stats = await _rating_stats(session, [book_id])
            return _to_book(row, stats)


class SqlReviewStore(_SqlStore):
    async def find_by_user(self, user_id: str) -> List[Review]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ReviewRow)
                .options(selectinload(ReviewRow.book).selectinload(BookRow.genres))
                .where(ReviewRow.user_id == user_id)
            )
            rows = result.scalars().all()
            stats = await _rating_stats(session, {r.book_id for r in rows})
            return [
                Review(
                    id=row.id,
                    user_id=row.user_id,
                    book_id=row.book_id,
                    rating=row.rating,
                    content=row.content or "",
                    book=_to_book(row.book, stats) if row.book is not None else None,
                )
                for row in rows
            ]


class SqlFavoriteStore(_SqlStore):
    async def find_by_user(self, user_id: str) -> List[Favorite]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FavoriteRow)
                .options(selectinload(FavoriteRow.book).selectinload(BookRow.genres))
                .where(FavoriteRow.user_id == user_id)
            )
            rows = result.scalars().all()
            stats = await _rating_stats(session, {r.book_id for r in rows})
            return [
                Favorite(
                    user_id=row.user_id,
                    book_id=row.book_id,
                    created_at=row.created_at,
                    book=_to_book(row.book, stats) if row.book is not None else None,
                )
                for row in rows
            ]
