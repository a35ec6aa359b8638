"""Relational schema read by the SQL-backed stores."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

book_genres = Table(
    "book_genres",
    Base.metadata,
    Column("book_id", String, ForeignKey("books.id"), primary_key=True),
    Column("genre_id", String, ForeignKey("genres.id"), primary_key=True),
)


class GenreRow(Base):
    __tablename__ = "genres"

    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(String)


class BookRow(Base):
    __tablename__ = "books"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    author = Column(String, nullable=False)
    isbn = Column(String, unique=True)
    description = Column(Text)
    published_date = Column(Date)
    cover_image_url = Column(String)

    genres = relationship(GenreRow, secondary=book_genres, lazy="raise")


class ReviewRow(Base):
    __tablename__ = "reviews"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    book_id = Column(String, ForeignKey("books.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    content = Column(Text, nullable=False, default="")

    book = relationship(BookRow, lazy="raise")


class FavoriteRow(Base):
    __tablename__ = "user_favorites"

    user_id = Column(String, primary_key=True)
    book_id = Column(String, ForeignKey("books.id"), primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    book = relationship(BookRow, lazy="raise")
