import asyncio
import json
import sys
from enum import Enum
from pathlib import Path
from typing import List, Set, Tuple

import typer

from common.llm_client import LLMClient
from common.models import Book
from common.structured_logging import set_log_stream

from .llm_recommender import LLMBookRecommender
from .service import RecommendationService
from .stores import InMemoryCatalog

app = typer.Typer(help="Book-recommendation aggregator CLI")


class Strategy(str, Enum):
    blended = "blended"
    genre = "genre"
    favorite = "favorite"
    top_rated = "top-rated"
    popular = "popular"
    llm = "llm"


def _load_service(snapshot: Path) -> Tuple[RecommendationService, InMemoryCatalog]:
    catalog = InMemoryCatalog.from_snapshot(json.loads(snapshot.read_text()))
    service = RecommendationService(
        books=catalog.books,
        reviews=catalog.reviews,
        favorites=catalog.favorites,
        llm=LLMBookRecommender(LLMClient()),
    )
    return service, catalog


async def _known_book_ids(catalog: InMemoryCatalog, user_id: str) -> Set[str]:
    reviews, favorites = await asyncio.gather(
        catalog.reviews.find_by_user(user_id),
        catalog.favorites.find_by_user(user_id),
    )
    return {r.book_id for r in reviews} | {f.book_id for f in favorites}


def _emit(books: List[Book]) -> None:
    typer.echo(
        json.dumps(
            [
                {
                    "id": b.id,
                    "title": b.title,
                    "author": b.author,
                    "averageRating": b.average_rating,
                    "totalReviews": b.total_reviews,
                }
                for b in books
            ],
            indent=2,
        )
    )


# ---------------------------------------------------------------------
# recommend
# ---------------------------------------------------------------------
@app.command()
def recommend(
    user_id: str = typer.Argument(..., help="User to recommend books for"),
    snapshot: Path = typer.Option(..., exists=True, readable=True, help="Catalog snapshot JSON"),
    limit: int = typer.Option(10, min=0, help="Maximum number of books"),
    strategy: Strategy = typer.Option(Strategy.blended, help="Strategy to run"),
):
    """Print recommendations for USER_ID from a JSON catalog snapshot.

    Single strategies skip books USER_ID already reviewed or favorited,
    like the blended run does.
    """
    service, catalog = _load_service(snapshot)

    async def _run() -> List[Book]:
        if strategy is Strategy.blended:
            return await service.get_recommendations_for_user(user_id, limit)
        known = await _known_book_ids(catalog, user_id)
        runners = {
            Strategy.genre: lambda: service.get_genre_based_recommendations(user_id, limit, known),
            Strategy.favorite: lambda: service.get_favorite_based_recommendations(user_id, limit, known),
            Strategy.top_rated: lambda: service.get_top_rated_books(limit, known),
            Strategy.popular: lambda: service.get_popular_books(limit, known),
            Strategy.llm: lambda: service.get_llm_recommendations(user_id, limit, known),
        }
        return await runners[strategy]()

    _emit(asyncio.run(_run()))


# ---------------------------------------------------------------------
# similar
# ---------------------------------------------------------------------
@app.command()
def similar(
    book_id: str = typer.Argument(..., help="Book to find neighbours for"),
    snapshot: Path = typer.Option(..., exists=True, readable=True, help="Catalog snapshot JSON"),
    limit: int = typer.Option(5, min=0, help="Maximum number of books"),
):
    """Print books sharing a genre with BOOK_ID."""
    service, _ = _load_service(snapshot)
    _emit(asyncio.run(service.get_similar_books(book_id, limit)))


def main() -> None:
    """Console entry point; logs go to stderr, results to stdout."""
    set_log_stream(sys.stderr)
    app()


if __name__ == "__main__":
    main()
