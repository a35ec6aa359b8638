"""Aggregator behaviour: fallbacks, merge priority, isolation and the
exclusion / dedup / size laws."""

import json
from unittest.mock import AsyncMock

import pytest

from book_recommender.config import RecommenderConfig
from book_recommender.stores import InMemoryBookStore, InMemoryFavoriteStore, InMemoryReviewStore
from conftest import FakeTextService
from factories import ids, make_favorite, make_review


# ---------------------------------------------------------------------------
# Individual strategies through the service
# ---------------------------------------------------------------------------


class TestGenreBased:
    @pytest.mark.asyncio
    async def test_fiction_reader_scenario(self, make_service, catalog):
        reviews = [make_review(catalog["seen_fiction"], 5)]
        service = make_service(reviews=reviews)

        books = await service.get_genre_based_recommendations("U1", 10, {"A"})

        assert ids(books) == ["F1", "F2", "F3"]

    @pytest.mark.asyncio
    async def test_no_reviews(self, make_service):
        assert await make_service().get_genre_based_recommendations("U1", 10) == []

    @pytest.mark.asyncio
    async def test_only_low_ratings(self, make_service, catalog):
        service = make_service(reviews=[make_review(catalog["seen_fiction"], 3)])
        assert await service.get_genre_based_recommendations("U1", 10) == []

    @pytest.mark.asyncio
    async def test_store_failure_yields_empty(self, make_service, logger):
        service = make_service()
        service._reviews = AsyncMock()
        service._reviews.find_by_user.side_effect = RuntimeError("db down")

        assert await service.get_genre_based_recommendations("U1", 10) == []
        logger.error.assert_called()


class TestFavoriteBased:
    @pytest.mark.asyncio
    async def test_scores_author_and_genres(self, make_service, catalog):
        service = make_service(favorites=[make_favorite(catalog["fiction_mid"])])

        books = await service.get_favorite_based_recommendations("U1", 3, {"F2"})

        # F1: fiction(+2) + 4.8; M1: mystery(+2) + 4.5; A: fiction(+2) + 4.0
        assert ids(books) == ["F1", "M1", "A"]

    @pytest.mark.asyncio
    async def test_no_favorites(self, make_service):
        assert await make_service().get_favorite_based_recommendations("U1", 10) == []


class TestTopRatedAndPopular:
    @pytest.mark.asyncio
    async def test_top_rated(self, make_service):
        books = await make_service().get_top_rated_books(3)
        assert ids(books) == ["F1", "M1", "P1"]

    @pytest.mark.asyncio
    async def test_low_review_count_only_in_popular(self, make_service):
        service = make_service()
        assert "H1" not in ids(await service.get_top_rated_books(10))
        assert "H1" in ids(await service.get_popular_books(10))

    @pytest.mark.asyncio
    async def test_failure_is_contained(self, make_service):
        service = make_service()
        service._books = AsyncMock()
        service._books.find_all.side_effect = ConnectionError("gone")
        assert await service.get_top_rated_books(5) == []
        assert await service.get_popular_books(5) == []


class TestSimilar:
    @pytest.mark.asyncio
    async def test_similar_books(self, make_service):
        books = await make_service().get_similar_books("F2", 2)
        assert ids(books) == ["F1", "M1"]

    @pytest.mark.asyncio
    async def test_unknown_book_logs_warning(self, make_service, logger):
        assert await make_service().get_similar_books("missing") == []
        logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_book_without_genres(self, make_service):
        assert await make_service().get_similar_books("N1") == []

    @pytest.mark.asyncio
    async def test_default_limit(self, make_service, catalog, genres):
        service = make_service()
        books = await service.get_similar_books("A")
        assert len(books) <= RecommenderConfig().SIMILAR_BOOKS_DEFAULT_LIMIT
        assert "A" not in ids(books)


class TestLLMStrategy:
    @pytest.mark.asyncio
    async def test_no_history_skips_external_call(self, make_service):
        text = FakeTextService(answer='["F1"]')
        service = make_service(text_service=text)

        assert await service.get_llm_recommendations("U1", 5) == []
        assert text.calls == []

    @pytest.mark.asyncio
    async def test_candidates_exclude_known_books(self, make_service, catalog):
        text = FakeTextService(answer='["A", "F1", "ghost"]')
        service = make_service(reviews=[make_review(catalog["seen_fiction"], 5)], text_service=text)

        books = await service.get_llm_recommendations("U1", 5, {"A"})

        assert ids(books) == ["F1"]
        _, user_prompt = text.calls[0]
        assert '"id": "A"' not in user_prompt
        assert "Seen Fiction" in user_prompt  # listed as recently read

    @pytest.mark.asyncio
    async def test_missing_api_key(self, make_service, catalog, logger):
        text = FakeTextService(answer='["F1"]', configured=False)
        service = make_service(reviews=[make_review(catalog["seen_fiction"], 5)], text_service=text)

        assert await service.get_llm_recommendations("U1", 5) == []
        assert text.calls == []
        logger.warning.assert_called()


# ---------------------------------------------------------------------------
# Blended recommendations
# ---------------------------------------------------------------------------


class TestBlended:
    @pytest.mark.asyncio
    async def test_no_history_returns_exactly_top_rated(self, make_service):
        service = make_service()
        for n in (0, 1, 3, 10):
            assert ids(await service.get_recommendations_for_user("new-user", n)) == ids(
                await service.get_top_rated_books(n)
            )

    @pytest.mark.asyncio
    async def test_merge_priority_llm_genre_favorite_top_rated(self, make_service, catalog):
        # LLM picks P1, H1 (kept in pool order); genre (fiction) gives F1, F2;
        # favorites (mystery book) rank F2 before F1; top-rated gives F1, P1.
        text = FakeTextService(answer='["P1", "H1"]')
        service = make_service(
            reviews=[make_review(catalog["seen_fiction"], 5)],
            favorites=[make_favorite(catalog["mystery"])],
            text_service=text,
        )

        books = await service.get_recommendations_for_user("U1", 4)

        assert ids(books) == ["H1", "P1", "F1", "F2"]

    @pytest.mark.asyncio
    async def test_budgets(self, make_service, catalog):
        service = make_service(reviews=[make_review(catalog["seen_fiction"], 5)])
        calls = {}

        def _spy(name, original):
            async def _wrapped(*args, **kwargs):
                calls[name] = args
                return await original(*args, **kwargs)
            return _wrapped

        service.get_llm_recommendations = _spy("llm", service.get_llm_recommendations)
        service.get_genre_based_recommendations = _spy("genre", service.get_genre_based_recommendations)
        service.get_favorite_based_recommendations = _spy("favorite", service.get_favorite_based_recommendations)
        service.get_top_rated_books = _spy("top", service.get_top_rated_books)

        await service.get_recommendations_for_user("U1", 5)

        assert calls["llm"][1] == 5
        assert calls["genre"][1] == 3
        assert calls["favorite"][1] == 3
        assert calls["top"][0] == 3
        assert calls["top"][1] == {"A"}

    @pytest.mark.asyncio
    async def test_pool_and_history_are_loaded_once(self, make_service, catalog):
        service = make_service(
            reviews=[make_review(catalog["seen_fiction"], 5)],
            favorites=[make_favorite(catalog["mystery"])],
            text_service=FakeTextService(answer='["F1"]'),
            config=RecommenderConfig(BACKFILL_WITH_POPULAR=True),
        )
        service._books.find_all = AsyncMock(side_effect=service._books.find_all)
        service._reviews.find_by_user = AsyncMock(side_effect=service._reviews.find_by_user)
        service._favorites.find_by_user = AsyncMock(side_effect=service._favorites.find_by_user)

        books = await service.get_recommendations_for_user("U1", 8)

        assert books
        assert service._books.find_all.await_count == 1
        assert service._reviews.find_by_user.await_count == 1
        assert service._favorites.find_by_user.await_count == 1

    @pytest.mark.asyncio
    async def test_no_history_path_loads_pool_once(self, make_service):
        service = make_service()
        service._books.find_all = AsyncMock(side_effect=service._books.find_all)

        assert ids(await service.get_recommendations_for_user("new-user", 2)) == ["F1", "M1"]
        assert service._books.find_all.await_count == 1

    @pytest.mark.asyncio
    async def test_exclusion_dedup_and_size_laws(self, make_service, catalog):
        text = FakeTextService(answer=json.dumps(list(b.id for b in catalog.values())))
        reviews = [make_review(catalog["seen_fiction"], 5), make_review(catalog["poetry"], 2)]
        favorites = [make_favorite(catalog["mystery"])]
        service = make_service(reviews=reviews, favorites=favorites, text_service=text)
        known = {"A", "P1", "M1"}

        for limit in (0, 1, 2, 5, 8, 20):
            books = await service.get_recommendations_for_user("U1", limit)
            book_ids = ids(books)
            assert len(book_ids) <= limit
            assert len(book_ids) == len(set(book_ids))
            assert not known & set(book_ids)

    @pytest.mark.asyncio
    async def test_failing_llm_does_not_poison_result(self, make_service, catalog):
        text = FakeTextService(error=TimeoutError("slow"))
        service = make_service(reviews=[make_review(catalog["seen_fiction"], 5)], text_service=text)

        books = await service.get_recommendations_for_user("U1", 4)

        assert ids(books) == ["F1", "F2", "M1"]

    @pytest.mark.asyncio
    async def test_storage_failure_falls_back_to_top_rated(self, make_service, logger):
        service = make_service()
        service._reviews = AsyncMock()
        service._reviews.find_by_user.side_effect = RuntimeError("db down")

        books = await service.get_recommendations_for_user("U1", 2)

        assert ids(books) == ["F1", "M1"]
        logger.error.assert_called()

    @pytest.mark.asyncio
    async def test_empty_catalog(self, make_service, catalog):
        service = make_service(
            reviews=[make_review(catalog["seen_fiction"], 5)],
            favorites=[make_favorite(catalog["mystery"])],
            books=[],
            text_service=FakeTextService(answer='["F1"]'),
        )
        assert await service.get_recommendations_for_user("U1", 5) == []
        assert await service.get_genre_based_recommendations("U1", 5) == []
        assert await service.get_favorite_based_recommendations("U1", 5) == []
        assert await service.get_top_rated_books(5) == []
        assert await service.get_popular_books(5) == []
        assert await service.get_similar_books("F1", 5) == []
        assert await service.get_llm_recommendations("U1", 5) == []

    @pytest.mark.asyncio
    async def test_backfill_with_popular(self, make_service, catalog):
        cfg = RecommenderConfig(BACKFILL_WITH_POPULAR=True)
        # only low ratings: genre strategy is empty; top-rated gives F1, M1, P1
        reviews = [make_review(catalog["seen_fiction"], 1)]
        service = make_service(reviews=reviews, config=cfg)

        books = await service.get_recommendations_for_user("U1", 5)

        assert ids(books) == ["F1", "M1", "P1", "H1", "F2"]

    @pytest.mark.asyncio
    async def test_default_limit(self, make_service):
        books = await make_service().get_recommendations_for_user("new-user")
        assert len(books) <= RecommenderConfig().DEFAULT_LIMIT


def test_service_accepts_plain_store_instances(catalog):
    from book_recommender.service import RecommendationService

    service = RecommendationService(
        books=InMemoryBookStore(catalog.values()),
        reviews=InMemoryReviewStore(),
        favorites=InMemoryFavoriteStore(),
    )
    assert service._llm is not None
