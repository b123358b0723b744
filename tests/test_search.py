"""Test search backends and multi-source aggregation."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from autoresearch.backends import (
    BraveBackend, GoogleBackend, SemanticScholarBackend, SerperBackend, WikipediaBackend,
    build_backends,
)
from autoresearch.errors import SearchError
from autoresearch.search import SearchAggregator

from conftest import StaticBackend, make_result


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestBackends:
    """Test backend response parsing over a mock transport."""

    @pytest.mark.asyncio
    async def test_wikipedia_backend(self):
        def handler(request):
            assert request.url.params["srsearch"] == "solar power"
            assert request.url.params["srlimit"] == "2"
            return httpx.Response(200, json={"query": {"search": [
                {"title": "Solar power", "snippet": '<span class="searchmatch">Solar</span> power is energy'},
            ]}})

        async with mock_client(handler) as client:
            results = await WikipediaBackend(client).search("solar power", 10)

        assert len(results) == 1
        assert results[0].url == "https://en.wikipedia.org/wiki/Solar_power"
        assert results[0].snippet == "Solar power is energy"
        assert results[0].author == "Wikipedia Contributors"
        assert results[0].relevance_score == 5
        assert results[0].source == "wikipedia"

    @pytest.mark.asyncio
    async def test_semantic_scholar_backend(self):
        def handler(request):
            assert request.url.params["limit"] == "3"
            return httpx.Response(200, json={"data": [
                {"paperId": "abc", "title": "Grid Storage", "authors": [{"name": "A. Researcher"}],
                 "abstract": "We study storage.", "year": 2021, "url": None, "publicationDate": None},
            ]})

        async with mock_client(handler) as client:
            results = await SemanticScholarBackend(client).search("grid storage", 10)

        assert results[0].url == "https://www.semanticscholar.org/paper/abc"
        assert results[0].author == "A. Researcher"
        assert results[0].publish_date == "2021"
        assert results[0].relevance_score == 10

    @pytest.mark.asyncio
    async def test_serper_backend(self):
        def handler(request):
            assert request.headers["X-API-KEY"] == "serper-key"
            assert json.loads(request.content) == {"q": "wind", "num": 5}
            return httpx.Response(200, json={"organic": [
                {"title": "Wind", "link": "https://example.com/wind", "snippet": "Wind energy", "date": "2024"},
            ]})

        async with mock_client(handler) as client:
            results = await SerperBackend(client, "serper-key").search("wind", 5)

        assert results[0].url == "https://example.com/wind"
        assert results[0].relevance_score == 3

    @pytest.mark.asyncio
    async def test_brave_backend(self):
        def handler(request):
            assert request.headers["X-Subscription-Token"] == "brave-key"
            return httpx.Response(200, json={"web": {"results": [
                {"title": "Hydro", "url": "https://example.com/hydro", "description": "Hydro power"},
            ]}})

        async with mock_client(handler) as client:
            results = await BraveBackend(client, "brave-key").search("hydro", 5)

        assert results[0].snippet == "Hydro power"

    @pytest.mark.asyncio
    async def test_google_backend_caps_num(self):
        def handler(request):
            assert request.url.params["num"] == "10"
            assert request.url.params["cx"] == "cx-id"
            return httpx.Response(200, json={"items": [{"title": "Geo", "link": "https://example.com/geo"}]})

        async with mock_client(handler) as client:
            results = await GoogleBackend(client, "google-key", "cx-id").search("geothermal", 25)

        assert [r.url for r in results] == ["https://example.com/geo"]

    @pytest.mark.asyncio
    async def test_backend_retries_server_errors(self):
        """Test that a 5xx response is retried before succeeding."""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"query": {"search": []}})

        with patch("autoresearch.utils.asyncio.sleep", new=AsyncMock()):
            async with mock_client(handler) as client:
                results = await WikipediaBackend(client).search("anything", 2)

        assert results == []
        assert len(calls) == 2


class TestBackendSelection:

    def test_only_highest_priority_web_engine(self, settings):
        settings.serper_api_key = "s"
        settings.brave_api_key = "b"
        backends = build_backends(settings, client=None)

        assert [b.name for b in backends] == ["serper", "wikipedia", "semantic_scholar"]

    def test_google_requires_cx(self, settings):
        settings.google_search_api_key = "g"
        backends = build_backends(settings, client=None)

        assert [b.kind for b in backends] == ["academic", "academic"]


class TestSearchAggregator:
    """Test fan-out, failure isolation and merging."""

    @pytest.mark.asyncio
    async def test_merges_and_deduplicates_backends(self):
        web = StaticBackend("web", [
            make_result("https://example.com/a"),
            make_result("https://example.com/b"),
            make_result("https://example.com/shared"),
        ])
        academic = StaticBackend("academic", [
            make_result("https://example.com/shared/"),
            make_result("https://example.com/c"),
            make_result("https://example.com/d"),
        ])

        results = await SearchAggregator([web, academic]).search("renewable energy", 10)

        assert len(results) == 5

    @pytest.mark.asyncio
    async def test_failing_backend_is_isolated(self):
        broken = StaticBackend("broken", error=ValueError("bad payload"))
        working = StaticBackend("working", [make_result("https://example.com/a")])

        results = await SearchAggregator([broken, working]).search("q", 10)

        assert [r.url for r in results] == ["https://example.com/a"]

    @pytest.mark.asyncio
    async def test_all_backends_empty_raises(self):
        aggregator = SearchAggregator([StaticBackend("one"), StaticBackend("two", error=ValueError("x"))])

        with pytest.raises(SearchError):
            await aggregator.search("nothing", 10)

    @pytest.mark.asyncio
    async def test_search_many_budget_and_merge(self):
        """Test per-query budget ceil(max_sources * 1.2 / queries) and the final cap."""
        backend = StaticBackend("web", [make_result(f"https://example.com/{i}") for i in range(20)])

        results = await SearchAggregator([backend]).search_many(["q1", "q2", "q3"], 10)

        assert {limit for _, limit in backend.calls} == {4}
        assert len(results) == 4

    @pytest.mark.asyncio
    async def test_search_many_absorbs_failed_queries(self):
        class PickyBackend(StaticBackend):
            async def _fetch(self, query, limit):
                if query == "bad":
                    return []
                return await super()._fetch(query, limit)

        backend = PickyBackend("web", [make_result("https://example.com/ok")])
        results = await SearchAggregator([backend]).search_many(["bad", "good"], 5)

        assert [r.url for r in results] == ["https://example.com/ok"]

    @pytest.mark.asyncio
    async def test_search_many_raises_when_every_query_empty(self):
        with pytest.raises(SearchError):
            await SearchAggregator([StaticBackend("empty")]).search_many(["a", "b"], 5)
