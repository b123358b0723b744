"""Search backends: one web engine plus encyclopedic and scholarly indexes."""

import re
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from .config import Settings
from .models import SearchResult
from .utils import log_structured, retry_with_backoff


class SearchBackend:
    """
    A single search source.

    Subclasses implement ``_fetch`` against their API; ``search`` wraps it
    with retry-with-backoff so transient failures are retried uniformly.
    """

    name = "backend"
    kind = "web"
    base_score = 3.0
    # Academic backends search a fixed number of results regardless of budget
    fixed_limit: Optional[int] = None

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        limit = self.fixed_limit or limit
        results = await retry_with_backoff(
            lambda: self._fetch(query, limit),
            label=f"search:{self.name}"
        )
        log_structured("backend_search_complete", {
            "backend": self.name,
            "query": query,
            "results": len(results)
        })
        return results

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        raise NotImplementedError

    def _result(self, **fields: Any) -> SearchResult:
        return SearchResult(relevance_score=self.base_score, source=self.name, **fields)


class SerperBackend(SearchBackend):
    name = "serper"

    def __init__(self, client: httpx.AsyncClient, api_key: str):
        super().__init__(client)
        self.api_key = api_key

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        response = await self.client.post(
            "https://google.serper.dev/search",
            json={"q": query, "num": limit},
            headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
        )
        response.raise_for_status()

        return [
            self._result(
                title=item.get("title", ""),
                url=item["link"],
                snippet=item.get("snippet", ""),
                publish_date=item.get("date"),
            )
            for item in response.json().get("organic", [])
            if item.get("link")
        ]


class BraveBackend(SearchBackend):
    name = "brave"

    def __init__(self, client: httpx.AsyncClient, api_key: str):
        super().__init__(client)
        self.api_key = api_key

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        response = await self.client.get(
            "https://api.search.brave.com/res/v1/web/search",
            params={"q": query, "count": limit},
            headers={"X-Subscription-Token": self.api_key, "Accept": "application/json"},
        )
        response.raise_for_status()

        return [
            self._result(
                title=item.get("title", ""),
                url=item["url"],
                snippet=item.get("description", ""),
                publish_date=item.get("age"),
            )
            for item in response.json().get("web", {}).get("results", [])
            if item.get("url")
        ]


class GoogleBackend(SearchBackend):
    name = "google"

    def __init__(self, client: httpx.AsyncClient, api_key: str, cx: str):
        super().__init__(client)
        self.api_key = api_key
        self.cx = cx

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        response = await self.client.get(
            "https://www.googleapis.com/customsearch/v1",
            params={
                "key": self.api_key,
                "cx": self.cx,
                "q": query,
                "num": min(limit, 10),  # Google caps at 10 per request
            },
        )
        response.raise_for_status()

        return [
            self._result(
                title=item.get("title", ""),
                url=item["link"],
                snippet=item.get("snippet", ""),
            )
            for item in response.json().get("items", [])
            if item.get("link")
        ]


class WikipediaBackend(SearchBackend):
    name = "wikipedia"
    kind = "academic"
    base_score = 5.0
    fixed_limit = 2

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        response = await self.client.get(
            "https://en.wikipedia.org/w/api.php",
            params={
                "action": "query",
                "list": "search",
                "srsearch": query,
                "format": "json",
                "srlimit": limit,
            },
        )
        response.raise_for_status()

        results = []
        for item in response.json().get("query", {}).get("search", []):
            title = item.get("title", "")
            results.append(self._result(
                title=title,
                url=f"https://en.wikipedia.org/wiki/{quote(title.replace(' ', '_'))}",
                snippet=re.sub(r'<[^>]*>', '', item.get("snippet", "")),
                author="Wikipedia Contributors",
            ))
        return results


class SemanticScholarBackend(SearchBackend):
    name = "semantic_scholar"
    kind = "academic"
    base_score = 10.0
    fixed_limit = 3

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        response = await self.client.get(
            "https://api.semanticscholar.org/graph/v1/paper/search",
            params={
                "query": query,
                "limit": limit,
                "fields": "title,authors,abstract,year,url,venue,publicationDate",
            },
        )
        response.raise_for_status()

        results = []
        for paper in response.json().get("data") or []:
            authors = paper.get("authors") or []
            year = paper.get("year")
            results.append(self._result(
                title=paper.get("title") or "Untitled",
                url=paper.get("url") or f"https://www.semanticscholar.org/paper/{paper.get('paperId')}",
                snippet=paper.get("abstract") or "No abstract available",
                publish_date=paper.get("publicationDate") or (str(year) if year else None),
                author=authors[0].get("name") if authors else "Unknown",
            ))
        return results


def build_backends(settings: Settings, client: httpx.AsyncClient) -> List[SearchBackend]:
    """
    Active backends for the given configuration.

    At most one web engine is used (Serper, then Brave, then Google Custom
    Search); the two academic indexes are always present.
    """
    backends: List[SearchBackend] = []

    if settings.serper_api_key:
        backends.append(SerperBackend(client, settings.serper_api_key))
    elif settings.brave_api_key:
        backends.append(BraveBackend(client, settings.brave_api_key))
    elif settings.google_search_api_key and settings.google_search_cx:
        backends.append(GoogleBackend(client, settings.google_search_api_key, settings.google_search_cx))

    backends.append(WikipediaBackend(client))
    backends.append(SemanticScholarBackend(client))

    log_structured("search_backends_configured", {
        "backends": [b.name for b in backends]
    })
    return backends
