"""Query planning and multi-source search aggregation."""

import asyncio
import json
import logging
import math
from typing import Iterable, List, Sequence

from .backends import SearchBackend
from .errors import SearchError
from .models import ResearchDepth, SearchResult
from .prompts import QUERY_GENERATION
from .utils import log_structured, normalize_url, strip_code_fences


QUERY_SUFFIXES = {
    ResearchDepth.BASIC: ["overview", "introduction", "academic research"],
    ResearchDepth.INTERMEDIATE: [
        "overview", "key concepts", "research papers", "recent developments", "scholarly articles",
    ],
    ResearchDepth.COMPREHENSIVE: [
        "comprehensive guide", "research papers", "peer-reviewed studies", "case studies",
        "latest trends", "expert analysis", "statistics and data", "literature review", "methodology",
    ],
}

SCHOLARLY_DOMAINS = (
    "arxiv.org", "semanticscholar.org", "doi.org", "crossref.org",
    "pubmed.ncbi.nlm.nih.gov", "ncbi.nlm.nih.gov", "jstor.org",
)
PEER_REVIEW_TERMS = ("peer-reviewed", "peer review", "journal")


def template_queries(topic: str, depth: ResearchDepth = ResearchDepth.INTERMEDIATE) -> List[str]:
    """Deterministic queries: the topic followed by fixed per-depth suffixes."""
    base = topic.strip()
    return [base] + [f"{base} {suffix}" for suffix in QUERY_SUFFIXES[ResearchDepth(depth)]]


def _normalize_queries(candidates: Iterable, topic: str, count: int, depth: ResearchDepth) -> List[str]:
    """
    Strip, deduplicate (case-insensitive), guarantee the topic is present,
    pad from templates and truncate to ``count``.
    """
    topic = topic.strip()
    queries: List[str] = []
    seen = set()

    def add(query) -> None:
        if not isinstance(query, str):
            return
        query = query.strip()
        if query and query.lower() not in seen:
            seen.add(query.lower())
            queries.append(query)

    for candidate in candidates:
        add(candidate)

    if topic.lower() not in seen:
        seen.add(topic.lower())
        queries.insert(0, topic)

    for query in template_queries(topic, depth):
        if len(queries) >= count:
            break
        add(query)

    return queries[:count]


async def generate_queries(
    topic: str,
    depth: ResearchDepth,
    llm_client,
    timeout: float = 15.0
) -> List[str]:
    """
    Turn a topic into ``depth.query_count`` distinct search queries.

    Asks the model for a JSON array first; any failure (timeout, provider
    error, malformed or empty output) falls back to template queries.
    """
    depth = ResearchDepth(depth)
    count = depth.query_count
    candidates: List[str] = []
    strategy = "llm"

    try:
        prompt = QUERY_GENERATION.format(count=count, topic=topic, depth=depth.value)
        response = await asyncio.wait_for(llm_client.complete(prompt, max_tokens=400), timeout=timeout)
        parsed = json.loads(strip_code_fences(response))
        if not isinstance(parsed, list) or not parsed:
            raise ValueError("expected a non-empty JSON array")
        candidates = parsed
    except Exception as e:
        strategy = "template"
        log_structured("query_generation_fallback", {
            "topic": topic,
            "error_type": type(e).__name__,
            "error": str(e) or type(e).__name__
        }, level=logging.WARNING)
        candidates = template_queries(topic, depth)

    queries = _normalize_queries(candidates, topic, count, depth)

    log_structured("query_generation", {
        "topic": topic,
        "depth": depth.value,
        "strategy": strategy,
        "queries": queries
    })
    return queries


def score_result(result: SearchResult) -> float:
    """Backend base score plus source-type boosts."""

    url = result.url.lower()
    snippet = (result.snippet or "").lower()
    score = result.relevance_score or 0.0

    if any(domain in url for domain in SCHOLARLY_DOMAINS):
        score += 10
    if "wikipedia.org" in url:
        score += 5
    if ".edu" in url:
        score += 7
    if ".gov" in url:
        score += 6
    if any(term in snippet for term in PEER_REVIEW_TERMS):
        score += 5

    return score


def rank_and_deduplicate(
    results: Sequence[SearchResult],
    budget: int,
    rescore: bool = True
) -> List[SearchResult]:
    """
    Score, sort by score descending and drop duplicate URLs.

    Returns scored copies; the first (highest scoring) occurrence of each
    normalized URL wins. Pass ``rescore=False`` for results that were
    already boosted.
    """
    if rescore:
        scored = [r.model_copy(update={"relevance_score": score_result(r)}) for r in results]
    else:
        scored = list(results)
    scored.sort(key=lambda r: r.relevance_score, reverse=True)

    unique: List[SearchResult] = []
    seen_urls = set()
    for result in scored:
        key = normalize_url(result.url)
        if not key or key in seen_urls:
            continue
        seen_urls.add(key)
        unique.append(result)

    return unique[:max(0, budget)]


class SearchAggregator:
    """Runs one query against every backend concurrently and merges the results."""

    def __init__(self, backends: Sequence[SearchBackend]):
        self.backends = list(backends)

    async def search(self, query: str, result_budget: int = 10) -> List[SearchResult]:
        outcomes = await asyncio.gather(
            *(backend.search(query, result_budget) for backend in self.backends),
            return_exceptions=True
        )

        merged: List[SearchResult] = []
        for backend, outcome in zip(self.backends, outcomes):
            if isinstance(outcome, BaseException):
                log_structured("backend_search_failed", {
                    "backend": backend.name,
                    "query": query,
                    "error": str(outcome) or type(outcome).__name__
                }, level=logging.WARNING)
                continue
            merged.extend(outcome)

        if not merged:
            raise SearchError(f"No search results from any source for {query!r}")

        ranked = rank_and_deduplicate(merged, result_budget)

        log_structured("search_complete", {
            "query": query,
            "total_results": len(merged),
            "returning": len(ranked)
        })
        return ranked

    async def search_many(self, queries: Sequence[str], max_sources: int) -> List[SearchResult]:
        """Search every query concurrently and merge to at most ``max_sources`` results."""

        if not queries:
            raise SearchError("No queries to search")

        per_query = math.ceil(max_sources * 1.2 / len(queries))
        outcomes = await asyncio.gather(
            *(self.search(query, per_query) for query in queries),
            return_exceptions=True
        )

        merged: List[SearchResult] = []
        for query, outcome in zip(queries, outcomes):
            if isinstance(outcome, BaseException):
                log_structured("query_search_failed", {
                    "query": query,
                    "error": str(outcome)
                }, level=logging.WARNING)
                continue
            merged.extend(outcome)

        if not merged:
            raise SearchError("No search results from any source")

        unique = rank_and_deduplicate(merged, max_sources, rescore=False)

        log_structured("search_many_complete", {
            "queries_count": len(queries),
            "results_per_query": per_query,
            "total_results": len(merged),
            "unique_results": len(unique)
        })
        return unique
