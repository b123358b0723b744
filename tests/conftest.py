"""Shared test fixtures."""

from typing import List, Optional

import pytest

from autoresearch.backends import SearchBackend
from autoresearch.config import Settings
from autoresearch.errors import ProviderError
from autoresearch.models import ExtractedContent, ExtractedMetadata, SearchResult


class ScriptedLLM:
    """LLM stand-in returning scripted completions in order."""

    name = "scripted"
    model = "scripted-model"

    def __init__(self, responses):
        self.responses = list(responses)
        self.prompts: List[str] = []

    async def complete(self, prompt: str, max_tokens: int = 800, temperature: float = 0.7) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise ProviderError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


class StaticBackend(SearchBackend):
    """Backend returning fixed results (or raising) for every query."""

    def __init__(self, name: str, results: Optional[List[SearchResult]] = None, error: Optional[Exception] = None):
        super().__init__(client=None)
        self.name = name
        self.results = results or []
        self.error = error
        self.calls = []

    async def _fetch(self, query: str, limit: int) -> List[SearchResult]:
        self.calls.append((query, limit))
        if self.error:
            raise self.error
        return [r.model_copy() for r in self.results[:limit]]


def make_result(url: str, title: str = "Result", snippet: str = "", score: float = 3.0, source: str = "web"):
    return SearchResult(title=title, url=url, snippet=snippet, relevance_score=score, source=source)


def make_content(idx: int, words: int = 120, author: Optional[str] = None, publish_date: Optional[str] = None):
    text = " ".join(f"word{n}" for n in range(words))
    return ExtractedContent(
        url=f"https://example.org/article-{idx}",
        title=f"Article {idx}",
        content=text,
        metadata=ExtractedMetadata(author=author, publish_date=publish_date, word_count=words),
    )


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and writing to a temp dir."""
    return Settings(
        _env_file=None,
        openai_api_key=None,
        anthropic_api_key=None,
        gemini_api_key=None,
        mistral_api_key=None,
        vllm_base_url=None,
        serper_api_key=None,
        brave_api_key=None,
        google_search_api_key=None,
        google_search_cx=None,
        google_client_id=None,
        google_client_secret=None,
        output_dir=str(tmp_path / "outputs"),
        report_formats="markdown",
    )
