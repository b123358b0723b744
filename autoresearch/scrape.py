"""Web page fetching and main-content extraction."""

import asyncio
import logging
from typing import List, Optional, Sequence

import httpx
from bs4 import BeautifulSoup

from .config import Settings, get_settings
from .errors import ExtractionError
from .models import ExtractedContent, ExtractedMetadata
from .utils import BROWSER_HEADERS, chunk_list, clean_text, log_structured, retry_with_backoff


REMOVED_ELEMENTS = ["script", "style", "nav", "footer", "header", "aside", "iframe", "noscript"]
AD_SELECTORS = ["ads", ".ads", ".ad", ".advertisement", "[id^=ad-]", "[class*=sponsored]"]
CONTENT_SELECTORS = [
    "article",
    '[role="main"]',
    "main",
    ".content",
    ".article-content",
    ".post-content",
    "#content",
]
DATE_META = [
    {"property": "article:published_time"},
    {"name": "date"},
    {"name": "publishDate"},
]
SUBSTANTIAL_CONTENT_CHARS = 500


def _meta_content(soup: BeautifulSoup, attrs: dict) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def parse_html(html: str, url: str, max_length: int = 50000) -> ExtractedContent:
    """
    Extract title, metadata and main text from an HTML document.

    Metadata is read before boilerplate removal so titles inside page
    headers survive.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = ""
    h1 = soup.find("h1")
    if h1:
        title = clean_text(h1.get_text(" "))
    if not title and soup.title:
        title = clean_text(soup.title.get_text(" "))
    title = title or "Untitled"

    author = _meta_content(soup, {"name": "author"})
    if not author:
        author_el = soup.select_one(".author")
        if author_el:
            author = clean_text(author_el.get_text(" ")) or None

    publish_date = None
    for attrs in DATE_META:
        publish_date = _meta_content(soup, attrs)
        if publish_date:
            break
    if not publish_date:
        time_el = soup.find("time", attrs={"datetime": True})
        if time_el:
            publish_date = time_el["datetime"].strip() or None

    for element in soup(REMOVED_ELEMENTS):
        element.decompose()
    for selector in AD_SELECTORS:
        for element in soup.select(selector):
            element.decompose()

    content = ""
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = clean_text(element.get_text(" "))
        if len(text) > SUBSTANTIAL_CONTENT_CHARS:
            content = text
            break

    if not content:
        body = soup.body or soup
        content = clean_text(body.get_text(" "))

    content = content[:max_length]

    return ExtractedContent(
        url=url,
        title=title,
        content=content,
        metadata=ExtractedMetadata(
            author=author,
            publish_date=publish_date,
            word_count=len(content.split())
        )
    )


def placeholder(url: str) -> ExtractedContent:
    """Zero-word stand-in for a page that could not be extracted."""
    return ExtractedContent(url=url, title=url, content="", metadata=ExtractedMetadata(word_count=0))


class ContentExtractor:
    """Fetches pages and extracts their main text; never raises per URL."""

    def __init__(self, client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self.client = client
        self.settings = settings or get_settings()

    async def _fetch(self, url: str, timeout: float) -> str:
        response = await self.client.get(url, timeout=timeout, headers=BROWSER_HEADERS)
        response.raise_for_status()

        content_type = response.headers.get("content-type", "").lower()
        if content_type and "html" not in content_type:
            raise ExtractionError(f"Unsupported content type: {content_type}")

        return response.text

    async def extract(self, url: str, timeout: Optional[float] = None) -> ExtractedContent:
        timeout = timeout or self.settings.extraction_timeout

        try:
            html = await retry_with_backoff(
                lambda: self._fetch(url, timeout),
                max_attempts=2,
                label=f"extract:{url}"
            )
            extracted = parse_html(html, url, self.settings.max_content_length)
        except (httpx.HTTPError, ExtractionError, asyncio.TimeoutError) as e:
            log_structured("extraction_failed", {
                "url": url,
                "error": str(e) or type(e).__name__
            }, level=logging.WARNING)
            return placeholder(url)

        log_structured("extraction_complete", {
            "url": url,
            "word_count": extracted.metadata.word_count
        })
        return extracted

    async def extract_many(self, urls: Sequence[str], concurrency: Optional[int] = None) -> List[ExtractedContent]:
        """
        Extract URLs in windows of ``concurrency`` simultaneous requests.

        Input order is preserved; placeholders and short pages are dropped.
        """
        concurrency = concurrency or self.settings.max_concurrent_requests
        min_length = self.settings.min_content_length
        results: List[ExtractedContent] = []

        for window in chunk_list(list(urls), concurrency):
            extracted = await asyncio.gather(*(self.extract(url) for url in window))
            results.extend(
                item for item in extracted
                if item.metadata.word_count > 0 and len(item.content) >= min_length
            )

        log_structured("extract_many_complete", {
            "attempted": len(urls),
            "successful": len(results)
        })
        return results
