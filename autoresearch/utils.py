"""Utility functions shared by the pipeline stages."""

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar
from urllib.parse import urlparse

import httpx
from dateutil import parser as date_parser

from .config import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("autoresearch")

T = TypeVar("T")

CITATION_MARKER = re.compile(r'\[(\d+(?:\s*,\s*\d+)*)\]')


def log_structured(event: str, data: Dict[str, Any], level: int = logging.INFO):
    """Log structured events as JSON."""

    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        **data
    }

    logger.log(level, json.dumps(log_entry, default=str))


def clean_text(text: str) -> str:
    """Collapse whitespace runs into single spaces."""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate text to maximum length with suffix."""

    if len(text) <= max_length:
        return text

    return text[:max_length - len(suffix)] + suffix


def normalize_url(url: str) -> str:
    """Normalize URL for deduplication: case-insensitive, no trailing slash."""
    return (url or "").strip().lower().rstrip("/")


def extract_domain(url: str) -> str:
    """Extract clean domain from URL."""

    try:
        domain = urlparse(url).netloc.lower()
    except ValueError:
        return ""

    if domain.startswith('www.'):
        domain = domain[4:]
    return domain


def slugify(text: str) -> str:
    """Create a Markdown anchor slug (GitHub style)."""
    slug = re.sub(r'[^\w\s-]', '', text.lower())
    slug = re.sub(r'[\s_-]+', '-', slug)
    return slug.strip('-')


def sanitize_filename(filename: str, max_length: int = 80) -> str:
    """Sanitize a topic for use as a file name stem."""

    stem = re.sub(r'[^a-z0-9]', '_', filename.lower())
    stem = re.sub(r'_+', '_', stem).strip('_')
    return stem[:max_length].rstrip('_') or "report"


def format_date(date: Optional[datetime] = None) -> str:
    """Format a date as YYYY-MM-DD for citation access dates."""
    return (date or datetime.now(timezone.utc)).strftime('%Y-%m-%d')


def extract_year(date_str: Optional[str]) -> Optional[int]:
    """Best-effort publication year from a free-form date string."""

    if not date_str:
        return None

    try:
        return date_parser.parse(date_str, fuzzy=True).year
    except (ValueError, OverflowError):
        year_match = re.search(r'\b(1[89][0-9]{2}|20[0-9]{2})\b', date_str)
        if year_match:
            return int(year_match.group(1))
        return None


def chunk_list(items: Sequence[T], size: int) -> List[List[T]]:
    """Split a sequence into consecutive chunks of ``size``."""
    size = max(1, size)
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def extract_citation_numbers(text: str) -> List[int]:
    """Citation marker numbers in order of appearance, without duplicates."""

    numbers: List[int] = []
    for match in CITATION_MARKER.finditer(text or ""):
        for part in match.group(1).split(","):
            number = int(part.strip())
            if number not in numbers:
                numbers.append(number)
    return numbers


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fence markers around model output."""
    text = re.sub(r'```[a-zA-Z]*\n?', '', text or "")
    return text.replace('```', '').strip()


BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


def create_http_client(timeout: float = 30.0, **kwargs: Any) -> httpx.AsyncClient:
    """Shared client for search and page fetches: browser headers, at most 3 redirects."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers=BROWSER_HEADERS,
        follow_redirects=True,
        max_redirects=3,
        **kwargs
    )


def is_retryable_error(error: BaseException) -> bool:
    """Timeouts, dropped connections and 5xx responses are worth retrying."""

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, (httpx.TransportError, asyncio.TimeoutError, ConnectionError))


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    multiplier: float = 1.5,
    should_retry: Callable[[BaseException], bool] = is_retryable_error,
    label: str = "operation",
) -> T:
    """
    Await ``func`` until it succeeds, retrying retryable failures.

    The delay before attempt ``n + 1`` is ``base_delay * multiplier ** (n - 1)``.
    Non-retryable errors and the last failure are re-raised unchanged.
    """
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as e:
            if attempt >= max_attempts or not should_retry(e):
                raise
            delay = base_delay * (multiplier ** (attempt - 1))
            log_structured("retry_scheduled", {
                "operation": label,
                "attempt": attempt,
                "delay_seconds": round(delay, 3),
                "error": str(e) or type(e).__name__
            }, level=logging.WARNING)
            await asyncio.sleep(delay)
            attempt += 1
