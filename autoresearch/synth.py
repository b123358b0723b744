"""Analysis synthesis over extracted content."""

import asyncio
import logging
from typing import List, Sequence

from .models import ExtractedContent
from .prompts import CONTENT_ANALYSIS
from .utils import log_structured

MAX_ANALYZED_SOURCES = 10
EXCERPT_CHARS = 2000
MIN_ANALYSIS_CHARS = 100


def _prepare_sources_context(contents: Sequence[ExtractedContent]) -> str:
    """Numbered source blocks; numbering matches the citation list."""

    blocks: List[str] = []
    for idx, item in enumerate(contents[:MAX_ANALYZED_SOURCES], 1):
        header = f"Source {idx}: {item.title}\nURL: {item.url}"
        if item.metadata.author:
            header += f"\nAuthor: {item.metadata.author}"
        if item.metadata.publish_date:
            header += f"\nPublished: {item.metadata.publish_date}"
        blocks.append(f"{header}\n{item.content[:EXCERPT_CHARS]}")

    return "\n\n".join(blocks)


def fallback_analysis(topic: str, contents: Sequence[ExtractedContent]) -> str:
    titles = ", ".join(item.title for item in contents[:3])
    return f'Analysis of {len(contents)} sources on "{topic}". Key findings from top sources: {titles}.'


async def analyze_content(
    topic: str,
    contents: Sequence[ExtractedContent],
    llm_client,
    timeout: float = 30.0
) -> str:
    """
    Synthesize a prose analysis of the sources.

    Never raises: timeouts, provider failures and suspiciously short output
    all return a deterministic summary built from the source titles.
    """
    prompt = CONTENT_ANALYSIS.format(topic=topic, sources=_prepare_sources_context(contents))

    try:
        analysis = await asyncio.wait_for(llm_client.complete(prompt, max_tokens=2000), timeout=timeout)
    except Exception as e:
        log_structured("analysis_fallback", {
            "topic": topic,
            "error_type": type(e).__name__,
            "reason": str(e) or type(e).__name__
        }, level=logging.WARNING)
        return fallback_analysis(topic, contents)

    analysis = (analysis or "").strip()
    if len(analysis) <= MIN_ANALYSIS_CHARS:
        log_structured("analysis_fallback", {
            "topic": topic,
            "reason": "short_output",
            "length": len(analysis)
        }, level=logging.WARNING)
        return fallback_analysis(topic, contents)

    log_structured("analysis_complete", {
        "topic": topic,
        "sources": min(len(contents), MAX_ANALYZED_SOURCES),
        "analysis_length": len(analysis)
    })
    return analysis
