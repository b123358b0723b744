"""Research pipeline orchestration."""

import asyncio
import inspect
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Union

import httpx
from pydantic import BaseModel, Field

from .backends import SearchBackend, build_backends
from .config import Settings, get_settings
from .errors import ResearchTimeoutError
from .llm_client import LLMClient, get_llm_client
from .models import (
    Citation, ExtractedContent, ResearchReport, ResearchTopic, SearchResult,
)
from .render import ReportRenderer
from .report import ReportAssembler, build_citations
from .scrape import ContentExtractor
from .search import SearchAggregator, generate_queries
from .synth import analyze_content
from .utils import create_http_client, log_structured


ProgressCallback = Callable[[str, str], Union[None, Awaitable[None]]]


class PipelineStage(str, Enum):
    INIT = "init"
    QUERY_GENERATION = "query_generation"
    SEARCH = "search"
    EXTRACTION = "extraction"
    ANALYSIS = "analysis"
    ASSEMBLY = "assembly"
    RENDERING = "rendering"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineRun(BaseModel):
    """State of a single research run."""

    topic: ResearchTopic
    stage: PipelineStage = PipelineStage.INIT
    queries: List[str] = Field(default_factory=list)
    results: List[SearchResult] = Field(default_factory=list)
    contents: List[ExtractedContent] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
    analysis: str = ""
    report: Optional[ResearchReport] = None
    files: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    started_at: float = Field(default_factory=time.time)


class ResearchEngine:
    """
    Sequences planning, search, extraction, analysis, assembly and rendering.

    The engine keeps no per-run state, so one instance can serve concurrent
    runs. Each run opens its own HTTP client unless one is injected.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_client: Optional[LLMClient] = None,
        backends: Optional[Sequence[SearchBackend]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        renderer: Optional[ReportRenderer] = None
    ):
        self.settings = settings or get_settings()
        self.llm_client = llm_client
        self.backends = list(backends) if backends is not None else None
        self.http_client = http_client
        self.renderer = renderer or ReportRenderer(settings=self.settings)

    async def _notify(
        self,
        run: PipelineRun,
        stage: PipelineStage,
        detail: str,
        progress_callback: Optional[ProgressCallback]
    ) -> None:
        run.stage = stage
        log_structured("pipeline_stage", {
            "topic": run.topic.topic,
            "stage": stage.value,
            "detail": detail
        })

        if progress_callback is None:
            return
        try:
            outcome = progress_callback(stage.value, detail)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            log_structured("progress_callback_failed", {
                "stage": stage.value,
                "error": str(e)
            }, level=logging.WARNING)

    async def run(
        self,
        topic: Union[ResearchTopic, str],
        progress_callback: Optional[ProgressCallback] = None
    ) -> PipelineRun:
        """Execute the pipeline and return the full run state."""

        if isinstance(topic, str):
            topic = ResearchTopic(topic=topic)

        run = PipelineRun(topic=topic)
        settings = self.settings
        # Depth sets the default budget; MAX_SEARCH_RESULTS caps any request
        max_sources = min(topic.max_sources or topic.depth.source_budget, settings.max_search_results)
        formats = sorted(f.value for f in topic.output_formats) if topic.output_formats else None

        owns_client = self.http_client is None
        client = self.http_client or create_http_client(settings.request_timeout)

        try:
            await self._notify(run, PipelineStage.INIT, f'Starting research on "{topic.topic}"', progress_callback)
            llm_client = self.llm_client or get_llm_client(settings)

            await self._notify(run, PipelineStage.QUERY_GENERATION, "Generating search queries", progress_callback)
            run.queries = await generate_queries(topic.topic, topic.depth, llm_client, settings.query_timeout)

            await self._notify(
                run, PipelineStage.SEARCH, f"Searching {len(run.queries)} queries", progress_callback
            )
            backends = self.backends if self.backends is not None else build_backends(settings, client)
            run.results = await SearchAggregator(backends).search_many(run.queries, max_sources)

            await self._notify(
                run, PipelineStage.EXTRACTION, f"Extracting content from {len(run.results)} sources", progress_callback
            )
            extractor = ContentExtractor(client, settings)
            extracted = await extractor.extract_many([r.url for r in run.results], settings.max_concurrent_requests)
            run.contents = [c for c in extracted if c.metadata.word_count >= settings.min_word_count]
            if not run.contents:
                log_structured("extraction_empty", {
                    "topic": topic.topic,
                    "attempted": len(run.results)
                }, level=logging.WARNING)

            # Citation numbering is fixed here, before any prompt refers to it
            run.citations = build_citations(run.contents)

            await self._notify(
                run, PipelineStage.ANALYSIS, f"Analyzing {len(run.contents)} sources", progress_callback
            )
            run.analysis = await analyze_content(topic.topic, run.contents, llm_client, settings.analysis_timeout)

            await self._notify(run, PipelineStage.ASSEMBLY, "Generating report", progress_callback)
            run.report = await ReportAssembler(llm_client, settings).assemble(
                topic.topic, run.analysis, run.citations, topic.include_visualization
            )

            await self._notify(run, PipelineStage.RENDERING, "Rendering output files", progress_callback)
            run.files = await asyncio.to_thread(self.renderer.render, run.report, formats)

            await self._notify(
                run, PipelineStage.COMPLETE, f"Generated {len(run.files)} files", progress_callback
            )

        except Exception as e:
            run.error = str(e)
            log_structured("pipeline_failed", {
                "topic": topic.topic,
                "stage": run.stage.value,
                "error_type": type(e).__name__,
                "error": str(e)
            }, level=logging.ERROR)
            await self._notify(run, PipelineStage.ERROR, str(e), progress_callback)
            raise
        finally:
            if owns_client:
                await client.aclose()

        log_structured("pipeline_complete", {
            "topic": topic.topic,
            "queries": len(run.queries),
            "results": len(run.results),
            "contents": len(run.contents),
            "files": run.files,
            "elapsed_seconds": round(time.time() - run.started_at, 2)
        })
        return run

    async def research(
        self,
        topic: Union[ResearchTopic, str],
        progress_callback: Optional[ProgressCallback] = None
    ) -> List[str]:
        """Run the pipeline and return the generated file paths."""
        run = await self.run(topic, progress_callback)
        return run.files

    async def research_with_timeout(
        self,
        topic: Union[ResearchTopic, str],
        timeout: Optional[float] = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> List[str]:
        """Race the pipeline against the overall deadline."""

        timeout = timeout or self.settings.pipeline_timeout
        try:
            return await asyncio.wait_for(self.research(topic, progress_callback), timeout=timeout)
        except asyncio.TimeoutError:
            log_structured("pipeline_timeout", {
                "topic": topic if isinstance(topic, str) else topic.topic,
                "timeout_seconds": timeout
            }, level=logging.ERROR)
            raise ResearchTimeoutError(f"Research timed out after {timeout:.0f} seconds") from None
