"""Report assembly: structured completion with tolerant free-text fallbacks."""

import asyncio
import json
import logging
import re
from typing import Callable, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError

from .config import Settings, get_settings
from .errors import ReportGenerationError
from .models import (
    Citation, ExtractedContent, ReportFields, ResearchReport, ResearchSection, Visualization,
)
from .prompts import REPORT_HEADINGS, REPORT_STRUCTURED, format_citation_list
from .utils import (
    extract_citation_numbers, extract_domain, extract_year, format_date, log_structured,
    strip_code_fences,
)


SUMMARY_CHARS = 500

STRUCTURED_SECTIONS = [
    ("Introduction", "introduction"),
    ("Literature Review", "literature_review"),
    ("Methodology", "methodology"),
    ("Findings and Results", "findings"),
    ("Discussion and Analysis", "discussion"),
    ("Conclusion", "conclusion"),
    ("Recommendations", "recommendations"),
]

MAIN_HEADING = re.compile(r'^##(?!#)\s*(?:\d+\.?\s*)?(.+)$')
NUMBERED_CAPS_HEADING = re.compile(r'^\d+\.\s+([A-Z][A-Z\s&,\-]*)$')
SUB_HEADING = re.compile(r'^#{3,}\s*(.+)$')
# "A. Title": capitalized, no sentence punctuation, at most 81 chars of title
LETTERED_HEADING = re.compile(r'^[A-Z]\.\s+([A-Z][^.!?]{0,80})$')
DOCUMENT_TITLE = re.compile(r'^#\s+')
ABSTRACT_TITLES = {"abstract", "executive summary"}
SMALL_WORDS = {"a", "an", "and", "as", "at", "by", "for", "in", "of", "on", "or", "the", "to", "vs"}


def build_citations(contents: Sequence[ExtractedContent], access_date: Optional[str] = None) -> List[Citation]:
    """One citation per content item, numbered from 1 in content order."""

    access_date = access_date or format_date()
    return [
        Citation(
            id=f"cit-{idx}",
            title=item.title,
            url=item.url,
            author=item.metadata.author,
            publish_date=item.metadata.publish_date,
            access_date=access_date,
        )
        for idx, item in enumerate(contents, 1)
    ]


def citation_ids(text: str, citations: Sequence[Citation]) -> List[str]:
    """Map ``[n]`` markers to citation ids; out-of-range numbers become orphan ids."""

    ids = []
    for number in extract_citation_numbers(text):
        if 1 <= number <= len(citations):
            ids.append(citations[number - 1].id)
        else:
            ids.append(f"cit-{number}")
    return ids


def _clean_heading(title: str) -> str:
    title = title.replace("**", "").strip().rstrip(":").strip()
    if title.isupper():
        words = title.lower().split()
        title = " ".join(
            word if (idx and word in SMALL_WORDS) else word.capitalize()
            for idx, word in enumerate(words)
        )
    return title


def _summary_from(*candidates: str) -> str:
    for candidate in candidates:
        candidate = (candidate or "").strip()
        if candidate:
            return candidate[:SUMMARY_CHARS]
    return ""


class StructuredReport(BaseModel):
    kind: Literal["structured"] = "structured"
    report_fields: ReportFields

    def to_report(self, topic: str, citations: Sequence[Citation]) -> ResearchReport:
        sections = []
        for title, field_name in STRUCTURED_SECTIONS:
            content = getattr(self.report_fields, field_name)
            if not content:
                continue
            sections.append(ResearchSection(
                title=title,
                content=content,
                citations=citation_ids(content, citations)
            ))

        return ResearchReport(
            topic=topic,
            title=self.report_fields.title or None,
            sections=sections,
            citations=list(citations),
            summary=_summary_from(self.report_fields.abstract, *(s.content for s in sections)),
        )


class HeadingParsedReport(BaseModel):
    kind: Literal["headings"] = "headings"
    abstract: str = ""
    sections: List[ResearchSection]
    source_text: str = ""

    def to_report(self, topic: str, citations: Sequence[Citation]) -> ResearchReport:
        return ResearchReport(
            topic=topic,
            sections=self.sections,
            citations=list(citations),
            summary=_summary_from(self.abstract, *(s.content for s in self.sections), self.source_text),
        )


class SingleBlobReport(BaseModel):
    kind: Literal["blob"] = "blob"
    text: str

    def to_report(self, topic: str, citations: Sequence[Citation]) -> ResearchReport:
        section = ResearchSection(
            title="Overview",
            content=self.text,
            citations=citation_ids(self.text, citations)
        )
        return ResearchReport(
            topic=topic,
            sections=[section],
            citations=list(citations),
            summary=_summary_from(self.text),
        )


ParsedReport = Union[StructuredReport, HeadingParsedReport, SingleBlobReport]
ReportParser = Callable[[str], Optional[ParsedReport]]


def parse_structured(text: str) -> Optional[StructuredReport]:
    """Parse a JSON report object; ``None`` if invalid or every body field is empty."""

    cleaned = strip_code_fences(text)
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        return None

    try:
        data = json.loads(cleaned[start:end + 1])
        if not isinstance(data, dict):
            return None
        fields = ReportFields.model_validate(data)
    except (ValueError, ValidationError):
        return None

    if not any(fields.body_fields()):
        return None
    return StructuredReport(report_fields=fields)


def parse_heading_sections(text: str) -> Optional[HeadingParsedReport]:
    """
    Line-by-line parse of a heading-delimited report.

    ``## N. TITLE`` and numbered all-caps lines open sections, ``### Title``
    and ``A. Title`` open subsections. Text before the first heading, and
    under an Abstract heading, becomes the abstract.
    """
    sections: List[ResearchSection] = []
    abstract_lines: List[str] = []
    section: Optional[ResearchSection] = None
    subsection: Optional[ResearchSection] = None
    in_abstract = False

    def add_citations(target: ResearchSection, line: str) -> None:
        for citation_id in citation_ids(line, []):
            if citation_id not in target.citations:
                target.citations.append(citation_id)

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue

        # Models often wrap headings in bold
        bare = line.replace("**", "").strip()
        main_match = MAIN_HEADING.match(bare) or NUMBERED_CAPS_HEADING.match(bare)
        sub_match = None if main_match else (SUB_HEADING.match(bare) or LETTERED_HEADING.match(bare))

        if main_match or (sub_match and section is None):
            title = _clean_heading((main_match or sub_match).group(1))
            if title.lower() in ABSTRACT_TITLES:
                in_abstract = True
                section = subsection = None
                continue
            in_abstract = False
            section = ResearchSection(title=title)
            subsection = None
            sections.append(section)
            continue

        if sub_match:
            in_abstract = False
            subsection = ResearchSection(title=_clean_heading(sub_match.group(1)))
            section.subsections.append(subsection)
            continue

        if section is None:
            if not DOCUMENT_TITLE.match(line) or in_abstract:
                abstract_lines.append(line)
            continue

        target = subsection or section
        target.content = f"{target.content}\n{line}" if target.content else line
        add_citations(target, line)

    if not sections:
        return None

    return HeadingParsedReport(
        abstract="\n".join(abstract_lines),
        sections=sections,
        source_text=text
    )


def parse_single_blob(text: str) -> Optional[SingleBlobReport]:
    text = (text or "").strip()
    if not text:
        return None
    return SingleBlobReport(text=text)


FREE_TEXT_PARSERS: Sequence[ReportParser] = (parse_heading_sections, parse_single_blob)
DEFAULT_PARSERS: Sequence[ReportParser] = (parse_structured,) + tuple(FREE_TEXT_PARSERS)


def parse_report_response(text: str, parsers: Sequence[ReportParser] = DEFAULT_PARSERS) -> Optional[ParsedReport]:
    """Return the first successful parse in ``parsers`` order."""
    for parser in parsers:
        parsed = parser(text)
        if parsed is not None:
            return parsed
    return None


def source_overview(citations: Sequence[Citation]) -> Visualization:
    """Tabular overview of the cited sources."""

    rows = []
    for idx, citation in enumerate(citations, 1):
        year = extract_year(citation.publish_date)
        rows.append([
            str(idx),
            citation.title,
            citation.author or "Unknown",
            str(year) if year else "n.d.",
            extract_domain(citation.url),
        ])

    return Visualization(
        type="table",
        title="Source Overview",
        data={"headers": ["#", "Title", "Author", "Year", "Domain"], "rows": rows},
        description=f"{len(citations)} sources consulted for this report.",
    )


class ReportAssembler:
    """Builds a ResearchReport from the analysis, degrading through fallbacks."""

    def __init__(self, llm_client, settings: Optional[Settings] = None):
        self.llm_client = llm_client
        self.settings = settings or get_settings()

    async def _complete(self, prompt: str, stage: str) -> Optional[str]:
        try:
            return await asyncio.wait_for(
                self.llm_client.complete(prompt, max_tokens=4000),
                timeout=self.settings.report_timeout
            )
        except Exception as e:
            log_structured("report_completion_failed", {
                "stage": stage,
                "error_type": type(e).__name__,
                "error": str(e) or type(e).__name__
            }, level=logging.WARNING)
            return None

    async def assemble(
        self,
        topic: str,
        analysis: str,
        citations: Sequence[Citation],
        include_visualization: bool = False
    ) -> ResearchReport:
        citation_text = format_citation_list(citations)
        strategy = "structured"

        response = await self._complete(
            REPORT_STRUCTURED.format(topic=topic, analysis=analysis, citations=citation_text),
            "structured"
        )
        parsed = parse_structured(response) if response else None

        if parsed is None:
            strategy = "free_text"
            log_structured("report_structured_fallback", {"topic": topic}, level=logging.WARNING)
            response = await self._complete(
                REPORT_HEADINGS.format(topic=topic, analysis=analysis, citations=citation_text),
                "free_text"
            )
            parsed = parse_report_response(response, FREE_TEXT_PARSERS) if response else None

        if parsed is None:
            strategy = "analysis"
            parsed = parse_single_blob(analysis)

        if parsed is None:
            raise ReportGenerationError(f"No report text could be generated for {topic!r}")

        report = parsed.to_report(topic, citations)
        if include_visualization and citations:
            report.visualizations.append(source_overview(citations))

        log_structured("report_assembled", {
            "topic": topic,
            "strategy": strategy,
            "variant": parsed.kind,
            "sections": len(report.sections),
            "citations": len(report.citations)
        })
        return report
