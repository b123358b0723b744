"""Markdown and PDF rendering of research reports."""

import html
import io
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import fitz  # PyMuPDF

from .config import Settings, get_settings
from .errors import RenderError
from .models import Citation, OutputFormat, ResearchReport, ResearchSection, Visualization
from .utils import extract_year, log_structured, sanitize_filename, slugify


PDF_CSS = """
* {font-family: sans-serif;}
body {font-size: 11px; line-height: 1.4;}
h1 {font-size: 24px; text-align: center; margin-top: 120px;}
h2 {font-size: 16px; margin-top: 14px;}
h3 {font-size: 13px; margin-top: 10px;}
p {text-align: justify; margin-bottom: 6px;}
.center {text-align: center;}
.refs {font-size: 10px; margin-left: 20px;}
"""
PAGE_MARGIN = 50


def format_citation(citation: Citation) -> str:
    """``Author (Year). Title. Retrieved from URL. Accessed: date.``"""

    year = extract_year(citation.publish_date)
    prefix = ""
    if citation.author:
        prefix = f"{citation.author} ({year}). " if year else f"{citation.author}. "
    elif year:
        prefix = f"({year}). "

    return f"{prefix}{citation.title}. Retrieved from {citation.url}. Accessed: {citation.access_date}."


def reference_numbers(citation_ids: Iterable[str], citations: Sequence[Citation]) -> List[str]:
    """1-based positions of ``citation_ids`` in ``citations``; ``?`` when unresolved."""

    positions = {citation.id: str(idx) for idx, citation in enumerate(citations, 1)}
    return [positions.get(citation_id, "?") for citation_id in citation_ids]


def demote_headings(text: str) -> str:
    """Push Markdown headings inside model text below the report's own levels."""
    return re.sub(r'^[ \t]*#{1,6}[ \t]+', '#### ', text or "", flags=re.MULTILINE)


def strip_markdown(text: str) -> str:
    """Reduce Markdown to plain text for the PDF renderer."""

    if not text:
        return ""

    cleaned = text

    # Code fences and inline code
    cleaned = re.sub(r'```[a-zA-Z]*\n?', '', cleaned)
    cleaned = re.sub(r'`([^`]+)`', r'\1', cleaned)

    # Headers
    cleaned = re.sub(r'^[ \t]*#{1,6}[ \t]+', '', cleaned, flags=re.MULTILINE)

    # Bold
    cleaned = re.sub(r'\*\*(.+?)\*\*', r'\1', cleaned)
    cleaned = re.sub(r'__(.+?)__', r'\1', cleaned)

    # Reference italics keep their brackets
    cleaned = re.sub(r'\*\[References:([^\]]+)\]\*', r'[References:\1]', cleaned)

    # Horizontal rules before list markers so "***" and "---" are not bullets
    cleaned = re.sub(r'^[ \t]*[-*_]{3,}[ \t]*$', '', cleaned, flags=re.MULTILINE)

    # List markers and blockquotes
    cleaned = re.sub(r'^[ \t]*[-*+][ \t]+', '• ', cleaned, flags=re.MULTILINE)
    cleaned = re.sub(r'^[ \t]*\d+\.[ \t]+', '', cleaned, flags=re.MULTILINE)
    cleaned = re.sub(r'^[ \t]*>[ \t]?', '', cleaned, flags=re.MULTILINE)

    # Italics; underscores only at word boundaries so snake_case survives
    cleaned = re.sub(r'\*([^*\n]+)\*', r'\1', cleaned)
    cleaned = re.sub(r'(?<!\w)_([^_\n]+)_(?!\w)', r'\1', cleaned)

    # Links keep their text
    cleaned = re.sub(r'\[([^\]]+)\]\((?:https?|mailto):[^)]+\)', r'\1', cleaned)

    cleaned = re.sub(r'[ \t]{2,}', ' ', cleaned)
    cleaned = re.sub(r'\n{3,}', '\n\n', cleaned)

    return cleaned.strip()


def _markdown_table(visualization: Visualization) -> str:
    data = visualization.data or {}
    headers = data.get("headers") if isinstance(data, dict) else None
    rows = data.get("rows") if isinstance(data, dict) else None
    if not headers or not rows:
        return "*No data available*\n\n"

    def cell(value) -> str:
        return str(value if value is not None else "").replace("|", "\\|")

    lines = ["| " + " | ".join(cell(h) for h in headers) + " |"]
    lines.append("| " + " | ".join("---" for _ in headers) + " |")
    for row in rows:
        lines.append("| " + " | ".join(cell(value) for value in row) + " |")
    return "\n".join(lines) + "\n\n"


def _html_paragraphs(text: str, css_class: Optional[str] = None) -> str:
    attr = f' class="{css_class}"' if css_class else ""
    paragraphs = [p.strip() for p in re.split(r'\n\s*\n', strip_markdown(text)) if p.strip()]
    return "".join(
        f"<p{attr}>{html.escape(p).replace(chr(10), '<br/>')}</p>" for p in paragraphs
    )


class ReportRenderer:
    """Writes reports to ``output_dir`` in the requested formats."""

    def __init__(self, output_dir: Optional[Union[str, Path]] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.output_dir = Path(output_dir or self.settings.output_dir)

    # Markdown

    def _metadata_block(self, report: ResearchReport) -> List[str]:
        return [
            "**Research Report**",
            "",
            f"**Generated:** {report.generated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            "",
            f"**Number of Sources:** {len(report.citations)}",
            "",
        ]

    def _render_section(self, section: ResearchSection, number: int, citations: Sequence[Citation]) -> List[str]:
        lines = [f"## {number}. {section.title}", "", demote_headings(section.content).strip(), ""]
        if section.citations:
            lines += [f"*[References: {', '.join(reference_numbers(section.citations, citations))}]*", ""]

        for idx, subsection in enumerate(section.subsections):
            letter = chr(ord("a") + idx)
            lines += [f"### {letter}. {subsection.title}", "", demote_headings(subsection.content).strip(), ""]
            if subsection.citations:
                refs = ", ".join(reference_numbers(subsection.citations, citations))
                lines += [f"*[References: {refs}]*", ""]

        return lines

    def render_markdown(self, report: ResearchReport) -> str:
        lines = [f"# {report.topic}", ""]
        if report.title and report.title.strip().lower() != report.topic.strip().lower():
            lines += [f"*{report.title.strip()}*", ""]

        lines += ["---", ""]
        lines += self._metadata_block(report)
        lines += ["---", "", "## Abstract", "", demote_headings(report.summary).strip(), "", "---", ""]

        lines += ["**Table of Contents**", ""]
        for idx, section in enumerate(report.sections, 1):
            lines.append(f"{idx}. [{section.title}](#{slugify(f'{idx}. {section.title}')})")
            for sub_idx, subsection in enumerate(section.subsections):
                letter = chr(ord("a") + sub_idx)
                lines.append(f"   {letter}. [{subsection.title}](#{slugify(f'{letter}. {subsection.title}')})")
        lines += [f"{len(report.sections) + 1}. [References](#references)", "", "---", ""]

        for idx, section in enumerate(report.sections, 1):
            lines += self._render_section(section, idx, report.citations)
            lines += ["---", ""]

        if report.visualizations:
            lines += ["**Appendix: Data Visualizations**", ""]
            for visualization in report.visualizations:
                lines += [f"**{visualization.title}**", ""]
                if visualization.description:
                    lines += [visualization.description, ""]
                if visualization.type == "table":
                    lines.append(_markdown_table(visualization))
            lines += ["---", ""]

        lines += ["## References", ""]
        for idx, citation in enumerate(report.citations, 1):
            lines += [f"[{idx}] {format_citation(citation)}", ""]

        return "\n".join(lines)

    def render_googledocs(self, report: ResearchReport) -> Optional[str]:
        """Import-ready Markdown for Google Docs; ``None`` without OAuth credentials."""

        if not self.settings.google_docs_enabled:
            log_structured("googledocs_export_skipped", {
                "reason": "Google OAuth credentials not configured"
            }, level=logging.WARNING)
            return None

        lines = [
            f"# {report.topic}",
            "",
            "> **Note:** This file is formatted for Google Docs import.",
            "> To import: 1) Go to docs.google.com, 2) File > Open > Upload, 3) Select this file",
            "",
            "---",
            "",
        ]
        lines += self._metadata_block(report)
        lines += ["---", "", "## Abstract", "", demote_headings(report.summary).strip(), "", "---", ""]

        lines += ["**Table of Contents**", ""]
        lines += [f"{idx}. {section.title}" for idx, section in enumerate(report.sections, 1)]
        lines += [f"{len(report.sections) + 1}. References", "", "---", ""]

        for idx, section in enumerate(report.sections, 1):
            lines += self._render_section(section, idx, report.citations)
            lines += ["---", ""]

        lines += ["## References", ""]
        for idx, citation in enumerate(report.citations, 1):
            lines += [f"[{idx}] {format_citation(citation)}", ""]

        return "\n".join(lines)

    # PDF

    def _pdf_pages(self, report: ResearchReport) -> List[str]:
        """HTML for each group of pages; every group starts on a new page."""

        escape = html.escape
        title_page = (
            f"<h1>{escape(strip_markdown(report.topic).upper())}</h1>"
            f'<p class="center">{"_" * 50}</p>'
            '<h2 class="center">Academic Research Report</h2>'
        )
        if report.title:
            title_page += f'<p class="center"><i>{escape(strip_markdown(report.title))}</i></p>'
        title_page += (
            f'<p class="center">Generated: {report.generated_at.strftime("%Y-%m-%d %H:%M:%S UTC")}</p>'
            f'<p class="center">Number of Sources Cited: {len(report.citations)}</p>'
        )

        toc = ["<h2>Abstract</h2>", _html_paragraphs(report.summary), "<h2>Table of Contents</h2>"]
        for idx, section in enumerate(report.sections, 1):
            toc.append(f"<p>{idx}. {escape(strip_markdown(section.title))}</p>")
            for sub_idx, subsection in enumerate(section.subsections):
                toc.append(
                    f'<p class="refs">{chr(ord("a") + sub_idx)}. {escape(strip_markdown(subsection.title))}</p>'
                )
        toc.append(f"<p>{len(report.sections) + 1}. References</p>")

        body = []
        for idx, section in enumerate(report.sections, 1):
            body.append(f"<h2>{idx}. {escape(strip_markdown(section.title))}</h2>")
            body.append(_html_paragraphs(section.content))
            if section.citations:
                refs = ", ".join(reference_numbers(section.citations, report.citations))
                body.append(f"<p><i>[References: {refs}]</i></p>")
            for sub_idx, subsection in enumerate(section.subsections):
                body.append(f"<h3>{chr(ord('a') + sub_idx)}. {escape(strip_markdown(subsection.title))}</h3>")
                body.append(_html_paragraphs(subsection.content))

        references = ["<h2>References</h2>"]
        for idx, citation in enumerate(report.citations, 1):
            references.append(f'<p class="refs">[{idx}] {escape(strip_markdown(format_citation(citation)))}</p>')

        return [title_page, "".join(toc), "".join(body), "".join(references)]

    def render_pdf(self, report: ResearchReport) -> bytes:
        """Paginated A4 document: title page, abstract and contents, sections, references."""

        try:
            buffer = io.BytesIO()
            writer = fitz.DocumentWriter(buffer)
            mediabox = fitz.paper_rect("a4")
            where = mediabox + (PAGE_MARGIN, PAGE_MARGIN, -PAGE_MARGIN, -PAGE_MARGIN)

            for page_html in self._pdf_pages(report):
                story = fitz.Story(html=page_html, user_css=PDF_CSS)
                more = 1
                while more:
                    device = writer.begin_page(mediabox)
                    more, _ = story.place(where)
                    story.draw(device)
                    writer.end_page()
            writer.close()

            document = fitz.open(stream=buffer.getvalue(), filetype="pdf")
            document.set_metadata({
                "title": report.title or report.topic,
                "author": "AutoResearch Agent",
                "subject": report.topic,
                "keywords": "research, academic, report",
                "creator": "autoresearch",
            })
            data = document.tobytes()
            document.close()
        except Exception as e:
            raise RenderError(f"PDF rendering failed: {e}") from e

        return data

    # Files

    def base_filename(self, report: ResearchReport) -> str:
        """Topic stem plus a microsecond timestamp, unique across concurrent runs."""
        return f"{sanitize_filename(report.topic)}_{report.generated_at.strftime('%Y-%m-%dT%H%M%S%f')}"

    def render(
        self,
        report: ResearchReport,
        formats: Optional[Iterable[Union[str, OutputFormat]]] = None
    ) -> List[str]:
        """Write every requested format; a failing format is logged and skipped."""

        formats = list(formats) if formats is not None else self.settings.report_format_list
        self.output_dir.mkdir(parents=True, exist_ok=True)
        base = self.output_dir / self.base_filename(report)
        paths: List[str] = []

        for requested in formats:
            try:
                fmt = OutputFormat(requested)
            except ValueError:
                log_structured("render_format_unknown", {"format": str(requested)}, level=logging.WARNING)
                continue

            try:
                if fmt == OutputFormat.MARKDOWN:
                    path = base.with_name(base.name + ".md")
                    path.write_text(self.render_markdown(report), encoding="utf-8")
                elif fmt == OutputFormat.PDF:
                    path = base.with_name(base.name + ".pdf")
                    path.write_bytes(self.render_pdf(report))
                else:
                    content = self.render_googledocs(report)
                    if content is None:
                        continue
                    path = base.with_name(base.name + "_googledocs.md")
                    path.write_text(content, encoding="utf-8")
            except (RenderError, OSError) as e:
                log_structured("render_failed", {
                    "format": fmt.value,
                    "error": str(e)
                }, level=logging.ERROR)
                continue

            paths.append(str(path))
            log_structured("report_written", {"format": fmt.value, "path": str(path)})

        return paths
