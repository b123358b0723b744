"""Test Markdown, Google Docs and PDF rendering."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from autoresearch.models import Citation, ResearchReport, ResearchSection, Visualization
from autoresearch.render import (
    ReportRenderer, demote_headings, format_citation, reference_numbers, strip_markdown,
)


def make_citation(idx: int, author=None, publish_date=None) -> Citation:
    return Citation(
        id=f"cit-{idx}",
        title=f"Source {idx}",
        url=f"https://example.org/{idx}",
        author=author,
        publish_date=publish_date,
        access_date="2024-05-01",
    )


@pytest.fixture
def report():
    citations = [make_citation(1, "Jane Doe", "2022-03-01"), make_citation(2), make_citation(3)]
    return ResearchReport(
        topic="Renewable Energy",
        title="The State of Renewable Energy",
        generated_at=datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc),
        summary="Renewables now lead new capacity.",
        citations=citations,
        sections=[
            ResearchSection(
                title="Introduction",
                content="Energy systems are changing [1].\n\n## A stray heading\nMore text.",
                citations=["cit-1"],
            ),
            ResearchSection(
                title="Findings and Results",
                content="Solar leads [2, 7].",
                citations=["cit-2", "cit-7"],
                subsections=[ResearchSection(title="Storage", content="Batteries [3].", citations=["cit-3"])],
            ),
        ],
    )


def main_headings(markdown: str):
    return [line for line in markdown.splitlines() if line.startswith("## ")]


class TestHelpers:

    def test_format_citation(self):
        assert format_citation(make_citation(1, "Jane Doe", "2022-03-01")) == (
            "Jane Doe (2022). Source 1. Retrieved from https://example.org/1. Accessed: 2024-05-01."
        )
        assert format_citation(make_citation(2)) == (
            "Source 2. Retrieved from https://example.org/2. Accessed: 2024-05-01."
        )
        assert format_citation(make_citation(3, "Ann Lee")).startswith("Ann Lee. Source 3.")
        assert format_citation(make_citation(4, publish_date="2019")).startswith("(2019). Source 4.")

    def test_reference_numbers_mark_orphans(self, report):
        assert reference_numbers(["cit-2", "cit-9", "cit-1"], report.citations) == ["2", "?", "1"]

    def test_demote_headings(self):
        assert demote_headings("# Top\ntext\n### Deep") == "#### Top\ntext\n#### Deep"

    def test_strip_markdown(self):
        text = (
            "## Heading\n\n**Bold** and *italic* with `code` and snake_case_name.\n"
            "- item one\n1. numbered\n> quoted\n---\n[link](https://example.org)\n"
            "*[References: 1, 2]*"
        )
        cleaned = strip_markdown(text)

        assert cleaned == (
            "Heading\n\nBold and italic with code and snake_case_name.\n"
            "• item one\nnumbered\nquoted\n\nlink\n[References: 1, 2]"
        )

    def test_strip_markdown_keeps_fenced_code_text(self):
        assert strip_markdown("```python\nprint('hi')\n```") == "print('hi')"


class TestMarkdownRendering:
    """Test the Markdown document structure."""

    def test_main_heading_count(self, report):
        """Test that the document has Abstract, one heading per section and References."""
        markdown = ReportRenderer(settings=None, output_dir="unused").render_markdown(report)

        assert main_headings(markdown) == [
            "## Abstract", "## 1. Introduction", "## 2. Findings and Results", "## References",
        ]

    def test_stray_headings_demoted(self, report):
        markdown = ReportRenderer(output_dir="unused").render_markdown(report)
        assert "#### A stray heading" in markdown

    def test_structure(self, report):
        markdown = ReportRenderer(output_dir="unused").render_markdown(report)

        assert markdown.startswith("# Renewable Energy\n")
        assert "*The State of Renewable Energy*" in markdown
        assert "**Number of Sources:** 3" in markdown
        assert "**Generated:** 2024-05-01 12:30:00 UTC" in markdown
        assert "1. [Introduction](#1-introduction)" in markdown
        assert "   a. [Storage](#a-storage)" in markdown
        assert "3. [References](#references)" in markdown
        assert "### a. Storage" in markdown
        assert "*[References: 2, ?]*" in markdown

    def test_references_match_citations(self, report):
        markdown = ReportRenderer(output_dir="unused").render_markdown(report)
        references = markdown.split("## References", 1)[1]
        entries = [line for line in references.splitlines() if line.startswith("[")]

        assert len(entries) == len(report.citations)
        assert entries[0] == "[1] " + format_citation(report.citations[0])

    def test_visualization_appendix(self, report):
        report.visualizations.append(Visualization(
            type="table",
            title="Source Overview",
            data={"headers": ["#", "Title"], "rows": [["1", "A | B"]]},
        ))
        markdown = ReportRenderer(output_dir="unused").render_markdown(report)

        assert "**Appendix: Data Visualizations**" in markdown
        assert "| 1 | A \\| B |" in markdown
        assert len(main_headings(markdown)) == len(report.sections) + 2


class TestFileRendering:
    """Test writing files for each format."""

    def test_markdown_file_name(self, report, settings):
        renderer = ReportRenderer(settings=settings)
        paths = renderer.render(report, ["markdown"])

        assert [Path(p).name for p in paths] == ["renewable_energy_2024-05-01T123000000000.md"]
        assert Path(paths[0]).read_text(encoding="utf-8").startswith("# Renewable Energy")

    def test_same_second_reports_do_not_collide(self, report, settings):
        """Test that two runs on one topic within the same second write separate files."""
        renderer = ReportRenderer(settings=settings)
        later = report.model_copy(update={"generated_at": report.generated_at.replace(microsecond=250)})

        first = renderer.render(report, ["markdown"])
        second = renderer.render(later, ["markdown"])

        assert first != second
        assert len({Path(p).name for p in first + second}) == 2
        assert all(Path(p).exists() for p in first + second)

    def test_googledocs_skipped_without_credentials(self, report, settings):
        assert ReportRenderer(settings=settings).render(report, ["googledocs"]) == []

    def test_googledocs_written_with_credentials(self, report, settings):
        settings.google_client_id = "client"
        settings.google_client_secret = "secret"
        paths = ReportRenderer(settings=settings).render(report, ["googledocs"])

        assert paths[0].endswith("_googledocs.md")
        assert "formatted for Google Docs import" in Path(paths[0]).read_text(encoding="utf-8")

    def test_pdf_written(self, report, settings):
        paths = ReportRenderer(settings=settings).render(report, ["pdf"])

        assert paths[0].endswith(".pdf")
        assert Path(paths[0]).read_bytes().startswith(b"%PDF")

    def test_unknown_format_skipped(self, report, settings):
        paths = ReportRenderer(settings=settings).render(report, ["docx", "markdown"])
        assert len(paths) == 1

    def test_default_formats_from_settings(self, report, settings):
        paths = ReportRenderer(settings=settings).render(report)
        assert [Path(p).suffix for p in paths] == [".md"]
