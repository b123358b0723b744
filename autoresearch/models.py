"""Pydantic models for research data structures."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Set

from pydantic import BaseModel, Field, field_validator


class ResearchDepth(str, Enum):
    """Research depth options."""
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    COMPREHENSIVE = "comprehensive"

    @property
    def query_count(self) -> int:
        return {"basic": 3, "intermediate": 5, "comprehensive": 7}[self.value]

    @property
    def source_budget(self) -> int:
        """Default number of sources when the request does not set one."""
        return {"basic": 3, "intermediate": 5, "comprehensive": 10}[self.value]


class OutputFormat(str, Enum):
    """Report output formats."""
    MARKDOWN = "markdown"
    PDF = "pdf"
    GOOGLEDOCS = "googledocs"


class ResearchTopic(BaseModel):
    """A research request, immutable for the duration of a run."""

    topic: str = Field(..., min_length=1, max_length=500, description="Research topic")
    depth: ResearchDepth = ResearchDepth.INTERMEDIATE
    max_sources: Optional[int] = Field(None, ge=1, le=50)
    include_visualization: bool = False
    output_formats: Optional[Set[OutputFormat]] = None

    model_config = {"frozen": True}

    @field_validator("topic")
    @classmethod
    def _strip_topic(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Topic cannot be empty")
        return value


class SearchResult(BaseModel):
    """Individual search result from one backend."""

    title: str
    url: str
    snippet: str = ""
    publish_date: Optional[str] = None
    author: Optional[str] = None
    relevance_score: float = 0.0
    source: str = "unknown"


class ExtractedMetadata(BaseModel):
    author: Optional[str] = None
    publish_date: Optional[str] = None
    word_count: int = 0


class ExtractedContent(BaseModel):
    """Content extracted from a webpage."""

    url: str
    title: str
    content: str
    metadata: ExtractedMetadata = Field(default_factory=ExtractedMetadata)


class Citation(BaseModel):
    """A numbered source reference; ``id`` is the join key used by sections."""

    id: str
    title: str
    url: str
    author: Optional[str] = None
    publish_date: Optional[str] = None
    access_date: str


class ResearchSection(BaseModel):
    """Report section, optionally holding lettered subsections."""

    title: str
    content: str = ""
    citations: List[str] = Field(default_factory=list)
    subsections: List["ResearchSection"] = Field(default_factory=list)


class Visualization(BaseModel):
    type: str = Field("table", pattern="^(chart|table)$")
    title: str
    data: Any = None
    description: str = ""


class ResearchReport(BaseModel):
    """Complete research report ready for rendering."""

    topic: str
    title: Optional[str] = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sections: List[ResearchSection]
    citations: List[Citation] = Field(default_factory=list)
    summary: str
    visualizations: List[Visualization] = Field(default_factory=list)


class ReportFields(BaseModel):
    """The nine fields of a structured report completion."""

    title: str = ""
    abstract: str = ""
    introduction: str = ""
    literature_review: str = ""
    methodology: str = ""
    findings: str = ""
    discussion: str = ""
    conclusion: str = ""
    recommendations: str = ""

    model_config = {"extra": "ignore"}

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        # Models sometimes return a list of paragraphs instead of a string
        if value is None:
            return ""
        if isinstance(value, list):
            return "\n\n".join(str(item).strip() for item in value if str(item).strip())
        if isinstance(value, dict):
            return "\n\n".join(str(item).strip() for item in value.values() if str(item).strip())
        return str(value).strip()

    def body_fields(self) -> List[str]:
        return [
            self.introduction, self.literature_review, self.methodology, self.findings,
            self.discussion, self.conclusion, self.recommendations,
        ]


class ResearchRequest(BaseModel):
    """Research request body for the HTTP API."""

    user_id: str = Field("anonymous", min_length=1, max_length=100)
    topic: str = Field(..., max_length=500)
    depth: ResearchDepth = ResearchDepth.INTERMEDIATE
    max_sources: Optional[int] = Field(None, ge=1, le=50)
    include_visualization: bool = False
    output_formats: Optional[Set[OutputFormat]] = None

    def to_topic(self) -> ResearchTopic:
        return ResearchTopic(
            topic=self.topic,
            depth=self.depth,
            max_sources=self.max_sources,
            include_visualization=self.include_visualization,
            output_formats=self.output_formats,
        )


class ResearchResponse(BaseModel):
    topic: str
    files: List[str]
    downloads: List[str] = Field(default_factory=list)
    elapsed_seconds: float
