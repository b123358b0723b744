"""Stage-specific errors raised by the research pipeline."""

from __future__ import annotations


class AutoResearchError(Exception):
    """Base class for research pipeline errors."""


class ConfigurationError(AutoResearchError):
    """No usable provider is configured."""


class ProviderError(AutoResearchError):
    """A language-model provider call failed (auth, rate limit, network)."""


class SearchError(AutoResearchError):
    """Every search backend returned nothing."""


class ExtractionError(AutoResearchError):
    pass


class ReportGenerationError(AutoResearchError):
    pass


class RenderError(AutoResearchError):
    pass


class ResearchTimeoutError(AutoResearchError):
    """The overall pipeline deadline expired."""


class SessionBusyError(AutoResearchError):
    """A user already has a research run in progress."""
