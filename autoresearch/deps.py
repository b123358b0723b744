"""Dependency injection for FastAPI routes."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings
from .engine import ResearchEngine
from .llm_client import get_llm_client as _get_llm_client
from .render import ReportRenderer
from .sessions import SessionStore

_session_store = SessionStore()


def get_llm_client():
    """Get LLM client chain for the configured providers."""
    return _get_llm_client(get_settings())


def get_research_engine():
    """Engine sharing process settings; providers are resolved per run."""
    settings = get_settings()
    return ResearchEngine(settings=settings, renderer=ReportRenderer(settings=settings))


def get_session_store():
    return _session_store


def get_rate_limiter():
    """Get rate limiter instance."""
    return Limiter(key_func=get_remote_address)
