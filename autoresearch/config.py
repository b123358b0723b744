"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # LLM providers (tried in priority order, first configured wins)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com"

    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-5-sonnet-20241022"

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"

    mistral_api_key: Optional[str] = None
    mistral_model: str = "mistral-small"
    mistral_base_url: Optional[str] = None

    # OpenAI Compatible Configuration (vLLM etc.)
    vllm_base_url: Optional[str] = None
    vllm_api_key: Optional[str] = None
    vllm_model: str = "mistral-7b-instruct"

    # Web search APIs (only the highest-priority configured one is used)
    serper_api_key: Optional[str] = None
    brave_api_key: Optional[str] = None
    google_search_api_key: Optional[str] = None
    google_search_cx: Optional[str] = None

    # Google Docs export
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None

    # Research Configuration
    max_search_results: int = 25
    max_concurrent_requests: int = 10
    max_content_length: int = 50000
    min_content_length: int = 100
    min_word_count: int = 50
    output_dir: str = "./outputs"
    report_formats: str = "markdown,pdf"

    # Timeouts (seconds)
    request_timeout: float = 30.0
    extraction_timeout: float = 8.0
    query_timeout: float = 15.0
    analysis_timeout: float = 30.0
    report_timeout: float = 45.0
    pipeline_timeout: float = 180.0

    # Transport
    rate_limit_per_minute: int = 10
    progress_ping_interval: float = 20.0

    # Logging
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @property
    def report_format_list(self) -> List[str]:
        """Configured output formats, parsed from the comma-separated value."""
        return [f.strip().lower() for f in self.report_formats.split(",") if f.strip()]

    @property
    def google_docs_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
