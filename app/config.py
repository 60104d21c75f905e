"""Application configuration via environment variables."""

import os
import tempfile
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing."""


class Settings(BaseSettings):
    # External inference service
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"
    inference_timeout_seconds: float = 30.0
    inference_max_tokens: int = 5000

    # Analysis
    analysis_strategy: str = "combined"  # "combined" or "two_stage"
    drop_invalid_ingredients: bool = False

    # Reference citations
    reference_lookup: str = "link"  # "link", "pubmed" or "none"
    reference_max_papers: int = 3
    reference_timeout_seconds: float = 10.0

    # Job store
    job_store_dir: str = os.path.join(tempfile.gettempdir(), "analysis-jobs")
    job_retention_seconds: int = 3600
    job_sweep_interval_seconds: int = 300

    # Job processing
    worker_concurrency: int = 4
    compute_port: int = 8001

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("openai_api_key", mode="before")
    @classmethod
    def _strip_key(cls, value):
        # Keys pasted into .env files often keep their quotes
        if isinstance(value, str):
            return value.replace('"', "").replace("'", "").strip()
        return value


settings = Settings()


def validate_env(config: Optional[Settings] = None) -> None:
    """Fail fast when the inference credential is absent."""
    config = config or settings
    if not config.openai_api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY is required. Please check your .env file "
            "and ensure it contains your API key."
        )
