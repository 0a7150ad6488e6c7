import logging
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache

_config_logger = logging.getLogger(__name__)

_PROJECT_DIR = Path(__file__).resolve().parents[1]
_ENV_FILES = (
    _PROJECT_DIR / ".env",
    ".env",
)
_PROVIDERS = frozenset({"huggingface", "openrouter"})


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    app_env: str = "development"

    # Persistence: PostgreSQL + pgvector in production, SQLite for local runs
    database_url: str = "sqlite:///data/knowledge.db"
    database_echo: bool = False
    store_timeout_seconds: float = 30.0

    # Embedding provider
    embedding_provider: str = "huggingface"
    embedding_model: str = "BAAI/bge-base-en-v1.5"
    embedding_dimensions: int = Field(default=768, gt=0)
    embedding_timeout_seconds: float = Field(default=60.0, gt=0)
    embedding_batch_size: int = Field(default=50, gt=0)
    embedding_max_concurrency: int = Field(default=1, gt=0)

    huggingface_api_token: str = ""
    huggingface_base_url: str = "https://router.huggingface.co/hf-inference/models"

    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_app_name: str = "Knowledge Engine"

    # Chunking (characters)
    chunk_size: int = 1200
    chunk_overlap: int = 200

    # Retrieval defaults
    retrieval_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    retrieval_max_results: int = Field(default=5, ge=1)

    # Logging: per-category log levels (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_level: str = "INFO"                  # Root / engine-wide
    log_level_sql: str = "WARNING"           # sqlalchemy.engine SQL queries
    log_level_http: str = "WARNING"          # httpx / httpcore outbound HTTP
    log_level_pipeline: str = "INFO"         # IngestionService pipeline
    log_level_provider: str = "INFO"         # Embedding provider adapters

    model_config = {
        "env_file": _ENV_FILES,
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("embedding_provider")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in _PROVIDERS:
            raise ValueError(
                f"embedding_provider must be one of {sorted(_PROVIDERS)}, got '{value}'"
            )
        return normalized

    @model_validator(mode="after")
    def _chunking_is_consistent(self) -> "Settings":
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        return self


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance — reads .env once."""
    settings = Settings()
    _config_logger.debug(
        "Loaded settings — env=%s, provider=%s, model=%s, dims=%d",
        settings.app_env,
        settings.embedding_provider,
        settings.embedding_model,
        settings.embedding_dimensions,
    )
    return settings
