"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from docdialogue.core.exceptions import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Every field has a default so the services can be imported without a
    complete environment. Endpoints call ``require`` for the values they
    actually need, which turns a missing variable into a per-request error.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore")

    openai_api_key: str = ""
    postgres_url: str = ""
    qdrant_url: str = ""
    qdrant_api_key: str = ""
    qdrant_collection_name: str = ""
    redis_url: str = ""

    storage_url: str = ""
    storage_service_key: str = ""
    storage_bucket: str = ""

    service_name: str = "docdialogue"
    log_level: str = "INFO"

    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.2

    chunk_max_chars: int = 1800
    chunk_overlap: int = 200

    embedding_batch_size: int = 96
    embedding_snippet_chars: int = 500
    upsert_batch_size: int = 150

    max_context_chars: int = 12000
    citation_excerpt_chars: int = 300

    cache_ttl: int = 3600
    http_timeout_seconds: float = 30.0

    # Retry configuration (embedding calls only)
    retry_max_attempts: int = 4
    retry_base_delay_seconds: float = 0.4
    retry_jitter_seconds: float = 0.2

    # Voice agent tool calls
    tool_secret: str = ""
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io"

    def missing(self, *names: str) -> list[str]:
        """Return the environment variable names of unset settings."""
        return [name.upper() for name in names if not getattr(self, name)]

    def require(self, *names: str) -> None:
        """
        Ensure the given settings are present.

        Args:
            names: Setting attribute names.

        Raises:
            ConfigError: If any of them is empty.
        """
        missing = self.missing(*names)
        if missing:
            raise ConfigError(f"Missing required env: {', '.join(missing)}")


INGEST_REQUIRED = (
    "storage_bucket",
    "storage_url",
    "storage_service_key",
    "openai_api_key",
    "qdrant_url",
    "qdrant_collection_name",
    "postgres_url",
)

QUERY_REQUIRED = (
    "openai_api_key",
    "qdrant_url",
    "qdrant_collection_name",
)

settings = Settings()
