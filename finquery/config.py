"""Runtime settings, read from ``FINQUERY_*`` environment variables or ``.env``."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://localhost:5432/finance"

    # Language model
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.0
    llm_timeout: float = 30.0

    # Embeddings: "local" (sentence-transformers) or "openai"
    embedding_provider: str = "local"
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    embedding_dimension: int = 384
    embedding_timeout: float = 10.0

    # Resolution / execution
    similarity_threshold: float = 0.5
    query_timeout: float = 15.0
    tenant_column: str = "business_id"

    # Answer context bounds
    max_result_rows: int = 50
    max_result_chars: int = 8000
    history_turns: int = 6

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="FINQUERY_", env_file=".env", extra="ignore"
    )


def get_settings() -> Settings:
    return Settings()
