"""Application configuration management."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = "development"
    debug: bool = False
    log_level: str = "info"
    allowed_origins: str = "http://localhost:3000"

    # Database (catalog, facets, events, recipient preferences)
    database_url: str = "postgresql+psycopg2://localhost:5432/giftmatch"
    db_pool_size: int = 10

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    context_ttl_seconds: int = 0  # 0 keeps context records until explicitly deleted
    trending_redis_key: str = "trending:product_ids"
    session_ttl_seconds: int = 1800  # browsing sessions expire after 30 idle minutes

    # OpenAI
    openai_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    llm_model: str = "gpt-4o-mini"
    llm_phrasing_enabled: bool = False

    # Langfuse
    langfuse_public_key: Optional[str] = None
    langfuse_secret_key: Optional[str] = None
    langfuse_host: str = "https://cloud.langfuse.com"

    # Cohere rerank
    cohere_api_key: Optional[str] = None
    cohere_base_url: str = "https://api.cohere.com"
    cohere_rerank_model: str = "rerank-english-v3.0"

    # Recommendation pipeline
    port_timeout_seconds: float = 2.5
    recommendation_limit: int = 15
    trending_refresh_seconds: int = 300
    trending_cache_seconds: int = 60

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def vector_search_enabled(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def rerank_enabled(self) -> bool:
        return bool(self.cohere_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
