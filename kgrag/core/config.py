"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, PostgresDsn, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CATEGORY_LABELS = [
    "HISTORY",
    "CHILDCARE",
    "LEGAL",
    "TECHNOLOGY",
    "FINANCE",
    "SCIENCE",
    "HEALTH",
    "LITERATURE",
    "FICTION",
    "BUSINESS",
    "EDUCATION",
    "OTHER",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============== Environment ==============
    environment: Literal["development", "staging", "production"] = "development"

    # ============== Database ==============
    postgres_user: str = "kgrag"
    postgres_password: str = "kgrag_dev_password"
    postgres_db: str = "kgrag"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    database_url: PostgresDsn | None = None
    db_echo: bool = False

    @property
    def db_url(self) -> str:
        """Construct database URL from components or use explicit URL."""
        if self.database_url:
            return str(self.database_url)
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def db_url_sync(self) -> str:
        """Synchronous database URL for Alembic migrations."""
        return self.db_url.replace("postgresql+asyncpg://", "postgresql://")

    # ============== Redis ==============
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_url: RedisDsn | None = None

    @property
    def redis_dsn(self) -> str:
        """Construct Redis URL from components or use explicit URL."""
        if self.redis_url:
            return str(self.redis_url)
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    # ============== API ==============
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False
    cors_origins_str: str = Field(default="http://localhost:3000,http://localhost:8000", alias="cors_origins")

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # ============== Security ==============
    api_key: str | None = None  # X-API-KEY check is disabled when unset
    rate_limit_per_minute: int = Field(default=60, ge=1)

    # ============== OpenAI ==============
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_chat_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = Field(default=1536, ge=1)
    openai_timeout_seconds: float = Field(default=60.0, gt=0)
    openai_max_attempts: int = Field(default=1, ge=1)
    llm_provider: Literal["openai", "mock"] = "openai"

    # ============== Ingestion Pipeline ==============
    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=200, ge=0)
    embedding_batch_size: int = Field(default=16, ge=1)
    kg_extraction_temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    kg_upload_trigger_limit: int = Field(default=5, ge=1)
    category_labels: list[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORY_LABELS))
    category_sample_chars: int = Field(default=2000, ge=1)

    # ============== Query ==============
    answer_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    router_confidence_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    predicate_synonyms: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "children": ["child", "children", "son", "sons", "daughter", "daughters"],
        }
    )

    # ============== Vector Search Cache ==============
    vector_cache_enabled: bool = True
    vector_cache_ttl_seconds: float = Field(default=300.0, gt=0)

    # ============== Celery ==============
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None
    celery_task_always_eager: bool = False  # Synchronous execution for testing

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL."""
        return self.celery_broker_url or self.redis_dsn

    @property
    def celery_backend(self) -> str:
        """Get Celery result backend URL."""
        return self.celery_result_backend or self.redis_dsn

    # ============== Logging ==============
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    # ============== Computed Properties ==============
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
