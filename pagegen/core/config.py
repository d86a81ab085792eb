"""Configuration management for the KB page generator."""

from datetime import date
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


QueryStrategy = Literal["variants", "vocabulary"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Model provider keys (optional; missing keys disable the matching backend)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key (embeddings)")
    ANTHROPIC_API_KEY: str | None = Field(
        default=None, description="Anthropic API key (generative composition)"
    )

    # Environment
    PAGEGEN_ENV: str = Field(default="dev", description="Environment: dev, staging, prod, test")

    # Knowledge base
    KB_COLLECTION_ID: str = Field(default="", description="Knowledge base collection identifier")
    KB_MATCH_RPC: str = Field(
        default="match_kb_passages", description="Postgres function used for vector search"
    )
    KB_ALLOWED_DOMAINS: str = Field(
        default="", description="Comma-separated source host allowlist (empty = no filter)"
    )
    KB_TOP_K: int = Field(default=80, description="Passages requested per query variant")
    KB_QUERY_STRATEGY: QueryStrategy = Field(
        default="variants", description="Query derivation: variants or vocabulary"
    )
    KB_TERM_ALIGNMENT: bool = Field(
        default=True, description="Keep only passages mentioning a salient brief term"
    )
    KB_SANITIZE_RELAXED: bool = Field(
        default=False, description="Use relaxed line-length thresholds when sanitizing"
    )

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Generative composition
    ENABLE_GENERATIVE_COMPOSITION: bool = Field(
        default=True, description="Ask the model to plan sections before falling back"
    )
    PLANNER_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model for section planning"
    )
    BLURB_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for highlight blurbs"
    )
    MAX_HIGHLIGHTS: int = Field(default=6, description="Max highlights per page")

    # Transport limits for outbound backend calls
    BACKEND_CONNECT_TIMEOUT_S: float = Field(default=3.0, description="Connect timeout (s)")
    BACKEND_TIMEOUT_S: float = Field(default=60.0, description="Overall request timeout (s)")
    BACKEND_MAX_RETRIES: int = Field(default=2, description="Transport-level retry budget")

    # Storage
    DOCUMENTS_TABLE: str = Field(default="kb_documents", description="Document sink table")
    LLM_USAGE_TABLE: str = Field(default="llm_usage", description="LLM usage telemetry table")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()


class PipelineConfig(BaseModel):
    """Immutable per-request configuration handed to every pipeline stage."""

    model_config = ConfigDict(frozen=True)

    collection_id: str | None = None
    allowed_domains: tuple[str, ...] = ()
    top_k: int = 80
    query_strategy: QueryStrategy = "variants"
    term_alignment: bool = True
    sanitize_relaxed: bool = False
    enable_generative: bool = True
    planner_model: str = "claude-sonnet-4-5-20250929"
    blurb_model: str = "claude-haiku-4-5-20251001"
    max_highlights: int = 6
    group_cap: int = 2
    reference_year: int = Field(default_factory=lambda: date.today().year)


def parse_domain_list(raw: str) -> tuple[str, ...]:
    """Split a comma-separated host list into normalized entries."""
    domains = []
    for part in (raw or "").split(","):
        host = part.strip().lower()
        if host.startswith("www."):
            host = host[4:]
        if host and host not in domains:
            domains.append(host)
    return tuple(domains)


def pipeline_config_from_settings(settings: Settings) -> PipelineConfig:
    """
    Build the pipeline configuration value from application settings.

    Generative composition is only enabled when both the feature flag is on
    and an Anthropic key is configured.

    Args:
        settings: Application settings

    Returns:
        Frozen PipelineConfig
    """
    return PipelineConfig(
        collection_id=settings.KB_COLLECTION_ID.strip() or None,
        allowed_domains=parse_domain_list(settings.KB_ALLOWED_DOMAINS),
        top_k=settings.KB_TOP_K,
        query_strategy=settings.KB_QUERY_STRATEGY,
        term_alignment=settings.KB_TERM_ALIGNMENT,
        sanitize_relaxed=settings.KB_SANITIZE_RELAXED,
        enable_generative=(
            settings.ENABLE_GENERATIVE_COMPOSITION and bool(settings.ANTHROPIC_API_KEY)
        ),
        planner_model=settings.PLANNER_MODEL,
        blurb_model=settings.BLURB_MODEL,
        max_highlights=settings.MAX_HIGHLIGHTS,
    )
