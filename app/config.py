# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# All runtime configuration lives in one `BaseSettings` class. Values are
# resolved in this order (highest first):
#   1. Environment variables (e.g., `ELASTICSEARCH_URL=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from app.config import settings
#   print(settings.elasticsearch_index_name)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults target a local single-node Elasticsearch and are safe for tests:
    no collaborator is contacted until a request actually needs it.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    # debug=True is "development mode": unexpected errors include their
    # exception text in the 500 response, and the log level drops to DEBUG.
    # -------------------------------------------------------------------------
    app_name: str = "Knowledge Base Query Service"
    app_version: str = "0.1.0"
    debug: bool = False

    # -------------------------------------------------------------------------
    # Document Index — Elasticsearch
    # -------------------------------------------------------------------------
    # The index is owned by the upload subsystem. This service only reads it
    # through the REST search API. The API key is sent as
    # `Authorization: ApiKey <key>` when set.
    # -------------------------------------------------------------------------
    elasticsearch_url: str = "http://localhost:9200"
    elasticsearch_api_key: str = ""
    elasticsearch_index_name: str = "company-documents"

    # -------------------------------------------------------------------------
    # API Keys — External Services
    # -------------------------------------------------------------------------
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # -------------------------------------------------------------------------
    # Embedding Configuration
    # -------------------------------------------------------------------------
    # The index stores 768-dimensional dense vectors, so the embedding model
    # must be asked for exactly that many dimensions. Any OpenAI-compatible
    # embeddings endpoint works (set embedding_base_url for non-OpenAI hosts).
    # -------------------------------------------------------------------------
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 768
    embedding_base_url: str | None = None

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider
    # -------------------------------------------------------------------------
    # Example configs:
    #   DeepSeek V3:  provider=openai_compatible, base_url=https://api.deepseek.com/v1, model=deepseek-chat
    #   Qwen 3.5:    provider=openai_compatible, base_url=https://dashscope.aliyuncs.com/compatible-mode/v1, model=qwen-plus
    #   Claude:      provider=anthropic, model=claude-sonnet-4-6
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_api_key: str | None = None   # Overrides provider-specific key if set
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 1024

    # -------------------------------------------------------------------------
    # Query Orchestration
    # -------------------------------------------------------------------------
    # max_search_queries: fan-out cap; derived queries past it are dropped.
    # search_concurrency: sub-queries allowed in flight at once.
    # *_timeout_seconds: per-call budget for each collaborator call.
    # query_deadline_seconds: whole plan→search→answer budget per request.
    # -------------------------------------------------------------------------
    max_search_queries: int = 6
    search_concurrency: int = 6
    search_timeout_seconds: float = 10.0
    embedding_timeout_seconds: float = 10.0
    health_check_timeout_seconds: float = 5.0
    llm_timeout_seconds: float = 45.0
    query_deadline_seconds: float = 90.0

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    Injected into request handlers with Depends(get_settings). In tests,
    override with FastAPI's dependency_overrides:
        app.dependency_overrides[get_settings] = lambda: Settings(debug=True)
    """
    return Settings()


# ---------------------------------------------------------------------------
# Module-level convenience instance
# ---------------------------------------------------------------------------
settings = Settings()
