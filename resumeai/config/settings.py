"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Identity boundary
    # Comma-separated "token:user_id" pairs accepted as bearer tokens
    auth_tokens: str = ""

    # LLM vendors
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com"

    default_model: str = "gemini-2-flash"
    provider_probe_on_init: bool = True  # list models once before first use

    # Adapter retry policy (seconds)
    retry_max_attempts: int = 3
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 10.0

    stream_idle_timeout: float = 30.0  # max wait between two stream chunks

    # Shared key-value store
    store_backend: str = "memory"  # "memory" | "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 20

    # Caches (TTL in seconds)
    completion_cache_ttl: int = 3600
    completion_cache_max_entries: int = 512
    analysis_cache_ttl: int = 3600
    job_parse_cache_ttl: int = 86400
    settings_cache_ttl: int = 300

    # Per-route sliding window budgets
    analyze_rate_limit: int = 30
    job_parse_rate_limit: int = 10
    completion_rate_limit: int = 20
    rate_limit_window: str = "1m"

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def auth_token_map(self) -> dict[str, str]:
        """Parse "token:user" pairs; entries without a user id are skipped."""
        tokens = {}
        for pair in self.auth_tokens.split(","):
            token, _, user_id = pair.strip().partition(":")
            if token and user_id:
                tokens[token.strip()] = user_id.strip()
        return tokens


@lru_cache
def get_settings() -> Settings:
    return Settings()
