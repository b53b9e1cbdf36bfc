"""
Configuration management for the Rise Up news pipeline.

Every tunable lives on one Settings object loaded from environment
variables (or .env). Rate-limit policy is declared per protected route
in RATE_LIMIT_CONFIGS below, not globally.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Sources ──
    # Perplexity (LLM-backed web search)
    perplexity_api_key: str = Field(default="", alias="PERPLEXITY_API_KEY")
    perplexity_model: str = Field(default="sonar", alias="PERPLEXITY_MODEL")
    perplexity_base_url: str = Field(default="https://api.perplexity.ai", alias="PERPLEXITY_BASE_URL")

    # Telegram Bot API (channel posts forwarded to / administered by the bot)
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    # Comma-separated relevance keywords; a post must mention at least one
    telegram_keywords: str = Field(
        default="iran,protest,tehran,mahsa,amini,woman life freedom,اعتراض,تهران,مهسا,آزادی",
        alias="TELEGRAM_KEYWORDS",
    )
    telegram_max_items: int = Field(default=20, alias="TELEGRAM_MAX_ITEMS")

    # Twitter via Apify scraping actor
    apify_api_token: str = Field(default="", alias="APIFY_API_TOKEN")
    apify_actor_id: str = Field(default="apidojo~tweet-scraper", alias="APIFY_ACTOR_ID")
    twitter_search_terms: str = Field(default="#IranProtests,#MahsaAmini", alias="TWITTER_SEARCH_TERMS")
    twitter_max_items: int = Field(default=30, alias="TWITTER_MAX_ITEMS")

    # Per-source timeout. A hanging adapter is abandoned after this many seconds.
    source_timeout_seconds: float = Field(default=15.0, alias="SOURCE_TIMEOUT_SECONDS")

    # ── Deduplication ──
    # 0.8 = near-identical text only (syndicated copies, light edits)
    dedup_similarity_threshold: float = Field(default=0.8, alias="DEDUP_SIMILARITY_THRESHOLD")
    dedup_num_hashes: int = Field(default=128, alias="DEDUP_NUM_HASHES")
    dedup_shingle_size: int = Field(default=3, alias="DEDUP_SHINGLE_SIZE")
    # 5 bands x ceil(128/5)=26 rows. Changing this shifts the LSH S-curve.
    dedup_num_bands: int = Field(default=5, alias="DEDUP_NUM_BANDS")
    dedup_window_hours: int = Field(default=24, alias="DEDUP_WINDOW_HOURS")

    # ── Storage ──
    database_url: str = Field(default="sqlite:///./riseup.db", alias="DATABASE_URL")
    batch_write_size: int = Field(default=500, alias="BATCH_WRITE_SIZE")
    article_retention_days: int = Field(default=30, alias="ARTICLE_RETENTION_DAYS")

    # ── Incidents ──
    incident_min_confidence: int = Field(default=40, alias="INCIDENT_MIN_CONFIDENCE")
    incident_distance_km: float = Field(default=0.1, alias="INCIDENT_DISTANCE_KM")
    incident_time_window_hours: int = Field(default=24, alias="INCIDENT_TIME_WINDOW_HOURS")
    incident_title_similarity: float = Field(default=0.7, alias="INCIDENT_TITLE_SIMILARITY")

    # ── Geocoding (Nominatim) ──
    nominatim_url: str = Field(
        default="https://nominatim.openstreetmap.org/search", alias="NOMINATIM_URL"
    )
    geocoder_user_agent: str = Field(default="RiseUpNewsPipeline/1.0", alias="GEOCODER_USER_AGENT")
    # Nominatim usage policy: max 1 request/second
    geocoder_min_interval_seconds: float = Field(default=1.1, alias="GEOCODER_MIN_INTERVAL_SECONDS")
    geocoder_country: str = Field(default="Iran", alias="GEOCODER_COUNTRY")

    # ── Notifications ──
    notify_webhook_url: str = Field(default="", alias="NOTIFY_WEBHOOK_URL")
    notify_link_url: str = Field(default="/", alias="NOTIFY_LINK_URL")

    # ── Rate limiting ──
    # Empty REDIS_URL = in-memory limiter (single process only)
    redis_url: str = Field(default="", alias="REDIS_URL")
    redis_timeout_seconds: float = Field(default=0.5, alias="REDIS_TIMEOUT_SECONDS")
    rate_limit_cleanup_seconds: float = Field(default=60.0, alias="RATE_LIMIT_CLEANUP_SECONDS")

    # ── API ──
    # Empty CRON_SECRET = dev mode, refresh endpoint is open
    cron_secret: str = Field(default="", alias="CRON_SECRET")
    api_port: int = Field(default=8000, alias="API_PORT")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    @property
    def telegram_keyword_list(self) -> List[str]:
        return [k.strip().lower() for k in self.telegram_keywords.split(",") if k.strip()]

    @property
    def twitter_term_list(self) -> List[str]:
        return [t.strip() for t in self.twitter_search_terms.split(",") if t.strip()]


class ConfigurationError(RuntimeError):
    """Settings are not enough for the requested operation."""


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@dataclass(frozen=True)
class RateLimitConfig:
    """Policy for one protected route."""
    max_requests: int
    window_ms: int
    key_prefix: str = "rl"
    fail_mode: str = "closed"  # open | closed

    def __post_init__(self):
        if self.fail_mode not in ("open", "closed"):
            raise ValueError(f"fail_mode must be 'open' or 'closed', got {self.fail_mode!r}")
        if self.max_requests <= 0 or self.window_ms <= 0:
            raise ValueError("max_requests and window_ms must be positive")


# Per-endpoint rate limits.
# fail_mode decides what happens when the Redis backend is unreachable:
#   closed = deny (endpoints where unlimited requests cost money or invite spam)
#   open   = allow (cheap or already-bounded endpoints)
RATE_LIMIT_CONFIGS: Dict[str, RateLimitConfig] = {
    "incidents": RateLimitConfig(
        max_requests=5,
        window_ms=3_600_000,  # 1 hour
        key_prefix="rl:incidents",
        fail_mode="closed",
    ),
    "channels": RateLimitConfig(
        max_requests=5,
        window_ms=3_600_000,
        key_prefix="rl:channels",
        fail_mode="closed",
    ),
    "search": RateLimitConfig(
        max_requests=60,
        window_ms=60_000,  # 1 minute
        key_prefix="rl:search",
        fail_mode="open",
    ),
    "refresh": RateLimitConfig(
        max_requests=10,
        window_ms=60_000,
        key_prefix="rl:refresh",
        fail_mode="closed",
    ),
}
