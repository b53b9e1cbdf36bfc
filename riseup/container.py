"""
Composition root.

build_container() wires every collaborator exactly once from Settings.
The FastAPI lifespan and the CLI each build their own container and pass
it down explicitly; nothing here is a module-level singleton.

Selection rules:
  - a source adapter is configured only when its credentials are present;
    with none, the API still serves and only refresh() fails
  - notifications go to a webhook when NOTIFY_WEBHOOK_URL is set, else nowhere
  - rate limiters are Redis-backed when REDIS_URL is set, else in-memory
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis

from riseup.config import RATE_LIMIT_CONFIGS, RateLimitConfig, Settings
from riseup.database import (
    ArticleRepository,
    ChannelSuggestionRepository,
    Database,
    IncidentRepository,
)
from riseup.incidents.dedup import IncidentDeduplicator
from riseup.incidents.extractor import IncidentExtractor
from riseup.incidents.service import IncidentExtractorService, IncidentService
from riseup.news.channels import ChannelSuggestionService
from riseup.news.dedup import ArticleDeduplicator
from riseup.news.service import NewsService
from riseup.news.sources import PerplexitySource, SourceAdapter, TelegramSource, TwitterSource
from riseup.ratelimit import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from riseup.tools.geocoder import Geocoder
from riseup.tools.notifier import NoopNotifier, WebhookNotifier

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    articles: ArticleRepository
    incidents: IncidentRepository
    suggestions: ChannelSuggestionRepository
    news: NewsService
    incident_service: IncidentService
    channel_service: ChannelSuggestionService
    geocoder: Geocoder
    limiters: Dict[str, RateLimiter] = field(default_factory=dict)
    redis: Optional[Redis] = None

    def limiter(self, name: str) -> RateLimiter:
        return self.limiters[name]

    async def start(self) -> None:
        for limiter in self.limiters.values():
            await limiter.start()
        logger.info(
            f"Container started: {len(self.news.sources)} sources, "
            f"{len(self.limiters)} rate limiters ({'redis' if self.redis else 'memory'})"
        )

    async def aclose(self) -> None:
        for limiter in self.limiters.values():
            await limiter.stop()
        await self.news.drain()
        if self.redis is not None:
            await self.redis.aclose()
        self.database.dispose()
        logger.info("Container closed")


def build_sources(settings: Settings) -> List[SourceAdapter]:
    sources: List[SourceAdapter] = []
    if settings.perplexity_api_key:
        sources.append(PerplexitySource(
            api_key=settings.perplexity_api_key,
            model=settings.perplexity_model,
            base_url=settings.perplexity_base_url,
        ))
    if settings.telegram_bot_token:
        sources.append(TelegramSource(
            bot_token=settings.telegram_bot_token,
            keywords=settings.telegram_keyword_list,
            max_items=settings.telegram_max_items,
        ))
    if settings.apify_api_token:
        sources.append(TwitterSource(
            api_token=settings.apify_api_token,
            search_terms=settings.twitter_term_list,
            actor_id=settings.apify_actor_id,
            max_items=settings.twitter_max_items,
        ))
    if not sources:
        logger.warning(
            "No news sources configured; refresh is disabled until one of "
            "PERPLEXITY_API_KEY, TELEGRAM_BOT_TOKEN or APIFY_API_TOKEN is set"
        )
    return sources


def build_limiters(
    settings: Settings,
    configs: Dict[str, RateLimitConfig],
    redis: Optional[Redis] = None,
) -> Dict[str, RateLimiter]:
    limiters: Dict[str, RateLimiter] = {}
    for name, config in configs.items():
        if redis is not None:
            limiters[name] = RedisRateLimiter(redis, config, timeout=settings.redis_timeout_seconds)
        else:
            limiters[name] = InMemoryRateLimiter(config, cleanup_interval=settings.rate_limit_cleanup_seconds)
    return limiters


def build_container(settings: Settings, **overrides: Any) -> ServiceContainer:
    """Build every service from settings.

    Any collaborator can be replaced by keyword: sources, database,
    notifier, geocoder, redis, rate_limit_configs.
    """
    sources = overrides.get("sources")
    if sources is None:
        sources = build_sources(settings)

    database = overrides.get("database") or Database(settings.database_url)
    database.create_tables()

    articles = ArticleRepository(database, batch_size=settings.batch_write_size)
    incidents = IncidentRepository(database, batch_size=settings.batch_write_size)
    suggestions = ChannelSuggestionRepository(database)

    geocoder = overrides.get("geocoder") or Geocoder(
        nominatim_url=settings.nominatim_url,
        user_agent=settings.geocoder_user_agent,
        country=settings.geocoder_country,
        min_interval=settings.geocoder_min_interval_seconds,
    )

    notifier = overrides.get("notifier")
    if notifier is None:
        if settings.notify_webhook_url:
            notifier = WebhookNotifier(settings.notify_webhook_url, link_url=settings.notify_link_url)
        else:
            notifier = NoopNotifier()

    deduplicator = ArticleDeduplicator(
        threshold=settings.dedup_similarity_threshold,
        num_hashes=settings.dedup_num_hashes,
        shingle_size=settings.dedup_shingle_size,
        num_bands=settings.dedup_num_bands,
    )
    extractor_service = IncidentExtractorService(
        extractor=IncidentExtractor(),
        geocoder=geocoder,
        repository=incidents,
        min_confidence=settings.incident_min_confidence,
    )
    news = NewsService(
        sources=sources,
        repository=articles,
        deduplicator=deduplicator,
        notifier=notifier,
        incident_extractor=extractor_service,
        window_hours=settings.dedup_window_hours,
        source_timeout=settings.source_timeout_seconds,
    )
    incident_service = IncidentService(
        incidents,
        IncidentDeduplicator(
            distance_km=settings.incident_distance_km,
            time_window=timedelta(hours=settings.incident_time_window_hours),
            title_threshold=settings.incident_title_similarity,
        ),
    )

    redis = overrides.get("redis")
    if redis is None and settings.redis_url:
        redis = Redis.from_url(
            settings.redis_url,
            socket_timeout=settings.redis_timeout_seconds,
            socket_connect_timeout=settings.redis_timeout_seconds,
        )
    limiters = build_limiters(settings, overrides.get("rate_limit_configs") or RATE_LIMIT_CONFIGS, redis)

    return ServiceContainer(
        settings=settings,
        database=database,
        articles=articles,
        incidents=incidents,
        suggestions=suggestions,
        news=news,
        incident_service=incident_service,
        channel_service=ChannelSuggestionService(suggestions),
        geocoder=geocoder,
        limiters=limiters,
        redis=redis,
    )
