"""
Ingestion orchestrator - one refresh() per cron tick.

REFRESH FLOW:
  1. Fetch every source concurrently. Each fetch has its own timeout and
     its own failure; gather() settles all of them, nothing cancels the rest.
  2. Flatten. Empty -> zero result, repository untouched.
  3. Load the recent window (DEDUP_WINDOW_HOURS) from the repository.
  4. Dedup in a worker thread (CPU-bound), then one chunked save.
  5. If anything was saved:
       - notification delivery is spawned as a background task; its
         outcome is only logged
       - incident extraction runs inline on the saved batch

Concurrent refresh() calls are not coordinated here. The caller (cron,
CLI) is expected to serialize them.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Set

from riseup.config import ConfigurationError
from riseup.database import ArticleRepository
from riseup.incidents.service import IncidentExtractorService
from riseup.news.dedup import ArticleDeduplicator
from riseup.news.sources import SourceAdapter
from riseup.schemas import RawItem, RefreshResult, StoredArticle, utcnow

logger = logging.getLogger(__name__)


class NewsService:
    """Fetch -> dedup -> persist -> side effects."""

    def __init__(
        self,
        sources: Sequence[SourceAdapter],
        repository: ArticleRepository,
        deduplicator: ArticleDeduplicator,
        notifier,
        incident_extractor: Optional[IncidentExtractorService] = None,
        window_hours: int = 24,
        source_timeout: float = 15.0,
    ):
        self.sources = list(sources)
        self.repository = repository
        self.deduplicator = deduplicator
        self.notifier = notifier
        self.incident_extractor = incident_extractor
        self.window_hours = window_hours
        self.source_timeout = source_timeout
        self._background: Set[asyncio.Task] = set()

    async def _fetch_one(self, source: SourceAdapter) -> List[RawItem]:
        try:
            return await asyncio.wait_for(source.fetch(), timeout=self.source_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[TIMEOUT] {source.name}: no response in {self.source_timeout}s, skipping")
            return []

    async def fetch_all(self) -> List[RawItem]:
        """Settle-all fetch across sources. Failed sources contribute nothing."""
        results = await asyncio.gather(
            *(self._fetch_one(source) for source in self.sources),
            return_exceptions=True,
        )

        items: List[RawItem] = []
        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                logger.warning(f"[FAIL] {source.name}: {result}")
            elif isinstance(result, list):
                items.extend(result)

        logger.info(f"Fetched {len(items)} items from {len(self.sources)} sources")
        return items

    async def refresh(self) -> RefreshResult:
        if not self.sources:
            raise ConfigurationError(
                "No news sources configured. Set at least one of "
                "PERPLEXITY_API_KEY, TELEGRAM_BOT_TOKEN or APIFY_API_TOKEN."
            )
        items = await self.fetch_all()
        if not items:
            logger.info("No items fetched this cycle")
            return RefreshResult(timestamp=utcnow())

        recent = await self.repository.get_recent(self.window_hours)
        survivors = await asyncio.to_thread(self.deduplicator.process, items, recent)
        saved = await self.repository.save_many(survivors) if survivors else []

        incidents_extracted = 0
        if saved:
            self._notify_in_background(saved)
            incidents_extracted = await self._extract_incidents(saved)

        result = RefreshResult(
            articles_added=len(saved),
            articles_total=len(recent) + len(saved),
            incidents_extracted=incidents_extracted,
            timestamp=utcnow(),
        )
        logger.info(
            f"Refresh complete: {result.articles_added} added, "
            f"{result.articles_total} in window, {result.incidents_extracted} incidents"
        )
        return result

    async def _extract_incidents(self, saved: List[StoredArticle]) -> int:
        if self.incident_extractor is None:
            return 0
        try:
            incidents = await self.incident_extractor.extract_from_articles(saved)
        except Exception as e:
            logger.error(f"[FAIL] Incident extraction for {len(saved)} articles: {e}")
            return 0
        return len(incidents)

    # ── Notifications (fire-and-forget) ──────────────────────────────

    def _notify_in_background(self, articles: List[StoredArticle]) -> None:
        task = asyncio.create_task(self._deliver(articles))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _deliver(self, articles: List[StoredArticle]) -> None:
        try:
            result = await self.notifier.notify(articles)
        except Exception as e:
            logger.error(f"[FAIL] Notification for {len(articles)} articles: {e}")
            return
        if not result.success:
            logger.warning(f"Notification not delivered: {result.error}")

    async def drain(self) -> None:
        """Wait for in-flight notification tasks."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Read paths / maintenance ─────────────────────────────────────

    async def latest(self, hours: int = 24, limit: int = 50) -> List[StoredArticle]:
        return await self.repository.list_recent(hours, limit)

    async def search(self, query: str, limit: int = 20) -> List[StoredArticle]:
        if not query.strip():
            return []
        return await self.repository.search(query, limit)

    async def cleanup(self, days: int) -> int:
        return await self.repository.delete_older_than(days)
