"""Shared fixtures and fakes."""

from datetime import timedelta
from typing import Dict, Iterable, List, Optional

import pytest

from riseup.config import Settings
from riseup.database import ArticleModel, ArticleRepository, Database, IncidentRepository
from riseup.news.dedup import ArticleDeduplicator
from riseup.news.sources import SourceAdapter
from riseup.schemas import GeoPoint, RawItem, StoredArticle, utcnow
from riseup.tools.notifier import NotificationResult


@pytest.fixture
def anyio_backend():
    return "asyncio"


LONG_TEXT = (
    "Thousands of people gathered in central Tehran on Saturday evening, chanting slogans "
    "and blocking traffic along Enghelab Street as security forces moved in with tear gas. "
    "Witnesses said shops closed early and several universities reported sit-ins by students "
    "who refused to attend classes. Videos shared online showed crowds marching toward Azadi "
    "Square while motorists honked in support. Local officials described the gathering as "
    "illegal and warned of consequences, while rights groups called for restraint and urged "
    "authorities to restore internet access that had been disrupted for most of the day. "
    "Similar demonstrations were reported in Isfahan, Shiraz and Mashhad, according to "
    "residents reached by phone, with protesters gathering in main squares after sunset."
)


def make_item(text: str = LONG_TEXT, title: str = "Protests in Tehran", source: str = "test") -> RawItem:
    return RawItem(title=title, content=text, source=source, source_url="https://example.com/a")


def make_article(text: str = LONG_TEXT, **kwargs) -> StoredArticle:
    return ArticleDeduplicator().fingerprint(make_item(text, **kwargs))


class FakeSource(SourceAdapter):
    """Returns canned items, or raises from inside the adapter."""

    def __init__(self, name: str, items: Optional[List[RawItem]] = None, error: Optional[Exception] = None):
        super().__init__()
        self.name = name
        self.items = items or []
        self.error = error
        self.calls = 0

    async def _fetch(self, query):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.items)


class ExplodingSource(FakeSource):
    """Breaks the adapter contract by raising out of fetch() itself."""

    async def fetch(self, query=None):
        raise RuntimeError(f"{self.name} is down")


class RecordingNotifier:
    def __init__(self):
        self.batches: List[List[StoredArticle]] = []

    async def notify(self, articles):
        self.batches.append(list(articles))
        return NotificationResult(success=True, sent_count=len(articles))


class FakeGeocoder:
    """Resolves from a fixed table; everything else is a miss."""

    def __init__(self, points: Optional[Dict[str, GeoPoint]] = None):
        self.points = points or {"Tehran": GeoPoint(lat=35.6892, lon=51.3890, address="Tehran")}
        self.requested: List[str] = []

    async def resolve_many(self, locations: Iterable[str]) -> Dict[str, GeoPoint]:
        unique = list(dict.fromkeys(locations))
        self.requested.extend(unique)
        return {loc: self.points[loc] for loc in unique if loc in self.points}

    def stats(self):
        return {"cache_size": 0, "gazetteer_size": len(self.points)}


class FakeRedisPipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.ops = []

    def zremrangebyscore(self, key, low, high):
        self.ops.append(("zremrangebyscore", key, low, high))
        return self

    def zcard(self, key):
        self.ops.append(("zcard", key))
        return self

    async def execute(self):
        results = []
        for op, *args in self.ops:
            results.append(await getattr(self.redis, op)(*args))
        self.ops = []
        return results


class FakeRedis:
    """Sorted-set subset of redis.asyncio.Redis used by the rate limiter."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.zsets: Dict[str, Dict[str, float]] = {}
        self.ttls: Dict[str, int] = {}
        self.fail_with = fail_with
        self.closed = False

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def pipeline(self, transaction=True):
        return FakeRedisPipeline(self)

    async def zremrangebyscore(self, key, low, high):
        self._check()
        zset = self.zsets.get(key, {})
        doomed = [m for m, score in zset.items() if low <= score <= high]
        for member in doomed:
            del zset[member]
        return len(doomed)

    async def zcard(self, key):
        self._check()
        return len(self.zsets.get(key, {}))

    async def zrange(self, key, start, end, withscores=False):
        self._check()
        ordered = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        selected = ordered[start:end + 1]
        if withscores:
            return [(m.encode(), s) for m, s in selected]
        return [m.encode() for m, _ in selected]

    async def zadd(self, key, mapping):
        self._check()
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update(mapping)
        return added

    async def expire(self, key, seconds):
        self._check()
        self.ttls[key] = seconds
        return True

    async def delete(self, key):
        self._check()
        return int(self.zsets.pop(key, None) is not None)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'riseup.db'}",
        PERPLEXITY_API_KEY="",
        TELEGRAM_BOT_TOKEN="",
        APIFY_API_TOKEN="",
        REDIS_URL="",
        CRON_SECRET="",
        NOTIFY_WEBHOOK_URL="",
    )


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'riseup.db'}")
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def article_repo(database):
    return ArticleRepository(database, batch_size=500)


@pytest.fixture
def incident_repo(database):
    return IncidentRepository(database, batch_size=500)


def hours_ago(hours: float):
    return utcnow() - timedelta(hours=hours)


def insert_raw_article(database: Database, article_id: str, min_hash: str) -> None:
    """Write an articles row directly, bypassing signature validation."""
    with database.get_session() as session:
        session.add(ArticleModel(
            id=article_id,
            title=f"Stored {article_id}",
            source="legacy",
            content_hash=f"hash-{article_id}",
            min_hash=min_hash,
            created_at=utcnow().replace(tzinfo=None),
        ))
