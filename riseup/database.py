"""
SQL storage - articles, incidents and channel suggestions.

Tables:
  - articles: Fingerprinted news items (content hash + MinHash signature)
  - incidents: Geocoded incident reports (official and crowdsourced)
  - channel_suggestions: User-suggested sources awaiting review

The engine is synchronous SQLAlchemy. Repositories expose coroutine
methods and run each unit of work in a worker thread so the event loop
never blocks on disk or network I/O.

Batched writes are chunked (BATCH_WRITE_SIZE rows per transaction). A
failing chunk is rolled back and reported; the other chunks still commit.
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import (
    create_engine, Column, String, Integer, Text, DateTime, Boolean, Float, or_,
)
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from .config import get_settings
from .schemas import (
    ChannelSuggestion, GeoPoint, StoredArticle, StoredIncident, as_utc, utcnow,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

_SIGNATURE = TypeAdapter(List[int])


class StorageUnavailableError(RuntimeError):
    """The database could not be reached on a write path."""


# ── Models ───────────────────────────────────────────────────────────────────

class ArticleModel(Base):
    """Persisted article with its dedup fingerprints."""
    __tablename__ = "articles"

    id = Column(String(50), primary_key=True)
    title = Column(String(500), nullable=False)
    summary = Column(Text, default="")
    content = Column(Text, default="")
    source = Column(String(100), nullable=False)
    source_url = Column(String(1000), default="")
    channel_name = Column(String(200))
    topics = Column(Text, default="[]")  # JSON array
    content_hash = Column(String(64), nullable=False, index=True)
    min_hash = Column(Text, nullable=False)  # JSON array of ints
    published_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class IncidentModel(Base):
    """Incident shown on the map. lat/lon are never null."""
    __tablename__ = "incidents"

    id = Column(String(50), primary_key=True)
    type = Column(String(20), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(String(500), default="")
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    address = Column(String(300))
    timestamp = Column(DateTime, nullable=False, index=True)
    verified = Column(Boolean, default=False)
    reported_by = Column(String(20), default="crowdsource")
    upvotes = Column(Integer, default=0)
    confidence = Column(Integer)
    keywords = Column(Text, default="[]")  # JSON array
    related_articles = Column(Text, default="[]")  # JSON array of article ids
    created_at = Column(DateTime, default=datetime.utcnow)


class ChannelSuggestionModel(Base):
    """User suggestion for a new news channel."""
    __tablename__ = "channel_suggestions"

    id = Column(String(50), primary_key=True)
    type = Column(String(20), nullable=False)
    handle = Column(String(200), nullable=False)
    url = Column(String(500))
    reason = Column(Text, nullable=False)
    status = Column(String(20), default="pending", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ── Conversions ──────────────────────────────────────────────────────────────

def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value).astimezone(timezone.utc).replace(tzinfo=None)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def _article_to_row(article: StoredArticle) -> ArticleModel:
    return ArticleModel(
        id=article.id,
        title=article.title,
        summary=article.summary,
        content=article.content,
        source=article.source,
        source_url=article.source_url,
        channel_name=article.channel_name,
        topics=json.dumps(article.topics),
        content_hash=article.content_hash,
        min_hash=json.dumps(article.min_hash),
        published_at=_naive_utc(article.published_at),
        created_at=_naive_utc(article.created_at),
    )


def _load_signature(row: ArticleModel) -> List[int]:
    """Stored MinHash, or [] when unreadable so dedup skips it as corrupt."""
    if not row.min_hash:
        return []
    try:
        return _SIGNATURE.validate_json(row.min_hash)
    except ValidationError as e:
        logger.warning(f"Unreadable min_hash on article {row.id}: {e.error_count()} errors")
        return []


def _row_to_article(row: ArticleModel) -> StoredArticle:
    return StoredArticle(
        id=row.id,
        title=row.title,
        summary=row.summary or "",
        content=row.content or "",
        source=row.source,
        source_url=row.source_url or "",
        channel_name=row.channel_name,
        topics=json.loads(row.topics) if row.topics else [],
        content_hash=row.content_hash,
        min_hash=_load_signature(row),
        published_at=_aware(row.published_at) or _aware(row.created_at),
        created_at=_aware(row.created_at),
    )


def _incident_to_row(incident: StoredIncident) -> IncidentModel:
    return IncidentModel(
        id=incident.id,
        type=incident.type,
        title=incident.title,
        description=incident.description,
        lat=incident.location.lat,
        lon=incident.location.lon,
        address=incident.location.address,
        timestamp=_naive_utc(incident.timestamp),
        verified=incident.verified,
        reported_by=incident.reported_by,
        upvotes=incident.upvotes,
        confidence=incident.confidence,
        keywords=json.dumps(incident.keywords, ensure_ascii=False),
        related_articles=json.dumps(incident.related_articles),
        created_at=_naive_utc(incident.created_at),
    )


def _row_to_incident(row: IncidentModel) -> StoredIncident:
    return StoredIncident(
        id=row.id,
        type=row.type,
        title=row.title,
        description=row.description or "",
        location=GeoPoint(lat=row.lat, lon=row.lon, address=row.address),
        timestamp=_aware(row.timestamp),
        verified=bool(row.verified),
        reported_by=row.reported_by,
        upvotes=row.upvotes or 0,
        confidence=row.confidence,
        keywords=json.loads(row.keywords) if row.keywords else [],
        related_articles=json.loads(row.related_articles) if row.related_articles else [],
        created_at=_aware(row.created_at),
    )


def _row_to_suggestion(row: ChannelSuggestionModel) -> ChannelSuggestion:
    return ChannelSuggestion(
        id=row.id,
        type=row.type,
        handle=row.handle,
        url=row.url,
        reason=row.reason,
        status=row.status,
        created_at=_aware(row.created_at),
    )


# ── Database class ───────────────────────────────────────────────────────────

class Database:
    """Engine + session factory. One instance per process, owned by the container."""

    def __init__(self, database_url: Optional[str] = None):
        settings = get_settings()
        url = database_url or settings.database_url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}

        self.engine = create_engine(url, echo=False, connect_args=connect_args)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def create_tables(self):
        """Create all tables (safe to call multiple times)."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self):
        self.engine.dispose()


# ── Batched writes ───────────────────────────────────────────────────────────

@dataclass
class ChunkError:
    ids: List[str]
    error: str


@dataclass
class BatchWriteResult:
    success: int = 0
    failed: int = 0
    errors: List[ChunkError] = field(default_factory=list)
    committed_ids: List[str] = field(default_factory=list)


class BatchWriter:
    """Writes rows in chunks of at most batch_size, one transaction per chunk."""

    def __init__(self, db: Database, batch_size: int = 500):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.db = db
        self.batch_size = batch_size

    def write(self, rows: Sequence[Base]) -> BatchWriteResult:
        result = BatchWriteResult()
        for start in range(0, len(rows), self.batch_size):
            chunk = rows[start:start + self.batch_size]
            ids = [row.id for row in chunk]
            try:
                with self.db.get_session() as session:
                    session.add_all(chunk)
                result.success += len(chunk)
                result.committed_ids.extend(ids)
            except SQLAlchemyError as e:
                result.failed += len(chunk)
                result.errors.append(ChunkError(ids=ids, error=str(e)))
                logger.error(f"[FAIL] Batch write of {len(chunk)} rows failed: {e}")
        return result


# ── Repositories ─────────────────────────────────────────────────────────────

class _Repository:
    def __init__(self, db: Database):
        self.db = db

    async def _run(self, fn: Callable[..., Any], *args) -> Any:
        return await asyncio.to_thread(fn, *args)


class ArticleRepository(_Repository):
    """Article storage: recent window for dedup, chunked saves, search, retention."""

    def __init__(self, db: Database, batch_size: int = 500):
        super().__init__(db)
        self.writer = BatchWriter(db, batch_size=batch_size)

    async def get_recent(self, hours_back: int = 24) -> List[StoredArticle]:
        return await self._run(self._get_recent, hours_back)

    def _get_recent(self, hours_back: int) -> List[StoredArticle]:
        cutoff = _naive_utc(utcnow() - timedelta(hours=hours_back))
        with self.db.get_session() as session:
            rows = (
                session.query(ArticleModel)
                .filter(ArticleModel.created_at > cutoff)
                .order_by(ArticleModel.created_at.desc())
                .all()
            )
            return [_row_to_article(r) for r in rows]

    async def save_many(self, articles: Sequence[StoredArticle]) -> List[StoredArticle]:
        """Persist in chunks. Returns only the articles whose chunk committed."""
        if not articles:
            return []
        result = await self.save_many_with_result(articles)
        committed = set(result.committed_ids)
        return [a for a in articles if a.id in committed]

    async def save_many_with_result(self, articles: Sequence[StoredArticle]) -> BatchWriteResult:
        rows = [_article_to_row(a) for a in articles]
        result = await self._run(self.writer.write, rows)
        if result.failed:
            logger.warning(
                f"Article batch write: {result.success} saved, {result.failed} failed "
                f"in {len(result.errors)} chunks"
            )
        return result

    async def get_by_id(self, article_id: str) -> Optional[StoredArticle]:
        return await self._run(self._get_by_id, article_id)

    def _get_by_id(self, article_id: str) -> Optional[StoredArticle]:
        with self.db.get_session() as session:
            row = session.query(ArticleModel).filter_by(id=article_id).first()
            return _row_to_article(row) if row else None

    async def get_by_content_hash(self, content_hash: str) -> Optional[StoredArticle]:
        return await self._run(self._get_by_content_hash, content_hash)

    def _get_by_content_hash(self, content_hash: str) -> Optional[StoredArticle]:
        with self.db.get_session() as session:
            row = session.query(ArticleModel).filter_by(content_hash=content_hash).first()
            return _row_to_article(row) if row else None

    async def list_recent(self, hours_back: int = 24, limit: int = 50) -> List[StoredArticle]:
        articles = await self.get_recent(hours_back)
        return articles[:limit]

    async def search(self, query: str, limit: int = 20) -> List[StoredArticle]:
        return await self._run(self._search, query, limit)

    def _search(self, query: str, limit: int) -> List[StoredArticle]:
        pattern = f"%{query.strip()}%"
        with self.db.get_session() as session:
            rows = (
                session.query(ArticleModel)
                .filter(or_(
                    ArticleModel.title.ilike(pattern),
                    ArticleModel.summary.ilike(pattern),
                    ArticleModel.content.ilike(pattern),
                ))
                .order_by(ArticleModel.created_at.desc())
                .limit(limit)
                .all()
            )
            return [_row_to_article(r) for r in rows]

    async def delete_older_than(self, days: int) -> int:
        return await self._run(self._delete_older_than, days)

    def _delete_older_than(self, days: int) -> int:
        cutoff = _naive_utc(utcnow() - timedelta(days=days))
        with self.db.get_session() as session:
            deleted = (
                session.query(ArticleModel)
                .filter(ArticleModel.created_at < cutoff)
                .delete(synchronize_session=False)
            )
        logger.info(f"Retention cleanup: deleted {deleted} articles older than {days} days")
        return deleted


class IncidentRepository(_Repository):
    """Incident storage. Upvotes are incremented in SQL, never read-modify-write."""

    UPDATABLE_FIELDS = {"verified", "title", "description", "confidence"}

    def __init__(self, db: Database, batch_size: int = 500):
        super().__init__(db)
        self.writer = BatchWriter(db, batch_size=batch_size)

    async def save(self, incident: StoredIncident) -> str:
        return await self._run(self._save, incident)

    def _save(self, incident: StoredIncident) -> str:
        try:
            with self.db.get_session() as session:
                session.add(_incident_to_row(incident))
        except OperationalError as e:
            raise StorageUnavailableError(f"Could not save incident: {e}") from e
        return incident.id

    async def save_many(self, incidents: Sequence[StoredIncident]) -> BatchWriteResult:
        if not incidents:
            return BatchWriteResult()
        rows = [_incident_to_row(i) for i in incidents]
        return await self._run(self.writer.write, rows)

    async def get_all(self, incident_type: Optional[str] = None) -> List[StoredIncident]:
        return await self._run(self._get_all, incident_type)

    def _get_all(self, incident_type: Optional[str]) -> List[StoredIncident]:
        with self.db.get_session() as session:
            query = session.query(IncidentModel)
            if incident_type:
                query = query.filter(IncidentModel.type == incident_type)
            rows = query.order_by(IncidentModel.timestamp.desc()).all()
            return [_row_to_incident(r) for r in rows]

    async def get_by_id(self, incident_id: str) -> Optional[StoredIncident]:
        return await self._run(self._get_by_id, incident_id)

    def _get_by_id(self, incident_id: str) -> Optional[StoredIncident]:
        with self.db.get_session() as session:
            row = session.query(IncidentModel).filter_by(id=incident_id).first()
            return _row_to_incident(row) if row else None

    async def update(self, incident_id: str, partial: Dict[str, Any]) -> Optional[StoredIncident]:
        return await self._run(self._update, incident_id, partial)

    def _update(self, incident_id: str, partial: Dict[str, Any]) -> Optional[StoredIncident]:
        unknown = set(partial) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        try:
            with self.db.get_session() as session:
                row = session.query(IncidentModel).filter_by(id=incident_id).first()
                if row is None:
                    return None
                for key, value in partial.items():
                    setattr(row, key, value)
                session.flush()
                return _row_to_incident(row)
        except OperationalError as e:
            raise StorageUnavailableError(f"Could not update incident: {e}") from e

    async def increment_upvotes(self, incident_id: str) -> Optional[int]:
        return await self._run(self._increment_upvotes, incident_id)

    def _increment_upvotes(self, incident_id: str) -> Optional[int]:
        try:
            with self.db.get_session() as session:
                updated = (
                    session.query(IncidentModel)
                    .filter_by(id=incident_id)
                    .update({IncidentModel.upvotes: IncidentModel.upvotes + 1})
                )
                if not updated:
                    return None
                return session.query(IncidentModel.upvotes).filter_by(id=incident_id).scalar()
        except OperationalError as e:
            raise StorageUnavailableError(f"Could not upvote incident: {e}") from e


class ChannelSuggestionRepository(_Repository):

    async def save(self, suggestion: ChannelSuggestion) -> str:
        return await self._run(self._save, suggestion)

    def _save(self, suggestion: ChannelSuggestion) -> str:
        try:
            with self.db.get_session() as session:
                session.add(ChannelSuggestionModel(
                    id=suggestion.id,
                    type=suggestion.type,
                    handle=suggestion.handle,
                    url=suggestion.url,
                    reason=suggestion.reason,
                    status=suggestion.status,
                    created_at=_naive_utc(suggestion.created_at),
                ))
        except OperationalError as e:
            raise StorageUnavailableError(f"Could not save suggestion: {e}") from e
        return suggestion.id

    async def list_by_status(self, status: str = "pending", limit: int = 100) -> List[ChannelSuggestion]:
        return await self._run(self._list_by_status, status, limit)

    def _list_by_status(self, status: str, limit: int) -> List[ChannelSuggestion]:
        with self.db.get_session() as session:
            rows = (
                session.query(ChannelSuggestionModel)
                .filter_by(status=status)
                .order_by(ChannelSuggestionModel.created_at.desc())
                .limit(limit)
                .all()
            )
            return [_row_to_suggestion(r) for r in rows]
