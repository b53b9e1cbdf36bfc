"""
News item models.

Hierarchy: RawItem (one fetch cycle, from a source adapter)
        -> StoredArticle (fingerprinted, persisted once, immutable)

RawItem is never persisted directly. StoredArticle adds an opaque id,
the exact-match content hash and the 128-slot MinHash signature.
"""

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .base import utcnow


class RawItem(BaseModel):
    """News item as returned by a source adapter."""
    title: str
    summary: str = ""
    content: str = ""

    # Source attribution
    source: str
    source_url: str = ""
    channel_name: Optional[str] = None

    published_at: datetime = Field(default_factory=utcnow)
    topics: List[str] = Field(default_factory=list)

    @property
    def body_text(self) -> str:
        """Text the fingerprints are computed over."""
        return self.content or self.summary


class StoredArticle(RawItem):
    """
    Persisted article.

    content_hash is a pure function of the normalized body text, so the
    same story from two sources hashes identically. min_hash always has
    the configured signature length; rows read back with another length
    are treated as corrupt by the deduplicator.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    content_hash: str
    min_hash: List[int]
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        frozen = True

    @classmethod
    def from_raw(cls, item: RawItem, content_hash: str, min_hash: List[int]) -> "StoredArticle":
        return cls(**item.model_dump(), content_hash=content_hash, min_hash=min_hash)


class RefreshResult(BaseModel):
    """Outcome of one ingestion cycle."""
    articles_added: int = 0
    articles_total: int = 0
    incidents_extracted: int = 0
    timestamp: datetime = Field(default_factory=utcnow)
