"""
Common enums and value objects used across the pipeline.

These define the vocabulary shared by the news and incident layers:
incident types, report provenance, suggestion platforms, and the
geographic point every stored incident carries.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════

class IncidentType(str, Enum):
    """Incident categories shown on the map."""
    PROTEST = "protest"
    ARREST = "arrest"
    INJURY = "injury"
    DEATH = "death"
    OTHER = "other"


class ReportedBy(str, Enum):
    """Who created an incident record.

    OFFICIAL = produced by the extraction pipeline from ingested news.
    CROWDSOURCE = submitted directly by a user.
    """
    CROWDSOURCE = "crowdsource"
    OFFICIAL = "official"


class ChannelType(str, Enum):
    """Platforms a user may suggest as a new source."""
    TELEGRAM = "telegram"
    TWITTER = "twitter"
    REDDIT = "reddit"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    RSS = "rss"
    OTHER = "other"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ══════════════════════════════════════════════════════════════════════════════
# VALUE OBJECTS
# ══════════════════════════════════════════════════════════════════════════════

class GeoPoint(BaseModel):
    """Resolved coordinates. Stored incidents never carry a null point."""
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)
    address: Optional[str] = None

    class Config:
        frozen = True
