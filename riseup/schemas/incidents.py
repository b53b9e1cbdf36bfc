"""
Incident and channel-suggestion models.

Hierarchy: IncidentCandidate (extractor output, free-text location)
        -> StoredIncident (geocoded, persisted)

IncidentSubmission is the loose shape accepted from users; the incident
service validates it before anything is stored.
"""

import re
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from .base import ChannelType, GeoPoint, IncidentType, ReportedBy, SuggestionStatus, utcnow


class ArticleReference(BaseModel):
    """Link from an extracted incident back to the article it came from."""
    article_id: str
    title: str = ""
    source_url: str = ""


class IncidentCandidate(BaseModel):
    """Incident extracted from article text, not yet geocoded."""
    type: IncidentType
    title: str
    description: str = ""
    location_text: str
    timestamp: datetime = Field(default_factory=utcnow)
    confidence: int = Field(default=0, ge=0, le=100)
    keywords: List[str] = Field(default_factory=list)
    provenance: Optional[ArticleReference] = None

    class Config:
        use_enum_values = True


class StoredIncident(BaseModel):
    """Persisted incident. location is always resolved."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: IncidentType
    title: str
    description: str = ""
    location: GeoPoint
    timestamp: datetime = Field(default_factory=utcnow)
    verified: bool = False
    reported_by: ReportedBy = ReportedBy.CROWDSOURCE
    upvotes: int = 0
    confidence: Optional[int] = None
    keywords: List[str] = Field(default_factory=list)
    related_articles: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        use_enum_values = True


class LocationInput(BaseModel):
    lat: Optional[float] = None
    lon: Optional[float] = None
    address: Optional[str] = None


class IncidentSubmission(BaseModel):
    """User-submitted incident. Field rules are enforced by IncidentService.

    There is no reporter field: every submission is stored as crowdsource.
    """
    type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[LocationInput] = None
    timestamp: Optional[datetime] = None


class DuplicateCheck(BaseModel):
    """Result of comparing a submission against stored incidents."""
    is_duplicate: bool
    matched_id: Optional[str] = None
    reason: Optional[str] = None
    similarity: Optional[float] = None


class IncidentBounds(BaseModel):
    """Map viewport filter."""
    north: float
    south: float
    east: float
    west: float

    def contains(self, point: GeoPoint) -> bool:
        return self.south <= point.lat <= self.north and self.west <= point.lon <= self.east


class IncidentGroup(BaseModel):
    """Similar incidents collapsed for display."""
    incident: StoredIncident
    duplicate_count: int = 0
    members: List[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════════
# CHANNEL SUGGESTIONS
# ══════════════════════════════════════════════════════════════════════════════

_MARKUP_CHARS = re.compile(r"[<>{}\[\]]")

_HANDLE_PATTERNS = {
    ChannelType.TELEGRAM: re.compile(r"^[a-zA-Z][a-zA-Z0-9_]{3,30}$"),
    ChannelType.TWITTER: re.compile(r"^[a-zA-Z0-9_]{1,15}$"),
    ChannelType.INSTAGRAM: re.compile(r"^[a-zA-Z0-9._]{1,30}$"),
    ChannelType.YOUTUBE: re.compile(r"^[a-zA-Z0-9_-]{1,50}$"),
    ChannelType.REDDIT: re.compile(r"^(r/[a-zA-Z0-9_]{2,21}|u/[a-zA-Z0-9_-]{3,20})$"),
}

_HANDLE_PREFIXES = {
    ChannelType.TELEGRAM: re.compile(r"^@|^https?://t\.me/"),
    ChannelType.TWITTER: re.compile(r"^@|^https?://(www\.)?(twitter|x)\.com/"),
    ChannelType.INSTAGRAM: re.compile(r"^@|^https?://(www\.)?instagram\.com/"),
    ChannelType.YOUTUBE: re.compile(r"^@|^https?://(www\.)?youtube\.com/@?"),
}


def normalize_handle(handle: str, channel_type: ChannelType) -> str:
    """Strip '@' and the platform URL prefix."""
    normalized = handle.strip()
    prefix = _HANDLE_PREFIXES.get(channel_type)
    if prefix is not None:
        normalized = prefix.sub("", normalized).rstrip("/")
    return normalized


class ChannelSuggestionInput(BaseModel):
    """Suggestion form. Validation errors are reported back to the user."""
    type: ChannelType
    handle: str = Field(min_length=1, max_length=200)
    url: Optional[str] = Field(default=None, max_length=500)
    reason: str = Field(min_length=10, max_length=1000)

    class Config:
        extra = "forbid"

    @field_validator("handle", "reason", mode="after")
    @classmethod
    def reject_markup(cls, v, info):
        if _MARKUP_CHARS.search(v):
            raise ValueError(f"{info.field_name} contains invalid characters")
        return v.strip()

    @field_validator("reason", mode="after")
    @classmethod
    def require_three_words(cls, v):
        if len(v.split()) < 3:
            raise ValueError("reason must contain at least 3 words")
        return v

    @field_validator("url", mode="after")
    @classmethod
    def require_http_url(cls, v):
        if v in (None, ""):
            return None
        if not re.match(r"^https?://[^\s]+$", v, re.IGNORECASE):
            raise ValueError("url must be an http(s) URL")
        return v

    @model_validator(mode="after")
    def check_handle_format(self):
        channel_type = ChannelType(self.type)
        if channel_type == ChannelType.RSS and not self.url:
            raise ValueError("rss suggestions require a url")
        pattern = _HANDLE_PATTERNS.get(channel_type)
        if pattern is not None and not pattern.match(normalize_handle(self.handle, channel_type)):
            raise ValueError(f"Invalid handle format for {channel_type.value}")
        return self


class ChannelSuggestion(BaseModel):
    """A user suggestion for a new source, queued for review."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: ChannelType
    handle: str
    url: Optional[str] = None
    reason: str
    status: SuggestionStatus = SuggestionStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)

    class Config:
        use_enum_values = True
