"""API response/request schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from riseup.schemas import StoredArticle, StoredIncident


# -- News --

class ArticleResponse(BaseModel):
    """Stored article without its dedup fingerprints."""
    id: str
    title: str
    summary: str = ""
    content: str = ""
    source: str
    source_url: str = ""
    channel_name: Optional[str] = None
    published_at: datetime
    topics: List[str] = Field(default_factory=list)

    @classmethod
    def from_article(cls, article: StoredArticle) -> "ArticleResponse":
        return cls(**article.model_dump(exclude={"content_hash", "min_hash", "created_at"}))


class NewsListResponse(BaseModel):
    articles: List[ArticleResponse]
    count: int


class RefreshResponse(BaseModel):
    success: bool = True
    articles_added: int
    articles_total: int
    incidents_extracted: int
    timestamp: datetime


class SearchResponse(BaseModel):
    query: str
    results: List[ArticleResponse]
    count: int


# -- Incidents --

class IncidentListResponse(BaseModel):
    incidents: List[StoredIncident]
    count: int


class IncidentCreatedResponse(BaseModel):
    success: bool = True
    incident: StoredIncident


class UpvoteResponse(BaseModel):
    id: str
    upvotes: int


# -- Channels --

class SuggestionResponse(BaseModel):
    success: bool = True
    id: str
    status: str
    message: str = "Thank you! Your suggestion will be reviewed."
