"""
Schemas package - all data models for the Rise Up news pipeline.

Models are organized by domain in submodules:
  - base.py: Common enums and value objects
  - news.py: RawItem, StoredArticle, RefreshResult
  - incidents.py: IncidentCandidate, StoredIncident, DuplicateCheck, ChannelSuggestion
"""

# base.py - enums and value objects
from riseup.schemas.base import (
    IncidentType, ReportedBy, ChannelType, SuggestionStatus,
    GeoPoint, utcnow, as_utc,
)

# news.py - article models
from riseup.schemas.news import RawItem, StoredArticle, RefreshResult

# incidents.py - incident and suggestion models
from riseup.schemas.incidents import (
    ArticleReference, IncidentCandidate, StoredIncident,
    LocationInput, IncidentSubmission, DuplicateCheck,
    IncidentBounds, IncidentGroup,
    ChannelSuggestionInput, ChannelSuggestion, normalize_handle,
)

__all__ = [
    # base
    "IncidentType", "ReportedBy", "ChannelType", "SuggestionStatus",
    "GeoPoint", "utcnow", "as_utc",
    # news
    "RawItem", "StoredArticle", "RefreshResult",
    # incidents
    "ArticleReference", "IncidentCandidate", "StoredIncident",
    "LocationInput", "IncidentSubmission", "DuplicateCheck",
    "IncidentBounds", "IncidentGroup",
    "ChannelSuggestionInput", "ChannelSuggestion", "normalize_handle",
]
