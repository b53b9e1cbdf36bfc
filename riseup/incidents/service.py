"""
Incident services.

Two write paths reach the incidents table:

  BATCH (IncidentExtractorService)
    saved articles -> extractor -> geocode unique locations
    -> drop misses and confidence < floor -> one chunked write.
    No submission-time duplicate check here; extracted incidents are
    already filtered by article-level dedup upstream.

  INTERACTIVE (IncidentService.create)
    user submission -> validate -> duplicate check against stored
    incidents -> save. A duplicate is an expected outcome and is raised
    as DuplicateIncidentError carrying the match details.

The two paths are not reconciled with each other: a user report and an
extracted incident describing the same event can both exist.
"""

import logging
from typing import List, Optional, Sequence

from riseup.database import IncidentRepository
from riseup.incidents.dedup import IncidentDeduplicator
from riseup.incidents.extractor import IncidentExtractor
from riseup.schemas import (
    DuplicateCheck,
    GeoPoint,
    IncidentBounds,
    IncidentSubmission,
    IncidentType,
    ReportedBy,
    StoredArticle,
    StoredIncident,
    as_utc,
    utcnow,
)
from riseup.tools.geocoder import Geocoder

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 500


class IncidentValidationError(ValueError):
    """Submission is malformed (missing fields, bad type, bad coordinates, too long)."""


class DuplicateIncidentError(Exception):
    """Submission matches an incident that is already stored."""

    def __init__(self, check: DuplicateCheck):
        self.check = check
        super().__init__(
            f"This incident may already be reported. {check.reason}. "
            "Please check existing reports or provide more specific details."
        )


class IncidentExtractorService:
    """Batch path: turns freshly saved articles into stored incidents."""

    def __init__(
        self,
        extractor: IncidentExtractor,
        geocoder: Geocoder,
        repository: IncidentRepository,
        min_confidence: int = 40,
    ):
        self.extractor = extractor
        self.geocoder = geocoder
        self.repository = repository
        self.min_confidence = min_confidence

    async def extract_from_articles(self, articles: Sequence[StoredArticle]) -> List[StoredIncident]:
        """Extract, geocode, filter and persist. Returns the incidents that were written."""
        if not articles:
            return []

        candidates = self.extractor.extract_from_articles(articles)
        if not candidates:
            logger.info(f"No incidents extracted from {len(articles)} articles")
            return []

        locations = [c.location_text for c in candidates]
        resolved = await self.geocoder.resolve_many(locations)
        logger.info(f"Geocoded {len(resolved)}/{len(set(locations))} unique locations")

        to_save: List[StoredIncident] = []
        for candidate in candidates:
            point = resolved.get(candidate.location_text)
            if point is None:
                logger.debug(f"Dropped incident, no geocode for {candidate.location_text!r}")
                continue
            if candidate.confidence < self.min_confidence:
                logger.debug(
                    f"Dropped low-confidence incident ({candidate.confidence}): {candidate.title[:60]}"
                )
                continue
            to_save.append(StoredIncident(
                type=candidate.type,
                title=candidate.title[:MAX_TITLE_LENGTH],
                description=candidate.description[:MAX_DESCRIPTION_LENGTH],
                location=point,
                timestamp=candidate.timestamp,
                verified=False,
                reported_by=ReportedBy.OFFICIAL,
                upvotes=0,
                confidence=candidate.confidence,
                keywords=candidate.keywords,
                related_articles=[candidate.provenance.article_id] if candidate.provenance else [],
            ))

        if not to_save:
            logger.info(f"No incidents passed the confidence floor ({len(candidates)} extracted)")
            return []

        result = await self.repository.save_many(to_save)
        logger.info(f"Incidents saved: {result.success}, failed: {result.failed}")
        for error in result.errors:
            logger.error(f"[FAIL] Incident chunk ({len(error.ids)} rows): {error.error}")

        committed = set(result.committed_ids)
        return [i for i in to_save if i.id in committed]


class IncidentService:
    """Interactive path: listing, user submissions, upvotes, verification."""

    def __init__(self, repository: IncidentRepository, deduplicator: Optional[IncidentDeduplicator] = None):
        self.repository = repository
        self.deduplicator = deduplicator or IncidentDeduplicator()

    async def get_all(
        self,
        incident_type: Optional[str] = None,
        bounds: Optional[IncidentBounds] = None,
    ) -> List[StoredIncident]:
        incidents = await self.repository.get_all()
        incidents = self.deduplicator.remove_exact_duplicates(incidents)
        if bounds is not None:
            incidents = [i for i in incidents if bounds.contains(i.location)]
        if incident_type:
            incidents = [i for i in incidents if i.type == incident_type]
        return incidents

    def validate(self, submission: IncidentSubmission) -> StoredIncident:
        """Check a submission and build the incident it would store."""
        if not submission.type or not submission.title or not submission.description or not submission.location:
            raise IncidentValidationError("Missing required fields: type, title, description, location")

        if submission.type not in {t.value for t in IncidentType}:
            raise IncidentValidationError("Invalid incident type")

        lat, lon = submission.location.lat, submission.location.lon
        if lat is None or lon is None or not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
            raise IncidentValidationError("Invalid location coordinates")

        if len(submission.title) > MAX_TITLE_LENGTH:
            raise IncidentValidationError(f"Title too long (max {MAX_TITLE_LENGTH} characters)")

        if len(submission.description) > MAX_DESCRIPTION_LENGTH:
            raise IncidentValidationError(f"Description too long (max {MAX_DESCRIPTION_LENGTH} characters)")

        return StoredIncident(
            type=submission.type,
            title=submission.title,
            description=submission.description,
            location=GeoPoint(lat=lat, lon=lon, address=submission.location.address),
            timestamp=as_utc(submission.timestamp) if submission.timestamp else utcnow(),
            reported_by=ReportedBy.CROWDSOURCE,
        )

    async def check_duplicate(self, incident: StoredIncident) -> DuplicateCheck:
        existing = await self.repository.get_all(incident.type)
        return self.deduplicator.check_duplicate(incident, existing)

    async def create(self, submission: IncidentSubmission) -> StoredIncident:
        incident = self.validate(submission)

        check = await self.check_duplicate(incident)
        if check.is_duplicate:
            logger.warning(
                f"Duplicate incident rejected ({check.similarity:.2f}, {check.reason}): "
                f"{incident.title[:50]}"
            )
            raise DuplicateIncidentError(check)

        await self.repository.save(incident)
        logger.info(f"Incident created {incident.id} ({incident.type}, {incident.reported_by})")
        return incident

    async def upvote(self, incident_id: str) -> Optional[int]:
        """Add one upvote. Returns the new count, or None if the incident is unknown."""
        return await self.repository.increment_upvotes(incident_id)

    async def verify(self, incident_id: str, verified: bool = True) -> Optional[StoredIncident]:
        return await self.repository.update(incident_id, {"verified": verified})
