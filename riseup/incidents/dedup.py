"""
Incident deduplication for the interactive submission path.

A submission is a duplicate of a stored incident when all hold:
  1. same type
  2. timestamps at most `time_window` apart (default 24h)
  3. haversine distance <= `distance_km` (default 0.1 km, ~100 m)
  4. title similarity >= `title_similarity` (default 0.7), where
     similarity = 1 - levenshtein(a, b) / max(len(a), len(b)) on
     lower-cased titles

The first qualifying stored incident wins; there is no best-match search.
"""

import logging
import math
from datetime import timedelta
from typing import List, Sequence

from rapidfuzz.distance import Levenshtein

from riseup.schemas import DuplicateCheck, IncidentGroup, StoredIncident

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def title_similarity(a: str, b: str) -> float:
    a, b = a.lower(), b.lower()
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - Levenshtein.distance(a, b) / longest


class IncidentDeduplicator:

    def __init__(
        self,
        distance_km: float = 0.1,
        time_window: timedelta = timedelta(hours=24),
        title_threshold: float = 0.7,
    ):
        self.distance_km = distance_km
        self.time_window = time_window
        self.title_threshold = title_threshold

    def _distance(self, a: StoredIncident, b: StoredIncident) -> float:
        return haversine_km(a.location.lat, a.location.lon, b.location.lat, b.location.lon)

    def check_duplicate(
        self, candidate: StoredIncident, existing: Sequence[StoredIncident]
    ) -> DuplicateCheck:
        for other in existing:
            if other.type != candidate.type:
                continue
            if abs(candidate.timestamp - other.timestamp) > self.time_window:
                continue
            distance = self._distance(candidate, other)
            if distance > self.distance_km:
                continue
            similarity = title_similarity(candidate.title, other.title)
            if similarity >= self.title_threshold:
                return DuplicateCheck(
                    is_duplicate=True,
                    matched_id=other.id,
                    reason=f"Similar incident already exists within {round(distance * 1000)}m",
                    similarity=similarity,
                )
        return DuplicateCheck(is_duplicate=False)

    def remove_exact_duplicates(self, incidents: Sequence[StoredIncident]) -> List[StoredIncident]:
        seen = set()
        unique = []
        for incident in incidents:
            if incident.id in seen:
                logger.debug(f"Dropped repeated incident {incident.id}")
                continue
            seen.add(incident.id)
            unique.append(incident)
        return unique

    def group_similar_incidents(self, incidents: Sequence[StoredIncident]) -> List[IncidentGroup]:
        """Collapse same-type incidents close in space and time for display.

        Titles are not compared here; the first incident of each group
        represents it.
        """
        groups: List[IncidentGroup] = []
        for incident in incidents:
            for group in groups:
                head = group.incident
                if (
                    head.type == incident.type
                    and abs(head.timestamp - incident.timestamp) <= self.time_window
                    and self._distance(head, incident) <= self.distance_km
                ):
                    group.duplicate_count += 1
                    group.members.append(incident.id)
                    break
            else:
                groups.append(IncidentGroup(incident=incident, members=[incident.id]))
        return groups
