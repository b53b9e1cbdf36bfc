from datetime import timedelta

import pytest

from riseup.incidents.dedup import IncidentDeduplicator, haversine_km, title_similarity
from riseup.schemas import GeoPoint, StoredIncident, utcnow

AZADI = (35.6997, 51.3380)


def offset_north(lat: float, lon: float, meters: float):
    # 1 degree of latitude is ~111.195 km on a 6371 km sphere
    return lat + meters / 111_195.0, lon


def incident(title, lat, lon, when, type="protest", **kwargs):
    return StoredIncident(
        type=type,
        title=title,
        location=GeoPoint(lat=lat, lon=lon),
        timestamp=when,
        **kwargs,
    )


def test_haversine_known_distance():
    # Tehran -> Isfahan is roughly 340 km
    assert haversine_km(35.6892, 51.389, 32.6546, 51.668) == pytest.approx(338, abs=5)
    assert haversine_km(*AZADI, *AZADI) == 0


def test_title_similarity_is_case_insensitive():
    assert title_similarity("Protest at Azadi Square", "protest near azadi square") >= 0.7
    assert title_similarity("ABC", "abc") == 1.0
    assert title_similarity("", "") == 1.0


def test_nearby_similar_report_is_a_duplicate():
    now = utcnow()
    existing = incident("Protest at Azadi Square", *AZADI, now - timedelta(hours=1))
    lat, lon = offset_north(*AZADI, 50)
    submitted = incident("protest near azadi square", lat, lon, now)

    check = IncidentDeduplicator().check_duplicate(submitted, [existing])

    assert check.is_duplicate
    assert check.matched_id == existing.id
    assert check.reason == "Similar incident already exists within 50m"
    assert check.similarity >= 0.7


def test_same_report_two_km_away_is_not_a_duplicate():
    now = utcnow()
    existing = incident("Protest at Azadi Square", *AZADI, now - timedelta(hours=1))
    lat, lon = offset_north(*AZADI, 2000)
    submitted = incident("protest near azadi square", lat, lon, now)

    assert not IncidentDeduplicator().check_duplicate(submitted, [existing]).is_duplicate


def test_different_type_or_old_incident_is_not_a_duplicate():
    now = utcnow()
    submitted = incident("Protest at Azadi Square", *AZADI, now)
    other_type = incident("Protest at Azadi Square", *AZADI, now, type="arrest")
    too_old = incident("Protest at Azadi Square", *AZADI, now - timedelta(hours=25))

    check = IncidentDeduplicator().check_duplicate(submitted, [other_type, too_old])
    assert not check.is_duplicate


def test_dissimilar_title_at_same_place_is_not_a_duplicate():
    now = utcnow()
    existing = incident("Protest at Azadi Square", *AZADI, now)
    submitted = incident("Students march from university gates", *AZADI, now)
    assert not IncidentDeduplicator().check_duplicate(submitted, [existing]).is_duplicate


def test_remove_exact_duplicates_keeps_first():
    now = utcnow()
    a = incident("A", *AZADI, now)
    b = incident("B", *AZADI, now)
    assert IncidentDeduplicator().remove_exact_duplicates([a, b, a]) == [a, b]


def test_group_similar_incidents():
    now = utcnow()
    lat, lon = offset_north(*AZADI, 30)
    head = incident("Protest at Azadi Square", *AZADI, now)
    close = incident("Crowd at the square", lat, lon, now)
    far = incident("Protest in Isfahan", 32.6546, 51.668, now)

    groups = IncidentDeduplicator().group_similar_incidents([head, close, far])

    assert len(groups) == 2
    assert groups[0].incident.id == head.id
    assert groups[0].duplicate_count == 1
    assert groups[0].members == [head.id, close.id]
    assert groups[1].duplicate_count == 0
