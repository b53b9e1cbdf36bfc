"""API-level tests: error mapping, rate-limit responses, cron auth."""

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from riseup.config import RateLimitConfig, Settings
from riseup.container import build_container
from riseup.main import create_app
from tests.conftest import FakeGeocoder, FakeRedis, FakeSource, RecordingNotifier, make_item

INCIDENT = {
    "type": "protest",
    "title": "Protest at Azadi Square",
    "description": "Large crowd gathered at the square.",
    "location": {"lat": 35.6997, "lon": 51.3380},
}


def make_client(tmp_path, redis=None, cron_secret="", sources=None, **limits):
    settings = Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'api.db'}",
        CRON_SECRET=cron_secret,
        REDIS_URL="",
    )
    configs = {
        "incidents": RateLimitConfig(5, 3_600_000, "rl:incidents", "closed"),
        "channels": RateLimitConfig(5, 3_600_000, "rl:channels", "closed"),
        "search": RateLimitConfig(60, 60_000, "rl:search", "open"),
        "refresh": RateLimitConfig(10, 60_000, "rl:refresh", "closed"),
    }
    configs.update(limits)
    if sources is None:
        sources = [FakeSource("fake", [make_item("Strike at the Tehran bazaar continues for a third day.", title="Bazaar")])]
    container = build_container(
        settings,
        sources=sources,
        geocoder=FakeGeocoder(),
        notifier=RecordingNotifier(),
        redis=redis,
        rate_limit_configs=configs,
    )
    return TestClient(create_app(container=container))


def test_root_and_health(tmp_path):
    with make_client(tmp_path) as client:
        assert client.get("/").json()["service"] == "Rise Up News API"
        health = client.get("/health").json()
        assert health["status"] == "healthy"
        assert health["sources"] == ["fake"]
        assert health["config"]["rate_limit_backend"] == "memory"
        assert health["config"]["rate_limits"]["search"]["fail_mode"] == "open"


def test_create_incident_then_duplicate_conflict(tmp_path):
    with make_client(tmp_path) as client:
        created = client.post("/api/incidents", json=INCIDENT)
        assert created.status_code == 201
        assert created.headers["X-RateLimit-Limit"] == "5"
        assert created.headers["X-RateLimit-Remaining"] == "4"
        incident_id = created.json()["incident"]["id"]

        duplicate = client.post("/api/incidents", json={**INCIDENT, "title": "protest near azadi square"})
        assert duplicate.status_code == 409
        detail = duplicate.json()["detail"]
        assert detail["duplicate"] is True
        assert detail["matched_id"] == incident_id
        assert detail["similarity"] >= 0.7
        assert "Similar incident already exists within 0m" in detail["reason"]


def test_invalid_incident_is_bad_request(tmp_path):
    with make_client(tmp_path) as client:
        response = client.post("/api/incidents", json={**INCIDENT, "type": "riot"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Invalid incident type"


def test_sixth_incident_submission_is_rate_limited(tmp_path):
    with make_client(tmp_path) as client:
        for _ in range(5):
            assert client.post("/api/incidents", json={**INCIDENT, "type": "riot"}).status_code == 400

        limited = client.post("/api/incidents", json=INCIDENT)

        assert limited.status_code == 429
        assert limited.headers["X-RateLimit-Limit"] == "5"
        assert limited.headers["X-RateLimit-Remaining"] == "0"
        assert int(limited.headers["Retry-After"]) > 0
        assert int(limited.headers["X-RateLimit-Reset"]) > 0

        # a different client is unaffected
        other = client.post("/api/incidents", json=INCIDENT, headers={"user-agent": "another-browser"})
        assert other.status_code == 201


def test_redis_outage_applies_each_endpoints_fail_mode(tmp_path):
    redis = FakeRedis(fail_with=RedisConnectionError("connection refused"))
    with make_client(tmp_path, redis=redis) as client:
        assert client.get("/api/search", params={"q": "bazaar"}).status_code == 200
        assert client.post("/api/incidents", json=INCIDENT).status_code == 429
        assert client.post("/api/channels/suggest", json={}).status_code == 429
    assert redis.closed


def test_upvote(tmp_path):
    with make_client(tmp_path) as client:
        incident_id = client.post("/api/incidents", json=INCIDENT).json()["incident"]["id"]

        assert client.post(f"/api/incidents/{incident_id}/upvote").json() == {"id": incident_id, "upvotes": 1}
        assert client.post("/api/incidents/missing/upvote").status_code == 404


def test_list_incidents_with_bounds(tmp_path):
    with make_client(tmp_path) as client:
        client.post("/api/incidents", json=INCIDENT)

        inside = client.get("/api/incidents", params={"north": 36, "south": 35, "east": 52, "west": 51}).json()
        outside = client.get("/api/incidents", params={"north": 30, "south": 29, "east": 53, "west": 52}).json()

        assert inside["count"] == 1
        assert outside["count"] == 0


def test_refresh_requires_cron_secret(tmp_path):
    with make_client(tmp_path, cron_secret="s3cret") as client:
        assert client.post("/api/news/refresh").status_code == 401
        assert client.post("/api/news/refresh", headers={"Authorization": "Bearer wrong"}).status_code == 401

        response = client.post("/api/news/refresh", headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 200
        assert response.json()["articles_added"] == 1

        news = client.get("/api/news").json()
        assert news["count"] == 1
        assert "min_hash" not in news["articles"][0]

        results = client.get("/api/search", params={"q": "bazaar"}).json()
        assert [a["title"] for a in results["results"]] == ["Bazaar"]


def test_channel_suggestion(tmp_path):
    with make_client(tmp_path) as client:
        ok = client.post("/api/channels/suggest", json={
            "type": "telegram",
            "handle": "https://t.me/iran_news_live",
            "reason": "Posts verified footage from protests daily",
        })
        assert ok.status_code == 201
        assert ok.json()["status"] == "pending"

        bad = client.post("/api/channels/suggest", json={
            "type": "twitter",
            "handle": "<script>",
            "reason": "short",
        })
        assert bad.status_code == 400
        fields = {d["field"] for d in bad.json()["detail"]["details"]}
        assert {"handle", "reason"} <= fields


@pytest.mark.parametrize("query", ["", "x" * 201])
def test_search_query_bounds(tmp_path, query):
    with make_client(tmp_path) as client:
        assert client.get("/api/search", params={"q": query}).status_code == 422


def test_api_serves_without_news_sources(tmp_path):
    with make_client(tmp_path, sources=[]) as client:
        assert client.get("/health").json()["sources"] == []

        created = client.post("/api/incidents", json={
            "type": "other",
            "title": "Strike at the Tehran bazaar",
            "description": "Shops closed across the main bazaar.",
            "location": {"lat": 35.6762, "lon": 51.4241},
        })
        assert created.status_code == 201

        refresh = client.post("/api/news/refresh")
        assert refresh.status_code == 503
        assert "No news sources configured" in refresh.json()["detail"]["error"]
