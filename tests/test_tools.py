import json

import httpx
import pytest

from riseup.tools.geocoder import Geocoder, lookup_gazetteer
from riseup.tools.notifier import NoopNotifier, WebhookNotifier, build_message
from tests.conftest import make_article


def test_gazetteer_exact_and_containment():
    assert lookup_gazetteer("Tehran").address == "Tehran, Iran"
    assert lookup_gazetteer("  مشهد ").address == "Mashhad, Iran"
    assert lookup_gazetteer("Downtown Shiraz").address == "Shiraz, Iran"
    assert lookup_gazetteer("Atlantis") is None


@pytest.mark.anyio
async def test_geocoder_uses_gazetteer_before_network():
    def handler(request):
        raise AssertionError("network must not be used")

    geocoder = Geocoder(transport=httpx.MockTransport(handler))
    point = await geocoder.resolve("Isfahan")
    assert point.lat == pytest.approx(32.6546)


@pytest.mark.anyio
async def test_geocoder_nominatim_fallback_is_cached():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        assert request.url.params["q"] == "Zahedan, Iran"
        assert request.headers["User-Agent"] == "test-agent"
        return httpx.Response(200, json=[{"lat": "29.4963", "lon": "60.8629", "address": {"city": "Zahedan"}}])

    geocoder = Geocoder(user_agent="test-agent", min_interval=0, transport=httpx.MockTransport(handler))

    first = await geocoder.resolve("Zahedan")
    second = await geocoder.resolve(" zahedan ")

    assert first == second
    assert first.address == "Zahedan"
    assert len(calls) == 1


@pytest.mark.anyio
async def test_geocoder_miss_and_error_return_none():
    geocoder = Geocoder(min_interval=0, transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[])))
    assert await geocoder.resolve("Nowhere Land") is None

    broken = Geocoder(min_interval=0, transport=httpx.MockTransport(lambda r: httpx.Response(503)))
    assert await broken.resolve("Nowhere Land") is None


@pytest.mark.anyio
async def test_resolve_many_skips_misses():
    geocoder = Geocoder(min_interval=0, transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[])))
    resolved = await geocoder.resolve_many(["Tehran", "Nowhere Land", "Tehran"])
    assert list(resolved) == ["Tehran"]


def test_build_message():
    one = [make_article(title="Only one")]
    many = [make_article(title="First"), make_article(title="Second"), make_article(title="Third")]
    assert build_message(one) == ("New Article", "Only one")
    assert build_message(many) == ("3 New Articles", "First and 2 more")


@pytest.mark.anyio
async def test_webhook_notifier_posts_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(200, json={"sent": 12})

    notifier = WebhookNotifier("https://push.example/hook", link_url="/news", transport=httpx.MockTransport(handler))
    result = await notifier.notify([make_article(title="Breaking")])

    assert result.success
    assert result.sent_count == 12
    assert received == [{"title": "New Article", "message": "Breaking", "url": "/news", "count": 1}]


@pytest.mark.anyio
async def test_webhook_failure_is_reported_not_raised():
    notifier = WebhookNotifier("https://push.example/hook", transport=httpx.MockTransport(lambda r: httpx.Response(502)))
    result = await notifier.notify([make_article()])
    assert not result.success
    assert result.error


@pytest.mark.anyio
async def test_noop_notifier():
    result = await NoopNotifier().notify([make_article()])
    assert result.success and result.sent_count == 0
