import json
from datetime import datetime, timezone

import httpx
import pytest

from riseup.news.sources import (
    PerplexitySource,
    TelegramSource,
    TwitterSource,
    extract_json_articles,
    parse_datetime,
)


def test_parse_datetime_shapes():
    expected = datetime(2018, 10, 10, 20, 19, 24, tzinfo=timezone.utc)
    assert parse_datetime(1539202764) == expected
    assert parse_datetime(1539202764000) == expected
    assert parse_datetime("2018-10-10T20:19:24Z") == expected
    assert parse_datetime("Wed Oct 10 20:19:24 +0000 2018") == expected
    assert parse_datetime("not a date").tzinfo is not None


def test_extract_json_from_fenced_block_with_citation_backfill():
    content = 'Here you go:\n```json\n[{"title": "A"}, {"title": "B", "url": "https://b"}]\n```'
    articles = extract_json_articles(content, ["https://cite-a", "https://cite-b"])
    assert [a["url"] for a in articles] == ["https://cite-a", "https://b"]


def test_extract_json_from_bare_array_and_garbage():
    assert extract_json_articles('Results: [{"title": "A"}] done')[0]["title"] == "A"
    assert extract_json_articles("no json here") == []
    assert extract_json_articles("[{broken") == []


@pytest.mark.anyio
async def test_perplexity_fetch():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.headers["Authorization"] == "Bearer key"
        assert body["search_recency_filter"] == "day"
        reply = '[{"title": "Strike spreads", "summary": "Bazaar closed.", "topics": ["iran.now"]}]'
        return httpx.Response(200, json={
            "choices": [{"message": {"content": reply}}],
            "citations": ["https://news.example/strike"],
        })

    source = PerplexitySource("key", transport=httpx.MockTransport(handler))
    items = await source.fetch()

    assert len(items) == 1
    assert items[0].source == "perplexity"
    assert items[0].source_url == "https://news.example/strike"
    assert items[0].topics == ["iran.now"]


@pytest.mark.anyio
async def test_http_failure_becomes_empty_list():
    source = PerplexitySource("key", transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    assert await source.fetch() == []


def test_missing_credentials_rejected():
    with pytest.raises(ValueError):
        PerplexitySource("")
    with pytest.raises(ValueError):
        TelegramSource("", keywords=[])
    with pytest.raises(ValueError):
        TwitterSource("", search_terms=[])


@pytest.mark.anyio
async def test_telegram_channel_posts():
    updates = {
        "ok": True,
        "result": [
            {"update_id": 7, "channel_post": {
                "message_id": 42, "date": 1539202764,
                "chat": {"id": -100123, "type": "channel", "title": "Iran Live", "username": "iranlive"},
                "text": "Large protest reported in Tehran tonight #IranProtests",
            }},
            {"update_id": 8, "channel_post": {
                "message_id": 43, "date": 1539202764,
                "chat": {"id": -100123, "type": "channel", "title": "Iran Live"},
                "text": "Weather forecast for the weekend is sunny everywhere",
            }},
            {"update_id": 9, "message": {
                "message_id": 44, "chat": {"id": 5, "type": "private"},
                "text": "A private protest message that is long enough",
            }},
        ],
    }
    seen_offsets = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_offsets.append(request.url.params["offset"])
        return httpx.Response(200, json=updates)

    source = TelegramSource("token", keywords=["protest"], transport=httpx.MockTransport(handler))
    items = await source.fetch()

    assert len(items) == 1
    assert items[0].source_url == "https://t.me/iranlive/42"
    assert items[0].channel_name == "Iran Live"
    assert items[0].topics == ["#IranProtests"]
    assert source.last_update_id == 9

    await source.fetch()
    assert seen_offsets == ["1", "10"]


def test_telegram_private_channel_link():
    source = TelegramSource("token", keywords=["protest"])
    item = source.message_to_item({
        "message_id": 5,
        "chat": {"id": -100555, "type": "channel", "title": "Private"},
        "caption": "Photo of the protest outside the university",
    })
    assert item.source_url == "https://t.me/c/100555/5"


@pytest.mark.anyio
async def test_twitter_fetch():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["token"] == "apify"
        assert json.loads(request.content)["searchTerms"] == ["#a", "#b", "#c"]
        return httpx.Response(200, json=[
            {"id": "1", "fullText": "Crowds in the streets #IranProtests",
             "author": {"userName": "reporter"}, "createdAt": "Wed Oct 10 20:19:24 +0000 2018"},
            {"id": None, "text": "dropped"},
        ])

    source = TwitterSource(
        "apify", search_terms=["#a", "#b", "#c", "#d"], transport=httpx.MockTransport(handler)
    )
    items = await source.fetch()

    assert len(items) == 1
    assert items[0].source_url == "https://twitter.com/reporter/status/1"
    assert items[0].channel_name == "reporter"
