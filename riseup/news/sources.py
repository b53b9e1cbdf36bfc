"""
Source adapters - one per upstream feed.

Every adapter exposes `name` and `fetch(query=None) -> List[RawItem]`.
fetch() never raises: any failure inside an adapter is logged with the
source name and becomes an empty list, so the orchestrator can treat it
as "nothing new from this source".

Adapters:
  - PerplexitySource: Sonar web search, asked to return a JSON array
  - TelegramSource:   Bot API getUpdates (channel posts, forwarded posts)
  - TwitterSource:    Apify tweet-scraper actor, run synchronously

An adapter without credentials is not constructed (see container.py).
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from riseup.schemas import RawItem, utcnow

logger = logging.getLogger(__name__)

HASHTAG_PATTERN = re.compile(r"#\w+")
MIN_POST_LENGTH = 20


def parse_datetime(value: Any) -> datetime:
    """Parse the timestamp shapes upstream APIs return. Falls back to now (UTC)."""
    if value is None or value == "":
        return utcnow()
    if isinstance(value, (int, float)):
        # Telegram: seconds; some feeds: milliseconds
        seconds = value / 1000 if value > 10_000_000_000 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)

    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    formats = [
        "%a %b %d %H:%M:%S %z %Y",     # Twitter: Wed Oct 10 20:19:24 +0000 2018
        "%a, %d %b %Y %H:%M:%S %z",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
    ]
    for fmt in formats:
        try:
            parsed = datetime.strptime(text, fmt)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return utcnow()


def short_title(text: str, limit: int = 100) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[: limit - 3] + "..."


class SourceAdapter(ABC):
    """Base class for all news source adapters."""

    name: str = "source"

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def fetch(self, query: Optional[str] = None) -> List[RawItem]:
        try:
            items = await self._fetch(query)
            logger.info(f"[OK] {self.name}: {len(items)} items")
            return items
        except Exception as e:
            logger.warning(f"[FAIL] {self.name}: {e}")
            return []

    @abstractmethod
    async def _fetch(self, query: Optional[str]) -> List[RawItem]:
        """Fetch and normalize items. May raise; fetch() contains it."""


# ══════════════════════════════════════════════════════════════════════════════
# PERPLEXITY
# ══════════════════════════════════════════════════════════════════════════════

TOPIC_FEEDS = {
    "iran.now": [
        "Iran protests unrest clashes crackdown live updates",
        "Iran internet shutdown blackout curfew security forces",
        "Tehran protests nationwide demonstrations Iran",
    ],
    "iran.statements_official": [
        "Iran Supreme Leader statement protests",
        "Iran foreign ministry statement spokesperson",
    ],
    "iran.statements_opposition": [
        "Iran opposition leader statement exile diaspora",
    ],
    "leaders.world_statements": [
        "statement on Iran protests UN EU White House",
        "sanctions announced Iran crackdown",
    ],
    "protests.solidarity_global": [
        "solidarity rally support demonstration Iran",
        "protest outside Iranian embassy solidarity",
    ],
}

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def build_perplexity_prompt(query: Optional[str] = None) -> str:
    if query:
        sections = f"Search for news from the last day about: {query}"
    else:
        sections = "\n".join(
            f"Topic {topic_id}:\n" + "\n".join(f"  - {q}" for q in queries)
            for topic_id, queries in TOPIC_FEEDS.items()
        )
    return (
        "Search for and summarize the latest news on the topics below. For each article "
        "found, provide: title, summary (2-3 sentences), url, publishedAt and topics "
        "(the topic ids that apply).\n\n"
        f"{sections}\n\n"
        "Return results as a JSON array of articles."
    )


def extract_json_articles(content: str, citations: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Pull the article array out of a model reply.

    Handles ```json fenced blocks and bare arrays surrounded by prose.
    Missing urls are back-filled from citations by position.
    """
    if not content:
        return []
    text = content
    fenced = _FENCED_JSON.search(content)
    if fenced:
        text = fenced.group(1).strip()

    match = _JSON_ARRAY.search(text)
    if not match:
        logger.warning(f"Perplexity reply has no JSON array: {content[:200]!r}")
        return []
    try:
        articles = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"Perplexity JSON parse error: {e}")
        return []
    if not isinstance(articles, list):
        return []

    citations = citations or []
    parsed = []
    for index, article in enumerate(articles):
        if not isinstance(article, dict):
            continue
        if not article.get("url") and index < len(citations):
            article["url"] = citations[index]
        parsed.append(article)
    return parsed


class PerplexitySource(SourceAdapter):
    """Perplexity Sonar search, asked for structured JSON."""

    name = "perplexity"

    def __init__(
        self,
        api_key: str,
        model: str = "sonar",
        base_url: str = "https://api.perplexity.ai",
        **kwargs,
    ):
        if not api_key:
            raise ValueError("Perplexity API key is required")
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    async def _fetch(self, query: Optional[str]) -> List[RawItem]:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": "You are a news aggregation system that returns structured JSON."},
                {"role": "user", "content": build_perplexity_prompt(query)},
            ],
            "temperature": 0.2,
            "max_tokens": 4000,
            "return_citations": True,
            "search_recency_filter": "day",
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with self._client() as client:
            response = await client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()

        choices = data.get("choices") or []
        content = (choices[0].get("message") or {}).get("content", "") if choices else ""
        articles = extract_json_articles(content, data.get("citations") or [])
        return [self._to_item(a) for a in articles if a.get("title")]

    def _to_item(self, article: Dict[str, Any]) -> RawItem:
        summary = article.get("summary") or (article.get("content") or "")[:300]
        return RawItem(
            title=str(article["title"]),
            summary=summary,
            content=article.get("content") or summary,
            source=self.name,
            source_url=article.get("url") or "",
            published_at=parse_datetime(article.get("publishedAt")),
            topics=[str(t) for t in article.get("topics") or []],
        )


# ══════════════════════════════════════════════════════════════════════════════
# TELEGRAM
# ══════════════════════════════════════════════════════════════════════════════

class TelegramSource(SourceAdapter):
    """
    Channel posts seen by a bot (bot is admin of the channel, or posts are
    forwarded to it). getUpdates is consumed with an offset so each post is
    delivered once per process.
    """

    name = "telegram"
    API_BASE = "https://api.telegram.org"

    def __init__(self, bot_token: str, keywords: List[str], max_items: int = 20, **kwargs):
        if not bot_token:
            raise ValueError("Telegram bot token is required")
        super().__init__(**kwargs)
        self.bot_token = bot_token
        self.keywords = [k.lower() for k in keywords]
        self.max_items = max_items
        self.last_update_id = 0

    async def _fetch(self, query: Optional[str]) -> List[RawItem]:
        params = {
            "offset": self.last_update_id + 1,
            "limit": 100,
            "allowed_updates": json.dumps(["message", "channel_post"]),
        }
        async with self._client() as client:
            response = await client.get(f"{self.API_BASE}/bot{self.bot_token}/getUpdates", params=params)
            response.raise_for_status()
            data = response.json()

        if not data.get("ok"):
            raise RuntimeError(f"Telegram API error: {data.get('description')}")

        items = []
        for update in data.get("result", []):
            self.last_update_id = max(self.last_update_id, update.get("update_id", 0))
            message = update.get("channel_post") or update.get("message")
            if not message:
                continue
            item = self.message_to_item(message)
            if item is not None:
                items.append(item)
        return items[: self.max_items]

    def is_relevant(self, text: str) -> bool:
        lowered = text.lower()
        return any(k in lowered for k in self.keywords)

    def message_to_item(self, message: Dict[str, Any]) -> Optional[RawItem]:
        chat = message.get("chat") or {}
        forwarded = message.get("forward_from_chat") or {}
        if chat.get("type") != "channel" and not forwarded:
            return None

        text = message.get("text") or message.get("caption") or ""
        if len(text) < MIN_POST_LENGTH or not self.is_relevant(text):
            return None

        channel_name = chat.get("title") or forwarded.get("title") or "Unknown Channel"
        username = chat.get("username") or forwarded.get("username")
        message_id = message.get("message_id")
        if username:
            url = f"https://t.me/{username}/{message_id}"
        else:
            url = f"https://t.me/c/{abs(chat.get('id', 0))}/{message_id}"

        title = short_title(text)
        return RawItem(
            title=title,
            summary=title,
            content=text,
            source=self.name,
            source_url=url,
            channel_name=channel_name,
            published_at=parse_datetime(message.get("date")),
            topics=HASHTAG_PATTERN.findall(text),
        )


# ══════════════════════════════════════════════════════════════════════════════
# TWITTER (via Apify)
# ══════════════════════════════════════════════════════════════════════════════

class TwitterSource(SourceAdapter):
    """Tweets matching hashtag search terms, scraped by an Apify actor."""

    name = "twitter"
    API_BASE = "https://api.apify.com/v2"

    def __init__(
        self,
        api_token: str,
        search_terms: List[str],
        actor_id: str = "apidojo~tweet-scraper",
        max_items: int = 30,
        **kwargs,
    ):
        if not api_token:
            raise ValueError("Apify API token is required")
        kwargs.setdefault("timeout", 120.0)
        super().__init__(**kwargs)
        self.api_token = api_token
        self.search_terms = search_terms
        self.actor_id = actor_id
        self.max_items = max_items

    async def _fetch(self, query: Optional[str]) -> List[RawItem]:
        terms = [query] if query else self.search_terms[:3]
        url = f"{self.API_BASE}/acts/{self.actor_id}/run-sync-get-dataset-items"
        async with self._client() as client:
            response = await client.post(
                url,
                params={"token": self.api_token},
                json={"searchTerms": terms, "maxItems": self.max_items},
            )
            response.raise_for_status()
            tweets = response.json()

        items = []
        for tweet in tweets if isinstance(tweets, list) else []:
            item = self.tweet_to_item(tweet)
            if item is not None:
                items.append(item)
        return items

    def tweet_to_item(self, tweet: Dict[str, Any]) -> Optional[RawItem]:
        text = tweet.get("full_text") or tweet.get("fullText") or tweet.get("text") or ""
        tweet_id = tweet.get("id")
        if not tweet_id or not text:
            return None

        author = tweet.get("user") or tweet.get("author") or {}
        username = author.get("screen_name") or author.get("userName") or author.get("username") or "unknown"
        title = short_title(text)
        return RawItem(
            title=title,
            summary=title,
            content=text,
            source=self.name,
            source_url=tweet.get("url") or f"https://twitter.com/{username}/status/{tweet_id}",
            channel_name=username,
            published_at=parse_datetime(tweet.get("created_at") or tweet.get("createdAt")),
            topics=HASHTAG_PATTERN.findall(text),
        )
