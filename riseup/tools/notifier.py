"""
New-article notifications.

The orchestrator calls notify() in a background task and never waits on
it; these classes only have to report what happened. Delivery failures
come back as NotificationResult(success=False), never as exceptions.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from riseup.schemas import StoredArticle

logger = logging.getLogger(__name__)


@dataclass
class NotificationResult:
    success: bool
    sent_count: int = 0
    error: Optional[str] = None


def build_message(articles: Sequence[StoredArticle]) -> tuple:
    """(title, message) for a batch of new articles."""
    if len(articles) == 1:
        return "New Article", articles[0].title
    return f"{len(articles)} New Articles", f"{articles[0].title} and {len(articles) - 1} more"


class NoopNotifier:
    """Used when no delivery channel is configured."""

    async def notify(self, articles: Sequence[StoredArticle]) -> NotificationResult:
        return NotificationResult(success=True, sent_count=0)


class WebhookNotifier:
    """POSTs {title, message, url, count} to a push gateway."""

    def __init__(
        self,
        webhook_url: str,
        link_url: str = "/",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.link_url = link_url
        self.timeout = timeout
        self._transport = transport

    async def notify(self, articles: Sequence[StoredArticle]) -> NotificationResult:
        if not articles:
            return NotificationResult(success=True, sent_count=0)

        title, message = build_message(articles)
        payload = {"title": title, "message": message, "url": self.link_url, "count": len(articles)}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"[FAIL] Notification delivery: {e}")
            return NotificationResult(success=False, error=str(e))

        sent = 1
        try:
            body = response.json()
            if isinstance(body, dict) and isinstance(body.get("sent"), int):
                sent = body["sent"]
        except ValueError:
            pass
        logger.info(f"Sent new-article notification to {sent} subscriber(s)")
        return NotificationResult(success=True, sent_count=sent)
