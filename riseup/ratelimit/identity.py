"""Client identifiers for rate limiting."""

import hashlib
from typing import Mapping, Optional


def generate_identifier(ip: str, user_agent: Optional[str] = None) -> str:
    """Combine client IP with a short hash of the user agent.

    Rotating the IP alone is not enough to get a fresh quota. The raw
    user agent is never part of the key.
    """
    client_ip = ip.split(",")[0].strip() or "unknown"
    ua_hash = hashlib.sha256((user_agent or "").encode("utf-8")).hexdigest()[:8]
    return f"{client_ip}:{ua_hash}"


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Best-effort client IP from proxy headers (Cloudflare, then generic proxies)."""
    cf_ip = headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return "unknown"
