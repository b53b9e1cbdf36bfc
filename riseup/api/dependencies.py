"""FastAPI dependency injection -- Depends() patterns using app.state from lifespan."""

import secrets
from typing import Annotated, Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, Response

from riseup.config import Settings
from riseup.container import ServiceContainer
from riseup.ratelimit import generate_identifier, get_client_ip, rate_limit_headers


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_app_settings(request: Request) -> Settings:
    return request.app.state.container.settings


def client_identifier(request: Request) -> str:
    ip = get_client_ip(request.headers)
    if ip == "unknown" and request.client is not None:
        ip = request.client.host
    return generate_identifier(ip, request.headers.get("user-agent"))


def rate_limited(name: str) -> Callable:
    """Dependency that consumes one unit of the `name` limiter's quota.

    Allowed requests get the X-RateLimit-* headers on their response;
    denied requests end here with a 429.
    """

    async def _check(request: Request, response: Response) -> None:
        container = get_container(request)
        limiter = container.limiter(name)
        result = await limiter.check_limit_with_result(client_identifier(request))
        headers = rate_limit_headers(result, limiter.config)
        if not result.allowed:
            raise HTTPException(
                status_code=429,
                detail={"error": "Too many requests", "retry_after": result.retry_after},
                headers=headers,
            )
        response.headers.update(headers)

    return _check


async def verify_cron_secret(
    request: Request,
    authorization: Annotated[Optional[str], Header()] = None,
):
    """Bearer gate for the refresh trigger. Empty CRON_SECRET = dev mode (all requests pass)."""
    required = get_app_settings(request).cron_secret
    if not required:
        return
    expected = f"Bearer {required}"
    if authorization is None or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


# Type aliases for cleaner route signatures
Container = Annotated[ServiceContainer, Depends(get_container)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
