"""Health check router -- source, storage and limiter configuration summary."""

from datetime import datetime, timezone

from fastapi import APIRouter

from riseup import __version__
from riseup.api.dependencies import Container

router = APIRouter()


@router.get("/")
async def root():
    return {"service": "Rise Up News API", "version": __version__}


@router.get("/health")
async def health(container: Container):
    settings = container.settings
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sources": [s.name for s in container.news.sources],
        "geocoder": container.geocoder.stats(),
        "config": {
            # Dedup
            "dedup_similarity_threshold": settings.dedup_similarity_threshold,
            "dedup_num_bands": settings.dedup_num_bands,
            "dedup_window_hours": settings.dedup_window_hours,
            # Incidents
            "incident_min_confidence": settings.incident_min_confidence,
            # Side effects
            "notifications_enabled": bool(settings.notify_webhook_url),
            "rate_limit_backend": "redis" if container.redis is not None else "memory",
            "rate_limits": {
                name: {
                    "max_requests": limiter.config.max_requests,
                    "window_ms": limiter.config.window_ms,
                    "fail_mode": limiter.config.fail_mode,
                }
                for name, limiter in container.limiters.items()
            },
        },
    }
