"""News router -- refresh trigger, latest articles, search."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from riseup.api.dependencies import Container, rate_limited, verify_cron_secret
from riseup.api.schemas import ArticleResponse, NewsListResponse, RefreshResponse, SearchResponse
from riseup.config import ConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/news/refresh",
    response_model=RefreshResponse,
    dependencies=[Depends(verify_cron_secret), Depends(rate_limited("refresh"))],
)
async def refresh_news(container: Container):
    """Run one ingestion cycle. Called by the scheduler."""
    try:
        result = await container.news.refresh()
    except ConfigurationError as e:
        logger.error(f"[FAIL] refresh: {e}")
        raise HTTPException(status_code=503, detail={"error": str(e)})
    return RefreshResponse(**result.model_dump())


@router.get("/news", response_model=NewsListResponse)
async def list_news(
    container: Container,
    hours: int = Query(24, ge=1, le=24 * 30),
    limit: int = Query(50, ge=1, le=200),
):
    articles = await container.news.latest(hours, limit)
    return NewsListResponse(
        articles=[ArticleResponse.from_article(a) for a in articles],
        count=len(articles),
    )


@router.get(
    "/search",
    response_model=SearchResponse,
    dependencies=[Depends(rate_limited("search"))],
)
async def search_news(
    container: Container,
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(20, ge=1, le=100),
):
    results = await container.news.search(q, limit)
    return SearchResponse(
        query=q,
        results=[ArticleResponse.from_article(a) for a in results],
        count=len(results),
    )
