"""
Rise Up news pipeline - Main Entry Point.
FastAPI server and CLI interface.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from riseup import __version__
from riseup.api import channels, health, incidents, news
from riseup.config import ConfigurationError, Settings, get_settings
from riseup.container import ServiceContainer, build_container

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

# Suppress noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(container: Optional[ServiceContainer] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. A prebuilt container is used as-is (tests); otherwise one is built at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.container = container or build_container(settings or get_settings())
        await app.state.container.start()
        try:
            yield
        finally:
            await app.state.container.aclose()

    app = FastAPI(
        title="Rise Up News API",
        description="News aggregation, deduplication and incident mapping",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(news.router, prefix="/api")
    app.include_router(incidents.router, prefix="/api")
    app.include_router(channels.router, prefix="/api")
    return app


async def run_refresh(settings: Settings) -> None:
    container = build_container(settings)
    try:
        result = await container.news.refresh()
        await container.news.drain()
    except ConfigurationError as e:
        logger.error(f"[FAIL] {e}")
        return
    finally:
        await container.aclose()

    print("\n" + "=" * 60)
    print("REFRESH RESULT")
    print("=" * 60)
    print(f"Articles added:      {result.articles_added}")
    print(f"Articles in window:  {result.articles_total}")
    print(f"Incidents extracted: {result.incidents_extracted}")
    print(f"Timestamp:           {result.timestamp.isoformat()}")
    print("=" * 60 + "\n")


async def run_cleanup(settings: Settings, days: int) -> None:
    container = build_container(settings)
    try:
        deleted = await container.news.cleanup(days)
    finally:
        await container.aclose()
    print(f"Deleted {deleted} articles older than {days} days")


# CLI Runner
async def cli_main():
    """Command-line interface for the pipeline."""
    import argparse

    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Rise Up news pipeline"
    )
    parser.add_argument(
        "--server",
        action="store_true",
        help="Start the FastAPI server"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.api_port,
        help=f"Server port (default: {settings.api_port})"
    )
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Run one ingestion cycle and exit"
    )
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Delete stored articles older than --days"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=settings.article_retention_days,
        help=f"Retention for --cleanup (default: {settings.article_retention_days})"
    )

    args = parser.parse_args()

    if args.cleanup:
        await run_cleanup(settings, args.days)
    elif args.refresh:
        await run_refresh(settings)
    elif args.server:
        import uvicorn
        logger.info(f"Starting server on port {args.port}...")
        config = uvicorn.Config(create_app(settings=settings), host="0.0.0.0", port=args.port)
        await uvicorn.Server(config).serve()
    else:
        parser.print_help()


def main():
    """Entry point for CLI."""
    asyncio.run(cli_main())


if __name__ == "__main__":
    main()
