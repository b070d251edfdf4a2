#!/usr/bin/env python3
"""Background worker script for processing directory ingestion jobs"""

import asyncio
import logging
import signal
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backend.app.core.config import settings
from backend.app.core.logging import setup_logging
from backend.app.models.background_job import BackgroundJob, JobType
from backend.app.services.background_processor import background_processor, task_handler
from backend.app.services.processors import (
    GooglePlacesSearchProcessor,
    RefreshSiteBusinessesProcessor,
    AssociateSiteBusinessesProcessor,
    SyncBusinessesToSearchProcessor,
)

logger = logging.getLogger(__name__)


@task_handler(JobType.GOOGLE_PLACES_SEARCH.value)
async def handle_google_places_search(job: BackgroundJob) -> None:
    """Search the places API and ingest every result"""
    await GooglePlacesSearchProcessor().process(job)


@task_handler(JobType.REFRESH_SITE_BUSINESSES.value)
async def handle_refresh_site_businesses(job: BackgroundJob) -> None:
    """Re-fetch every business listed on a site"""
    await RefreshSiteBusinessesProcessor().process(job)


@task_handler(JobType.ASSOCIATE_SITE_BUSINESSES.value)
async def handle_associate_site_businesses(job: BackgroundJob) -> None:
    """List matching businesses on a site"""
    await AssociateSiteBusinessesProcessor().process(job)


@task_handler(JobType.SYNC_BUSINESSES_TO_SEARCH.value)
async def handle_sync_businesses_to_search(job: BackgroundJob) -> None:
    """Push a site's businesses into the search index"""
    await SyncBusinessesToSearchProcessor().process(job)


class WorkerManager:
    """Manager for background worker loops"""

    def __init__(self, num_workers: int = 1, once: bool = False):
        self.num_workers = num_workers
        self.once = once
        self.shutdown_event = asyncio.Event()

    async def start(self):
        """Start the worker manager"""
        logger.info(f"Starting worker manager with {self.num_workers} workers")

        loop = asyncio.get_running_loop()
        for sig in [signal.SIGTERM, signal.SIGINT]:
            loop.add_signal_handler(sig, self._signal_handler, sig)

        try:
            await background_processor.start_workers(self.num_workers, once=self.once)

            if self.once:
                await background_processor.wait()
            else:
                await self.shutdown_event.wait()

        except Exception as e:
            logger.error(f"Worker manager error: {e}")
            raise
        finally:
            await background_processor.stop_workers()
            logger.info("Worker manager stopped")

    def _signal_handler(self, signum):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, initiating shutdown")
        self.shutdown_event.set()
        if self.once:
            background_processor.is_running = False


async def main():
    """Main worker entry point"""
    import argparse

    parser = argparse.ArgumentParser(description="Directory ingestion background worker")
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.WORKER_CONCURRENCY,
        help=f"Number of concurrent worker loops (default: {settings.WORKER_CONCURRENCY})"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL,
        help=f"Log level (default: {settings.LOG_LEVEL})"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one job per worker loop, then exit"
    )

    args = parser.parse_args()

    setup_logging(args.log_level)

    if not settings.WORKER_ID:
        logger.error("WORKER_ID env var is required")
        sys.exit(1)

    logger.info("Starting directory ingestion worker")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Worker ID: {settings.WORKER_ID}")
    logger.info(f"Workers: {args.workers}")

    manager = WorkerManager(num_workers=args.workers, once=args.once)

    try:
        await manager.start()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Worker failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
