"""Background processor service: claims jobs from the database and runs them"""

import asyncio
import traceback
from typing import Dict, Any, Optional, Callable, Awaitable, List

from backend.app.core.config import settings
from backend.app.core.exceptions import ConfigurationException
from backend.app.core.logging import get_logger
from backend.app.models.background_job import BackgroundJob
from backend.app.repositories.background_job_repository import BackgroundJobRepository

logger = get_logger(__name__)

TaskHandler = Callable[[BackgroundJob], Awaitable[Any]]


class BackgroundProcessor:
    """Service for polling the jobs table and dispatching claimed jobs by type"""

    def __init__(
        self,
        job_repository: Optional[BackgroundJobRepository] = None,
        worker_id: Optional[str] = None,
        poll_interval: Optional[float] = None,
        error_backoff: Optional[float] = None
    ):
        self.job_repository = job_repository or BackgroundJobRepository()
        self.worker_id = worker_id
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL_SECONDS
        self.error_backoff = error_backoff if error_backoff is not None else settings.WORKER_ERROR_BACKOFF_SECONDS
        self.task_handlers: Dict[str, TaskHandler] = {}
        self.is_running = False
        self.worker_tasks: List[asyncio.Task] = []

    def register_task_handler(self, task_type: str, handler: TaskHandler) -> None:
        """
        Register a handler function for a specific job type

        Args:
            task_type: Job type tag (e.g., 'google_places_search')
            handler: Async function taking the claimed job
        """
        self.task_handlers[task_type] = handler
        logger.info(f"Registered handler for task type: {task_type}")

    def _lock_owner(self, index: int, num_workers: int) -> str:
        worker_id = self.worker_id or settings.WORKER_ID
        if not worker_id:
            raise ConfigurationException("WORKER_ID")
        return worker_id if num_workers == 1 else f"{worker_id}-{index}"

    async def start_workers(self, num_workers: int = 1, once: bool = False) -> None:
        """
        Start worker loops

        Args:
            num_workers: Number of concurrent loops in this process
            once: Each loop makes one claim attempt, runs the job if any, then exits
        """
        if self.is_running:
            logger.warning("Workers are already running")
            return

        lock_owners = [self._lock_owner(i, num_workers) for i in range(num_workers)]

        self.is_running = True
        logger.info(f"Starting {num_workers} background workers")

        for lock_owner in lock_owners:
            worker_task = asyncio.create_task(
                self._worker_loop(lock_owner, once=once),
                name=f"background_worker_{lock_owner}"
            )
            self.worker_tasks.append(worker_task)

        logger.info(f"Started {num_workers} background workers")

    async def wait(self) -> None:
        """Wait until every worker loop has exited"""
        if self.worker_tasks:
            await asyncio.gather(*self.worker_tasks, return_exceptions=True)

    async def stop_workers(self) -> None:
        """Stop all background workers"""
        if not self.is_running:
            logger.warning("Workers are not running")
            return

        logger.info("Stopping background workers")
        self.is_running = False

        for task in self.worker_tasks:
            task.cancel()

        if self.worker_tasks:
            await asyncio.gather(*self.worker_tasks, return_exceptions=True)

        self.worker_tasks.clear()
        logger.info("Stopped all background workers")

    async def _worker_loop(self, lock_owner: str, once: bool = False) -> None:
        """
        Main worker loop: claim, dispatch, sleep when idle

        Args:
            lock_owner: Value written to locked_by for jobs this loop claims
            once: Exit after a single claim attempt
        """
        logger.info(f"Worker {lock_owner} started")

        while self.is_running:
            try:
                processed = await self.run_once(lock_owner)

                if once:
                    break

                if not processed:
                    await asyncio.sleep(self.poll_interval)

            except asyncio.CancelledError:
                logger.info(f"Worker {lock_owner} cancelled")
                break
            except Exception as e:
                logger.error(f"Worker {lock_owner} error: {e}")
                if once:
                    break
                await asyncio.sleep(self.error_backoff)

        logger.info(f"Worker {lock_owner} stopped")

    async def run_once(self, lock_owner: str) -> bool:
        """
        Claim and process at most one job

        Args:
            lock_owner: Value written to locked_by

        Returns:
            True if a job was claimed
        """
        job = await self.job_repository.claim_next_job(lock_owner)
        if job is None:
            return False

        await self._process_job(job, lock_owner)
        return True

    async def _process_job(self, job: BackgroundJob, lock_owner: str) -> None:
        """
        Route a claimed job to its handler; any exception fails the job

        Args:
            job: Claimed job
            lock_owner: Worker that holds the lock
        """
        log_extra = {"job_id": str(job.id), "job_type": job.job_type, "worker_id": lock_owner}
        logger.info(f"Worker {lock_owner} processing {job.job_type} (job_id: {job.id})", extra=log_extra)

        handler = self.task_handlers.get(job.job_type)
        if handler is None:
            error_message = f"No handler registered for job type: {job.job_type}"
            logger.error(f"[Job {job.id}] {error_message}", extra=log_extra)
            await self.job_repository.mark_failed(job.id, error_message)
            return

        try:
            await handler(job)
            logger.info(f"Worker {lock_owner} finished {job.job_type} (job_id: {job.id})", extra=log_extra)

        except Exception as e:
            error_message = str(e) or e.__class__.__name__
            logger.error(f"[Job {job.id}] Job failed: {error_message}", extra=log_extra)
            logger.debug(f"Job failure traceback: {traceback.format_exc()}")
            await self.job_repository.mark_failed(job.id, error_message)

    async def get_queue_stats(self) -> Dict[str, Any]:
        """
        Get job and worker statistics

        Returns:
            Dictionary with job counts per status and worker state
        """
        return {
            "database_jobs": await self.job_repository.get_job_statistics(),
            "workers_running": len(self.worker_tasks),
            "is_processing": self.is_running,
            "registered_job_types": sorted(self.task_handlers),
        }


# Global background processor instance
background_processor = BackgroundProcessor()


def task_handler(task_type: str, processor: Optional[BackgroundProcessor] = None):
    """
    Decorator to register a function as a task handler

    Args:
        task_type: Job type this handler processes
        processor: Processor to register with (defaults to the global instance)
    """
    def decorator(func: TaskHandler):
        (processor or background_processor).register_task_handler(task_type, func)
        return func
    return decorator
