"""Background job repository for database operations"""

from typing import Optional, List, Dict, Any, Iterable
from datetime import datetime, timezone
from uuid import UUID
import uuid

from sqlalchemy import select, update, and_, func
from sqlalchemy.exc import SQLAlchemyError

from backend.app.models.background_job import BackgroundJob, BackgroundJobStatus
from backend.app.core.database import AsyncSessionLocal
from backend.app.core.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_uuid(job_id) -> UUID:
    return job_id if isinstance(job_id, UUID) else uuid.UUID(str(job_id))


class BackgroundJobRepository:
    """Repository for the jobs table: claiming, progress and terminal states"""

    def __init__(self, session_factory=None):
        """
        Initialize background job repository

        Args:
            session_factory: Async session factory; one session is opened per operation
        """
        self.session_factory = session_factory or AsyncSessionLocal

    async def create_job(
        self,
        job_type: str,
        payload: Dict[str, Any],
        max_attempts: int = 3,
        job_id: str = None
    ) -> BackgroundJob:
        """
        Create a new pending job record

        Args:
            job_type: Type of background job
            payload: Input data for the job
            max_attempts: Resubmission ceiling
            job_id: Optional job ID (will generate if not provided)

        Returns:
            Created BackgroundJob instance
        """
        async with self.session_factory() as session:
            job = BackgroundJob(
                id=_as_uuid(job_id) if job_id else uuid.uuid4(),
                job_type=job_type,
                status=BackgroundJobStatus.PENDING,
                payload=payload,
                progress=0,
                attempt_count=0,
                max_attempts=max_attempts
            )

            session.add(job)
            await session.commit()
            await session.refresh(job)

            return job

    async def get_job_by_id(self, job_id) -> Optional[BackgroundJob]:
        """
        Get background job by ID

        Args:
            job_id: Job ID

        Returns:
            BackgroundJob instance or None if not found
        """
        async with self.session_factory() as session:
            stmt = select(BackgroundJob).where(BackgroundJob.id == _as_uuid(job_id))
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def claim_next_job(
        self,
        worker_id: str,
        job_types: Optional[Iterable[str]] = None,
        max_candidates: int = 5
    ) -> Optional[BackgroundJob]:
        """
        Atomically claim the oldest pending job for this worker

        Candidates are read with FOR UPDATE SKIP LOCKED (PostgreSQL) and each is
        then claimed with a conditional UPDATE that only matches while the row is
        still pending and unlocked. A job counts as claimed only when exactly one
        row changed, so two workers can never own the same job.

        Args:
            worker_id: Lock owner recorded on the job
            job_types: Optional restriction to these job types
            max_candidates: Pending rows to try before giving up for this poll

        Returns:
            The claimed job, or None if nothing could be claimed
        """
        async with self.session_factory() as session:
            stmt = (
                select(BackgroundJob.id)
                .where(
                    and_(
                        BackgroundJob.status == BackgroundJobStatus.PENDING,
                        BackgroundJob.locked_by.is_(None)
                    )
                )
                .order_by(BackgroundJob.created_at.asc())
                .limit(max_candidates)
                .with_for_update(skip_locked=True)
            )

            if job_types:
                stmt = stmt.where(BackgroundJob.job_type.in_(list(job_types)))

            result = await session.execute(stmt)
            candidate_ids = result.scalars().all()

            for candidate_id in candidate_ids:
                now = _utcnow()
                claim_stmt = (
                    update(BackgroundJob)
                    .where(
                        and_(
                            BackgroundJob.id == candidate_id,
                            BackgroundJob.status == BackgroundJobStatus.PENDING,
                            BackgroundJob.locked_by.is_(None)
                        )
                    )
                    .values(
                        status=BackgroundJobStatus.PROCESSING,
                        locked_by=worker_id,
                        locked_at=now,
                        started_at=now,
                        attempt_count=BackgroundJob.attempt_count + 1,
                        updated_at=now
                    )
                    .execution_options(synchronize_session=False)
                )
                claim_result = await session.execute(claim_stmt)

                if claim_result.rowcount == 1:
                    await session.commit()
                    job = await session.get(BackgroundJob, candidate_id, populate_existing=True)
                    logger.info(
                        f"Worker {worker_id} claimed job {candidate_id} ({job.job_type}), "
                        f"attempt {job.attempt_count}"
                    )
                    return job

            await session.commit()
            return None

    async def update_meta(self, job_id, meta: Any) -> bool:
        """
        Persist job metadata; write failures are logged, not raised

        Args:
            job_id: Job ID
            meta: JSON-serializable metadata

        Returns:
            True if the write succeeded
        """
        return await self._safe_update(job_id, {"meta": meta}, "meta")

    async def update_progress(self, job_id, progress: int, meta: Any) -> bool:
        """
        Persist job progress (clamped to 0-100) together with metadata

        Args:
            job_id: Job ID
            progress: Percent complete
            meta: JSON-serializable metadata

        Returns:
            True if the write succeeded
        """
        values = {"progress": max(0, min(int(progress), 100)), "meta": meta}
        return await self._safe_update(job_id, values, "progress")

    async def mark_completed(self, job_id, meta: Any = None) -> bool:
        """
        Move a job to `completed`: progress 100, error and lock cleared, finished_at stamped

        Args:
            job_id: Job ID
            meta: Final metadata

        Returns:
            True if the write succeeded
        """
        now = _utcnow()
        values = {
            "progress": 100,
            "status": BackgroundJobStatus.COMPLETED,
            "error": None,
            "locked_at": None,
            "locked_by": None,
            "finished_at": now,
            "meta": meta if meta is not None else {},
        }
        return await self._safe_update(job_id, values, "completed status")

    async def mark_failed(self, job_id, error_message: str) -> bool:
        """
        Move a job to `failed`: error recorded, lock cleared, finished_at left unset

        Args:
            job_id: Job ID
            error_message: Error shown to operators

        Returns:
            True if the write succeeded
        """
        values = {
            "status": BackgroundJobStatus.FAILED,
            "error": error_message,
            "locked_at": None,
            "locked_by": None,
        }
        return await self._safe_update(job_id, values, "failed status")

    async def requeue_failed_job(self, job_id) -> bool:
        """
        Resubmit a failed job while it is below its attempt ceiling

        Args:
            job_id: Job ID

        Returns:
            True if the job went back to `pending`
        """
        async with self.session_factory() as session:
            stmt = (
                update(BackgroundJob)
                .where(
                    and_(
                        BackgroundJob.id == _as_uuid(job_id),
                        BackgroundJob.status == BackgroundJobStatus.FAILED,
                        BackgroundJob.attempt_count < BackgroundJob.max_attempts
                    )
                )
                .values(
                    status=BackgroundJobStatus.PENDING,
                    error=None,
                    meta=None,
                    progress=0,
                    updated_at=_utcnow()
                )
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()

            requeued = result.rowcount == 1
            if requeued:
                logger.info(f"Requeued failed job {job_id}")
            else:
                logger.warning(f"Job {job_id} is not a failed job below its attempt ceiling")
            return requeued

    async def get_jobs_by_status(
        self,
        status: BackgroundJobStatus,
        limit: int = 100
    ) -> List[BackgroundJob]:
        """
        Get jobs by status

        Args:
            status: Job status to filter by
            limit: Maximum number of jobs to return

        Returns:
            List of BackgroundJob instances
        """
        async with self.session_factory() as session:
            stmt = (
                select(BackgroundJob)
                .where(BackgroundJob.status == status)
                .order_by(BackgroundJob.created_at.desc())
                .limit(limit)
            )

            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_job_statistics(self) -> Dict[str, int]:
        """
        Get job counts by status

        Returns:
            Dictionary with a count for every status
        """
        async with self.session_factory() as session:
            stmt = (
                select(BackgroundJob.status, func.count(BackgroundJob.id))
                .group_by(BackgroundJob.status)
            )
            result = await session.execute(stmt)
            counts = {status: count for status, count in result.all()}

            return {status.value: counts.get(status, 0) for status in BackgroundJobStatus}

    async def _safe_update(self, job_id, values: Dict[str, Any], what: str) -> bool:
        values = {**values, "updated_at": _utcnow()}
        try:
            async with self.session_factory() as session:
                stmt = (
                    update(BackgroundJob)
                    .where(BackgroundJob.id == _as_uuid(job_id))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                await session.execute(stmt)
                await session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error(f"[Job {job_id}] Failed to update job {what}: {e}")
            return False
