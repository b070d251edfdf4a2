"""Site association: list every business matching a site's categories and cities"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.batching import chunked
from backend.app.core.logging import get_logger
from backend.app.models.background_job import BackgroundJob
from backend.app.repositories.background_job_repository import BackgroundJobRepository
from backend.app.repositories.site_repository import SiteRepository
from backend.app.schemas.background_job import (
    AssociateSiteBusinessesJobMeta,
    AssociateSiteBusinessesJobPayload,
    parse_job_payload,
    completion_note,
)

logger = get_logger(__name__)

UPSERT_BATCH_SIZE = 100


class AssociateSiteBusinessesProcessor:
    """Runs an `associate_site_businesses` job"""

    def __init__(
        self,
        job_repository: Optional[BackgroundJobRepository] = None,
        site_repository: Optional[SiteRepository] = None
    ):
        self.job_repository = job_repository or BackgroundJobRepository()
        self.site_repository = site_repository or SiteRepository()

    async def _complete_with_note(self, job: BackgroundJob, note: str) -> AssociateSiteBusinessesJobMeta:
        logger.info(f"[Job {job.id}] {note}, nothing to associate")
        await self.job_repository.mark_completed(job.id, completion_note(note))
        return AssociateSiteBusinessesJobMeta()

    async def process(self, job: BackgroundJob) -> AssociateSiteBusinessesJobMeta:
        """
        Intersect category and city membership, then upsert the site listings

        Store read failures propagate and fail the job. A failed upsert batch
        is counted and skipped.

        Args:
            job: Claimed job

        Returns:
            Final job metadata
        """
        payload: AssociateSiteBusinessesJobPayload = parse_job_payload(job.job_type, job.payload)
        site_id = payload.site_id

        logger.info(f"[Job {job.id}] Starting associate site businesses job for site {site_id}")

        category_ids = await self.site_repository.get_category_ids(site_id)
        logger.info(f"[Job {job.id}] Found {len(category_ids)} categories for site")
        if not category_ids:
            return await self._complete_with_note(job, "No categories configured for site")

        city_ids = await self.site_repository.get_city_ids(site_id)
        logger.info(f"[Job {job.id}] Found {len(city_ids)} cities for site")
        if not city_ids:
            return await self._complete_with_note(job, "No cities configured for site")

        category_business_ids = await self.site_repository.get_business_ids_in_categories(category_ids)
        logger.info(f"[Job {job.id}] Found {len(category_business_ids)} businesses in site categories")
        if not category_business_ids:
            return await self._complete_with_note(job, "No businesses found in site categories")

        business_ids = await self.site_repository.filter_business_ids_by_cities(category_business_ids, city_ids)
        logger.info(f"[Job {job.id}] Found {len(business_ids)} businesses matching both city and category")
        if not business_ids:
            return await self._complete_with_note(job, "No matching businesses found")

        total = len(business_ids)
        meta = AssociateSiteBusinessesJobMeta(total_businesses=total)
        await self.job_repository.update_meta(job.id, meta.model_dump())

        attempted = 0
        for batch_number, batch in enumerate(chunked(business_ids, UPSERT_BATCH_SIZE), start=1):
            try:
                await self.site_repository.add_site_businesses(site_id, batch)
                meta.associated_businesses += len(batch)
            except SQLAlchemyError as e:
                meta.failed_batches += 1
                logger.error(f"[Job {job.id}] Failed to insert batch {batch_number}: {e}")

            attempted += len(batch)
            progress = round(attempted / total * 100)
            await self.job_repository.update_progress(job.id, progress, meta.model_dump())
            logger.info(f"[Job {job.id}] Progress: {meta.associated_businesses}/{total} ({progress}%)")

        logger.info(f"[Job {job.id}] Completed associating {meta.associated_businesses} businesses with site")
        await self.job_repository.mark_completed(job.id, meta.model_dump())
        return meta
