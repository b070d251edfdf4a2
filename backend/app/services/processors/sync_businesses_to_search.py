"""Search sync: push a site's businesses into the search index"""

from typing import Optional, List

import httpx

from backend.app.core.batching import chunked
from backend.app.core.exceptions import SearchIndexException
from backend.app.core.logging import get_logger
from backend.app.models.background_job import BackgroundJob
from backend.app.models.business import Business
from backend.app.models.review import ReviewSource
from backend.app.repositories.background_job_repository import BackgroundJobRepository
from backend.app.repositories.business_repository import BusinessRepository
from backend.app.repositories.site_repository import SiteRepository
from backend.app.schemas.background_job import (
    SyncBusinessesToSearchJobMeta,
    SyncBusinessesToSearchJobPayload,
    parse_job_payload,
    completion_note,
)
from backend.app.services.search_index import (
    SearchIndexClient,
    BUSINESSES_COLLECTION,
    BUSINESSES_SCHEMA,
    build_business_document,
)

logger = get_logger(__name__)

PAGE_SIZE = 1000
IMPORT_BATCH_SIZE = 100


class SyncBusinessesToSearchProcessor:
    """Runs a `sync_businesses_to_search` job"""

    def __init__(
        self,
        job_repository: Optional[BackgroundJobRepository] = None,
        business_repository: Optional[BusinessRepository] = None,
        site_repository: Optional[SiteRepository] = None,
        search_client: Optional[SearchIndexClient] = None
    ):
        self.job_repository = job_repository or BackgroundJobRepository()
        self.business_repository = business_repository or BusinessRepository()
        self.site_repository = site_repository or SiteRepository()
        self.search_client = search_client

    async def process(self, job: BackgroundJob) -> SyncBusinessesToSearchJobMeta:
        """
        Upsert one search document per business listed on the site

        Args:
            job: Claimed job

        Returns:
            Final job metadata
        """
        payload: SyncBusinessesToSearchJobPayload = parse_job_payload(job.job_type, job.payload)

        if self.search_client is not None:
            return await self._run(job, payload, self.search_client)

        async with SearchIndexClient.from_settings() as search_client:
            return await self._run(job, payload, search_client)

    async def _load_site_businesses(self, payload: SyncBusinessesToSearchJobPayload) -> List[Business]:
        businesses: List[Business] = []
        offset = 0
        while True:
            page = await self.site_repository.get_site_businesses(payload.site_id, offset, PAGE_SIZE)
            businesses.extend(page)
            if len(page) < PAGE_SIZE:
                return businesses
            offset += PAGE_SIZE

    async def _run(
        self,
        job: BackgroundJob,
        payload: SyncBusinessesToSearchJobPayload,
        search_client: SearchIndexClient
    ) -> SyncBusinessesToSearchJobMeta:
        logger.info(
            f"[Job {job.id}] Starting sync businesses to search job "
            f"(site {payload.site_id}, full resync: {payload.full_resync})"
        )

        if await search_client.ensure_collection(BUSINESSES_SCHEMA):
            logger.info(f'[Job {job.id}] Created collection "{BUSINESSES_COLLECTION}"')
        else:
            logger.info(f'[Job {job.id}] Collection "{BUSINESSES_COLLECTION}" exists')

        businesses = await self._load_site_businesses(payload)
        if not businesses:
            logger.info(f"[Job {job.id}] No businesses found for site")
            await self.job_repository.mark_completed(job.id, completion_note("No businesses to sync"))
            return SyncBusinessesToSearchJobMeta(full_resync=payload.full_resync)

        total = len(businesses)
        logger.info(f"[Job {job.id}] Found {total} businesses to sync")

        business_ids = [business.id for business in businesses]
        category_map = await self.business_repository.get_category_map(business_ids)
        site_map = await self.business_repository.get_site_membership_map(business_ids)
        review_map = await self.business_repository.get_review_source_map(
            business_ids, ReviewSource.GOOGLE_PLACES.value
        )

        meta = SyncBusinessesToSearchJobMeta(total_businesses=total, full_resync=payload.full_resync)
        await self.job_repository.update_meta(job.id, meta.model_dump())

        attempted = 0
        for batch in chunked(businesses, IMPORT_BATCH_SIZE):
            documents = [
                build_business_document(
                    business,
                    categories=category_map.get(business.id, []),
                    site_ids=site_map.get(business.id, []),
                    review_source=review_map.get(business.id)
                )
                for business in batch
            ]

            try:
                results = await search_client.import_documents(BUSINESSES_COLLECTION, documents, action="upsert")
                failures = [result for result in results if not result.get("success")]
                meta.synced_businesses += len(documents) - len(failures)
                meta.failed_businesses += len(failures)
                if failures:
                    logger.error(
                        f"[Job {job.id}] {len(failures)} document(s) rejected by the index: "
                        f"{failures[0].get('error')}"
                    )
            except (SearchIndexException, httpx.HTTPError, ValueError) as e:
                meta.failed_businesses += len(documents)
                logger.error(f"[Job {job.id}] Failed to sync batch: {e}")

            attempted += len(batch)
            progress = round(attempted / total * 100)
            await self.job_repository.update_progress(job.id, progress, meta.model_dump())
            logger.info(f"[Job {job.id}] Progress: {meta.synced_businesses}/{total} ({progress}%)")

        logger.info(f"[Job {job.id}] Completed syncing {meta.synced_businesses} businesses to search")
        await self.job_repository.mark_completed(job.id, meta.model_dump())
        return meta
