"""Search-and-ingest: text search the places API and upsert every result"""

from typing import Optional
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.logging import get_logger
from backend.app.models.background_job import BackgroundJob
from backend.app.models.review import ReviewSource
from backend.app.repositories.background_job_repository import BackgroundJobRepository
from backend.app.repositories.business_repository import BusinessRepository
from backend.app.repositories.city_repository import CityRepository
from backend.app.schemas.background_job import (
    GooglePlacesSearchJobMeta,
    GooglePlacesSearchJobPayload,
    parse_job_payload,
    completion_note,
)
from backend.app.services.city_cache import CityLookupCache, create_city_lookup_cache
from backend.app.services.places_client import (
    GooglePlacesClient,
    parse_address_components,
    build_business_values,
    build_review_rows,
)

logger = get_logger(__name__)


class GooglePlacesSearchProcessor:
    """Runs a `google_places_search` job"""

    def __init__(
        self,
        job_repository: Optional[BackgroundJobRepository] = None,
        business_repository: Optional[BusinessRepository] = None,
        city_repository: Optional[CityRepository] = None,
        places_client: Optional[GooglePlacesClient] = None
    ):
        self.job_repository = job_repository or BackgroundJobRepository()
        self.business_repository = business_repository or BusinessRepository()
        self.city_repository = city_repository or CityRepository()
        self.places_client = places_client

    async def process(self, job: BackgroundJob) -> GooglePlacesSearchJobMeta:
        """
        Search, then fetch and upsert each place one at a time

        Args:
            job: Claimed job

        Returns:
            Final job metadata
        """
        payload: GooglePlacesSearchJobPayload = parse_job_payload(job.job_type, job.payload)

        if self.places_client is not None:
            return await self._run(job, payload, self.places_client)

        async with GooglePlacesClient() as places_client:
            return await self._run(job, payload, places_client)

    async def _run(
        self,
        job: BackgroundJob,
        payload: GooglePlacesSearchJobPayload,
        places_client: GooglePlacesClient
    ) -> GooglePlacesSearchJobMeta:
        logger.info(f"[Job {job.id}] Starting Google Places search job")
        logger.info(f'[Job {job.id}] Query: "{payload.query_text}", category: {payload.category_id}')
        if payload.site_id:
            logger.info(f"[Job {job.id}] Site ID: {payload.site_id}")

        place_ids = await places_client.search_text(payload.query_text)

        if not place_ids:
            logger.info(f"[Job {job.id}] No places found for query")
            await self.job_repository.mark_completed(job.id, completion_note("No places found for query"))
            return GooglePlacesSearchJobMeta()

        total = len(place_ids)
        logger.info(f"[Job {job.id}] Found {total} place(s) to process")

        meta = GooglePlacesSearchJobMeta(total_places=total, place_ids=list(place_ids))
        await self.job_repository.update_meta(job.id, meta.model_dump())

        city_cache = create_city_lookup_cache(self.city_repository)

        for index, place_id in enumerate(place_ids):
            logger.info(f"[Job {job.id}] Processing place {index + 1}/{total} ({place_id})")

            if await self._ingest_place(job, payload, places_client, city_cache, place_id):
                meta.processed_places += 1
                meta.processed_place_ids.append(place_id)
            else:
                meta.failed_place_ids.append(place_id)

            progress = round((index + 1) / total * 100)
            await self.job_repository.update_progress(job.id, progress, meta.model_dump())
            logger.info(f"[Job {job.id}] Progress: {index + 1}/{total} ({progress}%)")

        logger.info(
            f"[Job {job.id}] Completed processing {meta.processed_places}/{total} place(s), "
            f"{len(meta.failed_place_ids)} failed"
        )
        await self.job_repository.mark_completed(job.id, meta.model_dump())
        return meta

    async def _ingest_place(
        self,
        job: BackgroundJob,
        payload: GooglePlacesSearchJobPayload,
        places_client: GooglePlacesClient,
        city_cache: CityLookupCache,
        place_id: str
    ) -> bool:
        """
        Fetch one place and write its business, category link, listing and reviews

        Returns:
            False if the place was skipped
        """
        try:
            response = await places_client.get_place_details(place_id)
            if not response.is_success:
                logger.error(
                    f"[Job {job.id}] Failed to fetch place details for {place_id}: "
                    f"{response.status_code} {response.text}"
                )
                return False

            place = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[Job {job.id}] Failed to fetch place details for {place_id}: {e!r}")
            return False

        address = parse_address_components(place.get("addressComponents"))

        try:
            city_id = await city_cache.lookup_city_id(address["city"], address["state"])
            business_id = await self.business_repository.upsert_business(
                build_business_values(place, address, city_id)
            )
        except SQLAlchemyError as e:
            logger.error(f"[Job {job.id}] Failed to upsert business for {place_id}: {e}")
            return False

        business_name = (place.get("displayName") or {}).get("text") or "Unknown"
        logger.info(f'[Job {job.id}] Upserted business "{business_name}" (ID: {business_id})')

        try:
            await self.business_repository.upsert_business_category(business_id, payload.category_id)
        except SQLAlchemyError as e:
            # The business row stays; a later run re-links it
            logger.error(
                f'[Job {job.id}] Failed to link category {payload.category_id} '
                f'to "{business_name}" ({business_id}): {e}'
            )
            return False

        if payload.site_id:
            await self._link_site(job, payload.site_id, business_id, business_name)

        await self._store_reviews(job, business_id, business_name, place)
        return True

    async def _link_site(self, job: BackgroundJob, site_id: UUID, business_id: UUID, business_name: str) -> None:
        try:
            await self.business_repository.upsert_site_business(site_id, business_id)
            logger.info(f'[Job {job.id}] Associated "{business_name}" with site {site_id}')
        except SQLAlchemyError as e:
            logger.error(f'[Job {job.id}] Failed to associate "{business_name}" with site {site_id}: {e}')

    async def _store_reviews(self, job: BackgroundJob, business_id: UUID, business_name: str, place: dict) -> None:
        reviews = build_review_rows(business_id, place)
        if not reviews:
            logger.info(f'[Job {job.id}] No reviews found for "{business_name}"')
            return

        try:
            await self.business_repository.upsert_reviews(reviews)
            await self.business_repository.upsert_review_source(
                business_id,
                ReviewSource.GOOGLE_PLACES.value,
                rating=place.get("rating"),
                review_count=place.get("userRatingCount") or 0,
                url=place.get("googleMapsUri")
            )
            logger.info(f'[Job {job.id}] Stored {len(reviews)} review(s) for "{business_name}"')
        except SQLAlchemyError as e:
            logger.error(f'[Job {job.id}] Failed to store reviews for "{business_name}" ({business_id}): {e}')
