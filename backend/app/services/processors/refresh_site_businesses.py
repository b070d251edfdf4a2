"""Refresh: re-fetch every business listed on a site from the places API"""

import asyncio
from typing import Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.logging import get_logger
from backend.app.models.background_job import BackgroundJob
from backend.app.models.review import ReviewSource
from backend.app.repositories.background_job_repository import BackgroundJobRepository
from backend.app.repositories.business_repository import BusinessRepository
from backend.app.repositories.city_repository import CityRepository
from backend.app.repositories.site_repository import SiteRepository, SiteListing
from backend.app.schemas.background_job import (
    RefreshSiteBusinessesJobMeta,
    RefreshSiteBusinessesJobPayload,
    parse_job_payload,
    completion_note,
)
from backend.app.services.city_cache import CityLookupCache, create_city_lookup_cache
from backend.app.services.places_client import (
    GooglePlacesClient,
    parse_address_components,
    build_business_values,
    build_review_rows,
    main_photo_name,
)

logger = get_logger(__name__)

PAGE_SIZE = 500
BATCH_SIZE = 10
BATCH_DELAY_SECONDS = 0.5


def claimed_business_update(place: Dict[str, Any]) -> Dict[str, Any]:
    """Fields a refresh may write on a claimed business"""
    values: Dict[str, Any] = {"raw": place}
    photo = main_photo_name(place)
    if photo:
        values["main_photo_name"] = photo
    return values


def unclaimed_business_update(place: Dict[str, Any], address: Dict[str, str], city_id) -> Dict[str, Any]:
    """
    Every provider-sourced field of an unclaimed business

    Missing values are left out so stored data is never blanked, except
    city_id which always follows the re-resolved address.
    """
    values = build_business_values(place, address, city_id)
    values.pop("place_id")
    if not (place.get("displayName") or {}).get("text"):
        values.pop("name")

    return {
        key: value
        for key, value in values.items()
        if value is not None or key == "city_id"
    }


class RefreshSiteBusinessesProcessor:
    """Runs a `refresh_site_businesses` job"""

    def __init__(
        self,
        job_repository: Optional[BackgroundJobRepository] = None,
        business_repository: Optional[BusinessRepository] = None,
        site_repository: Optional[SiteRepository] = None,
        city_repository: Optional[CityRepository] = None,
        places_client: Optional[GooglePlacesClient] = None
    ):
        self.job_repository = job_repository or BackgroundJobRepository()
        self.business_repository = business_repository or BusinessRepository()
        self.site_repository = site_repository or SiteRepository()
        self.city_repository = city_repository or CityRepository()
        self.places_client = places_client

    async def process(self, job: BackgroundJob) -> RefreshSiteBusinessesJobMeta:
        """
        Refresh a site's businesses page by page in small concurrent batches

        Args:
            job: Claimed job

        Returns:
            Final job metadata
        """
        payload: RefreshSiteBusinessesJobPayload = parse_job_payload(job.job_type, job.payload)

        if self.places_client is not None:
            return await self._run(job, payload, self.places_client)

        async with GooglePlacesClient() as places_client:
            return await self._run(job, payload, places_client)

    async def _run(
        self,
        job: BackgroundJob,
        payload: RefreshSiteBusinessesJobPayload,
        places_client: GooglePlacesClient
    ) -> RefreshSiteBusinessesJobMeta:
        logger.info(f"[Job {job.id}] Starting refresh site businesses job for site {payload.site_id}")

        total = await self.site_repository.count_site_businesses(payload.site_id)
        if not total:
            logger.info(f"[Job {job.id}] No businesses found for site")
            await self.job_repository.mark_completed(job.id, completion_note("No businesses to refresh"))
            return RefreshSiteBusinessesJobMeta()

        logger.info(f"[Job {job.id}] Found {total} businesses to refresh")

        meta = RefreshSiteBusinessesJobMeta(total_businesses=total)
        await self.job_repository.update_meta(job.id, meta.model_dump())

        city_cache = create_city_lookup_cache(self.city_repository)
        processed = 0
        offset = 0

        while offset < total:
            listings = await self.site_repository.get_site_listings(payload.site_id, offset, PAGE_SIZE)
            if not listings:
                break

            refreshable = [listing for listing in listings if listing.place_id]
            skipped = len(listings) - len(refreshable)
            if skipped:
                meta.skipped_businesses += skipped
                processed += skipped
                logger.info(f"[Job {job.id}] Skipping {skipped} business(es) without a place id")

            for start in range(0, len(refreshable), BATCH_SIZE):
                batch = refreshable[start:start + BATCH_SIZE]

                results = await asyncio.gather(
                    *(self._refresh_business(job, places_client, city_cache, listing) for listing in batch),
                    return_exceptions=True
                )

                for listing, result in zip(batch, results):
                    if result is True:
                        meta.refreshed_businesses += 1
                    else:
                        meta.failed_business_ids.append(str(listing.business_id))
                        if isinstance(result, BaseException):
                            logger.error(
                                f"[Job {job.id}] Failed to refresh business {listing.business_id}: {result}"
                            )

                processed += len(batch)
                progress = round(processed / total * 100)
                await self.job_repository.update_progress(job.id, progress, meta.model_dump())
                logger.info(f"[Job {job.id}] Progress: {processed}/{total} ({progress}%)")

                if start + BATCH_SIZE < len(refreshable):
                    await asyncio.sleep(BATCH_DELAY_SECONDS)

            if not refreshable:
                progress = round(processed / total * 100)
                await self.job_repository.update_progress(job.id, progress, meta.model_dump())

            offset += PAGE_SIZE

        logger.info(f"[Job {job.id}] Completed refreshing {meta.refreshed_businesses}/{total} businesses")
        if meta.failed_business_ids:
            logger.warning(f"[Job {job.id}] Failed to refresh {len(meta.failed_business_ids)} businesses")

        await self.job_repository.mark_completed(job.id, meta.model_dump())
        return meta

    async def _refresh_business(
        self,
        job: BackgroundJob,
        places_client: GooglePlacesClient,
        city_cache: CityLookupCache,
        listing: SiteListing
    ) -> bool:
        """
        Re-fetch one business and write it back

        Returns:
            False if the place details could not be fetched
        """
        response = await places_client.get_place_details(listing.place_id)
        if not response.is_success:
            logger.error(
                f"[Job {job.id}] Failed to fetch place details for {listing.place_id}: "
                f"{response.status_code} {response.text}"
            )
            return False

        place = response.json()

        if listing.claimed:
            values = claimed_business_update(place)
        else:
            address = parse_address_components(place.get("addressComponents"))
            city_id = await city_cache.lookup_city_id(address["city"], address["state"])
            values = unclaimed_business_update(place, address, city_id)

        await self.business_repository.update_business(listing.business_id, values)

        reviews = build_review_rows(listing.business_id, place)
        try:
            await self.business_repository.upsert_reviews(reviews)
        except SQLAlchemyError as e:
            logger.error(f"[Job {job.id}] Failed to upsert reviews for business {listing.business_id}: {e}")

        try:
            await self.business_repository.upsert_review_source(
                listing.business_id,
                ReviewSource.GOOGLE_PLACES.value,
                rating=place.get("rating"),
                review_count=place.get("userRatingCount") or 0,
                url=place.get("googleMapsUri")
            )
        except SQLAlchemyError as e:
            logger.error(f"[Job {job.id}] Failed to upsert review source for business {listing.business_id}: {e}")

        logger.info(f"[Job {job.id}] Refreshed business {listing.business_id} ({listing.place_id})")
        return True
