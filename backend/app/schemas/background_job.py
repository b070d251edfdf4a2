"""Background job payload and metadata schemas"""

from typing import Optional, Dict, Any, List, Type
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, ValidationError

from backend.app.models.background_job import JobType
from backend.app.core.exceptions import ValidationException


class JobPayload(BaseModel):
    """Base payload; accepts the camelCase keys written by the admin UI"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GooglePlacesSearchJobPayload(JobPayload):
    """Payload for a places search-and-ingest job"""
    query_text: str = Field(..., alias="queryText", min_length=1, description="Free-text places query")
    category_id: UUID = Field(..., alias="categoryId", description="Category to link ingested businesses to")
    site_id: Optional[UUID] = Field(None, alias="siteId", description="Optional site to list businesses on")
    vertical_id: Optional[UUID] = Field(None, alias="verticalId", description="Vertical the query belongs to")


class RefreshSiteBusinessesJobPayload(JobPayload):
    """Payload for re-fetching every business on a site"""
    site_id: UUID = Field(..., alias="siteId")


class AssociateSiteBusinessesJobPayload(JobPayload):
    """Payload for backfilling site listings from category/city membership"""
    site_id: UUID = Field(..., alias="siteId")


class SyncBusinessesToSearchJobPayload(JobPayload):
    """Payload for pushing a site's businesses into the search index"""
    site_id: UUID = Field(..., alias="siteId")
    full_resync: bool = Field(False, alias="fullResync")


PAYLOAD_SCHEMAS: Dict[str, Type[JobPayload]] = {
    JobType.GOOGLE_PLACES_SEARCH.value: GooglePlacesSearchJobPayload,
    JobType.REFRESH_SITE_BUSINESSES.value: RefreshSiteBusinessesJobPayload,
    JobType.ASSOCIATE_SITE_BUSINESSES.value: AssociateSiteBusinessesJobPayload,
    JobType.SYNC_BUSINESSES_TO_SEARCH.value: SyncBusinessesToSearchJobPayload,
}


def parse_job_payload(job_type: str, payload: Optional[Dict[str, Any]]) -> JobPayload:
    """
    Validate a raw job payload against the schema for its job type

    Args:
        job_type: Job kind tag
        payload: Raw JSON payload from the jobs table

    Returns:
        Validated payload model

    Raises:
        ValidationException: If the job type is unknown or the payload is invalid
    """
    schema = PAYLOAD_SCHEMAS.get(job_type)
    if schema is None:
        raise ValidationException(f"Unknown job type: {job_type}")

    try:
        return schema.model_validate(payload or {})
    except ValidationError as e:
        errors = e.errors(include_url=False)
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}"
            for error in errors
        )
        raise ValidationException(
            f"Invalid payload for {job_type}: {problems}",
            details={"errors": errors}
        )


class GooglePlacesSearchJobMeta(BaseModel):
    """Progress bookkeeping for a places search job"""
    total_places: int = 0
    processed_places: int = 0
    place_ids: List[str] = Field(default_factory=list)
    processed_place_ids: List[str] = Field(default_factory=list)
    failed_place_ids: List[str] = Field(default_factory=list)


class RefreshSiteBusinessesJobMeta(BaseModel):
    """Progress bookkeeping for a refresh job"""
    total_businesses: int = 0
    refreshed_businesses: int = 0
    skipped_businesses: int = 0
    failed_business_ids: List[str] = Field(default_factory=list)


class AssociateSiteBusinessesJobMeta(BaseModel):
    """Progress bookkeeping for a site association job"""
    total_businesses: int = 0
    associated_businesses: int = 0
    failed_batches: int = 0


class SyncBusinessesToSearchJobMeta(BaseModel):
    """Progress bookkeeping for a search sync job"""
    total_businesses: int = 0
    synced_businesses: int = 0
    failed_businesses: int = 0
    full_resync: bool = False


def completion_note(note: str) -> Dict[str, Any]:
    """Metadata for a job that finished with nothing to do"""
    return {"note": note}
