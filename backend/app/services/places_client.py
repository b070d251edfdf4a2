"""Google Places (New) API client and place-to-row mapping"""

import asyncio
import uuid
from typing import Optional, Dict, Any, List
from uuid import UUID

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import ConfigurationException, ExternalServiceException
from backend.app.core.http_client import fetch_with_retry
from backend.app.core.logging import get_logger
from backend.app.models.review import ReviewSource

logger = get_logger(__name__)

PLACE_DETAILS_FIELD_MASK = ",".join([
    "id",
    "displayName",
    "formattedAddress",
    "addressComponents",
    "location",
    "websiteUri",
    "nationalPhoneNumber",
    "editorialSummary",
    "regularOpeningHours",
    "photos",
    "rating",
    "reviews",
    "googleMapsUri",
    "userRatingCount",
])

SEARCH_FIELD_MASK = "places.id,nextPageToken"

# The provider rejects a page token used immediately after it is issued
PAGE_DELAY_SECONDS = 1.5

# Address component type -> parsed field
ADDRESS_COMPONENT_TYPES = {
    "street_number": "street_number",
    "route": "route",
    "locality": "city",
    "administrative_area_level_1": "state",
    "postal_code": "postal_code",
}


class GooglePlacesClient:
    """Thin async client for text search and place details"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize places client

        Args:
            api_key: Places API key (defaults to GOOGLE_PLACES_API_KEY)
            base_url: API root (defaults to GOOGLE_PLACES_BASE_URL)
            http_client: Optional preconfigured client; created when omitted

        Raises:
            ConfigurationException: If no API key is available
        """
        self.api_key = api_key or settings.GOOGLE_PLACES_API_KEY
        if not self.api_key:
            raise ConfigurationException("GOOGLE_PLACES_API_KEY")

        self.base_url = (base_url or settings.GOOGLE_PLACES_BASE_URL).rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    async def __aenter__(self) -> "GooglePlacesClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def _headers(self, field_mask: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
        }

    async def search_text(self, query: str) -> List[str]:
        """
        Run a text search, following every page token

        Args:
            query: Free-text query, e.g. "plumbers in Springfield, IL"

        Returns:
            Place IDs from all pages, in page order

        Raises:
            ExternalServiceException: If any page comes back non-ok
        """
        place_ids: List[str] = []
        page_token: Optional[str] = None
        page_number = 0

        while True:
            page_number += 1
            body: Dict[str, Any] = {"textQuery": query}
            if page_token:
                body["pageToken"] = page_token

            logger.info(f'Searching for "{query}" - page {page_number}')
            response = await fetch_with_retry(
                self.http_client,
                "POST",
                f"{self.base_url}/places:searchText",
                headers=self._headers(SEARCH_FIELD_MASK),
                json=body
            )

            if not response.is_success:
                raise ExternalServiceException(
                    "google_places",
                    f"Search failed: {response.status_code} {response.text}"
                )

            data = response.json()
            places = data.get("places") or []
            place_ids.extend(place["id"] for place in places if place.get("id"))
            logger.info(f"Found {len(places)} place(s) on page {page_number} (total: {len(place_ids)})")

            page_token = data.get("nextPageToken")
            if not page_token:
                break

            await asyncio.sleep(PAGE_DELAY_SECONDS)

        return place_ids

    async def get_place_details(self, place_id: str) -> httpx.Response:
        """
        Fetch full details for one place

        The response is returned even when non-ok so callers can skip the
        record instead of failing the job.

        Args:
            place_id: Provider place ID

        Returns:
            Details response
        """
        return await fetch_with_retry(
            self.http_client,
            "GET",
            f"{self.base_url}/places/{place_id}",
            headers=self._headers(PLACE_DETAILS_FIELD_MASK)
        )


def parse_address_components(components: Optional[List[Dict[str, Any]]]) -> Dict[str, str]:
    """
    Extract street address, city, state and postal code from address components

    The first component carrying a given type wins. Within one component only
    its first recognised type is used.

    Args:
        components: Provider address components (`types`, `longText`)

    Returns:
        Dict with street_address, city, state and postal_code (blank when absent)
    """
    parsed = {field: "" for field in ADDRESS_COMPONENT_TYPES.values()}

    for component in components or []:
        for component_type in component.get("types") or []:
            field = ADDRESS_COMPONENT_TYPES.get(component_type)
            if field is None or parsed[field]:
                continue
            parsed[field] = component.get("longText") or ""
            break

    street_address = " ".join(part for part in (parsed["street_number"], parsed["route"]) if part)

    return {
        "street_address": street_address,
        "city": parsed["city"],
        "state": parsed["state"],
        "postal_code": parsed["postal_code"],
    }


def main_photo_name(place: Dict[str, Any]) -> Optional[str]:
    photos = place.get("photos") or []
    if photos:
        return photos[0].get("name") or None
    return None


def build_business_values(
    place: Dict[str, Any],
    address: Dict[str, str],
    city_id: Optional[UUID]
) -> Dict[str, Any]:
    """
    Map place details to business columns

    Args:
        place: Place details payload
        address: Output of parse_address_components
        city_id: Resolved city, if any

    Returns:
        Column values keyed by business column name
    """
    location = place.get("location") or {}

    return {
        "place_id": place.get("id"),
        "name": (place.get("displayName") or {}).get("text") or "Unknown",
        "formatted_address": place.get("formattedAddress") or None,
        "website": place.get("websiteUri") or None,
        "phone": place.get("nationalPhoneNumber") or None,
        "latitude": location.get("latitude"),
        "longitude": location.get("longitude"),
        "editorial_summary": (place.get("editorialSummary") or {}).get("text") or None,
        "city": address["city"] or None,
        "state": address["state"] or None,
        "postal_code": address["postal_code"] or None,
        "street_address": address["street_address"] or None,
        "city_id": city_id,
        "hours": place.get("regularOpeningHours") or None,
        "main_photo_name": main_photo_name(place),
        "raw": place,
    }


def build_review_rows(business_id: UUID, place: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Map place reviews to review rows

    Reviews without a provider name get a random review_id so they are still
    stored; anonymous authors are recorded as "Anonymous".

    Args:
        business_id: Owning business
        place: Place details payload

    Returns:
        Review rows ready for upsert
    """
    rows = []
    for review in place.get("reviews") or []:
        author = review.get("authorAttribution") or {}
        rows.append({
            "business_id": business_id,
            "source": ReviewSource.GOOGLE_PLACES.value,
            "review_id": review.get("name") or str(uuid.uuid4()),
            "author_name": author.get("displayName") or "Anonymous",
            "author_url": author.get("uri") or None,
            "author_image_url": author.get("photoUri") or None,
            "rating": review.get("rating"),
            "text": (review.get("text") or {}).get("text") or None,
            "time": review.get("publishTime") or None,
            "raw": review,
        })
    return rows
