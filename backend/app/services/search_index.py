"""Typesense search index client and business document projection"""

import json
from typing import Optional, Dict, Any, List, Tuple, Iterable
from uuid import UUID

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import ConfigurationException, SearchIndexException
from backend.app.core.http_client import fetch_with_retry
from backend.app.core.logging import get_logger

logger = get_logger(__name__)

BUSINESSES_COLLECTION = "businesses"

BUSINESSES_SCHEMA: Dict[str, Any] = {
    "name": BUSINESSES_COLLECTION,
    "fields": [
        {"name": "business_id", "type": "string"},
        {"name": "name", "type": "string"},
        {"name": "description", "type": "string", "optional": True},
        {"name": "formatted_address", "type": "string", "optional": True},
        {"name": "city", "type": "string", "facet": True, "optional": True},
        {"name": "state", "type": "string", "facet": True, "optional": True},
        {"name": "phone", "type": "string", "optional": True},
        {"name": "website", "type": "string", "optional": True},
        {"name": "site_ids", "type": "string[]", "facet": True},
        {"name": "category_ids", "type": "string[]", "facet": True},
        {"name": "category_names", "type": "string[]", "facet": True},
        {"name": "rating", "type": "float", "facet": True, "optional": True},
        {"name": "review_count", "type": "int32", "optional": True},
        {"name": "location", "type": "geopoint", "optional": True},
    ],
}


class SearchIndexClient:
    """Minimal Typesense REST client: collection bootstrap and bulk import"""

    def __init__(
        self,
        host: str,
        api_key: str,
        port: int = 8108,
        protocol: str = "http",
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize search index client

        Args:
            host: Typesense host
            api_key: Admin API key
            port: Typesense port
            protocol: http or https
            http_client: Optional preconfigured client; created when omitted
        """
        self.base_url = f"{protocol}://{host}:{port}"
        self.api_key = api_key
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    @classmethod
    def from_settings(cls, http_client: Optional[httpx.AsyncClient] = None) -> "SearchIndexClient":
        """
        Build a client from TYPESENSE_* settings

        Raises:
            ConfigurationException: If the API key or host is missing
        """
        if not settings.TYPESENSE_API_KEY:
            raise ConfigurationException("TYPESENSE_API_KEY")
        if not settings.TYPESENSE_HOST:
            raise ConfigurationException("TYPESENSE_HOST")

        return cls(
            host=settings.TYPESENSE_HOST,
            api_key=settings.TYPESENSE_API_KEY,
            port=settings.TYPESENSE_PORT,
            protocol=settings.search_protocol,
            http_client=http_client
        )

    async def __aenter__(self) -> "SearchIndexClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    def _headers(self, content_type: str = "application/json") -> Dict[str, str]:
        return {"X-TYPESENSE-API-KEY": self.api_key, "Content-Type": content_type}

    async def ensure_collection(self, schema: Dict[str, Any]) -> bool:
        """
        Create the collection described by `schema` unless it already exists

        Args:
            schema: Collection schema including its name

        Returns:
            True if the collection was created, False if it already existed

        Raises:
            SearchIndexException: If the index cannot be read or the create fails
        """
        name = schema["name"]
        response = await fetch_with_retry(
            self.http_client,
            "GET",
            f"{self.base_url}/collections/{name}",
            headers=self._headers()
        )

        if response.is_success:
            return False

        if response.status_code != 404:
            raise SearchIndexException(
                f"Failed to retrieve collection {name}: {response.status_code} {response.text}"
            )

        logger.info(f'Creating search collection "{name}"')
        response = await fetch_with_retry(
            self.http_client,
            "POST",
            f"{self.base_url}/collections",
            headers=self._headers(),
            json=schema
        )

        # Another worker created it first
        if response.status_code == 409:
            return False

        if not response.is_success:
            raise SearchIndexException(
                f"Failed to create collection {name}: {response.status_code} {response.text}"
            )

        return True

    async def import_documents(
        self,
        collection: str,
        documents: List[Dict[str, Any]],
        action: str = "upsert"
    ) -> List[Dict[str, Any]]:
        """
        Bulk import documents as JSON lines

        Args:
            collection: Collection name
            documents: Documents to import
            action: Import action (create, upsert, update)

        Returns:
            One result object per document, e.g. {"success": true}

        Raises:
            SearchIndexException: If the import request itself fails
            ValueError: If a response line is not valid JSON
        """
        if not documents:
            return []

        body = "\n".join(json.dumps(document) for document in documents)
        response = await fetch_with_retry(
            self.http_client,
            "POST",
            f"{self.base_url}/collections/{collection}/documents/import",
            params={"action": action},
            headers=self._headers("text/plain"),
            content=body.encode("utf-8")
        )

        if not response.is_success:
            raise SearchIndexException(
                f"Import into {collection} failed: {response.status_code} {response.text}"
            )

        return [json.loads(line) for line in response.text.splitlines() if line.strip()]


def build_business_document(
    business,
    categories: Iterable[Tuple[UUID, str]] = (),
    site_ids: Iterable[UUID] = (),
    review_source: Optional[Tuple[Optional[float], Optional[int]]] = None
) -> Dict[str, Any]:
    """
    Project a business row into a search document

    Optional text fields are omitted when blank. `location` is only set when
    both coordinates are present.

    Args:
        business: Business row
        categories: (category ID, category name) pairs
        site_ids: Every site the business is listed on
        review_source: (rating, review count) from the review provider

    Returns:
        Search document
    """
    categories = list(categories)
    rating, review_count = review_source or (None, None)

    document: Dict[str, Any] = {
        "id": business.id.hex,
        "business_id": str(business.id),
        "name": business.name,
        "site_ids": [str(site_id) for site_id in site_ids],
        "category_ids": [str(category_id) for category_id, _ in categories],
        "category_names": [category_name for _, category_name in categories],
        "review_count": review_count or 0,
    }

    optional_fields = {
        "description": business.description or business.editorial_summary,
        "formatted_address": business.formatted_address,
        "city": business.city,
        "state": business.state,
        "phone": business.phone,
        "website": business.website,
    }
    for field, value in optional_fields.items():
        if value:
            document[field] = value

    if rating is not None:
        document["rating"] = float(rating)

    if business.latitude is not None and business.longitude is not None:
        document["location"] = [business.latitude, business.longitude]

    return document
