"""Pytest configuration and shared fixtures"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("WORKER_ID", "test-worker")
os.environ.setdefault("GOOGLE_PLACES_API_KEY", "test-places-key")
os.environ.setdefault("LOG_FORMAT", "text")

import json
import pytest
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import httpx
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from backend.app.core.database import Base
from backend.app.models import (
    State, City, Category, Business, BusinessCategory,
    Site, SiteCategory, SiteCity, SiteBusiness,
)
from backend.app.repositories.background_job_repository import BackgroundJobRepository
from backend.app.repositories.business_repository import BusinessRepository
from backend.app.repositories.city_repository import CityRepository
from backend.app.repositories.site_repository import SiteRepository


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine; each session gets its own connection"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test_directory.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    """Create test session factory"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def job_repository(test_session_factory) -> BackgroundJobRepository:
    return BackgroundJobRepository(test_session_factory)


@pytest.fixture
def business_repository(test_session_factory) -> BusinessRepository:
    return BusinessRepository(test_session_factory)


@pytest.fixture
def site_repository(test_session_factory) -> SiteRepository:
    return SiteRepository(test_session_factory)


@pytest.fixture
def city_repository(test_session_factory) -> CityRepository:
    return CityRepository(test_session_factory)


class DirectorySeeder:
    """Inserts directory rows for tests"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def add(self, *rows):
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows[0] if len(rows) == 1 else rows

    async def state(self, name: str = "Illinois", code: str = "IL") -> State:
        return await self.add(State(id=uuid4(), name=name, code=code))

    async def city(self, state: State, name: str = "Springfield") -> City:
        return await self.add(City(id=uuid4(), name=name, state_id=state.id))

    async def category(self, name: str = "Plumbers") -> Category:
        return await self.add(Category(id=uuid4(), name=name, slug=name.lower().replace(" ", "-")))

    async def site(self, domain: Optional[str] = None) -> Site:
        domain = domain or f"{uuid4().hex[:8]}.example.com"
        return await self.add(Site(id=uuid4(), name=domain, domain=domain))

    async def business(self, name: str = "Acme Plumbing", place_id: Optional[str] = None, **values) -> Business:
        if place_id is None:
            place_id = f"place-{uuid4().hex[:10]}"
        return await self.add(Business(id=uuid4(), name=name, place_id=place_id, raw={}, **values))

    async def link_category(self, business: Business, category: Category) -> None:
        await self.add(BusinessCategory(id=uuid4(), business_id=business.id, category_id=category.id))

    async def configure_site(self, site: Site, categories=(), cities=()) -> None:
        rows = [SiteCategory(id=uuid4(), site_id=site.id, category_id=c.id) for c in categories]
        rows += [SiteCity(id=uuid4(), site_id=site.id, city_id=c.id) for c in cities]
        if rows:
            await self.add(*rows)

    async def list_on_site(self, site: Site, business: Business, claimed_by=None) -> SiteBusiness:
        return await self.add(
            SiteBusiness(id=uuid4(), site_id=site.id, business_id=business.id, claimed_by=claimed_by)
        )


@pytest.fixture
def seeder(test_session_factory) -> DirectorySeeder:
    return DirectorySeeder(test_session_factory)


def build_place(
    place_id: str,
    name: str = "Acme Plumbing",
    city: str = "Springfield",
    state: str = "Illinois",
    reviews: Optional[List[Dict[str, Any]]] = None,
    **extra
) -> Dict[str, Any]:
    """Place details payload shaped like the Places API (New) response"""
    place = {
        "id": place_id,
        "displayName": {"text": name, "languageCode": "en"},
        "formattedAddress": f"123 Main St, {city}, IL 62701, USA",
        "addressComponents": [
            {"longText": "123", "shortText": "123", "types": ["street_number"]},
            {"longText": "Main Street", "shortText": "Main St", "types": ["route"]},
            {"longText": city, "shortText": city, "types": ["locality", "political"]},
            {"longText": state, "shortText": "IL", "types": ["administrative_area_level_1", "political"]},
            {"longText": "62701", "shortText": "62701", "types": ["postal_code"]},
        ],
        "location": {"latitude": 39.7817, "longitude": -89.6501},
        "websiteUri": "https://acme.example.com",
        "nationalPhoneNumber": "(217) 555-0100",
        "rating": 4.6,
        "userRatingCount": 87,
        "googleMapsUri": f"https://maps.google.com/?cid={place_id}",
        "photos": [{"name": f"places/{place_id}/photos/main"}],
        "reviews": reviews if reviews is not None else [
            {
                "name": f"places/{place_id}/reviews/r1",
                "rating": 5,
                "text": {"text": "Fixed our leak fast."},
                "publishTime": "2024-05-01T10:00:00Z",
                "authorAttribution": {"displayName": "Pat", "uri": "https://maps.google.com/pat"},
            }
        ],
    }
    place.update(extra)
    return place


@pytest.fixture
def place_factory() -> Callable[..., Dict[str, Any]]:
    return build_place


class FakePlacesApi:
    """httpx transport handler standing in for the Places API"""

    def __init__(self):
        self.search_pages: List[Dict[str, Any]] = []
        self.places: Dict[str, Any] = {}
        self.detail_status: Dict[str, int] = {}
        self.search_status = 200
        self.detail_errors: Dict[str, Exception] = {}
        self.detail_bodies: Dict[str, str] = {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path.endswith("places:searchText"):
            if self.search_status != 200:
                return httpx.Response(self.search_status, json={"error": {"code": self.search_status}})
            body = json.loads(request.content)
            page_index = int(body.get("pageToken", "0"))
            return httpx.Response(200, json=self.search_pages[page_index] if self.search_pages else {})

        place_id = request.url.path.rsplit("/", 1)[-1]
        if place_id in self.detail_errors:
            raise self.detail_errors[place_id]
        if place_id in self.detail_bodies:
            return httpx.Response(200, text=self.detail_bodies[place_id])
        status = self.detail_status.get(place_id, 200)
        if status != 200:
            return httpx.Response(status, text="error")
        if place_id not in self.places:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Not found"}})
        return httpx.Response(200, json=self.places[place_id])

    def add_place(self, place: Dict[str, Any]) -> None:
        self.places[place["id"]] = place

    def set_search_results(self, *pages: List[str]) -> None:
        """One list of place ids per page; pages chain via numeric page tokens"""
        self.search_pages = []
        for index, place_ids in enumerate(pages):
            page: Dict[str, Any] = {"places": [{"id": place_id} for place_id in place_ids]}
            if index + 1 < len(pages):
                page["nextPageToken"] = str(index + 1)
            self.search_pages.append(page)

    @property
    def detail_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]


@pytest.fixture
def places_api() -> FakePlacesApi:
    return FakePlacesApi()


@pytest.fixture
async def places_client(places_api):
    from backend.app.services.places_client import GooglePlacesClient

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(places_api))
    client = GooglePlacesClient(
        api_key="test-places-key",
        base_url="https://places.test/v1",
        http_client=http_client,
    )
    yield client
    await http_client.aclose()


class RecordingJobRepository(BackgroundJobRepository):
    """Job store that also remembers every progress write"""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.progress_history: List[int] = []
        self.meta_history: List[Any] = []

    async def update_meta(self, job_id, meta):
        self.meta_history.append(meta)
        return await super().update_meta(job_id, meta)

    async def update_progress(self, job_id, progress, meta):
        self.progress_history.append(progress)
        self.meta_history.append(meta)
        return await super().update_progress(job_id, progress, meta)


@pytest.fixture
def recording_job_repository(test_session_factory) -> RecordingJobRepository:
    return RecordingJobRepository(test_session_factory)


@pytest.fixture
def claim_job(recording_job_repository):
    """Create a pending job and claim it, as the dispatcher would"""

    async def _claim(job_type: str, payload: Dict[str, Any]):
        await recording_job_repository.create_job(job_type, payload)
        return await recording_job_repository.claim_next_job("test-worker")

    return _claim


@pytest.fixture
def count_rows(test_session_factory):
    """Count rows of a model, optionally filtered"""
    from sqlalchemy import select, func

    async def _count(model, *criteria) -> int:
        async with test_session_factory() as session:
            stmt = select(func.count()).select_from(model)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            result = await session.execute(stmt)
            return result.scalar_one()

    return _count


class FakeSearchIndex:
    """httpx transport handler standing in for Typesense"""

    def __init__(self):
        self.collections: Dict[str, Any] = {}
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.import_status = 200
        self.import_body: Optional[str] = None
        self.reject_ids: set = set()
        self.get_status: Optional[int] = None
        self.create_status: Optional[int] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path.startswith("/collections/"):
            if self.get_status is not None:
                return httpx.Response(self.get_status, text="unavailable")
            name = path.rsplit("/", 1)[-1]
            if name in self.collections:
                return httpx.Response(200, json=self.collections[name])
            return httpx.Response(404, json={"message": "Not Found"})

        if request.method == "POST" and path == "/collections":
            if self.create_status is not None:
                return httpx.Response(self.create_status, json={"message": "error"})
            schema = json.loads(request.content)
            self.collections[schema["name"]] = schema
            return httpx.Response(201, json=schema)

        if request.method == "POST" and path.endswith("/documents/import"):
            if self.import_status != 200:
                return httpx.Response(self.import_status, text="import failed")
            if self.import_body is not None:
                return httpx.Response(200, text=self.import_body)
            results = []
            for line in request.content.decode("utf-8").splitlines():
                document = json.loads(line)
                if document["id"] in self.reject_ids:
                    results.append({"success": False, "error": "Bad document", "document": line})
                else:
                    self.documents[document["id"]] = document
                    results.append({"success": True})
            return httpx.Response(200, text="\n".join(json.dumps(r) for r in results))

        return httpx.Response(404, json={"message": "Not Found"})

    @property
    def import_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/documents/import")]


@pytest.fixture
def search_api() -> FakeSearchIndex:
    return FakeSearchIndex()


@pytest.fixture
async def search_client(search_api):
    from backend.app.services.search_index import SearchIndexClient

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(search_api))
    client = SearchIndexClient(host="search.test", api_key="test-search-key", http_client=http_client)
    yield client
    await http_client.aclose()
