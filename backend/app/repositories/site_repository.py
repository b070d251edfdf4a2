"""Site repository for site configuration and business listings"""

from typing import List, Dict, Iterable, NamedTuple, Optional
from uuid import UUID
import uuid

from sqlalchemy import select, func, and_, exists
from sqlalchemy.orm import aliased

from backend.app.models.business import Business, BusinessCategory
from backend.app.models.site import SiteBusiness, SiteCategory, SiteCity
from backend.app.core.database import AsyncSessionLocal, dialect_insert
from backend.app.core.batching import chunked
from backend.app.core.logging import get_logger

logger = get_logger(__name__)

IN_BATCH_SIZE = 200
MEMBERSHIP_PAGE_SIZE = 1000


class SiteListing(NamedTuple):
    """A business listed on a site, as seen by the refresh job"""
    business_id: UUID
    place_id: Optional[str]
    claimed: bool


class SiteRepository:
    """Repository for site categories, cities and business listings"""

    def __init__(self, session_factory=None):
        """
        Initialize site repository

        Args:
            session_factory: Async session factory; one session is opened per operation
        """
        self.session_factory = session_factory or AsyncSessionLocal

    async def get_category_ids(self, site_id: UUID) -> List[UUID]:
        """Categories configured for a site"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(SiteCategory.category_id).where(SiteCategory.site_id == site_id)
            )
            return list(result.scalars().all())

    async def get_city_ids(self, site_id: UUID) -> List[UUID]:
        """Cities configured for a site"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(SiteCity.city_id).where(SiteCity.site_id == site_id)
            )
            return list(result.scalars().all())

    async def count_site_businesses(self, site_id: UUID) -> int:
        """Number of businesses listed on a site"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(SiteBusiness.id)).where(SiteBusiness.site_id == site_id)
            )
            return result.scalar_one()

    async def get_site_listings(self, site_id: UUID, offset: int, limit: int) -> List[SiteListing]:
        """
        Page through a site's businesses with their place id and claim state

        A business counts as claimed when any of its listings, on any site,
        has an owner.

        Args:
            site_id: Site ID
            offset: Rows to skip
            limit: Page size

        Returns:
            Listings in stable order
        """
        claims = aliased(SiteBusiness)
        claimed = exists().where(
            and_(
                claims.business_id == SiteBusiness.business_id,
                claims.claimed_by.isnot(None)
            )
        )

        async with self.session_factory() as session:
            stmt = (
                select(SiteBusiness.business_id, Business.place_id, claimed.label("claimed"))
                .join(Business, SiteBusiness.business_id == Business.id)
                .where(SiteBusiness.site_id == site_id)
                .order_by(SiteBusiness.id)
                .offset(offset)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [
                SiteListing(business_id=business_id, place_id=place_id, claimed=bool(is_claimed))
                for business_id, place_id, is_claimed in result.all()
            ]

    async def get_site_businesses(self, site_id: UUID, offset: int, limit: int) -> List[Business]:
        """
        Page through the business rows listed on a site

        Args:
            site_id: Site ID
            offset: Rows to skip
            limit: Page size

        Returns:
            Businesses in stable order
        """
        async with self.session_factory() as session:
            stmt = (
                select(Business)
                .join(SiteBusiness, SiteBusiness.business_id == Business.id)
                .where(SiteBusiness.site_id == site_id)
                .order_by(SiteBusiness.id)
                .offset(offset)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_business_ids_in_categories(
        self,
        category_ids: Iterable[UUID],
        page_size: int = MEMBERSHIP_PAGE_SIZE
    ) -> List[UUID]:
        """
        Distinct businesses in any of the given categories

        Categories are queried in IN-batches and each batch is paged, so
        result size is never capped by a single query limit.

        Args:
            category_ids: Categories to match
            page_size: Rows per page

        Returns:
            Business IDs in first-seen order
        """
        seen: Dict[UUID, None] = {}

        async with self.session_factory() as session:
            for batch in chunked(list(category_ids), IN_BATCH_SIZE):
                offset = 0
                while True:
                    stmt = (
                        select(BusinessCategory.business_id)
                        .where(BusinessCategory.category_id.in_(batch))
                        .order_by(BusinessCategory.id)
                        .offset(offset)
                        .limit(page_size)
                    )
                    result = await session.execute(stmt)
                    rows = result.scalars().all()

                    for business_id in rows:
                        seen.setdefault(business_id, None)

                    if len(rows) < page_size:
                        break
                    offset += page_size

        return list(seen)

    async def filter_business_ids_by_cities(
        self,
        business_ids: Iterable[UUID],
        city_ids: Iterable[UUID]
    ) -> List[UUID]:
        """
        Keep only businesses whose city is one of the given cities

        Args:
            business_ids: Candidate businesses
            city_ids: Allowed cities

        Returns:
            Matching business IDs
        """
        city_ids = list(city_ids)
        matching: List[UUID] = []

        async with self.session_factory() as session:
            for batch in chunked(list(business_ids), IN_BATCH_SIZE):
                stmt = (
                    select(Business.id)
                    .where(Business.id.in_(batch))
                    .where(Business.city_id.in_(city_ids))
                )
                result = await session.execute(stmt)
                matching.extend(result.scalars().all())

        return matching

    async def add_site_businesses(self, site_id: UUID, business_ids: List[UUID]) -> int:
        """
        List businesses on a site, ignoring pairs that already exist

        Args:
            site_id: Site ID
            business_ids: Businesses to list

        Returns:
            Number of pairs submitted
        """
        if not business_ids:
            return 0

        rows = [
            {"id": uuid.uuid4(), "site_id": site_id, "business_id": business_id}
            for business_id in business_ids
        ]

        async with self.session_factory() as session:
            stmt = dialect_insert(session, SiteBusiness.__table__).on_conflict_do_nothing(
                index_elements=["site_id", "business_id"]
            )
            await session.execute(stmt, rows)
            await session.commit()

        return len(rows)
