"""Business repository for idempotent upserts and batched lookups"""

from typing import List, Optional, Dict, Any, Iterable, Tuple
from datetime import datetime, timezone
from uuid import UUID
import uuid

from sqlalchemy import select, update

from backend.app.models.business import Business, BusinessCategory
from backend.app.models.category import Category
from backend.app.models.review import BusinessReview, BusinessReviewSource
from backend.app.models.site import SiteBusiness
from backend.app.core.database import AsyncSessionLocal, dialect_insert
from backend.app.core.batching import chunked
from backend.app.core.logging import get_logger

logger = get_logger(__name__)

IN_BATCH_SIZE = 200

# Columns owned by the row itself, never overwritten by an upsert
_IMMUTABLE_BUSINESS_COLUMNS = {"id", "place_id", "created_at"}


class BusinessRepository:
    """Repository for businesses and their category, site and review rows"""

    def __init__(self, session_factory=None):
        """
        Initialize business repository

        Args:
            session_factory: Async session factory; one session is opened per operation
        """
        self.session_factory = session_factory or AsyncSessionLocal

    async def upsert_business(self, values: Dict[str, Any]) -> UUID:
        """
        Insert a business or update the existing row with the same place_id

        Args:
            values: Column values; must include place_id and name

        Returns:
            ID of the inserted or updated business
        """
        row = {"id": uuid.uuid4(), "raw": {}, **values}
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            stmt = dialect_insert(session, Business.__table__).values(**row)
            update_columns = {
                key: stmt.excluded[key]
                for key in row
                if key not in _IMMUTABLE_BUSINESS_COLUMNS
            }
            update_columns["updated_at"] = now
            stmt = stmt.on_conflict_do_update(
                index_elements=["place_id"],
                set_=update_columns
            ).returning(Business.__table__.c.id)

            result = await session.execute(stmt)
            business_id = result.scalar_one()
            await session.commit()

            logger.debug(f"Upserted business {business_id} for place {values.get('place_id')}")
            return business_id

    async def update_business(self, business_id: UUID, values: Dict[str, Any]) -> None:
        """
        Update selected columns of a business

        Args:
            business_id: Business ID
            values: Columns to write
        """
        async with self.session_factory() as session:
            stmt = (
                update(Business)
                .where(Business.id == business_id)
                .values(**values, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
            await session.commit()

    async def get_business(self, business_id: UUID) -> Optional[Business]:
        """Get business by ID"""
        async with self.session_factory() as session:
            result = await session.execute(select(Business).where(Business.id == business_id))
            return result.scalar_one_or_none()

    async def get_business_by_place_id(self, place_id: str) -> Optional[Business]:
        """Get business by provider place id"""
        async with self.session_factory() as session:
            result = await session.execute(select(Business).where(Business.place_id == place_id))
            return result.scalar_one_or_none()

    async def upsert_business_category(self, business_id: UUID, category_id: UUID) -> None:
        """Link a business to a category; an existing link is left as-is"""
        async with self.session_factory() as session:
            stmt = dialect_insert(session, BusinessCategory.__table__).values(
                id=uuid.uuid4(),
                business_id=business_id,
                category_id=category_id
            ).on_conflict_do_nothing(index_elements=["business_id", "category_id"])
            await session.execute(stmt)
            await session.commit()

    async def upsert_site_business(self, site_id: UUID, business_id: UUID) -> None:
        """List a business on a site; an existing listing keeps its claim and overrides"""
        async with self.session_factory() as session:
            stmt = dialect_insert(session, SiteBusiness.__table__).values(
                id=uuid.uuid4(),
                site_id=site_id,
                business_id=business_id
            ).on_conflict_do_nothing(index_elements=["site_id", "business_id"])
            await session.execute(stmt)
            await session.commit()

    async def upsert_reviews(self, reviews: List[Dict[str, Any]]) -> int:
        """
        Insert reviews, updating rows that already exist for (source, review_id)

        Args:
            reviews: Review rows with business_id, source and review_id set

        Returns:
            Number of review rows written
        """
        if not reviews:
            return 0

        rows = [{"id": uuid.uuid4(), **review} for review in reviews]

        async with self.session_factory() as session:
            stmt = dialect_insert(session, BusinessReview.__table__)
            stmt = stmt.on_conflict_do_update(
                index_elements=["source", "review_id"],
                set_={
                    "business_id": stmt.excluded.business_id,
                    "author_name": stmt.excluded.author_name,
                    "author_url": stmt.excluded.author_url,
                    "author_image_url": stmt.excluded.author_image_url,
                    "rating": stmt.excluded.rating,
                    "text": stmt.excluded.text,
                    "time": stmt.excluded.time,
                    "raw": stmt.excluded.raw,
                }
            )
            await session.execute(stmt, rows)
            await session.commit()

        return len(rows)

    async def upsert_review_source(
        self,
        business_id: UUID,
        provider: str,
        rating: Optional[float],
        review_count: Optional[int],
        url: Optional[str]
    ) -> None:
        """
        Record a provider's aggregate rating for a business

        Args:
            business_id: Business ID
            provider: Review provider tag
            rating: Average rating reported by the provider
            review_count: Total ratings reported by the provider
            url: Provider page for the business
        """
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            stmt = dialect_insert(session, BusinessReviewSource.__table__).values(
                id=uuid.uuid4(),
                business_id=business_id,
                provider=provider,
                rating=rating,
                review_count=review_count,
                url=url,
                last_synced_at=now
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["business_id", "provider"],
                set_={
                    "rating": stmt.excluded.rating,
                    "review_count": stmt.excluded.review_count,
                    "url": stmt.excluded.url,
                    "last_synced_at": stmt.excluded.last_synced_at,
                }
            )
            await session.execute(stmt)
            await session.commit()

    async def get_category_map(
        self,
        business_ids: Iterable[UUID]
    ) -> Dict[UUID, List[Tuple[UUID, str]]]:
        """
        Categories of each business, queried in IN-batches

        Args:
            business_ids: Businesses to look up

        Returns:
            Mapping of business ID to (category ID, category name) pairs
        """
        category_map: Dict[UUID, List[Tuple[UUID, str]]] = {}

        async with self.session_factory() as session:
            for batch in chunked(list(business_ids), IN_BATCH_SIZE):
                stmt = (
                    select(BusinessCategory.business_id, Category.id, Category.name)
                    .join(Category, BusinessCategory.category_id == Category.id)
                    .where(BusinessCategory.business_id.in_(batch))
                )
                result = await session.execute(stmt)
                for business_id, category_id, category_name in result.all():
                    category_map.setdefault(business_id, []).append((category_id, category_name))

        return category_map

    async def get_site_membership_map(self, business_ids: Iterable[UUID]) -> Dict[UUID, List[UUID]]:
        """
        Every site each business is listed on, queried in IN-batches

        Args:
            business_ids: Businesses to look up

        Returns:
            Mapping of business ID to site IDs
        """
        site_map: Dict[UUID, List[UUID]] = {}

        async with self.session_factory() as session:
            for batch in chunked(list(business_ids), IN_BATCH_SIZE):
                stmt = (
                    select(SiteBusiness.business_id, SiteBusiness.site_id)
                    .where(SiteBusiness.business_id.in_(batch))
                )
                result = await session.execute(stmt)
                for business_id, site_id in result.all():
                    site_map.setdefault(business_id, []).append(site_id)

        return site_map

    async def get_review_source_map(
        self,
        business_ids: Iterable[UUID],
        provider: str
    ) -> Dict[UUID, Tuple[Optional[float], Optional[int]]]:
        """
        Provider rating and review count of each business, queried in IN-batches

        Args:
            business_ids: Businesses to look up
            provider: Review provider tag

        Returns:
            Mapping of business ID to (rating, review count)
        """
        review_map: Dict[UUID, Tuple[Optional[float], Optional[int]]] = {}

        async with self.session_factory() as session:
            for batch in chunked(list(business_ids), IN_BATCH_SIZE):
                stmt = (
                    select(
                        BusinessReviewSource.business_id,
                        BusinessReviewSource.rating,
                        BusinessReviewSource.review_count
                    )
                    .where(BusinessReviewSource.business_id.in_(batch))
                    .where(BusinessReviewSource.provider == provider)
                )
                result = await session.execute(stmt)
                for business_id, rating, review_count in result.all():
                    review_map[business_id] = (rating, review_count)

        return review_map
