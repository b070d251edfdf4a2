"""Directory sites and their category/city/business membership"""

from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Uuid
from backend.app.core.database import Base
from backend.app.models.base import TimestampMixin, JSONType
import uuid


class Site(Base, TimestampMixin):
    """Tenant directory site"""

    __tablename__ = "sites"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False, unique=True)

    def __repr__(self):
        return f"<Site(id={self.id}, domain={self.domain})>"


class SiteCategory(Base):
    """Category configured for a site"""

    __tablename__ = "site_categories"
    __table_args__ = (
        UniqueConstraint("site_id", "category_id", name="uq_site_categories"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    site_id = Column(Uuid, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)


class SiteCity(Base):
    """City configured for a site"""

    __tablename__ = "site_cities"
    __table_args__ = (
        UniqueConstraint("site_id", "city_id", name="uq_site_cities"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    site_id = Column(Uuid, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    city_id = Column(Uuid, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False)


class SiteBusiness(Base, TimestampMixin):
    """Business listed on a site; claim state and user overrides live here"""

    __tablename__ = "site_businesses"
    __table_args__ = (
        UniqueConstraint("site_id", "business_id", name="uq_site_businesses"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    site_id = Column(Uuid, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    claimed_by = Column(Uuid, nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    overrides = Column(JSONType, nullable=True)

    @property
    def is_claimed(self) -> bool:
        return self.claimed_by is not None
