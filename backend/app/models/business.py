"""Business listing ingested from the places provider"""

from sqlalchemy import Column, String, Text, Float, ForeignKey, UniqueConstraint, Uuid
from backend.app.core.database import Base
from backend.app.models.base import TimestampMixin, JSONType
import uuid


class Business(Base, TimestampMixin):
    """Business keyed by the provider's place id"""

    __tablename__ = "businesses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    place_id = Column(String(255), nullable=True, unique=True)
    name = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    editorial_summary = Column(Text, nullable=True)

    # Address
    formatted_address = Column(String(500), nullable=True)
    street_address = Column(String(255), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    postal_code = Column(String(20), nullable=True)
    city_id = Column(Uuid, ForeignKey("cities.id"), nullable=True, index=True)

    # Contact and geo
    phone = Column(String(50), nullable=True)
    website = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    hours = Column(JSONType, nullable=True)
    main_photo_name = Column(String(500), nullable=True)

    # Last fetched provider payload
    raw = Column(JSONType, nullable=False, default=dict)

    def __repr__(self):
        return f"<Business(id={self.id}, place_id={self.place_id})>"


class BusinessCategory(Base):
    """Business to category membership"""

    __tablename__ = "business_categories"
    __table_args__ = (
        UniqueConstraint("business_id", "category_id", name="uq_business_categories"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)
