"""Business reviews and per-provider review summaries"""

from sqlalchemy import Column, String, Text, Float, Integer, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.sql import func
from backend.app.core.database import Base
from backend.app.models.base import JSONType
import uuid
import enum


class ReviewSource(str, enum.Enum):
    """Review providers"""
    GOOGLE_PLACES = "google_places"


class BusinessReview(Base):
    """Single review, unique per (source, review_id)"""

    __tablename__ = "business_reviews"
    __table_args__ = (
        UniqueConstraint("source", "review_id", name="uq_business_reviews_source_review"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    source = Column(String(50), nullable=False)
    review_id = Column(String(500), nullable=False)
    author_name = Column(String(255), nullable=True)
    author_url = Column(String(1000), nullable=True)
    author_image_url = Column(String(1000), nullable=True)
    rating = Column(Float, nullable=True)
    text = Column(Text, nullable=True)
    time = Column(String(64), nullable=True)
    raw = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=True)


class BusinessReviewSource(Base):
    """Aggregated rating/count for a business from one provider"""

    __tablename__ = "business_review_sources"
    __table_args__ = (
        UniqueConstraint("business_id", "provider", name="uq_business_review_sources"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String(50), nullable=False)
    rating = Column(Float, nullable=True)
    review_count = Column(Integer, nullable=True)
    url = Column(String(1000), nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
