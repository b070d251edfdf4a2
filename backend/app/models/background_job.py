"""Background job tracking"""

from sqlalchemy import Column, String, Text, Integer, DateTime, Uuid, Enum as SQLEnum
from backend.app.core.database import Base
from backend.app.models.base import TimestampMixin, JSONType
import uuid
import enum


class BackgroundJobStatus(str, enum.Enum):
    """Background job status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, enum.Enum):
    """Job kinds understood by the worker"""
    GOOGLE_PLACES_SEARCH = "google_places_search"
    REFRESH_SITE_BUSINESSES = "refresh_site_businesses"
    ASSOCIATE_SITE_BUSINESSES = "associate_site_businesses"
    SYNC_BUSINESSES_TO_SEARCH = "sync_businesses_to_search"


class BackgroundJob(Base, TimestampMixin):
    """Queued unit of deferred work, claimed and executed by one worker at a time"""

    __tablename__ = "jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_type = Column(String(100), nullable=False, index=True)
    payload = Column(JSONType, nullable=False, default=dict)
    status = Column(
        SQLEnum(
            BackgroundJobStatus,
            name="job_status",
            values_callable=lambda statuses: [s.value for s in statuses]
        ),
        nullable=False,
        default=BackgroundJobStatus.PENDING,
        index=True
    )
    progress = Column(Integer, nullable=False, default=0)  # 0-100
    meta = Column(JSONType, nullable=True)
    error = Column(Text, nullable=True)

    # Claim
    locked_by = Column(String(255), nullable=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)

    # Retry tracking
    attempt_count = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)

    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<BackgroundJob(id={self.id}, job_type={self.job_type}, status={self.status})>"
