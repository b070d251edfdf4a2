"""Database models"""

from backend.app.models.base import TimestampMixin, JSONType
from backend.app.models.background_job import BackgroundJob, BackgroundJobStatus, JobType
from backend.app.models.location import State, City
from backend.app.models.category import Category
from backend.app.models.business import Business, BusinessCategory
from backend.app.models.review import BusinessReview, BusinessReviewSource, ReviewSource
from backend.app.models.site import Site, SiteCategory, SiteCity, SiteBusiness

__all__ = [
    "TimestampMixin",
    "JSONType",
    "BackgroundJob",
    "BackgroundJobStatus",
    "JobType",
    "State",
    "City",
    "Category",
    "Business",
    "BusinessCategory",
    "BusinessReview",
    "BusinessReviewSource",
    "ReviewSource",
    "Site",
    "SiteCategory",
    "SiteCity",
    "SiteBusiness",
]
