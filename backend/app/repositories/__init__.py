"""Data access layer"""

from backend.app.repositories.background_job_repository import BackgroundJobRepository
from backend.app.repositories.business_repository import BusinessRepository
from backend.app.repositories.city_repository import CityRepository
from backend.app.repositories.site_repository import SiteRepository, SiteListing

__all__ = [
    'BackgroundJobRepository',
    'BusinessRepository',
    'CityRepository',
    'SiteRepository',
    'SiteListing',
]
