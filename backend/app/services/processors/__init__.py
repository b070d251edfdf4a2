"""Job processors, one per job type"""

from backend.app.services.processors.google_places_search import GooglePlacesSearchProcessor
from backend.app.services.processors.refresh_site_businesses import RefreshSiteBusinessesProcessor
from backend.app.services.processors.associate_site_businesses import AssociateSiteBusinessesProcessor
from backend.app.services.processors.sync_businesses_to_search import SyncBusinessesToSearchProcessor

__all__ = [
    "GooglePlacesSearchProcessor",
    "RefreshSiteBusinessesProcessor",
    "AssociateSiteBusinessesProcessor",
    "SyncBusinessesToSearchProcessor",
]
