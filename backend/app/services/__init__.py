"""Business logic services"""

from backend.app.services.city_cache import CityLookupCache, create_city_lookup_cache
from backend.app.services.places_client import GooglePlacesClient
from backend.app.services.search_index import SearchIndexClient
from backend.app.services.background_processor import BackgroundProcessor, background_processor

__all__ = [
    'CityLookupCache',
    'create_city_lookup_cache',
    'GooglePlacesClient',
    'SearchIndexClient',
    'BackgroundProcessor',
    'background_processor',
]
