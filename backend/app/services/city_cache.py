"""Per-job memoisation of city lookups"""

from typing import Dict, Optional
from uuid import UUID

from backend.app.repositories.city_repository import CityRepository
from backend.app.core.logging import get_logger

logger = get_logger(__name__)


class CityLookupCache:
    """
    Resolves (city, state) text to a city ID, remembering hits and misses

    Keys are lower-cased and trimmed, so "Springfield, IL" and
    " springfield , il " share one query. A cache lives for one job run.
    """

    def __init__(self, city_repository: CityRepository):
        self.city_repository = city_repository
        self._cache: Dict[str, Optional[UUID]] = {}

    async def lookup_city_id(self, city: Optional[str], state: Optional[str]) -> Optional[UUID]:
        """
        Resolve a city ID

        Args:
            city: City name as reported by the provider
            state: State name or code

        Returns:
            City ID, or None when either part is blank or no city matches
        """
        if not city or not state:
            return None

        city_key = city.strip().lower()
        state_key = state.strip().lower()
        if not city_key or not state_key:
            return None

        cache_key = f"{city_key}|{state_key}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        city_id = await self.city_repository.find_city_id(city_key, state_key)
        self._cache[cache_key] = city_id
        return city_id

    def __len__(self) -> int:
        return len(self._cache)


def create_city_lookup_cache(city_repository: Optional[CityRepository] = None) -> CityLookupCache:
    """Create a fresh cache for one job run"""
    return CityLookupCache(city_repository or CityRepository())
