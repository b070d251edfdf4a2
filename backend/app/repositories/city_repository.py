"""City repository for location lookups"""

from typing import Optional
from uuid import UUID
from sqlalchemy import select, func, or_

from backend.app.models.location import City, State
from backend.app.core.database import AsyncSessionLocal
from backend.app.core.logging import get_logger

logger = get_logger(__name__)


class CityRepository:
    """Repository for city reference data"""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def find_city_id(self, city_name: str, state: str) -> Optional[UUID]:
        """
        Find a city by case-insensitive name within a state

        Args:
            city_name: Lower-case city name
            state: Lower-case state name or code

        Returns:
            City ID if found, None otherwise
        """
        async with self.session_factory() as session:
            stmt = (
                select(City.id)
                .join(State, City.state_id == State.id)
                .where(func.lower(City.name) == city_name)
                .where(or_(func.lower(State.name) == state, func.lower(State.code) == state))
                .limit(1)
            )
            result = await session.execute(stmt)
            city_id = result.scalar_one_or_none()

            if city_id is None:
                logger.debug(f"City not found: {city_name}, {state}")

            return city_id
