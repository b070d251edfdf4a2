"""State and city reference data"""

from sqlalchemy import Column, String, Float, Integer, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from backend.app.core.database import Base
import uuid


class State(Base):
    """US state"""

    __tablename__ = "states"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, index=True)
    code = Column(String(10), nullable=False, unique=True)

    cities = relationship("City", back_populates="state")

    def __repr__(self):
        return f"<State(id={self.id}, code={self.code})>"


class City(Base):
    """City, the canonical location a business is associated with"""

    __tablename__ = "cities"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, index=True)
    state_id = Column(Uuid, ForeignKey("states.id"), nullable=False, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    population = Column(Integer, nullable=True)

    state = relationship("State", back_populates="cities")

    def __repr__(self):
        return f"<City(id={self.id}, name={self.name})>"
