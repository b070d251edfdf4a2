"""Business category"""

from sqlalchemy import Column, String, Text, Uuid
from backend.app.core.database import Base
from backend.app.models.base import TimestampMixin
import uuid


class Category(Base, TimestampMixin):
    """Category a business can be listed under"""

    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Category(id={self.id}, slug={self.slug})>"
