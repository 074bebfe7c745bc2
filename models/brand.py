import uuid

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from database import Base


class Brand(Base):
    __tablename__ = "brands"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), index=True)

    name = Column(String(255), nullable=False)
    website = Column(String(500))
    industry = Column(String(255))
    description = Column(Text)
    target_audience = Column(Text)
    brand_voice = Column(Text)
    key_selling_points = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Brand(id={self.id}, name={self.name})>"
