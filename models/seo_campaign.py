import uuid

from sqlalchemy import Column, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from database import Base


class SeoCampaign(Base):
    __tablename__ = "seo_campaigns"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    brand_id = Column(String(36), index=True)
    user_id = Column(String(36), index=True)

    website_url = Column(String(500))
    business_description = Column(Text)
    target_country = Column(String(100))
    language = Column(String(100))

    # List of {"keyword": ..., ...} dicts or plain strings
    organic_keywords = Column(JSON)
    # Holds competitorData.topCompetitors and contentPillars
    style_analysis = Column(JSON)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<SeoCampaign(id={self.id}, website_url={self.website_url})>"
