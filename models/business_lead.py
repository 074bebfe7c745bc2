import uuid

from sqlalchemy import Column, Integer, String, Text, Float, DateTime, JSON
from sqlalchemy.sql import func
from database import Base


class BusinessLead(Base):
    """
    One scraped business. Append-only; no deduplication across runs.
    """
    __tablename__ = "business_leads"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name = Column(String(500))
    address = Column(Text)
    phone = Column(String(100))
    email = Column(String(255))
    website = Column(String(1000))
    rating = Column(Float)
    reviews_count = Column(Integer)
    category = Column(String(255))
    activity = Column(String(255))

    latitude = Column(Float)
    longitude = Column(Float)
    place_id = Column(String(255))
    google_id = Column(String(255))
    cid = Column(String(255))
    google_url = Column(String(1000))
    social_media = Column(JSON)

    search_query = Column(String(500))
    search_location = Column(String(500))
    search_categories = Column(JSON)

    user_id = Column(String(36), index=True)
    lobstr_run_id = Column(String(36), index=True)
    provider_run_id = Column(String(64), index=True)
    # 1..N within one provider run
    scraped_sequence = Column(Integer, nullable=False)
    processing_status = Column(String(50), default="raw")

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<BusinessLead(id={self.id}, name={self.name}, seq={self.scraped_sequence})>"
