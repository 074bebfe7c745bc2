import uuid

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from database import Base


class ScrapingRun(Base):
    """
    User-facing campaign record shown in the leads dashboard
    """
    __tablename__ = "scraping_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), index=True)

    query = Column(String(500))
    location = Column(String(500))
    max_results = Column(Integer)

    status = Column(String(50), nullable=False, default="pending")
    lobstr_run_id = Column(String(36))
    lobstr_squid_id = Column(String(64))

    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<ScrapingRun(id={self.id}, status={self.status})>"
