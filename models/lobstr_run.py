import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from database import Base


class LobstrRun(Base):
    """
    One execution of a Lobstr squid. Multi-search campaigns use a parent row
    (search_index 0) plus child rows pointing at it via parent_campaign_id.
    """
    __tablename__ = "lobstr_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    squid_id = Column(String(64), nullable=False, index=True)
    # Provider run id, set once the run is launched
    run_id = Column(String(64), index=True)
    user_id = Column(String(36), index=True)

    query = Column(String(500))
    location = Column(String(500))
    max_results = Column(Integer)
    abort_limit = Column(Integer)

    # planned, tasks_being_added, running, target_reached,
    # completed, stopped, aborted, failed
    status = Column(String(50), nullable=False, default="planned", index=True)
    error_message = Column(Text)

    results_count = Column(Integer, default=0)
    results_saved_count = Column(Integer, default=0)
    total_results_found = Column(Integer, default=0)

    search_session_id = Column(String(36))
    task_creation_type = Column(String(50))  # parameters or url
    scraping_run_id = Column(String(36))

    # Multi-search fan-out
    parent_campaign_id = Column(String(36), index=True)
    search_index = Column(Integer)
    searches_total = Column(Integer)
    searches_completed = Column(Integer, default=0)
    search_batch_size = Column(Integer)
    geographic_segment = Column(JSON)

    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<LobstrRun(id={self.id}, run_id={self.run_id}, status={self.status})>"
