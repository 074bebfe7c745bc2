import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from database import Base


class WorkflowExecution(Base):
    """
    One content writing invocation, polled by callers while it runs
    """
    __tablename__ = "workflow_executions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # processing, completed, failed
    status = Column(String(50), nullable=False, default="processing", index=True)
    current_stage = Column(String(100))
    progress = Column(Integer, default=0)

    result = Column(JSON)
    error = Column(Text)

    # Cacheable refinement artifacts (strategy, blueprint, voice profile)
    stage_results = Column(JSON)

    campaign_id = Column(String(36), index=True)
    workflow_type = Column(String(100))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<WorkflowExecution(id={self.id}, status={self.status}, stage={self.current_stage})>"
