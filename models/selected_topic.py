import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from database import Base


class SelectedTopic(Base):
    __tablename__ = "selected_topics"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(String(36), index=True)
    title = Column(String(500))

    status = Column(String(50), default="selected")
    article_id = Column(String(36))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<SelectedTopic(id={self.id}, status={self.status})>"
