from sqlalchemy import Column, Integer, String, Numeric, DateTime, JSON
from sqlalchemy.sql import func
from database import Base


class ApiTokenUsage(Base):
    """
    Best-effort cost ledger for LLM calls
    """
    __tablename__ = "api_token_usage"

    id = Column(Integer, primary_key=True, index=True)

    service_name = Column(String(100), nullable=False)
    model_name = Column(String(255), nullable=False)
    prompt_tokens = Column(Integer, default=0)
    completion_tokens = Column(Integer, default=0)
    total_tokens = Column(Integer, default=0)
    cost_usd = Column(Numeric(12, 6), default=0)

    request_data = Column(JSON)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<ApiTokenUsage(id={self.id}, model={self.model_name}, tokens={self.total_tokens})>"
