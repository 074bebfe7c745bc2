from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from database import Base


class SquidLease(Base):
    """
    Exclusive-use lease on a shared Lobstr squid
    """
    __tablename__ = "squid_leases"

    squid_id = Column(String(64), primary_key=True)
    holder = Column(String(255), nullable=False)
    acquired_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<SquidLease(squid_id={self.squid_id}, holder={self.holder})>"
