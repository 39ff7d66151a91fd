from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from talentgrid.database import Base

class AuditLog(Base):
    """Operational audit trail. Append-only."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=True)
    action = Column(String, index=True, nullable=False)
    entity_type = Column(String, index=True, nullable=False)
    entity_id = Column(Integer, nullable=True)
    actor_id = Column(String, nullable=True)
    actor_role = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    before_state = Column(JSON, nullable=True)
    after_state = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
