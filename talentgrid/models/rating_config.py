from sqlalchemy import Column, Integer, String, Float, DateTime, JSON
from sqlalchemy.sql import func
from talentgrid.database import Base

class RatingConfigRecord(Base):
    """Per-account overrides; any null column falls back to the engine default."""
    __tablename__ = "rating_configs"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, unique=True, index=True, nullable=False)
    weights = Column(JSON, nullable=True)
    bands = Column(JSON, nullable=True)
    performance_axis = Column(JSON, nullable=True)
    potential_axis = Column(JSON, nullable=True)
    bonus_factors = Column(JSON, nullable=True)
    min_justification_length = Column(Integer, nullable=True)
    justification_display_limit = Column(Integer, nullable=True)
    distribution_tolerance = Column(Float, nullable=True)
    updated_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
