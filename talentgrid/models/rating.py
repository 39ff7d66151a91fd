from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from talentgrid.database import Base
import enum

class AdjustmentType(str, enum.Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    NO_CHANGE = "no_change"

class PerformanceRating(Base):
    __tablename__ = "performance_ratings"
    __table_args__ = (
        UniqueConstraint("cycle_id", "employee_id", name="uq_rating_cycle_employee"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=False)
    cycle_id = Column(Integer, ForeignKey("performance_cycles.id"), index=True, nullable=False)
    employee_id = Column(String, index=True, nullable=False)
    # Denormalized from the org chart
    employee_name = Column(String, nullable=True)
    department_id = Column(String, index=True, nullable=True)
    manager_id = Column(String, index=True, nullable=True)

    # Aggregation (ScoreAggregator)
    calculated_score = Column(Float, nullable=True)
    calculated_level = Column(String, nullable=True)
    self_score = Column(Float, nullable=True)
    manager_score = Column(Float, nullable=True)
    peer_score = Column(Float, nullable=True)
    upward_score = Column(Float, nullable=True)
    evaluation_completeness = Column(Float, default=0.0)
    total_evaluations = Column(Integer, default=0)
    completed_evaluations = Column(Integer, default=0)
    calculated_at = Column(DateTime(timezone=True), nullable=True)

    # Calibration projection
    final_score = Column(Float, nullable=True)
    final_level = Column(String, nullable=True)
    calibrated = Column(Boolean, default=False, nullable=False)
    calibrated_at = Column(DateTime(timezone=True), nullable=True)
    calibrated_by = Column(String, nullable=True)
    calibration_session_id = Column(Integer, ForeignKey("calibration_sessions.id"), nullable=True)
    adjustment_type = Column(String, nullable=True)

    # Potential (AAE)
    potential_aspiration = Column(Integer, nullable=True)
    potential_ability = Column(Integer, nullable=True)
    potential_engagement = Column(Integer, nullable=True)
    potential_score = Column(Float, nullable=True)
    potential_level = Column(String, nullable=True)
    potential_rated_by = Column(String, nullable=True)
    potential_rated_at = Column(DateTime(timezone=True), nullable=True)
    potential_notes = Column(Text, nullable=True)

    # Cache, recomputed on every write that touches either axis
    nine_box_position = Column(String, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    cycle = relationship("PerformanceCycle", back_populates="ratings")

    @property
    def effective_score(self):
        """Final score takes precedence over the calculated one."""
        return self.final_score if self.final_score is not None else self.calculated_score

    @property
    def effective_level(self):
        return self.final_level if self.final_score is not None else self.calculated_level

    @property
    def is_pending(self) -> bool:
        return self.calculated_score is None

    @property
    def has_potential(self) -> bool:
        return self.potential_score is not None
