from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from talentgrid.database import Base
import enum

class CycleStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    IN_REVIEW = "in_review"
    COMPLETED = "completed"
    ARCHIVED = "archived"

class RaterRole(str, enum.Enum):
    SELF = "self"
    MANAGER = "manager"
    UPWARD = "upward"
    PEER = "peer"

class AssignmentStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"

ALL_RATER_ROLES = [r.value for r in RaterRole]

class PerformanceCycle(Base):
    __tablename__ = "performance_cycles"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=False)
    name = Column(String, nullable=False)
    status = Column(String, default=CycleStatus.DRAFT.value, nullable=False)
    participating_roles = Column(JSON, default=lambda: list(ALL_RATER_ROLES))
    min_subordinates = Column(Integer, default=1, nullable=False)  # anonymity floor for upward feedback
    close_date = Column(DateTime(timezone=True), nullable=True)
    weights_override = Column(JSON, nullable=True)  # {"self": .., "manager": .., ...}
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    assignments = relationship("EvaluationAssignment", back_populates="cycle", cascade="all, delete-orphan")
    ratings = relationship("PerformanceRating", back_populates="cycle", cascade="all, delete-orphan")

    @property
    def is_archived(self) -> bool:
        return self.status == CycleStatus.ARCHIVED.value

class EvaluationAssignment(Base):
    __tablename__ = "evaluation_assignments"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=False)
    cycle_id = Column(Integer, ForeignKey("performance_cycles.id"), index=True, nullable=False)
    evaluator_id = Column(String, index=True, nullable=False)
    evaluatee_id = Column(String, index=True, nullable=False)
    rater_role = Column(String, nullable=False)
    status = Column(String, default=AssignmentStatus.PENDING.value, nullable=False)
    responses = Column(JSON, default=list)  # raw item responses, numeric ones are scored
    completed_at = Column(DateTime(timezone=True), nullable=True)

    cycle = relationship("PerformanceCycle", back_populates="assignments")
