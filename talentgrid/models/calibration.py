from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, JSON, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from talentgrid.database import Base
import enum

class SessionStatus(str, enum.Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    CANCELLED = "cancelled"

class ParticipantRole(str, enum.Enum):
    FACILITATOR = "facilitator"
    REVIEWER = "reviewer"
    OBSERVER = "observer"

class FilterMode(str, enum.Enum):
    ALL = "all"
    DEPARTMENT = "department"
    MANAGER = "manager"
    EXPLICIT = "explicit"

class AdjustmentAction(str, enum.Enum):
    APPLY = "apply"
    REVERT = "revert"

class CalibrationSession(Base):
    __tablename__ = "calibration_sessions"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=False)
    cycle_id = Column(Integer, ForeignKey("performance_cycles.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, default=SessionStatus.DRAFT.value, nullable=False)
    filter_mode = Column(String, default=FilterMode.ALL.value, nullable=False)
    filter_config = Column(JSON, nullable=True)
    facilitator_id = Column(String, nullable=False)
    require_panel_signoff = Column(Boolean, default=False, nullable=False)
    enable_forced_distribution = Column(Boolean, default=False, nullable=False)
    distribution_targets = Column(JSON, nullable=True)  # {level: percent}
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closed_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    roster = relationship("CalibrationSessionRating", back_populates="session", cascade="all, delete-orphan")
    participants = relationship("CalibrationParticipant", back_populates="session", cascade="all, delete-orphan")
    adjustments = relationship(
        "CalibrationAdjustment",
        back_populates="session",
        order_by="CalibrationAdjustment.sequence",
    )
    artifacts = relationship(
        "CalibrationAuditArtifact",
        back_populates="session",
        order_by="CalibrationAuditArtifact.version",
    )

class CalibrationSessionRating(Base):
    __tablename__ = "calibration_session_ratings"
    __table_args__ = (
        UniqueConstraint("session_id", "rating_id", name="uq_session_rating"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("calibration_sessions.id"), index=True, nullable=False)
    rating_id = Column(Integer, ForeignKey("performance_ratings.id"), index=True, nullable=False)

    session = relationship("CalibrationSession", back_populates="roster")
    rating = relationship("PerformanceRating")

class CalibrationParticipant(Base):
    __tablename__ = "calibration_participants"
    __table_args__ = (
        UniqueConstraint("session_id", "participant_id", name="uq_session_participant"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("calibration_sessions.id"), index=True, nullable=False)
    participant_id = Column(String, nullable=False)
    participant_name = Column(String, nullable=True)
    role = Column(String, default=ParticipantRole.REVIEWER.value, nullable=False)
    signed_off_at = Column(DateTime(timezone=True), nullable=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("CalibrationSession", back_populates="participants")

class CalibrationAdjustment(Base):
    """Append-only event log. Rows are never updated or deleted."""
    __tablename__ = "calibration_adjustments"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_adjustment_session_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=False)
    session_id = Column(Integer, ForeignKey("calibration_sessions.id"), index=True, nullable=False)
    sequence = Column(Integer, nullable=False)
    action = Column(String, nullable=False)
    rating_id = Column(Integer, ForeignKey("performance_ratings.id"), index=True, nullable=False)
    employee_id = Column(String, nullable=False)
    employee_name = Column(String, nullable=True)

    original_score = Column(Float, nullable=True)
    original_level = Column(String, nullable=True)
    previous_final_score = Column(Float, nullable=True)
    previous_final_level = Column(String, nullable=True)
    new_final_score = Column(Float, nullable=True)
    new_final_level = Column(String, nullable=True)
    previous_potential_score = Column(Float, nullable=True)
    previous_potential_level = Column(String, nullable=True)
    # null when the entry leaves potential untouched
    new_potential_score = Column(Float, nullable=True)
    new_potential_level = Column(String, nullable=True)
    adjustment_type = Column(String, nullable=True)
    original_position = Column(String, nullable=True)
    new_position = Column(String, nullable=True)

    justification = Column(Text, nullable=False)
    author_id = Column(String, nullable=False)
    reverts_adjustment_id = Column(Integer, ForeignKey("calibration_adjustments.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    session = relationship("CalibrationSession", back_populates="adjustments")

class CalibrationAuditArtifact(Base):
    """Immutable snapshot produced on close; regeneration writes a new version."""
    __tablename__ = "calibration_audit_artifacts"
    __table_args__ = (
        UniqueConstraint("session_id", "version", name="uq_artifact_session_version"),
    )

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String, index=True, nullable=False)
    session_id = Column(Integer, ForeignKey("calibration_sessions.id"), index=True, nullable=False)
    version = Column(Integer, nullable=False)
    artifact_hash = Column(String(64), unique=True, index=True, nullable=False)
    content_checksum = Column(String(64), nullable=False)
    verification_url = Column(String, nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    generated_by = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)

    session = relationship("CalibrationSession", back_populates="artifacts")
