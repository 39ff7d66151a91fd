"""
Calibration session state machine.

    DRAFT -> IN_PROGRESS -> CLOSED
    DRAFT | IN_PROGRESS -> CANCELLED

Every mutating operation checks SESSION_TRANSITIONS (or the state that
accepts the operation) before touching anything. Adjustments are an
append-only log; the rating's final_score/final_level are a projection of the
latest non-reverted apply entry.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from talentgrid.core.exceptions import (
    AccessDeniedError,
    ConcurrentWriteError,
    DomainValidationError,
    NotFoundError,
    StateConflictError,
)
from talentgrid.core.identity import Actor
from talentgrid.models.calibration import (
    AdjustmentAction,
    CalibrationAdjustment,
    CalibrationParticipant,
    CalibrationSession,
    CalibrationSessionRating,
    FilterMode,
    ParticipantRole,
    SessionStatus,
)
from talentgrid.models.cycle import PerformanceCycle
from talentgrid.models.rating import AdjustmentType, PerformanceRating
from talentgrid.scoring.bonus import aggregate_bonus_factor, bonus_multiplier
from talentgrid.scoring.calibration_rules import MoveContext, RuleWarning, evaluate_move
from talentgrid.scoring.config import RatingConfig
from talentgrid.scoring.nine_box import POSITION_LABELS, NineBoxPosition, default_classifier, potential_band
from talentgrid.scoring.utils import round_score, to_decimal
from talentgrid.services.audit import AuditService
from talentgrid.services.audit_artifact import AuditArtifactGenerator
from talentgrid.services.base import BaseService
from talentgrid.services.cycle_service import CycleService, ensure_cycle_writable
from talentgrid.services.rating_config_service import RatingConfigService
from talentgrid.services.rating_service import rating_snapshot, refresh_nine_box

SESSION_TRANSITIONS: Dict[SessionStatus, Set[SessionStatus]] = {
    SessionStatus.DRAFT: {SessionStatus.IN_PROGRESS, SessionStatus.CANCELLED},
    SessionStatus.IN_PROGRESS: {SessionStatus.CLOSED, SessionStatus.CANCELLED},
    SessionStatus.CLOSED: set(),
    SessionStatus.CANCELLED: set(),
}

ADJUSTING_ROLES = {ParticipantRole.FACILITATOR.value, ParticipantRole.REVIEWER.value}
NO_CHANGE_TOLERANCE = Decimal("0.01")
DISTRIBUTION_TOTAL = Decimal(100)


@dataclass
class AdjustmentOutcome:
    adjustment: CalibrationAdjustment
    rating: PerformanceRating
    warnings: List[RuleWarning] = field(default_factory=list)


def classify_adjustment(original, new) -> AdjustmentType:
    if original is None or new is None:
        return AdjustmentType.NO_CHANGE
    delta = to_decimal(new) - to_decimal(original)
    if abs(delta) < NO_CHANGE_TOLERANCE:
        return AdjustmentType.NO_CHANGE
    return AdjustmentType.UPGRADE if delta > 0 else AdjustmentType.DOWNGRADE


class CalibrationService(BaseService):

    # --- loading ---------------------------------------------------------

    def get_session(self, session_id: int, for_update: bool = False) -> CalibrationSession:
        query = self.db.query(CalibrationSession).filter(
            CalibrationSession.id == session_id,
            CalibrationSession.account_id == self.account_id,
        )
        if for_update:
            query = query.with_for_update()
        session = query.first()
        if session is None:
            raise NotFoundError("Calibration session", session_id)
        return session

    def list_sessions(self, cycle_id: Optional[int] = None, status: Optional[str] = None) -> List[CalibrationSession]:
        query = self.db.query(CalibrationSession).filter(CalibrationSession.account_id == self.account_id)
        if cycle_id is not None:
            query = query.filter(CalibrationSession.cycle_id == cycle_id)
        if status:
            query = query.filter(CalibrationSession.status == status)
        return query.order_by(CalibrationSession.id.desc()).all()

    def _config(self, session: CalibrationSession) -> RatingConfig:
        cycle = self.db.get(PerformanceCycle, session.cycle_id)
        return RatingConfigService(self.db, self.account_id).for_cycle(cycle)

    def _participant(self, session: CalibrationSession, actor: Actor) -> Optional[CalibrationParticipant]:
        for participant in session.participants:
            if participant.participant_id == actor.user_id:
                return participant
        return None

    # --- guards ----------------------------------------------------------

    @staticmethod
    def _require_state(session: CalibrationSession, allowed: Iterable[SessionStatus], operation: str) -> None:
        allowed = {s.value for s in allowed}
        if session.status not in allowed:
            raise StateConflictError(
                f"Cannot {operation} while session is {session.status}",
                current_state=session.status,
                entity="calibration_session",
            )

    @staticmethod
    def _require_facilitator(session: CalibrationSession, actor: Actor, operation: str) -> None:
        if session.facilitator_id != actor.user_id:
            raise AccessDeniedError(f"Only the facilitator may {operation}")

    def _require_adjuster(self, session: CalibrationSession, actor: Actor) -> CalibrationParticipant:
        participant = self._participant(session, actor)
        if participant is None or participant.role not in ADJUSTING_ROLES:
            raise AccessDeniedError("Only the facilitator or a reviewer may adjust ratings")
        return participant

    @staticmethod
    def _require_justification(text: Optional[str], config: RatingConfig, field_name: str) -> str:
        cleaned = (text or "").strip()
        if len(cleaned) < config.min_justification_length:
            raise DomainValidationError(
                f"{field_name} must be at least {config.min_justification_length} characters",
                field=field_name,
            )
        return cleaned

    def _transition(self, session: CalibrationSession, target: SessionStatus, **values) -> None:
        """
        Compare-and-set on the status column.

        Two concurrent callers both pass the table check, but only one UPDATE
        matches the expected current status; the other gets StateConflictError.
        """
        current = SessionStatus(session.status)
        if target not in SESSION_TRANSITIONS[current]:
            raise StateConflictError(
                f"Session cannot move from {current.value} to {target.value}",
                current_state=current.value,
                entity="calibration_session",
            )
        updated = (
            self.db.query(CalibrationSession)
            .filter(
                CalibrationSession.id == session.id,
                CalibrationSession.status == current.value,
            )
            .update({CalibrationSession.status: target.value, **values}, synchronize_session=False)
        )
        if updated != 1:
            self.db.rollback()
            self.db.refresh(session)
            raise StateConflictError(
                f"Session state changed concurrently, now {session.status}",
                current_state=session.status,
                entity="calibration_session",
            )
        self.db.refresh(session)

    # --- lifecycle -------------------------------------------------------

    def create_session(
        self,
        cycle_id: int,
        name: str,
        actor: Actor,
        description: Optional[str] = None,
        filter_mode: str = FilterMode.ALL.value,
        filter_config: Optional[dict] = None,
        scheduled_at: Optional[datetime] = None,
        require_panel_signoff: bool = False,
        enable_forced_distribution: bool = False,
        distribution_targets: Optional[Dict[str, float]] = None,
        participants: Optional[List[dict]] = None,
    ) -> CalibrationSession:
        cycle = CycleService(self.db, self.account_id).get_cycle(cycle_id)
        ensure_cycle_writable(cycle)
        config = RatingConfigService(self.db, self.account_id).for_cycle(cycle)

        try:
            mode = FilterMode(filter_mode)
        except ValueError:
            raise DomainValidationError(f"Unknown filter mode '{filter_mode}'", field="filter_mode") from None
        if enable_forced_distribution:
            self._validate_distribution_targets(distribution_targets, config)

        session = CalibrationSession(
            account_id=self.account_id,
            cycle_id=cycle.id,
            name=name,
            description=description,
            status=SessionStatus.DRAFT.value,
            filter_mode=mode.value,
            filter_config=filter_config or {},
            facilitator_id=actor.user_id,
            require_panel_signoff=require_panel_signoff,
            enable_forced_distribution=enable_forced_distribution,
            distribution_targets=distribution_targets if enable_forced_distribution else None,
            scheduled_at=scheduled_at,
        )
        self.db.add(session)
        self.db.flush()

        self.db.add(CalibrationParticipant(
            session_id=session.id,
            participant_id=actor.user_id,
            participant_name=actor.display_name,
            role=ParticipantRole.FACILITATOR.value,
        ))
        for item in participants or []:
            self._add_participant_row(session, item.get("participant_id"), item.get("participant_name"),
                                      item.get("role", ParticipantRole.REVIEWER.value))

        rating_ids = self._select_roster(cycle, mode, filter_config or {})
        for rating_id in rating_ids:
            self.db.add(CalibrationSessionRating(session_id=session.id, rating_id=rating_id))

        AuditService(self.db, self.account_id).log_action(
            action="calibration_session_created",
            entity_type="calibration_session",
            entity_id=session.id,
            actor_id=actor.user_id,
            details={"name": name, "filter_mode": mode.value, "roster_size": len(rating_ids)},
        )
        self.commit()
        self.db.refresh(session)
        self.log_info(f"Calibration session {session.id} created", session_id=session.id, roster=len(rating_ids))
        return session

    def _validate_distribution_targets(self, targets: Optional[Dict[str, float]], config: RatingConfig) -> None:
        if not targets:
            raise DomainValidationError(
                "distribution_targets are required when forced distribution is enabled",
                field="distribution_targets",
            )
        unknown = set(targets) - set(config.levels)
        if unknown:
            raise DomainValidationError(
                f"Unknown levels in distribution_targets: {sorted(unknown)}", field="distribution_targets"
            )
        if not all(to_decimal(v).is_finite() for v in targets.values()):
            raise DomainValidationError("Distribution targets must be finite numbers", field="distribution_targets")
        if any(v < 0 for v in targets.values()):
            raise DomainValidationError("Distribution targets must be non-negative", field="distribution_targets")
        total = sum((to_decimal(v) for v in targets.values()), Decimal(0))
        if abs(total - DISTRIBUTION_TOTAL) > NO_CHANGE_TOLERANCE:
            raise DomainValidationError(
                f"Distribution targets must sum to 100, got {total}", field="distribution_targets"
            )

    def _select_roster(self, cycle: PerformanceCycle, mode: FilterMode, filter_config: dict) -> List[int]:
        query = self.db.query(PerformanceRating.id).filter(PerformanceRating.cycle_id == cycle.id)
        if mode == FilterMode.DEPARTMENT:
            ids = filter_config.get("department_ids") or []
            if not ids:
                raise DomainValidationError("department_ids are required", field="filter_config.department_ids")
            query = query.filter(PerformanceRating.department_id.in_(ids))
        elif mode == FilterMode.MANAGER:
            ids = filter_config.get("manager_ids") or []
            if not ids:
                raise DomainValidationError("manager_ids are required", field="filter_config.manager_ids")
            query = query.filter(PerformanceRating.manager_id.in_(ids))
        elif mode == FilterMode.EXPLICIT:
            ids = filter_config.get("rating_ids") or []
            if not ids:
                raise DomainValidationError("rating_ids are required", field="filter_config.rating_ids")
            query = query.filter(PerformanceRating.id.in_(ids))
            found = {rid for (rid,) in query.all()}
            missing = sorted(set(ids) - found)
            if missing:
                raise DomainValidationError(
                    f"Ratings {missing} do not belong to cycle {cycle.id}", field="filter_config.rating_ids"
                )
        return [rid for (rid,) in query.order_by(PerformanceRating.id).all()]

    def _add_participant_row(self, session, participant_id, participant_name, role) -> CalibrationParticipant:
        if not participant_id:
            raise DomainValidationError("participant_id is required", field="participant_id")
        if role not in (ParticipantRole.REVIEWER.value, ParticipantRole.OBSERVER.value):
            raise DomainValidationError(
                "Participants join as reviewer or observer; the facilitator is fixed", field="role"
            )
        participant = CalibrationParticipant(
            session_id=session.id,
            participant_id=participant_id,
            participant_name=participant_name,
            role=role,
        )
        self.db.add(participant)
        return participant

    def add_participant(
        self,
        session_id: int,
        participant_id: str,
        actor: Actor,
        participant_name: Optional[str] = None,
        role: str = ParticipantRole.REVIEWER.value,
    ) -> CalibrationParticipant:
        session = self.get_session(session_id)
        self._require_facilitator(session, actor, "manage the panel")
        self._require_state(session, (SessionStatus.DRAFT, SessionStatus.IN_PROGRESS), "add participants")
        if any(p.participant_id == participant_id for p in session.participants):
            raise StateConflictError(
                f"{participant_id} is already on the panel", current_state=session.status,
                entity="calibration_session",
            )
        participant = self._add_participant_row(session, participant_id, participant_name, role)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConcurrentWriteError() from exc
        AuditService(self.db, self.account_id).log_action(
            action="calibration_participant_added",
            entity_type="calibration_session",
            entity_id=session.id,
            actor_id=actor.user_id,
            details={"participant_id": participant_id, "role": role},
        )
        self.commit()
        self.db.refresh(participant)
        return participant

    def start_session(self, session_id: int, actor: Actor) -> CalibrationSession:
        session = self.get_session(session_id)
        self._require_facilitator(session, actor, "start the session")
        self._require_state(session, (SessionStatus.DRAFT,), "start")
        if not session.roster:
            raise StateConflictError(
                "A session needs at least one rating in its roster to start",
                current_state=session.status,
                entity="calibration_session",
            )
        self._transition(session, SessionStatus.IN_PROGRESS, started_at=datetime.now(timezone.utc))
        AuditService(self.db, self.account_id).log_action(
            action="calibration_session_started",
            entity_type="calibration_session",
            entity_id=session.id,
            actor_id=actor.user_id,
            details={"roster_size": len(session.roster)},
        )
        self.commit()
        return session

    def sign_off(self, session_id: int, actor: Actor) -> CalibrationParticipant:
        session = self.get_session(session_id)
        self._require_state(session, (SessionStatus.IN_PROGRESS,), "sign off")
        participant = self._participant(session, actor)
        if participant is None or participant.role == ParticipantRole.OBSERVER.value:
            raise AccessDeniedError("Only panel members with a reviewing role may sign off")
        if participant.signed_off_at is None:
            participant.signed_off_at = datetime.now(timezone.utc)
            AuditService(self.db, self.account_id).log_action(
                action="calibration_signed_off",
                entity_type="calibration_session",
                entity_id=session.id,
                actor_id=actor.user_id,
                actor_role=participant.role,
            )
            self.commit()
        return participant

    # --- adjustments -----------------------------------------------------

    def _next_sequence(self, session: CalibrationSession) -> int:
        current = (
            self.db.query(func.max(CalibrationAdjustment.sequence))
            .filter(CalibrationAdjustment.session_id == session.id)
            .scalar()
        )
        return (current or 0) + 1

    def _roster_rating(self, session: CalibrationSession, rating_id: int) -> PerformanceRating:
        member = (
            self.db.query(CalibrationSessionRating)
            .filter(
                CalibrationSessionRating.session_id == session.id,
                CalibrationSessionRating.rating_id == rating_id,
            )
            .first()
        )
        if member is None:
            raise DomainValidationError(
                f"Rating {rating_id} is not part of this session's roster", field="rating_id"
            )
        rating = (
            self.db.query(PerformanceRating)
            .filter(PerformanceRating.id == rating_id)
            .with_for_update()
            .one()
        )
        ensure_cycle_writable(rating.cycle)
        return rating

    def _flush(self) -> None:
        """Flush, translating lost races into ConcurrentWriteError."""
        try:
            self.db.flush()
        except (StaleDataError, IntegrityError) as exc:
            self.db.rollback()
            self.log_warning(f"Concurrent calibration write rejected: {exc}")
            raise ConcurrentWriteError() from exc

    def _persist(self) -> None:
        self._flush()
        try:
            self.db.commit()
        except (StaleDataError, IntegrityError) as exc:
            self.db.rollback()
            self.log_warning(f"Concurrent calibration write rejected: {exc}")
            raise ConcurrentWriteError() from exc

    def apply_adjustment(
        self,
        session_id: int,
        rating_id: int,
        new_final_score: Optional[float],
        justification: str,
        actor: Actor,
        new_potential_score: Optional[float] = None,
    ) -> AdjustmentOutcome:
        """
        Append an apply entry moving the rating's final score, its potential, or both.

        Either axis left as None is not touched.
        """
        session = self.get_session(session_id, for_update=True)
        self._require_state(session, (SessionStatus.IN_PROGRESS,), "adjust ratings")
        self._require_adjuster(session, actor)
        config = self._config(session)

        if new_final_score is None and new_potential_score is None:
            raise DomainValidationError("final_score or potential_score is required", field="final_score")
        score = None
        if new_final_score is not None:
            score = round_score(config.check_in_scale(new_final_score, field="final_score"))
        potential = None
        if new_potential_score is not None:
            potential = round_score(config.check_in_scale(new_potential_score, field="potential_score"))
        text = self._require_justification(justification, config, "justification")
        rating = self._roster_rating(session, rating_id)
        if rating.effective_score is None:
            raise StateConflictError(
                "Rating has no calculated score yet", current_state="pending", entity="rating"
            )

        original_score, original_level = rating.effective_score, rating.effective_level
        previous_final_score, previous_final_level = rating.final_score, rating.final_level
        previous_potential_score, previous_potential_level = rating.potential_score, rating.potential_level
        from_position = default_classifier.classify_rating(rating, config)
        adjustment_type = classify_adjustment(original_score, score)
        new_level = config.level_for_score(score) if score is not None else None
        new_potential_level = potential_band(potential, config)
        now = datetime.now(timezone.utc)

        if score is not None:
            rating.final_score = float(score)
            rating.final_level = new_level
            rating.calibrated = True
            rating.calibrated_at = now
            rating.calibrated_by = actor.user_id
            rating.calibration_session_id = session.id
            rating.adjustment_type = adjustment_type.value
        if potential is not None:
            rating.potential_score = float(potential)
            rating.potential_level = new_potential_level
        to_position = refresh_nine_box(rating, config)

        adjustment = CalibrationAdjustment(
            account_id=self.account_id,
            session_id=session.id,
            sequence=self._next_sequence(session),
            action=AdjustmentAction.APPLY.value,
            rating_id=rating.id,
            employee_id=rating.employee_id,
            employee_name=rating.employee_name,
            original_score=original_score,
            original_level=original_level,
            previous_final_score=previous_final_score,
            previous_final_level=previous_final_level,
            new_final_score=float(score) if score is not None else None,
            new_final_level=new_level,
            previous_potential_score=previous_potential_score,
            previous_potential_level=previous_potential_level,
            new_potential_score=float(potential) if potential is not None else None,
            new_potential_level=new_potential_level,
            adjustment_type=adjustment_type.value,
            original_position=from_position.value,
            new_position=to_position.value,
            justification=text,
            author_id=actor.user_id,
            created_at=now,
        )
        self.db.add(adjustment)
        self._flush()
        AuditService(self.db, self.account_id).log_action(
            action="calibration_adjustment_applied",
            entity_type="rating",
            entity_id=rating.id,
            actor_id=actor.user_id,
            details={"session_id": session.id, "justification": text},
            before_state={
                "score": original_score,
                "level": original_level,
                "potential_score": previous_potential_score,
                "position": from_position.value,
            },
            after_state={
                "score": rating.effective_score,
                "level": rating.effective_level,
                "potential_score": rating.potential_score,
                "position": to_position.value,
            },
        )
        self._persist()

        warnings = evaluate_move(MoveContext(
            from_position=from_position,
            to_position=to_position,
            is_downgrade=adjustment_type == AdjustmentType.DOWNGRADE,
            aspiration=rating.potential_aspiration,
            ability=rating.potential_ability,
            engagement=rating.potential_engagement,
        ))
        self.log_info(
            f"Rating {rating.id} calibrated {original_score} -> {rating.effective_score}",
            session_id=session.id,
            rating_id=rating.id,
            potential=rating.potential_score,
            warnings=[w.code for w in warnings],
        )
        return AdjustmentOutcome(adjustment=adjustment, rating=rating, warnings=warnings)

    def _live_applies(self, rating_id: int, excluding: Set[int], column) -> List[CalibrationAdjustment]:
        """Non-reverted apply entries for the rating that set `column`, newest first."""
        reverted = {
            target
            for (target,) in self.db.query(CalibrationAdjustment.reverts_adjustment_id)
            .filter(
                CalibrationAdjustment.rating_id == rating_id,
                CalibrationAdjustment.action == AdjustmentAction.REVERT.value,
            )
            .all()
        } | excluding
        applies = (
            self.db.query(CalibrationAdjustment)
            .filter(
                CalibrationAdjustment.rating_id == rating_id,
                CalibrationAdjustment.action == AdjustmentAction.APPLY.value,
                column.isnot(None),
            )
            .order_by(CalibrationAdjustment.created_at.desc(), CalibrationAdjustment.id.desc())
            .all()
        )
        return [entry for entry in applies if entry.id not in reverted]

    def _projected_final(self, rating_id: int, excluding: Set[int]) -> Optional[CalibrationAdjustment]:
        """Latest apply entry for the rating that has not been reverted."""
        live = self._live_applies(rating_id, excluding, CalibrationAdjustment.new_final_score)
        return live[0] if live else None

    def _project_potential(self, rating: PerformanceRating, excluding: Set[int]) -> None:
        live = self._live_applies(rating.id, excluding, CalibrationAdjustment.new_potential_score)
        if live:
            rating.potential_score = live[0].new_potential_score
            rating.potential_level = live[0].new_potential_level
            return
        # nothing left: fall back to the potential held before the first calibration move
        baseline = (
            self.db.query(CalibrationAdjustment)
            .filter(
                CalibrationAdjustment.rating_id == rating.id,
                CalibrationAdjustment.action == AdjustmentAction.APPLY.value,
                CalibrationAdjustment.new_potential_score.isnot(None),
            )
            .order_by(CalibrationAdjustment.created_at, CalibrationAdjustment.id)
            .first()
        )
        rating.potential_score = baseline.previous_potential_score
        rating.potential_level = baseline.previous_potential_level

    def _append_revert(
        self,
        session: CalibrationSession,
        target: CalibrationAdjustment,
        reason: str,
        actor: Actor,
        config: RatingConfig,
    ) -> CalibrationAdjustment:
        rating = self._roster_rating(session, target.rating_id)
        before_score, before_level = rating.effective_score, rating.effective_level
        previous_final_score, previous_final_level = rating.final_score, rating.final_level
        previous_potential_score, previous_potential_level = rating.potential_score, rating.potential_level
        from_position = default_classifier.classify_rating(rating, config)
        now = datetime.now(timezone.utc)

        if target.new_final_score is not None:
            projection = self._projected_final(rating.id, excluding={target.id})
            if projection is None:
                rating.final_score = None
                rating.final_level = None
                rating.calibrated = False
                rating.calibrated_at = None
                rating.calibrated_by = None
                rating.calibration_session_id = None
                rating.adjustment_type = None
            else:
                rating.final_score = projection.new_final_score
                rating.final_level = projection.new_final_level
                rating.calibrated = True
                rating.calibrated_at = projection.created_at
                rating.calibrated_by = projection.author_id
                rating.calibration_session_id = projection.session_id
                rating.adjustment_type = projection.adjustment_type
        if target.new_potential_score is not None:
            self._project_potential(rating, excluding={target.id})
        to_position = refresh_nine_box(rating, config)

        entry = CalibrationAdjustment(
            account_id=self.account_id,
            session_id=session.id,
            sequence=self._next_sequence(session),
            action=AdjustmentAction.REVERT.value,
            rating_id=rating.id,
            employee_id=rating.employee_id,
            employee_name=rating.employee_name,
            original_score=before_score,
            original_level=before_level,
            previous_final_score=previous_final_score,
            previous_final_level=previous_final_level,
            new_final_score=rating.final_score,
            new_final_level=rating.final_level,
            previous_potential_score=previous_potential_score,
            previous_potential_level=previous_potential_level,
            new_potential_score=rating.potential_score if target.new_potential_score is not None else None,
            new_potential_level=rating.potential_level if target.new_potential_score is not None else None,
            adjustment_type=classify_adjustment(before_score, rating.effective_score).value,
            original_position=from_position.value,
            new_position=to_position.value,
            justification=reason,
            author_id=actor.user_id,
            reverts_adjustment_id=target.id,
            created_at=now,
        )
        self.db.add(entry)
        # sequence numbers are assigned one at a time
        self._flush()
        AuditService(self.db, self.account_id).log_action(
            action="calibration_adjustment_reverted",
            entity_type="rating",
            entity_id=rating.id,
            actor_id=actor.user_id,
            details={"session_id": session.id, "reverts_adjustment_id": target.id, "reason": reason},
            before_state=rating_snapshot_for(before_score, before_level, from_position),
            after_state=rating_snapshot(rating),
        )
        return entry

    def revert_adjustment(self, session_id: int, adjustment_id: int, reason: str, actor: Actor) -> CalibrationAdjustment:
        session = self.get_session(session_id, for_update=True)
        self._require_state(session, (SessionStatus.IN_PROGRESS,), "revert adjustments")
        self._require_adjuster(session, actor)
        config = self._config(session)
        text = self._require_justification(reason, config, "reason")

        target = (
            self.db.query(CalibrationAdjustment)
            .filter(
                CalibrationAdjustment.id == adjustment_id,
                CalibrationAdjustment.session_id == session.id,
            )
            .first()
        )
        if target is None:
            raise NotFoundError("Adjustment", adjustment_id)
        if target.action != AdjustmentAction.APPLY.value:
            raise DomainValidationError("Only apply entries can be reverted", field="adjustment_id")
        already = (
            self.db.query(CalibrationAdjustment.id)
            .filter(CalibrationAdjustment.reverts_adjustment_id == target.id)
            .first()
        )
        if already is not None:
            raise StateConflictError(
                f"Adjustment {target.id} was already reverted", current_state="reverted", entity="adjustment"
            )

        entry = self._append_revert(session, target, text, actor, config)
        self._persist()
        self.log_info(f"Adjustment {target.id} reverted", session_id=session.id, adjustment_id=target.id)
        return entry

    def list_adjustments(self, session_id: int) -> List[CalibrationAdjustment]:
        session = self.get_session(session_id)
        return list(session.adjustments)

    def _active_applies(self, session: CalibrationSession) -> List[CalibrationAdjustment]:
        reverted = {a.reverts_adjustment_id for a in session.adjustments if a.reverts_adjustment_id}
        return [
            a for a in session.adjustments
            if a.action == AdjustmentAction.APPLY.value and a.id not in reverted
        ]

    # --- roster & bonus --------------------------------------------------

    def get_roster(self, session_id: int) -> dict:
        """Current roster with positions and multipliers derived from live rating state."""
        session = self.get_session(session_id)
        config = self._config(session)
        entries = []
        positions = []
        for member in sorted(session.roster, key=lambda m: m.rating_id):
            rating = member.rating
            position = default_classifier.classify_rating(rating, config)
            positions.append(position)
            multiplier = bonus_multiplier(position, config)
            entries.append({
                "rating": rating,
                "position": position.value,
                "position_label": POSITION_LABELS[position],
                "bonus_multiplier": float(multiplier) if multiplier is not None else None,
            })
        bonus = aggregate_bonus_factor(positions, config)
        return {
            "session_id": session.id,
            "status": session.status,
            "entries": entries,
            "bonus_factor": float(bonus) if bonus is not None else None,
            "classified": sum(1 for p in positions if p != NineBoxPosition.UNCLASSIFIED),
            "unclassified": sum(1 for p in positions if p == NineBoxPosition.UNCLASSIFIED),
        }

    def compute_bonus_factor(self, session_id: int) -> Optional[float]:
        return self.get_roster(session_id)["bonus_factor"]

    def distribution_check(self, session: CalibrationSession, config: RatingConfig) -> List[dict]:
        """Deviations from the forced distribution beyond tolerance; empty when compliant."""
        if not session.enable_forced_distribution or not session.distribution_targets:
            return []
        levels = [m.rating.effective_level for m in session.roster if m.rating.effective_score is not None]
        total = len(levels)
        tolerance = to_decimal(config.distribution_tolerance)
        violations = []
        for level, target in session.distribution_targets.items():
            actual = (Decimal(levels.count(level)) * 100 / Decimal(total)) if total else Decimal(0)
            if abs(actual - to_decimal(target)) > tolerance:
                violations.append({
                    "level": level,
                    "target": float(target),
                    "actual": float(round_score(actual)),
                })
        return violations

    # --- closing ---------------------------------------------------------

    def close_session(self, session_id: int, actor: Actor):
        """
        Close the session and generate audit artifact version 1.

        Returns the artifact. Rejected while required sign-offs are missing or
        the forced distribution is out of tolerance.
        """
        session = self.get_session(session_id)
        self._require_facilitator(session, actor, "close the session")
        self._require_state(session, (SessionStatus.IN_PROGRESS,), "close")
        config = self._config(session)

        if session.require_panel_signoff:
            outstanding = sorted(
                p.participant_id for p in session.participants
                if p.role == ParticipantRole.REVIEWER.value and p.signed_off_at is None
            )
            if outstanding:
                raise StateConflictError(
                    f"Panel sign-off outstanding for: {', '.join(outstanding)}",
                    current_state=session.status,
                    entity="calibration_session",
                )
        violations = self.distribution_check(session, config)
        if violations:
            levels = ", ".join(f"{v['level']} {v['actual']}% vs {v['target']}%" for v in violations)
            raise StateConflictError(
                f"Forced distribution out of tolerance: {levels}",
                current_state=session.status,
                entity="calibration_session",
            )

        self._transition(
            session,
            SessionStatus.CLOSED,
            closed_at=datetime.now(timezone.utc),
            closed_by=actor.user_id,
        )
        artifact = AuditArtifactGenerator(self.db, self.account_id).generate(session, actor, config)
        AuditService(self.db, self.account_id).log_action(
            action="calibration_session_closed",
            entity_type="calibration_session",
            entity_id=session.id,
            actor_id=actor.user_id,
            details={
                "adjustments": len(session.adjustments),
                "artifact_hash": artifact.artifact_hash,
            },
        )
        self._persist()
        self.log_info(f"Calibration session {session.id} closed", session_id=session.id)
        return artifact

    def regenerate_artifact(self, session_id: int, actor: Actor):
        session = self.get_session(session_id)
        self._require_facilitator(session, actor, "regenerate the audit artifact")
        artifact = AuditArtifactGenerator(self.db, self.account_id).generate(session, actor, self._config(session))
        self._persist()
        return artifact

    def cancel_session(self, session_id: int, actor: Actor, reason: Optional[str] = None) -> CalibrationSession:
        """
        Cancel a draft or running session.

        Live adjustments made in the session are compensated with revert
        entries so the ratings fall back to their previous projection.
        """
        session = self.get_session(session_id, for_update=True)
        self._require_facilitator(session, actor, "cancel the session")
        config = self._config(session)
        text = (reason or "").strip() or "Session cancelled"

        current = SessionStatus(session.status)
        if SessionStatus.CANCELLED not in SESSION_TRANSITIONS[current]:
            raise StateConflictError(
                f"Session cannot move from {current.value} to cancelled",
                current_state=current.value,
                entity="calibration_session",
            )
        compensated = 0
        for applied in reversed(self._active_applies(session)):
            self._append_revert(session, applied, f"Session cancelled: {text}", actor, config)
            compensated += 1

        self._transition(session, SessionStatus.CANCELLED, cancelled_at=datetime.now(timezone.utc))
        AuditService(self.db, self.account_id).log_action(
            action="calibration_session_cancelled",
            entity_type="calibration_session",
            entity_id=session.id,
            actor_id=actor.user_id,
            details={"reason": text, "compensated_adjustments": compensated},
        )
        self._persist()
        return session


def rating_snapshot_for(score, level, position: NineBoxPosition) -> dict:
    return {"score": score, "level": level, "position": position.value}
