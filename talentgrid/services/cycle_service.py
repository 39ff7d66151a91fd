from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import IntegrityError

from talentgrid.core.exceptions import (
    ConcurrentWriteError,
    DomainValidationError,
    NotFoundError,
    StateConflictError,
)
from talentgrid.core.identity import Actor
from talentgrid.models.cycle import (
    ALL_RATER_ROLES,
    AssignmentStatus,
    CycleStatus,
    EvaluationAssignment,
    PerformanceCycle,
)
from talentgrid.models.rating import PerformanceRating
from talentgrid.scoring.config import RATER_ROLES, load_rating_config
from talentgrid.services.audit import AuditService
from talentgrid.services.base import BaseService

CYCLE_TRANSITIONS: Dict[CycleStatus, Set[CycleStatus]] = {
    CycleStatus.DRAFT: {CycleStatus.ACTIVE},
    CycleStatus.ACTIVE: {CycleStatus.IN_REVIEW},
    CycleStatus.IN_REVIEW: {CycleStatus.COMPLETED, CycleStatus.ACTIVE},
    CycleStatus.COMPLETED: {CycleStatus.ARCHIVED},
    CycleStatus.ARCHIVED: set(),
}


def ensure_cycle_writable(cycle: PerformanceCycle) -> None:
    """Ratings of an archived cycle are permanently read-only."""
    if cycle.is_archived:
        raise StateConflictError(
            f"Cycle {cycle.id} is archived; its ratings are read-only",
            current_state=cycle.status,
            entity="cycle",
        )


class CycleService(BaseService):
    """Review-cycle lifecycle plus the evaluation inputs the aggregator consumes."""

    def get_cycle(self, cycle_id: int) -> PerformanceCycle:
        cycle = (
            self.db.query(PerformanceCycle)
            .filter(PerformanceCycle.id == cycle_id, PerformanceCycle.account_id == self.account_id)
            .first()
        )
        if cycle is None:
            raise NotFoundError("Cycle", cycle_id)
        return cycle

    def list_cycles(self, status: Optional[str] = None) -> List[PerformanceCycle]:
        query = self.db.query(PerformanceCycle).filter(PerformanceCycle.account_id == self.account_id)
        if status:
            query = query.filter(PerformanceCycle.status == status)
        return query.order_by(PerformanceCycle.id.desc()).all()

    def create_cycle(
        self,
        name: str,
        actor: Actor,
        participating_roles: Optional[Iterable[str]] = None,
        min_subordinates: int = 1,
        close_date: Optional[datetime] = None,
        weights_override: Optional[dict] = None,
    ) -> PerformanceCycle:
        roles = list(participating_roles) if participating_roles is not None else list(ALL_RATER_ROLES)
        unknown = [r for r in roles if r not in RATER_ROLES]
        if unknown or not roles:
            raise DomainValidationError(
                f"participating_roles must be a non-empty subset of {list(RATER_ROLES)}",
                field="participating_roles",
            )
        if min_subordinates < 1:
            raise DomainValidationError("min_subordinates must be at least 1", field="min_subordinates")
        if weights_override:
            # validated against defaults so a bad override never reaches the aggregator
            load_rating_config({"weights": weights_override})

        cycle = PerformanceCycle(
            account_id=self.account_id,
            name=name,
            status=CycleStatus.DRAFT.value,
            participating_roles=roles,
            min_subordinates=min_subordinates,
            close_date=close_date,
            weights_override=weights_override,
        )
        self.db.add(cycle)
        self.db.flush()
        AuditService(self.db, self.account_id).log_action(
            action="cycle_created",
            entity_type="cycle",
            entity_id=cycle.id,
            actor_id=actor.user_id,
            details={"name": name, "participating_roles": roles},
        )
        self.commit()
        self.db.refresh(cycle)
        return cycle

    def transition(self, cycle_id: int, target: str, actor: Actor) -> PerformanceCycle:
        cycle = self.get_cycle(cycle_id)
        try:
            target_status = CycleStatus(target)
        except ValueError:
            raise DomainValidationError(f"Unknown cycle status '{target}'", field="status") from None

        current = CycleStatus(cycle.status)
        if target_status not in CYCLE_TRANSITIONS[current]:
            raise StateConflictError(
                f"Cycle cannot move from {current.value} to {target_status.value}",
                current_state=current.value,
                entity="cycle",
            )

        updated = (
            self.db.query(PerformanceCycle)
            .filter(PerformanceCycle.id == cycle.id, PerformanceCycle.status == current.value)
            .update({PerformanceCycle.status: target_status.value}, synchronize_session=False)
        )
        if updated != 1:
            self.db.rollback()
            self.db.refresh(cycle)
            raise StateConflictError(
                "Cycle status changed concurrently", current_state=cycle.status, entity="cycle"
            )
        AuditService(self.db, self.account_id).log_action(
            action="cycle_status_changed",
            entity_type="cycle",
            entity_id=cycle.id,
            actor_id=actor.user_id,
            before_state={"status": current.value},
            after_state={"status": target_status.value},
        )
        self.commit()
        self.db.refresh(cycle)
        self.log_info(f"Cycle {cycle.id} moved to {cycle.status}", cycle_id=cycle.id)
        return cycle

    def enroll_employees(self, cycle_id: int, employees: List[dict], actor: Actor) -> List[PerformanceRating]:
        """
        Create one pending rating (score = null) per employee.

        Each item carries employee_id and optionally employee_name,
        department_id and manager_id. Already enrolled employees are skipped.
        """
        cycle = self.get_cycle(cycle_id)
        ensure_cycle_writable(cycle)
        existing = {
            employee_id
            for (employee_id,) in self.db.query(PerformanceRating.employee_id)
            .filter(PerformanceRating.cycle_id == cycle.id)
            .all()
        }
        created = []
        for item in employees:
            employee_id = item.get("employee_id")
            if not employee_id:
                raise DomainValidationError("employee_id is required", field="employee_id")
            if employee_id in existing:
                continue
            rating = PerformanceRating(
                account_id=self.account_id,
                cycle_id=cycle.id,
                employee_id=employee_id,
                employee_name=item.get("employee_name"),
                department_id=item.get("department_id"),
                manager_id=item.get("manager_id"),
            )
            self.db.add(rating)
            existing.add(employee_id)
            created.append(rating)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConcurrentWriteError("Employees were enrolled concurrently. Reload and retry.") from exc

        AuditService(self.db, self.account_id).log_action(
            action="cycle_employees_enrolled",
            entity_type="cycle",
            entity_id=cycle.id,
            actor_id=actor.user_id,
            details={"created": len(created)},
        )
        self.commit()
        return created

    def add_assignment(
        self,
        cycle_id: int,
        evaluator_id: str,
        evaluatee_id: str,
        rater_role: str,
        actor: Actor,
    ) -> EvaluationAssignment:
        cycle = self.get_cycle(cycle_id)
        ensure_cycle_writable(cycle)
        if rater_role not in RATER_ROLES:
            raise DomainValidationError(f"Unknown rater role '{rater_role}'", field="rater_role")
        assignment = EvaluationAssignment(
            account_id=self.account_id,
            cycle_id=cycle.id,
            evaluator_id=evaluator_id,
            evaluatee_id=evaluatee_id,
            rater_role=rater_role,
            status=AssignmentStatus.PENDING.value,
            responses=[],
        )
        self.db.add(assignment)
        self.commit()
        self.db.refresh(assignment)
        return assignment

    def submit_responses(self, assignment_id: int, responses: list, actor: Actor) -> EvaluationAssignment:
        """Record survey answers and mark the assignment completed."""
        assignment = (
            self.db.query(EvaluationAssignment)
            .filter(
                EvaluationAssignment.id == assignment_id,
                EvaluationAssignment.account_id == self.account_id,
            )
            .first()
        )
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        ensure_cycle_writable(assignment.cycle)
        if assignment.status in (AssignmentStatus.COMPLETED.value, AssignmentStatus.EXPIRED.value):
            raise StateConflictError(
                "Assignment no longer accepts responses",
                current_state=assignment.status,
                entity="assignment",
            )
        assignment.responses = list(responses)
        assignment.status = AssignmentStatus.COMPLETED.value
        assignment.completed_at = datetime.now(timezone.utc)
        self.commit()
        self.db.refresh(assignment)
        return assignment

    def assignments_for(self, cycle_id: int, employee_id: str) -> List[EvaluationAssignment]:
        return (
            self.db.query(EvaluationAssignment)
            .filter(
                EvaluationAssignment.cycle_id == cycle_id,
                EvaluationAssignment.account_id == self.account_id,
                EvaluationAssignment.evaluatee_id == employee_id,
            )
            .all()
        )
