"""
Rating persistence around the pure engines.

Aggregation never touches final_score; potential changes are refused once a
calibration adjustment references the rating unless the caller re-assesses.
The nine_box_position column is a cache refreshed on every write that can move
either axis.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from talentgrid.core.config import settings
from talentgrid.core.exceptions import DataIncompleteError, NotFoundError, StateConflictError
from talentgrid.core.identity import Actor
from talentgrid.models.calibration import CalibrationAdjustment
from talentgrid.models.cycle import PerformanceCycle
from talentgrid.models.rating import PerformanceRating
from talentgrid.scoring.config import RatingConfig
from talentgrid.scoring.nine_box import (
    POSITION_LABELS,
    NineBoxPosition,
    default_classifier,
    potential_band,
)
from talentgrid.scoring.potential_engine import PotentialEngine
from talentgrid.scoring.score_aggregator import ScoreAggregator, completeness
from talentgrid.services.audit import AuditService
from talentgrid.services.base import BaseService
from talentgrid.services.cycle_service import CycleService, ensure_cycle_writable
from talentgrid.services.rating_config_service import RatingConfigService

RATING_PENDING = "pending"
RATING_CALCULATED = "calculated"


@dataclass
class BulkGenerateResult:
    total: int = 0
    success: int = 0
    pending: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success": self.success,
            "pending": self.pending,
            "failed": self.failed,
            "errors": self.errors,
        }


def refresh_nine_box(rating: PerformanceRating, config: RatingConfig) -> NineBoxPosition:
    position = default_classifier.classify_rating(rating, config)
    rating.nine_box_position = position.value
    return position


def rating_snapshot(rating: PerformanceRating) -> dict:
    return {
        "calculated_score": rating.calculated_score,
        "calculated_level": rating.calculated_level,
        "final_score": rating.final_score,
        "final_level": rating.final_level,
        "potential_score": rating.potential_score,
        "nine_box_position": rating.nine_box_position,
    }


class RatingService(BaseService):
    def _cycle(self, cycle_id: int) -> PerformanceCycle:
        return CycleService(self.db, self.account_id).get_cycle(cycle_id)

    def _config(self, cycle: PerformanceCycle) -> RatingConfig:
        return RatingConfigService(self.db, self.account_id).for_cycle(cycle)

    def get_rating(self, rating_id: int, for_update: bool = False) -> PerformanceRating:
        query = self.db.query(PerformanceRating).filter(
            PerformanceRating.id == rating_id,
            PerformanceRating.account_id == self.account_id,
        )
        if for_update:
            query = query.with_for_update()
        rating = query.first()
        if rating is None:
            raise NotFoundError("Rating", rating_id)
        return rating

    # --- aggregation -----------------------------------------------------

    def generate_rating(self, rating_id: int) -> str:
        """
        Re-run the aggregator for one employee and persist the result.

        Returns "calculated" or "pending". A pending rating has null score and
        level and drops out of grid and ranking views.
        """
        rating = self.get_rating(rating_id, for_update=True)
        cycle = rating.cycle
        ensure_cycle_writable(cycle)
        config = self._config(cycle)

        assignments = CycleService(self.db, self.account_id).assignments_for(cycle.id, rating.employee_id)
        aggregator = ScoreAggregator(config)
        try:
            result = aggregator.aggregate(
                assignments,
                participating_roles=cycle.participating_roles,
                min_subordinates=cycle.min_subordinates,
            )
        except DataIncompleteError as exc:
            self._mark_pending(rating, assignments)
            refresh_nine_box(rating, config)
            self.commit()
            self.log_info(
                f"Rating {rating.id} pending: {exc.message}",
                rating_id=rating.id,
                missing=exc.missing,
            )
            return RATING_PENDING

        rating.calculated_score = float(result.score)
        rating.calculated_level = result.level
        for role in ("self", "manager", "peer", "upward"):
            value = result.role_scores.get(role)
            setattr(rating, f"{role}_score", float(value) if value is not None else None)
        rating.evaluation_completeness = float(result.completeness)
        rating.total_evaluations = result.total_evaluations
        rating.completed_evaluations = result.completed_evaluations
        rating.calculated_at = datetime.now(timezone.utc)
        refresh_nine_box(rating, config)
        self.commit()
        return RATING_CALCULATED

    def _mark_pending(self, rating: PerformanceRating, assignments) -> None:
        total = len(assignments)
        completed = sum(1 for a in assignments if a.status == "completed")
        rating.calculated_score = None
        rating.calculated_level = None
        rating.self_score = rating.manager_score = rating.peer_score = rating.upward_score = None
        rating.total_evaluations = total
        rating.completed_evaluations = completed
        rating.evaluation_completeness = float(completeness(completed, total))
        rating.calculated_at = datetime.now(timezone.utc)

    def generate_ratings_for_cycle(
        self,
        cycle_id: int,
        max_workers: Optional[int] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ) -> BulkGenerateResult:
        """
        Regenerate every rating of a cycle.

        Employees are independent, so with max_workers > 1 the work fans out
        over a thread pool where each worker opens its own session from
        `session_factory`. With a single worker the current session is used.
        """
        cycle = self._cycle(cycle_id)
        ensure_cycle_writable(cycle)
        rating_ids = [
            rating_id
            for (rating_id,) in self.db.query(PerformanceRating.id)
            .filter(PerformanceRating.cycle_id == cycle.id)
            .order_by(PerformanceRating.id)
            .all()
        ]
        workers = max_workers if max_workers is not None else settings.bulk_max_workers
        result = BulkGenerateResult(total=len(rating_ids))

        if workers <= 1 or len(rating_ids) <= 1:
            for rating_id in rating_ids:
                self._record_outcome(result, rating_id, self._generate_isolated(self, rating_id))
        else:
            if session_factory is None:
                from talentgrid.database import SessionLocal
                session_factory = SessionLocal
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {
                    pool.submit(self._generate_in_worker, session_factory, rating_id): rating_id
                    for rating_id in rating_ids
                }
                for future in as_completed(futures):
                    self._record_outcome(result, futures[future], future.result())

        self.log_info(
            f"Bulk rating generation finished for cycle {cycle.id}",
            cycle_id=cycle.id,
            **{k: v for k, v in result.to_dict().items() if k != "errors"},
        )
        return result

    @staticmethod
    def _generate_isolated(service: "RatingService", rating_id: int):
        try:
            return service.generate_rating(rating_id)
        except Exception as exc:
            service.db.rollback()
            service.log_error(f"Rating {rating_id} generation failed: {exc}", rating_id=rating_id)
            return exc

    def _generate_in_worker(self, session_factory: Callable[[], Session], rating_id: int):
        db = session_factory()
        try:
            return self._generate_isolated(RatingService(db, self.account_id), rating_id)
        finally:
            db.close()

    @staticmethod
    def _record_outcome(result: BulkGenerateResult, rating_id: int, outcome) -> None:
        if outcome == RATING_CALCULATED:
            result.success += 1
        elif outcome == RATING_PENDING:
            result.pending += 1
        else:
            result.failed += 1
            result.errors.append({"rating_id": str(rating_id), "error": str(outcome)})

    # --- potential -------------------------------------------------------

    def _ensure_potential_editable(self, rating: PerformanceRating, reassess: bool) -> None:
        ensure_cycle_writable(rating.cycle)
        if reassess:
            return
        referenced = (
            self.db.query(CalibrationAdjustment.id)
            .filter(CalibrationAdjustment.rating_id == rating.id)
            .first()
        )
        if referenced is not None:
            raise StateConflictError(
                "Potential is locked after calibration; pass reassess to change it",
                current_state="calibrated",
                entity="rating",
            )

    def rate_potential(
        self,
        rating_id: int,
        aspiration: Optional[int],
        ability: Optional[int],
        engagement: Optional[int],
        actor: Actor,
        notes: Optional[str] = None,
        reassess: bool = False,
    ) -> PerformanceRating:
        rating = self.get_rating(rating_id, for_update=True)
        self._ensure_potential_editable(rating, reassess)
        result = PotentialEngine.calculate(aspiration, ability, engagement)
        config = self._config(rating.cycle)
        before = rating_snapshot(rating)

        rating.potential_aspiration = result.aspiration
        rating.potential_ability = result.ability
        rating.potential_engagement = result.engagement
        rating.potential_score = float(result.score)
        rating.potential_level = potential_band(result.score, config)
        rating.potential_rated_by = actor.user_id
        rating.potential_rated_at = datetime.now(timezone.utc)
        rating.potential_notes = notes
        refresh_nine_box(rating, config)

        AuditService(self.db, self.account_id).log_action(
            action="potential_reassessed" if reassess else "potential_rated",
            entity_type="rating",
            entity_id=rating.id,
            actor_id=actor.user_id,
            details=result.to_dict(),
            before_state=before,
            after_state=rating_snapshot(rating),
        )
        self.commit()
        self.db.refresh(rating)
        return rating

    def clear_potential(self, rating_id: int, actor: Actor, reassess: bool = False) -> PerformanceRating:
        rating = self.get_rating(rating_id, for_update=True)
        self._ensure_potential_editable(rating, reassess)
        config = self._config(rating.cycle)
        before = rating_snapshot(rating)

        rating.potential_aspiration = None
        rating.potential_ability = None
        rating.potential_engagement = None
        rating.potential_score = None
        rating.potential_level = None
        rating.potential_rated_by = None
        rating.potential_rated_at = None
        rating.potential_notes = None
        refresh_nine_box(rating, config)

        AuditService(self.db, self.account_id).log_action(
            action="potential_cleared",
            entity_type="rating",
            entity_id=rating.id,
            actor_id=actor.user_id,
            before_state=before,
            after_state=rating_snapshot(rating),
        )
        self.commit()
        self.db.refresh(rating)
        return rating

    # --- read views ------------------------------------------------------

    def list_ratings(
        self,
        cycle_id: int,
        department_id: Optional[str] = None,
        manager_id: Optional[str] = None,
        level: Optional[str] = None,
        include_pending: bool = True,
    ) -> List[PerformanceRating]:
        cycle = self._cycle(cycle_id)
        query = self.db.query(PerformanceRating).filter(PerformanceRating.cycle_id == cycle.id)
        if department_id:
            query = query.filter(PerformanceRating.department_id == department_id)
        if manager_id:
            query = query.filter(PerformanceRating.manager_id == manager_id)
        if not include_pending:
            query = query.filter(PerformanceRating.calculated_score.isnot(None))
        ratings = query.order_by(PerformanceRating.employee_name, PerformanceRating.id).all()
        if level:
            ratings = [r for r in ratings if r.effective_level == level]
        return ratings

    def rating_stats(self, cycle_id: int) -> dict:
        ratings = self.list_ratings(cycle_id)
        evaluated = sum(1 for r in ratings if not r.is_pending)
        with_potential = sum(1 for r in ratings if r.has_potential)
        return {
            "total": len(ratings),
            "evaluated": evaluated,
            "pending": len(ratings) - evaluated,
            "calibrated": sum(1 for r in ratings if r.final_score is not None),
            "potential_assigned": with_potential,
            "potential_pending": len(ratings) - with_potential,
        }

    def get_nine_box_grid(self, cycle_id: int) -> dict:
        """Classified ratings grouped per position; positions are recomputed, not read from the cache."""
        cycle = self._cycle(cycle_id)
        config = self._config(cycle)
        ratings = self.list_ratings(cycle.id, include_pending=False)

        cells: Dict[str, List[dict]] = {p.value: [] for p in NineBoxPosition if p != NineBoxPosition.UNCLASSIFIED}
        unclassified = 0
        for rating in ratings:
            position = default_classifier.classify_rating(rating, config)
            if position == NineBoxPosition.UNCLASSIFIED:
                unclassified += 1
                continue
            cells[position.value].append({
                "rating_id": rating.id,
                "employee_id": rating.employee_id,
                "employee_name": rating.employee_name,
                "performance": rating.effective_score,
                "potential": rating.potential_score,
            })

        classified = sum(len(members) for members in cells.values())
        return {
            "cycle_id": cycle.id,
            "classified": classified,
            "unclassified": unclassified,
            "cells": [
                {
                    "position": position,
                    "label": POSITION_LABELS[NineBoxPosition(position)],
                    "quadrant": default_classifier.quadrant_number(NineBoxPosition(position)),
                    "count": len(members),
                    "percentage": round(len(members) * 100 / classified, 1) if classified else 0.0,
                    "employees": members,
                }
                for position, members in cells.items()
            ],
        }

    def get_distribution(self, cycle_id: int) -> dict:
        """Calculated versus final level distribution, plus calibration progress."""
        cycle = self._cycle(cycle_id)
        config = self._config(cycle)
        ratings = self.list_ratings(cycle.id, include_pending=False)
        total = len(ratings)

        def _bucket(levels):
            counts = {level: 0 for level in config.levels}
            for level in levels:
                if level in counts:
                    counts[level] += 1
            return [
                {
                    "level": level,
                    "label": config.label_for_level(level),
                    "count": count,
                    "percentage": round(count * 100 / total, 1) if total else 0.0,
                }
                for level, count in counts.items()
            ]

        calibrated = sum(1 for r in ratings if r.final_score is not None)
        return {
            "cycle_id": cycle.id,
            "total": total,
            "calculated": _bucket(r.calculated_level for r in ratings),
            "final": _bucket(r.effective_level for r in ratings),
            "calibrated": calibrated,
            "calibration_progress": round(calibrated * 100 / total, 1) if total else 0.0,
        }
