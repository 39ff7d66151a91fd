"""
Per-account rating configuration.

Resolution order for rater weights: cycle override, then account record,
then engine defaults.
"""
from typing import Optional

from talentgrid.core.identity import Actor
from talentgrid.models.cycle import CycleStatus, PerformanceCycle
from talentgrid.models.rating import PerformanceRating
from talentgrid.models.rating_config import RatingConfigRecord
from talentgrid.scoring.config import DEFAULT_RATING_CONFIG, RatingConfig, load_rating_config
from talentgrid.scoring.nine_box import default_classifier
from talentgrid.services.audit import AuditService
from talentgrid.services.base import BaseService

_OVERRIDABLE = (
    "weights",
    "bands",
    "performance_axis",
    "potential_axis",
    "bonus_factors",
    "min_justification_length",
    "justification_display_limit",
    "distribution_tolerance",
)


class RatingConfigService(BaseService):
    def _record(self) -> Optional[RatingConfigRecord]:
        return (
            self.db.query(RatingConfigRecord)
            .filter(RatingConfigRecord.account_id == self.account_id)
            .first()
        )

    def get_config(self) -> RatingConfig:
        record = self._record()
        if record is None:
            return DEFAULT_RATING_CONFIG
        overrides = {
            name: getattr(record, name)
            for name in _OVERRIDABLE
            if getattr(record, name) is not None
        }
        return load_rating_config({**DEFAULT_RATING_CONFIG.model_dump(), **overrides})

    def for_cycle(self, cycle: PerformanceCycle) -> RatingConfig:
        return self.get_config().with_weights(cycle.weights_override)

    def save_config(self, changes: dict, actor: Actor) -> RatingConfig:
        """
        Validate and persist account overrides.

        Only keys present in `changes` are replaced. The merged result is
        validated as a whole before anything is written.
        """
        current = self.get_config()
        merged = {**current.model_dump(), **{k: v for k, v in changes.items() if k in _OVERRIDABLE}}
        config = load_rating_config(merged)

        record = self._record()
        before = None
        if record is None:
            record = RatingConfigRecord(account_id=self.account_id)
            self.db.add(record)
        else:
            before = {name: getattr(record, name) for name in _OVERRIDABLE}

        dumped = config.model_dump(mode="json")
        for name in _OVERRIDABLE:
            if name in changes:
                setattr(record, name, dumped[name])
        record.updated_by = actor.user_id
        self.db.flush()

        refreshed = self._refresh_nine_box_cache(config)
        AuditService(self.db, self.account_id).log_action(
            action="rating_config_updated",
            entity_type="rating_config",
            entity_id=record.id,
            actor_id=actor.user_id,
            details={"changed": sorted(k for k in changes if k in _OVERRIDABLE), "ratings_reclassified": refreshed},
            before_state=before,
            after_state={name: dumped[name] for name in _OVERRIDABLE},
        )
        self.commit()
        self.log_info("Rating configuration saved", changed=sorted(changes))
        return config

    def _refresh_nine_box_cache(self, config: RatingConfig) -> int:
        """Thresholds may have moved; recompute the cached position of every writable rating."""
        ratings = (
            self.db.query(PerformanceRating)
            .join(PerformanceCycle, PerformanceRating.cycle_id == PerformanceCycle.id)
            .filter(
                PerformanceRating.account_id == self.account_id,
                PerformanceCycle.status != CycleStatus.ARCHIVED.value,
            )
            .all()
        )
        changed = 0
        for rating in ratings:
            position = default_classifier.classify_rating(rating, config).value
            if rating.nine_box_position != position:
                rating.nine_box_position = position
                changed += 1
        return changed
