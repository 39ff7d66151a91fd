"""
Immutable audit artifacts for closed calibration sessions.

The artifact identifier hashes the session id together with the generation
timestamp, so every regeneration yields a new, distinguishable version. A
separate content checksum over the canonical JSON snapshot lets anyone verify
that a stored artifact was not altered.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func

from talentgrid.core.canonical import sha256_checksum, sha256_text
from talentgrid.core.config import settings
from talentgrid.core.exceptions import NotFoundError, StateConflictError
from talentgrid.core.identity import Actor
from talentgrid.models.calibration import (
    AdjustmentAction,
    CalibrationAuditArtifact,
    CalibrationSession,
    SessionStatus,
)
from talentgrid.models.cycle import PerformanceCycle
from talentgrid.scoring.bonus import aggregate_bonus_factor
from talentgrid.scoring.config import RatingConfig
from talentgrid.scoring.nine_box import default_classifier
from talentgrid.services.base import BaseService

ELLIPSIS = "…"


def truncate(text: Optional[str], limit: int) -> str:
    text = text or ""
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + ELLIPSIS


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def artifact_hash_for(session_id: int, generated_at: datetime) -> str:
    return sha256_text(f"{session_id}:{generated_at.isoformat()}")


class AuditArtifactGenerator(BaseService):

    def build_payload(
        self,
        session: CalibrationSession,
        config: RatingConfig,
        version: int,
        artifact_hash: str,
        generated_at: datetime,
        generated_by: str,
    ) -> dict:
        cycle = self.db.get(PerformanceCycle, session.cycle_id)
        facilitator = next(
            (p for p in session.participants if p.participant_id == session.facilitator_id), None
        )
        by_id = {a.id: a for a in session.adjustments}
        limit = config.justification_display_limit

        rows = []
        for entry in session.adjustments:
            reverted = by_id.get(entry.reverts_adjustment_id)
            rows.append({
                "sequence": entry.sequence,
                "action": entry.action,
                "rating_id": entry.rating_id,
                "employee_id": entry.employee_id,
                "employee_name": entry.employee_name,
                "original_score": entry.original_score,
                "original_level": entry.original_level,
                "final_score": entry.new_final_score,
                "final_level": entry.new_final_level,
                "previous_potential_score": entry.previous_potential_score,
                "potential_score": entry.new_potential_score,
                "potential_level": entry.new_potential_level,
                "adjustment_type": entry.adjustment_type,
                "original_position": entry.original_position,
                "new_position": entry.new_position,
                "justification": truncate(entry.justification, limit),
                "justification_truncated": len(entry.justification or "") > limit,
                "author_id": entry.author_id,
                "created_at": _iso(entry.created_at),
                "reverts_sequence": reverted.sequence if reverted is not None else None,
            })

        applies = [r for r in rows if r["action"] == AdjustmentAction.APPLY.value]
        reverted_sequences = {r["reverts_sequence"] for r in rows if r["reverts_sequence"] is not None}
        live = [r for r in applies if r["sequence"] not in reverted_sequences]

        positions = [default_classifier.classify_rating(m.rating, config) for m in session.roster]
        bonus = aggregate_bonus_factor(positions, config)

        return {
            "artifact": {
                "hash": artifact_hash,
                "version": version,
                "generated_at": generated_at.isoformat(),
                "generated_by": generated_by,
                "verification_url": f"{settings.verification_base_url}/{artifact_hash}",
            },
            "session": {
                "id": session.id,
                "name": session.name,
                "cycle_id": session.cycle_id,
                "cycle_name": cycle.name if cycle is not None else None,
                "status": session.status,
                "started_at": _iso(session.started_at),
                "closed_at": _iso(session.closed_at),
                "closed_by": session.closed_by,
                "facilitator_id": session.facilitator_id,
                "facilitator_name": facilitator.participant_name if facilitator is not None else None,
            },
            "panel": [
                {
                    "participant_id": p.participant_id,
                    "name": p.participant_name,
                    "role": p.role,
                    "signed_off_at": _iso(p.signed_off_at),
                }
                for p in sorted(session.participants, key=lambda p: p.id)
            ],
            "adjustments": rows,
            "summary": {
                "roster_size": len(session.roster),
                "entries": len(rows),
                "applied": len(applies),
                "reverted": len(reverted_sequences),
                "adjusted_employees": len({r["rating_id"] for r in live}),
                "upgrades": sum(1 for r in live if r["adjustment_type"] == "upgrade"),
                "downgrades": sum(1 for r in live if r["adjustment_type"] == "downgrade"),
                "potential_changes": sum(1 for r in live if r["potential_score"] is not None),
            },
            "bonus_factor": float(bonus) if bonus is not None else None,
        }

    def generate(self, session: CalibrationSession, actor: Actor, config: RatingConfig) -> CalibrationAuditArtifact:
        """
        Write the next artifact version for a closed session.

        Earlier versions are never touched. Flushes but does not commit; the
        caller owns the transaction.
        """
        if session.status != SessionStatus.CLOSED.value:
            raise StateConflictError(
                "Audit artifacts are generated for closed sessions only",
                current_state=session.status,
                entity="calibration_session",
            )
        latest = (
            self.db.query(func.max(CalibrationAuditArtifact.version))
            .filter(CalibrationAuditArtifact.session_id == session.id)
            .scalar()
        )
        version = (latest or 0) + 1
        generated_at = datetime.now(timezone.utc)
        artifact_hash = artifact_hash_for(session.id, generated_at)
        payload = self.build_payload(session, config, version, artifact_hash, generated_at, actor.user_id)

        artifact = CalibrationAuditArtifact(
            account_id=self.account_id,
            session_id=session.id,
            version=version,
            artifact_hash=artifact_hash,
            content_checksum=sha256_checksum(payload),
            verification_url=payload["artifact"]["verification_url"],
            generated_at=generated_at,
            generated_by=actor.user_id,
            payload=payload,
        )
        self.db.add(artifact)
        self.db.flush()
        self.log_info(
            f"Audit artifact v{version} generated for session {session.id}",
            session_id=session.id,
            artifact_hash=artifact_hash,
        )
        return artifact

    def list_versions(self, session_id: int) -> List[CalibrationAuditArtifact]:
        return (
            self.db.query(CalibrationAuditArtifact)
            .filter(
                CalibrationAuditArtifact.session_id == session_id,
                CalibrationAuditArtifact.account_id == self.account_id,
            )
            .order_by(CalibrationAuditArtifact.version)
            .all()
        )

    def get_latest(self, session_id: int) -> CalibrationAuditArtifact:
        versions = self.list_versions(session_id)
        if not versions:
            raise NotFoundError("Audit artifact for session", session_id)
        return versions[-1]

    def get_by_hash(self, artifact_hash: str) -> CalibrationAuditArtifact:
        # verification links are shared outside the account, so no tenant filter
        artifact = (
            self.db.query(CalibrationAuditArtifact)
            .filter(CalibrationAuditArtifact.artifact_hash == artifact_hash)
            .first()
        )
        if artifact is None:
            raise NotFoundError("Audit artifact", artifact_hash)
        return artifact

    def verify(self, artifact_hash: str) -> dict:
        """Recompute the checksum from the stored snapshot."""
        artifact = self.get_by_hash(artifact_hash)
        actual = sha256_checksum(artifact.payload)
        return {
            "artifact_hash": artifact.artifact_hash,
            "session_id": artifact.session_id,
            "version": artifact.version,
            "generated_at": artifact.payload.get("artifact", {}).get("generated_at"),
            "valid": actual == artifact.content_checksum,
            "expected_checksum": artifact.content_checksum,
            "actual_checksum": actual,
        }
