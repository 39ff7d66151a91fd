from talentgrid.services.base import BaseService
from talentgrid.models.audit_log import AuditLog
from typing import Optional


def _sanitize(obj):
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if hasattr(obj, "as_tuple"):  # Decimal
        return float(obj)
    return obj


class AuditService(BaseService):
    def log_action(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[int],
        actor_id: Optional[str],
        details: Optional[dict] = None,
        actor_role: Optional[str] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None
    ) -> AuditLog:
        """
        Create an operational audit log entry. Strictly append-only.

        The entry joins the caller's transaction: it is flushed here and
        committed (or rolled back) together with the action it describes.
        """
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            actor_role=actor_role,
            details=_sanitize(details or {}),
            account_id=self.account_id,
            before_state=_sanitize(before_state),
            after_state=_sanitize(after_state)
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def history(self, entity_type: str, entity_id: int):
        return (
            self.db.query(AuditLog)
            .filter(
                AuditLog.account_id == self.account_id,
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == entity_id,
            )
            .order_by(AuditLog.id)
            .all()
        )
