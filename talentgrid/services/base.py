import logging
from typing import Optional
from sqlalchemy.orm import Session


class BaseService:
    """Common plumbing for account-scoped domain services."""

    def __init__(self, db: Session, account_id: Optional[str] = None):
        self.db = db
        self.account_id = account_id
        self._logger = logging.getLogger(self.__class__.__module__)

    def _extra(self, extra: Optional[dict] = None) -> dict:
        return {"account_id": self.account_id, **(extra or {})}

    def log_info(self, message: str, **extra):
        self._logger.info(message, extra=self._extra(extra))

    def log_warning(self, message: str, **extra):
        self._logger.warning(message, extra=self._extra(extra))

    def log_error(self, message: str, **extra):
        self._logger.error(message, extra=self._extra(extra))

    def commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
