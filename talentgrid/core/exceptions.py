from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class DomainValidationError(AppException):
    """Malformed or out-of-range input. Named to avoid clashing with pydantic's ValidationError."""
    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.field = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details={"field": field, **(details or {})}
        )

class StateConflictError(AppException):
    """Operation attempted against an incompatible session, cycle or rating state."""
    def __init__(self, message: str, current_state: Optional[str] = None, entity: Optional[str] = None):
        self.current_state = current_state
        super().__init__(
            message=message,
            status_code=409,
            error_code="STATE_CONFLICT",
            details={"current_state": current_state, "entity": entity}
        )

class DataIncompleteError(AppException):
    """
    Soft failure: required inputs are missing, the entity stays pending.
    Never rendered as an error banner.
    """
    def __init__(self, message: str, missing: Optional[list] = None):
        self.missing = missing or []
        super().__init__(
            message=message,
            status_code=200,
            error_code="DATA_INCOMPLETE",
            details={"missing": self.missing}
        )

class ConcurrentWriteError(AppException):
    """Concurrent write race. Named to avoid shadowing sqlalchemy.exc.IntegrityError."""
    def __init__(self, message: str = "The record was modified concurrently. Reload and retry."):
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONCURRENT_WRITE"
        )

class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} {entity_id} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"entity": entity, "id": entity_id}
        )

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )
