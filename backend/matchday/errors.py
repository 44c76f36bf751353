"""
Engine error taxonomy.

Every service raises a subclass of EngineError. Each carries a stable code and
the HTTP status the API layer maps it to, and serializes to a caller-facing
message without any internal state.
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all engine errors"""

    status_code = 400
    code = "ENGINE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "detail": self.message}


class ValidationError(EngineError):
    """Bad input shape or range"""

    status_code = 422
    code = "VALIDATION_ERROR"


class NotFoundError(EngineError):
    """Referenced fixture/competition absent"""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Optional[int] = None):
        message = f"{resource} not found" if resource_id is None else f"{resource} {resource_id} not found"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(EngineError):
    """Scheduling collision, occupied bracket slot, double booking"""

    status_code = 409
    code = "CONFLICT"


class TiebreakRequiredError(ConflictError):
    """Elimination fixture ended level; the engine never picks a winner"""

    code = "TIEBREAK_REQUIRED"


class StateError(EngineError):
    """Operation invalid for the current lifecycle state"""

    status_code = 409
    code = "INVALID_STATE"


class UpstreamError(EngineError):
    """Persistence or notification failure, wrapped with the original cause"""

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.cause = cause
