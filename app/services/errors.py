"""
Domain errors raised by the services.

Each error carries a stable ``code`` for clients and the HTTP status the
exception handler in ``app.main`` responds with. ``extra`` is merged into
the response body.
"""
from typing import Any, Dict, Optional


class LostFoundError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self.message = message
        self.extra = extra or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.extra}


class NotFound(LostFoundError):
    code = "not_found"
    status_code = 404


class InvalidState(LostFoundError):
    code = "invalid_state"
    status_code = 400


class SelfClaim(LostFoundError):
    code = "self_claim"
    status_code = 400


class DuplicateClaim(LostFoundError):
    code = "duplicate_claim"
    status_code = 409

    def __init__(self, existing_status: str):
        self.existing_status = existing_status
        super().__init__(
            "You already have a claim for this item",
            extra={"existing_claim_status": existing_status},
        )


class AlreadyReviewed(LostFoundError):
    code = "already_reviewed"
    status_code = 409


class PermissionDenied(LostFoundError):
    code = "permission_denied"
    status_code = 403


class InternalError(LostFoundError):
    code = "internal_error"
    status_code = 500
