"""Error taxonomy for sighting and check-in operations.

Every error carries the HTTP status and the stable ``code`` string the API
returns, so the route layer can translate them with a single handler.
"""
from typing import Optional


class SightingError(Exception):
    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(SightingError):
    """Malformed input. Never retried."""
    status_code = 400
    code = "INVALID_FIELD"


class RateLimited(SightingError):
    status_code = 429
    code = "RATE_LIMITED"


class Duplicate(SightingError):
    """A live sighting already exists close enough to the candidate."""
    status_code = 409
    code = "DUPLICATE"

    def __init__(self, existing_sighting_id: str):
        super().__init__("A recent sighting already exists here.")
        self.existing_sighting_id = existing_sighting_id

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["existing_sighting_id"] = self.existing_sighting_id
        return body


class NotFound(SightingError):
    status_code = 404
    code = "NOT_FOUND"


class WindowClosed(SightingError):
    status_code = 400
    code = "WINDOW_CLOSED"


class CooldownActive(SightingError):
    status_code = 429
    code = "COOLDOWN_ACTIVE"


class StoreError(SightingError):
    """Storage failure. Callers only see the generic message; details go to the log."""
    status_code = 500
    code = "STORE_ERROR"

    def __init__(self, message: str = "Database error"):
        super().__init__(message)
