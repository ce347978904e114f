"""Error taxonomy for membership lifecycle operations.

``ValidationError``, ``NotFoundError``, ``StateError`` and ``ConflictError``
are surfaced to the caller with a user-facing message. ``TransientStoreError``
marks a per-record race inside a batch or page loop; those are counted and
never escalated. ``InfrastructureError`` is a whole-invocation failure and is
always re-raised so the platform retries the invocation and alerts.
"""

from __future__ import annotations


class MembershipError(Exception):
    """Base error carrying a stable code and a user-facing message."""

    code = "membership_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


class ValidationError(MembershipError):
    code = "validation_error"


class NotFoundError(MembershipError):
    code = "not_found"


class StateError(MembershipError):
    code = "invalid_state"


class ConflictError(MembershipError):
    code = "conflict"


class TransientStoreError(MembershipError):
    code = "transient_store_error"


class InfrastructureError(MembershipError):
    code = "infrastructure_error"


__all__ = [
    "ConflictError",
    "InfrastructureError",
    "MembershipError",
    "NotFoundError",
    "StateError",
    "TransientStoreError",
    "ValidationError",
]
