"""
Error types raised by the identity consistency engine.

- GymError: base exception
- ValidationError: missing/malformed field or date-order violation
- ConflictError: duplicate email in one of the stores
- NotFoundError: identity or projection absent
- DependencyError: best-effort side effect (email, push) failed
- PermissionDeniedError: caller does not own the record it acts on

Invariants:
    - All errors inherit from GymError
    - DependencyError is logged by its raiser's caller, never surfaced to a client
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GymError(Exception):
    """Base exception for all engine errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
        status_code: HTTP status the API layer maps this error to
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "GYM_ERROR"
        self.details = details or {}


class ValidationError(GymError):
    """Input failed one of the engine's own checks.

    Raised when:
    - A required field is missing
    - Membership end date is not after the start date
    - Role is not admin, trainer or member
    """

    status_code = 400

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR", details={"field": field_name})
        self.field_name = field_name


class ConflictError(GymError):
    """A uniqueness invariant would be broken.

    Raised when:
    - An identity with the same email exists
    - A member/trainer/staff record with the same email exists
    """

    status_code = 409

    def __init__(self, message: str, collection: Optional[str] = None, email: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={"collection": collection, "email": email},
        )
        self.collection = collection
        self.email = email


class NotFoundError(GymError):
    """Identity or projection does not exist."""

    status_code = 404

    def __init__(self, message: str, collection: Optional[str] = None, ref: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"collection": collection, "ref": ref},
        )
        self.collection = collection
        self.ref = ref


class DependencyError(GymError):
    """A best-effort collaborator (email sender, push hub) failed."""

    status_code = 502

    def __init__(self, message: str, dependency: Optional[str] = None) -> None:
        super().__init__(message, code="DEPENDENCY_ERROR", details={"dependency": dependency})
        self.dependency = dependency


class PermissionDeniedError(GymError):
    """The caller may not act on this record (e.g. a trainer on another trainer's session)."""

    status_code = 403

    def __init__(self, message: str, collection: Optional[str] = None, ref: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="FORBIDDEN",
            details={"collection": collection, "ref": ref},
        )
        self.collection = collection
        self.ref = ref
