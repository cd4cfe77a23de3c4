from __future__ import annotations

from typing import Optional, Sequence


class DomainError(Exception):
    """Base exception for business rule violations.

    Every subclass carries a stable machine-readable ``kind`` and the HTTP
    status the controller layer answers with.
    """

    kind = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(DomainError):
    """Raised when an entity does not exist."""

    kind = "NOT_FOUND"
    status_code = 404


class ConflictError(DomainError):
    """Raised on duplicate registration or an illegal presence transition."""

    kind = "CONFLICT"
    status_code = 409


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    kind = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, *, fields: Sequence[str] = ()):
        super().__init__(message)
        self.fields = list(fields)


class InvalidStateError(DomainError):
    """Raised when a record is mutated outside its lifecycle (e.g. closed twice)."""

    kind = "INVALID_STATE"
    status_code = 409


class InternalConsistencyError(DomainError):
    """Raised when stored data breaks an invariant (presence flag vs ledger)."""

    kind = "INTERNAL_CONSISTENCY"
    status_code = 500


class AuthenticationError(DomainError):
    """Raised when the caller identity cannot be established."""

    kind = "UNAUTHENTICATED"
    status_code = 401


class AuthorizationError(DomainError):
    """Raised when a caller lacks permission for an action."""

    kind = "FORBIDDEN"
    status_code = 403


class ArtifactGenerationError(DomainError):
    """Raised when the QR artifact for a member cannot be produced."""

    kind = "ARTIFACT_ERROR"
    status_code = 500
