class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class SessionNotFoundError(DomainError):
    """Raised when a session id does not exist in the registry."""


class SessionClosedError(DomainError):
    """Raised when an operation needs a live session but it is closed."""


class SessionOutsideWindowError(SessionClosedError):
    """Raised when a session is active but the time is outside its window."""


class RedemptionNotFoundError(ValidationError):
    """Raised when an admin correction targets an unknown redemption id."""


class InfrastructureError(Exception):
    """Base exception for storage/transport failures (retryable by callers)."""


class StoreUnavailableError(InfrastructureError):
    """Raised when a backing store (registry, ledger, audit log) cannot be reached."""


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""
