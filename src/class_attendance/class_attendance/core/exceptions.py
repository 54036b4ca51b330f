class DomainError(Exception):
    """Base exception for business rule violations.

    Every subclass is an expected, user-facing condition with a stable
    machine-readable ``code`` and the HTTP status it maps to.
    """

    code = "DOMAIN_ERROR"
    http_status = 400


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "VALIDATION_ERROR"
    http_status = 400


class InvalidBiometricTokenError(ValidationError):
    """Raised when the proof-of-presence token is missing or malformed."""

    code = "BAD_TOKEN"
    http_status = 422


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""

    code = "UNAUTHENTICATED"
    http_status = 401


class ForbiddenError(DomainError):
    """Raised when a user lacks the role or ownership for an action."""

    code = "FORBIDDEN"
    http_status = 403


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    http_status = 404


class AlreadyActiveError(DomainError):
    """Raised when a class already has an unexpired active session."""

    code = "ALREADY_ACTIVE"
    http_status = 400


class InvalidStateError(DomainError):
    """Raised when an entity is not in the state an operation requires."""

    code = "INVALID_STATE"
    http_status = 400


class SessionExpiredError(DomainError):
    code = "SESSION_EXPIRED"
    http_status = 400


class NotEnrolledError(DomainError):
    code = "NOT_ENROLLED"
    http_status = 403


class DuplicateMarkError(DomainError):
    """Raised when a (session, student) pair already has a record."""

    code = "DUPLICATE_MARK"
    http_status = 400


class AlreadyEnrolledError(DomainError):
    code = "ALREADY_ENROLLED"
    http_status = 409


class SessionCodeCollisionError(Exception):
    """Storage rejected a join code already used by another active session.

    Internal signal for the lifecycle manager to retry with a new code.
    """
