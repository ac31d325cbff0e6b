"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is malformed or out of range"""

    pass


class NotFoundError(DomainException):
    """Referenced entity does not exist"""

    pass


class InvalidStateError(DomainException):
    """Transition attempted from a state that does not allow it"""

    pass


class AuthorizationError(InvalidStateError):
    """Caller is not a party allowed to perform the transition"""

    pass


class ConcurrencyConflictError(InvalidStateError):
    """Entity changed underneath the caller (lost compare-and-swap)"""

    pass


class PreconditionError(DomainException):
    """Transition is allowed from this state but a precondition is unmet"""

    pass


class ExternalServiceError(DomainException):
    """Datastore or payment processor failed or is unavailable"""

    pass


class PaymentVerificationError(DomainException):
    """Payment callback signature or capture status is invalid"""

    pass
