from __future__ import annotations


class DomainError(ValueError):
    """Base for business-rule failures that map onto an HTTP status code.

    The message is part of the API contract and is rendered verbatim.
    """

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(DomainError):
    status_code = 401

    def __init__(self, message: str = 'Unauthorized') -> None:
        super().__init__(message)


class Forbidden(DomainError):
    status_code = 403

    def __init__(self, message: str = 'Insufficient permissions') -> None:
        super().__init__(message)


class NotFound(DomainError):
    status_code = 404


class ValidationError(DomainError):
    pass


class InvalidState(DomainError):
    pass


class InvalidTransition(DomainError):
    pass


class SupplierUnavailable(InvalidState):
    pass


class BelowMinimum(ValidationError):
    pass
