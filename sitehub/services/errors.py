"""
Domain exceptions raised by the service layer.
Each carries the HTTP status the API answers with; see `main.create_app`.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(DomainError):
    status_code = 404


class ValidationFailed(DomainError):
    status_code = 400


class InsufficientQuantity(ValidationFailed):
    pass


class PermissionDenied(DomainError):
    status_code = 403


class Conflict(DomainError):
    status_code = 409


class LedgerConflict(Conflict):
    """A ledger row changed between read and write."""


class AlreadyClockedIn(Conflict):
    pass


class NotClockedIn(Conflict):
    pass


class AlreadyAssigned(Conflict):
    pass


class IdentityError(DomainError):
    status_code = 502
