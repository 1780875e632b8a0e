"""
Domain errors for the back office.

Every error carries the HTTP status the JSON API answers with, so views only
need to catch PropLedgerError and hand the message back to the caller.
"""


class PropLedgerError(Exception):
    """Base class for errors raised by reconciliation, posting and deposit code."""
    status_code = 500
    code = 'error'

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        return self.message

    def as_dict(self):
        payload = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(PropLedgerError):
    """Malformed input: missing field, unparseable CSV, bad date or amount."""
    status_code = 400
    code = 'validation_error'


class NotFoundError(PropLedgerError):
    """A referenced id does not exist."""
    status_code = 404
    code = 'not_found'


class ConflictError(PropLedgerError):
    """The operation is not allowed in the current state of the record."""
    status_code = 409
    code = 'conflict'


class PreconditionError(PropLedgerError):
    """A completion gate has not been met (e.g. unresolved reconciliation lines)."""
    status_code = 412
    code = 'precondition_failed'


class DuplicatePostingError(ConflictError):
    """A ledger entry with the same idempotency key already exists."""
    code = 'duplicate_posting'
