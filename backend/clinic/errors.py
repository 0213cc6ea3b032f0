# Overview: Typed errors raised by the billing core; routes map them to HTTP statuses.

"""
Error taxonomy for the billing core.

- ValidationError: bad input shape/range, rejected before any write
- ReasonRequiredError: financial change without justification
- DuplicateChargeError: initial charge already exists for (visit, service line)
- NotFoundError: referenced visit/charge/patient/payment absent
- ConcurrencyTimeoutError: lock wait exceeded; retry the whole operation
- ConstraintViolationError: uniqueness or other database constraint clash

The charge calculator never raises. Ledger, allocator and queue services raise
these; workflows roll back and let them propagate unchanged.
"""


class ClinicError(Exception):
    """Base class for all typed billing-core errors."""

    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(ClinicError, ValueError):
    """400-level input problem."""


class InvalidAmountError(ValidationError):
    """Amount is non-positive or breaks an allocation/refund limit."""


class ReasonRequiredError(ClinicError):
    """A discount or waiver change was submitted without a reason."""


class NotFoundError(ClinicError):
    status_code = 404


class ChargeNotFoundError(NotFoundError):
    """No charge row for the given id or (visit, service line)."""


class DuplicateChargeError(ClinicError):
    status_code = 409


class ConstraintViolationError(ClinicError):
    """409-level uniqueness conflict (e.g., phone already registered)."""

    status_code = 409


class ConcurrencyTimeoutError(ClinicError):
    """Row lock could not be acquired after retries."""

    status_code = 503
