"""
Typed Exception Hierarchy for the Letably Ledger Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LetablyError:

    LetablyError (base)
    |
    +-- NotFoundError
    |   +-- TenancyNotFoundError
    |   +-- TenancyMemberNotFoundError
    |   +-- ScheduleNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- InvalidInputError
    |   +-- ZeroAmountError
    |   +-- InvalidPaymentTypeError
    |   +-- InvalidPaymentOptionError
    |   +-- MissingFieldError
    |   +-- InvalidPaginationError
    |   +-- BalanceExceededError          (also a ConflictError)
    |
    +-- InvalidStateError
    |   +-- TenancyNotActiveError
    |   +-- AgencyInactiveError
    |   +-- ScheduleHasPaymentsError      (also a ConflictError)
    |
    +-- ConflictError
    |   +-- ConcurrentModificationError
    |   +-- SchedulesAlreadyGeneratedError
    |
    +-- TenantIsolationError
        +-- TenantContextError
        +-- TenantBindingError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | TENANCY_NOT_FOUND           | Tenancy absent OR owned by another agency
                | TENANCY_MEMBER_NOT_FOUND    | Member absent or not in the tenancy
                | SCHEDULE_NOT_FOUND          | Schedule absent OR owned by another agency
                | PAYMENT_NOT_FOUND           | Payment absent or not on the schedule
----------------|-----------------------------|-----------------------------------------
Invalid input   | ZERO_AMOUNT                 | amount_due or payment amount is zero
                | INVALID_PAYMENT_TYPE        | payment_type outside the allowed set
                | INVALID_PAYMENT_OPTION      | Unknown rent payment option
                | MISSING_FIELD               | Required field absent or blank
                | INVALID_PAGINATION          | page/limit not integers
                | BALANCE_EXCEEDED            | Payment would overshoot the schedule
----------------|-----------------------------|-----------------------------------------
Invalid state   | TENANCY_NOT_ACTIVE          | Schedule/payment against inactive tenancy
                | AGENCY_INACTIVE             | Request resolved to a deactivated agency
                | SCHEDULE_HAS_PAYMENTS       | Deleting a schedule that has payments
----------------|-----------------------------|-----------------------------------------
Conflict        | CONCURRENT_MODIFICATION     | Storage contention, retries exhausted
                | SCHEDULES_ALREADY_GENERATED | Automated schedules already exist
----------------|-----------------------------|-----------------------------------------
Isolation       | TENANT_CONTEXT_MISSING      | No agency resolved, unknown slug or id included
                | TENANT_BINDING_VIOLATION    | Session bound to another agency

===============================================================================
HANDLING PATTERNS
===============================================================================

1. NOT FOUND NEVER LEAKS EXISTENCE:

    A schedule that belongs to agency B looks exactly like a schedule that
    does not exist when agency A asks for it.  Messages carry only the id the
    caller supplied.

2. BALANCE VIOLATIONS CARRY THE COMPUTED BALANCE:

    except BalanceExceededError as e:
        return {"error": e.code, "remaining_balance": str(e.remaining_balance)}

3. ONLY CONTENTION IS RETRIED:

    Caller errors (everything except ConcurrentModificationError) are
    deterministic and never retried.  The transaction runner retries the
    underlying storage contention and raises ConcurrentModificationError
    once the bounded attempts are spent.

===============================================================================
"""

from decimal import Decimal


class LetablyError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LETABLY_ERROR"


# Category bases


class NotFoundError(LetablyError):
    """Entity is absent or outside the caller's agency (indistinguishable)."""

    code: str = "NOT_FOUND"


class InvalidInputError(LetablyError):
    """Caller supplied a value the ledger cannot accept."""

    code: str = "INVALID_INPUT"


class InvalidStateError(LetablyError):
    """The target entity is not in a state that allows the operation."""

    code: str = "INVALID_STATE"


class ConflictError(LetablyError):
    """The operation conflicts with the current ledger contents."""

    code: str = "CONFLICT"


class TenantIsolationError(LetablyError):
    """Tenant context is missing or does not match the bound agency."""

    code: str = "TENANT_ISOLATION"


# Not found


class TenancyNotFoundError(NotFoundError):
    """Tenancy not found for this agency."""

    code: str = "TENANCY_NOT_FOUND"

    def __init__(self, tenancy_id: str):
        self.tenancy_id = tenancy_id
        super().__init__(f"Tenancy not found: {tenancy_id}")


class TenancyMemberNotFoundError(NotFoundError):
    """Member not found on the given tenancy for this agency."""

    code: str = "TENANCY_MEMBER_NOT_FOUND"

    def __init__(self, member_id: str, tenancy_id: str | None = None):
        self.member_id = member_id
        self.tenancy_id = tenancy_id
        super().__init__(f"Tenancy member not found: {member_id}")


class ScheduleNotFoundError(NotFoundError):
    """Payment schedule not found for this agency."""

    code: str = "SCHEDULE_NOT_FOUND"

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Payment schedule not found: {schedule_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment record not found on the given schedule for this agency."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str, schedule_id: str | None = None):
        self.payment_id = payment_id
        self.schedule_id = schedule_id
        super().__init__(f"Payment record not found: {payment_id}")


# Invalid input


class ZeroAmountError(InvalidInputError):
    """Amounts are signed but never zero."""

    code: str = "ZERO_AMOUNT"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} cannot be zero")


class InvalidPaymentTypeError(InvalidInputError):
    """payment_type outside the allowed set."""

    code: str = "INVALID_PAYMENT_TYPE"

    def __init__(self, payment_type: str, allowed: tuple[str, ...]):
        self.payment_type = payment_type
        self.allowed = allowed
        super().__init__(
            f"Invalid payment_type '{payment_type}'. "
            f"Must be one of: {', '.join(allowed)}"
        )


class InvalidPaymentOptionError(InvalidInputError):
    """Rent payment option is not one the schedule generator knows."""

    code: str = "INVALID_PAYMENT_OPTION"

    def __init__(self, payment_option: str):
        self.payment_option = payment_option
        super().__init__(f"Unknown payment option: {payment_option}")


class MissingFieldError(InvalidInputError):
    """A required field is absent or blank."""

    code: str = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} is required")


class InvalidPaginationError(InvalidInputError):
    """page/limit could not be interpreted."""

    code: str = "INVALID_PAGINATION"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value!r}")


class BalanceExceededError(InvalidInputError, ConflictError):
    """
    A payment would take the schedule's total outside [0, amount_due].

    This is both a bad input and a conflict with what is already recorded,
    so it can be caught as either category.  The computed remaining balance
    is always included.
    """

    code: str = "BALANCE_EXCEEDED"

    def __init__(
        self,
        amount: Decimal,
        amount_due: Decimal,
        remaining_balance: Decimal,
        message: str,
    ):
        self.amount = amount
        self.amount_due = amount_due
        self.remaining_balance = remaining_balance
        self.is_credit = amount_due < 0
        super().__init__(message)


# Invalid state


class TenancyNotActiveError(InvalidStateError):
    """Schedules and payments are only accepted for active tenancies."""

    code: str = "TENANCY_NOT_ACTIVE"

    def __init__(self, tenancy_id: str, status: str, action: str):
        self.tenancy_id = tenancy_id
        self.status = status
        self.action = action
        super().__init__(
            f"{action} can only be recorded for active tenancies "
            f"(tenancy {tenancy_id} is {status})"
        )


class AgencyInactiveError(InvalidStateError):
    """The resolved agency account has been deactivated."""

    code: str = "AGENCY_INACTIVE"

    def __init__(self, agency_id: str):
        self.agency_id = agency_id
        super().__init__(
            "This agency account is currently inactive. Please contact support."
        )


class ScheduleHasPaymentsError(ConflictError, InvalidStateError):
    """A schedule with recorded payments must be reverted before deletion."""

    code: str = "SCHEDULE_HAS_PAYMENTS"

    def __init__(self, schedule_id: str, payment_count: int, total_paid: Decimal):
        self.schedule_id = schedule_id
        self.payment_count = payment_count
        self.total_paid = total_paid
        super().__init__(
            "Cannot delete a payment schedule that has been paid. "
            "Please revert the payment first."
        )


# Conflict


class ConcurrentModificationError(ConflictError):
    """Storage contention persisted after the bounded retry attempts."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} could not complete after {attempts} attempt(s) "
            "because of concurrent changes; please try again"
        )


class SchedulesAlreadyGeneratedError(ConflictError):
    """Automated schedules of this kind already exist for the tenancy."""

    code: str = "SCHEDULES_ALREADY_GENERATED"

    def __init__(self, tenancy_id: str, kind: str):
        self.tenancy_id = tenancy_id
        self.kind = kind
        super().__init__(f"{kind} schedules already exist for this tenancy")


# Isolation


class TenantContextError(TenantIsolationError):
    """No agency could be resolved for the request; nothing may proceed."""

    code: str = "TENANT_CONTEXT_MISSING"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Agency context required: {reason}")


class TenantBindingError(TenantIsolationError):
    """The session is bound to a different agency than the operation asks for."""

    code: str = "TENANT_BINDING_VIOLATION"

    def __init__(self, expected: str | None, actual: str | None, detail: str = ""):
        self.expected = expected
        self.actual = actual
        message = f"Session bound to agency {expected}, operation targets {actual}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
