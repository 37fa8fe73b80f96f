"""
Typed exception hierarchy for the petty-cash kernel.

Every error is a typed class with a machine-readable ``code`` class
attribute and structured instance attributes, so callers catch by type
and render by data instead of parsing messages.

    PettyCashError (base)
    |
    +-- ValidationError            raised before any write (fail-closed)
    |   +-- InvalidAmountError
    |   +-- InvalidAccountConfigError
    |   +-- AccountInactiveError
    |   +-- InsufficientBalanceError
    |   +-- TransactionLimitExceededError
    |   +-- DailyLimitExceededError
    |   +-- VarianceReasonRequiredError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- ReconciliationNotFoundError
    |   +-- ReplenishmentNotFoundError
    |   +-- ExpenseCategoryNotFoundError
    |
    +-- StateError
    |   +-- InvalidTransitionError
    |   +-- AccountClosedError
    |   +-- AmbiguousAccountError
    |   +-- TransactionAlreadyResolvedError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedApproverError
    |
    +-- PersistenceError
        +-- ConcurrencyError
            +-- OptimisticLockError

Category        | Code                          | When Raised
----------------|-------------------------------|-----------------------------------
Validation      | INVALID_AMOUNT                | Negative/zero/float amount
                | INVALID_ACCOUNT_CONFIG        | Bad limits or assignee on create/update
                | ACCOUNT_INACTIVE              | Expense on suspended/inactive account
                | INSUFFICIENT_BALANCE          | Amount exceeds current balance
                | TRANSACTION_LIMIT_EXCEEDED    | Amount exceeds per-transaction cap
                | DAILY_LIMIT_EXCEEDED          | Today's approved total + amount > cap
                | VARIANCE_REASON_REQUIRED      | Non-zero variance without a reason
----------------|-------------------------------|-----------------------------------
Not found       | ACCOUNT_NOT_FOUND etc.        | Id does not resolve
----------------|-------------------------------|-----------------------------------
State           | INVALID_TRANSITION            | Workflow edge not defined
                | ACCOUNT_CLOSED                | Mutation of a closed account
                | AMBIGUOUS_ACCOUNT             | Principal owns >1 open account
                | TRANSACTION_ALREADY_RESOLVED  | Approve a rejected / reject an approved
----------------|-------------------------------|-----------------------------------
Authorization   | UNAUTHORIZED_APPROVER         | Role may not approve
----------------|-------------------------------|-----------------------------------
Persistence     | PERSISTENCE_ERROR             | Store read/write failure
                | OPTIMISTIC_LOCK_CONFLICT      | Account/transaction modified concurrently
"""

from decimal import Decimal


class PettyCashError(Exception):
    """
    Base exception for all petty-cash kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "PETTY_CASH_ERROR"


# Validation


class ValidationError(PettyCashError):
    """Input or precondition rejected before any write."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount is not a usable non-negative Decimal."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount!r}: {reason}")


class InvalidAccountConfigError(ValidationError):
    """Account fields (limits, balances, assignee) are inconsistent."""

    code: str = "INVALID_ACCOUNT_CONFIG"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid account {field}: {reason}")


class AccountInactiveError(ValidationError):
    """Account is suspended, closed or flagged inactive."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str, status: str):
        self.account_id = account_id
        self.status = status
        super().__init__(f"account inactive: {account_id} (status={status})")


class InsufficientBalanceError(ValidationError):
    """Amount exceeds the account's available balance."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, account_id: str, available: Decimal, requested: Decimal):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"insufficient balance on {account_id}: "
            f"available {available}, requested {requested}"
        )


class TransactionLimitExceededError(ValidationError):
    """Amount exceeds the per-transaction limit."""

    code: str = "TRANSACTION_LIMIT_EXCEEDED"

    def __init__(self, account_id: str, limit: Decimal, requested: Decimal):
        self.account_id = account_id
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"Amount {requested} exceeds transaction limit of {limit}"
        )


class DailyLimitExceededError(ValidationError):
    """Today's approved expenses plus the amount exceed the daily limit."""

    code: str = "DAILY_LIMIT_EXCEEDED"

    def __init__(
        self,
        account_id: str,
        limit: Decimal,
        spent_today: Decimal,
        requested: Decimal,
    ):
        self.account_id = account_id
        self.limit = limit
        self.spent_today = spent_today
        self.requested = requested
        super().__init__(
            f"Daily limit of {limit} exceeded: "
            f"{spent_today} already spent today, {requested} requested"
        )


class VarianceReasonRequiredError(ValidationError):
    """A non-zero reconciliation variance must be explained."""

    code: str = "VARIANCE_REASON_REQUIRED"

    def __init__(self, account_id: str, variance: Decimal):
        self.account_id = account_id
        self.variance = variance
        super().__init__(
            f"Variance of {variance} on {account_id} requires a variance reason"
        )


# Not found


class NotFoundError(PettyCashError):
    """An id did not resolve to a stored record."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"
    entity_type: str = "Account"


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    entity_type: str = "Transaction"


class ReconciliationNotFoundError(NotFoundError):
    code: str = "RECONCILIATION_NOT_FOUND"
    entity_type: str = "Reconciliation"


class ReplenishmentNotFoundError(NotFoundError):
    code: str = "REPLENISHMENT_NOT_FOUND"
    entity_type: str = "Replenishment"


class ExpenseCategoryNotFoundError(NotFoundError):
    code: str = "EXPENSE_CATEGORY_NOT_FOUND"
    entity_type: str = "Expense category"


# State


class StateError(PettyCashError):
    """Operation is illegal in the entity's current state."""

    code: str = "STATE_ERROR"


class InvalidTransitionError(StateError):
    """No workflow edge for the requested action from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, entity_id: str, from_state: str, action: str):
        self.workflow = workflow
        self.entity_id = entity_id
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"{workflow}: cannot '{action}' {entity_id} from state '{from_state}'"
        )


class AccountClosedError(StateError):
    """Closed accounts are frozen; history stays readable."""

    code: str = "ACCOUNT_CLOSED"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account is closed: {account_id}")


class AmbiguousAccountError(StateError):
    """A principal resolves to more than one open account."""

    code: str = "AMBIGUOUS_ACCOUNT"

    def __init__(self, principal_id: str, account_ids: list[str]):
        self.principal_id = principal_id
        self.account_ids = account_ids
        super().__init__(
            f"Principal {principal_id} is assigned {len(account_ids)} open accounts"
        )


class TransactionAlreadyResolvedError(StateError):
    """Transaction already carries the opposite final decision."""

    code: str = "TRANSACTION_ALREADY_RESOLVED"

    def __init__(self, transaction_id: str, status: str, action: str):
        self.transaction_id = transaction_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} transaction {transaction_id}: already {status}"
        )


# Authorization


class AuthorizationError(PettyCashError):
    """Principal is not allowed to perform the operation."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedApproverError(AuthorizationError):
    """Principal's role is not in the configured approver roles."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, principal_id: str, role: str):
        self.principal_id = principal_id
        self.role = role
        super().__init__(
            f"Principal {principal_id} with role '{role}' may not approve"
        )


# Persistence


class PersistenceError(PettyCashError):
    """Underlying store failed to read or write."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store failure during {operation}: {detail}")


class ConcurrencyError(PersistenceError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            "flush",
            f"optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction",
        )
