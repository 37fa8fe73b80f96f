"""
Balance rules -- pure functional core, zero I/O.

``compute_balance_after`` stamps every transaction with its post-movement
balance at creation time.  The effect a transaction has on the account,
once approved, is its signed ``delta`` (``balance_after - balance_before``).
``replay_balance`` folds the approved deltas of an account's log; the
cached ``current_balance`` must always equal it.
"""

from decimal import Decimal
from typing import Iterable

from pettycash_kernel.domain.dtos import Transaction, TransactionType
from pettycash_kernel.exceptions import InvalidAmountError

ZERO = Decimal("0")


def compute_balance_after(
    transaction_type: TransactionType,
    balance_before: Decimal,
    amount: Decimal,
    target_balance: Decimal | None = None,
) -> Decimal:
    """
    Balance after the movement, per transaction type.

    allocation/replenishment add, expense subtracts, adjustment lands on the
    caller-supplied absolute target, reconciliation is informational and
    leaves the balance unchanged.

    Raises:
        InvalidAmountError: adjustment without a target, or an adjustment
            whose amount is not the distance to its target.
    """
    if transaction_type in (TransactionType.ALLOCATION, TransactionType.REPLENISHMENT):
        return balance_before + amount
    if transaction_type is TransactionType.EXPENSE:
        return balance_before - amount
    if transaction_type is TransactionType.ADJUSTMENT:
        if target_balance is None:
            raise InvalidAmountError(amount, "adjustment requires a target balance")
        if abs(target_balance - balance_before) != amount:
            raise InvalidAmountError(
                amount,
                f"adjustment amount must equal |{target_balance} - {balance_before}|",
            )
        return target_balance
    return balance_before


def applies_to_balance(transaction_type: TransactionType) -> bool:
    return transaction_type is not TransactionType.RECONCILIATION


def replay_balance(transactions: Iterable[Transaction]) -> Decimal:
    """
    Recompute an account balance from its transaction log.

    Only approved, balance-affecting entries contribute.  The opening
    allocation is part of the log, so replay starts from zero.
    """
    balance = ZERO
    for txn in sorted(transactions, key=lambda t: t.sequence):
        if txn.is_applied:
            balance += txn.delta
    return balance
