"""
Tests for AccountStore.

Covers creation (opening allocation, field validation, duplicate codes),
partial updates, the suspend/reactivate/close lifecycle and principal
account resolution.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from pettycash_kernel.domain.dtos import (
    AccountSpec,
    AccountStatus,
    ExpenseDetails,
    TransactionFilter,
    TransactionType,
)
from pettycash_kernel.domain.principal import Principal
from pettycash_kernel.exceptions import (
    AccountClosedError,
    AccountNotFoundError,
    AmbiguousAccountError,
    InvalidAccountConfigError,
    InvalidTransitionError,
)


def _spec(**overrides) -> AccountSpec:
    values = {
        "name": "Front desk float",
        "code": f"PC-{uuid4().hex[:6]}",
        "opening_balance": Decimal("1000"),
    }
    values.update(overrides)
    return AccountSpec(**values)


class TestCreateAccount:
    def test_opening_balance_backed_by_allocation(self, account_store, ledger, owner):
        account = account_store.create_account(_spec(), owner)

        assert account.current_balance == Decimal("1000")
        assert account.opening_balance == Decimal("1000")
        assert account.owner_id == owner.id
        assert account.status is AccountStatus.ACTIVE
        assert account.is_active

        txns = ledger.get_transactions(TransactionFilter(account_id=account.id))
        assert len(txns) == 1
        opening = txns[0]
        assert opening.transaction_type is TransactionType.ALLOCATION
        assert opening.amount == Decimal("1000")
        assert opening.balance_before == Decimal("0")
        assert opening.balance_after == Decimal("1000")
        assert opening.sequence == 1
        assert opening.description == "Opening balance"

    def test_zero_opening_balance_writes_no_transaction(self, account_store, ledger, owner):
        account = account_store.create_account(_spec(opening_balance=Decimal("0")), owner)

        assert account.current_balance == Decimal("0")
        assert ledger.get_transactions(TransactionFilter(account_id=account.id)) == []

    def test_owner_override(self, account_store, owner):
        other_owner = uuid4()
        account = account_store.create_account(_spec(), owner, owner_id=other_owner)
        assert account.owner_id == other_owner
        assert account.created_by == owner.id

    def test_name_is_stripped(self, account_store, owner):
        account = account_store.create_account(_spec(name="  Warehouse  "), owner)
        assert account.name == "Warehouse"

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"opening_balance": Decimal("-1")}, "opening_balance"),
            ({"code": "   "}, "code"),
            ({"name": ""}, "name"),
            ({"daily_limit": Decimal("0")}, "daily_limit"),
            ({"transaction_limit": Decimal("-5")}, "transaction_limit"),
            ({"approval_threshold": Decimal("0")}, "approval_threshold"),
            ({"minimum_balance": Decimal("-1")}, "minimum_balance"),
            (
                {"daily_limit": Decimal("100"), "transaction_limit": Decimal("150")},
                "transaction_limit",
            ),
            ({"assigned_user_id": uuid4(), "assigned_cashier_id": uuid4()}, "assignee"),
        ],
    )
    def test_invalid_fields_rejected(self, account_store, owner, overrides, field):
        with pytest.raises(InvalidAccountConfigError) as exc_info:
            account_store.create_account(_spec(**overrides), owner)
        assert exc_info.value.field == field

    def test_duplicate_code_for_same_owner(self, account_store, owner):
        account_store.create_account(_spec(code="PC-DUP"), owner)
        with pytest.raises(InvalidAccountConfigError) as exc_info:
            account_store.create_account(_spec(code="PC-DUP"), owner)
        assert exc_info.value.field == "code"

    def test_same_code_for_different_owners(self, account_store, owner, manager):
        account_store.create_account(_spec(code="PC-SHARED"), owner)
        account = account_store.create_account(_spec(code="PC-SHARED"), manager)
        assert account.owner_id == manager.id

    def test_float_opening_balance_rejected(self, account_store, owner):
        from pettycash_kernel.exceptions import InvalidAmountError

        with pytest.raises(InvalidAmountError):
            account_store.create_account(_spec(opening_balance=100.5), owner)


class TestReadAccounts:
    def test_get_unknown_account(self, account_store):
        with pytest.raises(AccountNotFoundError):
            account_store.get_account(uuid4())

    def test_list_accounts_filters(self, account_store, owner, manager):
        a = account_store.create_account(_spec(name="Alpha"), owner)
        b = account_store.create_account(_spec(name="Bravo"), owner)
        c = account_store.create_account(_spec(name="Charlie"), manager)
        account_store.suspend_account(b.id, "audit", owner)

        assert [x.id for x in account_store.list_accounts()] == [a.id, b.id, c.id]
        assert [x.id for x in account_store.list_accounts(owner_ids=[owner.id])] == [a.id, b.id]
        assert [x.id for x in account_store.list_accounts(active_only=True)] == [a.id, c.id]
        assert [
            x.id for x in account_store.list_accounts(status=AccountStatus.SUSPENDED)
        ] == [b.id]


class TestGetAccountForPrincipal:
    def test_cashier_matched_by_cashier_id(self, account_store, owner, cashier):
        account = account_store.create_account(
            _spec(assigned_cashier_id=cashier.cashier_id), owner,
        )
        assert account_store.get_account_for_principal(cashier).id == account.id

    def test_user_matched_on_either_assignee(self, account_store, owner, staff):
        account = account_store.create_account(_spec(assigned_user_id=staff.id), owner)
        assert account_store.get_account_for_principal(staff).id == account.id

        other = Principal(id=uuid4(), role="staff")
        cashier_account = account_store.create_account(
            _spec(assigned_cashier_id=other.id), owner,
        )
        assert account_store.get_account_for_principal(other).id == cashier_account.id

    def test_no_assignment_returns_none(self, account_store, staff):
        assert account_store.get_account_for_principal(staff) is None

    def test_closed_accounts_ignored(self, account_store, owner, staff):
        account = account_store.create_account(_spec(assigned_user_id=staff.id), owner)
        account_store.close_account(account.id, "moved", owner)
        assert account_store.get_account_for_principal(staff) is None

    def test_several_open_accounts_is_ambiguous(self, account_store, owner, staff):
        first = account_store.create_account(_spec(assigned_user_id=staff.id), owner)
        second = account_store.create_account(_spec(assigned_user_id=staff.id), owner)

        with pytest.raises(AmbiguousAccountError) as exc_info:
            account_store.get_account_for_principal(staff)
        assert set(exc_info.value.account_ids) == {str(first.id), str(second.id)}


class TestUpdateAccount:
    def test_partial_update(self, account_store, owner):
        account = account_store.create_account(_spec(), owner)
        updated = account_store.update_account(
            account.id,
            {"name": "Renamed", "daily_limit": Decimal("400"), "approval_threshold": "250"},
            owner,
        )
        assert updated.name == "Renamed"
        assert updated.daily_limit == Decimal("400")
        assert updated.approval_threshold == Decimal("250")
        assert updated.current_balance == Decimal("1000")
        assert updated.version > account.version

    def test_clearing_a_limit(self, account_store, owner):
        account = account_store.create_account(_spec(daily_limit=Decimal("300")), owner)
        updated = account_store.update_account(account.id, {"daily_limit": None}, owner)
        assert updated.daily_limit is None

    @pytest.mark.parametrize("field", ["current_balance", "status", "owner_id", "code"])
    def test_protected_fields_rejected(self, account_store, owner, field):
        account = account_store.create_account(_spec(), owner)
        with pytest.raises(InvalidAccountConfigError) as exc_info:
            account_store.update_account(account.id, {field: "x"}, owner)
        assert exc_info.value.field == field

    def test_limits_validated_against_existing_values(self, account_store, owner):
        account = account_store.create_account(_spec(daily_limit=Decimal("200")), owner)
        with pytest.raises(InvalidAccountConfigError):
            account_store.update_account(
                account.id, {"transaction_limit": Decimal("250")}, owner,
            )

    def test_closed_account_cannot_be_updated(self, account_store, owner):
        account = account_store.create_account(_spec(), owner)
        account_store.close_account(account.id, None, owner)
        with pytest.raises(AccountClosedError):
            account_store.update_account(account.id, {"name": "x"}, owner)


class TestLifecycle:
    def test_suspend_and_reactivate(self, account_store, owner):
        account = account_store.create_account(_spec(), owner)

        suspended = account_store.suspend_account(account.id, "cash count pending", owner)
        assert suspended.status is AccountStatus.SUSPENDED
        assert not suspended.is_active
        assert suspended.notes == "cash count pending"

        active = account_store.reactivate_account(account.id, "count done", owner)
        assert active.status is AccountStatus.ACTIVE
        assert active.is_active
        assert active.notes == "cash count pending\ncount done"

    def test_suspend_twice_is_invalid(self, account_store, owner):
        account = account_store.create_account(_spec(), owner)
        account_store.suspend_account(account.id, None, owner)
        with pytest.raises(InvalidTransitionError):
            account_store.suspend_account(account.id, None, owner)

    def test_reactivate_active_is_invalid(self, account_store, owner):
        account = account_store.create_account(_spec(), owner)
        with pytest.raises(InvalidTransitionError):
            account_store.reactivate_account(account.id, None, owner)

    def test_close_records_who_and_when(self, account_store, owner, clock):
        account = account_store.create_account(_spec(), owner)
        closed = account_store.close_account(account.id, "branch closed", owner)

        assert closed.status is AccountStatus.CLOSED
        assert not closed.is_active
        assert closed.closed_by == owner.id
        assert closed.closed_at is not None
        assert closed.closed_at.replace(tzinfo=None) == clock.now().replace(tzinfo=None)

    def test_closed_account_is_frozen(self, account_store, ledger, owner):
        account = account_store.create_account(_spec(), owner)
        account_store.close_account(account.id, None, owner)

        with pytest.raises(AccountClosedError):
            account_store.close_account(account.id, None, owner)
        with pytest.raises(AccountClosedError):
            account_store.reactivate_account(account.id, None, owner)
        with pytest.raises(AccountClosedError):
            ledger.record_expense(account.id, ExpenseDetails(amount=Decimal("10")), owner)
        with pytest.raises(AccountClosedError):
            ledger.create_transaction(
                account.id, TransactionType.ALLOCATION, Decimal("10"), owner,
            )

    def test_closed_account_history_stays_readable(self, account_store, ledger, owner):
        account = account_store.create_account(_spec(), owner)
        account_store.close_account(account.id, None, owner)

        assert account_store.get_account(account.id).status is AccountStatus.CLOSED
        assert len(ledger.get_transactions(TransactionFilter(account_id=account.id))) == 1
