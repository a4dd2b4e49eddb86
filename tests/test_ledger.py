from datetime import date, datetime
from decimal import Decimal

import pytest

from bookkeeper.errors import ConflictError, NotFoundError, ValidationError
from bookkeeper.models.category import Category
from bookkeeper.models.transaction import Transaction
from bookkeeper.services import categories, ledger, transfers


def _category(session, owner, name):
    return session.query(Category).filter(Category.owner_id == owner, Category.name == name).one()


def _sum(session, owner, account_id):
    rows = session.query(Transaction.amount).filter(
        Transaction.owner_id == owner,
        Transaction.bank_account_id == account_id
    )
    return sum((amount for (amount,) in rows), Decimal("0"))


def test_new_account_has_zero_balance(session, owner, accounts):
    a, _ = accounts
    assert ledger.get_account_balance(session, owner, a.id) == Decimal("0")


def test_balance_tracks_creates_updates_and_deletes(session, owner, accounts):
    a, _ = accounts
    utilities = _category(session, owner, "Utilities")
    income = _category(session, owner, "Contracting Income")

    t1 = ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), Decimal("1500.00"), "Invoice", income.id)
    t2 = ledger.create_transaction(session, owner, a.id, date(2025, 1, 2), "-42.10", "Power", utilities.id)
    assert ledger.get_account_balance(session, owner, a.id) == Decimal("1457.90") == _sum(session, owner, a.id)

    ledger.update_transaction(session, owner, t2.id, {"amount": Decimal("-50.00")})
    assert ledger.get_account_balance(session, owner, a.id) == Decimal("1450.00") == _sum(session, owner, a.id)

    ledger.delete_transaction(session, owner, t1.id)
    assert ledger.get_account_balance(session, owner, a.id) == Decimal("-50.00") == _sum(session, owner, a.id)


@pytest.mark.parametrize("amount", ["0", "0.00", "1.234", "abc", "NaN", "Infinity", None])
def test_create_transaction_rejects_bad_amounts(session, owner, accounts, amount):
    a, _ = accounts
    utilities = _category(session, owner, "Utilities")
    with pytest.raises(ValidationError) as exc:
        ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), amount, "Power", utilities.id)
    assert exc.value.field == "amount"


def test_create_transaction_requires_description(session, owner, accounts):
    a, _ = accounts
    utilities = _category(session, owner, "Utilities")
    with pytest.raises(ValidationError) as exc:
        ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "  ", utilities.id)
    assert exc.value.field == "description"


def test_create_transaction_drops_time_of_day(session, owner, accounts):
    a, _ = accounts
    utilities = _category(session, owner, "Utilities")
    created = ledger.create_transaction(
        session, owner, a.id, datetime(2025, 1, 1, 18, 30), "-1.00", "Power", utilities.id
    )
    session.expire_all()

    stored = ledger.get_transaction(session, owner, created.id)
    assert type(stored.date) is date
    assert stored.date == date(2025, 1, 1)


def test_validate_date_normalises_datetimes():
    assert ledger.validate_date(datetime(2025, 3, 4, 23, 59)) == date(2025, 3, 4)
    assert type(ledger.validate_date(datetime(2025, 3, 4, 23, 59))) is date
    assert ledger.validate_date(" 2025-03-04 ") == date(2025, 3, 4)


def test_create_transaction_checks_ownership(session, owner, accounts):
    a, _ = accounts
    utilities = _category(session, owner, "Utilities")
    foreign = ledger.create_account(session, "someone-else", "Theirs")

    with pytest.raises(NotFoundError) as exc:
        ledger.create_transaction(session, owner, foreign.id, date(2025, 1, 1), "-1.00", "X", utilities.id)
    assert exc.value.field == "bank_account_id"

    with pytest.raises(NotFoundError) as exc:
        ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "X", 9999)
    assert exc.value.field == "category_id"


def test_transfer_category_rules(session, owner, accounts):
    a, b = accounts
    to_savings = _category(session, owner, "Transfer to Savings")

    with pytest.raises(ValidationError) as exc:
        ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "X", to_savings.id)
    assert exc.value.field == "transfer_to_account_id"

    with pytest.raises(ValidationError):
        ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "X", to_savings.id,
                                  transfer_to_account_id=a.id)

    # A valid transfer still has to go through the transfer coordinator
    with pytest.raises(ValidationError) as exc:
        ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "X", to_savings.id,
                                  transfer_to_account_id=b.id)
    assert exc.value.field == "category_id"
    assert session.query(Transaction).count() == 0


def test_counterpart_requires_transfer_category(session, owner, accounts):
    a, b = accounts
    utilities = _category(session, owner, "Utilities")
    with pytest.raises(ValidationError):
        ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "X", utilities.id,
                                  transfer_to_account_id=b.id)


def test_update_transaction_is_partial(session, owner, accounts):
    a, b = accounts
    utilities = _category(session, owner, "Utilities")
    t = ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-10.00", "Power", utilities.id)

    updated = ledger.update_transaction(session, owner, t.id, {"description": "Electricity", "bank_account_id": b.id})

    assert updated.description == "Electricity"
    assert updated.bank_account_id == b.id
    assert updated.amount == Decimal("-10.00")
    assert updated.date == date(2025, 1, 1)


def test_update_transaction_rejects_unknown_fields(session, owner, accounts):
    a, _ = accounts
    utilities = _category(session, owner, "Utilities")
    t = ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-10.00", "Power", utilities.id)
    with pytest.raises(ValidationError):
        ledger.update_transaction(session, owner, t.id, {"owner_id": "someone-else"})


def test_update_transfer_half_is_a_conflict(session, owner, accounts):
    a, b = accounts
    to_savings = _category(session, owner, "Transfer to Savings")
    outgoing, _ = transfers.create_transfer(session, owner, a.id, b.id, date(2025, 1, 1), "25.00", "Save", to_savings.id)

    with pytest.raises(ConflictError):
        ledger.update_transaction(session, owner, outgoing.id, {"amount": "-30.00"})


def test_delete_transfer_half_removes_both(session, owner, accounts):
    a, b = accounts
    to_savings = _category(session, owner, "Transfer to Savings")
    outgoing, incoming = transfers.create_transfer(
        session, owner, a.id, b.id, date(2025, 1, 1), "25.00", "Save", to_savings.id
    )

    deleted = ledger.delete_transaction(session, owner, incoming.id)

    assert deleted == sorted([outgoing.id, incoming.id])
    assert session.query(Transaction).count() == 0
    assert ledger.get_account_balance(session, owner, a.id) == 0
    assert ledger.get_account_balance(session, owner, b.id) == 0


def test_delete_missing_transaction(session, owner):
    with pytest.raises(NotFoundError):
        ledger.delete_transaction(session, owner, 12345)


def test_bulk_delete_is_all_or_nothing(session, owner, accounts):
    a, _ = accounts
    utilities = _category(session, owner, "Utilities")
    t1 = ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "One", utilities.id)
    t2 = ledger.create_transaction(session, owner, a.id, date(2025, 1, 2), "-2.00", "Two", utilities.id)

    with pytest.raises(NotFoundError):
        ledger.bulk_delete(session, owner, [t1.id, 9999])
    assert session.query(Transaction).count() == 2

    assert ledger.bulk_delete(session, owner, [t1.id, t2.id, t1.id]) == [t1.id, t2.id]
    assert session.query(Transaction).count() == 0


def test_bulk_delete_cannot_reach_other_owners(session, owner, accounts):
    foreign_account = ledger.create_account(session, "someone-else", "Theirs")
    foreign_category = _category(session, "someone-else", "Utilities")
    foreign = ledger.create_transaction(
        session, "someone-else", foreign_account.id, date(2025, 1, 1), "-1.00", "Theirs", foreign_category.id
    )
    with pytest.raises(NotFoundError):
        ledger.bulk_delete(session, owner, [foreign.id])
    assert session.get(Transaction, foreign.id) is not None


def test_bulk_update_category(session, owner, accounts):
    a, _ = accounts
    utilities = _category(session, owner, "Utilities")
    rent = _category(session, owner, "Rent/Office Space")
    t1 = ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "One", utilities.id)
    t2 = ledger.create_transaction(session, owner, a.id, date(2025, 1, 2), "-2.00", "Two", utilities.id)

    updated = ledger.bulk_update_category(session, owner, [t1.id, t2.id], rent.id)

    assert [t.id for t in updated] == [t1.id, t2.id]
    assert all(t.category_id == rent.id for t in updated)


def test_bulk_update_is_all_or_nothing(session, owner, accounts):
    a, b = accounts
    utilities = _category(session, owner, "Utilities")
    rent = _category(session, owner, "Rent/Office Space")
    to_savings = _category(session, owner, "Transfer to Savings")
    plain = ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "One", utilities.id)
    outgoing, _ = transfers.create_transfer(session, owner, a.id, b.id, date(2025, 1, 1), "5.00", "Save", to_savings.id)

    with pytest.raises(ConflictError):
        ledger.bulk_update_category(session, owner, [plain.id, outgoing.id], rent.id)

    session.expire_all()
    assert session.get(Transaction, plain.id).category_id == utilities.id


def test_bulk_update_to_transfer_category_creates_pairs(session, owner, accounts):
    a, b = accounts
    utilities = _category(session, owner, "Utilities")
    to_savings = _category(session, owner, "Transfer to Savings")
    t = ledger.create_transaction(session, owner, a.id, date(2025, 3, 1), "-75.00", "Move", utilities.id)

    written = ledger.bulk_update_category(session, owner, [t.id], to_savings.id, transfer_to_account_id=b.id)

    assert len(written) == 2
    outgoing, incoming = transfers.get_pair(session, owner, written[0].transfer_pair_id)
    assert outgoing.id == t.id
    assert outgoing.amount == Decimal("-75.00")
    assert incoming.amount == Decimal("75.00")
    assert incoming.bank_account_id == b.id
    assert incoming.transfer_to_account_id == a.id
    assert incoming.description == "Transfer from Move"
    assert ledger.get_account_balance(session, owner, b.id) == Decimal("75.00")


def test_rename_account_renames_transfer_category(session, owner, accounts):
    _, b = accounts
    ledger.rename_account(session, owner, b.id, "Rainy Day")
    linked = categories.linked_transfer_categories(session, owner, b.id)
    assert [c.name for c in linked] == ["Transfer to Rainy Day"]


def test_delete_account_removes_transfers_on_both_sides(session, owner, accounts):
    a, b = accounts
    utilities = _category(session, owner, "Utilities")
    to_savings = _category(session, owner, "Transfer to Savings")
    ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-1.00", "Kept", utilities.id)
    transfers.create_transfer(session, owner, a.id, b.id, date(2025, 1, 2), "5.00", "Save", to_savings.id)

    removed = ledger.delete_account(session, owner, b.id)

    assert removed == 2
    remaining = session.query(Transaction).all()
    assert [t.description for t in remaining] == ["Kept"]
    assert ledger.get_account_balance(session, owner, a.id) == Decimal("-1.00")
    with pytest.raises(NotFoundError):
        ledger.get_account(session, owner, b.id)
    assert categories.linked_transfer_categories(session, owner, b.id) == []


def test_list_accounts_includes_balances(session, owner, accounts):
    a, b = accounts
    utilities = _category(session, owner, "Utilities")
    ledger.create_transaction(session, owner, a.id, date(2025, 1, 1), "-9.99", "Coffee", utilities.id)

    balances = {account.id: balance for account, balance in ledger.list_accounts(session, owner)}

    assert balances == {a.id: Decimal("-9.99"), b.id: Decimal("0.00")}
