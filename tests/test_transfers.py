from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from bookkeeper.errors import ConflictError, NotFoundError, TransferError, ValidationError
from bookkeeper.models.category import Category
from bookkeeper.models.transaction import Transaction
from bookkeeper.schemas import TransactionFilters
from bookkeeper.services import ledger, queries, transfers


def _category(session, owner, name):
    return session.query(Category).filter(Category.owner_id == owner, Category.name == name).one()


@pytest.fixture
def to_savings(session, owner, accounts):
    return _category(session, owner, "Transfer to Savings")


def test_transfer_halves_are_symmetric(session, owner, accounts, to_savings):
    a, b = accounts

    outgoing, incoming = transfers.create_transfer(
        session, owner, a.id, b.id, date(2025, 2, 1), Decimal("-100.00"), "Move funds", to_savings.id
    )

    assert outgoing.amount == Decimal("-100.00")
    assert incoming.amount == Decimal("100.00")
    assert outgoing.amount == -incoming.amount
    assert (outgoing.bank_account_id, outgoing.transfer_to_account_id) == (a.id, b.id)
    assert (incoming.bank_account_id, incoming.transfer_to_account_id) == (b.id, a.id)
    assert outgoing.description == "Move funds"
    assert incoming.description == "Transfer from Move funds"
    assert outgoing.transfer_pair_id == incoming.transfer_pair_id is not None
    assert outgoing.category_id == incoming.category_id == to_savings.id


def test_transfer_requires_distinct_accounts(session, owner, accounts, to_savings):
    a, _ = accounts
    with pytest.raises(ValidationError) as exc:
        transfers.create_transfer(session, owner, a.id, a.id, date(2025, 2, 1), "10.00", "Loop", to_savings.id)
    assert exc.value.field == "destination_account_id"


def test_transfer_rejects_zero_amount(session, owner, accounts, to_savings):
    a, b = accounts
    with pytest.raises(ValidationError):
        transfers.create_transfer(session, owner, a.id, b.id, date(2025, 2, 1), "0", "Nothing", to_savings.id)
    assert session.query(Transaction).count() == 0


def test_transfer_requires_transfer_category(session, owner, accounts):
    a, b = accounts
    utilities = _category(session, owner, "Utilities")
    with pytest.raises(ValidationError) as exc:
        transfers.create_transfer(session, owner, a.id, b.id, date(2025, 2, 1), "10.00", "Move", utilities.id)
    assert exc.value.field == "category_id"


def test_transfer_to_unknown_account(session, owner, accounts, to_savings):
    a, _ = accounts
    with pytest.raises(NotFoundError) as exc:
        transfers.create_transfer(session, owner, a.id, 999, date(2025, 2, 1), "10.00", "Move", to_savings.id)
    assert exc.value.field == "destination_account_id"


def test_failed_incoming_half_is_compensated(session, owner, accounts, to_savings, monkeypatch):
    a, b = accounts
    real_add = ledger.add_transaction

    def failing_add(db, owner_id, **kwargs):
        if kwargs["amount"] > 0:
            raise OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error"))
        return real_add(db, owner_id, **kwargs)

    monkeypatch.setattr(ledger, "add_transaction", failing_add)

    with pytest.raises(TransferError):
        transfers.create_transfer(session, owner, a.id, b.id, date(2025, 2, 1), "100.00", "Move funds", to_savings.id)

    source_rows = queries.all_transactions(session, owner, TransactionFilters(bank_account_ids=[a.id]))
    assert source_rows == []
    assert session.query(Transaction).count() == 0
    assert ledger.get_account_balance(session, owner, a.id) == 0


def test_failed_commit_is_compensated(session, owner, accounts, to_savings, monkeypatch):
    a, b = accounts
    real_commit = session.commit
    calls = []

    def commit_failing_once():
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        real_commit()

    monkeypatch.setattr(session, "commit", commit_failing_once)
    with pytest.raises(TransferError):
        transfers.create_transfer(session, owner, a.id, b.id, date(2025, 2, 1), "100.00", "Move funds", to_savings.id)
    monkeypatch.undo()

    assert session.query(Transaction).count() == 0


def test_get_pair_returns_outgoing_first(session, owner, accounts, to_savings):
    a, b = accounts
    outgoing, incoming = transfers.create_transfer(
        session, owner, a.id, b.id, date(2025, 2, 1), "40.00", "Save", to_savings.id
    )
    assert transfers.get_pair(session, owner, outgoing.transfer_pair_id) == (outgoing, incoming)

    with pytest.raises(NotFoundError):
        transfers.get_pair(session, "someone-else", outgoing.transfer_pair_id)


def test_get_pair_detects_broken_pairs(session, owner, accounts, to_savings):
    a, b = accounts
    outgoing, incoming = transfers.create_transfer(
        session, owner, a.id, b.id, date(2025, 2, 1), "40.00", "Save", to_savings.id
    )
    session.delete(incoming)
    session.commit()

    with pytest.raises(ConflictError):
        transfers.get_pair(session, owner, outgoing.transfer_pair_id)


def test_update_transfer_changes_both_halves(session, owner, accounts, to_savings):
    a, b = accounts
    outgoing, _ = transfers.create_transfer(
        session, owner, a.id, b.id, date(2025, 2, 1), "40.00", "Save", to_savings.id
    )

    new_out, new_in = transfers.update_transfer(
        session, owner, outgoing.transfer_pair_id,
        amount=Decimal("-55.50"), date=date(2025, 2, 3), description="Save more"
    )

    assert new_out.amount == Decimal("-55.50")
    assert new_in.amount == Decimal("55.50")
    assert new_out.date == new_in.date == date(2025, 2, 3)
    assert new_in.description == "Transfer from Save more"
    assert ledger.get_account_balance(session, owner, a.id) == Decimal("-55.50")
    assert ledger.get_account_balance(session, owner, b.id) == Decimal("55.50")


def test_update_transfer_can_swap_direction(session, owner, accounts, to_savings):
    a, b = accounts
    outgoing, _ = transfers.create_transfer(
        session, owner, a.id, b.id, date(2025, 2, 1), "40.00", "Save", to_savings.id
    )

    new_out, new_in = transfers.update_transfer(
        session, owner, outgoing.transfer_pair_id, source_account_id=b.id, destination_account_id=a.id
    )

    assert (new_out.bank_account_id, new_out.transfer_to_account_id) == (b.id, a.id)
    assert (new_in.bank_account_id, new_in.transfer_to_account_id) == (a.id, b.id)
    assert ledger.get_account_balance(session, owner, a.id) == Decimal("40.00")


def test_update_transfer_validation_leaves_pair_untouched(session, owner, accounts, to_savings):
    a, b = accounts
    outgoing, _ = transfers.create_transfer(
        session, owner, a.id, b.id, date(2025, 2, 1), "40.00", "Save", to_savings.id
    )
    with pytest.raises(ValidationError):
        transfers.update_transfer(session, owner, outgoing.transfer_pair_id, destination_account_id=a.id)

    session.expire_all()
    unchanged_out, unchanged_in = transfers.get_pair(session, owner, outgoing.transfer_pair_id)
    assert unchanged_out.bank_account_id == a.id
    assert unchanged_in.bank_account_id == b.id


def test_delete_transfer(session, owner, accounts, to_savings):
    a, b = accounts
    outgoing, incoming = transfers.create_transfer(
        session, owner, a.id, b.id, date(2025, 2, 1), "40.00", "Save", to_savings.id
    )
    pair_id = outgoing.transfer_pair_id

    assert transfers.delete_transfer(session, owner, pair_id) == sorted([outgoing.id, incoming.id])
    with pytest.raises(NotFoundError):
        transfers.delete_transfer(session, owner, pair_id)
