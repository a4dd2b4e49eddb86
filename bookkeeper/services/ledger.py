"""
Ledger store: accounts and transactions.

Balances are never stored; they are always the sum of an account's
transaction amounts. Both halves of a transfer share a ``transfer_pair_id``;
deleting either half removes the pair, and single-transaction edits refuse to
touch a pair half (see ``transfers.update_transfer``).
"""
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import unit_of_work
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.bank_account import BankAccount
from ..models.category import Category
from ..models.transaction import Transaction
from . import categories as category_service

logger = structlog.get_logger(__name__)

TWO_PLACES = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")  # Numeric(12, 2)
INCOMING_PREFIX = "Transfer from "

UPDATABLE_FIELDS = ("bank_account_id", "date", "amount", "description", "category_id", "transfer_to_account_id")


# =============================================================================
# Validation helpers
# =============================================================================

def validate_amount(amount, allow_zero: bool = False) -> Decimal:
    """Coerce ``amount`` to a 2-dp Decimal, rejecting zero unless allowed"""
    if amount is None or isinstance(amount, bool):
        raise ValidationError("Amount is required", field="amount")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Amount must be a number: {amount!r}", field="amount")

    if not value.is_finite():
        raise ValidationError("Amount must be a finite number", field="amount")
    if value == 0 and not allow_zero:
        raise ValidationError("Amount must be non-zero", field="amount")
    if abs(value) > MAX_AMOUNT:
        raise ValidationError("Amount is too large", field="amount")
    if value != value.quantize(TWO_PLACES):
        raise ValidationError("Amount cannot have more than 2 decimal places", field="amount")
    return value.quantize(TWO_PLACES)


def validate_description(description: Optional[str]) -> str:
    cleaned = (description or "").strip()
    if not cleaned:
        raise ValidationError("Description is required", field="description")
    return cleaned


def validate_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"Invalid date: {value!r}. Expected YYYY-MM-DD", field="date")


def incoming_description(description: str) -> str:
    return f"{INCOMING_PREFIX}{description}"


# =============================================================================
# Accounts
# =============================================================================

def get_account(db: Session, owner_id: str, account_id: int, field: str = "bank_account_id") -> BankAccount:
    """Fetch an account owned by ``owner_id`` or raise NotFoundError"""
    account = db.query(BankAccount).filter(
        BankAccount.id == account_id,
        BankAccount.owner_id == owner_id
    ).first()
    if account is None:
        raise NotFoundError(f"Bank account {account_id} not found", field=field, entity_id=account_id)
    return account


def list_accounts(db: Session, owner_id: str) -> List[Tuple[BankAccount, Decimal]]:
    """All accounts of the owner, newest first, each with its derived balance"""
    accounts = db.query(BankAccount).filter(
        BankAccount.owner_id == owner_id
    ).order_by(BankAccount.created_at.desc(), BankAccount.id.desc()).all()
    balances = account_balances(db, owner_id)
    return [(account, balances.get(account.id, Decimal("0.00"))) for account in accounts]


def _clean_account_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Account name is required", field="name")
    return cleaned


def create_account(db: Session, owner_id: str, name: str) -> BankAccount:
    """Create an account together with its "Transfer to <name>" category.

    The default category forest is seeded first when the owner has none.
    """
    cleaned = _clean_account_name(name)
    category_service.ensure_default_categories(db, owner_id)

    with unit_of_work(db):
        account = BankAccount(owner_id=owner_id, name=cleaned)
        db.add(account)
        db.flush()
        category_service.create_transfer_category_for_account(db, owner_id, account)
    db.refresh(account)
    logger.info("account_created", owner_id=owner_id, account_id=account.id)
    return account


def rename_account(db: Session, owner_id: str, account_id: int, name: str) -> BankAccount:
    """Rename an account and the transfer category pointing at it"""
    account = get_account(db, owner_id, account_id)
    cleaned = _clean_account_name(name)

    with unit_of_work(db):
        account.name = cleaned
        for category in category_service.linked_transfer_categories(db, owner_id, account_id):
            category.name = category_service.transfer_category_name(cleaned)
    db.refresh(account)
    logger.info("account_renamed", owner_id=owner_id, account_id=account_id)
    return account


def delete_account(db: Session, owner_id: str, account_id: int) -> int:
    """Delete an account, its transactions and every transfer pair touching it.

    Returns:
        Number of transactions removed.
    """
    account = get_account(db, owner_id, account_id)

    touching = db.query(Transaction).filter(
        Transaction.owner_id == owner_id,
        or_(
            Transaction.bank_account_id == account_id,
            Transaction.transfer_to_account_id == account_id
        )
    ).all()
    pair_ids = {t.transfer_pair_id for t in touching if t.transfer_pair_id}
    doomed = {t.id: t for t in touching}
    if pair_ids:
        for t in db.query(Transaction).filter(
            Transaction.owner_id == owner_id,
            Transaction.transfer_pair_id.in_(pair_ids)
        ):
            doomed[t.id] = t

    with unit_of_work(db):
        for t in doomed.values():
            db.delete(t)
        db.flush()

        for category in category_service.linked_transfer_categories(db, owner_id, account_id):
            referenced = db.query(Transaction.id).filter(Transaction.category_id == category.id).first()
            if referenced is None:
                db.delete(category)
            else:
                category.linked_account_id = None
        db.delete(account)

    logger.info("account_deleted", owner_id=owner_id, account_id=account_id, transactions_removed=len(doomed))
    return len(doomed)


def get_account_balance(db: Session, owner_id: str, account_id: int) -> Decimal:
    """Sum of all transaction amounts on the account (0 when it has none)"""
    get_account(db, owner_id, account_id)
    amounts = db.query(Transaction.amount).filter(
        Transaction.owner_id == owner_id,
        Transaction.bank_account_id == account_id
    )
    return sum((amount for (amount,) in amounts), Decimal("0.00"))


def account_balances(db: Session, owner_id: str) -> Dict[int, Decimal]:
    balances: Dict[int, Decimal] = {}
    rows = db.query(Transaction.bank_account_id, Transaction.amount).filter(Transaction.owner_id == owner_id)
    for account_id, amount in rows:
        balances[account_id] = balances.get(account_id, Decimal("0.00")) + amount
    return balances


# =============================================================================
# Transactions
# =============================================================================

def get_transaction(db: Session, owner_id: str, transaction_id: int) -> Transaction:
    transaction = db.query(Transaction).filter(
        Transaction.id == transaction_id,
        Transaction.owner_id == owner_id
    ).first()
    if transaction is None:
        raise NotFoundError(f"Transaction {transaction_id} not found", entity_id=transaction_id)
    return transaction


def _check_references(db: Session, owner_id: str, bank_account_id: int, category_id: int,
                      transfer_to_account_id: Optional[int]) -> Category:
    """Validate account, category and counterpart; returns the category"""
    get_account(db, owner_id, bank_account_id)
    category = category_service.get_category(db, owner_id, category_id)

    if category.is_transfer_category:
        if transfer_to_account_id is None:
            raise ValidationError(
                "A destination account is required for transfer categories",
                field="transfer_to_account_id"
            )
        if transfer_to_account_id == bank_account_id:
            raise ValidationError(
                "Transfer destination must differ from the source account",
                field="transfer_to_account_id",
                entity_id=transfer_to_account_id
            )
        get_account(db, owner_id, transfer_to_account_id, field="transfer_to_account_id")
    elif transfer_to_account_id is not None:
        raise ValidationError(
            "A destination account can only be set with a transfer category",
            field="transfer_to_account_id"
        )
    return category


def add_transaction(db: Session, owner_id: str, bank_account_id: int, date, amount, description: str,
                    category_id: int, transfer_to_account_id: Optional[int] = None,
                    transfer_pair_id: Optional[str] = None) -> Transaction:
    """Validate and stage a transaction inside the caller's unit of work.

    Flushes so the row gets an id, but never commits.
    """
    value = validate_amount(amount)
    cleaned = validate_description(description)
    when = validate_date(date)
    _check_references(db, owner_id, bank_account_id, category_id, transfer_to_account_id)

    transaction = Transaction(
        owner_id=owner_id,
        bank_account_id=bank_account_id,
        date=when,
        amount=value,
        description=cleaned,
        category_id=category_id,
        transfer_to_account_id=transfer_to_account_id,
        transfer_pair_id=transfer_pair_id
    )
    db.add(transaction)
    db.flush()
    return transaction


def create_transaction(db: Session, owner_id: str, bank_account_id: int, date, amount, description: str,
                       category_id: int, transfer_to_account_id: Optional[int] = None) -> Transaction:
    """Create a single, non-transfer transaction.

    Transfer categories are validated like any other (so a missing or invalid
    destination is reported precisely) but are then refused: transfers must be
    created as a pair through ``transfers.create_transfer``.
    """
    value = validate_amount(amount)
    cleaned = validate_description(description)
    when = validate_date(date)
    category = _check_references(db, owner_id, bank_account_id, category_id, transfer_to_account_id)
    if category.is_transfer_category:
        raise ValidationError(
            "Transfer categories create a transfer pair; use the transfer endpoint",
            field="category_id",
            entity_id=category_id
        )

    with unit_of_work(db):
        transaction = add_transaction(db, owner_id, bank_account_id, when, value, cleaned, category_id)
    db.refresh(transaction)
    logger.info("transaction_created", owner_id=owner_id, transaction_id=transaction.id,
                bank_account_id=bank_account_id)
    return transaction


def update_transaction(db: Session, owner_id: str, transaction_id: int, fields: dict) -> Transaction:
    """Apply a partial update to a regular transaction.

    Halves of a transfer pair are rejected with ConflictError; they are
    edited together through ``transfers.update_transfer``.
    """
    transaction = get_transaction(db, owner_id, transaction_id)
    if transaction.transfer_pair_id:
        raise ConflictError(
            "Transaction is part of a transfer; edit the transfer instead",
            entity_id=transaction_id
        )

    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    merged = {name: getattr(transaction, name) for name in UPDATABLE_FIELDS}
    merged.update(fields)

    value = validate_amount(merged["amount"])
    cleaned = validate_description(merged["description"])
    when = validate_date(merged["date"])
    category = _check_references(
        db, owner_id, merged["bank_account_id"], merged["category_id"], merged["transfer_to_account_id"]
    )
    if category.is_transfer_category:
        raise ValidationError(
            "Use a bulk category update to turn a transaction into a transfer",
            field="category_id",
            entity_id=category.id
        )

    with unit_of_work(db):
        transaction.bank_account_id = merged["bank_account_id"]
        transaction.date = when
        transaction.amount = value
        transaction.description = cleaned
        transaction.category_id = merged["category_id"]
        transaction.transfer_to_account_id = None
    db.refresh(transaction)
    logger.info("transaction_updated", owner_id=owner_id, transaction_id=transaction_id)
    return transaction


def _with_pair_halves(db: Session, owner_id: str, transactions: Iterable[Transaction]) -> Dict[int, Transaction]:
    selected = {t.id: t for t in transactions}
    pair_ids = {t.transfer_pair_id for t in selected.values() if t.transfer_pair_id}
    if pair_ids:
        for t in db.query(Transaction).filter(
            Transaction.owner_id == owner_id,
            Transaction.transfer_pair_id.in_(pair_ids)
        ):
            selected[t.id] = t
    return selected


def delete_transaction(db: Session, owner_id: str, transaction_id: int) -> List[int]:
    """Permanently delete a transaction, and its counterpart when it is a transfer half.

    Returns:
        Ids of every deleted transaction.
    """
    transaction = get_transaction(db, owner_id, transaction_id)
    doomed = _with_pair_halves(db, owner_id, [transaction])

    with unit_of_work(db):
        for t in doomed.values():
            db.delete(t)

    deleted = sorted(doomed)
    logger.info("transaction_deleted", owner_id=owner_id, transaction_ids=deleted)
    return deleted


def _load_all(db: Session, owner_id: str, ids: List[int]) -> List[Transaction]:
    wanted = list(dict.fromkeys(ids))
    found = db.query(Transaction).filter(
        Transaction.owner_id == owner_id,
        Transaction.id.in_(wanted)
    ).all()
    missing = set(wanted) - {t.id for t in found}
    if missing:
        missing_ids = sorted(missing)
        raise NotFoundError(
            f"Transaction(s) not found: {', '.join(str(i) for i in missing_ids)}",
            entity_id=missing_ids
        )
    by_id = {t.id: t for t in found}
    return [by_id[i] for i in wanted]


def bulk_delete(db: Session, owner_id: str, ids: List[int]) -> List[int]:
    """Delete every listed transaction (and transfer counterparts), or none"""
    if not ids:
        raise ValidationError("At least one transaction id is required", field="ids")
    doomed = _with_pair_halves(db, owner_id, _load_all(db, owner_id, ids))

    with unit_of_work(db):
        for t in doomed.values():
            db.delete(t)

    deleted = sorted(doomed)
    logger.info("bulk_delete_applied", owner_id=owner_id, count=len(deleted))
    return deleted


def bulk_update_category(db: Session, owner_id: str, ids: List[int], category_id: int,
                         transfer_to_account_id: Optional[int] = None) -> List[Transaction]:
    """Recategorise every listed transaction, or none.

    With a transfer category, each regular transaction becomes one half of a
    new transfer pair (its mirror is created on the destination account).
    Pair halves keep their pair and have both halves recategorised; moving a
    pair half to a non-transfer category is a ConflictError.

    Returns:
        Every transaction written, mirrors and counterparts included.
    """
    if not ids:
        raise ValidationError("At least one transaction id is required", field="ids")
    category = category_service.get_category(db, owner_id, category_id)
    if category.is_transfer_category:
        if transfer_to_account_id is None:
            raise ValidationError(
                "A destination account is required for transfer categories",
                field="transfer_to_account_id"
            )
        get_account(db, owner_id, transfer_to_account_id, field="transfer_to_account_id")
    elif transfer_to_account_id is not None:
        raise ValidationError(
            "A destination account can only be set with a transfer category",
            field="transfer_to_account_id"
        )

    selected = _load_all(db, owner_id, ids)
    for t in selected:
        if t.transfer_pair_id and not category.is_transfer_category:
            raise ConflictError(
                f"Transaction {t.id} is part of a transfer; delete the transfer before recategorising it",
                entity_id=t.id
            )
        if not t.transfer_pair_id and category.is_transfer_category and t.bank_account_id == transfer_to_account_id:
            raise ValidationError(
                f"Transaction {t.id} is already on the destination account",
                field="transfer_to_account_id",
                entity_id=t.id
            )

    written: Dict[int, Transaction] = {}
    with unit_of_work(db):
        for t in _with_pair_halves(db, owner_id, selected).values():
            if t.transfer_pair_id:
                t.category_id = category_id
                written[t.id] = t
                continue

            t.category_id = category_id
            if category.is_transfer_category:
                pair_id = str(uuid.uuid4())
                t.transfer_to_account_id = transfer_to_account_id
                t.transfer_pair_id = pair_id
                mirror_amount = -t.amount
                mirror = add_transaction(
                    db, owner_id,
                    bank_account_id=transfer_to_account_id,
                    date=t.date,
                    amount=mirror_amount,
                    description=incoming_description(t.description) if mirror_amount > 0 else t.description,
                    category_id=category_id,
                    transfer_to_account_id=t.bank_account_id,
                    transfer_pair_id=pair_id
                )
                written[mirror.id] = mirror
            written[t.id] = t

    for t in written.values():
        db.refresh(t)
    logger.info("bulk_update_applied", owner_id=owner_id, category_id=category_id, count=len(written))
    return sorted(written.values(), key=lambda t: t.id)
