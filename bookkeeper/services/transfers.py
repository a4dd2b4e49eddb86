"""
Transfer coordinator.

A transfer is two transactions sharing a ``transfer_pair_id``: an outgoing
half (negative amount on the source account) and an incoming half (positive
amount of the same magnitude on the destination account, described as
"Transfer from <description>"). Both halves are created, edited and deleted
together.
"""
import uuid
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import unit_of_work
from ..errors import ConflictError, LedgerError, NotFoundError, TransferError, ValidationError
from ..models.transaction import Transaction
from . import categories as category_service
from . import ledger

logger = structlog.get_logger(__name__)


def _validate_legs(db: Session, owner_id: str, source_account_id: int, destination_account_id: int,
                   category_id: int) -> None:
    if source_account_id == destination_account_id:
        raise ValidationError(
            "Transfer destination must differ from the source account",
            field="destination_account_id",
            entity_id=destination_account_id
        )
    ledger.get_account(db, owner_id, source_account_id, field="source_account_id")
    ledger.get_account(db, owner_id, destination_account_id, field="destination_account_id")
    category = category_service.get_category(db, owner_id, category_id)
    if not category.is_transfer_category:
        raise ValidationError(
            "Transfers require a transfer category",
            field="category_id",
            entity_id=category_id
        )


def _compensate(db: Session, owner_id: str, pair_id: str) -> int:
    """Remove whatever was written for ``pair_id`` before the failure"""
    db.rollback()
    removed = db.query(Transaction).filter(
        Transaction.owner_id == owner_id,
        Transaction.transfer_pair_id == pair_id
    ).delete(synchronize_session=False)
    db.commit()
    return removed


def create_transfer(db: Session, owner_id: str, source_account_id: int, destination_account_id: int,
                    date, amount, description: str, category_id: int) -> Tuple[Transaction, Transaction]:
    """
    Create both halves of a transfer.

    Args:
        amount: Magnitude of the transfer; its sign is ignored.

    Returns:
        Tuple of (outgoing, incoming)

    Raises:
        TransferError: the incoming half could not be written. The outgoing
            half has already been removed when this is raised.
    """
    magnitude = abs(ledger.validate_amount(amount))
    cleaned = ledger.validate_description(description)
    when = ledger.validate_date(date)
    _validate_legs(db, owner_id, source_account_id, destination_account_id, category_id)

    pair_id = str(uuid.uuid4())
    try:
        outgoing = ledger.add_transaction(
            db, owner_id,
            bank_account_id=source_account_id,
            date=when,
            amount=-magnitude,
            description=cleaned,
            category_id=category_id,
            transfer_to_account_id=destination_account_id,
            transfer_pair_id=pair_id
        )
    except Exception:
        db.rollback()
        raise

    try:
        incoming = ledger.add_transaction(
            db, owner_id,
            bank_account_id=destination_account_id,
            date=when,
            amount=magnitude,
            description=ledger.incoming_description(cleaned),
            category_id=category_id,
            transfer_to_account_id=source_account_id,
            transfer_pair_id=pair_id
        )
        db.commit()
    except (LedgerError, SQLAlchemyError) as e:
        removed = _compensate(db, owner_id, pair_id)
        logger.warning("transfer_rolled_back", owner_id=owner_id, transfer_pair_id=pair_id,
                       removed=removed, error=str(e))
        raise TransferError(f"Transfer failed and was rolled back: {e}", entity_id=pair_id) from e

    db.refresh(outgoing)
    db.refresh(incoming)
    logger.info("transfer_created", owner_id=owner_id, transfer_pair_id=pair_id,
                source_account_id=source_account_id, destination_account_id=destination_account_id)
    return outgoing, incoming


def get_pair(db: Session, owner_id: str, pair_id: str) -> Tuple[Transaction, Transaction]:
    """Return (outgoing, incoming) for a transfer pair"""
    halves = db.query(Transaction).filter(
        Transaction.owner_id == owner_id,
        Transaction.transfer_pair_id == pair_id
    ).order_by(Transaction.amount, Transaction.id).all()
    if not halves:
        raise NotFoundError(f"Transfer {pair_id} not found", entity_id=pair_id)
    if len(halves) != 2:
        raise ConflictError(f"Transfer {pair_id} has {len(halves)} halves instead of 2", entity_id=pair_id)
    return halves[0], halves[1]


def update_transfer(db: Session, owner_id: str, pair_id: str,
                    source_account_id: Optional[int] = None,
                    destination_account_id: Optional[int] = None,
                    date=None, amount=None, description: Optional[str] = None,
                    category_id: Optional[int] = None) -> Tuple[Transaction, Transaction]:
    """Edit both halves of a transfer in one unit of work.

    Omitted fields keep their current value. The sign convention and the
    incoming description prefix are re-applied on every edit.
    """
    outgoing, incoming = get_pair(db, owner_id, pair_id)

    source = source_account_id if source_account_id is not None else outgoing.bank_account_id
    destination = destination_account_id if destination_account_id is not None else incoming.bank_account_id
    category = category_id if category_id is not None else outgoing.category_id
    when = ledger.validate_date(date) if date is not None else outgoing.date
    magnitude = abs(ledger.validate_amount(amount)) if amount is not None else abs(outgoing.amount)
    _validate_legs(db, owner_id, source, destination, category)

    if description is not None:
        outgoing_description = ledger.validate_description(description)
        incoming_description = ledger.incoming_description(outgoing_description)
    else:
        outgoing_description = outgoing.description
        incoming_description = incoming.description

    with unit_of_work(db):
        outgoing.bank_account_id = source
        outgoing.transfer_to_account_id = destination
        outgoing.amount = -magnitude
        outgoing.description = outgoing_description

        incoming.bank_account_id = destination
        incoming.transfer_to_account_id = source
        incoming.amount = magnitude
        incoming.description = incoming_description

        for half in (outgoing, incoming):
            half.date = when
            half.category_id = category

    db.refresh(outgoing)
    db.refresh(incoming)
    logger.info("transfer_updated", owner_id=owner_id, transfer_pair_id=pair_id)
    return outgoing, incoming


def delete_transfer(db: Session, owner_id: str, pair_id: str) -> List[int]:
    """Delete both halves of a transfer"""
    halves = db.query(Transaction).filter(
        Transaction.owner_id == owner_id,
        Transaction.transfer_pair_id == pair_id
    ).all()
    if not halves:
        raise NotFoundError(f"Transfer {pair_id} not found", entity_id=pair_id)

    with unit_of_work(db):
        for half in halves:
            db.delete(half)

    deleted = sorted(h.id for h in halves)
    logger.info("transfer_deleted", owner_id=owner_id, transfer_pair_id=pair_id, transaction_ids=deleted)
    return deleted
