"""
Import service for bank statement CSV files.

Statements have five positional columns and no required header:

    date (MM/DD/YYYY), description, debit, credit, running balance

Parsing never touches the database. Parsed candidates are held in a
``StagingStore`` until the user has categorised them and commits.
"""
import csv
import io
import re
import threading
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence, Tuple, Union

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import LedgerError, NotFoundError, ParseError, ValidationError
from ..schemas import (
    CandidateAssignment,
    CommitErrorItem,
    ImportCommitResponse,
    ParsedTransaction,
    ParseErrorItem,
    ParseResult,
)
from . import categories as category_service
from . import ledger, transfers

logger = structlog.get_logger(__name__)

EXPECTED_COLUMNS = 5
DATE_FORMAT = "%m/%d/%Y"
ZERO = Decimal("0")

REVIEW_ZERO_AMOUNT = "Debit and credit are both empty or zero"
REVIEW_BOTH_SIDES = "Both debit and credit are set; credit was used"
REVIEW_NEGATIVE_CELL = "Debit or credit holds a negative value"

# Currency symbols, thousands separators and whitespace are ignored in amount cells
_AMOUNT_NOISE = re.compile(r"[\s,$£€]")


def parse_amount_cell(cell: Optional[str]) -> Decimal:
    """Parse a debit/credit/balance cell; blank or unparseable cells are 0"""
    text = _AMOUNT_NOISE.sub("", cell or "")
    if not text:
        return ZERO
    try:
        value = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not value.is_finite():
        return ZERO
    return value


def derive_amount(debit: Decimal, credit: Decimal) -> Tuple[Decimal, Optional[str]]:
    """
    Turn separate debit/credit values into one signed amount.

    Returns:
        Tuple of (amount, review_reason). ``review_reason`` is set when the
        row should be looked at before it is committed.
    """
    if debit > 0 and credit == 0:
        return -debit, None
    if credit > 0 and debit == 0:
        return credit, None
    if debit == 0 and credit == 0:
        return ZERO, REVIEW_ZERO_AMOUNT
    amount = credit if credit > 0 else -debit
    if amount == 0:
        return ZERO, REVIEW_ZERO_AMOUNT
    if debit < 0 or credit < 0:
        return amount, REVIEW_NEGATIVE_CELL
    return amount, REVIEW_BOTH_SIDES


def _parse_row(row: Sequence[str], row_number: int) -> Tuple:
    if len(row) < EXPECTED_COLUMNS:
        raise ParseError("Row does not have enough columns", row=row_number, data=list(row))

    date_cell, description_cell, debit_cell, credit_cell, balance_cell = row[:EXPECTED_COLUMNS]

    try:
        when = datetime.strptime(date_cell.strip(), DATE_FORMAT).date()
    except ValueError:
        raise ParseError(
            f"Invalid date: {date_cell}. Expected MM/DD/YYYY",
            row=row_number,
            data=list(row)
        )

    description = description_cell.strip()
    if not description:
        raise ParseError("Description is required", row=row_number, data=list(row))

    amount, review_reason = derive_amount(parse_amount_cell(debit_cell), parse_amount_cell(credit_cell))
    running_balance = parse_amount_cell(balance_cell) if balance_cell.strip() else None
    return when, description, amount, running_balance, review_reason


def _is_header(row: Sequence[str]) -> bool:
    return bool(row) and "date" in row[0].lower()


def parse(file_contents: Union[str, bytes], max_rows: Optional[int] = None) -> ParseResult:
    """
    Parse statement text into staged candidates and per-row errors.

    Args:
        file_contents: Raw file text (bytes are decoded as UTF-8, BOM tolerated)
        max_rows: Reject the whole file with ValidationError above this many rows

    Returns:
        ParseResult with ``candidates`` and ``errors``; a bad row never stops
        the rest of the file from being parsed.
    """
    if isinstance(file_contents, bytes):
        try:
            file_contents = file_contents.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("File is not valid UTF-8 text", field="file")
    elif file_contents.startswith("\ufeff"):
        file_contents = file_contents[1:]

    rows = [row for row in csv.reader(io.StringIO(file_contents)) if any(cell.strip() for cell in row)]
    if max_rows is not None and len(rows) > max_rows:
        raise ValidationError(f"File has {len(rows)} rows; the limit is {max_rows}", field="file")

    result = ParseResult()
    for position, row in enumerate(rows):
        if position == 0 and _is_header(row):
            continue
        row_number = position + 1
        try:
            when, description, amount, running_balance, review_reason = _parse_row(row, row_number)
        except ParseError as e:
            result.errors.append(ParseErrorItem(row=e.row, message=e.message, data=e.data))
            continue

        result.candidates.append(ParsedTransaction(
            index=len(result.candidates),
            row=row_number,
            date=when,
            description=description,
            amount=amount,
            running_balance=running_balance,
            needs_review=review_reason is not None,
            review_reason=review_reason,
            raw_row=list(row)
        ))

    if result.errors:
        logger.warning("statement_rows_rejected", rows=[e.row for e in result.errors])
    logger.info("statement_parsed", candidates=len(result.candidates), errors=len(result.errors))
    return result


# =============================================================================
# Staging
# =============================================================================

class StagedBatch:
    def __init__(self, token: str, owner_id: str, result: ParseResult, expires_at: datetime):
        self.token = token
        self.owner_id = owner_id
        self.result = result
        self.expires_at = expires_at


class StagingStore:
    """
    Short-lived, owner-scoped holding area for parsed candidates.

    Nothing here is written to the ledger; discarding a batch has no side
    effects. Expired batches are dropped lazily on access.
    """

    def __init__(self, ttl_seconds: int = 3600):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._batches: Dict[str, StagedBatch] = {}
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _purge(self) -> None:
        now = self._now()
        for token in [t for t, b in self._batches.items() if b.expires_at <= now]:
            del self._batches[token]

    def stage(self, owner_id: str, result: ParseResult) -> StagedBatch:
        batch = StagedBatch(uuid.uuid4().hex, owner_id, result, self._now() + self.ttl)
        with self._lock:
            self._purge()
            self._batches[batch.token] = batch
        return batch

    def get(self, owner_id: str, token: str) -> StagedBatch:
        with self._lock:
            self._purge()
            batch = self._batches.get(token)
        if batch is None or batch.owner_id != owner_id:
            raise NotFoundError("Staged import not found or expired", entity_id=token)
        return batch

    def discard(self, owner_id: str, token: str) -> None:
        self.get(owner_id, token)
        with self._lock:
            self._batches.pop(token, None)

    def pop(self, owner_id: str, token: str) -> StagedBatch:
        batch = self.get(owner_id, token)
        with self._lock:
            self._batches.pop(token, None)
        return batch

    def retain(self, owner_id: str, token: str, indexes) -> Optional[StagedBatch]:
        """Keep only the candidates in ``indexes``; drop the batch when none remain"""
        batch = self.get(owner_id, token)
        keep = set(indexes)
        with self._lock:
            batch.result.candidates = [c for c in batch.result.candidates if c.index in keep]
            if not batch.result.candidates:
                self._batches.pop(token, None)
                return None
        return batch

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._batches)


# =============================================================================
# Commit
# =============================================================================

def _commit_one(db: Session, owner_id: str, bank_account_id: int, candidate: ParsedTransaction,
                assignment: CandidateAssignment) -> int:
    description = assignment.description if assignment.description is not None else candidate.description
    category = category_service.get_category(db, owner_id, assignment.category_id)

    if not category.is_transfer_category:
        ledger.create_transaction(
            db, owner_id,
            bank_account_id=bank_account_id,
            date=candidate.date,
            amount=candidate.amount,
            description=description,
            category_id=category.id,
            transfer_to_account_id=assignment.transfer_to_account_id
        )
        return 1

    if assignment.transfer_to_account_id is None:
        raise ValidationError(
            "A destination account is required for transfer categories",
            field="transfer_to_account_id"
        )
    # A credit on the statement is money arriving from the other account
    if candidate.amount > 0:
        source, destination = assignment.transfer_to_account_id, bank_account_id
    else:
        source, destination = bank_account_id, assignment.transfer_to_account_id
    transfers.create_transfer(
        db, owner_id,
        source_account_id=source,
        destination_account_id=destination,
        date=candidate.date,
        amount=candidate.amount,
        description=description,
        category_id=category.id
    )
    return 2


def commit(db: Session, owner_id: str, bank_account_id: int, candidates: List[ParsedTransaction],
           assignments: List[CandidateAssignment]) -> ImportCommitResponse:
    """
    Write categorised candidates to the ledger.

    Each row is its own unit of work: a failing row is reported in ``errors``
    and the remaining rows are still committed. Candidates without an
    assignment are counted as skipped.
    """
    ledger.get_account(db, owner_id, bank_account_id)
    by_index = {c.index: c for c in candidates}

    imported = 0
    errors: List[CommitErrorItem] = []
    assigned = set()
    for assignment in assignments:
        candidate = by_index.get(assignment.index)
        if candidate is None:
            errors.append(CommitErrorItem(index=assignment.index, message="No staged candidate with this index"))
            continue
        assigned.add(assignment.index)
        try:
            imported += _commit_one(db, owner_id, bank_account_id, candidate, assignment)
        except LedgerError as e:
            errors.append(CommitErrorItem(index=assignment.index, message=e.message))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("import_row_failed", owner_id=owner_id, index=assignment.index, error=str(e))
            errors.append(CommitErrorItem(index=assignment.index, message="Could not store transaction"))

    skipped = len(set(by_index) - assigned)
    logger.info("import_committed", owner_id=owner_id, bank_account_id=bank_account_id,
                imported=imported, skipped=skipped, failed=len(errors))
    return ImportCommitResponse(imported=imported, skipped=skipped, errors=errors)
