"""
Read side of the ledger: filtered listing with running balances, totals,
category summaries and monthly trends.
"""
from datetime import date
from decimal import Decimal
from itertools import accumulate
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
from sqlalchemy.orm import Query, Session, aliased, joinedload

from ..errors import ValidationError
from ..models.bank_account import BankAccount
from ..models.category import Category
from ..models.transaction import Transaction
from ..schemas import (
    CategorySummary,
    MonthlyBucket,
    ReportResponse,
    TotalsResponse,
    TransactionFilters,
    TransactionPage,
    TransactionRow,
)

ZERO = Decimal("0.00")
SORT_FIELDS = ("date", "amount", "category", "account")
SORT_DIRECTIONS = ("asc", "desc")


def apply_filters(query: Query, filters: Optional[TransactionFilters]) -> Query:
    """Narrow a Transaction query by the shared filter set"""
    if filters is None:
        return query

    if filters.bank_account_ids:
        query = query.filter(Transaction.bank_account_id.in_(filters.bank_account_ids))

    if filters.start_date:
        query = query.filter(Transaction.date >= filters.start_date)

    if filters.end_date:
        query = query.filter(Transaction.date <= filters.end_date)

    if filters.category_ids:
        query = query.filter(Transaction.category_id.in_(filters.category_ids))

    if filters.min_amount is not None:
        query = query.filter(Transaction.amount >= filters.min_amount)

    if filters.max_amount is not None:
        query = query.filter(Transaction.amount <= filters.max_amount)

    if filters.search:
        query = query.filter(Transaction.description.icontains(filters.search, autoescape=True))

    return query


def _owned(db: Session, owner_id: str, filters: Optional[TransactionFilters]) -> Query:
    return apply_filters(db.query(Transaction).filter(Transaction.owner_id == owner_id), filters)


def _order(query: Query, sort_field: str, sort_direction: str) -> Query:
    if sort_field not in SORT_FIELDS:
        raise ValidationError(f"sort_field must be one of: {', '.join(SORT_FIELDS)}", field="sort_field")
    if sort_direction not in SORT_DIRECTIONS:
        raise ValidationError("sort_direction must be 'asc' or 'desc'", field="sort_direction")

    if sort_field == "category":
        sort_category = aliased(Category)
        query = query.join(sort_category, Transaction.category_id == sort_category.id)
        column = sort_category.name
    elif sort_field == "account":
        sort_account = aliased(BankAccount)
        query = query.join(sort_account, Transaction.bank_account_id == sort_account.id)
        column = sort_account.name
    else:
        column = getattr(Transaction, sort_field)

    if sort_direction == "desc":
        return query.order_by(column.desc(), Transaction.id.desc())
    return query.order_by(column.asc(), Transaction.id.asc())


def running_balances(db: Session, owner_id: str, account_ids: Iterable[int]) -> Dict[int, Decimal]:
    """
    Running balance of every transaction on the given accounts.

    Each account's history is read once in (date, id) order and summed
    cumulatively, so transactions sharing a date follow insertion order.
    """
    account_ids = set(account_ids)
    if not account_ids:
        return {}

    rows = db.query(Transaction.bank_account_id, Transaction.id, Transaction.amount).filter(
        Transaction.owner_id == owner_id,
        Transaction.bank_account_id.in_(account_ids)
    ).order_by(Transaction.bank_account_id, Transaction.date, Transaction.id).all()

    by_account: Dict[int, List[Tuple[int, Decimal]]] = {}
    for account_id, transaction_id, amount in rows:
        by_account.setdefault(account_id, []).append((transaction_id, amount))

    balances: Dict[int, Decimal] = {}
    for history in by_account.values():
        ids = [transaction_id for transaction_id, _ in history]
        balances.update(zip(ids, accumulate(amount for _, amount in history)))
    return balances


def _category_parents(db: Session, owner_id: str) -> Dict[int, Category]:
    return {c.id: c for c in db.query(Category).filter(Category.owner_id == owner_id)}


def _to_rows(db: Session, owner_id: str, transactions: List[Transaction]) -> List[TransactionRow]:
    balances = running_balances(db, owner_id, {t.bank_account_id for t in transactions})
    categories = _category_parents(db, owner_id)

    rows = []
    for t in transactions:
        category = categories.get(t.category_id)
        parent = categories.get(category.parent_id) if category and category.parent_id else None
        row = TransactionRow.model_validate(t)
        row.bank_account_name = t.bank_account.name if t.bank_account else None
        row.category_name = category.name if category else None
        row.parent_category_name = parent.name if parent else None
        row.transfer_to_account_name = t.transfer_to_account.name if t.transfer_to_account else None
        row.running_balance = balances.get(t.id, ZERO)
        rows.append(row)
    return rows


def list_transactions(db: Session, owner_id: str, filters: Optional[TransactionFilters] = None,
                      page: int = 1, page_size: int = 20, sort_field: str = "date",
                      sort_direction: str = "desc") -> TransactionPage:
    """One page of filtered transactions, each with its account running balance"""
    if page < 1:
        raise ValidationError("page must be 1 or greater", field="page")
    if page_size < 1:
        raise ValidationError("page_size must be 1 or greater", field="page_size")

    query = _owned(db, owner_id, filters)
    total = query.count()

    transactions = _order(query, sort_field, sort_direction).options(
        joinedload(Transaction.bank_account),
        joinedload(Transaction.transfer_to_account)
    ).offset((page - 1) * page_size).limit(page_size).all()

    return TransactionPage(
        items=_to_rows(db, owner_id, transactions),
        total=total,
        page=page,
        page_size=page_size
    )


def all_transactions(db: Session, owner_id: str, filters: Optional[TransactionFilters] = None,
                     sort_field: str = "date", sort_direction: str = "asc") -> List[TransactionRow]:
    """Every filtered transaction, unpaginated (exports and reports)"""
    transactions = _order(_owned(db, owner_id, filters), sort_field, sort_direction).options(
        joinedload(Transaction.bank_account),
        joinedload(Transaction.transfer_to_account)
    ).all()
    return _to_rows(db, owner_id, transactions)


def totals(db: Session, owner_id: str, filters: Optional[TransactionFilters] = None) -> TotalsResponse:
    income = ZERO
    expenses = ZERO
    count = 0
    for (amount,) in _owned(db, owner_id, filters).with_entities(Transaction.amount):
        count += 1
        if amount > 0:
            income += amount
        elif amount < 0:
            expenses += amount
    return TotalsResponse(total=income + expenses, income=income, expenses=expenses, count=count)


def category_summaries(db: Session, owner_id: str,
                       filters: Optional[TransactionFilters] = None) -> List[CategorySummary]:
    """One row per category present in the filtered set"""
    grouped: Dict[int, List] = {}
    for category_id, amount in _owned(db, owner_id, filters).with_entities(
        Transaction.category_id, Transaction.amount
    ):
        entry = grouped.setdefault(category_id, [ZERO, 0])
        entry[0] += amount
        entry[1] += 1

    categories = _category_parents(db, owner_id)
    summaries = []
    for category_id, (total, count) in grouped.items():
        category = categories[category_id]
        parent = categories.get(category.parent_id) if category.parent_id else None
        summaries.append(CategorySummary(
            category_id=category_id,
            category_name=category.name,
            parent_category_name=parent.name if parent else None,
            total=total,
            count=count
        ))

    summaries.sort(key=lambda s: (s.parent_category_name or "", s.category_name, s.category_id))
    return summaries


def report(db: Session, owner_id: str, filters: Optional[TransactionFilters] = None) -> ReportResponse:
    sums = totals(db, owner_id, filters)
    return ReportResponse(
        summaries=category_summaries(db, owner_id, filters),
        total_income=sums.income,
        total_expenses=sums.expenses,
        net_balance=sums.total
    )


def monthly_trend(db: Session, owner_id: str, start_date: date, end_date: date,
                  bank_account_ids: Optional[List[int]] = None) -> List[MonthlyBucket]:
    """
    Income and expenses per calendar month, every month in range included.

    Expenses are reported as a positive magnitude.
    """
    if start_date is None or end_date is None:
        raise ValidationError("start_date and end_date are required")
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date", field="start_date")

    months = pd.period_range(start=pd.Timestamp(start_date), end=pd.Timestamp(end_date), freq="M")
    buckets: Dict[str, List[Decimal]] = {str(month): [ZERO, ZERO] for month in months}

    filters = TransactionFilters(
        start_date=start_date,
        end_date=end_date,
        bank_account_ids=bank_account_ids or []
    )
    for when, amount in _owned(db, owner_id, filters).with_entities(Transaction.date, Transaction.amount):
        bucket = buckets[f"{when.year:04d}-{when.month:02d}"]
        if amount > 0:
            bucket[0] += amount
        else:
            bucket[1] += abs(amount)

    return [
        MonthlyBucket(
            month=str(month),
            label=month.strftime("%b %Y"),
            income=buckets[str(month)][0],
            expenses=buckets[str(month)][1]
        )
        for month in months
    ]
