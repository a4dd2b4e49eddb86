from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List
from ..config import settings
from ..database import get_db
from ..dependencies import ChangeRecorder, get_owner_id, get_transaction_filters
from ..schemas import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    BulkUpdateRequest,
    BulkUpdateResponse,
    SortDirection,
    SortField,
    TotalsResponse,
    TransactionCreate,
    TransactionFilters,
    TransactionPage,
    TransactionResponse,
    TransactionRow,
    TransactionUpdate,
)
from ..services import categories as category_service
from ..services import export_service, ledger, queries, transfers

router = APIRouter()


@router.get("", response_model=TransactionPage)
async def get_transactions(
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    page_size: int = Query(settings.PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Rows per page"),
    sort_field: SortField = Query("date"),
    sort_direction: SortDirection = Query("desc"),
    filters: TransactionFilters = Depends(get_transaction_filters),
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """Get transactions with filters, sorting, pagination and running balances"""
    return queries.list_transactions(db, owner_id, filters, page, page_size, sort_field, sort_direction)


@router.get("/totals", response_model=TotalsResponse)
async def get_totals(
    filters: TransactionFilters = Depends(get_transaction_filters),
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """Get income, expenses and net total of the filtered transactions"""
    return queries.totals(db, owner_id, filters)


@router.get("/export.csv")
async def export_transactions(
    sort_field: SortField = Query("date"),
    sort_direction: SortDirection = Query("asc"),
    filters: TransactionFilters = Depends(get_transaction_filters),
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """Export the filtered transactions as CSV"""
    rows = queries.all_transactions(db, owner_id, filters, sort_field, sort_direction)
    return Response(
        content=export_service.transactions_to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'}
    )


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_transactions(
    data: BulkDeleteRequest,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Delete several transactions at once (all or nothing)"""
    deleted = ledger.bulk_delete(db, owner_id, data.ids)
    record_change()
    return {"message": f"{len(deleted)} transactions deleted", "deleted_ids": deleted}


@router.post("/bulk-update", response_model=BulkUpdateResponse)
async def bulk_update_transactions(
    data: BulkUpdateRequest,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Set the category of several transactions at once (all or nothing)"""
    updated = ledger.bulk_update_category(db, owner_id, data.ids, data.category_id, data.transfer_to_account_id)
    record_change()
    return {"message": f"{len(updated)} transactions updated", "updated": updated}


@router.post("", response_model=List[TransactionResponse], status_code=201)
async def create_transaction(
    data: TransactionCreate,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Create a transaction.

    A transfer category creates both halves of a transfer; the outgoing half
    (on ``bank_account_id``) is listed first.
    """
    category = category_service.get_category(db, owner_id, data.category_id)
    if category.is_transfer_category and data.transfer_to_account_id is not None:
        created = list(transfers.create_transfer(
            db, owner_id,
            source_account_id=data.bank_account_id,
            destination_account_id=data.transfer_to_account_id,
            date=data.date,
            amount=data.amount,
            description=data.description,
            category_id=data.category_id
        ))
    else:
        created = [ledger.create_transaction(
            db, owner_id,
            bank_account_id=data.bank_account_id,
            date=data.date,
            amount=data.amount,
            description=data.description,
            category_id=data.category_id,
            transfer_to_account_id=data.transfer_to_account_id
        )]
    record_change()
    return created


@router.get("/{transaction_id}", response_model=TransactionRow)
async def get_transaction(transaction_id: int, owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)):
    """Get a single transaction with its running balance"""
    transaction = ledger.get_transaction(db, owner_id, transaction_id)
    rows = queries.all_transactions(db, owner_id, TransactionFilters(bank_account_ids=[transaction.bank_account_id]))
    return next(row for row in rows if row.id == transaction_id)


@router.put("/{transaction_id}", response_model=List[TransactionResponse])
async def update_transaction(
    transaction_id: int,
    data: TransactionUpdate,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Update a transaction.

    Editing either half of a transfer edits both halves; ``amount`` is then
    taken as the transfer magnitude and ``description`` as the outgoing
    description. When the incoming half is edited, ``bank_account_id`` is the
    destination and a leading "Transfer from " is dropped from ``description``.
    """
    transaction = ledger.get_transaction(db, owner_id, transaction_id)
    update_data = data.model_dump(exclude_unset=True)

    if transaction.transfer_pair_id:
        is_outgoing = transaction.amount < 0
        own_account = update_data.get("bank_account_id")
        other_account = update_data.get("transfer_to_account_id")
        description = update_data.get("description")
        if description is not None and not is_outgoing:
            description = description.strip()
            if description.startswith(ledger.INCOMING_PREFIX):
                description = description[len(ledger.INCOMING_PREFIX):]
        updated = list(transfers.update_transfer(
            db, owner_id, transaction.transfer_pair_id,
            source_account_id=own_account if is_outgoing else other_account,
            destination_account_id=other_account if is_outgoing else own_account,
            date=update_data.get("date"),
            amount=update_data.get("amount"),
            description=description,
            category_id=update_data.get("category_id")
        ))
    else:
        updated = [ledger.update_transaction(db, owner_id, transaction_id, update_data)]
    record_change()
    return updated


@router.delete("/{transaction_id}", response_model=BulkDeleteResponse)
async def delete_transaction(
    transaction_id: int,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Delete a transaction (both halves when it belongs to a transfer)"""
    deleted = ledger.delete_transaction(db, owner_id, transaction_id)
    record_change()
    return {"message": "Transaction deleted successfully", "deleted_ids": deleted}
