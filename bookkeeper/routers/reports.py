from datetime import date
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List, Optional
from ..database import get_db
from ..dependencies import get_owner_id, get_transaction_filters
from ..schemas import MonthlyBucket, ReportResponse, TransactionFilters
from ..services import export_service, queries

router = APIRouter()


@router.get("", response_model=ReportResponse)
async def get_report(
    filters: TransactionFilters = Depends(get_transaction_filters),
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """Category summaries plus income, expense and net totals"""
    return queries.report(db, owner_id, filters)


@router.get("/monthly", response_model=List[MonthlyBucket])
async def get_monthly_trend(
    start_date: date = Query(..., description="Start date (YYYY-MM-DD), inclusive"),
    end_date: date = Query(..., description="End date (YYYY-MM-DD), inclusive"),
    bank_account_ids: Optional[List[int]] = Query(None),
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    """Income and expenses per month; months without activity are included as zero"""
    return queries.monthly_trend(db, owner_id, start_date, end_date, bank_account_ids)


@router.get("/categories/export.csv")
async def export_category_summaries(
    filters: TransactionFilters = Depends(get_transaction_filters),
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db)
):
    summaries = queries.category_summaries(db, owner_id, filters)
    return Response(
        content=export_service.category_summaries_to_csv(summaries),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="category_summary.csv"'}
    )
