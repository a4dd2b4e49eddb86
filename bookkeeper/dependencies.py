from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, Header, HTTPException, Query, Response

from .config import settings
from .schemas import TransactionFilters
from .services.changes import ChangeTracker
from .services.import_service import StagingStore

staging_store = StagingStore(ttl_seconds=settings.STAGING_TTL_SECONDS)
change_tracker = ChangeTracker()


def get_owner_id(x_owner_id: Optional[str] = Header(None)) -> str:
    """Opaque owner identifier supplied by the identity provider"""
    if x_owner_id is None or not x_owner_id.strip():
        raise HTTPException(status_code=401, detail=f"Missing {settings.OWNER_HEADER} header")
    return x_owner_id.strip()


def get_staging_store() -> StagingStore:
    return staging_store


def get_change_tracker() -> ChangeTracker:
    return change_tracker


class ChangeRecorder:
    """Bumps the owner's change version and reports it on the response"""

    def __init__(self, response: Response, owner_id: str = Depends(get_owner_id),
                 tracker: ChangeTracker = Depends(get_change_tracker)):
        self.response = response
        self.owner_id = owner_id
        self.tracker = tracker

    def __call__(self) -> int:
        version = self.tracker.bump(self.owner_id)
        self.response.headers[settings.VERSION_HEADER] = str(version)
        return version


def get_transaction_filters(
    bank_account_ids: Optional[List[int]] = Query(None, description="Filter by account IDs"),
    start_date: Optional[date] = Query(None, description="Start date (YYYY-MM-DD), inclusive"),
    end_date: Optional[date] = Query(None, description="End date (YYYY-MM-DD), inclusive"),
    category_ids: Optional[List[int]] = Query(None, description="Filter by category IDs"),
    min_amount: Optional[Decimal] = Query(None, description="Minimum amount, inclusive"),
    max_amount: Optional[Decimal] = Query(None, description="Maximum amount, inclusive"),
    search: Optional[str] = Query(None, max_length=255, description="Search in description")
) -> TransactionFilters:
    return TransactionFilters(
        bank_account_ids=bank_account_ids or [],
        start_date=start_date,
        end_date=end_date,
        category_ids=category_ids or [],
        min_amount=min_amount,
        max_amount=max_amount,
        search=search or None
    )
