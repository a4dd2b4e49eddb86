from decimal import Decimal
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from ..database import get_db
from ..dependencies import ChangeRecorder, get_owner_id
from ..schemas import AccountCreate, AccountUpdate, AccountResponse, BalanceResponse, MessageResponse
from ..services import ledger

router = APIRouter()


def _account_response(account, balance: Decimal) -> AccountResponse:
    return AccountResponse(id=account.id, name=account.name, created_at=account.created_at, balance=balance)


@router.get("/", response_model=List[AccountResponse])
async def get_accounts(owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)):
    """Get all bank accounts with their balances"""
    return [_account_response(account, balance) for account, balance in ledger.list_accounts(db, owner_id)]


@router.post("/", response_model=AccountResponse, status_code=201)
async def create_account(
    data: AccountCreate,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Create a bank account and its transfer category"""
    account = ledger.create_account(db, owner_id, data.name)
    record_change()
    return _account_response(account, Decimal("0.00"))


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(account_id: int, owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)):
    """Get a single bank account"""
    account = ledger.get_account(db, owner_id, account_id)
    return _account_response(account, ledger.get_account_balance(db, owner_id, account_id))


@router.get("/{account_id}/balance", response_model=BalanceResponse)
async def get_account_balance(account_id: int, owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)):
    """Get the derived balance of an account"""
    return BalanceResponse(account_id=account_id, balance=ledger.get_account_balance(db, owner_id, account_id))


@router.put("/{account_id}", response_model=AccountResponse)
async def rename_account(
    account_id: int,
    data: AccountUpdate,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Rename a bank account"""
    account = ledger.rename_account(db, owner_id, account_id, data.name)
    record_change()
    return _account_response(account, ledger.get_account_balance(db, owner_id, account_id))


@router.delete("/{account_id}", response_model=MessageResponse)
async def delete_account(
    account_id: int,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Delete a bank account and every transaction on it"""
    removed = ledger.delete_account(db, owner_id, account_id)
    record_change()
    return {"message": f"Bank account deleted ({removed} transactions removed)"}
