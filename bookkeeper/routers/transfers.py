from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ..database import get_db
from ..dependencies import ChangeRecorder, get_owner_id
from ..schemas import BulkDeleteResponse, TransactionResponse, TransferCreate, TransferResponse, TransferUpdate
from ..services import transfers

router = APIRouter()


def _pair_response(outgoing, incoming) -> TransferResponse:
    return TransferResponse(
        transfer_pair_id=outgoing.transfer_pair_id,
        outgoing=TransactionResponse.model_validate(outgoing),
        incoming=TransactionResponse.model_validate(incoming)
    )


@router.post("", response_model=TransferResponse, status_code=201)
async def create_transfer(
    data: TransferCreate,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Move money between two accounts (creates both halves)"""
    outgoing, incoming = transfers.create_transfer(db, owner_id, **data.model_dump())
    record_change()
    return _pair_response(outgoing, incoming)


@router.get("/{pair_id}", response_model=TransferResponse)
async def get_transfer(pair_id: str, owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)):
    return _pair_response(*transfers.get_pair(db, owner_id, pair_id))


@router.put("/{pair_id}", response_model=TransferResponse)
async def update_transfer(
    pair_id: str,
    data: TransferUpdate,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Edit both halves of a transfer"""
    outgoing, incoming = transfers.update_transfer(db, owner_id, pair_id, **data.model_dump(exclude_unset=True))
    record_change()
    return _pair_response(outgoing, incoming)


@router.delete("/{pair_id}", response_model=BulkDeleteResponse)
async def delete_transfer(
    pair_id: str,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    deleted = transfers.delete_transfer(db, owner_id, pair_id)
    record_change()
    return {"message": "Transfer deleted successfully", "deleted_ids": deleted}
