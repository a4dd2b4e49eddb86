from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..dependencies import ChangeRecorder, get_owner_id, get_staging_store
from ..schemas import ImportCommitRequest, ImportCommitResponse, MessageResponse, StagedImportResponse
from ..services import import_service
from ..services.import_service import StagedBatch, StagingStore

router = APIRouter()


def _staged_response(batch: StagedBatch) -> StagedImportResponse:
    return StagedImportResponse(
        token=batch.token,
        expires_at=batch.expires_at,
        candidates=batch.result.candidates,
        errors=batch.result.errors
    )


@router.post("/parse", response_model=StagedImportResponse, status_code=201)
async def parse_statement(
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    store: StagingStore = Depends(get_staging_store)
):
    """
    Parse a bank statement CSV and stage the candidates.
    Nothing is written to the ledger until the staged batch is committed.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    content = await file.read()

    if len(content) > settings.MAX_IMPORT_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File size exceeds maximum allowed size of {settings.MAX_IMPORT_BYTES // (1024 * 1024)}MB"
        )

    if len(content) == 0:
        raise HTTPException(status_code=400, detail="File is empty")

    result = import_service.parse(content, max_rows=settings.MAX_IMPORT_ROWS)
    return _staged_response(store.stage(owner_id, result))


@router.get("/staged/{token}", response_model=StagedImportResponse)
async def get_staged_import(
    token: str,
    owner_id: str = Depends(get_owner_id),
    store: StagingStore = Depends(get_staging_store)
):
    return _staged_response(store.get(owner_id, token))


@router.delete("/staged/{token}", response_model=MessageResponse)
async def discard_staged_import(
    token: str,
    owner_id: str = Depends(get_owner_id),
    store: StagingStore = Depends(get_staging_store)
):
    """Throw away a staged batch without touching the ledger"""
    store.discard(owner_id, token)
    return {"message": "Staged import discarded"}


@router.post("/staged/{token}/commit", response_model=ImportCommitResponse)
async def commit_staged_import(
    token: str,
    data: ImportCommitRequest,
    owner_id: str = Depends(get_owner_id),
    store: StagingStore = Depends(get_staging_store),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """
    Commit categorised candidates to the ledger.

    Rows that failed or were not assigned stay staged under the same token
    so they can be fixed and committed again.
    """
    batch = store.get(owner_id, token)
    result = import_service.commit(
        db, owner_id, data.bank_account_id, batch.result.candidates, data.assignments
    )

    committed = {a.index for a in data.assignments} - {e.index for e in result.errors}
    store.retain(owner_id, token, [c.index for c in batch.result.candidates if c.index not in committed])
    if result.imported:
        record_change()
    return result
