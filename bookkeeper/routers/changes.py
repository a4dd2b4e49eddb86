from fastapi import APIRouter, Depends
from ..dependencies import get_change_tracker, get_owner_id
from ..schemas import VersionResponse
from ..services.changes import ChangeTracker

router = APIRouter()


@router.get("/version", response_model=VersionResponse)
async def get_version(owner_id: str = Depends(get_owner_id), tracker: ChangeTracker = Depends(get_change_tracker)):
    """Current change version of the caller's ledger; clients poll this to know when to refetch"""
    return VersionResponse(version=tracker.current(owner_id))
