from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from ..database import get_db
from ..dependencies import ChangeRecorder, get_owner_id
from ..schemas import CategoryCreate, CategoryUpdate, CategoryResponse, CategoryTreeNode, MessageResponse
from ..services import categories as category_service

router = APIRouter()

@router.get("/", response_model=List[CategoryResponse])
async def get_categories(owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)):
    """Get all categories ordered by name"""
    return category_service.list_categories(db, owner_id)

@router.get("/tree", response_model=List[CategoryTreeNode])
async def get_category_tree(owner_id: str = Depends(get_owner_id), db: Session = Depends(get_db)):
    """Get categories as a forest of nested children"""
    return category_service.get_tree(db, owner_id)

@router.post("/defaults", response_model=MessageResponse)
async def seed_default_categories(
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Seed the default categories for an owner that has none"""
    created = category_service.ensure_default_categories(db, owner_id)
    if created:
        record_change()
    return {"message": f"{created} categories created"}

@router.post("/", response_model=CategoryResponse, status_code=201)
async def create_category(
    data: CategoryCreate,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Create a new category"""
    category = category_service.create_category(db, owner_id, data.name, data.parent_id)
    record_change()
    return category

@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Rename or move a category"""
    category = category_service.update_category(db, owner_id, category_id, data.name, data.parent_id)
    record_change()
    return category

@router.delete("/{category_id}", response_model=MessageResponse)
async def delete_category(
    category_id: int,
    owner_id: str = Depends(get_owner_id),
    record_change: ChangeRecorder = Depends(),
    db: Session = Depends(get_db)
):
    """Delete a category that no transaction uses"""
    category_service.delete_category(db, owner_id, category_id)
    record_change()
    return {"message": "Category deleted successfully"}
