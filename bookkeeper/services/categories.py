"""
Category tree service.

Categories form a per-owner forest. Transfer categories ("Transfer to <account>")
live under a root "Transfers" category and are created together with the
account they point at.
"""
from typing import Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..database import unit_of_work
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.bank_account import BankAccount
from ..models.category import Category
from ..models.transaction import Transaction
from ..schemas import CategoryResponse, CategoryTreeNode

logger = structlog.get_logger(__name__)

TRANSFERS_ROOT_NAME = "Transfers"
TRANSFER_PREFIX = "Transfer to "

# (name, children) pairs seeded once for every new owner
DEFAULT_CATEGORIES = [
    ("Income", [
        ("Contracting Income", []),
        ("Dividend Payments", []),
    ]),
    ("Expenses", [
        ("Employee Payments", []),
        ("Loans to Sole Shareholder", []),
        ("Business Expenses", [
            ("Motor Vehicle Expenses", []),
            ("Healthcare Supplies", []),
            ("Bank Fees", []),
            ("Interest", []),
            ("Tax Payments", []),
        ]),
        ("Utilities", []),
        ("Rent/Office Space", []),
    ]),
    (TRANSFERS_ROOT_NAME, []),
    ("Assets", []),
    ("Liabilities", []),
]


def transfer_category_name(account_name: str) -> str:
    return f"{TRANSFER_PREFIX}{account_name}"


def get_category(db: Session, owner_id: str, category_id: int) -> Category:
    """Fetch a category owned by ``owner_id`` or raise NotFoundError"""
    category = db.query(Category).filter(
        Category.id == category_id,
        Category.owner_id == owner_id
    ).first()
    if category is None:
        raise NotFoundError(f"Category {category_id} not found", field="category_id", entity_id=category_id)
    return category


def list_categories(db: Session, owner_id: str) -> List[Category]:
    return db.query(Category).filter(
        Category.owner_id == owner_id
    ).order_by(Category.name, Category.id).all()


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Category name is required", field="name")
    return cleaned


def _resolve_parent(db: Session, owner_id: str, parent_id: Optional[int]) -> Optional[Category]:
    if parent_id is None:
        return None
    try:
        return get_category(db, owner_id, parent_id)
    except NotFoundError:
        raise NotFoundError(f"Parent category {parent_id} not found", field="parent_id", entity_id=parent_id)


def create_category(db: Session, owner_id: str, name: str, parent_id: Optional[int] = None) -> Category:
    """Create a category, optionally nested under an existing one"""
    cleaned = _clean_name(name)
    _resolve_parent(db, owner_id, parent_id)

    category = Category(owner_id=owner_id, name=cleaned, parent_id=parent_id, is_transfer_category=False)
    with unit_of_work(db):
        db.add(category)
    db.refresh(category)
    logger.info("category_created", owner_id=owner_id, category_id=category.id, parent_id=parent_id)
    return category


def _descendant_ids(db: Session, owner_id: str, category_id: int) -> set:
    children_by_parent: Dict[Optional[int], List[int]] = {}
    for cid, pid in db.query(Category.id, Category.parent_id).filter(Category.owner_id == owner_id):
        children_by_parent.setdefault(pid, []).append(cid)

    found = set()
    stack = list(children_by_parent.get(category_id, []))
    while stack:
        current = stack.pop()
        if current in found:
            continue
        found.add(current)
        stack.extend(children_by_parent.get(current, []))
    return found


def update_category(db: Session, owner_id: str, category_id: int, name: str,
                    parent_id: Optional[int] = None) -> Category:
    """Rename and/or re-parent a category.

    Moving a category under itself or one of its descendants is rejected
    with ConflictError.
    """
    category = get_category(db, owner_id, category_id)
    cleaned = _clean_name(name)

    if parent_id is not None:
        if parent_id == category_id:
            raise ConflictError("Category cannot be its own parent", field="parent_id", entity_id=parent_id)
        _resolve_parent(db, owner_id, parent_id)
        if parent_id in _descendant_ids(db, owner_id, category_id):
            raise ConflictError(
                "Category cannot be moved under one of its own sub-categories",
                field="parent_id",
                entity_id=parent_id
            )

    with unit_of_work(db):
        category.name = cleaned
        category.parent_id = parent_id
    db.refresh(category)
    logger.info("category_updated", owner_id=owner_id, category_id=category.id, parent_id=parent_id)
    return category


def delete_category(db: Session, owner_id: str, category_id: int) -> None:
    """Delete a category that nothing references"""
    category = get_category(db, owner_id, category_id)

    in_use = db.query(Transaction).filter(
        Transaction.owner_id == owner_id,
        Transaction.category_id == category_id
    ).count()
    if in_use > 0:
        raise ConflictError(
            "Cannot delete category that has transactions. Please reassign or delete transactions first.",
            entity_id=category_id
        )

    children = db.query(Category).filter(Category.parent_id == category_id).count()
    if children > 0:
        raise ConflictError("Cannot delete category with child categories", entity_id=category_id)

    with unit_of_work(db):
        db.delete(category)
    logger.info("category_deleted", owner_id=owner_id, category_id=category_id)


def get_tree(db: Session, owner_id: str) -> List[CategoryTreeNode]:
    """Return the owner's category forest, siblings ordered by name"""
    nodes: Dict[int, CategoryTreeNode] = {}
    children_of: Dict[Optional[int], List[CategoryTreeNode]] = {}

    # list_categories is already ordered by name, so grouping keeps sibling order
    for category in list_categories(db, owner_id):
        node = CategoryTreeNode(**CategoryResponse.model_validate(category).model_dump())
        nodes[category.id] = node
        children_of.setdefault(category.parent_id, []).append(node)

    for parent_id, children in children_of.items():
        if parent_id in nodes:
            nodes[parent_id].children = children

    return [node for node in nodes.values() if node.parent_id is None]


def _seed(db: Session, owner_id: str, entries, parent: Optional[Category] = None) -> int:
    created = 0
    for name, children in entries:
        category = Category(
            owner_id=owner_id,
            name=name,
            parent_id=parent.id if parent else None,
            is_transfer_category=False
        )
        db.add(category)
        db.flush()
        created += 1 + _seed(db, owner_id, children, category)
    return created


def ensure_default_categories(db: Session, owner_id: str) -> int:
    """Seed the default taxonomy if the owner has no categories yet.

    Returns:
        Number of categories created (0 when the owner already had some).
    """
    existing = db.query(Category.id).filter(Category.owner_id == owner_id).first()
    if existing is not None:
        return 0

    with unit_of_work(db):
        created = _seed(db, owner_id, DEFAULT_CATEGORIES)
    logger.info("default_categories_seeded", owner_id=owner_id, created=created)
    return created


def get_transfers_root(db: Session, owner_id: str) -> Category:
    """Find the root "Transfers" category, creating it if absent (no commit)"""
    root = db.query(Category).filter(
        Category.owner_id == owner_id,
        Category.name == TRANSFERS_ROOT_NAME,
        Category.parent_id.is_(None)
    ).order_by(Category.id).first()

    if root is None:
        root = Category(owner_id=owner_id, name=TRANSFERS_ROOT_NAME, is_transfer_category=False)
        db.add(root)
        db.flush()
    return root


def create_transfer_category_for_account(db: Session, owner_id: str, account: BankAccount) -> Category:
    """Add the "Transfer to <account>" category.

    Runs inside the caller's unit of work: the caller commits.
    """
    root = get_transfers_root(db, owner_id)
    category = Category(
        owner_id=owner_id,
        name=transfer_category_name(account.name),
        parent_id=root.id,
        is_transfer_category=True,
        linked_account_id=account.id
    )
    db.add(category)
    db.flush()
    return category


def linked_transfer_categories(db: Session, owner_id: str, account_id: int) -> List[Category]:
    return db.query(Category).filter(
        Category.owner_id == owner_id,
        Category.linked_account_id == account_id
    ).all()
