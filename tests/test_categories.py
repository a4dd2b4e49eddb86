from datetime import date
from decimal import Decimal

import pytest

from bookkeeper.errors import ConflictError, NotFoundError, ValidationError
from bookkeeper.models.category import Category
from bookkeeper.services import categories, ledger


def _names(session, owner):
    return sorted((c.name, c.parent_id) for c in categories.list_categories(session, owner))


def _by_name(session, owner, name):
    return session.query(Category).filter(Category.owner_id == owner, Category.name == name).one()


def test_ensure_default_categories_is_idempotent(session, owner):
    created = categories.ensure_default_categories(session, owner)
    first = _names(session, owner)

    assert created == len(first) == 17
    assert categories.ensure_default_categories(session, owner) == 0
    assert _names(session, owner) == first


def test_default_taxonomy_nests_business_expenses(session, owner):
    categories.ensure_default_categories(session, owner)
    business = _by_name(session, owner, "Business Expenses")
    expenses = _by_name(session, owner, "Expenses")

    assert business.parent_id == expenses.id
    assert {c.name for c in business.children} == {
        "Motor Vehicle Expenses", "Healthcare Supplies", "Bank Fees", "Interest", "Tax Payments"
    }


def test_seeding_is_per_owner(session, owner):
    categories.ensure_default_categories(session, owner)
    categories.ensure_default_categories(session, "someone-else")
    assert len(categories.list_categories(session, owner)) == 17
    assert len(categories.list_categories(session, "someone-else")) == 17


def test_create_category_requires_name(session, owner):
    with pytest.raises(ValidationError) as exc:
        categories.create_category(session, owner, "   ")
    assert exc.value.field == "name"


def test_create_category_with_missing_parent(session, owner):
    with pytest.raises(NotFoundError) as exc:
        categories.create_category(session, owner, "Orphan", parent_id=999)
    assert exc.value.field == "parent_id"


def test_create_category_rejects_other_owners_parent(session, owner):
    foreign = categories.create_category(session, "someone-else", "Theirs")
    with pytest.raises(NotFoundError):
        categories.create_category(session, owner, "Mine", parent_id=foreign.id)


def test_update_category_rejects_cycles(session, owner):
    root = categories.create_category(session, owner, "Root")
    child = categories.create_category(session, owner, "Child", parent_id=root.id)
    grandchild = categories.create_category(session, owner, "Grandchild", parent_id=child.id)

    with pytest.raises(ConflictError):
        categories.update_category(session, owner, root.id, "Root", parent_id=root.id)
    with pytest.raises(ConflictError):
        categories.update_category(session, owner, root.id, "Root", parent_id=grandchild.id)

    moved = categories.update_category(session, owner, grandchild.id, "Moved", parent_id=root.id)
    assert moved.parent_id == root.id
    assert moved.name == "Moved"


def test_update_category_to_root(session, owner):
    root = categories.create_category(session, owner, "Root")
    child = categories.create_category(session, owner, "Child", parent_id=root.id)
    updated = categories.update_category(session, owner, child.id, "Child")
    assert updated.parent_id is None


def test_tree_orders_siblings_by_name(session, owner):
    root = categories.create_category(session, owner, "Root")
    for name in ("Zeta", "Alpha", "Mid"):
        categories.create_category(session, owner, name, parent_id=root.id)
    categories.create_category(session, owner, "Another Root")

    tree = categories.get_tree(session, owner)

    assert [n.name for n in tree] == ["Another Root", "Root"]
    assert [n.name for n in tree[1].children] == ["Alpha", "Mid", "Zeta"]


def test_account_creation_adds_transfer_category(session, owner):
    account = ledger.create_account(session, owner, "Checking")

    transfers_root = _by_name(session, owner, categories.TRANSFERS_ROOT_NAME)
    transfer_category = _by_name(session, owner, "Transfer to Checking")
    assert transfer_category.is_transfer_category
    assert transfer_category.parent_id == transfers_root.id
    assert transfer_category.linked_account_id == account.id


def test_transfers_root_created_lazily(session, owner):
    # Owner already has categories, so the defaults (and "Transfers") are not seeded
    categories.create_category(session, owner, "Custom")
    ledger.create_account(session, owner, "Checking")

    roots = session.query(Category).filter(
        Category.owner_id == owner,
        Category.name == categories.TRANSFERS_ROOT_NAME
    ).all()
    assert len(roots) == 1
    assert roots[0].parent_id is None


def test_delete_category_guarded_by_transactions(session, owner, accounts):
    a, _ = accounts
    groceries = categories.create_category(session, owner, "Groceries")
    t = ledger.create_transaction(session, owner, a.id, date(2025, 1, 5), Decimal("-12.50"), "Shop", groceries.id)

    with pytest.raises(ConflictError):
        categories.delete_category(session, owner, groceries.id)

    ledger.delete_transaction(session, owner, t.id)
    categories.delete_category(session, owner, groceries.id)
    with pytest.raises(NotFoundError):
        categories.get_category(session, owner, groceries.id)


def test_delete_category_with_children_is_rejected(session, owner):
    root = categories.create_category(session, owner, "Root")
    categories.create_category(session, owner, "Child", parent_id=root.id)
    with pytest.raises(ConflictError):
        categories.delete_category(session, owner, root.id)
