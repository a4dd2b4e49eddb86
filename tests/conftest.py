import os

os.environ.setdefault("BOOKKEEPER_DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bookkeeper.database import build_engine, create_tables, get_db
from bookkeeper.services import ledger

OWNER = "owner-1"
OTHER_OWNER = "owner-2"


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory SQLite engine with the schema created.
    StaticPool keeps a single connection so every session sees the same data.
    """
    engine = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def owner():
    return OWNER


@pytest.fixture
def accounts(session, owner):
    """Two accounts, A and B, with the default categories seeded"""
    a = ledger.create_account(session, owner, "Checking")
    b = ledger.create_account(session, owner, "Savings")
    return a, b


@pytest.fixture
def client(session_factory):
    from bookkeeper.dependencies import change_tracker, staging_store
    from bookkeeper.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    staging_store._batches.clear()
    change_tracker._versions.clear()
