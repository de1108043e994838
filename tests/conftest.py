"""Pytest configuration and fixtures."""

import os

# must be set before coopbank.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import coopbank.models  # noqa: F401  registers tables
from coopbank.initial_data import init_seed
from coopbank.models.account_model import Account
from coopbank.models.branches_model import Branch
from coopbank.models.client_model import Client
from coopbank.utils.database import Base, SessionLocal, engine, get_db
from main import app


@pytest.fixture
def db():
    """Fresh in-memory schema, seeded with the chart of accounts and settings."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    init_seed(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    """HTTP client whose requests share the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def branch(db) -> Branch:
    row = Branch(branch_name="Siège", vault_account_code="1.0.1.1")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def member(db, branch) -> Client:
    row = Client(full_name="Jean Ndayishimiye", phone="+25779000000", branch_id=branch.branch_id)
    db.add(row)
    db.commit()
    return row


def open_account(db, member: Client, account_no: str, balance="0", **extra) -> Account:
    row = Account(
        account_no=account_no,
        client_id=member.client_id,
        branch_id=member.branch_id,
        balance=Decimal(balance),
        **extra,
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def account(db, member) -> Account:
    """Sight account holding 100,000 BIF."""
    return open_account(db, member, "ACC-0001", "100000")


@pytest.fixture
def second_account(db, member) -> Account:
    return open_account(db, member, "ACC-0002", "0")
