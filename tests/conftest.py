"""
conftest.py — Shared Test Fixtures for Vantage

Provides an in-memory SQLite database, a FastAPI TestClient with the
database and QuickBooks client overridden, and factory fixtures for
connected companies and ledger rows.

Business Rules:
- All tests run against an isolated in-memory DB (no prod data risk)
- QuickBooks HTTP traffic goes through httpx.MockTransport, never the network
- Each test function gets fresh tables

Called by: all test files via pytest autodiscovery
Depends on: app.models (Base), app.database (get_db), app.dependencies
"""

import base64
import os

os.environ["DATABASE_URL"] = "sqlite://"  # Must be set before importing app modules
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["QBO_ENCRYPTION_KEY"] = base64.b64encode(b"k" * 32).decode()
os.environ["QBO_CLIENT_ID"] = "test-client-id"
os.environ["QBO_CLIENT_SECRET"] = "test-client-secret"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"

from datetime import date, datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.connectors.quickbooks import QuickBooksClient
from app.models import Base, CompanySettings, Transaction
from app.services.token_vault import encrypt_token

# ── In-memory SQLite engine ──────────────────────────────────────────

TEST_DB_URL = "sqlite://"  # in-memory, fresh per session

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


# pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_conn, _):
    dbapi_conn.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


COMPANY = "acme-co"
REALM = "9130350000000000"


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def connected_company(db_session: Session) -> CompanySettings:
    """A company with valid, encrypted QBO tokens expiring in an hour."""
    now = datetime.now(timezone.utc)
    cs = CompanySettings(
        company_id=COMPANY,
        qbo_realm_id=REALM,
        qbo_access_token=encrypt_token("access-abc"),
        qbo_refresh_token=encrypt_token("refresh-xyz"),
        qbo_token_expires_at=now + timedelta(hours=1),
        qbo_connected_at=now,
    )
    db_session.add(cs)
    db_session.commit()
    db_session.refresh(cs)
    return cs


@pytest.fixture()
def sample_transactions(db_session: Session) -> list[Transaction]:
    """A handful of cash rows, some uncategorized."""
    rows = [
        Transaction(company_id=COMPANY, date=date(2025, 3, 1), description="AIRTABLE.COM subscription",
                    amount=-24.0, category=None, sync_source="qbo", qbo_transaction_id="PUR-1"),
        Transaction(company_id=COMPANY, date=date(2025, 3, 2), description="Air table annual plan",
                    amount=-240.0, category="overhead", project="Ops", sync_source="qbo",
                    qbo_transaction_id="PUR-2"),
        Transaction(company_id=COMPANY, date=date(2025, 3, 3), description="Client payment - Globex",
                    amount=5000.0, category="revenue", project="Globex Rollout", sync_source="qbo",
                    qbo_transaction_id="PMT-1"),
        Transaction(company_id=COMPANY, date=date(2025, 3, 4), description="Office rent March",
                    amount=-2000.0, category="unassigned"),
        Transaction(company_id="other-co", date=date(2025, 3, 5), description="Airtable seat",
                    amount=-12.0, category=None),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture()
def qbo_factory():
    """Build a QuickBooksClient whose HTTP goes to ``handler``."""
    def _make(handler, page_size: int = 1000) -> QuickBooksClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return QuickBooksClient(
            http,
            api_base="https://qbo.test/v3/company",
            token_url="https://oauth.test/tokens/bearer",
            client_id="test-client-id",
            client_secret="test-client-secret",
            redirect_uri="http://localhost:8000/api/qbo/callback",
            page_size=page_size,
        )

    return _make


@pytest.fixture()
def qbo_stub(qbo_factory) -> QuickBooksClient:
    """A client that answers every query with an empty page."""
    return qbo_factory(lambda request: httpx.Response(200, json={"QueryResponse": {}}))


@pytest.fixture()
def client(db_session: Session, qbo_stub: QuickBooksClient) -> TestClient:
    """FastAPI TestClient with get_db and the QBO client overridden.

    Lifespan is not entered, so no real engine or HTTP pool is created.
    """
    from app.database import get_db
    from app.dependencies import get_qbo_client
    from app.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_qbo_client] = lambda: qbo_stub

    c = TestClient(app)
    yield c

    app.dependency_overrides.clear()
