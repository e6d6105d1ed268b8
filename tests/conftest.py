"""Shared test fixtures for the subscriber reconciliation engine tests.

Uses a SQLite database so tests run without PostgreSQL.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from app: the Settings
# model reads .env eagerly via pydantic-settings, and the module-level
# ``engine`` in app.core.database would try to connect to PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from typing import Optional, Sequence
from xml.sax.saxutils import escape

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.core.database import Base, get_db
from app.main import app

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


# Enable foreign keys for SQLite
@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with overridden DB dependency."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ── Vendor report pages ──────────────────────────────────────────────

ENVELOPE_HEAD = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/">'
    "<s:Body>"
    '<GenerateReportResponse xmlns="urn:uuid:e657a351-ae8c-42c5-b083-ebe5dcda5c0b">'
    '<GenerateReportResult xmlns:i="http://www.w3.org/2001/XMLSchema-instance">'
    "<DataRows>"
)
ENVELOPE_TAIL = (
    "</DataRows></GenerateReportResult></GenerateReportResponse></s:Body></s:Envelope>"
)


def build_report_page(rows: Sequence[Sequence[Optional[str]]]) -> str:
    """Render rows of cell values (None = nil) as a GenerateReport response."""
    blocks = []
    for row in rows:
        cells = "".join(
            '<ReportResultData><Value i:nil="true"/></ReportResultData>'
            if value is None
            else f"<ReportResultData><Value>{escape(value)}</Value></ReportResultData>"
            for value in row
        )
        blocks.append(f"<ReportResults><Rows>{cells}</Rows></ReportResults>")
    return ENVELOPE_HEAD + "".join(blocks) + ENVELOPE_TAIL


def vendor_row(
    customer_ref: str,
    id_number: Optional[str],
    *,
    name: str = "Anna Berg",
    active: Optional[str] = "True",
    paid: Optional[str] = "3",
    unpaid: Optional[str] = "0",
    collections: Optional[str] = "0",
) -> list[Optional[str]]:
    """One vendor report row in column order."""
    return [
        "1",
        "1",
        customer_ref,
        id_number,
        name,
        f"C-{customer_ref}",
        "2023-01-01",
        "2023-01-02",
        None,
        active,
        paid,
        unpaid,
        collections,
        "Paid",
    ]


@pytest.fixture
def report_page():
    """Builder for GenerateReport response pages."""
    return build_report_page


@pytest.fixture
def make_vendor_row():
    """Builder for vendor report rows."""
    return vendor_row
