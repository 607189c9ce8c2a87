"""
Shared test fixtures for the PII tokenizer.

This module provides common fixtures used across all test modules:
- Environment setup (encryption service URL)
- Database session (in-memory SQLite) with all test models created
- Fake encryption gateway installed as the global gateway
- SQL statement capture for round-trip assertions

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import os

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

# ---------------------------------------------------------------------------
# 1. Environment setup -- must run before any application imports
# ---------------------------------------------------------------------------

os.environ.setdefault("ENCRYPTION_SERVICE_URL", "http://encryption.test")

# ---------------------------------------------------------------------------
# Application imports (after env vars are set)
# ---------------------------------------------------------------------------

from pii_tokenizer.lib import config as tokenizer_config  # noqa: E402
from pii_tokenizer.services.encryption_gateway import (  # noqa: E402
    reset_encryption_gateway,
    set_encryption_gateway,
)
from tests.fixtures.fakes import FakeEncryptionGateway  # noqa: E402
from tests.fixtures.models import Base  # noqa: E402

# ---------------------------------------------------------------------------
# 2. fake_gateway -- deterministic encryption service for every test
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fake_gateway():
    """
    Install a ``FakeEncryptionGateway`` as the global gateway.

    Tokens are ``token_for_<value>``; every call is recorded on the fake.
    The global gateway and settings are reset after the test.
    """
    gateway = FakeEncryptionGateway()
    set_encryption_gateway(gateway)

    yield gateway

    reset_encryption_gateway()
    tokenizer_config.reset()


# ---------------------------------------------------------------------------
# 3. db_session -- in-memory SQLite session for integration tests
# ---------------------------------------------------------------------------


@pytest.fixture()
def db_engine():
    """Provide an in-memory SQLite engine with all test tables created."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture()
def db_session(db_engine):
    """
    Provide a SQLAlchemy session backed by an in-memory SQLite database.

    A fresh database is created for every test that requests this fixture.
    The session is closed and the engine disposed after the test finishes.
    """
    TestingSession = sessionmaker(bind=db_engine)
    session = TestingSession()

    yield session

    session.close()


# ---------------------------------------------------------------------------
# 4. sql_statements -- every statement sent to the database
# ---------------------------------------------------------------------------


@pytest.fixture()
def sql_statements(db_engine):
    """
    Capture the SQL statements executed on the test engine.

    Example usage in a test::

        def test_single_insert(db_session, sql_statements):
            ...
            assert [s for s in sql_statements if s.startswith("UPDATE")] == []
    """
    statements: list[str] = []

    def _capture(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement.strip())

    event.listen(db_engine, "before_cursor_execute", _capture)

    yield statements

    event.remove(db_engine, "before_cursor_execute", _capture)
