"""
Pytest fixtures for the invoicing kernel test suite.

Provides:
- Structured-log capture
- Deterministic clocks
- In-memory SQLite engine with the reference time-dependent table loaded
- Resolvers over the reference table (SQL-backed and static)

Reference table (``REFERENCE_ROWS``)::

    id  valid_from  valid_until  replaced_by  value  default
    1   2008        2009         -            One    no
    2   2008        2009         3            Two    no
    3   2009        2010         4            Three  no
    4   2010        -            -            Four   no
    5   2008        2009         3            Five   no
    6   2009        2010         7            Six    yes
    7   2010        2011         -            Seven  yes
    8   2008        2011         9            Eight  no
    9   2011        -            -            Nine   yes
    10  2008        -            -            Ten    no

All boundaries are January 1st, 00:00 UTC.
"""

import json
import logging
from datetime import UTC, datetime
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from invoicing_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from invoicing_kernel.domain.clock import DeterministicClock
from invoicing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from invoicing_kernel.models import TimeDependentRecord
from invoicing_kernel.services.record_source import StaticRecordSource
from invoicing_kernel.services.temporal_chain import TemporalChainResolver


def utc(year: int, month: int = 1, day: int = 1, *rest: int) -> datetime:
    """Shorthand for an aware UTC datetime."""
    return datetime(year, month, day, *rest, tzinfo=UTC)


def _row(id, valid_from, valid_until, replaced_by_id, value, is_default):
    return {
        "id": id,
        "valid_from": utc(valid_from),
        "valid_until": utc(valid_until) if valid_until else None,
        "replaced_by_id": replaced_by_id,
        "value": value,
        "is_default": is_default,
    }


REFERENCE_ROWS: list[dict] = [
    _row(1, 2008, 2009, None, "One", False),
    _row(2, 2008, 2009, 3, "Two", False),
    _row(3, 2009, 2010, 4, "Three", False),
    _row(4, 2010, None, None, "Four", False),
    _row(5, 2008, 2009, 3, "Five", False),
    _row(6, 2009, 2010, 7, "Six", True),
    _row(7, 2010, 2011, None, "Seven", True),
    _row(8, 2008, 2011, 9, "Eight", False),
    _row(9, 2011, None, None, "Nine", True),
    _row(10, 2008, None, None, "Ten", False),
]


def ids(records) -> list:
    """Ids of a list of records (None entries kept as None)."""
    return [None if r is None else r.id for r in records]


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture invoicing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, resolver):
            resolver.reload()
            logs = captured_logs()
            assert any(r["message"] == "cache_reloaded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("invoicing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing (mid-2009)."""
    return DeterministicClock(utc(2009, 7, 1))


# =============================================================================
# Database fixtures (in-memory SQLite, one fresh database per test)
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory database with all kernel tables created."""
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session on the test database, closed at teardown."""
    sess = session_factory()
    yield sess
    sess.close()


@pytest.fixture
def reference_table(db_engine):
    """Load REFERENCE_ROWS into time_dependent_records."""
    with session_scope() as sess:
        sess.add_all(TimeDependentRecord(**row) for row in REFERENCE_ROWS)
    return REFERENCE_ROWS


# =============================================================================
# Resolver fixtures
# =============================================================================


@pytest.fixture
def resolver(reference_table, session_factory, deterministic_clock) -> TemporalChainResolver:
    """Resolver over the SQL reference table."""
    return TemporalChainResolver.for_model(
        TimeDependentRecord,
        session_factory,
        clock=deterministic_clock,
    )


@pytest.fixture
def static_source() -> StaticRecordSource:
    return StaticRecordSource(REFERENCE_ROWS, name="time_dependent_records")


@pytest.fixture
def static_resolver(static_source, deterministic_clock) -> TemporalChainResolver:
    """Resolver over the reference rows held in memory."""
    return TemporalChainResolver.from_source(static_source, clock=deterministic_clock)
