"""
Integration test fixtures — PostgreSQL testcontainer and schema setup.

Provides a real PostgreSQL instance for the test session via testcontainers
with the managed_items table matching the production schema. Each test gets
a clean table via truncation.
"""

from __future__ import annotations

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

DDL = """
CREATE TABLE managed_items (
    id                     TEXT PRIMARY KEY,
    name                   TEXT NOT NULL,
    item_type              TEXT NOT NULL,
    include_in_auto_renew  BOOLEAN NOT NULL DEFAULT TRUE,
    request_config         JSONB NOT NULL,
    date_issued            TIMESTAMPTZ,
    date_renewed           TIMESTAMPTZ,
    date_start             TIMESTAMPTZ,
    date_expiry            TIMESTAMPTZ,
    certificate_path       TEXT,
    group_id               TEXT,
    comments               TEXT,
    created_at             TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);
"""

TRUNCATE_ALL = "TRUNCATE managed_items;"


@pytest.fixture(scope="session")
def postgres_container() -> PostgresContainer:
    """Start a PostgreSQL container for the entire test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        dsn = pg.get_connection_url().replace("postgresql+psycopg2", "postgresql")
        with psycopg.connect(dsn) as conn:
            conn.execute(DDL)
            conn.commit()
        yield pg


@pytest.fixture()
def dsn(postgres_container: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate the table before each test."""
    connection_url = postgres_container.get_connection_url().replace(
        "postgresql+psycopg2", "postgresql"
    )
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return connection_url
