"""
Acceptance fixtures for renewal scenarios.

Each scenario starts from an empty managed_items table in its own
PostgreSQL container, so the stored fleet is exactly what the test saved.
"""

from __future__ import annotations

from collections.abc import Iterator

import psycopg
import pytest
from testcontainers.postgres import PostgresContainer

from cert_renewer.adapters.repository import PsycopgManagedItemRepository
from tests.integration.conftest import DDL, TRUNCATE_ALL


def _psycopg_dsn(container: PostgresContainer) -> str:
    return container.get_connection_url().replace("postgresql+psycopg2", "postgresql")


@pytest.fixture(scope="session")
def fleet_database() -> Iterator[PostgresContainer]:
    """PostgreSQL holding the managed_items schema for the whole session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        with psycopg.connect(_psycopg_dsn(pg)) as conn:
            conn.execute(DDL)
            conn.commit()
        yield pg


@pytest.fixture()
def acceptance_dsn(fleet_database: PostgresContainer) -> str:
    """DSN of an emptied fleet table."""
    dsn = _psycopg_dsn(fleet_database)
    with psycopg.connect(dsn) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return dsn


@pytest.fixture()
def repository(acceptance_dsn: str) -> PsycopgManagedItemRepository:
    """Repository the scenarios use to seed items and read back renewals."""
    return PsycopgManagedItemRepository(acceptance_dsn)
