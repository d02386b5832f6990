"""
PostgreSQL repository adapter — managed certificate item persistence.

Adapter layer — implements the ManagedItemRepository port using psycopg (v3)
for sync PostgreSQL access with parameterized queries.

Table mapping:
  ManagedCertificateItem → managed_items (one row per item)
  RequestConfig          → managed_items.request_config (JSONB)

save() is an upsert keyed on the item id, so the row's created_at (and with
it the fleet iteration order) survives every update.

Every psycopg error is re-raised as PersistenceError at this adapter
boundary. No ORM — raw parameterized SQL.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, fields
from typing import Any, TypeVar

import psycopg
import structlog
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from cert_renewer.domain.errors import PersistenceError
from cert_renewer.domain.models import ManagedCertificateItem, ManagedItemType, RequestConfig

log = structlog.get_logger()

T = TypeVar("T")

_COLUMNS = """
    id, name, item_type, include_in_auto_renew, request_config,
    date_issued, date_renewed, date_start, date_expiry,
    certificate_path, group_id, comments
"""

_SELECT_ALL = f"SELECT {_COLUMNS} FROM managed_items ORDER BY created_at, id"

_SELECT_ONE = f"SELECT {_COLUMNS} FROM managed_items WHERE id = %s"

_UPSERT = f"""
INSERT INTO managed_items ({_COLUMNS})
VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
ON CONFLICT (id) DO UPDATE SET
    name = EXCLUDED.name,
    item_type = EXCLUDED.item_type,
    include_in_auto_renew = EXCLUDED.include_in_auto_renew,
    request_config = EXCLUDED.request_config,
    date_issued = EXCLUDED.date_issued,
    date_renewed = EXCLUDED.date_renewed,
    date_start = EXCLUDED.date_start,
    date_expiry = EXCLUDED.date_expiry,
    certificate_path = EXCLUDED.certificate_path,
    group_id = EXCLUDED.group_id,
    comments = EXCLUDED.comments
"""

_CONFIG_FIELDS = frozenset(f.name for f in fields(RequestConfig))


class PsycopgManagedItemRepository:
    """
    Load and store managed items in PostgreSQL.

    Implements the ManagedItemRepository port. A connection is opened per
    call; each save commits on its own.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def load_all(self) -> list[ManagedCertificateItem]:
        """Return every managed item, oldest first."""
        return self._guard(self._load_all, "Failed to load managed items")

    def get(self, item_id: str) -> ManagedCertificateItem | None:
        return self._guard(lambda: self._get(item_id), f"Failed to load managed item {item_id}")

    def save(self, item: ManagedCertificateItem) -> None:
        self._guard(lambda: self._save(item), f"Failed to save managed item {item.id}")

    def _guard(self, operation: Callable[[], T], message: str) -> T:
        try:
            return operation()
        except psycopg.Error as e:
            log.error("repository.error", message=message, error=str(e))
            raise PersistenceError(f"{message}: {e}") from e

    def _load_all(self) -> list[ManagedCertificateItem]:
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn:
            rows = conn.execute(_SELECT_ALL).fetchall()
        items = [_item_from_row(row) for row in rows]
        log.info("repository.loaded", items=len(items))
        return items

    def _get(self, item_id: str) -> ManagedCertificateItem | None:
        with psycopg.connect(self._dsn, row_factory=dict_row) as conn:
            row = conn.execute(_SELECT_ONE, (item_id,)).fetchone()
        return _item_from_row(row) if row is not None else None

    def _save(self, item: ManagedCertificateItem) -> None:
        with psycopg.connect(self._dsn) as conn, conn.transaction():
            conn.execute(
                _UPSERT,
                (
                    item.id,
                    item.name,
                    str(item.item_type),
                    item.include_in_auto_renew,
                    Jsonb(_config_to_json(item.request_config)),
                    item.date_issued,
                    item.date_renewed,
                    item.date_start,
                    item.date_expiry,
                    item.certificate_path,
                    item.group_id,
                    item.comments,
                ),
            )
        log.info("repository.saved", item_id=item.id)


def _config_to_json(config: RequestConfig) -> dict[str, Any]:
    data = asdict(config)
    data["subject_alternative_names"] = list(config.subject_alternative_names)
    return data


def _config_from_json(data: dict[str, Any]) -> RequestConfig:
    """Build a RequestConfig, ignoring keys written by other versions."""
    known = {key: value for key, value in data.items() if key in _CONFIG_FIELDS}
    known["subject_alternative_names"] = tuple(known.get("subject_alternative_names") or ())
    return RequestConfig(**known)


def _item_from_row(row: dict[str, Any]) -> ManagedCertificateItem:
    return ManagedCertificateItem(
        id=row["id"],
        name=row["name"],
        request_config=_config_from_json(row["request_config"]),
        item_type=ManagedItemType(row["item_type"]),
        include_in_auto_renew=row["include_in_auto_renew"],
        date_issued=row["date_issued"],
        date_renewed=row["date_renewed"],
        date_start=row["date_start"],
        date_expiry=row["date_expiry"],
        certificate_path=row["certificate_path"],
        group_id=row["group_id"],
        comments=row["comments"],
    )
