"""Persistent record of every resource this driver has provisioned.

One row per resource ID in `resource_metadata`. Rows are never physically
removed: deleting a resource sets `deleted_at`, and lookups only see rows where
it is NULL. Secrets are never written here.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

import psycopg2
import psycopg2.pool
from psycopg2.extras import Json, RealDictCursor
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from driver.services.config import DatabaseConfig
from driver.services.errors import MetadataStoreError, ResourceNotFoundError


logger = logging.getLogger(__name__)

CONNECT_MAX_ATTEMPTS = 6

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS resource_metadata (
    id          TEXT NOT NULL,
    type        TEXT NOT NULL,
    created_at  TIMESTAMP NOT NULL,
    updated_at  TIMESTAMP NOT NULL,
    deleted_at  TIMESTAMP,
    params      JSONB NOT NULL,
    data        JSONB NOT NULL,
    PRIMARY KEY (id)
)
"""

_SELECT_ACTIVE = """
SELECT id, type, created_at, updated_at, deleted_at, params, data
FROM resource_metadata
WHERE id = %(id)s AND deleted_at IS NULL
"""

# A soft-deleted row is overwritten as a brand new resource.
_UPSERT = """
INSERT INTO resource_metadata (id, type, created_at, updated_at, deleted_at, params, data)
VALUES (%(id)s, %(type)s, %(created_at)s, %(updated_at)s, NULL, %(params)s, %(data)s)
ON CONFLICT (id) DO UPDATE SET
    type = EXCLUDED.type,
    created_at = EXCLUDED.created_at,
    updated_at = EXCLUDED.updated_at,
    deleted_at = NULL,
    params = EXCLUDED.params,
    data = EXCLUDED.data
"""

_SOFT_DELETE = """
UPDATE resource_metadata
SET deleted_at = %(deleted_at)s, updated_at = %(deleted_at)s
WHERE id = %(id)s AND deleted_at IS NULL
"""


@dataclass
class ResourceMetadata:
    id: str
    type: str
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    params: dict[str, Any] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_row(row: dict[str, Any]) -> "ResourceMetadata":
        return ResourceMetadata(
            id=row["id"],
            type=row["type"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row.get("deleted_at"),
            params=row.get("params") or {},
            data=row.get("data") or {},
        )


class MetadataStore(Protocol):
    def select(self, resource_id: str) -> Optional[ResourceMetadata]:
        ...

    def insert_or_update(self, metadata: ResourceMetadata) -> None:
        ...

    def soft_delete(self, resource_id: str, deleted_at: datetime) -> None:
        ...


class ResourceMetadataStore:
    """PostgreSQL implementation of `MetadataStore`.

    Each call checks out a pooled connection and runs in its own transaction.
    Methods are blocking; call them from a worker thread inside the event loop.
    """

    def __init__(self, pool: psycopg2.pool.ThreadedConnectionPool) -> None:
        self._pool = pool

    @contextmanager
    def _connection(self) -> Generator[Any, None, None]:
        conn = self._pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def initialize(self) -> None:
        logger.info("Initializing database.")
        try:
            with self._connection() as conn, conn.cursor() as cur:
                cur.execute(_CREATE_TABLE)
        except psycopg2.Error as exc:
            logger.exception("Unable to create resource_metadata table.")
            raise MetadataStoreError("create resource_metadata table") from exc

    def select(self, resource_id: str) -> Optional[ResourceMetadata]:
        try:
            with self._connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(_SELECT_ACTIVE, {"id": resource_id})
                row = cur.fetchone()
        except psycopg2.Error as exc:
            logger.exception("Database error fetching resource_metadata with id %s", resource_id)
            raise MetadataStoreError(f"select resource_metadata with id {resource_id}") from exc

        return ResourceMetadata.from_row(dict(row)) if row else None

    def insert_or_update(self, metadata: ResourceMetadata) -> None:
        try:
            with self._connection() as conn, conn.cursor() as cur:
                cur.execute(
                    _UPSERT,
                    {
                        "id": metadata.id,
                        "type": metadata.type,
                        "created_at": metadata.created_at,
                        "updated_at": metadata.updated_at,
                        "params": Json(metadata.params),
                        "data": Json(metadata.data),
                    },
                )
        except psycopg2.Error as exc:
            logger.exception("Database error inserting resource_metadata with id %s", metadata.id)
            raise MetadataStoreError(f"insert resource_metadata with id {metadata.id}") from exc

    def soft_delete(self, resource_id: str, deleted_at: datetime) -> None:
        try:
            with self._connection() as conn, conn.cursor() as cur:
                cur.execute(_SOFT_DELETE, {"id": resource_id, "deleted_at": deleted_at})
                rows = cur.rowcount
        except psycopg2.Error as exc:
            logger.exception("Database error deleting resource_metadata with id %s", resource_id)
            raise MetadataStoreError(f"delete resource_metadata with id {resource_id}") from exc

        if rows == 0:
            raise ResourceNotFoundError(resource_id)

    def close(self) -> None:
        self._pool.closeall()


@retry(
    retry=retry_if_exception_type(psycopg2.OperationalError),
    stop=stop_after_attempt(CONNECT_MAX_ATTEMPTS),
    wait=wait_exponential(multiplier=2, max=32),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def _open_pool(config: DatabaseConfig) -> psycopg2.pool.ThreadedConnectionPool:
    pool = psycopg2.pool.ThreadedConnectionPool(minconn=1, maxconn=10, **config.connect_kwargs())
    conn = pool.getconn()
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        conn.commit()
    except Exception:
        pool.putconn(conn, close=True)
        pool.closeall()
        raise
    pool.putconn(conn)
    return pool


def connect_with_backoff(config: DatabaseConfig) -> ResourceMetadataStore:
    """Connect to PostgreSQL, backing off while the database is not reachable yet.

    The database often becomes reachable only some time after the driver starts
    (e.g. a sidecar proxy still establishing its connection).
    """

    logger.info("Connecting to database at %s:%s/%s", config.host, config.port, config.name)
    try:
        pool = _open_pool(config)
    except psycopg2.Error as exc:
        logger.exception("Unable to connect to database.")
        raise MetadataStoreError("Unable to connect to database") from exc

    store = ResourceMetadataStore(pool)
    store.initialize()
    return store
