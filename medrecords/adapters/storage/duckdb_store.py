"""DuckDB Resource Store.

This adapter implements the ResourceStorePort contract by keeping resources as
JSON documents in a single DuckDB table, one row per (resource type, id).

Security Impact:
    - Only complete resources (type and id) are written
    - Connection settings come from the configuration manager
    - Store failures are raised as PersistenceError with the failing operation

Architecture:
    - Implements ResourceStorePort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports
    - Search parameters are evaluated in-process over the loaded documents,
      with the same semantics as the in-memory store
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Optional

import duckdb

from medrecords.adapters.storage.memory_store import require_type_and_id, stamp_meta
from medrecords.adapters.storage.search_matching import apply_search
from medrecords.domain.ports import (
    NotFoundError,
    PersistenceError,
    Resource,
    ResourceStorePort,
    Result,
    SearchParams,
)
from medrecords.infrastructure.config_manager import StoreConfig

logger = logging.getLogger(__name__)


class DuckDBResourceStore(ResourceStorePort):
    """DuckDB implementation of ResourceStorePort.

    Parameters:
        store_config: StoreConfig from the configuration manager (preferred)
        db_path: Path to DuckDB database file (or ':memory:' for in-memory)

    Example Usage:
        ```python
        store = DuckDBResourceStore(db_path="data/records.duckdb")
        result = store.initialize_schema()
        if result.is_success():
            saved = store.create({"resourceType": "Patient", "gender": "female"})
        ```
    """

    def __init__(self, store_config: Optional[StoreConfig] = None, db_path: Optional[str] = None):
        if store_config:
            if store_config.store_type != "duckdb":
                raise PersistenceError(
                    f"Store type '{store_config.store_type}' does not match DuckDB store",
                    operation="__init__"
                )
            self.db_path = store_config.db_path or ":memory:"
        else:
            self.db_path = db_path or ":memory:"

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialized = False

        if self.db_path != ":memory:":
            db_path_obj = Path(self.db_path)
            if not db_path_obj.parent.exists():
                raise PersistenceError(
                    f"Database directory does not exist: {db_path_obj.parent}",
                    operation="__init__"
                )

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection (created lazily, then reused)."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except duckdb.Error as e:
                raise PersistenceError(
                    f"Failed to connect to DuckDB: {str(e)}",
                    operation="connect",
                    details={"db_path": self.db_path}
                ) from e
        return self._connection

    def initialize_schema(self) -> Result[None]:
        """Create the resources table and its indexes.

        Returns:
            Result[None]: Success or failure result
        """
        try:
            conn = self._get_connection()
            conn.execute("""
                CREATE TABLE IF NOT EXISTS resources (
                    resource_type VARCHAR NOT NULL,
                    id VARCHAR NOT NULL,
                    version_id INTEGER NOT NULL,
                    created_at VARCHAR NOT NULL,
                    last_updated VARCHAR NOT NULL,
                    content VARCHAR NOT NULL,
                    PRIMARY KEY (resource_type, id)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_resources_type ON resources(resource_type)")

            self._initialized = True
            logger.info("Database schema initialized successfully")
            return Result.success_result(None)

        except (duckdb.Error, PersistenceError) as e:
            error_msg = f"Failed to initialize schema: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                PersistenceError(error_msg, operation="initialize_schema"),
                error_type="PersistenceError"
            )

    def _ensure_schema(self, operation: str) -> duckdb.DuckDBPyConnection:
        if not self._initialized:
            result = self.initialize_schema()
            if not result.is_success():
                raise PersistenceError(result.error, operation=operation)
        return self._get_connection()

    def _fetch(self, resource_type: str, resource_id: str, operation: str) -> Optional[Resource]:
        conn = self._ensure_schema(operation)
        try:
            row = conn.execute(
                "SELECT content FROM resources WHERE resource_type = ? AND id = ?",
                [resource_type, resource_id]
            ).fetchone()
        except duckdb.Error as e:
            raise PersistenceError(
                f"Failed to read {resource_type}/{resource_id}: {str(e)}",
                operation=operation,
                details={"resource_type": resource_type}
            ) from e
        return json.loads(row[0]) if row else None

    def create(self, resource: Resource) -> Resource:
        resource_type, _ = require_type_and_id(resource, "create")
        stored = json.loads(json.dumps(resource))
        stored["id"] = str(uuid.uuid4())
        stamp_meta(stored)

        conn = self._ensure_schema("create")
        try:
            conn.execute(
                "INSERT INTO resources VALUES (?, ?, ?, ?, ?, ?)",
                [
                    resource_type,
                    stored["id"],
                    int(stored["meta"]["versionId"]),
                    stored["meta"]["created"],
                    stored["meta"]["lastUpdated"],
                    json.dumps(stored, ensure_ascii=False),
                ]
            )
        except duckdb.Error as e:
            raise PersistenceError(
                f"Failed to create {resource_type}: {str(e)}",
                operation="create",
                details={"resource_type": resource_type}
            ) from e

        logger.debug(f"Created {resource_type}/{stored['id']}")
        return stored

    def read(self, resource_type: str, resource_id: str) -> Resource:
        stored = self._fetch(resource_type, resource_id, "read")
        if stored is None:
            raise NotFoundError(f"{resource_type}/{resource_id} not found", resource_type, resource_id)
        return stored

    def update(self, resource: Resource) -> Resource:
        resource_type, resource_id = require_type_and_id(resource, "update")
        if not resource_id:
            raise NotFoundError(f"Cannot update a {resource_type} without an id", resource_type)

        previous = self._fetch(resource_type, resource_id, "update")
        if previous is None:
            raise NotFoundError(f"{resource_type}/{resource_id} not found", resource_type, resource_id)
        stored = stamp_meta(json.loads(json.dumps(resource)), previous)

        conn = self._get_connection()
        try:
            conn.execute(
                """
                UPDATE resources
                SET version_id = ?, last_updated = ?, content = ?
                WHERE resource_type = ? AND id = ?
                """,
                [
                    int(stored["meta"]["versionId"]),
                    stored["meta"]["lastUpdated"],
                    json.dumps(stored, ensure_ascii=False),
                    resource_type,
                    resource_id,
                ]
            )
        except duckdb.Error as e:
            raise PersistenceError(
                f"Failed to update {resource_type}/{resource_id}: {str(e)}",
                operation="update",
                details={"resource_type": resource_type}
            ) from e
        return stored

    def delete(self, resource_type: str, resource_id: str) -> None:
        if self._fetch(resource_type, resource_id, "delete") is None:
            raise NotFoundError(f"{resource_type}/{resource_id} not found", resource_type, resource_id)
        try:
            self._get_connection().execute(
                "DELETE FROM resources WHERE resource_type = ? AND id = ?",
                [resource_type, resource_id]
            )
        except duckdb.Error as e:
            raise PersistenceError(
                f"Failed to delete {resource_type}/{resource_id}: {str(e)}",
                operation="delete",
                details={"resource_type": resource_type}
            ) from e
        logger.debug(f"Deleted {resource_type}/{resource_id}")

    def search(self, resource_type: str, params: Optional[SearchParams] = None) -> list[Resource]:
        conn = self._ensure_schema("search")
        try:
            rows = conn.execute(
                "SELECT content FROM resources WHERE resource_type = ? ORDER BY created_at, rowid",
                [resource_type]
            ).fetchall()
        except duckdb.Error as e:
            raise PersistenceError(
                f"Failed to search {resource_type}: {str(e)}",
                operation="search",
                details={"resource_type": resource_type}
            ) from e
        return apply_search(resource_type, (json.loads(row[0]) for row in rows), params)

    def close(self) -> None:
        """Close storage connection and release resources."""
        if self._connection is not None:
            try:
                self._connection.close()
                logger.info("Closed DuckDB connection")
            except duckdb.Error as e:
                logger.warning(f"Error closing connection: {str(e)}")
            finally:
                self._connection = None
                self._initialized = False
