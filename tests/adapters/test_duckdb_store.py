"""Unit tests for the DuckDB resource store.

Tests cover:
- Schema initialization
- Create/read/update/delete round trips
- Search with the shared in-process semantics
- Configuration checks
- File-backed persistence across connections
"""

import pytest

from medrecords.adapters.storage import DuckDBResourceStore
from medrecords.domain.ports import NotFoundError, PersistenceError
from medrecords.infrastructure.config_manager import StoreConfig


@pytest.fixture
def store():
    store = DuckDBResourceStore(db_path=":memory:")
    yield store
    store.close()


class TestDuckDBResourceStore:
    """Test suite for DuckDBResourceStore."""

    def test_initialize_schema(self, store):
        """Test that schema initialization succeeds and is repeatable."""
        assert store.initialize_schema().is_success()
        assert store.initialize_schema().is_success()

    def test_create_and_read(self, store):
        """Test that a created resource reads back with id and meta."""
        saved = store.create({"resourceType": "Patient", "name": [{"family": "ბერიძე"}]})

        loaded = store.read("Patient", saved["id"])

        assert loaded == saved
        assert loaded["meta"]["versionId"] == "1"
        assert loaded["name"][0]["family"] == "ბერიძე"

    def test_update(self, store):
        """Test that update bumps the version and keeps meta.created."""
        saved = store.create({"resourceType": "Patient", "gender": "female"})
        saved["gender"] = "male"

        updated = store.update(saved)

        assert updated["meta"]["versionId"] == "2"
        assert updated["meta"]["created"] == saved["meta"]["created"]
        assert store.read("Patient", saved["id"])["gender"] == "male"

    def test_update_missing_raises(self, store):
        """Test that updating an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            store.update({"resourceType": "Patient", "id": "missing"})

    def test_delete(self, store):
        """Test that delete removes the resource."""
        saved = store.create({"resourceType": "Patient"})

        store.delete("Patient", saved["id"])

        with pytest.raises(NotFoundError):
            store.read("Patient", saved["id"])
        with pytest.raises(NotFoundError):
            store.delete("Patient", saved["id"])

    def test_search(self, store):
        """Test search filtering, type scoping and creation order."""
        first = store.create({"resourceType": "Patient", "gender": "female"})
        store.create({"resourceType": "Patient", "gender": "male"})
        third = store.create({"resourceType": "Patient", "gender": "female"})
        store.create({"resourceType": "Encounter", "status": "planned"})

        found = store.search("Patient", {"gender": "female"})

        assert [r["id"] for r in found] == [first["id"], third["id"]]
        assert len(store.search("Patient")) == 3

    def test_search_unsupported_parameter(self, store):
        """Test that unknown parameters raise PersistenceError."""
        with pytest.raises(PersistenceError):
            store.search("Patient", {"shoe-size": "42"})

    def test_operations_initialize_schema_lazily(self):
        """Test that the first operation creates the schema."""
        store = DuckDBResourceStore()
        try:
            assert store.search("Patient") == []
        finally:
            store.close()

    def test_file_backed_persistence(self, tmp_path):
        """Test that resources survive reopening a database file."""
        db_path = str(tmp_path / "records.duckdb")
        first = DuckDBResourceStore(db_path=db_path)
        saved = first.create({"resourceType": "Patient", "gender": "female"})
        first.close()

        second = DuckDBResourceStore(db_path=db_path)
        try:
            assert second.read("Patient", saved["id"])["gender"] == "female"
        finally:
            second.close()

    def test_missing_directory_raises(self, tmp_path):
        """Test that a database path in a missing directory is rejected."""
        with pytest.raises(PersistenceError, match="does not exist"):
            DuckDBResourceStore(db_path=str(tmp_path / "missing" / "records.duckdb"))

    def test_store_type_mismatch_raises(self):
        """Test that a non-DuckDB configuration is rejected."""
        with pytest.raises(PersistenceError):
            DuckDBResourceStore(store_config=StoreConfig(store_type="memory"))

    def test_store_config_path(self, tmp_path):
        """Test that the database path is taken from the configuration."""
        config = StoreConfig(store_type="duckdb", db_path=str(tmp_path / "cfg.duckdb"))
        store = DuckDBResourceStore(store_config=config)

        assert store.db_path == str(tmp_path / "cfg.duckdb")
