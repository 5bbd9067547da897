"""Storage adapters for medrecords.

This module contains storage adapters that implement the ResourceStorePort
interface for persisting generic resources.
"""

from medrecords.adapters.storage.duckdb_store import DuckDBResourceStore
from medrecords.adapters.storage.fhir_store import FHIRResourceStore
from medrecords.adapters.storage.memory_store import InMemoryResourceStore

__all__ = ["DuckDBResourceStore", "FHIRResourceStore", "InMemoryResourceStore"]
