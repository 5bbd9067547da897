"""Application wiring for medrecords.

Builds the configured resource store and runs the operations exposed by the
command line: service catalog import and patient duplicate lookup.

Architecture:
    - Follows Hexagonal Architecture principles
    - The row reader is selected automatically based on source format
    - The store is selected via the configuration manager
    - Domain services receive the store through their constructors
"""

import logging
from typing import Callable, Optional

from medrecords.adapters.ingesters import get_row_reader
from medrecords.adapters.storage import DuckDBResourceStore, FHIRResourceStore, InMemoryResourceStore
from medrecords.domain.guardrails import CancellationToken, PacingConfig, RequestPacer
from medrecords.domain.ports import PersistenceError, ResourceStorePort, Result
from medrecords.domain.services.bulk_import import (
    BulkImportPipeline,
    ImportSummary,
    LEGACY_COLUMNS,
    ServiceImportColumns,
)
from medrecords.domain.services.catalog_service import CatalogService
from medrecords.domain.services.duplicate_detection import DuplicateCheckResult, DuplicatePatientDetector
from medrecords.infrastructure.audit import OverrideAuditLogger
from medrecords.infrastructure.config_manager import StoreConfig
from medrecords.infrastructure.settings import settings

logger = logging.getLogger(__name__)


def create_store(store_config: Optional[StoreConfig] = None, dry_run: bool = False) -> ResourceStorePort:
    """Create the resource store based on configuration.

    Parameters:
        store_config: Store configuration (defaults to the environment)
        dry_run: Use a throwaway in-memory store regardless of configuration

    Raises:
        ConfigurationError: If the configuration is invalid or FHIR credentials are missing
        PersistenceError: If the DuckDB schema cannot be created
    """
    if dry_run:
        logger.info("Dry run: using an in-memory store")
        return InMemoryResourceStore()

    store_config = store_config or settings.store_config

    if store_config.store_type == "memory":
        logger.info("Initializing in-memory store")
        return InMemoryResourceStore()
    if store_config.store_type == "duckdb":
        logger.info(f"Initializing DuckDB store with path: {store_config.db_path or ':memory:'}")
        store = DuckDBResourceStore(store_config=store_config)
        result = store.initialize_schema()
        if not result.is_success():
            raise PersistenceError(result.error, operation="initialize_schema")
        return store

    logger.info(f"Initializing FHIR store at {store_config.fhir_base_url}")
    return FHIRResourceStore(store_config)


def run_import(
    source: str,
    store: ResourceStorePort,
    columns: ServiceImportColumns = LEGACY_COLUMNS,
    batch_size: Optional[int] = None,
    pause_seconds: Optional[float] = None,
    first_row_number: Optional[int] = None,
    cancellation: Optional[CancellationToken] = None,
    on_row: Optional[Callable[[int, Result], None]] = None,
) -> ImportSummary:
    """Import service catalog entries from a spreadsheet file.

    Parameters:
        source: CSV, Excel or JSON file
        store: Target resource store
        columns: Source column names
        batch_size: Rows between pauses (overrides settings)
        pause_seconds: Pause length (overrides settings)
        first_row_number: Row number of the first data row (overrides settings)
        cancellation: Token checked before each row
        on_row: Per-row progress callback

    Raises:
        SourceNotFoundError: If the file does not exist
        UnsupportedSourceError: If the file format is not supported
        PermissionDeniedError: If the store refuses a write
        ConfigurationError: If the store is misconfigured
    """
    reader = get_row_reader(source)
    rows = list(reader.read_rows(source))

    pacer = RequestPacer(PacingConfig(
        batch_size=batch_size or settings.import_batch_size,
        pause_seconds=settings.import_pause_seconds if pause_seconds is None else pause_seconds,
    ))
    pipeline = BulkImportPipeline(
        CatalogService(store),
        columns=columns,
        pacer=pacer,
        cancellation=cancellation,
        on_row=on_row,
    )
    return pipeline.run(rows, first_row_number=first_row_number or settings.import_first_row)


def check_duplicate(personal_id: str, store: ResourceStorePort) -> DuplicateCheckResult:
    """Look up existing patients with a personal id.

    Raises:
        ValidationError: If the personal id is malformed
    """
    detector = DuplicatePatientDetector(store, audit_logger=OverrideAuditLogger(settings.audit_log_path))
    return detector.check(personal_id)
