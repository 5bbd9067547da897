"""Bulk Import Pipeline.

Imports service catalog entries from spreadsheet rows, one row at a time:
validate, map, persist. A row that fails validation is skipped, a row the store
rejects is counted as failed, and in both cases the batch continues. Only fatal
problems (authorization, configuration) stop the run.

Security Impact:
    - Every row is validated before anything is written
    - Authorization failures are never downgraded to row failures
    - Error reports carry row numbers and codes, never whole rows

Architecture:
    - Single sequential worker: each row is fully processed before the next,
      so a reported row number always matches its source row
    - Column binding is by exact, case-sensitive header name; a missing column
      reads as a missing value
    - Fixed-size pacing and a cooperative cancellation check per row
"""

import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from medrecords.domain.guardrails import CancellationToken, RequestPacer
from medrecords.domain.models import LabIntegration, ServiceCatalogEntry
from medrecords.domain.ports import (
    ConfigurationError,
    PermissionDeniedError,
    Result,
    ValidationError,
)
from medrecords.domain.services.catalog_service import CatalogService
from medrecords.domain.utils import clean_text, is_blank, to_money

logger = logging.getLogger(__name__)

MISSING_CODE = "N/A"


class ServiceImportColumns(BaseModel):
    """Source column names for each imported field.

    Defaults are the headers of the legacy nomenclature spreadsheet.
    """

    model_config = ConfigDict(frozen=True)

    code: str = "კოდი"
    title: str = "დასახელება"
    description: str = "სამედიცინო დასახელება"
    group: str = "ჯგუფი"
    service_type: str = "ტიპი"
    price: str = "ფასი"
    total_amount: str = "ჯამი"
    calculation_method: str = "კალკულაციის დათვლა"
    created_date: str = "შექმნის თარიღი"
    tags: str = "ტეგები"
    lab_integration: str = "LIS ინტეგრაცია"
    lab_provider: str = "LIS პროვაიდერი"
    external_order_code: str = "გარე შეკვეთის კოდი"
    classification_code: str = "GIS კოდი"


LEGACY_COLUMNS = ServiceImportColumns()

ENGLISH_COLUMNS = ServiceImportColumns(
    code="code",
    title="title",
    description="description",
    group="group",
    service_type="type",
    price="price",
    total_amount="total",
    calculation_method="calculation",
    created_date="created_date",
    tags="tags",
    lab_integration="lis_integration",
    lab_provider="lis_provider",
    external_order_code="external_order_code",
    classification_code="gis_code",
)


class RowError(BaseModel):
    """One skipped or failed row."""

    model_config = ConfigDict(frozen=True)

    row: int
    code: str
    error: str


class ImportSummary(BaseModel):
    """Final report of an import run.

    Attributes:
        total: Number of rows in the source
        success: Rows persisted
        failed: Rows the store rejected
        skipped: Rows that failed validation
        errors: Skipped and failed rows in source order
        cancelled: True if the run was cancelled before the last row
    """

    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[RowError] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return self.success + self.failed + self.skipped

    @property
    def is_failure(self) -> bool:
        """Skipped rows alone never make a run fail."""
        return self.failed > 0


def _cell(row: Mapping[str, Any], column: str) -> Optional[str]:
    return clean_text(row.get(column))


def _require(row: Mapping[str, Any], column: str, label: str) -> str:
    value = _cell(row, column)
    if value is None:
        raise ValidationError(f"Missing {label} ({column})", source=column)
    return value


def _flag(value: Any) -> bool:
    text = clean_text(value)
    if text is None:
        return False
    try:
        return to_money(text) == 1
    except ValueError:
        return text.lower() in ("true", "yes")


def parse_service_row(row: Mapping[str, Any], columns: ServiceImportColumns = LEGACY_COLUMNS) -> ServiceCatalogEntry:
    """Validate one source row and build a catalog entry from it.

    Parameters:
        row: Cells keyed by header name
        columns: Header names to read

    Returns:
        ServiceCatalogEntry (not yet persisted)

    Raises:
        ValidationError: With the reason the row must be skipped
    """
    code = _require(row, columns.code, "service code")
    title = _require(row, columns.title, "service name")
    group = _require(row, columns.group, "service group")
    service_type = _require(row, columns.service_type, "service type")

    price = None
    if not is_blank(row.get(columns.price)):
        try:
            price = to_money(row.get(columns.price))
        except ValueError as e:
            raise ValidationError(f"Invalid price ({columns.price}) - must be a number", source=columns.price) from e
        if price < 0:
            raise ValidationError(f"Invalid price ({columns.price}) - must not be negative", source=columns.price)

    total_amount = None
    if not is_blank(row.get(columns.total_amount)):
        try:
            total_amount = to_money(row.get(columns.total_amount))
        except ValueError:
            logger.debug(f"Ignoring non-numeric total amount for service {code}")
        if total_amount is not None and total_amount <= 0:
            total_amount = None

    lab_enabled = _flag(row.get(columns.lab_integration))
    lab_provider = _cell(row, columns.lab_provider) if lab_enabled else None

    tags_cell = _cell(row, columns.tags)
    tags = tuple(tag.strip() for tag in tags_cell.split(",")) if tags_cell else ()

    try:
        return ServiceCatalogEntry(
            code=code,
            title=title,
            description=_cell(row, columns.description),
            group=group,
            service_type=service_type,
            base_price=price,
            total_amount=total_amount,
            calculation_method=_cell(row, columns.calculation_method),
            created_date=_cell(row, columns.created_date),
            tags=tags,
            lab_integration=LabIntegration(enabled=lab_enabled, provider=lab_provider),
            external_order_code=_cell(row, columns.external_order_code),
            classification_code=_cell(row, columns.classification_code),
        )
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ValidationError(f"Invalid {field or 'row'}: {first.get('msg')}", source=field) from e


class BulkImportPipeline:
    """Row-by-row import of service catalog entries with per-row isolation.

    Parameters:
        catalog: Catalog service used to persist entries
        columns: Source column names
        pacer: Pacing guardrail (pause after every N rows)
        cancellation: Cooperative cancellation token
        on_row: Callback invoked with (row_number, result) after each row

    Example Usage:
        ```python
        pipeline = BulkImportPipeline(CatalogService(store))
        summary = pipeline.run(reader.read_rows("services.xlsx"))
        if summary.is_failure:
            ...
        ```
    """

    def __init__(
        self,
        catalog: CatalogService,
        columns: Optional[ServiceImportColumns] = None,
        pacer: Optional[RequestPacer] = None,
        cancellation: Optional[CancellationToken] = None,
        on_row: Optional[Callable[[int, Result], None]] = None,
    ):
        self.catalog = catalog
        self.columns = columns or LEGACY_COLUMNS
        self.pacer = pacer or RequestPacer()
        self.cancellation = cancellation or CancellationToken()
        self.on_row = on_row

    def process_row(self, row: Mapping[str, Any], row_number: int) -> Result[ServiceCatalogEntry]:
        """Validate, map and persist one row.

        Returns:
            Success with the stored entry, or a failure whose ``error_type`` is
            ``ValidationError`` for skipped rows and anything else for failed rows

        Raises:
            PermissionDeniedError: The store refused the write (fatal)
            ConfigurationError: The store is misconfigured (fatal)
        """
        code = _cell(row, self.columns.code) or MISSING_CODE
        details = {"row": row_number, "code": code}

        try:
            entry = parse_service_row(row, self.columns)
            saved = self.catalog.create_entry(entry)
        except ValidationError as e:
            logger.info(f"Row {row_number} skipped ({code}): {e}")
            return Result.failure_result(e, error_type="ValidationError", error_details=details)
        except (PermissionDeniedError, ConfigurationError):
            raise
        except Exception as e:
            logger.warning(f"Row {row_number} failed ({code}): {type(e).__name__}: {e}")
            return Result.failure_result(e, error_details=details)

        return Result.success_result(saved)

    def run(self, rows: Iterable[Mapping[str, Any]], first_row_number: int = 2) -> ImportSummary:
        """Import every row and return the summary.

        Parameters:
            rows: Source rows in order
            first_row_number: Source row number of the first row (2 when the
                sheet's first row holds the headers)

        Returns:
            ImportSummary; ``is_failure`` is True only when a row failed to persist
        """
        rows = list(rows)
        summary = ImportSummary(total=len(rows))
        logger.info(f"Starting import of {summary.total} rows")

        for index, row in enumerate(rows):
            if self.cancellation.is_cancelled:
                summary.cancelled = True
                logger.warning(f"Import cancelled after {summary.processed} of {summary.total} rows")
                break

            row_number = first_row_number + index
            result = self.process_row(row, row_number)

            if result.is_success():
                summary.success += 1
            else:
                if result.error_type == "ValidationError":
                    summary.skipped += 1
                else:
                    summary.failed += 1
                summary.errors.append(RowError(
                    row=row_number,
                    code=result.error_details["code"],
                    error=result.error,
                ))

            if self.on_row is not None:
                self.on_row(row_number, result)
            self.pacer.tick(remaining=len(rows) - index - 1)

        logger.info(
            f"Import finished: {summary.success} succeeded, {summary.failed} failed, "
            f"{summary.skipped} skipped of {summary.total}"
        )
        return summary
