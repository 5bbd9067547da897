"""Unit tests for the bulk import pipeline.

Tests cover:
- Row parsing and validation reasons
- Per-row isolation of skipped and failed rows
- Row numbering
- Pacing with an injected sleep
- Cooperative cancellation
- Fatal errors aborting the run
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from medrecords.adapters.storage import InMemoryResourceStore
from medrecords.domain.constants import SERVICE_CODE_SYSTEM
from medrecords.domain.guardrails import CancellationToken, PacingConfig, RequestPacer
from medrecords.domain.ports import (
    ConfigurationError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from medrecords.domain.services.bulk_import import (
    ENGLISH_COLUMNS,
    LEGACY_COLUMNS,
    MISSING_CODE,
    BulkImportPipeline,
    ImportSummary,
    parse_service_row,
)
from medrecords.domain.services.catalog_service import CatalogService


def _row(code, title="Service", group="Lab", service_type="blood", price="10", **extra):
    row = {"code": code, "title": title, "group": group, "type": service_type, "price": price}
    row.update(extra)
    return row


class FailingStore(InMemoryResourceStore):
    """In-memory store that refuses to create the listed service codes."""

    def __init__(self, failing_codes, error=None):
        super().__init__()
        self.failing_codes = set(failing_codes)
        self.error = error

    def create(self, resource):
        codes = {i.get("value") for i in resource.get("identifier", []) if i.get("system") == SERVICE_CODE_SYSTEM}
        if codes & self.failing_codes:
            raise self.error or PersistenceError("Store unavailable", operation="create")
        return super().create(resource)


def _pipeline(store, sleep=None, batch_size=100, pause_seconds=0.0, **kwargs):
    pacer = RequestPacer(PacingConfig(batch_size=batch_size, pause_seconds=pause_seconds), sleep=sleep or Mock())
    return BulkImportPipeline(CatalogService(store), columns=ENGLISH_COLUMNS, pacer=pacer, **kwargs)


class TestParseServiceRow:
    """Test suite for parse_service_row."""

    def test_full_row(self):
        """Test that every column is read."""
        entry = parse_service_row(_row(
            " LAB001 ", title="CBC", price="15.50", total="18", tags="routine, fasting",
            lis_integration="1", lis_provider="LabCorp", gis_code="G-1",
        ), ENGLISH_COLUMNS)

        assert entry.code == "LAB001"
        assert entry.base_price == Decimal("15.50")
        assert entry.total_amount == Decimal("18")
        assert entry.tags == ("routine", "fasting")
        assert entry.lab_integration.enabled
        assert entry.lab_integration.provider == "LabCorp"
        assert entry.classification_code == "G-1"

    def test_legacy_headers_are_default(self):
        """Test that the default column set is the legacy one."""
        row = {
            LEGACY_COLUMNS.code: "X1",
            LEGACY_COLUMNS.title: "X",
            LEGACY_COLUMNS.group: "G",
            LEGACY_COLUMNS.service_type: "T",
        }
        assert parse_service_row(row).code == "X1"

    @pytest.mark.parametrize("column,reason", [
        ("code", "Missing service code"),
        ("title", "Missing service name"),
        ("group", "Missing service group"),
        ("type", "Missing service type"),
    ])
    def test_missing_required_column(self, column, reason):
        """Test the reason for each missing required value."""
        row = _row("X1")
        row[column] = "   "
        with pytest.raises(ValidationError, match=reason):
            parse_service_row(row, ENGLISH_COLUMNS)

    def test_absent_column_reads_as_missing(self):
        """Test that a column missing from the header row reads as missing."""
        row = _row("X1")
        del row["group"]
        with pytest.raises(ValidationError, match="Missing service group"):
            parse_service_row(row, ENGLISH_COLUMNS)

    @pytest.mark.parametrize("price,reason", [("abc", "must be a number"), ("-5", "must not be negative")])
    def test_invalid_price(self, price, reason):
        """Test that bad prices skip the row."""
        with pytest.raises(ValidationError, match=reason):
            parse_service_row(_row("X1", price=price), ENGLISH_COLUMNS)

    def test_blank_price_is_allowed(self):
        """Test that a blank price leaves the price unset."""
        assert parse_service_row(_row("X1", price=""), ENGLISH_COLUMNS).base_price is None

    @pytest.mark.parametrize("total", ["0", "-1", "n/a"])
    def test_unusable_total_is_dropped(self, total):
        """Test that non-positive or non-numeric totals are ignored."""
        assert parse_service_row(_row("X1", total=total), ENGLISH_COLUMNS).total_amount is None

    def test_provider_ignored_when_integration_off(self):
        """Test that a provider next to a disabled flag is not stored."""
        entry = parse_service_row(_row("X1", lis_integration="0", lis_provider="LabCorp"), ENGLISH_COLUMNS)
        assert entry.lab_integration.provider is None


class TestBulkImportPipeline:
    """Test suite for BulkImportPipeline.run."""

    def test_mixed_batch(self):
        """Test a batch with one invalid row and one rejected row."""
        rows = [_row(f"SVC{n:03d}") for n in range(1, 11)]
        rows[4]["title"] = ""
        store = FailingStore({"SVC007"})

        summary = _pipeline(store).run(rows, first_row_number=1)

        assert summary.total == 10
        assert summary.success == 8
        assert summary.skipped == 1
        assert summary.failed == 1
        assert [error.row for error in summary.errors] == [5, 7]
        assert summary.errors[1].code == "SVC007"
        assert summary.is_failure
        assert len(store.search("ActivityDefinition")) == 8

    def test_skipped_rows_alone_do_not_fail_the_run(self):
        """Test that a run with only skipped rows is not a failure."""
        summary = _pipeline(InMemoryResourceStore()).run([_row("A1"), _row("A2", title="")])

        assert summary.skipped == 1
        assert not summary.is_failure

    def test_missing_code_reported_as_na(self):
        """Test that a row without a code is reported with the N/A placeholder."""
        summary = _pipeline(InMemoryResourceStore()).run([_row("")])

        assert summary.errors[0].code == MISSING_CODE
        assert summary.errors[0].error.startswith("Missing service code")

    def test_default_row_numbering_starts_after_header(self):
        """Test that the first data row is row 2 by default."""
        summary = _pipeline(InMemoryResourceStore()).run([_row("A1"), _row("A2", group="")])

        assert summary.errors[0].row == 3

    def test_duplicate_code_is_skipped(self):
        """Test that a code already in the catalog skips the row."""
        summary = _pipeline(InMemoryResourceStore()).run([_row("A1"), _row("A1")])

        assert summary.success == 1
        assert summary.skipped == 1
        assert summary.errors[0].error == "Service code already exists: A1"

    def test_pacing_pauses_between_batches(self):
        """Test that 250 rows with batch size 100 pause twice."""
        sleep = Mock()
        rows = [_row(f"P{n}") for n in range(250)]

        summary = _pipeline(InMemoryResourceStore(), sleep=sleep, batch_size=100, pause_seconds=1.0).run(rows)

        assert summary.success == 250
        assert sleep.call_count == 2
        sleep.assert_called_with(1.0)

    def test_no_pause_after_last_row(self):
        """Test that a batch boundary on the last row does not pause."""
        sleep = Mock()
        rows = [_row(f"P{n}") for n in range(200)]

        _pipeline(InMemoryResourceStore(), sleep=sleep, batch_size=100, pause_seconds=1.0).run(rows)

        assert sleep.call_count == 1

    def test_cancellation_stops_between_rows(self):
        """Test that cancelling from the row callback stops the run."""
        token = CancellationToken()

        def on_row(row_number, result):
            if row_number == 4:
                token.cancel()

        summary = _pipeline(InMemoryResourceStore(), cancellation=token, on_row=on_row).run(
            [_row(f"C{n}") for n in range(10)], first_row_number=2
        )

        assert summary.cancelled
        assert summary.processed == 3
        assert summary.total == 10

    def test_on_row_receives_every_result(self):
        """Test that the callback sees each row number and result."""
        seen = []
        _pipeline(InMemoryResourceStore(), on_row=lambda n, r: seen.append((n, r.is_success()))).run(
            [_row("A1"), _row("A2", title="")]
        )

        assert seen == [(2, True), (3, False)]

    def test_permission_denied_aborts(self):
        """Test that an authorization failure stops the import."""
        store = FailingStore({"A2"}, error=PermissionDeniedError("Forbidden", operation="create"))

        with pytest.raises(PermissionDeniedError, match="Forbidden"):
            _pipeline(store).run([_row("A1"), _row("A2"), _row("A3")])
        assert len(store.search("ActivityDefinition")) == 1

    def test_configuration_error_aborts(self):
        """Test that a configuration failure stops the import."""
        store = FailingStore({"A1"}, error=ConfigurationError("No credentials"))

        with pytest.raises(ConfigurationError):
            _pipeline(store).run([_row("A1")])

    def test_empty_source(self):
        """Test that an empty source produces an empty summary."""
        summary = _pipeline(InMemoryResourceStore()).run([])

        assert summary == ImportSummary()
