"""Import Report Generator.

Saves the error log of a bulk import run and prints its summary.

Security Impact:
    - Error entries carry row number, service code and reason only, never
      whole rows
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from medrecords.domain.ports import Result
from medrecords.domain.services.bulk_import import ImportSummary

# Number of errors printed in the console summary
MAX_PRINTED_ERRORS = 10


def build_error_report(summary: ImportSummary, timestamp: Optional[datetime] = None) -> dict:
    """Error log document: ``{timestamp, summary, errors}``."""
    timestamp = timestamp or datetime.now(timezone.utc)
    return {
        "timestamp": timestamp.isoformat(),
        "summary": {
            "total": summary.total,
            "success": summary.success,
            "failed": summary.failed,
            "skipped": summary.skipped,
            "cancelled": summary.cancelled,
        },
        "errors": [error.model_dump() for error in summary.errors],
    }


def save_error_log(summary: ImportSummary, directory: str) -> Result[Optional[Path]]:
    """Save the errors of an import run as ``import-errors-<timestamp>.json``.

    Parameters:
        summary: Finished import summary
        directory: Output directory (created if missing)

    Returns:
        Result with the written path, or None when the run had no errors
    """
    if not summary.errors:
        return Result.success_result(None)

    timestamp = datetime.now(timezone.utc)
    output_file = Path(directory) / f"import-errors-{timestamp.strftime('%Y%m%dT%H%M%S%fZ')}.json"
    try:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(build_error_report(summary, timestamp), f, indent=2, ensure_ascii=False)
    except OSError as e:
        return Result.failure_result(
            OSError(f"Failed to save error log to {output_file}: {str(e)}"),
            error_type="OSError"
        )

    return Result.success_result(output_file)


def print_import_summary(summary: ImportSummary, console: Optional[Console] = None) -> None:
    """Print the summary table and the first errors of an import run."""
    console = console or Console()

    console.print("\n[bold]Import Summary:[/bold]")
    summary_table = Table(show_header=False, box=None, padding=(0, 2))
    summary_table.add_row("Total rows:", f"[bold]{summary.total:,}[/bold]")
    summary_table.add_row("Successful:", f"[green]{summary.success:,}[/green]")
    summary_table.add_row("Skipped:", f"[yellow]{summary.skipped:,}[/yellow]" if summary.skipped else "0")
    summary_table.add_row("Failed:", f"[red]{summary.failed:,}[/red]" if summary.failed else "0")
    if summary.cancelled:
        summary_table.add_row("Cancelled:", f"[yellow]after {summary.processed:,} rows[/yellow]")
    console.print(summary_table)

    if summary.errors:
        console.print("\n[bold]Errors:[/bold]")
        for error in summary.errors[:MAX_PRINTED_ERRORS]:
            console.print(f"  Row {error.row} [{error.code}]: {error.error}", markup=False)
        remaining = len(summary.errors) - MAX_PRINTED_ERRORS
        if remaining > 0:
            console.print(f"  ... and {remaining} more errors")
