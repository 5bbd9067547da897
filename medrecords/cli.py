"""Command Line Interface for medrecords.

This module provides a CLI using Typer for importing the medical service
catalog, checking patients for duplicates and inspecting configuration.

Security Impact:
    - Secrets are never printed; ``info`` only shows whether they are set
    - Authorization and configuration failures stop an import immediately
"""

from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from medrecords import __version__
from medrecords.domain.ports import ConfigurationError, MedRecordsError, ResourceStorePort, Result
from medrecords.domain.services.bulk_import import ENGLISH_COLUMNS, LEGACY_COLUMNS, ImportSummary
from medrecords.infrastructure.import_report import print_import_summary, save_error_log
from medrecords.infrastructure.logging_config import setup_logging
from medrecords.infrastructure.settings import settings
from medrecords.main import check_duplicate as find_duplicate
from medrecords.main import create_store, run_import

app = typer.Typer(
    name="medrecords",
    help="medrecords: clinical records mapping, validation and import",
    add_completion=False
)
console = Console()


class HeaderSet(str, Enum):
    LEGACY = "legacy"
    ENGLISH = "english"


def _print_error(e: Exception) -> None:
    console.print(f"[red]✗[/red] {type(e).__name__}: {str(e)}", highlight=False)
    if isinstance(e, ConfigurationError) and e.remediation:
        console.print(f"[dim]{e.remediation}[/dim]")


def _open_store(dry_run: bool = False) -> ResourceStorePort:
    try:
        with console.status("[bold green]Initializing store..."):
            return create_store(dry_run=dry_run)
    except MedRecordsError as e:
        _print_error(e)
        raise typer.Exit(code=1)


@app.command("import-services")
def import_services(
    input_file: Path = typer.Argument(..., help="Service spreadsheet (XLSX, CSV or JSON)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate and map rows without writing to the configured store"),
    headers: HeaderSet = typer.Option(HeaderSet.LEGACY, "--headers", help="Column header set of the source"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Rows between pauses"),
    pause: Optional[float] = typer.Option(None, "--pause", help="Pause length in seconds"),
    first_row: Optional[int] = typer.Option(None, "--first-row", help="Row number of the first data row"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Import medical service catalog entries from a spreadsheet.

    Each row is validated, mapped and stored on its own; invalid rows are
    skipped and failed rows are reported without stopping the import.

    Examples:
        medrecords import-services services.xlsx
        medrecords import-services services.csv --headers english --dry-run
        medrecords import-services services.xlsx --batch-size 50 --pause 2
    """
    if verbose:
        setup_logging(use_json=settings.log_json, log_level="DEBUG")
        console.print("[dim]Verbose logging enabled[/dim]")

    console.print("\n[bold blue]Service Catalog Import[/bold blue]")
    console.print(f"[dim]Input file:[/dim] {input_file}")

    store = _open_store(dry_run=dry_run)
    console.print(f"[dim]Store:[/dim] {type(store).__name__}{' (dry run)' if dry_run else ''}")
    console.print()

    summary: Optional[ImportSummary] = None
    try:
        with console.status("[bold green]Importing rows...") as status:
            def on_row(row_number: int, result: Result) -> None:
                status.update(f"[bold green]Importing rows... (row {row_number})")

            summary = run_import(
                source=str(input_file),
                store=store,
                columns=ENGLISH_COLUMNS if headers == HeaderSet.ENGLISH else LEGACY_COLUMNS,
                batch_size=batch_size,
                pause_seconds=pause,
                first_row_number=first_row,
                on_row=on_row,
            )
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠[/yellow] Import interrupted by user")
        raise typer.Exit(code=130)
    except MedRecordsError as e:
        console.print("\n[red]✗[/red] Import failed")
        _print_error(e)
        raise typer.Exit(code=1)
    finally:
        store.close()

    print_import_summary(summary, console)

    log_result = save_error_log(summary, settings.error_log_dir)
    if log_result.is_success() and log_result.value is not None:
        console.print(f"\n[green]✓[/green] Error log saved: {log_result.value}")
    elif log_result.is_failure():
        console.print(f"\n[yellow]⚠[/yellow] {log_result.error}")

    if summary.is_failure:
        console.print(f"\n[yellow]⚠[/yellow] Import completed with {summary.failed} failures")
        raise typer.Exit(code=1)
    console.print("\n[green]✓[/green] Import completed successfully")


@app.command("check-duplicate")
def check_duplicate(
    personal_id: str = typer.Argument(..., help="11-digit personal id"),
) -> None:
    """Check whether a patient with this personal id is already registered."""
    store = _open_store()
    try:
        result = find_duplicate(personal_id, store)
    except MedRecordsError as e:
        _print_error(e)
        raise typer.Exit(code=1)
    finally:
        store.close()

    if not result.is_duplicate:
        console.print(f"[green]✓[/green] No patient registered with personal id {result.personal_id}")
        return

    patient = result.match
    name = " ".join(part for part in (*patient.given, patient.family or "") if part) or "(no name)"
    console.print(f"[yellow]⚠[/yellow] Patient already registered: Patient/{patient.id}")
    match_table = Table(show_header=False, box=None, padding=(0, 2))
    match_table.add_row("Name:", name)
    match_table.add_row("Birth date:", patient.birth_date.isoformat() if patient.birth_date else "-")
    match_table.add_row("Registration number:", patient.registration_number or "-")
    console.print(match_table)
    if result.is_ambiguous:
        console.print(
            f"[yellow]⚠[/yellow] {len(result.match_references)} patients share this personal id: "
            f"{', '.join(result.match_references)}"
        )


@app.command()
def info() -> None:
    """Display configuration (secrets are never shown)."""
    console.print("[bold blue]System Information[/bold blue]\n")
    try:
        described = settings.describe()
    except MedRecordsError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    for key, value in described.items():
        info_table.add_row(f"{key.replace('_', ' ').capitalize()}:", str(value))
    console.print(info_table)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version information"),
) -> None:
    """medrecords: clinical records mapping, validation and import."""
    if version:
        console.print(f"medrecords v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()
    setup_logging(use_json=settings.log_json, log_level=settings.log_level)


if __name__ == "__main__":
    app()
