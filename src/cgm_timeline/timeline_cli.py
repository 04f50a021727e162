#!/usr/bin/env python3
"""Timeline CLI Tool - Command-line interface for patient record ingestion.

Commands work on a JSON file holding a list of raw device records:
- Ingestion summary (counts, duplicates, invalid records, timezone changes)
- Basics window (date range, days, bucket statistics)
- Device parameter clusters
- Nearest timezone lookup
- Export of the merged timeline

Can be used as:
- Installed command: timeline-cli <command>
- Python module: python -m cgm_timeline.timeline_cli <command>
- Direct script: python scripts/timeline_cli.py <command>
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from cgm_timeline.interface.timeline_interface import (
    MS_IN_HOUR,
    IngestionWarning,
    InvalidInputError,
    InvalidOptionsError,
)
from cgm_timeline.patient_data import PatientData

app = typer.Typer(
    name="timeline-cli",
    help="Timeline CLI - Normalize, deduplicate and summarize device records",
    add_completion=False,
)
console = Console()


@app.callback()
def configure(
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read_records(input_file: Path) -> Any:
    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)
    with open(input_file, "r", encoding="utf-8") as f:
        return json.load(f)


def _load(input_file: Path, options: Optional[Dict[str, Any]] = None) -> PatientData:
    records = _read_records(input_file)
    try:
        with console.status(f"[bold green]Ingesting {input_file.name}..."):
            patient_data = PatientData(records, options)
    except (InvalidInputError, InvalidOptionsError) as e:
        console.print(f"[red]✗ Ingestion error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Ingested {len(patient_data.raw_data)} raw records")
    return patient_data


# ===== Ingestion Commands =====

@app.command()
def summary(
    input_file: Path = typer.Argument(..., help="JSON file with a list of raw records"),
    units: Optional[str] = typer.Option(None, "--units", "-u", help="Display glucose unit (mg/dL or mmol/L)"),
    timezone: Optional[str] = typer.Option(None, "--timezone", "-t", help="Default timezone name"),
    show_warnings: bool = typer.Option(True, "--warnings/--no-warnings", help="Show ingestion warnings"),
) -> None:
    """Ingest a record file and print counts per type and diagnostics."""
    options: Dict[str, Any] = {}
    if units:
        options["bgUnits"] = units
    if timezone:
        options["timePrefs"] = {"timezoneName": timezone}
    patient_data = _load(input_file, options)
    diagnostics = patient_data.diagnostics

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Timeline Records", f"{len(patient_data.data):,}")
    table.add_row("Diabetes Records", f"{len(patient_data.diabetes_data):,}")
    table.add_row("Duplicates", f"{diagnostics.duplicate_count:,}")
    table.add_row("Invalid", f"{diagnostics.invalid_count:,}")
    table.add_row("Temp Basals Skipped", f"{diagnostics.temp_basals:,}")
    table.add_row("Timezone Changes", f"{len(diagnostics.timezone_changes):,}")
    table.add_row("Glucose Unit", patient_data.bg_units)
    table.add_row("Timezone", patient_data.time_prefs["timezoneName"])
    if patient_data.endpoints is not None:
        table.add_row("Time Range", f"{patient_data.endpoints[0]} to {patient_data.endpoints[1]}")
    for datum_type, records in sorted(patient_data.grouped.items()):
        table.add_row(f"  {datum_type}", f"{len(records):,}")
    console.print(table)

    if show_warnings and patient_data.has_warnings():
        console.print("\n[bold yellow]Warnings:[/bold yellow]")
        for warning in patient_data.get_warnings():
            console.print(f"  [yellow]⚠[/yellow] {warning.name}: {_get_warning_description(warning)}")


@app.command()
def basics(
    input_file: Path = typer.Argument(..., help="JSON file with a list of raw records"),
    pad_week: bool = typer.Option(False, "--pad-week", help="Extend days to the end of the last week"),
) -> None:
    """Print the basics window: date range, days and bucket statistics."""
    patient_data = _load(input_file, {"basicsPadWeek": pad_week})
    window = patient_data.basics_data
    if window.is_empty:
        console.print("[yellow]No relevant records: basics window is empty[/yellow]")
        return

    console.print(f"\n[bold]Basics window[/bold] {window.date_range[0]} to {window.date_range[1]} ({window.timezone})")
    console.print(f"Days: {len(window.days)} (future: {len(window.days_of_type('future'))})")

    table = Table()
    table.add_column("Bucket", style="cyan")
    table.add_column("Records", style="white")
    table.add_column("Days", style="white")
    table.add_column("Avg/Day", style="green")
    for name, bucket in window.buckets.items():
        n_days = "-" if bucket.by_date is None else str(len(bucket.by_date))
        table.add_row(name, str(len(bucket.data)), n_days, str(bucket.avg_per_day))
    console.print(table)

    bolus = window.buckets["bolus"]
    basal = window.buckets["basal"]
    console.print(
        f"Bolus: {bolus.n_manual} manual, {bolus.n_automated} automated, {bolus.n_interrupted} interrupted"
    )
    console.print(f"Basal: {basal.n_automated} automated, {basal.n_scheduled} scheduled")


@app.command()
def clusters(
    input_file: Path = typer.Argument(..., help="JSON file with a list of raw records"),
    offset_minutes: float = typer.Option(30, "--offset-minutes", help="Clustering threshold (minutes)"),
    output_file: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the clusters as JSON"),
) -> None:
    """List device parameter clusters."""
    offset_ms = int(offset_minutes * MS_IN_HOUR / 60)
    patient_data = _load(input_file, {"deviceParamsOffset": offset_ms})

    table = Table()
    table.add_column("Anchor", style="cyan")
    table.add_column("Id", style="white")
    table.add_column("Parameters", style="green")
    for cluster in patient_data.device_parameters:
        names = ", ".join(str(m.get("name", m["id"])) for m in cluster.members)
        table.add_row(cluster.anchor_time, cluster.id, names)
    console.print(table)
    console.print(f"[green]✓[/green] {len(patient_data.device_parameters)} clusters")

    if output_file:
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump([c.to_dict() for c in patient_data.device_parameters], f, indent=2)
        console.print(f"[green]✓[/green] Saved clusters to: {output_file}")


@app.command()
def timezone(
    input_file: Path = typer.Argument(..., help="JSON file with a list of raw records"),
    instant: str = typer.Argument(..., help="ISO-8601 instant"),
) -> None:
    """Print the timezone of the record closest to an instant."""
    patient_data = _load(input_file)
    try:
        zone = patient_data.get_timezone(instant)
    except ValueError as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Timezone at {instant}: [bold]{zone}[/bold]")


@app.command()
def export(
    input_file: Path = typer.Argument(..., help="JSON file with a list of raw records"),
    output_file: Path = typer.Option(..., "--output", "-o", help="Output JSON file (merged timeline)"),
    units: Optional[str] = typer.Option(None, "--units", "-u", help="Display glucose unit (mg/dL or mmol/L)"),
) -> None:
    """Write the merged timeline as JSON."""
    options = {"bgUnits": units} if units else {}
    patient_data = _load(input_file, options)
    records: List[Dict[str, Any]] = patient_data.data
    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(records, f, indent=2)
    console.print(f"[green]✓[/green] Saved {len(records)} records to: {output_file}")


def _get_warning_description(warning: IngestionWarning) -> str:
    """Get human-readable warning description."""
    descriptions = {
        IngestionWarning.INVALID_RECORDS: "Records quarantined (missing or invalid time, schema failure)",
        IngestionWarning.DUPLICATES: "Records dropped because their id was already seen",
        IngestionWarning.TIMEZONE_CHANGES: "Timezone change markers were added",
        IngestionWarning.MISSING_BOLUS_REFERENCE: "Wizard records reference unknown boluses",
        IngestionWarning.DIMENSION_MISUSE: "An index was queried with an unknown dimension",
    }
    return descriptions.get(warning, "Unknown warning")


# ===== Main Entry Point =====

def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
