#!/usr/bin/env python3
"""Example CLI Usage Script - Demonstrates all timeline-cli commands.

This script writes a small set of synthetic device records to a JSON file and
runs every timeline-cli command on it as a subprocess.

Usage:
    uv run python examples/example_cli_usage.py

    # Or with a specific output directory
    uv run python examples/example_cli_usage.py --output-dir /tmp/timeline
"""

import json
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List

import typer
from rich.console import Console
from rich.panel import Panel

app = typer.Typer()
console = Console()


def synthetic_records() -> List[Dict[str, Any]]:
    """Two days of pump and sensor records with one duplicate and one timezone change."""
    records: List[Dict[str, Any]] = []
    for i, value in enumerate([110, 118, 131, 145, 152, 140]):
        records.append({
            "type": "cbg", "id": f"cbg-{i}", "time": f"2023-03-14T08:{i * 5:02d}:00Z",
            "timezone": "UTC", "value": value, "units": "mg/dL",
        })
    records.append(dict(records[0]))
    records += [
        {"type": "wizard", "id": "wiz-1", "time": "2023-03-14T11:58:00Z", "timezone": "UTC",
         "bolus": "bolus-1", "carbInput": 40},
        {"type": "bolus", "id": "bolus-1", "time": "2023-03-14T12:00:00Z", "timezone": "UTC",
         "normal": 4.0, "expectedNormal": 4.0},
        {"type": "basal", "id": "basal-1", "time": "2023-03-14T13:00:00Z", "timezone": "UTC",
         "deliveryType": "automated", "rate": 0.8, "duration": 3600000},
        {"type": "deviceEvent", "subType": "deviceParameter", "id": "param-1", "time": "2023-03-15T07:30:00Z",
         "timezone": "Europe/Paris", "name": "PATIENT_WEIGHT", "value": "72", "units": "kg"},
        {"type": "smbg", "id": "smbg-1", "time": "2023-03-15T09:00:00Z", "timezone": "Europe/Paris",
         "value": 6.4, "units": "mmol/L"},
    ]
    return records


def run_cli_command(args: List[str], description: str = "") -> subprocess.CompletedProcess:
    """Run a timeline-cli command and display results.

    Args:
        args: Command arguments for timeline-cli
        description: Human-readable description of what this command does

    Returns:
        CompletedProcess with stdout/stderr
    """
    if description:
        console.print(f"\n[bold cyan]Example: {description}[/bold cyan]")

    # Run as module
    cmd = [sys.executable, "-m", "cgm_timeline.timeline_cli"] + args
    console.print(f"[dim]$ timeline-cli {' '.join(args)}[/dim]\n")

    result = subprocess.run(cmd, capture_output=True, text=True)

    if result.stdout:
        console.print(result.stdout)

    if result.returncode != 0 and result.stderr:
        console.print(f"[red]{result.stderr}[/red]")

    return result


@app.command()
def main(
    output_dir: Path = typer.Option(
        Path(__file__).parent.parent / "data" / "cli_examples_output",
        "--output-dir",
        "-o",
        help="Directory for the sample input and the exported timeline",
    ),
) -> None:
    """Run through all timeline-cli command examples."""

    console.print(Panel.fit(
        "[bold]Timeline CLI Tool - Complete Usage Examples[/bold]\n\n"
        "This script demonstrates all timeline-cli commands with synthetic records.\n"
        "Commands are executed via subprocess to show real-world usage.",
        border_style="cyan",
    ))

    output_dir.mkdir(parents=True, exist_ok=True)
    records_file = output_dir / "records.json"
    records_file.write_text(json.dumps(synthetic_records(), indent=2), encoding="utf-8")
    console.print(f"\n[bold]Input file:[/bold] {records_file}")

    # ===== 1. Summary =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]1. INGESTION SUMMARY[/bold green]")
    console.print("=" * 70)

    run_cli_command(["summary", str(records_file)], "Summarize an ingested record file")
    run_cli_command(
        ["summary", str(records_file), "--units", "mmol/L", "--no-warnings"],
        "Summarize with mmol/L display units",
    )

    # ===== 2. Basics =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]2. BASICS WINDOW[/bold green]")
    console.print("=" * 70)

    run_cli_command(["basics", str(records_file), "--pad-week"], "Basics buckets padded to the end of the week")

    # ===== 3. Device parameters =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]3. DEVICE PARAMETER CLUSTERS[/bold green]")
    console.print("=" * 70)

    run_cli_command(["clusters", str(records_file), "--offset-minutes", "30"], "Group parameter changes")

    # ===== 4. Timezone =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]4. TIMEZONE LOOKUP[/bold green]")
    console.print("=" * 70)

    run_cli_command(["timezone", str(records_file), "2023-03-15T08:00:00Z"], "Timezone in effect at an instant")

    # ===== 5. Export =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]5. TIMELINE EXPORT[/bold green]")
    console.print("=" * 70)

    timeline_file = output_dir / "timeline.json"
    run_cli_command(
        ["--log-level", "INFO", "export", str(records_file), "--output", str(timeline_file)],
        "Export the merged timeline with fill records",
    )

    console.print("\n[bold cyan]For help on any command:[/bold cyan]")
    console.print("  timeline-cli <command> --help")

    console.print("\n[bold green]✓ All examples completed successfully![/bold green]\n")


if __name__ == "__main__":
    app()
