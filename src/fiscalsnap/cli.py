# src/fiscalsnap/cli.py
"""
fiscalsnap Command Line Interface (CLI).

Offline tooling over snapshot JSON files (the files written to
`FISCALSNAP_DATA_DIR` or downloaded through the export endpoint), built with
`typer` and `rich`.

Commands
--------
- **inspect**: render a snapshot's header, statistics, tags and annotations.
- **export**: re-export a snapshot as JSON or CSV.
- **diff**: compare a snapshot with a ledger dump and print the diff table.

Usage
-----
    $ fiscalsnap inspect var/snapshots/3f2a.json
    $ fiscalsnap export var/snapshots/3f2a.json --format csv --output out.csv
    $ fiscalsnap diff var/snapshots/3f2a.json ledger.json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fiscalsnap.core.contracts.comparison import ComparisonResult
from fiscalsnap.core.contracts.snapshot import Snapshot
from fiscalsnap.core.errors import SnapshotError
from fiscalsnap.core.store.storage import read_snapshot_file
from fiscalsnap.services.comparator import compare_transactions
from fiscalsnap.services.exporter import export

load_dotenv()

app = typer.Typer(
    help="fiscalsnap: inspect, export and diff fiscal book snapshots.",
    rich_markup_mode="markdown",
)
console = Console()


# --------------------------------------------------------------------------- #
# Helpers: Loading & Rendering
# --------------------------------------------------------------------------- #


def _load_snapshot(path: Path) -> Snapshot:
    try:
        return read_snapshot_file(path)
    except (OSError, ValueError) as e:
        console.print(f"[bold red]❌ Cannot read snapshot {path}:[/bold red] {e}")
        raise typer.Exit(code=1) from e


def _load_ledger(path: Path) -> list[dict[str, Any]]:
    """Accept either a bare list of transactions or ``{"transactions": [...]}``."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        console.print(f"[bold red]❌ Cannot read ledger {path}:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    if isinstance(data, dict):
        data = data.get("transactions", [])
    if not isinstance(data, list):
        console.print("[bold red]❌ Ledger file must contain a list of transactions[/bold red]")
        raise typer.Exit(code=1)
    return data


def _render_snapshot(snap: Snapshot) -> None:
    stats = snap.statistics
    flags = "🔒 protected" if snap.is_protected else "unprotected"
    console.print(
        Panel.fit(
            f"[bold cyan]{snap.name}[/bold cyan]\n"
            f"id: {snap.id}\nfiscal book: {snap.fiscal_book_id}\n"
            f"created: {snap.created_at.isoformat()} ({snap.creation_source.value}, {flags})",
            border_style="cyan",
        )
    )
    if snap.description:
        console.print(f"[dim]{snap.description}[/dim]")

    table = Table(title="Statistics", show_header=False)
    table.add_row("Transactions", str(stats.transaction_count))
    table.add_row("Income", str(stats.total_income))
    table.add_row("Expenses", str(stats.total_expenses))
    table.add_row("Net", str(stats.net_amount))
    console.print(table)

    if snap.tags:
        console.print("Tags: " + ", ".join(f"[magenta]{t}[/magenta]" for t in snap.tags))
    for note in snap.annotations:
        console.print(f" • [dim]{note.created_at.isoformat()}[/dim] {note.created_by}: {note.content}")


def _render_comparison(result: ComparisonResult) -> None:
    counts = result.counts
    console.rule(f"[bold]{result.snapshot_name}[/bold] vs current ledger")
    console.print(
        f"[green]+{counts.added} added[/green]  [red]-{counts.removed} removed[/red]  "
        f"[yellow]~{counts.modified} modified[/yellow]  [dim]{counts.unchanged} unchanged[/dim]"
    )

    table = Table(show_lines=False)
    table.add_column("Category")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Changes")
    for category, entry in result.entries():
        changes = "; ".join(f"{c.field}: {c.old_value} → {c.new_value}" for c in entry.changes)
        table.add_row(category.value, entry.id, entry.transaction.transaction_name or "", changes)
    if table.row_count:
        console.print(table)

    diff = result.summary.differences
    console.print(
        f"Δ transactions: {diff.transaction_count_diff:+d}   Δ net amount: {diff.net_amount_diff:+}"
    )


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


@app.command()  # type: ignore[misc]
def inspect(
    snapshot_file: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="Snapshot JSON file."),
    ],
) -> None:
    """Render a snapshot file."""
    _render_snapshot(_load_snapshot(snapshot_file))


@app.command("export")  # type: ignore[misc]
def export_command(
    snapshot_file: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="Snapshot JSON file."),
    ],
    fmt: Annotated[
        str,
        typer.Option("--format", "-f", help="Export format: json or csv."),
    ] = "json",
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Target path. Defaults to the standard export filename in the current directory.",
        ),
    ] = None,
) -> None:
    """Write a snapshot export (JSON or CSV)."""
    snap = _load_snapshot(snapshot_file)
    try:
        artifact = export(snap, fmt)
    except SnapshotError as e:
        console.print(f"[bold red]❌ Export Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    target = output or Path(artifact.filename)
    target.write_bytes(artifact.content)
    console.print(
        Panel(
            f"Saved to: [link=file://{target}]{target}[/link]",
            title="Export",
            border_style="green",
        )
    )


@app.command()  # type: ignore[misc]
def diff(
    snapshot_file: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="Snapshot JSON file."),
    ],
    ledger_file: Annotated[
        Path,
        typer.Argument(
            exists=True, dir_okay=False, readable=True, help="Current ledger JSON file."
        ),
    ],
) -> None:
    """Compare a snapshot with a ledger dump."""
    snap = _load_snapshot(snapshot_file)
    rows = _load_ledger(ledger_file)
    try:
        result = compare_transactions(snap, rows)
    except ValueError as e:
        console.print(f"[bold red]❌ Invalid ledger record:[/bold red] {e}")
        raise typer.Exit(code=1) from e
    _render_comparison(result)


if __name__ == "__main__":
    app()
