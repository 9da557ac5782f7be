"""
CLI for autodocs.

Provides commands for running the translation pipeline once or on a fixed
delay, and for inspecting the workspace.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from autodocs.config import RunConfig, create_default_config, load_config
from autodocs.errors import ConfigError
from autodocs.runner import RunSummary, run_once
from autodocs.workspace import WorkspaceManager

app = typer.Typer(
    name="autodocs",
    help="Automated translation of documentation repositories.",
    add_completion=False,
)

console = Console()


def _display_config(config: RunConfig, config_path: Path) -> None:
    """Display the configuration being used."""
    config_table = Table(show_header=False, box=None, padding=(0, 2))
    config_table.add_column("Key", style="cyan")
    config_table.add_column("Value", style="green")

    config_table.add_row("Config file", str(config_path))
    config_table.add_row("Repository", f"{config.repository.url} ({config.repository.branch})")
    config_table.add_row("Engine", f"{config.engine.name.value} ({config.engine.model or 'default'})")
    config_table.add_row(
        "Languages",
        f"{config.translation.source_language} -> {config.translation.target_language}",
    )
    config_table.add_row("Target", " ".join(config.filter.target))
    if config.filter.include:
        config_table.add_row("Include", ", ".join(config.filter.include))
    if config.filter.exclude:
        config_table.add_row("Exclude", ", ".join(config.filter.exclude))
    config_table.add_row("Output", str(config.output_dir))

    console.print(Panel(config_table, title="[bold blue]autodocs[/bold blue]", border_style="blue"))


def _display_summary(summary: RunSummary) -> None:
    """Display the run summary."""
    status_style = {
        "succeeded": "green",
        "partial": "yellow",
        "cancelled": "yellow",
        "aborted": "red",
    }.get(summary.status, "white")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Status", f"[{status_style}]{summary.status}[/{status_style}]")
    if summary.source_commit:
        table.add_row("Commit", summary.source_commit[:12])
    table.add_row("Selected", str(summary.selected))
    table.add_row("Skipped", str(len(summary.skipped)))
    table.add_row("Succeeded", f"[green]{len(summary.succeeded)}[/green]")
    table.add_row("Failed", f"[red]{len(summary.failed)}[/red]" if summary.failed else "0")
    if summary.cancelled:
        table.add_row("Not started", str(len(summary.cancelled)))
    if summary.copied:
        table.add_row("Copied", str(len(summary.copied)))
    if summary.pruned:
        table.add_row("Pruned", str(len(summary.pruned)))
    table.add_row("Elapsed", f"{summary.elapsed_seconds:.1f}s")
    if summary.abort_reason:
        table.add_row("Reason", f"[{status_style}]{summary.abort_reason}[/{status_style}]")

    console.print(Panel(table, title=f"Run {summary.run_id[:8]}", border_style=status_style))

    if summary.failed:
        failures = Table(title="Failed Files")
        failures.add_column("Path", style="cyan")
        failures.add_column("Reason", style="red")
        for path, reason in sorted(summary.failed.items()):
            failures.add_row(path, reason[:100])
        console.print(failures)


def get_config(config_path: Path) -> RunConfig:
    """Load config or exit with a readable error."""
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Invalid config ({e.kind.value}): {e.message}[/red]")
        raise typer.Exit(1) from None


def get_workspace(config: RunConfig) -> WorkspaceManager:
    """Get workspace instance."""
    return WorkspaceManager(config.output_dir, config.store_path, config.source_dir)


@app.command()
def run(
    config_path: Path = typer.Argument(..., help="Config file"),
    no_sync: bool = typer.Option(False, "--no-sync", help="Use the existing clone as-is"),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", min=1.0, help="Cancel the run after SECONDS"
    ),
) -> None:
    """Execute one translation pass."""
    config = get_config(config_path)
    _display_config(config, config_path)

    summary = asyncio.run(run_once(config, sync=not no_sync, timeout=timeout, console=console))
    _display_summary(summary)

    exit_code = summary.exit_code(config.processing.fail_on_candidate_error)
    if exit_code:
        raise typer.Exit(exit_code)


@app.command()
def loop(
    config_path: Path = typer.Argument(..., help="Config file"),
    interval: float = typer.Option(60.0, "--interval", "-i", min=0.0, help="Seconds between runs"),
    max_runs: int | None = typer.Option(None, "--max-runs", "-n", min=1, help="Stop after N runs"),
    no_sync: bool = typer.Option(False, "--no-sync", help="Use the existing clone as-is"),
) -> None:
    """Run translation passes repeatedly with a fixed delay."""
    runs = 0
    try:
        while max_runs is None or runs < max_runs:
            runs += 1
            console.rule(f"[bold]Run {runs}[/bold]")

            # Reloaded every pass so edits apply without a restart
            try:
                config = load_config(config_path)
            except ConfigError as e:
                console.print(f"[red]Invalid config ({e.kind.value}): {e.message}[/red]")
            else:
                summary = asyncio.run(run_once(config, sync=not no_sync, console=console))
                _display_summary(summary)
                if summary.interrupted:
                    break

            if max_runs is not None and runs >= max_runs:
                break
            console.print(f"[dim]Next run in {interval:g}s[/dim]")
            time.sleep(interval)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")

    console.print(f"[bold]{runs} run(s) completed[/bold]")


@app.command()
def init(
    output_path: Path = typer.Argument(Path("autodocs.yml"), help="Output path for config file"),
) -> None:
    """Generate a default configuration file."""
    if output_path.exists():
        overwrite = typer.confirm(f"{output_path} already exists. Overwrite?")
        if not overwrite:
            raise typer.Abort()

    create_default_config(output_path)
    console.print(f"[green]Created config file: {output_path}[/green]")
    console.print("\nEdit the repository and engine settings, then run:")
    console.print(f"  autodocs run {output_path}")


@app.command()
def status(
    config_path: Path = typer.Argument(..., help="Config file"),
    limit: int = typer.Option(10, "--limit", "-n", help="Recent runs to show"),
) -> None:
    """Show translated files and recent runs."""
    config = get_config(config_path)

    with get_workspace(config) as workspace:
        entries = workspace.get_entries()
        runs = workspace.get_runs(limit)

    if not entries and not runs:
        console.print("[yellow]Workspace is empty[/yellow]")
        return

    if runs:
        run_table = Table(title="Recent Runs")
        run_table.add_column("Run", style="dim")
        run_table.add_column("Finished")
        run_table.add_column("Commit", style="dim")
        run_table.add_column("Status")
        run_table.add_column("Skipped", justify="right")
        run_table.add_column("OK", justify="right", style="green")
        run_table.add_column("Failed", justify="right", style="red")

        for row in runs:
            status_style = {
                "succeeded": "green",
                "partial": "yellow",
                "cancelled": "yellow",
                "aborted": "red",
            }.get(row["status"], "white")
            run_table.add_row(
                row["run_id"][:8],
                str(row["finished_at"])[:19],
                (row["source_commit"] or "")[:10],
                f"[{status_style}]{row['status']}[/{status_style}]",
                str(row["skipped"]),
                str(row["succeeded"]),
                str(row["failed"]),
            )
        console.print(run_table)

    entry_table = Table(title=f"Translated Files ({len(entries)})")
    entry_table.add_column("Path", style="cyan")
    entry_table.add_column("Hash", style="dim")
    entry_table.add_column("Translated")

    for entry in entries[:50]:
        entry_table.add_row(
            entry.relative_path,
            entry.content_hash[:12],
            str(entry.translated_at)[:19],
        )
    console.print(entry_table)


@app.command()
def logs(
    config_path: Path = typer.Argument(..., help="Config file"),
    level: str | None = typer.Option(None, "--level", "-l", help="Filter by level"),
    path: str | None = typer.Option(None, "--path", "-p", help="Filter by file path"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max entries to show"),
) -> None:
    """View processing logs."""
    config = get_config(config_path)

    with get_workspace(config) as workspace:
        entries = workspace.get_logs(level=level.lower() if level else None, path=path, limit=limit)

    if not entries:
        console.print("[yellow]No log entries found[/yellow]")
        return

    table = Table(title="Processing Logs")
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Stage", style="cyan")
    table.add_column("Message")
    table.add_column("Path")

    for entry in entries:
        level_style = {
            "info": "green",
            "warning": "yellow",
            "error": "red",
        }.get(entry["level"], "white")

        table.add_row(
            str(entry["created_at"])[:19],
            f"[{level_style}]{entry['level']}[/{level_style}]",
            entry["stage"] or "",
            (entry["message"] or "")[:80],
            entry["path"] or "",
        )

    console.print(table)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
