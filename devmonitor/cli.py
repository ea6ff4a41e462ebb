"""devmonitor CLI: supervise a dev server, classify logs, manage fix backups."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from devmonitor.config import get_settings
from devmonitor.logging_config import setup_logging
from devmonitor.models import RankedDiagnostic, Severity
from devmonitor.pipeline import LogClassifier, SeverityRanker
from devmonitor.remediation import BackupStore
from devmonitor.remediation.backups import BackupError
from devmonitor.session import MonitorSession, SessionEvent, SessionStatus
from devmonitor.supervisor import SupervisorError

app = typer.Typer(help="Next.js dev server monitor", no_args_is_help=True)
console = Console()

backups_app = typer.Typer(help="Inspect and restore pre-fix backups", no_args_is_help=True)
app.add_typer(backups_app, name="backups")

SEVERITY_STYLES = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    setup_logging("DEBUG" if verbose else None)


def _diagnostics_table(diagnostics: list[RankedDiagnostic], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Pri", justify="right", style="magenta")
    table.add_column("Category", style="cyan")
    table.add_column("Severity")
    table.add_column("Location", style="green")
    table.add_column("Message", style="white")
    table.add_column("Fix", justify="center")
    for d in diagnostics:
        style = SEVERITY_STYLES.get(d.severity, "white")
        table.add_row(
            d.id,
            str(d.priority),
            str(d.category),
            f"[{style}]{d.severity}[/{style}]",
            str(d.location),
            d.message,
            "[green]✓[/green]" if d.auto_fixable else "",
        )
    return table


@app.command()
def run(
    path: Path = typer.Argument(Path("."), help="Next.js project directory"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Dev server port"),
    hostname: Optional[str] = typer.Option(None, "--hostname", help="Dev server hostname"),
    no_fix: bool = typer.Option(False, "--no-fix", help="Disable remediation"),
    unsafe: bool = typer.Option(False, "--unsafe", help="Turn off safe mode"),
    auto_apply: bool = typer.Option(False, "--auto-apply", help="Apply fixes for auto-fixable diagnostics as they appear"),
) -> None:
    """Supervise the dev server and report diagnostics as they appear."""
    project = path.resolve()
    if not project.is_dir():
        console.print(f"[red]Project path does not exist: {project}[/red]")
        raise typer.Exit(1)

    overrides: dict[str, Any] = {"dev_server_port": port, "dev_server_hostname": hostname}
    if no_fix:
        overrides["auto_fix"] = False
    if unsafe:
        overrides["safe_mode"] = False

    async def _run() -> int:
        session = MonitorSession(get_settings())
        exited = asyncio.Event()
        exit_code: dict[str, Optional[int]] = {"code": None}

        def on_new(diagnostic: RankedDiagnostic) -> None:
            style = SEVERITY_STYLES.get(diagnostic.severity, "white")
            console.print(
                f"[{style}]●[/{style}] [bold]{diagnostic.category}[/bold] "
                f"{diagnostic.location} {diagnostic.message} [dim]({diagnostic.id}, p{diagnostic.priority})[/dim]"
            )
            if auto_apply and diagnostic.auto_fixable and not no_fix:
                result = session.apply_fix(diagnostic.id)
                if result.success:
                    console.print(f"  [green]✓ fixed[/green] {result.file}")
                else:
                    console.print(f"  [yellow]⚠ not fixed:[/yellow] {result.error}")

        def on_resolved(diagnostic: RankedDiagnostic) -> None:
            console.print(f"[green]✓ resolved[/green] {diagnostic.location} {diagnostic.message}")

        def on_status(status: SessionStatus, details: dict[str, Any]) -> None:
            if status == SessionStatus.EXITED:
                exit_code["code"] = details.get("code")
                exited.set()

        def on_error(error: Exception) -> None:
            console.print(f"[red]✗ {error}[/red]")

        session.on(SessionEvent.NEW_DIAGNOSTIC, on_new)
        session.on(SessionEvent.DIAGNOSTIC_RESOLVED, on_resolved)
        session.on(SessionEvent.STATUS_CHANGE, on_status)
        session.on(SessionEvent.ERROR, on_error)

        console.print(f"\n[bold cyan]Starting dev server in {project}[/bold cyan]\n")
        try:
            await session.start(project, **overrides)
        except SupervisorError as exc:
            console.print(f"[red]Failed to start: {exc}[/red]")
            return 1

        console.print(f"[green]✓ Dev server ready[/green] (pid {session.supervisor.pid})\n")
        try:
            await exited.wait()
        finally:
            await session.stop()
            metrics = session.metrics()
            console.print(
                f"\nDiagnostics seen: {metrics.diagnostics_seen}  "
                f"Fixes applied: {metrics.fixes_applied}  "
                f"Success rate: {metrics.success_rate:.0f}%"
            )
        code = exit_code["code"] or 0
        # killed by a signal: report it the way a shell would
        return 128 - code if code < 0 else code

    try:
        code = asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")
        return
    if code:
        raise typer.Exit(code)


@app.command()
def classify(
    logfile: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved dev server output"),
    fixable: bool = typer.Option(False, "--fixable", help="Only show auto-fixable diagnostics"),
) -> None:
    """Classify and rank a saved log."""
    text = logfile.read_text(encoding="utf-8", errors="replace")
    ranked = SeverityRanker().rank_all(LogClassifier().classify_buffer(text))
    if fixable:
        ranked = [d for d in ranked if d.auto_fixable]

    if not ranked:
        console.print("[green]No diagnostics found.[/green]")
        return
    console.print(_diagnostics_table(ranked, f"Diagnostics in {logfile.name}"))
    console.print(f"\nTotal: {len(ranked)} diagnostics")


def _store(project: Path) -> BackupStore:
    return BackupStore(get_settings().with_overrides(project_path=project).backup_dir)


@backups_app.command("list")
def backups_list(
    project: Path = typer.Option(Path("."), "--project", help="Project directory"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Only backups of this file"),
) -> None:
    """List stored backups."""
    records = _store(project).list(file.resolve() if file else None)
    if not records:
        console.print("[yellow]No backups found.[/yellow]")
        return

    table = Table(title="Backups")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("File", style="green")
    table.add_column("Taken", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Fix", style="yellow")
    for record in records:
        table.add_row(
            record.id,
            record.file_path,
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            str(record.original_size),
            record.fix_type,
        )
    console.print(table)
    console.print(f"\nTotal: {len(records)} backups")


@backups_app.command("verify")
def backups_verify(
    backup_id: str = typer.Argument(..., help="Backup ID"),
    project: Path = typer.Option(Path("."), "--project", help="Project directory"),
) -> None:
    """Check a backup's checksum."""
    if _store(project).validate(backup_id):
        console.print(f"[green]✓[/green] Backup {backup_id} is intact")
    else:
        console.print(f"[red]✗[/red] Backup {backup_id} is missing or corrupt")
        raise typer.Exit(1)


@backups_app.command("restore")
def backups_restore(
    backup_id: str = typer.Argument(..., help="Backup ID"),
    project: Path = typer.Option(Path("."), "--project", help="Project directory"),
) -> None:
    """Restore a file from a backup."""
    try:
        record = _store(project).restore(backup_id)
    except BackupError as exc:
        console.print(f"[red]✗ {exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Restored {record.file_path}")


@backups_app.command("prune")
def backups_prune(
    project: Path = typer.Option(Path("."), "--project", help="Project directory"),
    days: Optional[int] = typer.Option(None, "--days", help="Retention window (default from settings)"),
) -> None:
    """Delete backups older than the retention window."""
    retention = days if days is not None else get_settings().backup_retention_days
    removed = _store(project).prune(retention)
    console.print(f"Removed {len(removed)} backup(s) older than {retention} days")


if __name__ == "__main__":
    app()
