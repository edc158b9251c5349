"""Console rendering and progress helpers for the drivewatch CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from .models import ManualUploadResult, ManualUploadState, StatusEvent, StatusKind

console = Console()


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]drivewatch[/bold green]",
        subtitle="[dim]folder auto-upload[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_history(history: Dict[str, Dict[str, Any]], limit: int = 20) -> None:
    """Render the most recent ledger entries."""
    if not history:
        console.print("[dim]No uploads recorded.[/dim]")
        return

    table = Table(title=f"Uploaded files ({len(history)})", show_lines=False)
    table.add_column("Uploaded at", style="dim")
    table.add_column("File", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Remote id", style="cyan")

    recent = sorted(history.items(), key=lambda item: item[1].get("uploaded_at", ""), reverse=True)
    for path, entry in recent[:limit]:
        size = entry.get("file_size")
        table.add_row(
            entry.get("uploaded_at", "-")[:19],
            path,
            _human_size(size) if isinstance(size, int) else "-",
            str(entry.get("remote_id", "-")),
        )
    console.print(table)


class WatchStatusDisplay:
    """Timeline of watch-session status events. Implements INotifier."""

    _PALETTE = {
        StatusKind.WATCHING: ("INFO", "blue"),
        StatusKind.UPLOADING: ("UP", "cyan"),
        StatusKind.COMPLETED: ("DONE", "green"),
        StatusKind.FAILED: ("FAIL", "red"),
    }

    def __init__(self):
        self._stats: Dict[str, int] = {"uploaded": 0, "failed": 0}

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def notify(self, event: StatusEvent) -> None:
        if event.kind == StatusKind.COMPLETED:
            self._stats["uploaded"] += 1
        elif event.kind == StatusKind.FAILED:
            self._stats["failed"] += 1

        label, color = self._PALETTE[event.kind]
        stamp = time.strftime("%H:%M:%S")
        if event.kind == StatusKind.WATCHING:
            message = event.name
        elif event.kind == StatusKind.FAILED:
            message = f"{event.name} cause={event.detail}"
        elif event.kind == StatusKind.COMPLETED and event.detail:
            message = f"{event.name} [dim]{event.detail}[/dim]"
        else:
            message = event.name
        console.print(f"[dim]{stamp}[/dim] [{color}]{label:<4}[/{color}] {message}")

    def on_finish(self) -> None:
        console.print(
            f"[bold]Session ended:[/bold] uploaded={self._stats['uploaded']} "
            f"failed={self._stats['failed']}"
        )


class ManualUploadProgressDisplay:
    """Batch progress bar for manual uploads."""

    def __init__(self):
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("{task.completed}/{task.total}"),
            expand=False,
            console=console,
        )
        self._task_id: Optional[TaskID] = None
        self._reported = 0

    def __enter__(self):
        self._progress.start()
        return self

    def __exit__(self, *args):
        self._progress.stop()

    def on_state(self, state: ManualUploadState) -> None:
        if self._task_id is None and state.total_files:
            self._task_id = self._progress.add_task("upload", label="Uploading", total=state.total_files)
        if self._task_id is None:
            return

        for outcome in state.results[self._reported:]:
            if outcome.success:
                self._progress.console.print(f"[green]Uploaded:[/green] {outcome.name}")
            else:
                self._progress.console.print(f"[red]Failed:[/red] {outcome.name} - {outcome.reason}")
        self._reported = len(state.results)
        self._progress.update(
            self._task_id,
            completed=len(state.results),
            label=f"Uploading {state.current_index}/{state.total_files}",
        )

    def on_finish(self, result: ManualUploadResult) -> None:
        color = "green" if result.success else "red"
        console.print(
            f"[{color}]Done:[/{color}] uploaded={result.uploaded_files} "
            f"failed={result.failed_files} total={result.total_files}"
        )
