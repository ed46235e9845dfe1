"""Console rendering and progress helpers for the mtp-up CLI."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .models import (
    DeviceInfo,
    EntryInfo,
    PreprocessInfo,
    ProgressEvent,
    ProgressStatus,
    StorageDescriptor,
    UploadResult,
    WalkResult,
)

MB = 1024 * 1024
DIR_MARKER = "📁"
FILE_MARKER = "📄"

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["bytes", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size > 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_error(message: str, out: Optional[Console] = None) -> None:
    (out or err_console).print(f"[red]ERROR:[/red] {escape(message)}", markup=True)


def render_configuration_summary(config: Dict[str, Any], out: Optional[Console] = None) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")
    for key, value in config.items():
        table.add_row(key, "-" if value is None else str(value))

    (out or console).print(Panel(
        table,
        title="[bold green]mtp-up[/bold green]",
        subtitle="[dim]MTP transfer CLI[/dim]",
        border_style="blue",
    ))


def render_device_info(info: DeviceInfo, out: Optional[Console] = None) -> None:
    (out or console).print(f"Model: [bold]{escape(info.model)}[/bold] by {escape(info.manufacturer)}")


def render_storages(storages: List[StorageDescriptor], out: Optional[Console] = None) -> None:
    table = Table(title=f"Found {len(storages)} storage(s)", title_justify="left")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Description", style="bold cyan")
    table.add_column("ID", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Free", justify="right")
    table.add_column("Total", justify="right")
    for index, storage in enumerate(storages):
        table.add_row(
            str(index),
            escape(storage.description),
            f"{storage.storage_id} (0x{storage.storage_id:08X})",
            f"{storage.used_bytes // MB} MB",
            f"{storage.free_bytes // MB} MB",
            f"{storage.capacity_bytes // MB} MB",
        )
    (out or console).print(table)


class ListingPrinter:
    """Visitor that prints each walked entry on its own line."""

    def __init__(self, path: str, storage_id: int, out: Optional[Console] = None):
        self.path = path
        self.storage_id = storage_id
        self._console = out or console

    def start(self) -> None:
        self._console.print()
        self._console.print(f"Files in [bold]{escape(self.path)}[/bold] (storage ID: {self.storage_id}):")
        self._console.rule()

    def visit(self, entry: EntryInfo) -> None:
        if entry.is_dir:
            self._console.print(f"{DIR_MARKER} {entry.name}", markup=False)
            return
        self._console.print(f"{FILE_MARKER} {entry.name} ({human_size(entry.size)})", markup=False)

    def finish(self, result: WalkResult) -> None:
        self._console.rule()
        self._console.print(f"Total: {result.total_files} files, {result.total_dirs} directories")


class SingleFileUploadProgress:
    """Single-file upload progress renderer."""

    def __init__(self, file_path: Path, dest_path: str, out: Optional[Console] = None):
        self.file_path = Path(file_path)
        self.filename = self.file_path.name
        self.dest_path = dest_path
        self.file_size = 0
        self.speed = 0.0
        self._console = out or console
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[filename]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>5.1f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=self._console,
        )
        self._task_id: Optional[TaskID] = None

    def on_preprocess(self, info: PreprocessInfo) -> None:
        self.file_size = info.size
        self._console.print(f"Uploading: [bold]{escape(info.path.name)}[/bold] ({info.size} bytes)")
        self._console.print(f"Destination: {self.dest_path}")
        self._console.rule()

    def on_progress(self, event: ProgressEvent) -> None:
        if self._task_id is None:
            self._progress.start()
            self._task_id = self._progress.add_task(
                "upload",
                filename=event.source.name[:60],
                total=max(event.file_size, 1),
            )

        self.speed = event.speed
        if event.status == ProgressStatus.COMPLETED:
            self._progress.update(self._task_id, completed=max(event.file_size, 1))
            self._progress.stop()
            self._console.print(f"[green]Completed![/green] (avg {human_size(int(self.speed))}/s)")
            return

        self._progress.update(self._task_id, completed=event.bytes_sent, total=max(event.file_size, 1))

    def complete(self, result: UploadResult) -> None:
        self._progress.stop()
        self._console.rule()
        if result.success:
            self._console.print(
                f"Upload complete! Files: {result.total_files}, Total size: {result.total_bytes} bytes"
            )
            return
        self._console.print(
            f"[red]Failed:[/red] {escape(self.filename)} - {escape(str(result.error))}"
            f" (files: {result.total_files}, bytes: {result.total_bytes})"
        )
