"""Tests for console rendering helpers."""
import io
from pathlib import Path

import pytest
from rich.console import Console

from mtpup.cli_progress import (
    ListingPrinter,
    SingleFileUploadProgress,
    human_size,
    render_device_info,
    render_error,
    render_storages,
)
from mtpup.models import (
    DeviceInfo,
    EntryInfo,
    PreprocessInfo,
    ProgressEvent,
    ProgressStatus,
    StorageDescriptor,
    UploadResult,
    WalkResult,
)
from mtpup.exceptions import DeviceWriteError


def _console():
    return Console(file=io.StringIO(), width=120, highlight=False)


def _output(console: Console) -> str:
    return console.file.getvalue()


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, "0 bytes"),
        (500, "500 bytes"),
        (1024, "1024 bytes"),
        (2048, "2.00 KB"),
        (5 * 1024 * 1024, "5.00 MB"),
        (3 * 1024 ** 3 + 1, "3.00 GB"),
    ],
)
def test_human_size(value, expected):
    assert human_size(value) == expected


def test_listing_printer():
    out = _console()
    printer = ListingPrinter("/Download", 65537, out=out)

    printer.start()
    printer.visit(EntryInfo(object_id=1, name="Music", is_dir=True, path="/Download/Music"))
    printer.visit(EntryInfo(object_id=2, name="[draft].txt", is_dir=False, path="/Download/[draft].txt", size=2048))
    printer.finish(WalkResult(total_files=1, total_dirs=1))

    text = _output(out)
    assert "Files in /Download (storage ID: 65537):" in text
    assert "📁 Music" in text
    assert "📄 [draft].txt (2.00 KB)" in text
    assert "Total: 1 files, 1 directories" in text


def test_render_storages():
    out = _console()
    render_storages([StorageDescriptor(0x00010001, "Internal shared storage", 1024 ** 3, 64 * 1024 ** 3)], out=out)

    text = _output(out)
    assert "Internal shared storage" in text
    assert "65537 (0x00010001)" in text
    assert "64512 MB" in text
    assert "1024 MB" in text
    assert "65536 MB" in text


def test_render_storages_escapes_markup():
    out = _console()
    render_storages([StorageDescriptor(0x00020001, "SD [bold]card[/bold]", 0, 0)], out=out)
    assert "SD [bold]card[/bold]" in _output(out)


def test_render_device_info_escapes_markup():
    out = _console()
    render_device_info(DeviceInfo(model="[usb:001,005]", manufacturer="Unknown"), out=out)
    assert "Model: [usb:001,005] by Unknown" in _output(out)


def test_render_error():
    out = _console()
    render_error("Usage: -u <source_file> [destination_path]", out=out)
    assert "ERROR: Usage: -u <source_file> [destination_path]" in _output(out)


class TestSingleFileUploadProgress:
    def _event(self, status, sent, size=4096, elapsed=0.0):
        return ProgressEvent(
            status=status,
            source=Path("/tmp/clip.mp4"),
            dest_path="/Download/clip.mp4",
            file_size=size,
            bytes_sent=sent,
            files_sent=1 if status == ProgressStatus.COMPLETED else 0,
            total_files=1,
            bulk_bytes_sent=sent,
            bulk_total_bytes=size,
            elapsed=elapsed,
        )

    def test_successful_upload(self):
        out = _console()
        progress = SingleFileUploadProgress(Path("/tmp/clip.mp4"), "/Download", out=out)

        progress.on_preprocess(PreprocessInfo(path=Path("/tmp/clip.mp4"), size=4096))
        progress.on_progress(self._event(ProgressStatus.IN_PROGRESS, 2048))
        progress.on_progress(self._event(ProgressStatus.COMPLETED, 4096, elapsed=4.0))
        progress.complete(UploadResult(uploaded=["/Download/clip.mp4"], total_files=1, total_bytes=4096))

        text = _output(out)
        assert "Uploading: clip.mp4 (4096 bytes)" in text
        assert "Destination: /Download" in text
        assert "Completed! (avg 1024 bytes/s)" in text
        assert progress.speed == 1024.0
        assert "Upload complete! Files: 1, Total size: 4096 bytes" in text

    def test_failed_upload(self):
        out = _console()
        progress = SingleFileUploadProgress(Path("/tmp/clip.mp4"), "/Download", out=out)

        progress.on_progress(self._event(ProgressStatus.IN_PROGRESS, 1024))
        progress.complete(UploadResult(error=DeviceWriteError("usb unplugged")))

        text = _output(out)
        assert "Failed: clip.mp4 - DEVICE_WRITE_FAILED: usb unplugged" in text
        assert "Completed!" not in text
