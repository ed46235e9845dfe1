"""
Models for mtpup.

Dataclasses describing devices, storages, entries and transfer results.
Snapshots coming from the device are immutable.
"""
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional

from .exceptions import MTPError


DEFAULT_DISALLOWED_NAMES = frozenset({
    ".DS_Store",
    ".localized",
    "__MACOSX",
    ".Spotlight-V100",
    ".Trashes",
    ".fseventsd",
    "Thumbs.db",
    "desktop.ini",
    "$RECYCLE.BIN",
    "System Volume Information",
})
APPLE_DOUBLE_PREFIX = "._"
DEFAULT_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class DeviceInfo:
    """Device metadata reported by the session."""
    model: str
    manufacturer: str
    serial_number: Optional[str] = None
    device_version: Optional[str] = None


@dataclass(frozen=True)
class StorageDescriptor:
    """Immutable snapshot of one storage unit, fetched once per session."""
    storage_id: int
    description: str
    free_bytes: int = 0
    capacity_bytes: int = 0
    volume_label: Optional[str] = None

    @property
    def used_bytes(self) -> int:
        return max(self.capacity_bytes - self.free_bytes, 0)


@dataclass(frozen=True)
class EntryInfo:
    """
    One object under a storage.

    ``object_id`` is only meaningful inside the session that produced it.
    """
    object_id: int
    name: str
    is_dir: bool
    path: str
    size: int = 0
    parent_id: Optional[int] = None
    modified: Optional[datetime] = None


@dataclass
class WalkResult:
    """Aggregate counts of a walk. Counts are indicative only when ``error`` is set."""
    root: Optional[EntryInfo] = None
    total_files: int = 0
    total_dirs: int = 0
    error: Optional[MTPError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def total_entries(self) -> int:
        return self.total_files + self.total_dirs

    def raise_for_error(self) -> "WalkResult":
        if self.error is not None:
            raise self.error
        return self


@dataclass(frozen=True)
class UploadRequest:
    """What to upload and where."""
    sources: List[Path]
    dest_path: str
    storage_id: int
    preprocess: bool = True


class ProgressStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class FileState(Enum):
    """Per-file state inside the upload pipeline."""
    PENDING = "pending"
    PREPROCESSING = "preprocessing"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class PreprocessInfo:
    """Local stat result handed to the preprocess callback."""
    path: Path
    size: int
    modified: Optional[datetime] = None


@dataclass(frozen=True)
class ProgressEvent:
    """Point-in-time snapshot emitted during a transfer."""
    status: ProgressStatus
    source: Path
    dest_path: str
    file_size: int
    bytes_sent: int
    files_sent: int
    total_files: int
    bulk_bytes_sent: int
    bulk_total_bytes: Optional[int] = None
    elapsed: float = 0.0

    @property
    def fraction(self) -> float:
        """Active file progress in ``[0, 1]``."""
        if self.file_size <= 0:
            return 1.0 if self.status == ProgressStatus.COMPLETED else 0.0
        return min(self.bytes_sent / self.file_size, 1.0)

    @property
    def percent(self) -> float:
        return self.fraction * 100

    @property
    def bulk_fraction(self) -> Optional[float]:
        """Whole-batch progress, only known when preprocessing ran."""
        if self.bulk_total_bytes is None:
            return None
        if self.bulk_total_bytes <= 0:
            return 1.0
        return min(self.bulk_bytes_sent / self.bulk_total_bytes, 1.0)

    @property
    def speed(self) -> float:
        """Average bytes per second over the whole batch."""
        if self.elapsed <= 0:
            return 0.0
        return self.bulk_bytes_sent / self.elapsed


@dataclass
class UploadResult:
    """
    Aggregate of an upload batch.

    ``total_bytes`` only counts files that reached ``COMPLETED``.
    """
    uploaded: List[str] = field(default_factory=list)
    total_files: int = 0
    total_bytes: int = 0
    error: Optional[MTPError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> "UploadResult":
        if self.error is not None:
            raise self.error
        return self


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class TransferConfig:
    """Immutable configuration for walks and uploads."""
    default_path: str = "/Download"
    chunk_size: int = DEFAULT_CHUNK_SIZE
    recursive: bool = False
    skip_disallowed: bool = True
    skip_hidden: bool = False
    preprocess: bool = True
    hidden_prefix: str = "."
    disallowed_names: FrozenSet[str] = DEFAULT_DISALLOWED_NAMES
    on_conflict: str = "replace"  # replace | reject

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.on_conflict not in {"replace", "reject"}:
            raise ValueError(f"Unsupported conflict policy: {self.on_conflict}")

    def is_hidden(self, name: str) -> bool:
        return name.startswith(self.hidden_prefix)

    def is_disallowed(self, name: str) -> bool:
        return name in self.disallowed_names or name.startswith(APPLE_DOUBLE_PREFIX)

    @classmethod
    def from_env(cls) -> "TransferConfig":
        """Build config from ``MTPUP_*`` environment variables."""
        defaults = cls()
        chunk_size = os.getenv("MTPUP_CHUNK_SIZE")
        return cls(
            default_path=os.getenv("MTPUP_DEFAULT_PATH") or defaults.default_path,
            chunk_size=int(chunk_size) if chunk_size else defaults.chunk_size,
            skip_hidden=_env_flag("MTPUP_SKIP_HIDDEN", defaults.skip_hidden),
            on_conflict=(os.getenv("MTPUP_ON_CONFLICT") or defaults.on_conflict).lower(),
        )
