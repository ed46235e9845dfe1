"""
Mounted device session.

Talks to a device that the desktop has already mounted through gvfs
(``/run/user/<uid>/gvfs/mtp:host=...``) or jmtpfs. Every top-level directory
of the mount is one storage.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Sequence, Tuple
from urllib.parse import unquote

from ..exceptions import (
    DeviceCommunicationError,
    DeviceConnectionError,
    DeviceQueryError,
    DeviceWriteError,
)
from ..models import DeviceInfo, EntryInfo, StorageDescriptor
from ..utils.paths import split_device_path

logger = logging.getLogger(__name__)

GVFS_MTP_PREFIX = "mtp:host="


def default_search_roots() -> List[Path]:
    roots = []
    getuid = getattr(os, "getuid", None)
    if getuid is not None:
        roots.append(Path(f"/run/user/{getuid()}/gvfs"))
    return roots


def parse_mount_name(name: str) -> DeviceInfo:
    """
    Device info from a gvfs mount name.

    ``mtp:host=SAMSUNG_SAMSUNG_Android_R58M12ABCDE`` gives manufacturer
    ``SAMSUNG``, model ``SAMSUNG Android`` and serial ``R58M12ABCDE``.
    """
    if not name.startswith(GVFS_MTP_PREFIX):
        return DeviceInfo(model=name, manufacturer="Unknown")

    host = unquote(name[len(GVFS_MTP_PREFIX):])
    parts = [part for part in host.split("_") if part]
    if len(parts) >= 3:
        return DeviceInfo(
            model=" ".join(parts[1:-1]),
            manufacturer=parts[0],
            serial_number=parts[-1],
        )
    if len(parts) == 2:
        return DeviceInfo(model=parts[1], manufacturer=parts[0])
    return DeviceInfo(model=host or name, manufacturer="Unknown")


class MountedObjectWriter:
    """Writes straight into the target file on the mount."""

    def __init__(self, session: "MountedDeviceSession", storage_id: int, path: Path, handle: BinaryIO, size: int):
        self._session = session
        self._storage_id = storage_id
        self._path = path
        self._handle = handle
        self._size = size
        self._written = 0

    async def write(self, chunk: bytes) -> None:
        try:
            await asyncio.to_thread(self._handle.write, chunk)
        except OSError as exc:
            await self.abort()
            raise DeviceWriteError(f"{self._path.name}: {exc.strerror or exc}") from exc
        self._written += len(chunk)

    async def commit(self) -> EntryInfo:
        try:
            await asyncio.to_thread(self._handle.close)
        except OSError as exc:
            raise DeviceWriteError(f"{self._path.name}: {exc.strerror or exc}") from exc
        if self._written != self._size:
            raise DeviceWriteError(
                f"{self._path.name}: expected {self._size} bytes, wrote {self._written}"
            )
        return await self._session._entry_for(self._storage_id, self._path)

    async def abort(self) -> None:
        if self._handle.closed:
            return
        try:
            await asyncio.to_thread(self._handle.close)
        except OSError as exc:
            raise DeviceWriteError(f"{self._path.name}: {exc.strerror or exc}") from exc


class MountedDeviceSession:
    """
    Device session over a mounted MTP filesystem.

    Object ids are handed out per session and map to mount paths.
    """

    def __init__(self, mount_root: Path, device_info: Optional[DeviceInfo] = None):
        self.mount_root = Path(mount_root)
        self._device_info = device_info
        self._storages: Dict[int, Path] = {}
        self._ids: Dict[Path, int] = {}
        self._paths: Dict[int, Tuple[int, Path]] = {}
        self._next_id = 1
        self.is_open = False

    @classmethod
    def discover(cls, search_roots: Optional[Sequence[Path]] = None) -> "MountedDeviceSession":
        """Find the single mounted MTP device."""
        roots = list(search_roots) if search_roots is not None else default_search_roots()
        candidates: List[Path] = []
        for root in roots:
            if root.is_dir():
                candidates.extend(p for p in root.glob(f"{GVFS_MTP_PREFIX}*") if p.is_dir())
        candidates.sort()

        if not candidates:
            searched = ", ".join(str(r) for r in roots) or "(no search roots)"
            raise DeviceConnectionError(f"no mounted MTP device found under {searched}")
        if len(candidates) > 1:
            logger.warning(
                f"{len(candidates)} MTP devices mounted, using {candidates[0].name}"
            )
        logger.info(f"Using mounted device at {candidates[0]}")
        return cls(candidates[0])

    async def __aenter__(self) -> "MountedDeviceSession":
        await self.open()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def open(self) -> None:
        if not await asyncio.to_thread(self.mount_root.is_dir):
            raise DeviceConnectionError(f"mount point {self.mount_root} is not available")

        try:
            storage_dirs = await asyncio.to_thread(self._scan_storage_dirs)
        except OSError as exc:
            raise DeviceConnectionError(f"cannot read {self.mount_root}: {exc.strerror or exc}") from exc

        self._storages = {}
        for index, path in enumerate(storage_dirs):
            # MTP style ids: 0x00010001, 0x00020001, ...
            self._storages[((index + 1) << 16) | 1] = path
        self.is_open = True
        logger.debug(f"Opened {self.mount_root} with {len(self._storages)} storage(s)")

    async def close(self) -> None:
        self._ids.clear()
        self._paths.clear()
        self.is_open = False

    async def fetch_device_info(self) -> DeviceInfo:
        self._require_open()
        return self._device_info or parse_mount_name(self.mount_root.name)

    async def fetch_storages(self) -> List[StorageDescriptor]:
        self._require_open()
        storages = []
        for storage_id, path in self._storages.items():
            try:
                usage = await asyncio.to_thread(shutil.disk_usage, path)
            except OSError as exc:
                raise DeviceQueryError(f"cannot query {path.name}: {exc.strerror or exc}") from exc
            storages.append(StorageDescriptor(
                storage_id=storage_id,
                description=path.name,
                free_bytes=usage.free,
                capacity_bytes=usage.total,
            ))
        return storages

    async def resolve_path(self, storage_id: int, path: str) -> Optional[EntryInfo]:
        self._require_open()
        target = self._storage_root(storage_id).joinpath(*split_device_path(path))
        try:
            st = await asyncio.to_thread(target.stat)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as exc:
            raise DeviceCommunicationError(f"cannot stat {path}: {exc.strerror or exc}") from exc
        return self._make_entry(storage_id, target, st)

    async def list_children(self, storage_id: int, parent_id: int) -> List[EntryInfo]:
        self._require_open()
        parent = self._path_of(storage_id, parent_id)
        try:
            listing = await asyncio.to_thread(self._scan, parent)
        except OSError as exc:
            raise DeviceCommunicationError(f"cannot list {parent}: {exc.strerror or exc}") from exc
        return [self._make_entry(storage_id, path, st) for path, st in listing]

    async def create_folder(self, storage_id: int, parent_id: int, name: str) -> EntryInfo:
        self._require_open()
        target = self._path_of(storage_id, parent_id) / name
        try:
            await asyncio.to_thread(target.mkdir)
        except FileExistsError:
            pass
        except OSError as exc:
            raise DeviceWriteError(f"cannot create folder {name}: {exc.strerror or exc}") from exc
        return await self._entry_for(storage_id, target)

    async def delete_object(self, storage_id: int, object_id: int) -> None:
        self._require_open()
        target = self._path_of(storage_id, object_id)
        if target == self._storage_root(storage_id):
            raise DeviceCommunicationError("cannot delete the storage root")
        try:
            if await asyncio.to_thread(target.is_dir):
                await asyncio.to_thread(shutil.rmtree, target)
            else:
                await asyncio.to_thread(target.unlink)
        except OSError as exc:
            raise DeviceWriteError(f"cannot delete {target.name}: {exc.strerror or exc}") from exc
        self._forget(target)

    async def open_writer(self, storage_id: int, parent_id: int, name: str, size: int) -> MountedObjectWriter:
        self._require_open()
        target = self._path_of(storage_id, parent_id) / name
        try:
            handle = await asyncio.to_thread(target.open, "wb")
        except OSError as exc:
            raise DeviceWriteError(f"cannot create {name}: {exc.strerror or exc}") from exc
        return MountedObjectWriter(self, storage_id, target, handle, size)

    def _scan_storage_dirs(self) -> List[Path]:
        return sorted(p for p in self.mount_root.iterdir() if p.is_dir())

    @staticmethod
    def _scan(parent: Path) -> List[Tuple[Path, os.stat_result]]:
        listing = []
        with os.scandir(parent) as it:
            for item in it:
                try:
                    listing.append((Path(item.path), item.stat()))
                except FileNotFoundError:
                    # dangling link or object removed mid-listing
                    continue
        return listing

    async def _entry_for(self, storage_id: int, path: Path) -> EntryInfo:
        try:
            st = await asyncio.to_thread(path.stat)
        except OSError as exc:
            raise DeviceCommunicationError(f"cannot stat {path.name}: {exc.strerror or exc}") from exc
        return self._make_entry(storage_id, path, st)

    def _make_entry(self, storage_id: int, path: Path, st: os.stat_result) -> EntryInfo:
        root = self._storage_root(storage_id)
        relative = path.relative_to(root).as_posix()
        is_dir = stat.S_ISDIR(st.st_mode)
        parent_id = None if path == root else self._object_id(storage_id, path.parent)
        return EntryInfo(
            object_id=self._object_id(storage_id, path),
            name="" if path == root else path.name,
            is_dir=is_dir,
            path="/" if relative == "." else f"/{relative}",
            size=0 if is_dir else st.st_size,
            parent_id=parent_id,
            modified=datetime.fromtimestamp(st.st_mtime),
        )

    def _object_id(self, storage_id: int, path: Path) -> int:
        object_id = self._ids.get(path)
        if object_id is None:
            object_id = self._next_id
            self._next_id += 1
            self._ids[path] = object_id
            self._paths[object_id] = (storage_id, path)
        return object_id

    def _forget(self, path: Path) -> None:
        for known in [p for p in self._ids if p == path or path in p.parents]:
            self._paths.pop(self._ids.pop(known), None)

    def _path_of(self, storage_id: int, object_id: int) -> Path:
        known = self._paths.get(object_id)
        if known is None or known[0] != storage_id:
            raise DeviceCommunicationError(f"invalid object handle {object_id} on storage {storage_id}")
        return known[1]

    def _storage_root(self, storage_id: int) -> Path:
        root = self._storages.get(storage_id)
        if root is None:
            raise DeviceCommunicationError(f"invalid storage id {storage_id}")
        return root

    def _require_open(self) -> None:
        if not self.is_open:
            raise DeviceConnectionError("session is not open")
