"""
In-memory device session.

Holds an object tree per storage. Used as the reference session by the test
suite; supports injected listing and write failures.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..exceptions import (
    DeviceCommunicationError,
    DeviceConnectionError,
    DeviceWriteError,
    PathNotFoundError,
)
from ..models import DeviceInfo, EntryInfo, StorageDescriptor
from ..utils.paths import join_device_path, normalize_device_path, parent_and_name, split_device_path

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 64 * 1024 ** 3


@dataclass
class _Node:
    object_id: int
    storage_id: int
    name: str
    is_dir: bool
    path: str
    parent_id: Optional[int]
    data: bytes = b""
    children: List[int] = field(default_factory=list)
    modified: datetime = field(default_factory=datetime.now)

    def to_entry(self) -> EntryInfo:
        return EntryInfo(
            object_id=self.object_id,
            name=self.name,
            is_dir=self.is_dir,
            path=self.path,
            size=0 if self.is_dir else len(self.data),
            parent_id=self.parent_id,
            modified=self.modified,
        )


class MemoryObjectWriter:
    """Buffers chunks and creates the object on commit."""

    def __init__(self, session: "MemoryDeviceSession", storage_id: int, parent_id: int, name: str, size: int):
        self._session = session
        self._storage_id = storage_id
        self._parent_id = parent_id
        self._name = name
        self._size = size
        self._buffer = bytearray()
        self._closed = False

    async def write(self, chunk: bytes) -> None:
        if self._closed:
            raise DeviceWriteError(f"writer for {self._name} is closed")
        limit = self._session.fail_writes_after
        if limit is not None and len(self._buffer) + len(chunk) > limit:
            raise DeviceWriteError(f"device rejected data for {self._name} after {len(self._buffer)} bytes")
        self._buffer.extend(chunk)

    async def commit(self) -> EntryInfo:
        if self._closed:
            raise DeviceWriteError(f"writer for {self._name} is closed")
        self._closed = True
        if len(self._buffer) != self._size:
            raise DeviceWriteError(
                f"{self._name}: expected {self._size} bytes, received {len(self._buffer)}"
            )
        node = self._session._add_node(self._storage_id, self._parent_id, self._name, False, bytes(self._buffer))
        return node.to_entry()

    async def abort(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._session.aborted_writes.append(self._name)


class MemoryDeviceSession:
    """
    Device session backed by plain dictionaries.

    Object ids are allocated per instance, so ids from one session are
    meaningless in another.
    """

    def __init__(
        self,
        device_info: Optional[DeviceInfo] = None,
        storages: Optional[List[StorageDescriptor]] = None,
        fail_writes_after: Optional[int] = None,
    ):
        self._device_info = device_info or DeviceInfo(model="Memory Device", manufacturer="mtpup")
        self._storages = list(storages) if storages is not None else [
            StorageDescriptor(
                storage_id=0x00010001,
                description="Internal shared storage",
                free_bytes=DEFAULT_CAPACITY,
                capacity_bytes=DEFAULT_CAPACITY,
            )
        ]
        self.fail_writes_after = fail_writes_after
        self.fail_listing: Optional[str] = None
        self.aborted_writes: List[str] = []
        self.is_open = False

        self._ids = itertools.count(1)
        self._nodes: Dict[int, _Node] = {}
        self._roots: Dict[int, int] = {}
        for storage in self._storages:
            root = _Node(
                object_id=next(self._ids),
                storage_id=storage.storage_id,
                name="",
                is_dir=True,
                path="/",
                parent_id=None,
            )
            self._nodes[root.object_id] = root
            self._roots[storage.storage_id] = root.object_id

    async def __aenter__(self) -> "MemoryDeviceSession":
        await self.open()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def open(self) -> None:
        self.is_open = True
        logger.debug("Memory session opened")

    async def close(self) -> None:
        self.is_open = False

    async def fetch_device_info(self) -> DeviceInfo:
        self._require_open()
        return self._device_info

    async def fetch_storages(self) -> List[StorageDescriptor]:
        self._require_open()
        snapshots = []
        for storage in self._storages:
            used = sum(
                len(node.data) for node in self._nodes.values()
                if node.storage_id == storage.storage_id and not node.is_dir
            )
            snapshots.append(StorageDescriptor(
                storage_id=storage.storage_id,
                description=storage.description,
                free_bytes=max(storage.capacity_bytes - used, 0),
                capacity_bytes=storage.capacity_bytes,
                volume_label=storage.volume_label,
            ))
        return snapshots

    async def resolve_path(self, storage_id: int, path: str) -> Optional[EntryInfo]:
        self._require_open()
        node = self._find(storage_id, path)
        return node.to_entry() if node else None

    async def list_children(self, storage_id: int, parent_id: int) -> List[EntryInfo]:
        self._require_open()
        parent = self._node(storage_id, parent_id)
        if self.fail_listing is not None and parent.path == normalize_device_path(self.fail_listing):
            raise DeviceCommunicationError(f"listing {parent.path} failed")
        if not parent.is_dir:
            raise DeviceCommunicationError(f"object {parent_id} is not a folder")
        return [self._nodes[child_id].to_entry() for child_id in parent.children]

    async def create_folder(self, storage_id: int, parent_id: int, name: str) -> EntryInfo:
        self._require_open()
        return self._add_node(storage_id, parent_id, name, True).to_entry()

    async def delete_object(self, storage_id: int, object_id: int) -> None:
        self._require_open()
        node = self._node(storage_id, object_id)
        if node.parent_id is None:
            raise DeviceCommunicationError("cannot delete the storage root")
        for child_id in list(node.children):
            await self.delete_object(storage_id, child_id)
        self._nodes[node.parent_id].children.remove(object_id)
        del self._nodes[object_id]

    async def open_writer(self, storage_id: int, parent_id: int, name: str, size: int) -> MemoryObjectWriter:
        self._require_open()
        parent = self._node(storage_id, parent_id)
        if not parent.is_dir:
            raise DeviceWriteError(f"object {parent_id} is not a folder")
        return MemoryObjectWriter(self, storage_id, parent_id, name, size)

    # Test/setup helpers; usable without opening the session.

    def add_folder(self, storage_id: int, path: str) -> EntryInfo:
        """Create ``path`` and any missing parents."""
        node = self._nodes[self._roots[storage_id]]
        for part in split_device_path(path):
            existing = self._child_named(node, part)
            node = existing or self._add_node(storage_id, node.object_id, part, True)
        return node.to_entry()

    def add_file(self, storage_id: int, path: str, data: bytes = b"") -> EntryInfo:
        parent_path, name = parent_and_name(path)
        parent = self.add_folder(storage_id, parent_path)
        return self._add_node(storage_id, parent.object_id, name, False, data).to_entry()

    def read_file(self, storage_id: int, path: str) -> bytes:
        node = self._find(storage_id, path)
        if node is None or node.is_dir:
            raise PathNotFoundError(f"{path} is not a file")
        return node.data

    def _require_open(self) -> None:
        if not self.is_open:
            raise DeviceConnectionError("session is not open")

    def _node(self, storage_id: int, object_id: int) -> _Node:
        node = self._nodes.get(object_id)
        if node is None or node.storage_id != storage_id:
            raise DeviceCommunicationError(f"invalid object handle {object_id} on storage {storage_id}")
        return node

    def _find(self, storage_id: int, path: str) -> Optional[_Node]:
        if storage_id not in self._roots:
            raise DeviceCommunicationError(f"invalid storage id {storage_id}")
        node = self._nodes[self._roots[storage_id]]
        for part in split_device_path(path):
            if not node.is_dir:
                return None
            node = self._child_named(node, part)
            if node is None:
                return None
        return node

    def _child_named(self, parent: _Node, name: str) -> Optional[_Node]:
        for child_id in parent.children:
            child = self._nodes[child_id]
            if child.name == name:
                return child
        return None

    def _add_node(self, storage_id: int, parent_id: int, name: str, is_dir: bool, data: bytes = b"") -> _Node:
        parent = self._node(storage_id, parent_id)
        node = _Node(
            object_id=next(self._ids),
            storage_id=storage_id,
            name=name,
            is_dir=is_dir,
            path=join_device_path(parent.path, name),
            parent_id=parent_id,
            data=data,
        )
        self._nodes[node.object_id] = node
        parent.children.append(node.object_id)
        return node
