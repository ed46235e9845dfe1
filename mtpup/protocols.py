"""
Protocols (Interfaces) for the device session collaborator.

The walker and upload pipeline only talk to a device through these.
Implementations raise ``mtpup.exceptions`` errors on failure.
"""
from typing import List, Optional, Protocol, runtime_checkable

from .models import DeviceInfo, EntryInfo, StorageDescriptor


@runtime_checkable
class IObjectWriter(Protocol):
    """Streaming writer for one new leaf object."""

    async def write(self, chunk: bytes) -> None:
        """Send the next chunk of object data."""
        ...

    async def commit(self) -> EntryInfo:
        """Finish the object and return its entry."""
        ...

    async def abort(self) -> None:
        """Release the writer without committing. Partial data is left to the device."""
        ...


@runtime_checkable
class IDeviceSession(Protocol):
    """Open, stateful connection to one device."""

    async def open(self) -> None:
        """Initialize the session."""
        ...

    async def close(self) -> None:
        """Dispose the session. Safe to call more than once."""
        ...

    async def fetch_device_info(self) -> DeviceInfo:
        ...

    async def fetch_storages(self) -> List[StorageDescriptor]:
        ...

    async def resolve_path(self, storage_id: int, path: str) -> Optional[EntryInfo]:
        """Return the entry at ``path`` or None if any segment is missing."""
        ...

    async def list_children(self, storage_id: int, parent_id: int) -> List[EntryInfo]:
        """Immediate children of a container, in device order."""
        ...

    async def create_folder(self, storage_id: int, parent_id: int, name: str) -> EntryInfo:
        ...

    async def delete_object(self, storage_id: int, object_id: int) -> None:
        ...

    async def open_writer(
        self,
        storage_id: int,
        parent_id: int,
        name: str,
        size: int,
    ) -> IObjectWriter:
        """Start a new leaf object of ``size`` bytes under ``parent_id``."""
        ...
