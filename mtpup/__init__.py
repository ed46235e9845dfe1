"""
mtpup - list and upload files on an attached MTP device.

Usage:
    from mtpup import TransferOrchestrator, MountedDeviceSession, UploadRequest

    async with TransferOrchestrator(MountedDeviceSession.discover()) as mtp:
        storage = await mtp.select_storage()

        # List /Download
        result = await mtp.walk(storage.storage_id, "/Download", visit=print)

        # Upload one file with progress
        request = UploadRequest([Path("photo.jpg")], "/Download", storage.storage_id)
        result = await mtp.upload(request, on_progress=lambda e: print(e.percent))
"""
from .exceptions import (
    CallbackAbort,
    DestinationConflictError,
    DeviceCommunicationError,
    DeviceConnectionError,
    DeviceQueryError,
    DeviceWriteError,
    MTPError,
    NoStorageError,
    PathNotFoundError,
    ProgressCallbackError,
    SourceNotFoundError,
)
from .models import (
    DeviceInfo,
    EntryInfo,
    PreprocessInfo,
    ProgressEvent,
    ProgressStatus,
    StorageDescriptor,
    TransferConfig,
    UploadRequest,
    UploadResult,
    WalkResult,
)
from .orchestrator import TransferOrchestrator
from .services import MemoryDeviceSession, MountedDeviceSession

__version__ = "0.1.0"
__all__ = [
    # Main
    "TransferOrchestrator",
    # Sessions
    "MemoryDeviceSession",
    "MountedDeviceSession",
    # Models
    "DeviceInfo",
    "EntryInfo",
    "PreprocessInfo",
    "ProgressEvent",
    "ProgressStatus",
    "StorageDescriptor",
    "TransferConfig",
    "UploadRequest",
    "UploadResult",
    "WalkResult",
    # Errors
    "MTPError",
    "CallbackAbort",
    "DestinationConflictError",
    "DeviceCommunicationError",
    "DeviceConnectionError",
    "DeviceQueryError",
    "DeviceWriteError",
    "NoStorageError",
    "PathNotFoundError",
    "ProgressCallbackError",
    "SourceNotFoundError",
]
