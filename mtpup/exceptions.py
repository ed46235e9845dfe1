"""Error taxonomy for device sessions, walks and uploads."""
from __future__ import annotations


class MTPError(Exception):
    """
    Base error for every failure reported by mtpup.

    Carries a short machine-readable ``code`` and an optional human ``hint``.
    """

    code = "MTP_ERROR"

    def __init__(self, hint: str = "", code: str = None):
        if code:
            self.code = code
        self.hint = hint
        super().__init__(f"{self.code}: {hint}" if hint else self.code)


class DeviceConnectionError(MTPError):
    """Session could not be opened or closed."""

    code = "CONNECTION_FAILED"


class DeviceQueryError(MTPError):
    """Device info or storage enumeration failed."""

    code = "DEVICE_QUERY_FAILED"


class NoStorageError(MTPError):
    code = "NO_STORAGE"


class PathNotFoundError(MTPError):
    """Device path does not resolve to a container."""

    code = "PATH_NOT_FOUND"


class SourceNotFoundError(MTPError):
    """Local upload source is missing or is not a regular file."""

    code = "SOURCE_NOT_FOUND"


class DestinationConflictError(MTPError):
    code = "DESTINATION_CONFLICT"


class DeviceCommunicationError(MTPError):
    """I/O failure against the device session."""

    code = "DEVICE_IO_ERROR"


class DeviceWriteError(DeviceCommunicationError):
    code = "DEVICE_WRITE_FAILED"


class CallbackAbort(MTPError):
    """A caller-supplied callback asked to stop (returned False or raised)."""

    code = "CALLBACK_ABORT"


class ProgressCallbackError(CallbackAbort):
    code = "PROGRESS_CALLBACK_FAILED"
