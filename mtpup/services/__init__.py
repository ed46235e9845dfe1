"""Device session implementations."""
from .memory_session import MemoryDeviceSession, MemoryObjectWriter
from .mounted_session import MountedDeviceSession, MountedObjectWriter, parse_mount_name

__all__ = [
    "MemoryDeviceSession",
    "MemoryObjectWriter",
    "MountedDeviceSession",
    "MountedObjectWriter",
    "parse_mount_name",
]
