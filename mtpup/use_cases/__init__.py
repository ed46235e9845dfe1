"""Application use cases for device walks and uploads."""

from .destination import ResolveDestinationUseCase, ResolveLeafConflictUseCase
from .upload import (
    StatSourceUseCase,
    TransferFileUseCase,
    UploadFilesUseCase,
    UploadJob,
)
from .walk import ResolveWalkRootUseCase, WalkDirectoryUseCase, WalkOptions

__all__ = [
    "ResolveDestinationUseCase",
    "ResolveLeafConflictUseCase",
    "StatSourceUseCase",
    "TransferFileUseCase",
    "UploadFilesUseCase",
    "UploadJob",
    "ResolveWalkRootUseCase",
    "WalkDirectoryUseCase",
    "WalkOptions",
]
