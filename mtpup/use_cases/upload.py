"""Use cases for uploading local files to a device storage."""
from __future__ import annotations

import asyncio
import logging
import stat
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, BinaryIO, Callable, Dict, List, Optional, Sequence, Union

from mtpup.exceptions import (
    DestinationConflictError,
    DeviceWriteError,
    MTPError,
    ProgressCallbackError,
    SourceNotFoundError,
)
from mtpup.models import (
    DEFAULT_CHUNK_SIZE,
    EntryInfo,
    FileState,
    PreprocessInfo,
    ProgressEvent,
    ProgressStatus,
    TransferConfig,
    UploadResult,
)
from mtpup.protocols import IDeviceSession, IObjectWriter
from mtpup.use_cases.destination import ResolveDestinationUseCase, ResolveLeafConflictUseCase
from mtpup.utils.callbacks import invoke_callback
from mtpup.utils.paths import join_device_path

logger = logging.getLogger(__name__)

PreprocessCallback = Callable[[PreprocessInfo], Union[Any, Awaitable[Any]]]
ProgressCallback = Callable[[ProgressEvent], Union[Any, Awaitable[Any]]]


@dataclass
class UploadJob:
    """One source moving through the pipeline."""
    source: Path
    size: Optional[int] = None
    state: FileState = FileState.PENDING
    dest_path: Optional[str] = None

    def move_to(self, state: FileState) -> None:
        logger.debug(f"{self.source.name}: {self.state.value} -> {state.value}")
        self.state = state


@dataclass
class _ProgressTracker:
    total_files: int
    bulk_total_bytes: Optional[int]
    started: float = field(default_factory=time.monotonic)
    files_sent: int = 0
    bytes_done: int = 0

    def snapshot(self, status: ProgressStatus, job: UploadJob, bytes_sent: int) -> ProgressEvent:
        in_flight = 0 if status == ProgressStatus.COMPLETED else bytes_sent
        return ProgressEvent(
            status=status,
            source=job.source,
            dest_path=job.dest_path or "",
            file_size=job.size or 0,
            bytes_sent=bytes_sent,
            files_sent=self.files_sent,
            total_files=self.total_files,
            bulk_bytes_sent=self.bytes_done + in_flight,
            bulk_total_bytes=self.bulk_total_bytes,
            elapsed=time.monotonic() - self.started,
        )

    def complete(self, job: UploadJob) -> None:
        self.files_sent += 1
        self.bytes_done += job.size or 0


class StatSourceUseCase:
    """Stat a local upload source; it must be an existing regular file."""

    @staticmethod
    def execute(path: Path) -> PreprocessInfo:
        try:
            st = path.stat()
        except OSError as exc:
            raise SourceNotFoundError(f"{path}: {exc.strerror or exc}") from exc
        if not stat.S_ISREG(st.st_mode):
            raise SourceNotFoundError(f"{path} is not a regular file")
        return PreprocessInfo(
            path=path,
            size=st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime),
        )


class TransferFileUseCase:
    """Stream one local file into a new leaf object, reporting each chunk."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._chunk_size = chunk_size

    async def execute(
        self,
        session: IDeviceSession,
        storage_id: int,
        folder: EntryInfo,
        job: UploadJob,
        on_chunk: Callable[[int], Awaitable[Optional[MTPError]]],
    ) -> Union[EntryInfo, MTPError]:
        """Return the committed entry, or the error that stopped the transfer."""
        size = job.size or 0
        try:
            handle = job.source.open("rb")
        except OSError as exc:
            return SourceNotFoundError(f"{job.source}: {exc.strerror or exc}")

        with handle:
            try:
                writer = await session.open_writer(storage_id, folder.object_id, job.source.name, size)
            except MTPError as exc:
                return self._as_write_error(exc, job)

            error = await self._stream(handle, writer, job, size, on_chunk)
            if error is not None:
                await self._release(writer, job)
                return error

        try:
            return await writer.commit()
        except MTPError as exc:
            return self._as_write_error(exc, job)

    async def _stream(
        self,
        handle: BinaryIO,
        writer: IObjectWriter,
        job: UploadJob,
        size: int,
        on_chunk: Callable[[int], Awaitable[Optional[MTPError]]],
    ) -> Optional[MTPError]:
        sent = 0
        while sent < size:
            try:
                chunk = await asyncio.to_thread(handle.read, min(self._chunk_size, size - sent))
            except OSError as exc:
                return SourceNotFoundError(f"{job.source}: read failed: {exc}")
            if not chunk:
                return SourceNotFoundError(f"{job.source} shrank during upload ({sent}/{size} bytes)")

            try:
                await writer.write(chunk)
            except MTPError as exc:
                return self._as_write_error(exc, job)

            sent += len(chunk)
            error = await on_chunk(sent)
            if error is not None:
                return error
        return None

    @staticmethod
    async def _release(writer: IObjectWriter, job: UploadJob) -> None:
        try:
            await writer.abort()
        except MTPError as exc:
            logger.warning(f"Could not release writer for {job.source.name}: {exc}")

    @staticmethod
    def _as_write_error(exc: MTPError, job: UploadJob) -> MTPError:
        if isinstance(exc, DeviceWriteError):
            return exc
        wrapped = DeviceWriteError(f"writing {job.source.name} failed: {exc}")
        wrapped.__cause__ = exc
        return wrapped


class UploadFilesUseCase:
    """
    Upload a batch of local files into one destination container.

    Each file goes PENDING -> PREPROCESSING (optional) -> TRANSFERRING ->
    COMPLETED, or FAILED. The first failure ends the batch. Only completed
    files count towards ``total_files`` and ``total_bytes``.
    """

    def __init__(
        self,
        config: Optional[TransferConfig] = None,
        stat_source: Optional[StatSourceUseCase] = None,
        resolve_destination: Optional[ResolveDestinationUseCase] = None,
        resolve_conflict: Optional[ResolveLeafConflictUseCase] = None,
        transfer_file: Optional[TransferFileUseCase] = None,
    ):
        self._config = config or TransferConfig()
        self._stat_source = stat_source or StatSourceUseCase()
        self._resolve_destination = resolve_destination or ResolveDestinationUseCase()
        self._resolve_conflict = resolve_conflict or ResolveLeafConflictUseCase()
        self._transfer_file = transfer_file or TransferFileUseCase(self._config.chunk_size)

    async def execute(
        self,
        session: IDeviceSession,
        storage_id: int,
        sources: Sequence[Union[str, Path]],
        dest_path: str,
        preprocess: bool = True,
        on_preprocess: Optional[PreprocessCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        result = UploadResult()
        jobs = [UploadJob(source=Path(source).expanduser()) for source in sources]
        if not jobs:
            return result

        error = self._check_unique_names(jobs)
        if error is not None:
            logger.error(f"Upload batch rejected: {error}")
            result.error = error
            return result

        bulk_total: Optional[int] = None
        if preprocess:
            error = await self._preprocess(jobs, on_preprocess)
            if error is not None:
                result.error = error
                return result
            bulk_total = sum(job.size or 0 for job in jobs)
            logger.info(f"Preprocessed {len(jobs)} file(s), {bulk_total} bytes total")

        tracker = _ProgressTracker(total_files=len(jobs), bulk_total_bytes=bulk_total)
        folder: Optional[EntryInfo] = None

        for job in jobs:
            if job.size is None:
                try:
                    job.size = self._stat_source.execute(job.source).size
                except SourceNotFoundError as exc:
                    return self._fail(result, job, exc)

            try:
                if folder is None:
                    folder = await self._resolve_destination.execute(session, storage_id, dest_path)
                await self._resolve_conflict.execute(
                    session, storage_id, folder, job.source.name, self._config.on_conflict
                )
            except MTPError as exc:
                return self._fail(result, job, exc)

            job.dest_path = join_device_path(folder.path, job.source.name)
            job.move_to(FileState.TRANSFERRING)
            logger.info(f"Uploading {job.source} -> {job.dest_path} ({job.size} bytes)")

            async def on_chunk(sent: int, job: UploadJob = job) -> Optional[MTPError]:
                event = tracker.snapshot(ProgressStatus.IN_PROGRESS, job, sent)
                return await invoke_callback(
                    on_progress, event, error_cls=ProgressCallbackError, label="progress callback"
                )

            outcome = await self._transfer_file.execute(session, storage_id, folder, job, on_chunk)
            if isinstance(outcome, MTPError):
                return self._fail(result, job, outcome)

            job.dest_path = outcome.path
            job.move_to(FileState.COMPLETED)
            tracker.complete(job)
            result.uploaded.append(outcome.path)
            result.total_files += 1
            result.total_bytes += job.size or 0
            logger.info(f"Uploaded {job.dest_path} (id: {outcome.object_id})")

            event = tracker.snapshot(ProgressStatus.COMPLETED, job, job.size or 0)
            error = await invoke_callback(
                on_progress, event, error_cls=ProgressCallbackError, label="progress callback"
            )
            if error is not None:
                result.error = error
                return result

        return result

    async def _preprocess(
        self,
        jobs: List[UploadJob],
        on_preprocess: Optional[PreprocessCallback],
    ) -> Optional[MTPError]:
        for job in jobs:
            job.move_to(FileState.PREPROCESSING)
            try:
                info = self._stat_source.execute(job.source)
            except SourceNotFoundError as exc:
                job.move_to(FileState.FAILED)
                return exc

            job.size = info.size
            error = await invoke_callback(on_preprocess, info, label="preprocess callback")
            if error is not None:
                job.move_to(FileState.FAILED)
                return error
        return None

    @staticmethod
    def _check_unique_names(jobs: List[UploadJob]) -> Optional[MTPError]:
        """Every source must land on a distinct name in the destination."""
        seen: Dict[str, Path] = {}
        for job in jobs:
            name = job.source.name
            if name in seen:
                return DestinationConflictError(
                    f"{job.source} and {seen[name]} would both be uploaded as {name}"
                )
            seen[name] = job.source
        return None

    @staticmethod
    def _fail(result: UploadResult, job: UploadJob, error: MTPError) -> UploadResult:
        job.move_to(FileState.FAILED)
        logger.error(f"Upload of {job.source} failed: {error}")
        result.error = error
        return result
