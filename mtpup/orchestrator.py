"""Orchestrator - owns the device session and dispatches walks and uploads."""
import logging
from typing import List, Optional, Union

from .exceptions import (
    DeviceConnectionError,
    DeviceQueryError,
    MTPError,
    NoStorageError,
)
from .models import (
    DeviceInfo,
    StorageDescriptor,
    TransferConfig,
    UploadRequest,
    UploadResult,
    WalkResult,
)
from .protocols import IDeviceSession
from .use_cases.upload import PreprocessCallback, ProgressCallback, UploadFilesUseCase
from .use_cases.walk import Visitor, WalkDirectoryUseCase

logger = logging.getLogger(__name__)


class TransferOrchestrator:
    """
    Orchestrates one device session.

    The session is opened on enter and closed on exit, on every path.

    Usage:
        async with TransferOrchestrator(MountedDeviceSession.discover()) as mtp:
            storage = await mtp.select_storage()
            result = await mtp.walk(storage.storage_id, "/Download", visit=print)
    """

    def __init__(
        self,
        session: IDeviceSession,
        config: Optional[TransferConfig] = None,
        walker: Optional[WalkDirectoryUseCase] = None,
        uploader: Optional[UploadFilesUseCase] = None,
    ):
        self._session = session
        self._config = config or TransferConfig()
        self._walker = walker or WalkDirectoryUseCase(self._config)
        self._uploader = uploader or UploadFilesUseCase(self._config)
        self._storages: Optional[List[StorageDescriptor]] = None

    @property
    def config(self) -> TransferConfig:
        return self._config

    async def __aenter__(self):
        try:
            await self._session.open()
        except DeviceConnectionError:
            raise
        except MTPError as exc:
            raise DeviceConnectionError(f"failed to initialize device: {exc}") from exc
        logger.info("Device session opened")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._storages = None
        try:
            await self._session.close()
        except MTPError as close_exc:
            if exc is None:
                raise DeviceConnectionError(f"failed to dispose device: {close_exc}") from close_exc
            logger.error(f"Failed to dispose device while handling {exc_type.__name__}: {close_exc}")
        else:
            logger.info("Device session closed")

    async def fetch_device_info(self) -> DeviceInfo:
        try:
            return await self._session.fetch_device_info()
        except DeviceQueryError:
            raise
        except MTPError as exc:
            raise DeviceQueryError(f"failed to get device info: {exc}") from exc

    async def fetch_storages(self) -> List[StorageDescriptor]:
        """Fetch the storage snapshot once per session."""
        if self._storages is None:
            try:
                self._storages = list(await self._session.fetch_storages())
            except DeviceQueryError:
                raise
            except MTPError as exc:
                raise DeviceQueryError(f"failed to fetch storages: {exc}") from exc
            logger.info(f"Found {len(self._storages)} storage(s)")
        return self._storages

    async def select_storage(self, selector: Union[int, str, None] = None) -> StorageDescriptor:
        """
        Pick a storage.

        ``selector`` may be a storage id (decimal or ``0x`` hex) or an index
        into the storage list. Without a selector the first storage is used.
        """
        storages = await self.fetch_storages()
        if not storages:
            raise NoStorageError("no storage found on device")
        if selector is None:
            return storages[0]

        try:
            wanted = int(selector, 0) if isinstance(selector, str) else int(selector)
        except ValueError as exc:
            raise NoStorageError(f"invalid storage selector: {selector!r}") from exc

        for storage in storages:
            if storage.storage_id == wanted:
                return storage
        if 0 <= wanted < len(storages):
            return storages[wanted]
        raise NoStorageError(f"no storage matches {selector!r}")

    async def walk(
        self,
        storage_id: int,
        path: Optional[str] = None,
        visit: Optional[Visitor] = None,
        recursive: Optional[bool] = None,
        skip_disallowed: Optional[bool] = None,
        skip_hidden: Optional[bool] = None,
    ) -> WalkResult:
        config = self._config
        return await self._walker.execute(
            self._session,
            storage_id,
            path or config.default_path,
            recursive=config.recursive if recursive is None else recursive,
            skip_disallowed=config.skip_disallowed if skip_disallowed is None else skip_disallowed,
            skip_hidden=config.skip_hidden if skip_hidden is None else skip_hidden,
            visit=visit,
        )

    async def upload(
        self,
        request: UploadRequest,
        on_preprocess: Optional[PreprocessCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        return await self._uploader.execute(
            self._session,
            request.storage_id,
            request.sources,
            request.dest_path or self._config.default_path,
            preprocess=request.preprocess,
            on_preprocess=on_preprocess,
            on_progress=on_progress,
        )
