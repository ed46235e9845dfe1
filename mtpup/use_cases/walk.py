"""Directory walk over a device storage."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from mtpup.exceptions import MTPError, PathNotFoundError
from mtpup.models import EntryInfo, TransferConfig, WalkResult
from mtpup.protocols import IDeviceSession
from mtpup.utils.callbacks import invoke_callback
from mtpup.utils.paths import normalize_device_path

logger = logging.getLogger(__name__)

Visitor = Callable[[EntryInfo], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class WalkOptions:
    recursive: bool = False
    skip_disallowed: bool = True
    skip_hidden: bool = False


@dataclass
class _WalkCounter:
    """Accumulator scoped to a single walk call."""

    files: int = 0
    dirs: int = 0

    def add(self, entry: EntryInfo) -> None:
        if entry.is_dir:
            self.dirs += 1
        else:
            self.files += 1


class ResolveWalkRootUseCase:
    """Resolve a device path to a container entry."""

    async def execute(self, session: IDeviceSession, storage_id: int, path: str) -> EntryInfo:
        root = await session.resolve_path(storage_id, path)
        if root is None:
            raise PathNotFoundError(f"{path} does not exist on storage {storage_id}")
        if not root.is_dir:
            raise PathNotFoundError(f"{path} is not a directory")
        return root


class WalkDirectoryUseCase:
    """
    Traverse the objects under a root path and feed them to a visitor.

    Non-recursive walks visit immediate children only; recursive walks are
    depth-first with every container visited before its descendants. Child
    order is whatever the session yields.
    """

    def __init__(
        self,
        config: Optional[TransferConfig] = None,
        resolve_root: Optional[ResolveWalkRootUseCase] = None,
    ):
        self._config = config or TransferConfig()
        self._resolve_root = resolve_root or ResolveWalkRootUseCase()

    async def execute(
        self,
        session: IDeviceSession,
        storage_id: int,
        root_path: str,
        recursive: bool = False,
        skip_disallowed: bool = True,
        skip_hidden: bool = False,
        visit: Optional[Visitor] = None,
    ) -> WalkResult:
        path = normalize_device_path(root_path)
        options = WalkOptions(
            recursive=recursive,
            skip_disallowed=skip_disallowed,
            skip_hidden=skip_hidden,
        )
        result = WalkResult()

        try:
            result.root = await self._resolve_root.execute(session, storage_id, path)
        except MTPError as exc:
            logger.debug(f"Walk root resolution failed for {path}: {exc}")
            result.error = exc
            return result

        logger.debug(f"Walking {path} on storage {storage_id} ({options})")
        counter = _WalkCounter()
        try:
            error = await self._walk_container(
                session, storage_id, result.root, options, visit, counter
            )
        except MTPError as exc:
            error = exc

        result.total_files = counter.files
        result.total_dirs = counter.dirs
        result.error = error
        if error is not None:
            logger.debug(f"Walk of {path} stopped: {error}")
        else:
            logger.debug(f"Walk of {path} done: {counter.files} files, {counter.dirs} dirs")
        return result

    def admits(self, entry: EntryInfo, options: WalkOptions) -> bool:
        if options.skip_disallowed and self._config.is_disallowed(entry.name):
            return False
        if options.skip_hidden and self._config.is_hidden(entry.name):
            return False
        return True

    async def _walk_container(
        self,
        session: IDeviceSession,
        storage_id: int,
        container: EntryInfo,
        options: WalkOptions,
        visit: Optional[Visitor],
        counter: _WalkCounter,
    ) -> Optional[MTPError]:
        children = await session.list_children(storage_id, container.object_id)
        for entry in children:
            if not self.admits(entry, options):
                continue

            counter.add(entry)
            error = await invoke_callback(visit, entry, label="visitor")
            if error is not None:
                return error

            if entry.is_dir and options.recursive:
                error = await self._walk_container(
                    session, storage_id, entry, options, visit, counter
                )
                if error is not None:
                    return error
        return None
