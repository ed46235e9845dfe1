"""Use cases for preparing upload destinations on the device."""
from __future__ import annotations

import logging

from mtpup.exceptions import DestinationConflictError, PathNotFoundError
from mtpup.models import EntryInfo
from mtpup.protocols import IDeviceSession
from mtpup.utils.paths import join_device_path, normalize_device_path, split_device_path

logger = logging.getLogger(__name__)


class ResolveDestinationUseCase:
    """Get or create a container path, creating missing segments in order."""

    async def execute(self, session: IDeviceSession, storage_id: int, dest_path: str) -> EntryInfo:
        path = normalize_device_path(dest_path)

        existing = await session.resolve_path(storage_id, path)
        if existing is not None:
            if not existing.is_dir:
                raise DestinationConflictError(f"{path} exists and is not a directory")
            logger.debug(f"Destination exists: {path} (id: {existing.object_id})")
            return existing

        current = await session.resolve_path(storage_id, "/")
        if current is None:
            raise PathNotFoundError(f"storage {storage_id} has no root")

        logger.info(f"Creating folder structure: {path}")
        current_path = "/"
        creating = False
        for part in split_device_path(path):
            current_path = join_device_path(current_path, part)

            if not creating:
                node = await session.resolve_path(storage_id, current_path)
                if node is not None:
                    if not node.is_dir:
                        raise DestinationConflictError(
                            f"{current_path} exists and is not a directory"
                        )
                    current = node
                    continue
                creating = True

            logger.info(f"Creating folder: {part} in parent (id: {current.object_id})")
            current = await session.create_folder(storage_id, current.object_id, part)

        logger.info(f"Folder structure created/verified: {path} (id: {current.object_id})")
        return current


class ResolveLeafConflictUseCase:
    """
    Apply the conflict policy for ``name`` inside ``folder``.

    ``replace`` deletes existing leaves of the same name; ``reject`` refuses.
    A container of the same name is always a conflict.
    """

    async def execute(
        self,
        session: IDeviceSession,
        storage_id: int,
        folder: EntryInfo,
        name: str,
        policy: str = "replace",
    ) -> int:
        replaced = 0
        for child in await session.list_children(storage_id, folder.object_id):
            if child.name != name:
                continue
            if child.is_dir:
                raise DestinationConflictError(f"{child.path} is a directory")
            if policy == "reject":
                raise DestinationConflictError(f"{child.path} already exists")

            logger.info(f"Replacing existing object {child.path} (id: {child.object_id})")
            await session.delete_object(storage_id, child.object_id)
            replaced += 1
        return replaced
