"""Command line interface for mtpup."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.logging import RichHandler

from . import __version__
from .cli_progress import (
    ListingPrinter,
    SingleFileUploadProgress,
    render_configuration_summary,
    render_device_info,
    render_error,
    render_storages,
)
from .exceptions import MTPError
from .models import StorageDescriptor, TransferConfig, UploadRequest
from .orchestrator import TransferOrchestrator
from .services.mounted_session import MountedDeviceSession

logger = logging.getLogger(__name__)


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with status 1."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug, --log-level or LOG_LEVEL is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or (not debug and not log_level and not env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level).upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _load_config() -> TransferConfig:
    try:
        return TransferConfig.from_env()
    except ValueError as exc:
        raise CLIError(f"invalid configuration: {exc}") from exc


def _build_session(mount: Optional[Path]) -> MountedDeviceSession:
    mount_root = mount or (Path(os.environ["MTPUP_MOUNT_ROOT"]) if os.getenv("MTPUP_MOUNT_ROOT") else None)
    if mount_root is not None:
        return MountedDeviceSession(Path(mount_root).expanduser())
    return MountedDeviceSession.discover()


async def _run_list(
    orchestrator: TransferOrchestrator,
    storage: StorageDescriptor,
    path: str,
    recursive: Optional[bool],
    skip_hidden: Optional[bool],
) -> int:
    printer = ListingPrinter(path, storage.storage_id)
    printer.start()
    result = await orchestrator.walk(
        storage.storage_id,
        path,
        visit=printer.visit,
        recursive=recursive,
        skip_hidden=skip_hidden,
    )
    if result.error is not None:
        render_error(f"Failed to list directory: {result.error}")
    printer.finish(result)
    return 0 if result.success else 1


async def _run_upload(
    orchestrator: TransferOrchestrator,
    storage: StorageDescriptor,
    source: Path,
    dest: str,
    preprocess: bool,
) -> int:
    progress = SingleFileUploadProgress(source, dest)
    request = UploadRequest(
        sources=[source],
        dest_path=dest,
        storage_id=storage.storage_id,
        preprocess=preprocess,
    )
    result = await orchestrator.upload(
        request,
        on_preprocess=progress.on_preprocess,
        on_progress=progress.on_progress,
    )
    progress.complete(result)
    if result.error is not None:
        render_error(f"Upload failed: {result.error}")
        return 1
    return 0


async def _run(args: argparse.Namespace, config: TransferConfig) -> int:
    session = _build_session(args.mount)
    async with TransferOrchestrator(session, config) as orchestrator:
        render_device_info(await orchestrator.fetch_device_info())
        render_storages(await orchestrator.fetch_storages())
        storage = await orchestrator.select_storage(args.storage)
        logger.info(f"Using storage {storage.description} ({storage.storage_id})")

        if args.list_path is not None:
            return await _run_list(
                orchestrator,
                storage,
                args.list_path or config.default_path,
                recursive=args.recursive or None,
                skip_hidden=args.skip_hidden,
            )

        source = Path(args.upload[0]).expanduser()
        dest = args.upload[1] if len(args.upload) > 1 else config.default_path
        return await _run_upload(
            orchestrator,
            storage,
            source,
            dest,
            preprocess=config.preprocess and not args.no_preprocess,
        )


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="mtp-up",
        description="List or upload files on an attached MTP device.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-l",
        "--list",
        dest="list_path",
        nargs="?",
        const="",
        default=None,
        metavar="PATH",
        help="List entries under PATH (default /Download)",
    )
    mode.add_argument(
        "-u",
        "--upload",
        nargs="+",
        default=None,
        metavar="FILE",
        help="Upload: <source_file> [destination_path] (destination default /Download)",
    )
    parser.add_argument(
        "-s",
        "--storage",
        default=None,
        help="Storage id (decimal or 0x hex) or index; default is the first storage",
    )
    parser.add_argument("-r", "--recursive", action="store_true", help="List the whole subtree")
    parser.add_argument(
        "--skip-hidden",
        action="store_true",
        default=None,
        help="Hide entries whose name starts with '.'",
    )
    parser.add_argument(
        "--no-preprocess",
        action="store_true",
        help="Skip the size preprocessing pass before uploading",
    )
    parser.add_argument(
        "-m",
        "--mount",
        type=Path,
        default=None,
        help="Device mount point (default from MTPUP_MOUNT_ROOT or gvfs discovery)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mtp-up {__version__}",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.list_path is None and args.upload is None:
        render_error("Too few arguments provided")
        parser.print_usage(sys.stderr)
        return 1
    if args.upload is not None and len(args.upload) > 2:
        render_error("Usage: -u <source_file> [destination_path]")
        return 1

    used_env_file = args.env_file or _resolve_default_env_file()
    try:
        if used_env_file is not None:
            _load_env_file(Path(used_env_file))
        config = _load_config()
    except CLIError as exc:
        render_error(str(exc))
        return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.list_path is not None:
        mode, target, dest = "list", args.list_path or config.default_path, "-"
    else:
        mode, target = "upload", args.upload[0]
        dest = args.upload[1] if len(args.upload) > 1 else config.default_path
    render_configuration_summary(
        {
            "Mode": mode,
            "Target": target,
            "Dest": dest,
            "Mount": str(args.mount or os.getenv("MTPUP_MOUNT_ROOT") or "(auto)"),
            "Storage": args.storage or "(first)",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(_run(args, config))
    except MTPError as exc:
        render_error(str(exc))
        return 1
    except KeyboardInterrupt:
        render_error("Cancelled.")
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
