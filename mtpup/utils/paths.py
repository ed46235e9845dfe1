"""Device path helpers. Device paths are always POSIX-style."""
from typing import List, Tuple


def normalize_device_path(path: str) -> str:
    """
    Normalize a device path.

    Leading slash added, empty and ``.`` segments dropped, trailing slash removed.
    The storage root is ``/``.
    """
    parts = split_device_path(path)
    return "/" + "/".join(parts)


def split_device_path(path: str) -> List[str]:
    if path is None:
        return []
    value = path.strip().replace("\\", "/")
    parts = []
    for part in value.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return parts


def join_device_path(parent: str, name: str) -> str:
    parent = normalize_device_path(parent)
    if parent == "/":
        return f"/{name}"
    return f"{parent}/{name}"


def parent_and_name(path: str) -> Tuple[str, str]:
    parts = split_device_path(path)
    if not parts:
        return "/", ""
    return "/" + "/".join(parts[:-1]), parts[-1]
