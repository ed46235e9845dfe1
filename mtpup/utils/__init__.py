"""Shared helpers."""
from .callbacks import invoke_callback
from .paths import join_device_path, normalize_device_path, parent_and_name, split_device_path

__all__ = [
    "invoke_callback",
    "join_device_path",
    "normalize_device_path",
    "parent_and_name",
    "split_device_path",
]
