"""url helpers shared by the login url matcher and the on-disk sinks."""

from .urls import fix_url, origin_path, storage_path

__all__ = [
    "fix_url",
    "origin_path",
    "storage_path",
]
