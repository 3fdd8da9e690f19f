"""Shared utility helpers."""

from appdist.utils.paths import (
    atomic_temp_path,
    ensure_directories,
    remove_path,
    write_json_atomically,
    write_marker_file,
    write_text_atomically,
)
from appdist.utils.time_utils import elapsed_seconds, now_utc, run_stamp

__all__ = [
    "atomic_temp_path",
    "ensure_directories",
    "remove_path",
    "write_json_atomically",
    "write_marker_file",
    "write_text_atomically",
    "now_utc",
    "run_stamp",
    "elapsed_seconds",
]
