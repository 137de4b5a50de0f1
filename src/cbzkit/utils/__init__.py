"""Utility modules for cbzkit."""

from cbzkit.utils.fs import ScratchArea, copy_stream, safe_filename, split_extension
from cbzkit.utils.logging import get_logger, setup_logging, setup_task_logging

__all__ = [
    "ScratchArea",
    "copy_stream",
    "get_logger",
    "safe_filename",
    "setup_logging",
    "setup_task_logging",
    "split_extension",
]
