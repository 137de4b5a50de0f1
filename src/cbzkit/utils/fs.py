"""File system utilities for cbzkit.

Provides the job scratch area, safe filename handling and stream copies.
"""

import shutil
from pathlib import Path
from typing import IO

from cbzkit.utils.logging import get_logger

log = get_logger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(filename: str, max_length: int = 255) -> str:
    """Create a safe filename by removing/replacing problematic characters.

    Args:
        filename: Original filename
        max_length: Maximum filename length

    Returns:
        Safe filename
    """
    replacements = {
        "/": "_",
        "\\": "_",
        ":": "_",
        "*": "_",
        "?": "_",
        '"': "_",
        "<": "_",
        ">": "_",
        "|": "_",
        "\0": "",
    }

    result = filename
    for old, new in replacements.items():
        result = result.replace(old, new)

    result = result.strip(". ")

    if len(result) > max_length:
        stem, suffix = split_extension(result)
        max_stem = max_length - len(suffix)
        result = stem[:max_stem] + suffix

    return result


def split_extension(name: str) -> tuple[str, str]:
    """Split ``name`` at its last dot into (stem, extension-with-dot).

    Unlike ``Path.suffix`` a name such as ``"Vol. 1"`` splits at the last
    dot as well; names without a dot return an empty extension.
    """
    dot = name.rfind(".")
    if dot == -1:
        return name, ""
    return name[:dot], name[dot:]


def copy_stream(src: IO[bytes], dst: IO[bytes], chunk_size: int = COPY_CHUNK_SIZE) -> int:
    """Copy ``src`` into ``dst`` in fixed-size chunks.

    Returns:
        Number of bytes copied
    """
    copied = 0
    while chunk := src.read(chunk_size):
        dst.write(chunk)
        copied += len(chunk)
    return copied


def delete_quietly(path: Path) -> None:
    """Delete a file, logging instead of raising when it cannot be removed."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        log.warning("Could not delete temporary file", path=str(path), error=str(e))


class ScratchArea:
    """Single scratch directory shared by every step of one job.

    Holds the materialized source archive, the combined archive, the
    per-image scratch files and the memory batch PDFs. It is wiped at the
    start of each job, so two jobs must never share one.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def clear(self) -> None:
        """Remove every file from the scratch area and recreate it."""
        if self.root.exists():
            shutil.rmtree(self.root, ignore_errors=True)
        ensure_directory(self.root)
        log.debug("Scratch area cleared", path=str(self.root))

    def path(self, name: str) -> Path:
        """Path of a named scratch file (the directory is created on demand)."""
        ensure_directory(self.root)
        return self.root / name

