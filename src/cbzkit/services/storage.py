"""Storage collaborators consumed by the conversion engine.

The engine never touches input or output locations directly: it reads each
source through a ``SourceHandle`` and writes finished artifacts through an
``OutputDirectory``. These protocols keep the engine independent of where the
bytes live; the local-filesystem implementations below back the CLI and tests.
"""

import io
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from cbzkit.exceptions import OutputUnavailableError, StorageIOError
from cbzkit.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class SourceHandle(Protocol):
    """Readable input archive plus the naming hints the caller resolved for it."""

    @property
    def identity(self) -> str:
        """Stable key for this source within one job."""
        ...

    @property
    def display_name(self) -> str:
        """File name hint, e.g. ``"Chapter 12.cbz"``."""
        ...

    @property
    def group_name(self) -> str | None:
        """Series/folder title, when the caller knows one."""
        ...

    @property
    def parent_id(self) -> str | None:
        """Identity of the containing folder, when known."""
        ...

    def open(self) -> BinaryIO:
        """Open a fresh readable byte stream for the archive."""
        ...


@runtime_checkable
class OutputDirectory(Protocol):
    """Writable destination with a listing operation."""

    @property
    def location(self) -> str:
        """Human-readable location used in logs and errors."""
        ...

    def check_writable(self) -> None:
        """Raise ``OutputUnavailableError`` if nothing can be written here."""
        ...

    def list_names(self) -> set[str]:
        """Names currently present in the directory."""
        ...

    def open_write(self, name: str) -> BinaryIO:
        """Create ``name`` and return a writable stream; never replaces an existing file."""
        ...

    def delete(self, name: str) -> None:
        """Remove ``name`` if it exists."""
        ...

    def path_of(self, name: str) -> Path | None:
        """Local path of ``name``, or None for non-filesystem destinations."""
        ...


@dataclass(frozen=True)
class FileSource:
    """A CBZ on the local filesystem.

    The group name defaults to the containing folder's name, which is how
    downloaded chapters of one series are usually laid out.
    """

    path: Path
    group: str | None = None
    name: str | None = None

    @property
    def identity(self) -> str:
        return str(self.path.resolve())

    @property
    def display_name(self) -> str:
        return self.name or self.path.name

    @property
    def group_name(self) -> str | None:
        if self.group:
            return self.group
        parent_name = self.path.resolve().parent.name
        return parent_name or None

    @property
    def parent_id(self) -> str | None:
        return str(self.path.resolve().parent)

    def open(self) -> BinaryIO:
        return open(self.path, "rb")


@dataclass(frozen=True)
class BytesSource:
    """An in-memory archive, for callers that already hold the bytes."""

    data: bytes = field(repr=False)
    name: str
    group: str | None = None
    parent: str | None = None

    @property
    def identity(self) -> str:
        return f"memory:{self.parent or ''}/{self.name}"

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def group_name(self) -> str | None:
        return self.group

    @property
    def parent_id(self) -> str | None:
        return self.parent

    def open(self) -> BinaryIO:
        return io.BytesIO(self.data)


class LocalOutputDirectory:
    """Output directory on the local filesystem."""

    def __init__(self, path: Path, create: bool = True) -> None:
        self.path = Path(path)
        self.create = create

    @property
    def location(self) -> str:
        return str(self.path)

    def check_writable(self) -> None:
        if self.create and not self.path.exists():
            try:
                self.path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                message = f"Cannot create output directory ({e})"
                raise OutputUnavailableError(self.path, message) from e
        if not self.path.is_dir():
            raise OutputUnavailableError(self.path, "Output path is not a directory")
        if not os.access(self.path, os.W_OK):
            raise OutputUnavailableError(self.path)

    def list_names(self) -> set[str]:
        try:
            return set(os.listdir(self.path))
        except FileNotFoundError:
            return set()
        except OSError as e:
            raise StorageIOError(self.path, "Cannot list output directory", cause=e) from e

    def open_write(self, name: str) -> BinaryIO:
        """Create ``name``; an existing file (including a case-only match) is never replaced."""
        try:
            return open(self.path / name, "xb")
        except FileExistsError as e:
            raise StorageIOError(self.path / name, "Output file already exists", cause=e) from e
        except OSError as e:
            message = f"Cannot create output file ({e})"
            raise OutputUnavailableError(self.path / name, message) from e

    def delete(self, name: str) -> None:
        target = self.path / name
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            log.warning("Could not delete partial output", path=str(target), error=str(e))

    def path_of(self, name: str) -> Path | None:
        return self.path / name
