"""Zip-compatible archive reading and deterministic entry ordering."""

import zipfile
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import IO, BinaryIO

from cbzkit.config.constants import SOURCE_TEMP_CBZ_FILE
from cbzkit.exceptions import EmptyArchiveError, SourceIOError
from cbzkit.services.storage import SourceHandle
from cbzkit.utils.fs import ScratchArea, copy_stream
from cbzkit.utils.logging import get_logger

log = get_logger(__name__)

# Raised while reading one entry; NotImplementedError for unsupported compression
# methods and RuntimeError for encrypted entries
ENTRY_READ_ERRORS = (
    OSError,
    zipfile.BadZipFile,
    ValueError,
    NotImplementedError,
    RuntimeError,
)


class SortMode(StrEnum):
    """How page entries are ordered.

    ``ON_DISK`` is whatever order the zip reader enumerates entries in (the
    central directory order for ``zipfile``). It is not a guaranteed sort by
    physical byte offset.
    """

    LEXICOGRAPHIC = "lexicographic"
    ON_DISK = "on_disk"


@dataclass(frozen=True)
class ArchiveEntry:
    """Read-only view of one entry; valid only while its archive is open."""

    name: str
    is_directory: bool
    sequence_index: int
    _info: zipfile.ZipInfo = field(repr=False, compare=False)
    _archive: "Archive" = field(repr=False, compare=False)

    def open(self) -> IO[bytes]:
        """Open the entry's bytes for reading."""
        return self._archive.zip_file.open(self._info)

    @property
    def date_time(self) -> tuple[int, int, int, int, int, int]:
        """Modification timestamp recorded in the zip."""
        return self._info.date_time


class Archive:
    """An open zip container. Closing it invalidates all of its entries."""

    def __init__(self, zip_file: zipfile.ZipFile, name: str) -> None:
        self.zip_file = zip_file
        self.name = name
        self._entries = [
            ArchiveEntry(
                name=info.filename,
                is_directory=info.is_dir(),
                sequence_index=index,
                _info=info,
                _archive=self,
            )
            for index, info in enumerate(zip_file.infolist())
        ]

    def entries(self) -> list[ArchiveEntry]:
        """All entries, directories included, in native enumeration order."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def close(self) -> None:
        self.zip_file.close()

    def __enter__(self) -> "Archive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ArchiveReader:
    """Opens CBZ/zip sources and produces ordered page lists."""

    def open(self, stream: BinaryIO | Path | str, name: str | None = None) -> Archive:
        """Open a zip-compatible stream or path.

        Raises:
            EmptyArchiveError: The container has no entries at all
            SourceIOError: The data is not a readable zip container
        """
        label = name or (str(stream) if isinstance(stream, (str, Path)) else "archive")
        try:
            zip_file = zipfile.ZipFile(stream, "r")
        except (zipfile.BadZipFile, OSError) as e:
            raise SourceIOError(label, f"not a readable zip archive ({e})", cause=e) from e

        archive = Archive(zip_file, label)
        if len(archive) == 0:
            archive.close()
            raise EmptyArchiveError(label)

        log.debug("Archive opened", archive=label, entries=len(archive))
        return archive

    def ordered_entries(self, archive: Archive, sort_mode: SortMode) -> list[ArchiveEntry]:
        """Page entries (directories excluded) in the requested order.

        Lexicographic ordering is a stable sort on the entry name.
        """
        pages = [entry for entry in archive.entries() if not entry.is_directory]
        if sort_mode == SortMode.LEXICOGRAPHIC:
            return sorted(pages, key=lambda entry: entry.name)
        return pages

    def materialize_source(self, source: SourceHandle, scratch: ScratchArea) -> Path:
        """Copy a source's stream into the scratch area and close the stream.

        Zip reading needs random access; collaborator streams may not be
        seekable, so every source is copied before it is opened.

        Raises:
            SourceIOError: The stream could not be opened or copied
        """
        target = scratch.path(SOURCE_TEMP_CBZ_FILE)
        try:
            with source.open() as stream, open(target, "wb") as out:
                copied = copy_stream(stream, out)
        except OSError as e:
            target.unlink(missing_ok=True)
            message = f"could not copy to cache ({e})"
            raise SourceIOError(source.display_name, message, cause=e) from e

        log.debug("Source copied to scratch", source=source.display_name, size=copied)
        return target
