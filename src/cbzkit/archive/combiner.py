"""Merge several source archives into one synthetic archive."""

import zipfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from cbzkit.archive.reader import ENTRY_READ_ERRORS, ArchiveReader
from cbzkit.config.constants import COMBINED_TEMP_CBZ_FILE
from cbzkit.exceptions import CbzkitError, EmptyArchiveError
from cbzkit.services.storage import SourceHandle
from cbzkit.utils.fs import ScratchArea
from cbzkit.utils.logging import get_logger

log = get_logger(__name__)

# Up to 999,999,999 sources sort correctly by name.
INDEX_PAD_WIDTH = 9


def combined_entry_name(index: int, display_name: str, entry_name: str) -> str:
    """Name of an entry inside the combined archive.

    The zero-padded source index keeps each source's pages in one contiguous
    block under lexicographic ordering ("10_" never lands between "1_" and
    "2_"); the display name keeps names unique across sources.
    """
    return f"{index:0{INDEX_PAD_WIDTH}d}_{display_name}_{entry_name}"


@dataclass
class CombinedArchive:
    """The synthetic archive plus what could not be copied into it."""

    path: Path
    failed_sources: list[str] = field(default_factory=list)
    skipped_entries: list[str] = field(default_factory=list)


class ArchiveCombiner:
    """Builds ``combined_temp.cbz`` from an ordered list of sources."""

    def __init__(self, reader: ArchiveReader | None = None) -> None:
        self.reader = reader or ArchiveReader()

    def combine(
        self,
        sources: Sequence[SourceHandle],
        display_names: Sequence[str],
        scratch: ScratchArea,
        progress: Callable[[str], None],
    ) -> CombinedArchive:
        """Write every entry of every source into one zip in the scratch area.

        A failing entry is reported and skipped; a source that cannot be
        opened is skipped entirely. Neither aborts the combine.

        Returns:
            CombinedArchive pointing at the written zip
        """
        progress(f"Creating {COMBINED_TEMP_CBZ_FILE} in Cache")
        destination = scratch.path(COMBINED_TEMP_CBZ_FILE)
        combined = CombinedArchive(path=destination)

        with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_STORED) as out:
            for index, source in enumerate(sources):
                self._add_source(
                    out, index, source, display_names[index], scratch, progress, combined
                )

        log.info("Combined archive written", sources=len(sources), path=str(destination))
        return combined

    def _add_source(
        self,
        out: zipfile.ZipFile,
        index: int,
        source: SourceHandle,
        display_name: str,
        scratch: ScratchArea,
        progress: Callable[[str], None],
        combined: CombinedArchive,
    ) -> None:
        try:
            local_copy = self.reader.materialize_source(source, scratch)
            archive = self.reader.open(local_copy, name=source.display_name)
        except EmptyArchiveError as e:
            progress(str(e))
            log.info("Empty source skipped during combine", source=source.display_name)
            return
        except CbzkitError as e:
            progress(f"Skipping {source.display_name}: {e}")
            combined.failed_sources.append(source.display_name)
            log.warning("Source skipped during combine", source=source.display_name, error=str(e))
            return

        with archive:
            entries = archive.entries()
            progress(f"Adding {len(entries)} entries from {display_name}")
            for entry in entries:
                name = combined_entry_name(index, display_name, entry.name)
                try:
                    if entry.is_directory:
                        out.writestr(zipfile.ZipInfo(name), b"")
                        continue
                    # One entry in memory at a time; a read failure leaves no half-written entry.
                    with entry.open() as handle:
                        data = handle.read()
                    out.writestr(zipfile.ZipInfo(name, date_time=entry.date_time), data)
                except ENTRY_READ_ERRORS as e:
                    combined.skipped_entries.append(entry.name)
                    progress(f"Error processing file {entry.name}")
                    log.warning("Entry skipped during combine", entry=entry.name, error=str(e))

        local_copy.unlink(missing_ok=True)
