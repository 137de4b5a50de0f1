"""Archive reading and combining for cbzkit."""

from cbzkit.archive.combiner import ArchiveCombiner, CombinedArchive, combined_entry_name
from cbzkit.archive.reader import Archive, ArchiveEntry, ArchiveReader, SortMode

__all__ = [
    "Archive",
    "ArchiveCombiner",
    "ArchiveEntry",
    "ArchiveReader",
    "CombinedArchive",
    "SortMode",
    "combined_entry_name",
]
