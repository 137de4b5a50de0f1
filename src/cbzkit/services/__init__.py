"""Collaborator services for the conversion engine."""

from cbzkit.services.naming import (
    NamingContext,
    NamingResolver,
    clean_display_name,
    extract_chapter,
    is_placeholder_name,
    part_name,
    resolve_conflicts,
)
from cbzkit.services.storage import (
    BytesSource,
    FileSource,
    LocalOutputDirectory,
    OutputDirectory,
    SourceHandle,
)

__all__ = [
    "BytesSource",
    "FileSource",
    "LocalOutputDirectory",
    "NamingContext",
    "NamingResolver",
    "OutputDirectory",
    "SourceHandle",
    "clean_display_name",
    "extract_chapter",
    "is_placeholder_name",
    "part_name",
    "resolve_conflicts",
]
