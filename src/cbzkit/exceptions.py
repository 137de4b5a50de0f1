"""Custom exceptions for cbzkit."""

from pathlib import Path


class CbzkitError(Exception):
    """Base exception class for cbzkit."""

    pass


class EmptyArchiveError(CbzkitError):
    """Source archive has no entries (or no page entries)."""

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        super().__init__(f"No images found in CBZ file: {source_name}")


class SourceIOError(CbzkitError):
    """A single source could not be opened, copied or read."""

    def __init__(self, source_name: str, message: str, cause: Exception | None = None) -> None:
        self.source_name = source_name
        self.cause = cause
        super().__init__(f"Could not read {source_name}: {message}")


class ImageDecodeError(CbzkitError):
    """An archive entry does not contain a decodable image."""

    def __init__(self, entry_name: str, cause: Exception | None = None) -> None:
        self.entry_name = entry_name
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Error processing file {entry_name}{detail}")


class OutputUnavailableError(CbzkitError):
    """Destination directory cannot be written."""

    def __init__(self, path: Path | str, message: str = "Output directory is not writable") -> None:
        self.path = path
        super().__init__(f"{message}: {path}")


class StorageIOError(CbzkitError):
    """Destination directory listing or write failed."""

    def __init__(self, path: Path | str, message: str, cause: Exception | None = None) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"{message}: {path}")
