"""Job description and result types for the conversion pipeline."""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Literal

from cbzkit.archive.reader import SortMode
from cbzkit.config.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_PAGES_PER_OUTPUT,
    OUTPUT_EXTENSIONS,
)
from cbzkit.config.settings import positive_or_default
from cbzkit.services.storage import OutputDirectory, SourceHandle


class OutputFormat(StrEnum):
    PDF = "pdf"
    EPUB = "epub"

    @property
    def extension(self) -> str:
        return OUTPUT_EXTENSIONS[self.value]


@dataclass(frozen=True)
class ConversionJob:
    """Immutable description of one conversion run.

    Non-positive ``max_pages_per_output`` or ``batch_size`` values are
    replaced by the built-in defaults. Callers must turn ``merge_sources``
    off when ``NamingResolver.can_merge`` rejects the sources.
    """

    sources: tuple[SourceHandle, ...]
    output_dir: OutputDirectory
    max_pages_per_output: int = DEFAULT_MAX_PAGES_PER_OUTPUT
    batch_size: int = DEFAULT_BATCH_SIZE
    merge_sources: bool = False
    sort_mode: SortMode = SortMode.LEXICOGRAPHIC
    compress: bool = False
    chapter_auto_name: bool = False
    custom_name: str | None = None
    output_format: OutputFormat = OutputFormat.PDF

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "sources", tuple(self.sources))
        object.__setattr__(
            self,
            "max_pages_per_output",
            positive_or_default(self.max_pages_per_output, DEFAULT_MAX_PAGES_PER_OUTPUT),
        )
        object.__setattr__(
            self, "batch_size", positive_or_default(self.batch_size, DEFAULT_BATCH_SIZE)
        )
        object.__setattr__(self, "sort_mode", SortMode(self.sort_mode))
        object.__setattr__(self, "output_format", OutputFormat(self.output_format))


@dataclass
class BatchArtifact:
    """Temporary batch document in the scratch area, deleted once merged."""

    path: Path
    page_count: int
    skipped_entries: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.page_count == 0


@dataclass
class PartArtifact:
    """A finished, named output file. Owned by the caller."""

    name: str
    path: Path | None
    page_count: int
    source_index: int
    part_index: int
    part_count: int


@dataclass
class ConversionResult:
    """Everything a job produced, plus what it had to skip."""

    artifacts: list[PartArtifact] = field(default_factory=list)
    status_log: list[str] = field(default_factory=list)
    sources_attempted: int = 0
    parts_attempted: int = 0
    skipped_pages: list[str] = field(default_factory=list)
    failed_sources: list[str] = field(default_factory=list)

    @property
    def outcome(self) -> Literal["completed", "partial", "nothing_produced"]:
        if not self.artifacts:
            return "nothing_produced"
        if self.skipped_pages or self.failed_sources or len(self.artifacts) < self.parts_attempted:
            return "partial"
        return "completed"

    @property
    def total_pages(self) -> int:
        return sum(artifact.page_count for artifact in self.artifacts)
