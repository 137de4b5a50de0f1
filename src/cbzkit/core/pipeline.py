"""Core conversion pipeline.

This module provides the ConversionOrchestrator, which drives one job from
source archives to named output files:

1. Clear the scratch area and check the output directory
2. Optionally combine all sources into one synthetic archive
3. Order each archive's pages and split them into parts
4. Render each part, in memory batches when it is larger than the batch size
5. Merge the batches and publish the part under a conflict-free name

Per-page and per-source failures are reported and skipped. Failures of the
output directory abort the job.
"""

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import BinaryIO

from cbzkit.archive.combiner import ArchiveCombiner
from cbzkit.archive.reader import ArchiveEntry, ArchiveReader
from cbzkit.config.constants import (
    EPUB_EMBEDDABLE_FORMATS,
    PDF_EMBEDDABLE_FORMATS,
    TEMP_BATCH_FILE_TEMPLATE,
    TEMP_PART_FILE_TEMPLATE,
)
from cbzkit.config.settings import CbzkitSettings, get_settings
from cbzkit.core.models import (
    BatchArtifact,
    ConversionJob,
    ConversionResult,
    OutputFormat,
    PartArtifact,
)
from cbzkit.core.partition import split_ranges
from cbzkit.exceptions import EmptyArchiveError, SourceIOError, StorageIOError
from cbzkit.image.normalizer import ImageNormalizer
from cbzkit.render.epub import EpubRenderer
from cbzkit.render.merger import ArtifactMerger
from cbzkit.render.pdf import BatchPageRenderer
from cbzkit.services.naming import NamingResolver, part_name, resolve_conflicts
from cbzkit.services.storage import OutputDirectory
from cbzkit.utils.fs import ScratchArea, copy_stream
from cbzkit.utils.logging import get_logger, job_context

log = get_logger(__name__)

__all__ = [
    "BatchArtifact",
    "ConversionJob",
    "ConversionOrchestrator",
    "ConversionResult",
    "OutputFormat",
    "PartArtifact",
    "ProgressCallback",
]

ProgressCallback = Callable[[str], None]


class ConversionOrchestrator:
    """Runs conversion jobs one at a time against a single scratch area.

    The scratch area is wiped at the start of every job, so an orchestrator
    (or any two orchestrators sharing a scratch directory) must never run two
    jobs at once.
    """

    def __init__(
        self,
        settings: CbzkitSettings | None = None,
        scratch: ScratchArea | None = None,
        # Dependency injection (optional, for testing)
        reader: ArchiveReader | None = None,
        combiner: ArchiveCombiner | None = None,
        naming: NamingResolver | None = None,
        merger: ArtifactMerger | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            settings: Application settings (image qualities, margins, EPUB title)
            scratch: Scratch area; defaults to ``settings.scratch_dir``
            reader: Optional ArchiveReader instance
            combiner: Optional ArchiveCombiner instance
            naming: Optional NamingResolver instance
            merger: Optional ArtifactMerger instance
        """
        self.settings = settings or get_settings()
        self.scratch = scratch or ScratchArea(Path(self.settings.scratch_dir))
        self.reader = reader or ArchiveReader()
        self.combiner = combiner or ArchiveCombiner(self.reader)
        self.naming = naming or NamingResolver()
        self.merger = merger or ArtifactMerger()

    def run(self, job: ConversionJob, progress: ProgressCallback | None = None) -> ConversionResult:
        """Convert every source of ``job``.

        Raises:
            OutputUnavailableError: The output directory cannot be written
            StorageIOError: The output directory cannot be listed or written
        """
        result = ConversionResult()

        def notify(message: str) -> None:
            result.status_log.append(message)
            if progress is not None:
                progress(message)

        with job_context() as job_id:
            log.info(
                "Conversion started",
                job_id=job_id,
                sources=len(job.sources),
                format=job.output_format.value,
                merge=job.merge_sources,
            )

            self.scratch.clear()
            self.naming.context.clear()
            job.output_dir.check_writable()
            taken = set(job.output_dir.list_names())

            if job.sources:
                base_names = self.naming.base_names(
                    job.sources,
                    job.output_format.extension,
                    chapter_auto_name=job.chapter_auto_name,
                    custom_name=job.custom_name,
                    merge=job.merge_sources,
                )
                if job.merge_sources:
                    self._run_merged(job, base_names[0], taken, result, notify)
                else:
                    self._run_each(job, base_names, taken, result, notify)

            log.info(
                "Conversion finished",
                outcome=result.outcome,
                artifacts=len(result.artifacts),
                pages=result.total_pages,
                skipped_pages=len(result.skipped_pages),
                failed_sources=len(result.failed_sources),
            )
        return result

    def _run_merged(
        self,
        job: ConversionJob,
        base_name: str,
        taken: set[str],
        result: ConversionResult,
        notify: ProgressCallback,
    ) -> None:
        result.sources_attempted = len(job.sources)
        display_names = [self.naming.display_name(source) for source in job.sources]
        combined = self.combiner.combine(job.sources, display_names, self.scratch, notify)
        result.failed_sources.extend(combined.failed_sources)
        result.skipped_pages.extend(combined.skipped_entries)

        try:
            self._convert_archive(
                combined.path, combined.path.name, 0, base_name, job, taken, result, notify
            )
        except (SourceIOError, EmptyArchiveError) as e:
            notify(str(e))
            log.warning("Combined archive skipped", error=str(e))
        finally:
            combined.path.unlink(missing_ok=True)

    def _run_each(
        self,
        job: ConversionJob,
        base_names: Sequence[str],
        taken: set[str],
        result: ConversionResult,
        notify: ProgressCallback,
    ) -> None:
        for index, source in enumerate(job.sources):
            result.sources_attempted += 1
            label = self.naming.display_name(source)
            with job_context(source=label):
                try:
                    local_copy = self.reader.materialize_source(source, self.scratch)
                    try:
                        self._convert_archive(
                            local_copy, label, index, base_names[index], job, taken, result, notify
                        )
                    finally:
                        local_copy.unlink(missing_ok=True)
                except EmptyArchiveError as e:
                    notify(str(e))
                    log.info("Source has no pages", source=label)
                except SourceIOError as e:
                    notify(str(e))
                    result.failed_sources.append(label)
                    log.warning("Source skipped", source=label, error=str(e))

    def _convert_archive(
        self,
        archive_path: Path,
        label: str,
        source_index: int,
        base_name: str,
        job: ConversionJob,
        taken: set[str],
        result: ConversionResult,
        notify: ProgressCallback,
    ) -> None:
        with self.reader.open(archive_path, name=label) as archive:
            entries = self.reader.ordered_entries(archive, job.sort_mode)
            total = len(entries)
            if total == 0:
                raise EmptyArchiveError(label)

            ranges = split_ranges(total, job.max_pages_per_output)
            part_count = len(ranges)
            if part_count > 1:
                names = [part_name(base_name, number) for number in range(1, part_count + 1)]
            else:
                names = [base_name]
            names = resolve_conflicts(names, taken)
            taken.update(names)

            log.info("Converting source", source=label, pages=total, parts=part_count)
            for part_index, (start, end) in enumerate(ranges):
                result.parts_attempted += 1
                if part_count > 1:
                    prefix = f"Processing part {part_index + 1} of {part_count} - "
                else:
                    prefix = ""
                page_count = self._convert_part(
                    entries[start:end], start, total, prefix, names[part_index], job, result, notify
                )
                if page_count == 0:
                    notify(f"No pages could be rendered for {names[part_index]}")
                    continue
                result.artifacts.append(
                    PartArtifact(
                        name=names[part_index],
                        path=job.output_dir.path_of(names[part_index]),
                        page_count=page_count,
                        source_index=source_index,
                        part_index=part_index,
                        part_count=part_count,
                    )
                )

    def _convert_part(
        self,
        entries: Sequence[ArchiveEntry],
        offset: int,
        total: int,
        prefix: str,
        name: str,
        job: ConversionJob,
        result: ConversionResult,
        notify: ProgressCallback,
    ) -> int:
        """Render one part and publish it as ``name``.

        Returns:
            Pages written; 0 when no page survived and nothing was published
        """
        if job.output_format == OutputFormat.EPUB:
            renderer = self._epub_renderer()
        else:
            renderer = self._pdf_renderer()

        count = len(entries)
        if job.output_format == OutputFormat.PDF and count > job.batch_size:
            batches = self._render_batches(entries, renderer, prefix, job, result, notify)
            page_count = sum(batch.page_count for batch in batches)
            if page_count == 0:
                return 0
            batch_paths = [batch.path for batch in batches if not batch.is_empty]
            self._publish(
                job.output_dir,
                name,
                lambda stream: self.merger.merge(batch_paths, stream, job.compress),
            )
        else:
            temp_path = self.scratch.path(
                TEMP_PART_FILE_TEMPLATE.format(extension=job.output_format.extension)
            )
            artifact = renderer.render(
                entries,
                temp_path,
                compress=job.compress,
                progress=notify,
                message_format=lambda index: (
                    f"{prefix}Processing image file {offset + index} of {total}"
                ),
            )
            result.skipped_pages.extend(artifact.skipped_entries)
            if artifact.is_empty:
                return 0
            self._publish(
                job.output_dir, name, lambda stream: _copy_file(temp_path, stream)
            )
            page_count = artifact.page_count
            temp_path.unlink(missing_ok=True)

        log.info("Output written", name=name, pages=page_count)
        return page_count

    def _render_batches(
        self,
        entries: Sequence[ArchiveEntry],
        renderer: BatchPageRenderer,
        prefix: str,
        job: ConversionJob,
        result: ConversionResult,
        notify: ProgressCallback,
    ) -> list[BatchArtifact]:
        count = len(entries)
        ranges = split_ranges(count, job.batch_size)
        batches = []
        for batch_index, (start, end) in enumerate(ranges):
            batch_prefix = f"{prefix}Processing memory batch {batch_index + 1} of {len(ranges)} - "
            batch = renderer.render(
                entries[start:end],
                self.scratch.path(TEMP_BATCH_FILE_TEMPLATE.format(index=batch_index + 1)),
                compress=job.compress,
                progress=notify,
                message_format=lambda index, p=batch_prefix, s=start: (
                    f"{p}Processing image file {s + index} of {count}"
                ),
            )
            result.skipped_pages.extend(batch.skipped_entries)
            batches.append(batch)
        return batches

    def _publish(
        self,
        output_dir: OutputDirectory,
        name: str,
        write: Callable[[BinaryIO], object],
    ) -> None:
        """Create ``name`` in the output directory and fill it with ``write``.

        A partially written file is deleted before any error propagates.
        """
        stream = output_dir.open_write(name)
        try:
            with stream:
                write(stream)
        except OSError as e:
            output_dir.delete(name)
            raise StorageIOError(output_dir.location, f"Failed to write {name}", cause=e) from e
        except BaseException:
            output_dir.delete(name)
            raise

    def _pdf_renderer(self) -> BatchPageRenderer:
        normalizer = ImageNormalizer(
            self.scratch,
            embeddable_formats=PDF_EMBEDDABLE_FORMATS,
            transcode_quality=self.settings.image.transcode_quality,
            compressed_quality=self.settings.image.compressed_quality,
        )
        return BatchPageRenderer(normalizer, margins=self.settings.pdf.margins)

    def _epub_renderer(self) -> EpubRenderer:
        normalizer = ImageNormalizer(
            self.scratch,
            embeddable_formats=EPUB_EMBEDDABLE_FORMATS,
            transcode_quality=self.settings.image.transcode_quality,
            compressed_quality=self.settings.image.compressed_quality,
        )
        return EpubRenderer(normalizer, title=self.settings.epub.title)


def _copy_file(path: Path, stream: BinaryIO) -> int:
    with open(path, "rb") as src:
        return copy_stream(src, stream)
