"""PDF batch rendering with PyMuPDF."""

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import BinaryIO

import fitz  # PyMuPDF

from cbzkit.archive.reader import ArchiveEntry
from cbzkit.config.constants import DEFAULT_PAGE_MARGINS
from cbzkit.core.models import BatchArtifact
from cbzkit.exceptions import ImageDecodeError
from cbzkit.image.normalizer import ImageNormalizer
from cbzkit.utils.logging import get_logger

log = get_logger(__name__)


def save_document(doc: fitz.Document, destination: str | BinaryIO, compress: bool) -> None:
    """Save ``doc`` to a path or writable stream.

    ``compress`` selects best compression: unused objects are collected and
    every stream is deflated.
    """
    if compress:
        doc.save(destination, garbage=4, deflate=True)
    else:
        doc.save(destination)


class BatchPageRenderer:
    """Renders a contiguous run of entries into one PDF, one page per image.

    Each page is sized to its image (1 px = 1 pt) and the image is placed
    unscaled at the left/top margin offset, so the right and bottom margins
    crop it. Only one page image is on disk at a time.
    """

    def __init__(
        self,
        normalizer: ImageNormalizer,
        margins: tuple[float, float, float, float] = DEFAULT_PAGE_MARGINS,
    ) -> None:
        """Initialize the renderer.

        Args:
            normalizer: Produces embeddable images from archive entries
            margins: Page margins in points (top, right, bottom, left)
        """
        self.normalizer = normalizer
        self.margins = margins

    def render(
        self,
        entries: Sequence[ArchiveEntry],
        destination: Path,
        compress: bool = False,
        progress: Callable[[str], None] | None = None,
        message_format: Callable[[int], str] | None = None,
    ) -> BatchArtifact:
        """Render ``entries`` in order into a PDF at ``destination``.

        Entries that cannot be decoded are reported and skipped. When every
        entry is skipped nothing is written and the artifact is empty.

        Args:
            entries: Page entries, already ordered
            destination: Output PDF path (normally in the scratch area)
            compress: Recompress images and save with best compression
            progress: Progress callback
            message_format: Builds the per-image message from the 1-based index

        Returns:
            BatchArtifact describing the written document
        """
        notify = progress or (lambda _message: None)
        fmt = message_format or (lambda index: f"Processing image file {index} of {len(entries)}")

        doc = fitz.open()
        skipped: list[str] = []
        try:
            for index, entry in enumerate(entries, start=1):
                notify(fmt(index))
                try:
                    self._add_page(doc, entry, compress, notify)
                except ImageDecodeError as e:
                    skipped.append(entry.name)
                    notify(f"Error processing file {entry.name}")
                    log.warning("Page skipped", entry=entry.name, error=str(e))
                finally:
                    self.normalizer.release()

            page_count = doc.page_count
            if page_count:
                save_document(doc, str(destination), compress)
        finally:
            doc.close()

        log.debug(
            "Batch rendered",
            path=str(destination),
            pages=page_count,
            skipped=len(skipped),
        )
        return BatchArtifact(path=destination, page_count=page_count, skipped_entries=skipped)

    def _add_page(
        self,
        doc: fitz.Document,
        entry: ArchiveEntry,
        compress: bool,
        notify: Callable[[str], None],
    ) -> None:
        raw = self.normalizer.materialize(entry)
        asset = self.normalizer.normalize(raw, compress, entry_name=entry.name)
        if asset.source_format == "WEBP" and asset.transcoded:
            notify(f"Converting WebP image: {entry.name}")
            log.info("Converting WebP image", entry=entry.name)

        top, _right, _bottom, left = self.margins
        width, height = asset.width, asset.height
        page = doc.new_page(width=width, height=height)
        try:
            page.insert_image(
                fitz.Rect(left, top, left + width, top + height),
                stream=asset.path.read_bytes(),
            )
        except Exception as e:
            # MuPDF rejects some images Pillow accepts
            doc.delete_page(-1)
            raise ImageDecodeError(entry.name, cause=e) from e
