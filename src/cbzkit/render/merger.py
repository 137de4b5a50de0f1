"""Merge batch PDFs into one output document."""

from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO

import fitz  # PyMuPDF

from cbzkit.render.pdf import save_document
from cbzkit.utils.fs import delete_quietly
from cbzkit.utils.logging import get_logger

log = get_logger(__name__)


class ArtifactMerger:
    """Concatenates batch documents, deleting each batch once it is copied."""

    def merge(
        self,
        batch_paths: Sequence[Path],
        destination: str | Path | BinaryIO,
        compress: bool = False,
    ) -> int:
        """Append every batch to one document and save it to ``destination``.

        Missing batch files (batches whose pages were all skipped) are ignored.
        Nothing is saved when no page survives.

        Args:
            batch_paths: Batch PDFs in page order
            destination: Output path or writable stream
            compress: Save with the same best-compression mode as the batches

        Returns:
            Total page count of the merged document
        """
        merged = fitz.open()
        try:
            for batch_path in batch_paths:
                if not batch_path.exists():
                    continue
                with fitz.open(batch_path) as batch:
                    merged.insert_pdf(batch)
                log.debug("Batch merged", batch=batch_path.name, pages=merged.page_count)
                delete_quietly(batch_path)

            page_count = merged.page_count
            if page_count:
                target = str(destination) if isinstance(destination, Path) else destination
                save_document(merged, target, compress)
        finally:
            merged.close()

        log.info("Batches merged", batches=len(batch_paths), pages=page_count)
        return page_count
