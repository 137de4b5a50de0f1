"""Output writers: PDF batches, batch merging and EPUB."""

from cbzkit.render.epub import EpubRenderer
from cbzkit.render.merger import ArtifactMerger
from cbzkit.render.pdf import BatchPageRenderer, save_document

__all__ = ["ArtifactMerger", "BatchPageRenderer", "EpubRenderer", "save_document"]
