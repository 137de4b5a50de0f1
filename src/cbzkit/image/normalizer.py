"""Page image normalization: scratch materialization, transcoding and recompression."""

from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from cbzkit.archive.reader import ENTRY_READ_ERRORS, ArchiveEntry
from cbzkit.config.constants import (
    DEFAULT_COMPRESSED_QUALITY,
    DEFAULT_TRANSCODE_QUALITY,
    PDF_EMBEDDABLE_FORMATS,
    TEMP_CONVERTED_IMAGE_FILE,
    TEMP_IMAGE_FILE,
)
from cbzkit.exceptions import ImageDecodeError
from cbzkit.utils.fs import ScratchArea, copy_stream
from cbzkit.utils.logging import get_logger

log = get_logger(__name__)

# Pillow format name -> (file extension, media type)
FORMAT_INFO = {
    "JPEG": (".jpg", "image/jpeg"),
    "PNG": (".png", "image/png"),
    "GIF": (".gif", "image/gif"),
    "WEBP": (".webp", "image/webp"),
    "BMP": (".bmp", "image/bmp"),
    "TIFF": (".tif", "image/tiff"),
}


@dataclass
class ImageAsset:
    """A page image ready to embed."""

    path: Path
    width: int
    height: int
    format: str  # Pillow format name of the file at ``path``
    transcoded: bool = False
    source_format: str = ""

    @property
    def extension(self) -> str:
        return FORMAT_INFO.get(self.format, (".bin", ""))[0]

    @property
    def media_type(self) -> str:
        return FORMAT_INFO.get(self.format, ("", "application/octet-stream"))[1]


class ImageNormalizer:
    """Turns archive entries into embeddable images, one at a time.

    At most one raw scratch file and one transcoded file exist at any moment;
    both are overwritten by the next entry.
    """

    def __init__(
        self,
        scratch: ScratchArea,
        embeddable_formats: frozenset[str] = PDF_EMBEDDABLE_FORMATS,
        transcode_quality: int = DEFAULT_TRANSCODE_QUALITY,
        compressed_quality: int = DEFAULT_COMPRESSED_QUALITY,
    ) -> None:
        """Initialize the normalizer.

        Args:
            scratch: Job scratch area holding the per-image files
            embeddable_formats: Pillow format names the target embeds as-is
            transcode_quality: JPEG quality for format transcoding
            compressed_quality: JPEG quality when size compression is requested
        """
        self.scratch = scratch
        self.embeddable_formats = embeddable_formats
        self.transcode_quality = transcode_quality
        self.compressed_quality = compressed_quality

    def materialize(self, entry: ArchiveEntry) -> Path:
        """Copy the entry's bytes to the scratch image file.

        Raises:
            ImageDecodeError: The entry cannot be read from the archive
        """
        target = self.scratch.path(TEMP_IMAGE_FILE)
        try:
            with entry.open() as src, open(target, "wb") as dst:
                copy_stream(src, dst)
        except ENTRY_READ_ERRORS as e:
            raise ImageDecodeError(entry.name, cause=e) from e
        return target

    def normalize(self, path: Path, compress: bool, entry_name: str = "") -> ImageAsset:
        """Make the image at ``path`` embeddable.

        - Non-embeddable formats (e.g. WebP for PDF) are decoded and re-encoded
          as JPEG at ``transcode_quality`` (``compressed_quality`` if ``compress``).
        - Embeddable formats are recompressed to JPEG only when ``compress`` is set.
        - Anything else passes through unmodified.

        Raises:
            ImageDecodeError: The data is not a readable image
        """
        name = entry_name or path.name
        try:
            with Image.open(path) as img:
                source_format = (img.format or "").upper()
                if source_format in self.embeddable_formats and not compress:
                    width, height = img.size
                    return ImageAsset(
                        path=path,
                        width=width,
                        height=height,
                        format=source_format,
                        source_format=source_format,
                    )

                quality = self.compressed_quality if compress else self.transcode_quality
                return self._to_jpeg(img, quality, name, source_format)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageDecodeError(name, cause=e) from e

    def _to_jpeg(self, img: Image.Image, quality: int, name: str, source_format: str) -> ImageAsset:
        # JPEG has no alpha channel or palette
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")

        target = self.scratch.path(TEMP_CONVERTED_IMAGE_FILE)
        img.save(target, format="JPEG", quality=quality, optimize=True)

        log.debug(
            "Image transcoded",
            entry=name,
            from_format=source_format or "unknown",
            quality=quality,
            size=f"{img.width}x{img.height}",
        )
        return ImageAsset(
            path=target,
            width=img.width,
            height=img.height,
            format="JPEG",
            transcoded=True,
            source_format=source_format,
        )

    def release(self) -> None:
        """Delete the scratch files for the current entry."""
        self.scratch.path(TEMP_IMAGE_FILE).unlink(missing_ok=True)
        self.scratch.path(TEMP_CONVERTED_IMAGE_FILE).unlink(missing_ok=True)
