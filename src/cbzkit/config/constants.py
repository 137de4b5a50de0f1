"""Constants for cbzkit."""

import tempfile
from pathlib import Path

# Application constants
APP_NAME = "cbzkit"

# Default paths
DEFAULT_OUTPUT_DIR = "output"
DEFAULT_LOG_DIR = ".logs"
DEFAULT_CONFIG_FILE = "cbzkit.yaml"
DEFAULT_SCRATCH_DIR = str(Path(tempfile.gettempdir()) / "cbzkit-scratch")

# Per-user config file; a cbzkit.yaml in the working directory overrides it
USER_CONFIG_FILE = Path.home() / ".config" / APP_NAME / "config.yaml"

# Supported input archive extensions
SUPPORTED_EXTENSIONS = {".cbz", ".zip"}

# Partitioning defaults (non-positive user input falls back to these)
DEFAULT_MAX_PAGES_PER_OUTPUT = 10_000
DEFAULT_BATCH_SIZE = 200

# Image normalization
DEFAULT_TRANSCODE_QUALITY = 90
DEFAULT_COMPRESSED_QUALITY = 75

# Formats the PDF writer embeds without transcoding (Pillow format names)
PDF_EMBEDDABLE_FORMATS = frozenset({"JPEG", "PNG", "GIF", "BMP", "TIFF"})

# Formats allowed inside the EPUB container as-is
EPUB_EMBEDDABLE_FORMATS = frozenset({"JPEG", "PNG", "GIF", "WEBP"})

# Page margins in points: top, right, bottom, left
DEFAULT_PAGE_MARGINS = (15.0, 10.0, 15.0, 10.0)

# Scratch file names
COMBINED_TEMP_CBZ_FILE = "combined_temp.cbz"
SOURCE_TEMP_CBZ_FILE = "source.cbz"
TEMP_IMAGE_FILE = "temp_image"
TEMP_CONVERTED_IMAGE_FILE = "temp_converted.jpg"
TEMP_BATCH_FILE_TEMPLATE = "temp_memory_batch_{index}.pdf"
TEMP_PART_FILE_TEMPLATE = "temp_part{extension}"

# EPUB defaults
DEFAULT_EPUB_TITLE = "Converted Manga"
EPUB_MIMETYPE = "application/epub+zip"

# Placeholder names rejected when deriving output names
PLACEHOLDER_NAMES = frozenset(
    {"document", "file", "download", "content", "item", "untitled", "unknown"}
)
UNKNOWN_NAME = "Unknown"

# Output extensions
OUTPUT_EXTENSIONS = {"pdf": ".pdf", "epub": ".epub"}
