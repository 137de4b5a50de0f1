"""cbzkit - memory-bounded CBZ to PDF/EPUB conversion."""

__version__ = "0.1.0"
