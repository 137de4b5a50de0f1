"""Core conversion types and partitioning.

The pipeline itself lives in ``cbzkit.core.pipeline``.
"""

from cbzkit.core.models import (
    BatchArtifact,
    ConversionJob,
    ConversionResult,
    OutputFormat,
    PartArtifact,
)
from cbzkit.core.partition import calculate_range, chunk_count, split_ranges

__all__ = [
    "BatchArtifact",
    "ConversionJob",
    "ConversionResult",
    "OutputFormat",
    "PartArtifact",
    "calculate_range",
    "chunk_count",
    "split_ranges",
]
