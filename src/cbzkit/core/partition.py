"""Splitting page lists into output parts and memory batches."""

import math


def calculate_range(index: int, size: int, total: int) -> tuple[int, int]:
    """Half-open ``[start, end)`` bounds of chunk ``index`` of ``size`` items.

    The last chunk is clipped to ``total``.
    """
    start = index * size
    end = min((index + 1) * size, total)
    return start, end


def chunk_count(total: int, size: int) -> int:
    """Number of chunks of at most ``size`` items needed for ``total`` items."""
    if total <= 0:
        return 0
    return math.ceil(total / size)


def split_ranges(total: int, size: int) -> list[tuple[int, int]]:
    """All chunk ranges covering ``total`` items, in order.

    Examples:
        >>> split_ranges(250, 100)
        [(0, 100), (100, 200), (200, 250)]
    """
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [calculate_range(index, size, total) for index in range(chunk_count(total, size))]
