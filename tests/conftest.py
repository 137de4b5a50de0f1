"""Pytest configuration and fixtures."""

import io
import os
import struct
import tempfile
import zipfile
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
from PIL import Image

from cbzkit.services.storage import LocalOutputDirectory
from cbzkit.utils.fs import ScratchArea

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


def image_bytes(
    fmt: str = "PNG",
    size: tuple[int, int] = (40, 60),
    color: tuple[int, int, int] = (200, 30, 30),
    mode: str = "RGB",
) -> bytes:
    """Encode a solid-color image in the given Pillow format."""
    buffer = io.BytesIO()
    fill = color if mode != "RGBA" else (*color, 128)
    Image.new(mode, size, fill).save(buffer, format=fmt)
    return buffer.getvalue()


def write_cbz(path: Path, entries: Sequence[tuple[str, bytes]]) -> Path:
    """Write a zip with the given (name, data) entries in order.

    Names ending with "/" become directory entries.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return path


def patch_entry_header(
    path: Path, entry_name: str, method: int | None = None, flags: int | None = None
) -> Path:
    """Rewrite the compression method or flag bits of one entry in place.

    Both the local header and the central directory record are patched, so
    zipfile sees e.g. an unsupported method (9, Deflate64) or an encrypted entry.
    """
    with zipfile.ZipFile(path) as zf:
        local_offset = zf.getinfo(entry_name).header_offset
    data = bytearray(path.read_bytes())
    encoded = entry_name.encode()

    offsets = [(local_offset, 6, 8)]
    position = data.find(b"PK\x01\x02")
    while position != -1:
        name_length = struct.unpack_from("<H", data, position + 28)[0]
        if bytes(data[position + 46 : position + 46 + name_length]) == encoded:
            offsets.append((position, 8, 10))
        position = data.find(b"PK\x01\x02", position + 4)

    for header, flags_at, method_at in offsets:
        if flags is not None:
            struct.pack_into("<H", data, header + flags_at, flags)
        if method is not None:
            struct.pack_into("<H", data, header + method_at, method)
    path.write_bytes(bytes(data))
    return path


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def scratch(temp_dir: Path) -> ScratchArea:
    """A cleared scratch area inside the temp directory."""
    area = ScratchArea(temp_dir / "scratch")
    area.clear()
    return area


@pytest.fixture
def output_dir(temp_dir: Path) -> LocalOutputDirectory:
    """Local output directory inside the temp directory."""
    return LocalOutputDirectory(temp_dir / "out")


@pytest.fixture
def make_cbz(temp_dir: Path) -> Callable[..., Path]:
    """Factory for CBZ files with numbered PNG pages.

    Example:
        make_cbz("Series/Chapter 1.cbz", pages=3)
        make_cbz("odd.cbz", entries=[("b.png", data), ("a.png", data)])
    """

    def _make(
        name: str,
        pages: int = 3,
        entries: Sequence[tuple[str, bytes]] | None = None,
        fmt: str = "PNG",
        size: tuple[int, int] = (40, 60),
    ) -> Path:
        if entries is None:
            data = image_bytes(fmt, size=size)
            ext = "jpg" if fmt == "JPEG" else fmt.lower()
            entries = [(f"{index:04d}.{ext}", data) for index in range(1, pages + 1)]
        return write_cbz(temp_dir / "inputs" / name, entries)

    return _make


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch):
    """Settings built in an empty directory with no cbzkit.yaml or CBZKIT_ vars."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("CBZKIT_"):
            monkeypatch.delenv(key)
    from cbzkit.config.settings import get_settings

    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()
