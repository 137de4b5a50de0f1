"""Tests for page image normalization."""

import pytest
from conftest import image_bytes, patch_entry_header, write_cbz
from PIL import Image

from cbzkit.archive.reader import ArchiveReader
from cbzkit.config.constants import EPUB_EMBEDDABLE_FORMATS, PDF_EMBEDDABLE_FORMATS
from cbzkit.exceptions import ImageDecodeError
from cbzkit.image.normalizer import ImageNormalizer


def _materialized(scratch, data: bytes):
    normalizer = ImageNormalizer(scratch)
    path = scratch.path("fixture_image")
    path.write_bytes(data)
    return normalizer, path


class TestImageNormalizer:
    """Tests for ImageNormalizer."""

    def test_embeddable_passes_through(self, scratch):
        normalizer, path = _materialized(scratch, image_bytes("PNG", size=(30, 50)))
        asset = normalizer.normalize(path, compress=False)
        assert asset.path == path
        assert asset.format == "PNG"
        assert (asset.width, asset.height) == (30, 50)
        assert not asset.transcoded

    def test_webp_transcoded_for_pdf(self, scratch):
        normalizer, path = _materialized(scratch, image_bytes("WEBP", size=(64, 32)))
        asset = normalizer.normalize(path, compress=False)
        assert asset.transcoded
        assert asset.format == "JPEG"
        assert asset.source_format == "WEBP"
        assert asset.path.name == "temp_converted.jpg"
        with Image.open(asset.path) as img:
            assert img.format == "JPEG"
            assert img.size == (64, 32)

    def test_webp_with_compress_uses_low_quality(self, scratch, monkeypatch):
        """WebP + compress is re-encoded as JPEG at quality 75."""
        normalizer, path = _materialized(scratch, image_bytes("WEBP"))
        qualities = []
        original_save = Image.Image.save

        def spy_save(self, fp, format=None, **params):  # noqa: A002
            qualities.append(params.get("quality"))
            return original_save(self, fp, format=format, **params)

        monkeypatch.setattr(Image.Image, "save", spy_save)
        asset = normalizer.normalize(path, compress=True)

        assert asset.format == "JPEG"
        assert qualities == [75]

    def test_transcode_quality_without_compress(self, scratch, monkeypatch):
        normalizer, path = _materialized(scratch, image_bytes("WEBP"))
        qualities = []
        original_save = Image.Image.save

        def spy_save(self, fp, format=None, **params):  # noqa: A002
            qualities.append(params.get("quality"))
            return original_save(self, fp, format=format, **params)

        monkeypatch.setattr(Image.Image, "save", spy_save)
        normalizer.normalize(path, compress=False)
        assert qualities == [90]

    def test_compress_recompresses_embeddable(self, scratch):
        normalizer, path = _materialized(scratch, image_bytes("PNG"))
        asset = normalizer.normalize(path, compress=True)
        assert asset.transcoded
        assert asset.format == "JPEG"

    def test_alpha_is_flattened_for_jpeg(self, scratch):
        normalizer, path = _materialized(scratch, image_bytes("WEBP", mode="RGBA"))
        asset = normalizer.normalize(path, compress=False)
        with Image.open(asset.path) as img:
            assert img.mode in ("RGB", "L")

    def test_epub_keeps_webp(self, scratch):
        normalizer = ImageNormalizer(scratch, embeddable_formats=EPUB_EMBEDDABLE_FORMATS)
        path = scratch.path("fixture_image")
        path.write_bytes(image_bytes("WEBP"))
        asset = normalizer.normalize(path, compress=False)
        assert asset.format == "WEBP"
        assert asset.extension == ".webp"
        assert asset.media_type == "image/webp"

    def test_bmp_is_pdf_embeddable(self):
        assert "BMP" in PDF_EMBEDDABLE_FORMATS
        assert "WEBP" not in PDF_EMBEDDABLE_FORMATS

    def test_garbage_raises_decode_error(self, scratch):
        normalizer, path = _materialized(scratch, b"not an image at all")
        with pytest.raises(ImageDecodeError, match="Error processing file"):
            normalizer.normalize(path, compress=False, entry_name="broken.jpg")

    def test_materialize_and_release(self, scratch, temp_dir):
        cbz = write_cbz(temp_dir / "a.cbz", [("01.png", image_bytes())])
        normalizer = ImageNormalizer(scratch)
        with ArchiveReader().open(cbz) as archive:
            path = normalizer.materialize(archive.entries()[0])
            assert path.exists()
            assert path.name == "temp_image"
            normalizer.normalize(path, compress=True)
        normalizer.release()
        assert not scratch.path("temp_image").exists()
        assert not scratch.path("temp_converted.jpg").exists()

    @pytest.mark.parametrize(
        ("method", "flags"),
        [(9, None), (None, 0x1)],
        ids=["deflate64", "encrypted"],
    )
    def test_unreadable_entry_raises_decode_error(self, scratch, temp_dir, method, flags):
        cbz = write_cbz(temp_dir / "a.cbz", [("01.png", image_bytes())])
        patch_entry_header(cbz, "01.png", method=method, flags=flags)
        normalizer = ImageNormalizer(scratch)
        with ArchiveReader().open(cbz) as archive:
            with pytest.raises(ImageDecodeError, match="Error processing file 01.png"):
                normalizer.materialize(archive.entries()[0])
