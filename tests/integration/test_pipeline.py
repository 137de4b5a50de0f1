"""End-to-end tests for the conversion pipeline."""

import zipfile

import fitz
import pytest
from conftest import image_bytes, patch_entry_header, write_cbz
from PIL import Image

from cbzkit.config.settings import CbzkitSettings
from cbzkit.core.models import ConversionJob, OutputFormat
from cbzkit.core.pipeline import ConversionOrchestrator
from cbzkit.exceptions import OutputUnavailableError
from cbzkit.render.pdf import BatchPageRenderer
from cbzkit.services.storage import FileSource, LocalOutputDirectory

PAGE_PNG = image_bytes("PNG", size=(40, 40))


@pytest.fixture
def orchestrator(scratch, isolated_settings):  # noqa: ARG001
    return ConversionOrchestrator(settings=CbzkitSettings(), scratch=scratch)


def page_cbz(temp_dir, name, pages):
    return write_cbz(
        temp_dir / "inputs" / name, [(f"{i:05d}.png", PAGE_PNG) for i in range(pages)]
    )


def page_count(path):
    with fitz.open(path) as doc:
        return doc.page_count


@pytest.fixture
def render_sizes(monkeypatch):
    """Record the number of entries each render call receives."""
    sizes: list[int] = []
    original = BatchPageRenderer.render

    def spy(self, entries, destination, *args, **kwargs):
        sizes.append(len(entries))
        return original(self, entries, destination, *args, **kwargs)

    monkeypatch.setattr(BatchPageRenderer, "render", spy)
    return sizes


class TestSplittingAndBatching:
    """Part splitting and memory batching."""

    def test_250_pages_split_into_three_parts(self, orchestrator, temp_dir, output_dir):
        source = page_cbz(temp_dir, "Series/Vol 1.cbz", 250)
        job = ConversionJob(
            sources=(FileSource(source),), output_dir=output_dir, max_pages_per_output=100
        )

        result = orchestrator.run(job)

        assert [a.name for a in result.artifacts] == [
            "Series_part-1.pdf",
            "Series_part-2.pdf",
            "Series_part-3.pdf",
        ]
        assert [a.page_count for a in result.artifacts] == [100, 100, 50]
        assert [page_count(a.path) for a in result.artifacts] == [100, 100, 50]
        assert all(a.part_count == 3 for a in result.artifacts)
        assert result.outcome == "completed"
        assert any(m.startswith("Processing part 3 of 3 - ") for m in result.status_log)

    def test_1500_pages_in_five_batches(self, orchestrator, temp_dir, output_dir, render_sizes):
        source = page_cbz(temp_dir, "Big/Vol 1.cbz", 1500)
        job = ConversionJob(sources=(FileSource(source),), output_dir=output_dir, batch_size=300)

        result = orchestrator.run(job)

        assert render_sizes == [300] * 5
        assert len(result.artifacts) == 1
        assert page_count(result.artifacts[0].path) == 1500
        assert "Processing memory batch 5 of 5 - Processing image file 1500 of 1500" in (
            result.status_log
        )
        assert not list(orchestrator.scratch.root.glob("temp_memory_batch_*.pdf"))

    def test_1450_pages_last_batch_short(self, orchestrator, temp_dir, output_dir, render_sizes):
        source = page_cbz(temp_dir, "Big/Vol 2.cbz", 1450)
        job = ConversionJob(sources=(FileSource(source),), output_dir=output_dir, batch_size=300)

        result = orchestrator.run(job)

        assert render_sizes == [300, 300, 300, 300, 250]
        assert result.artifacts[0].page_count == 1450

    def test_small_part_is_not_batched(self, orchestrator, temp_dir, output_dir, render_sizes):
        source = page_cbz(temp_dir, "S/a.cbz", 10)
        job = ConversionJob(sources=(FileSource(source),), output_dir=output_dir, batch_size=10)

        result = orchestrator.run(job)

        assert render_sizes == [10]
        assert "Processing image file 10 of 10" in result.status_log


class TestSourceFailures:
    """Per-source failures are reported and skipped."""

    def test_empty_archive_among_valid(self, orchestrator, temp_dir, output_dir):
        sources = [
            page_cbz(temp_dir, "S/Ch 1.cbz", 2),
            write_cbz(temp_dir / "inputs" / "S" / "empty.cbz", []),
            page_cbz(temp_dir, "S/Ch 3.cbz", 2),
            page_cbz(temp_dir, "S/Ch 4.cbz", 2),
        ]
        job = ConversionJob(
            sources=tuple(FileSource(p) for p in sources),
            output_dir=output_dir,
            chapter_auto_name=True,
        )

        result = orchestrator.run(job)

        assert [a.name for a in result.artifacts] == ["S_1.pdf", "S_3.pdf", "S_4.pdf"]
        assert [a.source_index for a in result.artifacts] == [0, 2, 3]
        assert "No images found in CBZ file: empty.cbz" in result.status_log
        assert result.outcome == "completed"

    def test_directory_only_archive_is_empty(self, orchestrator, temp_dir, output_dir):
        path = write_cbz(temp_dir / "inputs" / "dirs.cbz", [("a/", b""), ("b/", b"")])
        job = ConversionJob(sources=(FileSource(path),), output_dir=output_dir)

        result = orchestrator.run(job)

        assert result.outcome == "nothing_produced"
        assert "No images found in CBZ file: dirs.cbz" in result.status_log

    def test_unreadable_source_is_partial(self, orchestrator, temp_dir, output_dir):
        good = page_cbz(temp_dir, "S/good.cbz", 2)
        bad = temp_dir / "inputs" / "S" / "bad.cbz"
        bad.write_bytes(b"not a zip")
        job = ConversionJob(
            sources=(FileSource(bad), FileSource(good)),
            output_dir=output_dir,
            custom_name="Out",
        )

        result = orchestrator.run(job)

        assert [a.name for a in result.artifacts] == ["Out_2.pdf"]
        assert result.failed_sources == ["bad.cbz"]
        assert result.outcome == "partial"

    def test_undecodable_pages_are_skipped(self, orchestrator, temp_dir, output_dir):
        path = write_cbz(
            temp_dir / "inputs" / "S" / "mixed.cbz",
            [("1.png", PAGE_PNG), ("2.png", b"garbage"), ("3.png", PAGE_PNG)],
        )
        job = ConversionJob(sources=(FileSource(path),), output_dir=output_dir)

        result = orchestrator.run(job)

        assert result.artifacts[0].page_count == 2
        assert result.skipped_pages == ["2.png"]
        assert result.outcome == "partial"

    def test_nothing_produced(self, orchestrator, temp_dir, output_dir):
        path = write_cbz(temp_dir / "inputs" / "S" / "bad.cbz", [("1.png", b"x")])
        job = ConversionJob(sources=(FileSource(path),), output_dir=output_dir)

        result = orchestrator.run(job)

        assert result.outcome == "nothing_produced"
        assert result.artifacts == []
        assert list(output_dir.path.iterdir()) == []

    def test_webp_pages_compressed_at_their_own_size(
        self, orchestrator, temp_dir, output_dir, monkeypatch
    ):
        sizes = [(40, 60), (50, 50), (60, 40), (45, 70), (80, 30)]
        path = write_cbz(
            temp_dir / "inputs" / "W" / "webp.cbz",
            [(f"{i}.webp", image_bytes("WEBP", size=size)) for i, size in enumerate(sizes)],
        )
        qualities = []
        original_save = Image.Image.save

        def spy_save(self, fp, format=None, **params):  # noqa: A002
            if format == "JPEG":
                qualities.append(params.get("quality"))
            return original_save(self, fp, format=format, **params)

        monkeypatch.setattr(Image.Image, "save", spy_save)
        job = ConversionJob(sources=(FileSource(path),), output_dir=output_dir, compress=True)

        result = orchestrator.run(job)

        assert result.outcome == "completed"
        assert result.artifacts[0].page_count == 5
        with fitz.open(result.artifacts[0].path) as doc:
            assert doc.page_count == 5
            assert [(round(p.rect.width), round(p.rect.height)) for p in doc] == sizes
        assert qualities == [75] * 5
        converted = [m for m in result.status_log if m.startswith("Converting WebP image:")]
        assert len(converted) == 5


class TestUnreadableEntries:
    """Entries zipfile cannot read are skipped like undecodable pages."""

    @pytest.mark.parametrize(
        ("method", "flags"),
        [(9, None), (None, 0x1)],
        ids=["deflate64", "encrypted"],
    )
    @pytest.mark.parametrize("merge", [False, True], ids=["per-file", "merged"])
    def test_entry_is_skipped(self, orchestrator, temp_dir, output_dir, method, flags, merge):
        path = write_cbz(
            temp_dir / "inputs" / "S" / "a.cbz", [("1.png", PAGE_PNG), ("2.png", PAGE_PNG)]
        )
        patch_entry_header(path, "2.png", method=method, flags=flags)
        job = ConversionJob(
            sources=(FileSource(path),), output_dir=output_dir, merge_sources=merge
        )

        result = orchestrator.run(job)

        assert len(result.artifacts) == 1
        assert result.artifacts[0].page_count == 1
        assert page_count(result.artifacts[0].path) == 1
        assert result.skipped_pages == ["2.png"]
        assert "Error processing file 2.png" in result.status_log
        assert result.outcome == "partial"


class TestDestination:
    """Output directory handling."""

    def test_unwritable_output_fails_before_work(self, orchestrator, temp_dir):
        blocker = temp_dir / "not_a_dir"
        blocker.write_text("x")
        source = page_cbz(temp_dir, "S/a.cbz", 2)
        job = ConversionJob(sources=(FileSource(source),), output_dir=LocalOutputDirectory(blocker))
        messages: list[str] = []

        with pytest.raises(OutputUnavailableError):
            orchestrator.run(job, progress=messages.append)

        assert messages == []

    def test_existing_names_are_not_overwritten(self, orchestrator, temp_dir, output_dir):
        output_dir.path.mkdir(parents=True)
        (output_dir.path / "Series A.pdf").write_bytes(b"keep me")
        (output_dir.path / "Series A 1.pdf").write_bytes(b"keep me too")
        source = page_cbz(temp_dir, "x/a.cbz", 1)
        job = ConversionJob(
            sources=(FileSource(source, group="Series A"),), output_dir=output_dir
        )

        result = orchestrator.run(job)

        assert result.artifacts[0].name == "Series A 2.pdf"
        assert (output_dir.path / "Series A.pdf").read_bytes() == b"keep me"

    def test_same_base_names_in_one_job(self, orchestrator, temp_dir, output_dir):
        sources = [page_cbz(temp_dir, f"Series/{n}.cbz", 1) for n in ("a", "b")]
        job = ConversionJob(sources=tuple(FileSource(p) for p in sources), output_dir=output_dir)

        result = orchestrator.run(job)

        assert [a.name for a in result.artifacts] == ["Series.pdf", "Series 1.pdf"]

    def test_partial_output_deleted_on_failure(
        self, orchestrator, temp_dir, output_dir, monkeypatch
    ):
        source = page_cbz(temp_dir, "S/a.cbz", 4)
        job = ConversionJob(sources=(FileSource(source),), output_dir=output_dir, batch_size=2)

        def broken_merge(batch_paths, destination, compress=False):
            destination.write(b"%PDF-partial")
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(orchestrator.merger, "merge", broken_merge)

        with pytest.raises(RuntimeError, match="disk on fire"):
            orchestrator.run(job)

        assert not (output_dir.path / "S.pdf").exists()


class TestMergeAndFormats:
    """Merged jobs and EPUB output."""

    def test_merge_chapters_with_range_name(self, orchestrator, temp_dir, output_dir):
        sources = [page_cbz(temp_dir, f"Series/Chapter {n}.cbz", 3) for n in (12, 13, 14)]
        job = ConversionJob(
            sources=tuple(FileSource(p) for p in sources),
            output_dir=output_dir,
            merge_sources=True,
            chapter_auto_name=True,
        )

        result = orchestrator.run(job)

        assert [a.name for a in result.artifacts] == ["Series_12-14.pdf"]
        assert page_count(result.artifacts[0].path) == 9
        assert result.status_log[0] == "Creating combined_temp.cbz in Cache"
        assert "Adding 3 entries from Chapter 13.cbz" in result.status_log

    def test_merged_pages_keep_source_order(self, orchestrator, temp_dir, output_dir):
        first = write_cbz(
            temp_dir / "inputs" / "S" / "b.cbz", [("1.png", image_bytes(size=(40, 40)))]
        )
        second = write_cbz(
            temp_dir / "inputs" / "S" / "a.cbz", [("1.png", image_bytes(size=(60, 60)))]
        )
        job = ConversionJob(
            sources=(FileSource(first), FileSource(second)),
            output_dir=output_dir,
            merge_sources=True,
        )

        result = orchestrator.run(job)

        with fitz.open(result.artifacts[0].path) as doc:
            assert [round(page.rect.width) for page in doc] == [40, 60]

    def test_epub_parts(self, orchestrator, temp_dir, output_dir):
        source = page_cbz(temp_dir, "Manga/Vol 1.cbz", 5)
        job = ConversionJob(
            sources=(FileSource(source),),
            output_dir=output_dir,
            max_pages_per_output=3,
            batch_size=1,
            output_format=OutputFormat.EPUB,
        )

        result = orchestrator.run(job)

        assert [a.name for a in result.artifacts] == ["Manga_part-1.epub", "Manga_part-2.epub"]
        assert [a.page_count for a in result.artifacts] == [3, 2]
        with zipfile.ZipFile(result.artifacts[0].path) as zf:
            assert zf.namelist()[0] == "mimetype"
            assert zf.read("OEBPS/content.opf").decode().count("<itemref ") == 3

    def test_scratch_cleared_at_job_start(self, orchestrator, temp_dir, output_dir):
        stale = orchestrator.scratch.path("leftover.pdf")
        stale.write_bytes(b"old")
        job = ConversionJob(sources=(), output_dir=output_dir)

        result = orchestrator.run(job)

        assert not stale.exists()
        assert result.outcome == "nothing_produced"
