"""Minimal EPUB3 writer for image-only books.

Layout of the container:

    mimetype                      (first entry, stored uncompressed)
    META-INF/container.xml
    OEBPS/Images/image{i}{ext}
    OEBPS/page{i}.xhtml
    OEBPS/content.opf
    OEBPS/toc.ncx
"""

import uuid
import zipfile
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from xml.sax.saxutils import escape

from cbzkit.archive.reader import ArchiveEntry
from cbzkit.config.constants import DEFAULT_EPUB_TITLE, EPUB_MIMETYPE
from cbzkit.core.models import BatchArtifact
from cbzkit.exceptions import ImageDecodeError
from cbzkit.image.normalizer import ImageNormalizer
from cbzkit.utils.logging import get_logger

log = get_logger(__name__)

CONTAINER_XML = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>"""

PAGE_XHTML = """<?xml version="1.0" encoding="UTF-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head><title>Page {number}</title></head>
  <body><img src="Images/{image}" alt="Page {number}"/></body>
</html>"""

CONTENT_OPF = """<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" unique-identifier="BookId" version="3.0">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="BookId">{identifier}</dc:identifier>
    <dc:title>{title}</dc:title>
    <dc:language>en</dc:language>
    <meta property="dcterms:modified">{modified}</meta>
  </metadata>
  <manifest>
    {manifest}
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
  </manifest>
  <spine toc="ncx">
    {spine}
  </spine>
</package>"""

NAV_POINT = """<navPoint id="navPoint-{index}" playOrder="{number}">
      <navLabel><text>Page {number}</text></navLabel>
      <content src="page{index}.xhtml"/>
    </navPoint>"""

TOC_NCX = """<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head>
    <meta name="dtb:uid" content="{identifier}"/>
  </head>
  <docTitle><text>{title}</text></docTitle>
  <navMap>
    {nav_points}
  </navMap>
</ncx>"""


class EpubRenderer:
    """Writes ordered page entries into a fixed-layout image EPUB.

    Pages are streamed into the container one at a time; only the manifest
    lines are kept until the end.
    """

    def __init__(self, normalizer: ImageNormalizer, title: str = DEFAULT_EPUB_TITLE) -> None:
        self.normalizer = normalizer
        self.title = title

    def render(
        self,
        entries: Sequence[ArchiveEntry],
        destination: Path,
        compress: bool = False,
        progress: Callable[[str], None] | None = None,
        message_format: Callable[[int], str] | None = None,
    ) -> BatchArtifact:
        """Write ``entries`` as an EPUB at ``destination``.

        Undecodable entries are reported and skipped, as in the PDF path.
        The file is removed again when no page survives.
        """
        notify = progress or (lambda _message: None)
        fmt = message_format or (lambda index: f"Processing image file {index} of {len(entries)}")
        identifier = f"urn:uuid:{uuid.uuid4()}"

        manifest: list[str] = []
        spine: list[str] = []
        skipped: list[str] = []

        with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as out:
            # mimetype must be first and uncompressed
            out.writestr(
                zipfile.ZipInfo("mimetype"), EPUB_MIMETYPE, compress_type=zipfile.ZIP_STORED
            )
            out.writestr("META-INF/container.xml", CONTAINER_XML)

            for position, entry in enumerate(entries, start=1):
                notify(fmt(position))
                index = len(spine)
                try:
                    raw = self.normalizer.materialize(entry)
                    asset = self.normalizer.normalize(raw, compress, entry_name=entry.name)
                    image_name = f"image{index}{asset.extension}"
                    out.write(asset.path, f"OEBPS/Images/{image_name}")
                except ImageDecodeError as e:
                    skipped.append(entry.name)
                    notify(f"Error processing file {entry.name}")
                    log.warning("Page skipped", entry=entry.name, error=str(e))
                    continue
                finally:
                    self.normalizer.release()

                out.writestr(
                    f"OEBPS/page{index}.xhtml",
                    PAGE_XHTML.format(number=index + 1, image=image_name),
                )
                manifest.append(
                    f'<item id="img{index}" href="Images/{image_name}" '
                    f'media-type="{asset.media_type}"/>'
                )
                manifest.append(
                    f'<item id="page{index}" href="page{index}.xhtml" '
                    'media-type="application/xhtml+xml"/>'
                )
                spine.append(f'<itemref idref="page{index}"/>')

            title = escape(self.title)
            modified = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
            out.writestr(
                "OEBPS/content.opf",
                CONTENT_OPF.format(
                    identifier=identifier,
                    title=title,
                    modified=modified,
                    manifest="\n    ".join(manifest),
                    spine="\n    ".join(spine),
                ),
            )
            nav_points = "\n    ".join(
                NAV_POINT.format(index=index, number=index + 1) for index in range(len(spine))
            )
            out.writestr(
                "OEBPS/toc.ncx",
                TOC_NCX.format(identifier=identifier, title=title, nav_points=nav_points),
            )

        page_count = len(spine)
        if page_count == 0:
            destination.unlink(missing_ok=True)

        log.debug("EPUB rendered", path=str(destination), pages=page_count, skipped=len(skipped))
        return BatchArtifact(path=destination, page_count=page_count, skipped_entries=skipped)
