"""
End-to-end tests for EPUB packaging.

Each test packages a publication with a fixed clock and reads the resulting
archive back with zipfile to check the exact bytes of every entry.
"""

import io
import struct
import tempfile
import unittest
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from xml.etree import ElementTree as ET

from epub_builder.model.errors import PackagingError
from epub_builder.model.publication import Publication
from epub_builder.writer.documents import format_modified
from epub_builder.writer.epub_writer import EpubWriter, package, write_epub

TEST_DATE = datetime(2023, 2, 16, 18, 35, 3, 451000, tzinfo=timezone.utc)
TEST_DATE_STRING = "2023-02-16T18:35:03Z"
TEST_ID = "urn:uuid:38e9a65c-8077-45b7-a59e-8d0ae827ca5f"
TEST_TITLE = "My title"
TEST_SECTION_BODY = "<h1>Hello world</h1>\n<p>Hi</p>"
OPF_NS = {"opf": "http://www.idpf.org/2007/opf"}

PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n"
    b"\x00\x00\x00\rIHDR"
    b"\x00\x00\x00\x01"
    b"\x00\x00\x00\x01"
    b"\x08\x02\x00\x00\x00"
)


def fixed_clock() -> datetime:
    return TEST_DATE


def read_text(data: bytes, name: str) -> str:
    with zipfile.ZipFile(io.BytesIO(data)) as reader:
        return reader.read(name).decode("utf-8")


class MinimalEpubTest(unittest.TestCase):
    """A publication with a single section and no optional resources."""

    @classmethod
    def setUpClass(cls) -> None:
        publication = Publication(TEST_ID, TEST_TITLE, "en")
        publication.add_section("section1.xhtml", "First section", TEST_SECTION_BODY)
        cls.data = package(publication, clock=fixed_clock)

    def test_mimetype_is_first_stored_entry(self) -> None:
        with zipfile.ZipFile(io.BytesIO(self.data)) as reader:
            first = reader.infolist()[0]
            self.assertEqual(first.filename, "mimetype")
            self.assertEqual(first.compress_type, zipfile.ZIP_STORED)
            self.assertEqual(reader.read("mimetype"), b"application/epub+zip")

        # Readers sniff the raw bytes: local header, 8-byte name, no extra field, content.
        signature, name_length, extra_length = struct.unpack("<I22xHH", self.data[:30])
        self.assertEqual(signature, 0x04034B50)
        self.assertEqual((name_length, extra_length), (8, 0))
        self.assertEqual(self.data[30:38], b"mimetype")
        self.assertEqual(self.data[38:58], b"application/epub+zip")

    def test_entry_order(self) -> None:
        with zipfile.ZipFile(io.BytesIO(self.data)) as reader:
            names = reader.namelist()
        self.assertEqual(
            names,
            [
                "mimetype",
                "META-INF/container.xml",
                "EPUB/package.opf",
                "EPUB/nav.xhtml",
                "EPUB/toc.ncx",
                "EPUB/xhtml/section1.xhtml",
            ],
        )

    def test_container_xml(self) -> None:
        self.assertEqual(
            read_text(self.data, "META-INF/container.xml"),
            """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="EPUB/package.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>""",
        )

    def test_package_opf(self) -> None:
        self.assertEqual(
            read_text(self.data, "EPUB/package.opf"),
            f"""<?xml version="1.0" encoding="UTF-8"?>
<package version="3.0" unique-identifier="pub-id" xmlns="http://www.idpf.org/2007/opf">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="pub-id">{TEST_ID}</dc:identifier>
    <dc:title>{TEST_TITLE}</dc:title>
    <dc:language>en</dc:language>
    <meta property="dcterms:modified">{TEST_DATE_STRING}</meta>
  </metadata>
  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
    <item id="section1.xhtml" href="xhtml/section1.xhtml" media-type="application/xhtml+xml"/>
  </manifest>
  <spine toc="ncx">
    <itemref idref="section1.xhtml"/>
  </spine>
</package>""",
        )

    def test_nav_xhtml(self) -> None:
        self.assertEqual(
            read_text(self.data, "EPUB/nav.xhtml"),
            f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
  <head>
    <title>{TEST_TITLE}</title>
  </head>
  <body>
    <nav epub:type="toc">
      <h1>Table of Contents</h1>
      <ol>
        <li>
          <a href="xhtml/section1.xhtml">First section</a>
        </li>
      </ol>
    </nav>
  </body>
</html>""",
        )

    def test_toc_ncx(self) -> None:
        self.assertEqual(
            read_text(self.data, "EPUB/toc.ncx"),
            f"""<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head>
    <meta name="dtb:uid" content="{TEST_ID}"/>
    <meta name="dtb:depth" content="1"/>
    <meta name="dtb:totalPageCount" content="0"/>
    <meta name="dtb:maxPageNumber" content="0"/>
  </head>
  <docTitle>
    <text>{TEST_TITLE}</text>
  </docTitle>
  <navMap>
    <navPoint id="navPoint-1" playOrder="1">
      <navLabel>
        <text>First section</text>
      </navLabel>
      <content src="xhtml/section1.xhtml"/>
    </navPoint>
  </navMap>
</ncx>""",
        )

    def test_section(self) -> None:
        self.assertEqual(
            read_text(self.data, "EPUB/xhtml/section1.xhtml"),
            """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head>
    <title>First section</title>
  </head>
  <body>
    <h1>Hello world</h1>
    <p>Hi</p>
  </body>
</html>""",
        )


class FullFeaturedEpubTest(unittest.TestCase):
    """Author, stylesheet, image, and a section excluded from the TOC."""

    @classmethod
    def setUpClass(cls) -> None:
        publication = Publication(TEST_ID, TEST_TITLE, "en", author="Sequester Grundelplith")
        publication.add_stylesheet(
            "epub.css",
            """h1 {
      text-align: center;
    }
    p {
      font-family: sans-serif;
    }""",
        )
        publication.add_asset("test-image.png", PNG_BYTES)
        publication.add_section("section1.xhtml", "First section", TEST_SECTION_BODY)
        publication.add_section(
            "section2.xhtml", "Next section", "<p><b>Bold choice</b></p>", css_filename="epub.css"
        )
        publication.add_section(
            "section3.xhtml", "I'm running out of ideas", "<p>This is a paragraph.</p>", exclude_from_toc=True
        )
        cls.publication = publication
        cls.data = package(publication, clock=fixed_clock)

    def test_entry_order(self) -> None:
        with zipfile.ZipFile(io.BytesIO(self.data)) as reader:
            names = reader.namelist()
        self.assertEqual(
            names,
            [
                "mimetype",
                "META-INF/container.xml",
                "EPUB/package.opf",
                "EPUB/nav.xhtml",
                "EPUB/toc.ncx",
                "EPUB/epub.css",
                "EPUB/test-image.png",
                "EPUB/xhtml/section1.xhtml",
                "EPUB/xhtml/section2.xhtml",
                "EPUB/xhtml/section3.xhtml",
            ],
        )

    def test_package_opf(self) -> None:
        self.assertEqual(
            read_text(self.data, "EPUB/package.opf"),
            f"""<?xml version="1.0" encoding="UTF-8"?>
<package version="3.0" unique-identifier="pub-id" xmlns="http://www.idpf.org/2007/opf">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="pub-id">{TEST_ID}</dc:identifier>
    <dc:title>{TEST_TITLE}</dc:title>
    <dc:creator id="creator">Sequester Grundelplith</dc:creator>
    <dc:language>en</dc:language>
    <meta property="dcterms:modified">{TEST_DATE_STRING}</meta>
  </metadata>
  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>
    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>
    <item id="epub.css" href="epub.css" media-type="text/css"/>
    <item id="test-image.png" href="test-image.png" media-type="image/png"/>
    <item id="section1.xhtml" href="xhtml/section1.xhtml" media-type="application/xhtml+xml"/>
    <item id="section2.xhtml" href="xhtml/section2.xhtml" media-type="application/xhtml+xml"/>
    <item id="section3.xhtml" href="xhtml/section3.xhtml" media-type="application/xhtml+xml"/>
  </manifest>
  <spine toc="ncx">
    <itemref idref="section1.xhtml"/>
    <itemref idref="section2.xhtml"/>
    <itemref idref="section3.xhtml"/>
  </spine>
</package>""",
        )

    def test_spine_matches_registration_order(self) -> None:
        root = ET.fromstring(read_text(self.data, "EPUB/package.opf"))
        idrefs = [item.get("idref") for item in root.findall("opf:spine/opf:itemref", OPF_NS)]
        self.assertEqual(idrefs, [section.filename for section in self.publication.sections])

    def test_excluded_section_is_missing_from_navigation(self) -> None:
        nav = read_text(self.data, "EPUB/nav.xhtml")
        ncx = read_text(self.data, "EPUB/toc.ncx")

        self.assertIn('<a href="xhtml/section2.xhtml">Next section</a>', nav)
        self.assertNotIn("section3.xhtml", nav)
        self.assertNotIn("section3.xhtml", ncx)
        self.assertIn('<navPoint id="navPoint-2" playOrder="2">', ncx)
        self.assertNotIn("navPoint-3", ncx)
        self.assertIn("<docAuthor>\n    <text>Sequester Grundelplith</text>\n  </docAuthor>", ncx)

    def test_stylesheet_content(self) -> None:
        self.assertEqual(
            read_text(self.data, "EPUB/epub.css"),
            "h1 {\n  text-align: center;\n}\n\np {\n  font-family: sans-serif;\n}",
        )

    def test_image_bytes(self) -> None:
        with zipfile.ZipFile(io.BytesIO(self.data)) as reader:
            self.assertEqual(reader.read("EPUB/test-image.png"), PNG_BYTES)

    def test_section_with_stylesheet(self) -> None:
        self.assertEqual(
            read_text(self.data, "EPUB/xhtml/section2.xhtml"),
            """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head>
    <title>Next section</title>
    <link rel="stylesheet" type="text/css" href="../epub.css"/>
  </head>
  <body>
    <p><b>Bold choice</b></p>
  </body>
</html>""",
        )

    def test_section_excluded_from_toc(self) -> None:
        self.assertEqual(
            read_text(self.data, "EPUB/xhtml/section3.xhtml"),
            """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head>
    <title>I'm running out of ideas</title>
  </head>
  <body>
    <p>This is a paragraph.</p>
  </body>
</html>""",
        )

    def test_packaging_is_deterministic(self) -> None:
        self.assertEqual(package(self.publication, clock=fixed_clock), self.data)


class PackagingBehaviourTest(unittest.TestCase):
    """Clock handling, snapshots, and failure modes."""

    def test_modified_timestamp_drops_fractional_seconds(self) -> None:
        self.assertEqual(format_modified(TEST_DATE), TEST_DATE_STRING)
        self.assertEqual(format_modified(datetime(2023, 2, 16, 18, 35, 3)), TEST_DATE_STRING)

    def test_writer_accepts_snapshot(self) -> None:
        publication = Publication(TEST_ID, TEST_TITLE, "en")
        publication.add_section("section1.xhtml", "First section", TEST_SECTION_BODY)

        from_snapshot = EpubWriter(fixed_clock).write(publication.snapshot())

        self.assertEqual(from_snapshot, package(publication, clock=fixed_clock))

    def test_manifest_ids_stay_unique(self) -> None:
        publication = Publication(TEST_ID, TEST_TITLE, "en")
        publication.add_stylesheet("nav", "p { margin: 0; }")
        publication.add_section("nav", "Named nav", "<p>x</p>")

        opf = read_text(package(publication, clock=fixed_clock), "EPUB/package.opf")

        self.assertIn('<item id="nav-2" href="nav" media-type="text/css"/>', opf)
        self.assertIn('<item id="nav-3" href="xhtml/nav" media-type="application/xhtml+xml"/>', opf)
        self.assertIn('<itemref idref="nav-3"/>', opf)

    def test_unvalidated_section_is_emitted_as_is(self) -> None:
        publication = Publication(TEST_ID, TEST_TITLE, "en")
        section = publication.add_section("raw.xhtml", "Raw", "<p>unchecked", validate=False)

        data = package(publication, clock=fixed_clock)

        self.assertEqual(read_text(data, "EPUB/xhtml/raw.xhtml"), section.content)

    def test_unserializable_metadata_aborts_packaging(self) -> None:
        publication = Publication(TEST_ID, "Bad \x01 title", "en")
        with self.assertRaises(PackagingError):
            package(publication, clock=fixed_clock)

    def test_write_epub_creates_file(self) -> None:
        publication = Publication(TEST_ID, TEST_TITLE, "en")
        publication.add_section("section1.xhtml", "First section", TEST_SECTION_BODY)

        with tempfile.TemporaryDirectory() as tmp:
            target = write_epub(publication, Path(tmp) / "out" / "book.epub", clock=fixed_clock)
            self.assertEqual(target.read_bytes(), package(publication, clock=fixed_clock))
            self.assertEqual(sorted(p.name for p in target.parent.iterdir()), ["book.epub"])

    def test_failed_write_leaves_no_file(self) -> None:
        publication = Publication(TEST_ID, "Bad \x01 title", "en")
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "book.epub"
            with self.assertRaises(PackagingError):
                write_epub(publication, target, clock=fixed_clock)
            self.assertEqual(list(Path(tmp).iterdir()), [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
