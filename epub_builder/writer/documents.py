"""Render the generated XML documents of an EPUB container.

Elements are built with literal ``prefix:name`` tags and explicit ``xmlns``
attributes so the serialized namespace declarations stay exactly where the
EPUB specifications show them.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict
from xml.etree.ElementTree import Element, SubElement

from epub_builder.model.resources import PublicationSnapshot
from epub_builder.utils.media_types import CSS_MEDIA_TYPE, NCX_MEDIA_TYPE, OPF_MEDIA_TYPE, XHTML_MEDIA_TYPE
from epub_builder.utils.paths import (
    EPUB_DIRECTORY,
    NAV_DOCUMENT,
    NCX_DOCUMENT,
    PACKAGE_DOCUMENT,
    ManifestIdAllocator,
    package_href,
)
from epub_builder.utils.xml_utils import HTML_DOCTYPE, NS, serialize_document

NAV_ID = "nav"
NCX_ID = "ncx"
PUB_ID = "pub-id"
TOC_HEADING = "Table of Contents"


def format_modified(instant: datetime) -> str:
    """Render ``instant`` as a UTC timestamp with whole seconds, e.g. ``2023-02-16T18:35:03Z``."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ManifestIds:
    """Manifest ids for every resource of a snapshot, allocated in manifest order."""

    def __init__(self, snapshot: PublicationSnapshot) -> None:
        allocator = ManifestIdAllocator(reserved=(NAV_ID, NCX_ID))
        self.stylesheets: Dict[str, str] = {
            item.filename: allocator.allocate(f"css:{item.filename}", item.filename) for item in snapshot.stylesheets
        }
        self.assets: Dict[str, str] = {
            item.filename: allocator.allocate(f"asset:{item.filename}", item.filename) for item in snapshot.assets
        }
        self.sections: Dict[str, str] = {
            item.filename: allocator.allocate(f"section:{item.filename}", item.filename) for item in snapshot.sections
        }


def render_container_xml() -> str:
    container = Element("container", {"version": "1.0", "xmlns": NS.CONTAINER})
    rootfiles = SubElement(container, "rootfiles")
    SubElement(
        rootfiles,
        "rootfile",
        {"full-path": f"{EPUB_DIRECTORY}/{PACKAGE_DOCUMENT}", "media-type": OPF_MEDIA_TYPE},
    )
    return serialize_document(container)


def render_package_opf(snapshot: PublicationSnapshot, ids: ManifestIds, modified: datetime) -> str:
    """Render the package document: metadata, manifest, and spine."""
    package = Element("package", {"version": "3.0", "unique-identifier": PUB_ID, "xmlns": NS.OPF})

    metadata = SubElement(package, "metadata", {"xmlns:dc": NS.DC})
    SubElement(metadata, "dc:identifier", {"id": PUB_ID}).text = snapshot.identifier
    SubElement(metadata, "dc:title").text = snapshot.title
    if snapshot.author:
        SubElement(metadata, "dc:creator", {"id": "creator"}).text = snapshot.author
    SubElement(metadata, "dc:language").text = snapshot.language
    SubElement(metadata, "meta", {"property": "dcterms:modified"}).text = format_modified(modified)

    manifest = SubElement(package, "manifest")
    SubElement(
        manifest,
        "item",
        {"id": NAV_ID, "href": NAV_DOCUMENT, "media-type": XHTML_MEDIA_TYPE, "properties": "nav"},
    )
    SubElement(manifest, "item", {"id": NCX_ID, "href": NCX_DOCUMENT, "media-type": NCX_MEDIA_TYPE})
    for stylesheet in snapshot.stylesheets:
        SubElement(
            manifest,
            "item",
            {
                "id": ids.stylesheets[stylesheet.filename],
                "href": package_href(stylesheet.filename),
                "media-type": CSS_MEDIA_TYPE,
            },
        )
    for asset in snapshot.assets:
        SubElement(
            manifest,
            "item",
            {"id": ids.assets[asset.filename], "href": package_href(asset.filename), "media-type": asset.media_type},
        )
    for section in snapshot.sections:
        SubElement(
            manifest,
            "item",
            {
                "id": ids.sections[section.filename],
                "href": package_href(section.filename, section=True),
                "media-type": XHTML_MEDIA_TYPE,
            },
        )

    spine = SubElement(package, "spine", {"toc": NCX_ID})
    for section in snapshot.sections:
        SubElement(spine, "itemref", {"idref": ids.sections[section.filename]})

    return serialize_document(package)


def render_nav_xhtml(snapshot: PublicationSnapshot) -> str:
    """Render the EPUB 3 navigation document listing the TOC sections."""
    html = Element("html", {"xmlns": NS.XHTML, "xmlns:epub": NS.OPS})
    head = SubElement(html, "head")
    SubElement(head, "title").text = snapshot.title
    body = SubElement(html, "body")
    nav = SubElement(body, "nav", {"epub:type": "toc"})
    SubElement(nav, "h1").text = TOC_HEADING
    entries = SubElement(nav, "ol")
    for section in snapshot.toc_sections():
        item = SubElement(entries, "li")
        SubElement(item, "a", {"href": package_href(section.filename, section=True)}).text = section.title
    return serialize_document(html, doctype=HTML_DOCTYPE)


def render_toc_ncx(snapshot: PublicationSnapshot) -> str:
    """Render the legacy NCX table of contents."""
    ncx = Element("ncx", {"xmlns": NS.NCX, "version": "2005-1"})
    head = SubElement(ncx, "head")
    SubElement(head, "meta", {"name": "dtb:uid", "content": snapshot.identifier})
    SubElement(head, "meta", {"name": "dtb:depth", "content": "1"})
    SubElement(head, "meta", {"name": "dtb:totalPageCount", "content": "0"})
    SubElement(head, "meta", {"name": "dtb:maxPageNumber", "content": "0"})
    SubElement(SubElement(ncx, "docTitle"), "text").text = snapshot.title
    if snapshot.author:
        SubElement(SubElement(ncx, "docAuthor"), "text").text = snapshot.author

    nav_map = SubElement(ncx, "navMap")
    for index, section in enumerate(snapshot.toc_sections(), start=1):
        nav_point = SubElement(nav_map, "navPoint", {"id": f"navPoint-{index}", "playOrder": str(index)})
        SubElement(SubElement(nav_point, "navLabel"), "text").text = section.title
        SubElement(nav_point, "content", {"src": package_href(section.filename, section=True)})
    return serialize_document(ncx)
