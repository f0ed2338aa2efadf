"""Path and identifier helpers for entries inside the EPUB container."""
from __future__ import annotations

import posixpath
import re
from typing import Dict, Iterable, Optional
from urllib.parse import quote

EPUB_DIRECTORY = "EPUB"
XHTML_DIRECTORY = "xhtml"
MIMETYPE_PATH = "mimetype"
CONTAINER_PATH = "META-INF/container.xml"
PACKAGE_DOCUMENT = "package.opf"
NAV_DOCUMENT = "nav.xhtml"
NCX_DOCUMENT = "toc.ncx"

# Files generated by the writer next to stylesheets and assets.
RESERVED_RESOURCE_NAMES = frozenset({PACKAGE_DOCUMENT, NAV_DOCUMENT, NCX_DOCUMENT})

_NCNAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")
_NCNAME_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")


def filename_problem(filename: str, *, allow_directories: bool = True) -> Optional[str]:
    """Describe why ``filename`` cannot be stored in the container, or return ``None``."""
    if not filename or not filename.strip():
        return "filename must not be empty"
    if "\\" in filename:
        return "filename must use forward slashes"
    if filename.startswith("/"):
        return "filename must be relative"
    segments = filename.split("/")
    if not allow_directories and len(segments) > 1:
        return "filename must not contain directories"
    if any(segment in ("", ".", "..") for segment in segments):
        return "filename must not contain empty, '.' or '..' segments"
    return None


def resource_path(filename: str) -> str:
    """Archive path of a stylesheet or asset."""
    return posixpath.join(EPUB_DIRECTORY, filename)


def section_path(filename: str) -> str:
    """Archive path of a content document."""
    return posixpath.join(EPUB_DIRECTORY, XHTML_DIRECTORY, filename)


def package_href(filename: str, *, section: bool = False) -> str:
    """Percent-encoded href of a resource relative to the package document."""
    relative = posixpath.join(XHTML_DIRECTORY, filename) if section else filename
    return quote(relative, safe="/")


def href_from_section(filename: str) -> str:
    """Href of a package-level resource as seen from a content document."""
    return quote(posixpath.join("..", filename), safe="/")


class ManifestIdAllocator:
    """Hand out unique manifest ids derived from resource filenames."""

    def __init__(self, reserved: Iterable[str] = ()) -> None:
        self._taken = set(reserved)
        self._assigned: Dict[str, str] = {}

    def allocate(self, key: str, filename: str) -> str:
        """Return the id for ``key``, deriving it from ``filename`` the first time."""
        if key in self._assigned:
            return self._assigned[key]
        base = filename if _NCNAME_PATTERN.match(filename) else self._sanitize(filename)
        candidate = base
        counter = 2
        while candidate in self._taken:
            candidate = f"{base}-{counter}"
            counter += 1
        self._taken.add(candidate)
        self._assigned[key] = candidate
        return candidate

    @staticmethod
    def _sanitize(filename: str) -> str:
        cleaned = _NCNAME_INVALID_CHARS.sub("_", filename)
        if not re.match(r"[A-Za-z_]", cleaned):
            cleaned = f"id-{cleaned}"
        return cleaned
