"""Append-only builder for a publication under construction."""
from __future__ import annotations

from typing import Dict, List, Optional, Union
from xml.sax.saxutils import escape, quoteattr

from epub_builder.model.errors import (
    DuplicateResourceError,
    InvalidContentError,
    InvalidFilenameError,
    InvalidMetadataError,
    UnresolvedReferenceError,
)
from epub_builder.model.resources import Asset, PublicationSnapshot, Section, Stylesheet
from epub_builder.utils.css_utils import CssValidationError, validate_and_prettify_css
from epub_builder.utils.logger import get_logger
from epub_builder.utils.media_types import guess_media_type
from epub_builder.utils.paths import (
    RESERVED_RESOURCE_NAMES,
    XHTML_DIRECTORY,
    filename_problem,
    href_from_section,
)
from epub_builder.utils.xml_utils import HTML_DOCTYPE, NS, XML_DECLARATION, XmlValidationError, validate_and_prettify_xml

LOGGER = get_logger(__name__)

BinaryData = Union[bytes, bytearray, memoryview]

SECTION_TEMPLATE = """{declaration}
{doctype}
<html xmlns="{xhtml_ns}">
<head>
<title>{title}</title>
{link}
</head>
<body>
{body}
</body>
</html>"""


def render_section_document(title: str, body: str, css_href: Optional[str] = None) -> str:
    """Wrap a body fragment in the XHTML envelope of a content document."""
    link = ""
    if css_href is not None:
        link = f'<link rel="stylesheet" type="text/css" href={quoteattr(css_href)}/>'
    return SECTION_TEMPLATE.format(
        declaration=XML_DECLARATION,
        doctype=HTML_DOCTYPE,
        xhtml_ns=NS.XHTML,
        title=escape(title),
        link=link,
        body=body,
    )


class Publication:
    """In-memory EPUB under construction.

    Resources are validated as they are added, so a failing ``add_*`` call
    leaves the publication untouched. Registration order is kept and becomes
    the manifest, spine, and table of contents order.
    """

    def __init__(self, identifier: str, title: str, language: str, author: Optional[str] = None) -> None:
        for field_name, value in (("identifier", identifier), ("title", title), ("language", language)):
            if not value or not value.strip():
                raise InvalidMetadataError(f"Publication {field_name} is required")
        self.identifier = identifier
        self.title = title
        self.language = language
        self.author = author or None

        self._stylesheets: Dict[str, Stylesheet] = {}
        self._assets: Dict[str, Asset] = {}
        self._sections: Dict[str, Section] = {}

    # ------------------------------------------------------------------
    # Read-only views
    @property
    def stylesheets(self) -> List[Stylesheet]:
        return list(self._stylesheets.values())

    @property
    def assets(self) -> List[Asset]:
        return list(self._assets.values())

    @property
    def sections(self) -> List[Section]:
        return list(self._sections.values())

    def snapshot(self) -> PublicationSnapshot:
        """Freeze the current state for packaging."""
        return PublicationSnapshot(
            identifier=self.identifier,
            title=self.title,
            language=self.language,
            author=self.author,
            stylesheets=tuple(self._stylesheets.values()),
            assets=tuple(self._assets.values()),
            sections=tuple(self._sections.values()),
        )

    # ------------------------------------------------------------------
    # Builders
    def add_stylesheet(self, filename: str, content: str, validate: bool = True) -> Stylesheet:
        """Register a CSS file that sections can link to by filename."""
        self._check_filename(filename)
        if filename in self._stylesheets:
            raise DuplicateResourceError(f"Duplicate stylesheet filename: {filename}", filename=filename)
        self._check_resource_path(filename)

        if validate:
            try:
                content = validate_and_prettify_css(content)
            except CssValidationError as exc:
                raise InvalidContentError(
                    f"Invalid CSS in {filename}: {exc}", filename=filename, kind="css"
                ) from exc

        stylesheet = Stylesheet(filename=filename, content=content, validated=validate)
        self._stylesheets[filename] = stylesheet
        LOGGER.debug("Added stylesheet %s (validated=%s)", filename, validate)
        return stylesheet

    def add_asset(self, filename: str, data: BinaryData, media_type: Optional[str] = None) -> Asset:
        """Register a binary resource stored verbatim in the container."""
        self._check_filename(filename)
        if filename in self._assets:
            raise DuplicateResourceError(f"Duplicate asset filename: {filename}", filename=filename)
        self._check_resource_path(filename)

        resolved_type = media_type or guess_media_type(filename)
        if not resolved_type:
            raise InvalidContentError(
                f"Cannot determine the media type of asset {filename}", filename=filename, kind="asset"
            )

        asset = Asset(filename=filename, media_type=resolved_type, data=bytes(data))
        self._assets[filename] = asset
        LOGGER.debug("Added asset %s (%s, %d bytes)", filename, resolved_type, asset.size)
        return asset

    def add_section(
        self,
        filename: str,
        title: str,
        body: str,
        *,
        css_filename: Optional[str] = None,
        exclude_from_toc: bool = False,
        validate: bool = True,
    ) -> Section:
        """Render and register a content document.

        The body is wrapped in a full XHTML document right away; with
        ``validate`` the result is also checked for well-formedness and
        re-indented, so packaging only has to copy the stored string.
        """
        self._check_filename(filename, allow_directories=False)
        if filename in self._sections:
            raise DuplicateResourceError(f"Duplicate section filename: {filename}", filename=filename)
        if not title or not title.strip():
            raise InvalidMetadataError(f"Section {filename} title is required", filename=filename)

        css_href = None
        if css_filename is not None:
            if css_filename not in self._stylesheets:
                raise UnresolvedReferenceError(
                    f"Section {filename} references unknown stylesheet: {css_filename}", filename=filename
                )
            css_href = href_from_section(css_filename)

        content = render_section_document(title, body, css_href)
        if validate:
            try:
                content = validate_and_prettify_xml(content)
            except XmlValidationError as exc:
                raise InvalidContentError(
                    f"Invalid XHTML in section {filename}: {exc}", filename=filename, kind="xhtml"
                ) from exc

        section = Section(
            filename=filename,
            title=title,
            body=body,
            content=content,
            css_filename=css_filename,
            exclude_from_toc=exclude_from_toc,
            validated=validate,
        )
        self._sections[filename] = section
        LOGGER.debug("Added section %s (toc=%s)", filename, not exclude_from_toc)
        return section

    # ------------------------------------------------------------------
    # Internal checks
    @staticmethod
    def _check_filename(filename: str, *, allow_directories: bool = True) -> None:
        problem = filename_problem(filename, allow_directories=allow_directories)
        if problem is not None:
            raise InvalidFilenameError(f"Invalid filename {filename!r}: {problem}", filename=filename)

    def _check_resource_path(self, filename: str) -> None:
        # Stylesheets and assets share the EPUB/ directory with the generated documents.
        if filename in RESERVED_RESOURCE_NAMES:
            raise DuplicateResourceError(f"Filename is reserved for a generated file: {filename}", filename=filename)
        if filename.split("/", 1)[0] == XHTML_DIRECTORY:
            raise InvalidFilenameError(
                f"Invalid filename {filename!r}: {XHTML_DIRECTORY}/ is reserved for sections", filename=filename
            )
        if filename in self._stylesheets or filename in self._assets:
            raise DuplicateResourceError(f"Archive path already in use: EPUB/{filename}", filename=filename)
