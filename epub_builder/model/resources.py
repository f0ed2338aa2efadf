"""Immutable records for the resources a publication is made of."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True, slots=True)
class Stylesheet:
    """A CSS file placed next to the package document."""

    filename: str
    content: str
    validated: bool = True


@dataclass(frozen=True, slots=True)
class Asset:
    """A binary resource such as an image."""

    filename: str
    media_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class Section:
    """One content document, typically a chapter.

    ``content`` holds the complete rendered XHTML document, not the body
    fragment the caller supplied.
    """

    filename: str
    title: str
    body: str
    content: str
    css_filename: Optional[str] = None
    exclude_from_toc: bool = False
    validated: bool = True


@dataclass(frozen=True, slots=True)
class PublicationSnapshot:
    """Frozen view of a publication, consumed by the writer."""

    identifier: str
    title: str
    language: str
    author: Optional[str] = None
    stylesheets: Tuple[Stylesheet, ...] = ()
    assets: Tuple[Asset, ...] = ()
    sections: Tuple[Section, ...] = ()

    def toc_sections(self) -> Tuple[Section, ...]:
        """Sections listed in the navigation document and NCX, in order."""
        return tuple(section for section in self.sections if not section.exclude_from_toc)
