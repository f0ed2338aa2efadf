"""Package a publication into an EPUB 3 container."""
from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

from epub_builder.model.errors import PackagingError
from epub_builder.model.publication import Publication
from epub_builder.model.resources import PublicationSnapshot
from epub_builder.utils.logger import get_logger
from epub_builder.utils.media_types import EPUB_MIMETYPE
from epub_builder.utils.paths import (
    CONTAINER_PATH,
    MIMETYPE_PATH,
    NAV_DOCUMENT,
    NCX_DOCUMENT,
    PACKAGE_DOCUMENT,
    resource_path,
    section_path,
)
from epub_builder.utils.xml_utils import XmlValidationError, check_well_formed
from epub_builder.writer.archive import ArchiveWriter
from epub_builder.writer.documents import (
    ManifestIds,
    render_container_xml,
    render_nav_xhtml,
    render_package_opf,
    render_toc_ncx,
)

LOGGER = get_logger(__name__)

Clock = Callable[[], datetime]
PublicationLike = Union[Publication, PublicationSnapshot]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EpubWriter:
    """Serialize a publication snapshot into the bytes of an ``.epub`` file.

    Entries are written in the order the OCF container format requires:
    ``mimetype`` (stored, uncompressed), ``META-INF/container.xml``, the
    package document, the navigation document, the NCX, then stylesheets,
    assets, and finally the content documents.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or utc_now

    def write(self, publication: PublicationLike) -> bytes:
        snapshot = publication.snapshot() if isinstance(publication, Publication) else publication
        modified = self._clock()
        ids = ManifestIds(snapshot)

        with ArchiveWriter(modified) as archive:
            archive.add_text(MIMETYPE_PATH, EPUB_MIMETYPE, compress=False)
            self._add_xml(archive, CONTAINER_PATH, render_container_xml())
            self._add_xml(archive, resource_path(PACKAGE_DOCUMENT), render_package_opf(snapshot, ids, modified))
            self._add_xml(archive, resource_path(NAV_DOCUMENT), render_nav_xhtml(snapshot))
            self._add_xml(archive, resource_path(NCX_DOCUMENT), render_toc_ncx(snapshot))

            for stylesheet in snapshot.stylesheets:
                archive.add_text(resource_path(stylesheet.filename), stylesheet.content)
            for asset in snapshot.assets:
                archive.add_bytes(resource_path(asset.filename), asset.data)
            for section in snapshot.sections:
                path = section_path(section.filename)
                if section.validated:
                    self._add_xml(archive, path, section.content)
                else:
                    archive.add_text(path, section.content)

        data = archive.getvalue()
        LOGGER.info(
            "Packaged %s: %d sections, %d stylesheets, %d assets (%d bytes)",
            snapshot.identifier,
            len(snapshot.sections),
            len(snapshot.stylesheets),
            len(snapshot.assets),
            len(data),
        )
        return data

    @staticmethod
    def _add_xml(archive: ArchiveWriter, name: str, document: str) -> None:
        try:
            check_well_formed(document)
        except XmlValidationError as exc:
            raise PackagingError(f"Generated document {name} is not well-formed: {exc}", filename=name) from exc
        archive.add_text(name, document)


def package(publication: PublicationLike, clock: Optional[Clock] = None) -> bytes:
    """Return the bytes of the EPUB container for ``publication``."""
    return EpubWriter(clock).write(publication)


def write_epub(publication: PublicationLike, output_path: Path, clock: Optional[Clock] = None) -> Path:
    """Package ``publication`` and write it to ``output_path``.

    The file is first written next to the destination and only moved into
    place once complete, so a failed run never leaves a truncated ``.epub``.
    """
    data = package(publication, clock)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", dir=output_path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, output_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    LOGGER.info("Wrote %s", output_path)
    return output_path
