"""In-memory ZIP sink used by the EPUB writer."""
from __future__ import annotations

import io
import zipfile
from datetime import datetime
from typing import List, Optional, Tuple

from epub_builder.utils.logger import get_logger

LOGGER = get_logger(__name__)

ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
UNIX_SYSTEM = 3
FILE_MODE = 0o644


def zip_timestamp(instant: datetime) -> Tuple[int, int, int, int, int, int]:
    """Convert ``instant`` into a ZIP date tuple, clamped to the ZIP epoch."""
    stamp = (instant.year, instant.month, instant.day, instant.hour, instant.minute, instant.second)
    return max(stamp, ZIP_EPOCH)


class ArchiveWriter:
    """Write named entries into a ZIP archive held in memory.

    Use as a context manager. The archive is closed exactly once when the
    block exits; its bytes are only available when the block exited
    without an exception.
    """

    def __init__(self, timestamp: datetime) -> None:
        self._date_time = zip_timestamp(timestamp)
        self._buffer = io.BytesIO()
        self._zip: Optional[zipfile.ZipFile] = None
        self._complete = False
        self.entries: List[str] = []

    def __enter__(self) -> "ArchiveWriter":
        self._zip = zipfile.ZipFile(self._buffer, mode="w")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close(success=exc_type is None)

    def add_text(self, name: str, text: str, *, compress: bool = True) -> None:
        self.add_bytes(name, text.encode("utf-8"), compress=compress)

    def add_bytes(self, name: str, data: bytes, *, compress: bool = True) -> None:
        """Append an entry; stored entries carry no compression and no extra field."""
        if self._zip is None:
            raise RuntimeError("Archive is not open")
        info = zipfile.ZipInfo(name, date_time=self._date_time)
        info.compress_type = zipfile.ZIP_DEFLATED if compress else zipfile.ZIP_STORED
        info.create_system = UNIX_SYSTEM
        info.external_attr = FILE_MODE << 16
        info.extra = b""
        self._zip.writestr(info, data)
        self.entries.append(name)
        LOGGER.debug("Wrote %s (%d bytes, %s)", name, len(data), "deflated" if compress else "stored")

    def close(self, *, success: bool = True) -> None:
        if self._zip is None:
            return
        archive, self._zip = self._zip, None
        archive.close()
        self._complete = success
        if not success:
            LOGGER.warning("Discarding incomplete archive after %d entries", len(self.entries))
            self._buffer = io.BytesIO()

    def getvalue(self) -> bytes:
        if not self._complete:
            raise RuntimeError("Archive was not completed")
        return self._buffer.getvalue()
