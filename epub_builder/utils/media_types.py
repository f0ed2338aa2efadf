"""Media type lookup for publication resources."""
from __future__ import annotations

import mimetypes
from pathlib import PurePosixPath
from typing import Optional

XHTML_MEDIA_TYPE = "application/xhtml+xml"
CSS_MEDIA_TYPE = "text/css"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
OPF_MEDIA_TYPE = "application/oebps-package+xml"
EPUB_MIMETYPE = "application/epub+zip"

# EPUB core media types take precedence over whatever the host registry says.
CORE_MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".css": CSS_MEDIA_TYPE,
    ".xhtml": XHTML_MEDIA_TYPE,
    ".js": "application/javascript",
    ".ncx": NCX_MEDIA_TYPE,
    ".otf": "font/otf",
    ".ttf": "font/ttf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".mp3": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".m4a": "audio/mp4",
    ".opus": "audio/ogg; codecs=opus",
    ".smil": "application/smil+xml",
    ".pls": "application/pls+xml",
}


def guess_media_type(filename: str) -> Optional[str]:
    """Return the media type implied by ``filename``'s extension, if known."""
    ext = PurePosixPath(filename).suffix.lower()
    if ext in CORE_MEDIA_TYPES:
        return CORE_MEDIA_TYPES[ext]
    media_type, _ = mimetypes.guess_type(filename, strict=False)
    return media_type
