"""Exceptions raised while building and packaging a publication."""
from __future__ import annotations

from typing import Optional


class EpubError(Exception):
    """Base class for every error raised by the builder."""

    def __init__(self, message: str, *, filename: Optional[str] = None) -> None:
        super().__init__(message)
        self.filename = filename


class InvalidMetadataError(EpubError, ValueError):
    """Required publication metadata is missing or blank."""


class InvalidFilenameError(EpubError, ValueError):
    """A resource filename cannot be used as a path inside the container."""


class DuplicateResourceError(EpubError, ValueError):
    """A resource with the same filename (or archive path) is already registered."""


class InvalidContentError(EpubError, ValueError):
    """Markup or stylesheet content failed validation when it was added."""

    def __init__(self, message: str, *, filename: Optional[str] = None, kind: Optional[str] = None) -> None:
        super().__init__(message, filename=filename)
        self.kind = kind


class UnresolvedReferenceError(EpubError, LookupError):
    """A section refers to a stylesheet that has not been added."""


class PackagingError(EpubError, RuntimeError):
    """Content that should already be valid failed to serialize during packaging."""
