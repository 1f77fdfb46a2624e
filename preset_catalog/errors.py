"""
Error kinds raised by the preset catalog.

Index, library and preset loading propagate these straight to the caller.
Sampler zone decoding fails as a whole on the first zone error, and
``preload_all`` catches them per preset name and logs instead.
"""

from typing import Optional


class CatalogError(Exception):
    """Base class for every catalog failure."""


class FetchError(CatalogError):
    """A fetch returned a non-success status (or never got a response)."""

    def __init__(self, url: str, status: Optional[int], message: str = "") -> None:
        self.url = url
        self.status = status
        detail = message or (f"HTTP {status}" if status is not None else "no response")
        super().__init__(f"Failed to fetch {url}: {detail}")


class NotFoundError(CatalogError, LookupError):
    """A library, sub-index or preset name matched nothing."""


class InvalidReferenceError(CatalogError, ValueError):
    """An audio reference is missing the fields its variant requires."""


class DecodeError(CatalogError):
    """Audio bytes could not be turned into a PCM buffer."""


class InvalidDocumentError(CatalogError, ValueError):
    """A fetched JSON document does not have the expected shape."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"Invalid document at {url}: {message}")
