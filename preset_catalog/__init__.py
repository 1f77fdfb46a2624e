"""
Preset catalog client: progressive discovery, caching and decoding of remote
instrument preset libraries.
"""

from .audio import AudioBuffer, SoundfileDecoder, ZoneBuffers
from .cache import BoundedCache
from .catalog import PresetCatalog
from .config import CatalogSettings
from .errors import (
    CatalogError,
    DecodeError,
    FetchError,
    InvalidDocumentError,
    InvalidReferenceError,
    NotFoundError,
)
from .transport import FetchResponse, HttpxFetcher

__all__ = [
    "AudioBuffer",
    "BoundedCache",
    "CatalogError",
    "CatalogSettings",
    "DecodeError",
    "FetchError",
    "FetchResponse",
    "HttpxFetcher",
    "InvalidDocumentError",
    "InvalidReferenceError",
    "NotFoundError",
    "PresetCatalog",
    "SoundfileDecoder",
    "ZoneBuffers",
]
