"""
Catalog configuration.

Settings are plain constructor arguments; ``CatalogSettings.from_env()``
builds them from environment variables when a catalog URL is configured.
"""

import os
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field, field_validator

DEFAULT_PRESET_CACHE_SIZE = 128
DEFAULT_AUDIO_CACHE_SIZE = 256
DEFAULT_REQUEST_TIMEOUT = 30.0


class CatalogSettings(BaseModel):
    """Where the catalog lives and how much of it to keep in memory."""

    base_url: str = Field(..., description="URL of the directory holding the root index.json")
    preset_cache_size: int = Field(DEFAULT_PRESET_CACHE_SIZE, ge=1, description="Max cached preset descriptors")
    audio_cache_size: int = Field(DEFAULT_AUDIO_CACHE_SIZE, ge=1, description="Max cached decoded buffers")
    request_timeout: float = Field(DEFAULT_REQUEST_TIMEOUT, gt=0, description="HTTP timeout in seconds")

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("base_url must not be empty")
        return v

    @classmethod
    def from_env(cls) -> Optional["CatalogSettings"]:
        """
        Read settings from the environment.

        PRESET_CATALOG_URL      catalog root (required, else None is returned)
        PRESET_CACHE_SIZE       descriptor cache capacity
        AUDIO_CACHE_SIZE        decoded audio cache capacity
        PRESET_CATALOG_TIMEOUT  HTTP timeout in seconds
        """
        base_url = os.environ.get("PRESET_CATALOG_URL")
        if not base_url:
            logger.info("PRESET_CATALOG_URL not set, preset catalog disabled.")
            return None
        return cls(
            base_url=base_url,
            preset_cache_size=int(os.environ.get("PRESET_CACHE_SIZE", DEFAULT_PRESET_CACHE_SIZE)),
            audio_cache_size=int(os.environ.get("AUDIO_CACHE_SIZE", DEFAULT_AUDIO_CACHE_SIZE)),
            request_timeout=float(os.environ.get("PRESET_CATALOG_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)),
        )
