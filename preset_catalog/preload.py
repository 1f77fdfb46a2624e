"""
Best-effort preloading of the presets a song refers to.

Given the preset names the compiler extracted from a song, enable the
libraries they name, fetch every preset and decode the zones of samplers so
playback can start without waiting on the network.  One bad name never
stops the others.
"""

import asyncio
from typing import TYPE_CHECKING, Iterable, List, Optional

from loguru import logger

from .models import PreloadResult

if TYPE_CHECKING:
    from .catalog import PresetCatalog


def required_libraries(preset_names: Iterable[str]) -> List[str]:
    """Library prefixes of ``"Library/Preset"`` names, first-seen order, no duplicates."""
    libraries: dict = {}
    for name in preset_names:
        library, sep, _ = name.partition("/")
        if sep and library:
            libraries.setdefault(library, None)
    return list(libraries)


class PreloadOrchestrator:
    """Runs ``preload_all`` against one catalog."""

    def __init__(self, catalog: "PresetCatalog") -> None:
        self._catalog = catalog

    async def preload_all(self, preset_names: Iterable[str]) -> PreloadResult:
        names = list(preset_names)
        result = PreloadResult()

        try:
            await self._catalog.load_root_index()
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Preload: root index unavailable, skipping {len(names)} presets: {exc}")
            result.failed = {name: str(exc) for name in names}
            return result

        libraries = required_libraries(names)
        outcomes = await asyncio.gather(
            *(self._catalog.enable_library(lib) for lib in libraries),
            return_exceptions=True,
        )
        for lib, outcome in zip(libraries, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Preload: could not enable library \"{lib}\": {outcome}")

        errors = await asyncio.gather(*(self._preload_one(name) for name in names))
        for name, error in zip(names, errors):
            if error is None:
                result.loaded.append(name)
            else:
                result.failed[name] = error

        logger.info(f"Preloaded {len(result.loaded)}/{len(names)} presets")
        return result

    async def _preload_one(self, name: str) -> Optional[str]:
        try:
            loaded = await self._catalog.load_preset_with_context(name)
            if loaded.preset.is_sampler:
                await self._catalog.decode_sampler_zones(
                    loaded.preset.node.config,  # type: ignore[union-attr]
                    loaded.preset_url,
                )
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Failed to preload \"{name}\": {exc}")
            return str(exc) or type(exc).__name__
        return None
