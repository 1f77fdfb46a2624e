"""
Preset Catalog

One ``PresetCatalog`` per catalog endpoint.  It owns all catalog state (root
index, loaded and enabled libraries, the descriptor and audio caches) and
wires the index resolver, search engine, audio resolver and preloader
together.

Usage:
    async with PresetCatalog("https://example.com/presets") as catalog:
        await catalog.load_root_index()
        await catalog.enable_library("FluidR3_GM")
        hits = catalog.fuzzy_search("grand piano")
        loaded = await catalog.load_preset_with_context("FluidR3_GM/Acoustic Grand Piano")
        buffers = await catalog.decode_sampler_zones(loaded.preset.node.config, loaded.preset_url)
"""

from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger

from .audio import AudioBuffer, AudioDecoder, AudioReferenceResolver, ZoneBuffers
from .config import (
    DEFAULT_AUDIO_CACHE_SIZE,
    DEFAULT_PRESET_CACHE_SIZE,
    DEFAULT_REQUEST_TIMEOUT,
    CatalogSettings,
)
from .errors import NotFoundError
from .index_resolver import IndexResolver
from .models import (
    AudioReference,
    CatalogIndex,
    LibraryInfo,
    LoadedLibrary,
    LoadedPreset,
    PreloadResult,
    PresetDescriptor,
    PresetEntry,
    SamplerConfig,
    SearchOptions,
    SubIndexEntry,
)
from .preload import PreloadOrchestrator
from .search import DEFAULT_FUZZY_LIMIT, SearchEngine
from .transport import Fetcher, HttpxFetcher


def _best_name_match(entries: List[PresetEntry], name: str) -> PresetEntry:
    """Exact case-insensitive name match if there is one, else the first hit."""
    wanted = name.lower()
    for entry in entries:
        if entry.name.lower() == wanted:
            return entry
    return entries[0]


class PresetCatalog:
    """Progressive, cached access to a remote preset catalog."""

    def __init__(
        self,
        base_url: str,
        fetcher: Optional[Fetcher] = None,
        decoder: Optional[AudioDecoder] = None,
        preset_cache_size: int = DEFAULT_PRESET_CACHE_SIZE,
        audio_cache_size: int = DEFAULT_AUDIO_CACHE_SIZE,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owned_fetcher: Optional[HttpxFetcher] = None
        if fetcher is None:
            self._owned_fetcher = HttpxFetcher(timeout=request_timeout)
            fetcher = self._owned_fetcher
        self.fetcher = fetcher
        self.index = IndexResolver(self.base_url, fetcher, preset_cache_size=preset_cache_size)
        self.searcher = SearchEngine(self.index)
        self.audio = AudioReferenceResolver(
            self.base_url, fetcher, decoder=decoder, cache_size=audio_cache_size
        )
        self._preloader = PreloadOrchestrator(self)

    @classmethod
    def from_settings(
        cls,
        settings: CatalogSettings,
        decoder: Optional[AudioDecoder] = None,
    ) -> "PresetCatalog":
        return cls(
            settings.base_url,
            decoder=decoder,
            preset_cache_size=settings.preset_cache_size,
            audio_cache_size=settings.audio_cache_size,
            request_timeout=settings.request_timeout,
        )

    @classmethod
    def from_env(cls, decoder: Optional[AudioDecoder] = None) -> Optional["PresetCatalog"]:
        """Catalog configured from PRESET_CATALOG_* variables, or None when unset."""
        settings = CatalogSettings.from_env()
        return cls.from_settings(settings, decoder=decoder) if settings else None

    async def aclose(self) -> None:
        if self._owned_fetcher is not None:
            await self._owned_fetcher.aclose()

    async def __aenter__(self) -> "PresetCatalog":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    async def load_root_index(self) -> CatalogIndex:
        return await self.index.load_root_index()

    async def fetch_available_libraries(self) -> List[SubIndexEntry]:
        return await self.index.fetch_available_libraries()

    def get_available_libraries(self) -> List[LibraryInfo]:
        return self.index.get_available_libraries()

    async def load_library(self, name: str) -> LoadedLibrary:
        return await self.index.load_library(name)

    async def enable_library(self, name: str) -> None:
        await self.index.enable_library(name)

    def disable_library(self, name: str) -> None:
        self.index.disable_library(name)

    def get_enabled_libraries(self) -> List[str]:
        return self.index.get_enabled_libraries()

    def library_has_sub_indexes(self, library: str) -> bool:
        return self.index.library_has_sub_indexes(library)

    def get_sub_indexes(self, library: str) -> List[SubIndexEntry]:
        return self.index.get_sub_indexes(library)

    async def load_sub_index(self, library: str, sub_index: str) -> LoadedLibrary:
        return await self.index.load_sub_index(library, sub_index)

    def is_sub_index_loaded(self, library: str, sub_index: str) -> bool:
        return self.index.is_sub_index_loaded(library, sub_index)

    def get_sub_index_presets(self, library: str, sub_index: str) -> List[PresetEntry]:
        return self.index.get_sub_index_presets(library, sub_index)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, options: Optional[SearchOptions] = None, **filters) -> List[PresetEntry]:
        return self.searcher.search(options, **filters)

    def fuzzy_search(self, query: str, limit: int = DEFAULT_FUZZY_LIMIT) -> List[PresetEntry]:
        return self.searcher.fuzzy_search(query, limit)

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    async def load_preset(self, name: str) -> PresetDescriptor:
        loaded = await self.load_preset_with_context(name)
        return loaded.preset

    async def load_preset_with_context(self, name: str) -> LoadedPreset:
        """
        Find a preset by name and fetch it.

        ``"Library/Preset"`` enables ``Library`` first when needed and looks
        there; a plain name (or a qualified one not found in its library)
        searches every enabled library.
        """
        library, sep, preset_name = name.partition("/")
        if sep and library:
            if not self.index.is_enabled(library):
                await self.enable_library(library)
            hits = self.search(name=preset_name, library=library)
            if hits:
                return await self._load(_best_name_match(hits, preset_name), library)
        else:
            preset_name = name

        hits = self.search(name=preset_name)
        if not hits:
            raise NotFoundError(f'Preset not found: "{name}"')
        entry = _best_name_match(hits, preset_name)
        return await self._load(entry, self.index.find_library_for_entry(entry))

    async def load_entry(self, entry: PresetEntry, library_name: Optional[str] = None) -> PresetDescriptor:
        """Fetch the descriptor of a catalog entry, resolving it against its library."""
        loaded = await self._load(entry, library_name or self.index.find_library_for_entry(entry))
        return loaded.preset

    async def load_preset_by_path(self, path: str, library_name: Optional[str] = None) -> PresetDescriptor:
        url = self.index.resolve_preset_url(path, library_name)
        return await self.index.fetch_preset(url, path)

    async def load_preset_by_program(self, program: int) -> PresetDescriptor:
        """First enabled preset mapped to General MIDI ``program``."""
        hits = self.search(gm_program=program)
        if not hits:
            raise NotFoundError(f"No preset found for GM program {program}")
        return await self.load_entry(hits[0])

    async def _load(self, entry: PresetEntry, library_name: Optional[str]) -> LoadedPreset:
        preset_url = self.index.resolve_preset_url(entry.path, library_name)
        preset = await self.index.fetch_preset(preset_url, entry.path)
        return LoadedPreset(
            preset=preset,
            preset_url=preset_url,
            entry=entry,
            library_name=library_name,
        )

    def resolve_preset_url(self, path: str, library_name: Optional[str] = None) -> str:
        return self.index.resolve_preset_url(path, library_name)

    def find_library_for_entry(self, entry: PresetEntry) -> Optional[str]:
        return self.index.find_library_for_entry(entry)

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    async def decode_audio(
        self,
        ref: Union[AudioReference, Dict[str, Any]],
        preset_url: Optional[str] = None,
    ) -> AudioBuffer:
        return await self.audio.decode_audio(ref, preset_url)

    async def decode_sampler_zones(
        self,
        config: Union[SamplerConfig, Dict[str, Any]],
        preset_url: Optional[str] = None,
    ) -> ZoneBuffers:
        return await self.audio.decode_sampler_zones(config, preset_url)

    # ------------------------------------------------------------------
    # Preloading
    # ------------------------------------------------------------------

    async def preload_all(self, preset_names: Iterable[str]) -> PreloadResult:
        """Fetch and decode everything a song refers to; failures are per name."""
        return await self._preloader.preload_all(preset_names)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_caches(self) -> None:
        self.index.clear_preset_cache()
        self.audio.clear()
        logger.debug("Preset and audio caches cleared")

    @property
    def preset_cache_size(self) -> int:
        return len(self.index.preset_cache)

    @property
    def audio_cache_size(self) -> int:
        return self.audio.cache_size

    def __repr__(self) -> str:
        return (
            f"PresetCatalog({self.base_url}, {len(self.get_enabled_libraries())} enabled, "
            f"presets={self.preset_cache_size}, audio={self.audio_cache_size})"
        )
