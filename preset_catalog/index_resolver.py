"""
Index Resolver

Loads the root ``index.json`` once and library indexes on demand, matching
library names against the root's sub-index entries with three fallbacks:

1. exact ``entry.name``
2. case-insensitive, underscores read as spaces ("FluidR3_GM" == "FluidR3 GM")
3. ``entry.path`` starts with ``"<name>/"`` ("FluidR3_GM/index.json")

A resolved library is registered under both the requested and the canonical
name, sharing one ``LoadedLibrary`` object.  Loaded libraries are never
dropped; only the descriptor cache evicts.
"""

from typing import Dict, List, Optional, Tuple

from loguru import logger

from .cache import BoundedCache, InFlight
from .config import DEFAULT_PRESET_CACHE_SIZE
from .errors import NotFoundError
from .models import (
    CatalogIndex,
    LibraryInfo,
    LoadedLibrary,
    PresetDescriptor,
    PresetEntry,
    SubIndexEntry,
)
from .transport import Fetcher, dir_of, fetch_document, join_url

ROOT_INDEX_FILE = "index.json"


def _normalise(name: str) -> str:
    return name.replace("_", " ").lower()


class IndexResolver:
    """Catalog index state for one catalog endpoint."""

    def __init__(
        self,
        base_url: str,
        fetcher: Fetcher,
        preset_cache_size: int = DEFAULT_PRESET_CACHE_SIZE,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._fetcher = fetcher
        self._root: Optional[CatalogIndex] = None
        self._libraries: Dict[str, LoadedLibrary] = {}
        # dict keys as an insertion-ordered set
        self._enabled: Dict[str, None] = {}
        self._sub_indexes: Dict[Tuple[str, str], LoadedLibrary] = {}
        self._presets: BoundedCache[str, PresetDescriptor] = BoundedCache(
            preset_cache_size, name="preset cache"
        )
        self._inflight = InFlight()

    # ------------------------------------------------------------------
    # Root index
    # ------------------------------------------------------------------

    @property
    def root_index(self) -> Optional[CatalogIndex]:
        return self._root

    async def load_root_index(self) -> CatalogIndex:
        """Fetch ``<base_url>/index.json`` on first call; memoized afterwards."""
        if self._root is not None:
            return self._root
        return await self._inflight.run(("root",), self._fetch_root)

    async def _fetch_root(self) -> CatalogIndex:
        url = f"{self.base_url}/{ROOT_INDEX_FILE}"
        root = await fetch_document(self._fetcher, url, CatalogIndex)
        self._root = root
        logger.info(
            f"Root index '{root.name}' loaded: {len(root.sub_indexes())} libraries, "
            f"{len(root.presets())} presets"
        )
        return root

    async def fetch_available_libraries(self) -> List[SubIndexEntry]:
        root = await self.load_root_index()
        return root.sub_indexes()

    def get_available_libraries(self) -> List[LibraryInfo]:
        """
        Libraries listed by the root index (synchronous).

        Requires ``load_root_index()`` to have completed; returns an empty list
        otherwise.  A flat root (presets but no sub-indexes) is reported as a
        single virtual library named after the root index.
        """
        root = self._root
        if root is None:
            return []

        subs = root.sub_indexes()
        if not subs:
            presets = root.presets()
            if not presets:
                return []
            return [LibraryInfo(
                name=root.name,
                path=ROOT_INDEX_FILE,
                description=root.description,
                preset_count=len(presets),
                loaded=root.name in self._libraries,
                enabled=root.name in self._enabled,
            )]

        return [
            LibraryInfo(
                name=entry.name,
                path=entry.path,
                description=entry.description,
                preset_count=entry.preset_count,
                loaded=entry.name in self._libraries,
                enabled=entry.name in self._enabled,
            )
            for entry in subs
        ]

    # ------------------------------------------------------------------
    # Libraries
    # ------------------------------------------------------------------

    @staticmethod
    def match_library_entry(root: CatalogIndex, name: str) -> Optional[SubIndexEntry]:
        """Find the sub-index entry for ``name`` using the three-tier fallback."""
        subs = root.sub_indexes()
        for entry in subs:
            if entry.name == name:
                return entry
        wanted = _normalise(name)
        for entry in subs:
            if _normalise(entry.name) == wanted:
                return entry
        prefix = f"{name}/"
        for entry in subs:
            if entry.path.startswith(prefix):
                return entry
        return None

    async def load_library(self, name: str) -> LoadedLibrary:
        """Load a library index by name (or alias); memoized per name."""
        loaded = self._libraries.get(name)
        if loaded is not None:
            return loaded

        root = await self.load_root_index()

        if not root.has_sub_indexes() and root.name == name:
            loaded = LoadedLibrary(index=root, base_url=self.base_url)
            self._libraries[name] = loaded
            logger.info(f"Library '{name}' is the flat root index")
            return loaded

        entry = self.match_library_entry(root, name)
        if entry is None:
            raise NotFoundError(f'Library not found: "{name}"')

        loaded = self._libraries.get(entry.name)
        if loaded is None:
            loaded = await self._inflight.run(
                ("library", entry.path), lambda: self._fetch_library(entry)
            )
        # Register the alias as well so either spelling is a cache hit.
        self._libraries.setdefault(name, loaded)
        self._libraries.setdefault(entry.name, loaded)
        return loaded

    async def _fetch_library(self, entry: SubIndexEntry) -> LoadedLibrary:
        url = join_url(self.base_url, entry.path)
        index = await fetch_document(self._fetcher, url, CatalogIndex)
        loaded = LoadedLibrary(index=index, base_url=dir_of(url))
        logger.info(
            f"Library '{entry.name}' loaded: {len(index.presets())} presets, "
            f"{len(index.sub_indexes())} sub-indexes"
        )
        return loaded

    def is_loaded(self, name: str) -> bool:
        return name in self._libraries

    def loaded_library(self, name: str) -> Optional[LoadedLibrary]:
        return self._libraries.get(name)

    def loaded_libraries(self) -> Dict[str, LoadedLibrary]:
        """Snapshot of every registered name, aliases included."""
        return dict(self._libraries)

    def aliases_of(self, library: LoadedLibrary) -> List[str]:
        return [name for name, lib in self._libraries.items() if lib is library]

    async def enable_library(self, name: str) -> None:
        """Load ``name`` if needed and make it visible to search."""
        await self.load_library(name)
        self._enabled[name] = None

    def disable_library(self, name: str) -> None:
        """Hide ``name`` from search; its index and cached data stay resident."""
        self._enabled.pop(name, None)

    def get_enabled_libraries(self) -> List[str]:
        return list(self._enabled)

    def is_enabled(self, name: str) -> bool:
        return name in self._enabled

    # ------------------------------------------------------------------
    # Sub-indexes (groups nested inside a library)
    # ------------------------------------------------------------------

    def library_has_sub_indexes(self, library: str) -> bool:
        loaded = self._libraries.get(library)
        return loaded is not None and loaded.index.has_sub_indexes()

    def get_sub_indexes(self, library: str) -> List[SubIndexEntry]:
        loaded = self._libraries.get(library)
        return loaded.index.sub_indexes() if loaded is not None else []

    async def load_sub_index(self, library: str, sub_index: str) -> LoadedLibrary:
        """Fetch a sub-index of a loaded library; resolves relative to that library."""
        parent = self._libraries.get(library)
        if parent is None:
            parent = await self.load_library(library)

        key = (library, sub_index)
        loaded = self._sub_indexes.get(key)
        if loaded is not None:
            return loaded

        entry = next((e for e in parent.index.sub_indexes() if e.name == sub_index), None)
        if entry is None:
            raise NotFoundError(f'Sub-index "{sub_index}" not found in library "{library}"')

        url = join_url(parent.base_url, entry.path)

        async def fetch() -> LoadedLibrary:
            index = await fetch_document(self._fetcher, url, CatalogIndex)
            logger.debug(f"Sub-index '{library}/{sub_index}' loaded: {len(index.presets())} presets")
            return LoadedLibrary(index=index, base_url=dir_of(url))

        loaded = await self._inflight.run(("sub-index", url), fetch)
        self._sub_indexes[key] = loaded
        return loaded

    def is_sub_index_loaded(self, library: str, sub_index: str) -> bool:
        return (library, sub_index) in self._sub_indexes

    def get_sub_index(self, library: str, sub_index: str) -> Optional[LoadedLibrary]:
        return self._sub_indexes.get((library, sub_index))

    def get_sub_index_presets(self, library: str, sub_index: str) -> List[PresetEntry]:
        loaded = self._sub_indexes.get((library, sub_index))
        return loaded.index.presets() if loaded is not None else []

    # ------------------------------------------------------------------
    # Preset documents
    # ------------------------------------------------------------------

    def resolve_preset_url(self, path: str, library_name: Optional[str] = None) -> str:
        """Full URL of a preset path, relative to its library when it is loaded."""
        if library_name:
            loaded = self._libraries.get(library_name)
            if loaded is not None:
                return join_url(loaded.base_url, path)
        return join_url(self.base_url, path)

    def find_library_for_entry(self, entry: PresetEntry) -> Optional[str]:
        """Name of the first loaded library whose index lists ``entry``."""
        for name, loaded in self._libraries.items():
            for candidate in loaded.index.presets():
                if candidate.name == entry.name and candidate.path == entry.path:
                    return name
        return None

    async def fetch_preset(self, url: str, cache_key: str) -> PresetDescriptor:
        """Fetch a preset descriptor through the descriptor cache."""
        if self._presets.has(cache_key):
            logger.debug(f"Preset cache hit: {cache_key}")
            return self._presets.get(cache_key)  # type: ignore[return-value]

        async def fetch() -> PresetDescriptor:
            preset = await fetch_document(self._fetcher, url, PresetDescriptor)
            self._presets.set(cache_key, preset)
            return preset

        return await self._inflight.run(("preset", cache_key), fetch)

    @property
    def preset_cache(self) -> BoundedCache[str, PresetDescriptor]:
        return self._presets

    def clear_preset_cache(self) -> None:
        self._presets.clear()
