"""
Search over the enabled part of the catalog.

Both searches read only what ``IndexResolver`` already holds in memory and
only from enabled libraries; they never fetch.  Enable a library first.

Fuzzy scoring:
  exact name (case-insensitive)      = 100
  name starts with query             = 80
  name contains query                = 60
  any tag contains query             = 40
  otherwise 30 * matched_words / words, a word matching name or any tag
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .index_resolver import IndexResolver
from .models import PresetEntry, SearchOptions

DEFAULT_FUZZY_LIMIT = 20


@dataclass(frozen=True)
class _Candidate:
    library_name: str
    names: Tuple[str, ...]  # enabled name plus every alias, lowercased
    entry: PresetEntry


class SearchEngine:
    """Exact-filter and fuzzy ranked search over enabled libraries."""

    def __init__(self, resolver: IndexResolver) -> None:
        self._resolver = resolver

    def _enabled_presets(self) -> List[_Candidate]:
        """Preset entries of enabled libraries, in enable order then document order."""
        candidates: List[_Candidate] = []
        seen: List[object] = []
        for library_name in self._resolver.get_enabled_libraries():
            loaded = self._resolver.loaded_library(library_name)
            if loaded is None:
                continue
            # A library enabled under two aliases is one library.
            if any(loaded is s for s in seen):
                continue
            seen.append(loaded)
            names = tuple(
                n.lower() for n in [library_name, *self._resolver.aliases_of(loaded)]
            )
            for entry in loaded.index.presets():
                candidates.append(_Candidate(library_name, names, entry))
        return candidates

    def search(self, options: Optional[SearchOptions] = None, **filters) -> List[PresetEntry]:
        """
        Filter enabled presets; every given filter must match.

        Accepts a ``SearchOptions`` or the same fields as keyword arguments:
        ``library``, ``category``, ``gm_program``, ``tags``, ``name``.
        """
        if options is not None and filters:
            raise TypeError("pass either a SearchOptions or keyword filters, not both")
        opts = options or SearchOptions(**filters)
        results = self._enabled_presets()

        if opts.library:
            wanted = opts.library.lower()
            results = [r for r in results if wanted in r.names]
        if opts.category:
            results = [r for r in results if r.entry.category == opts.category]
        if opts.gm_program is not None:
            results = [r for r in results if r.entry.gm_program == opts.gm_program]
        if opts.tags:
            wanted_tags = {t.lower() for t in opts.tags}
            results = [
                r for r in results
                if any(t.lower() in wanted_tags for t in r.entry.tags)
            ]
        if opts.name:
            needle = opts.name.lower()
            results = [r for r in results if needle in r.entry.name.lower()]

        return [r.entry for r in results]

    @staticmethod
    def score(entry: PresetEntry, query: str) -> float:
        needle = query.lower()
        name = entry.name.lower()
        tags = [t.lower() for t in entry.tags]

        if name == needle:
            return 100.0
        if name.startswith(needle):
            return 80.0
        if needle in name:
            return 60.0
        if any(needle in t for t in tags):
            return 40.0

        words = needle.split()
        if not words:
            return 0.0
        matched = sum(
            1 for w in words
            if w in name or any(w in t for t in tags)
        )
        return 30.0 * matched / len(words)

    def fuzzy_search(self, query: str, limit: int = DEFAULT_FUZZY_LIMIT) -> List[PresetEntry]:
        """Rank enabled presets against ``query``; ties keep catalog order."""
        scored = []
        for candidate in self._enabled_presets():
            s = self.score(candidate.entry, query)
            if s > 0:
                scored.append((s, candidate.entry))
        # sort() is stable, so equal scores keep candidate order
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [entry for _, entry in scored[:limit]]
