"""
Symbol Index and import resolver for PortMorph.

Maps every exported declaration of the source project to the target file
that will hold it, and resolves relative source imports to target paths.
Built once per project snapshot and read-only afterwards, so porting workers
can share it without locking.
"""

import logging
import posixpath
import re
from collections.abc import Callable, Iterable

from portmorph.config.models import ExportedSymbol, SourceUnit, SymbolLocation
from portmorph.languages.base.plugin import strip_extension

logger = logging.getLogger(__name__)

IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")
QUALIFIED_REFERENCE = re.compile(r"([A-Za-z_$][\w$]*)\.([A-Za-z_$][\w$]*)")
DEFAULT_INDEX_NAMES = ("index", "__init__")


def _join(directory: str, name: str) -> str:
    return f"{directory}/{name}" if directory and directory != "." else name


def _loose(stem: str) -> str:
    return stem.lower().replace("_", "").replace("-", "")


def identifiers_in(text: str) -> set[str]:
    """All identifier-like tokens in ``text``."""
    return set(IDENTIFIER.findall(text))


class ImportIndex:
    """
    Read-only project-wide symbol index.

    Holds four maps:
    - qualified name -> location (unique; first definition wins)
    - bare name -> all locations (bare names may collide)
    - target path -> symbols defined there
    - source path -> target path

    Usage:
        index = build_index(units, to_target_path)

        # Where does `./models/user` from `src/app.ts` end up?
        target = index.resolve_import("./models/user", "src/app.ts")

        # Bare names defined in more than one file and used by this unit
        ambiguous = index.ambiguous_symbols(unit)
    """

    def __init__(
        self,
        units: dict[str, SourceUnit],
        source_to_target: dict[str, str],
        qualified: dict[str, SymbolLocation],
        simple: dict[str, list[SymbolLocation]],
        file_symbols: dict[str, list[ExportedSymbol]],
        collisions: list[str],
        index_names: tuple[str, ...] = DEFAULT_INDEX_NAMES,
    ):
        self._units = units
        self._source_to_target = source_to_target
        self._qualified = qualified
        self._simple = simple
        self._file_symbols = file_symbols
        self._index_names = index_names
        self.collisions = tuple(collisions)

        by_stem: dict[str, str] = {}
        for path in sorted(units):
            by_stem.setdefault(strip_extension(path), path)
        self._by_stem = by_stem

    # =========================================================================
    # Lookups
    # =========================================================================

    @property
    def source_paths(self) -> list[str]:
        return sorted(self._units)

    @property
    def target_paths(self) -> set[str]:
        return set(self._source_to_target.values())

    def unit(self, source_path: str) -> SourceUnit | None:
        return self._units.get(source_path)

    def target_path_for(self, source_path: str) -> str | None:
        return self._source_to_target.get(source_path)

    def source_path_for(self, target_path: str) -> str | None:
        for source, target in self._source_to_target.items():
            if target == target_path:
                return source
        return None

    def symbols_in(self, target_path: str) -> list[ExportedSymbol]:
        return list(self._file_symbols.get(target_path, []))

    def lookup(self, qualified_name: str) -> SymbolLocation | None:
        return self._qualified.get(qualified_name)

    def locations(self, name: str) -> list[SymbolLocation]:
        return list(self._simple.get(name, []))

    # =========================================================================
    # Import resolution
    # =========================================================================

    def resolve_source(self, import_path: str, from_path: str) -> str | None:
        """
        Resolve a relative import to the source path it refers to.

        Applies, in order: exact match, match ignoring the file extension,
        directory index file, then a same-directory fallback (logged as a
        warning). An import that normalizes to the importing file itself
        resolves to None.
        """
        normalized = posixpath.normpath(posixpath.join(posixpath.dirname(from_path), import_path))
        if normalized == from_path or strip_extension(normalized) == strip_extension(from_path):
            return None

        candidate = self._match(normalized)
        if candidate is None:
            candidate = self._fallback(normalized, from_path)
            if candidate is not None:
                logger.warning(
                    f"Import '{import_path}' in {from_path} has no exact match; using {candidate}"
                )

        if candidate == from_path:
            return None
        return candidate

    def _match(self, normalized: str) -> str | None:
        if normalized in self._units:
            return normalized
        stem = strip_extension(normalized)
        if stem in self._by_stem:
            return self._by_stem[stem]
        for name in self._index_names:
            index_stem = _join(normalized, name)
            if index_stem in self._by_stem:
                return self._by_stem[index_stem]
        return None

    def _fallback(self, normalized: str, from_path: str) -> str | None:
        directory = posixpath.dirname(normalized)
        stem = _loose(posixpath.basename(strip_extension(normalized)))
        siblings = [
            path
            for path in self._units
            if posixpath.dirname(path) == directory
            and _loose(posixpath.basename(strip_extension(path))) == stem
            and path != from_path
        ]
        if not siblings:
            inside = [p for p in self._units if posixpath.dirname(p) == normalized and p != from_path]
            # Prefer a barrel when the directory has one
            siblings = [p for p in inside if posixpath.basename(strip_extension(p)) in self._index_names] or inside
        return sorted(siblings)[0] if siblings else None

    def resolve_import(self, import_path: str, from_path: str) -> str | None:
        """Resolve a relative import to a target path, or None (NOT_FOUND)."""
        source = self.resolve_source(import_path, from_path)
        if source is None:
            return None
        target = self._source_to_target[source]
        if target == self._source_to_target.get(from_path):
            return None
        return target

    # =========================================================================
    # Generation context
    # =========================================================================

    def referenced_symbols(self, unit: SourceUnit, limit: int = 40) -> list[SymbolLocation]:
        """Symbols of other files whose names occur in the unit's text."""
        own_target = self._source_to_target.get(unit.path)
        tokens = identifiers_in(unit.content)
        found = []
        for name in sorted(tokens & self._simple.keys()):
            for location in self._simple[name]:
                if location.target_path != own_target:
                    found.append(location)
        return found[:limit]

    def ambiguous_symbols(self, unit: SourceUnit, limit: int = 10) -> dict[str, list[SymbolLocation]]:
        """Bare names defined in two or more files and referenced by the unit."""
        tokens = identifiers_in(unit.content)
        ambiguous = {}
        for name in sorted(tokens & self._simple.keys()):
            locations = self._simple[name]
            if len({loc.target_path for loc in locations}) > 1:
                ambiguous[name] = locations
            if len(ambiguous) >= limit:
                break
        return ambiguous

    def nested_symbols(self, unit: SourceUnit) -> list[ExportedSymbol]:
        """Nested symbols the unit defines or references as ``Parent.Name``."""
        nested = [symbol for symbol in unit.exports if symbol.is_nested]
        seen = {symbol.qualified_name for symbol in nested}
        for parent, name in QUALIFIED_REFERENCE.findall(unit.content):
            qualified = f"{parent}.{name}"
            location = self._qualified.get(qualified)
            if location and location.symbol.is_nested and qualified not in seen:
                seen.add(qualified)
                nested.append(location.symbol)
        return nested

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_statistics(self) -> dict[str, int]:
        return {
            "files": len(self._units),
            "symbols": sum(len(symbols) for symbols in self._file_symbols.values()),
            "qualified_names": len(self._qualified),
            "ambiguous_names": sum(
                1 for locs in self._simple.values() if len({loc.target_path for loc in locs}) > 1
            ),
            "nested_symbols": sum(1 for loc in self._qualified.values() if loc.symbol.is_nested),
        }

    def export_mapping_table(self) -> str:
        """Markdown table of source file -> target file -> exported symbols."""
        lines = ["| Source | Target | Symbols |", "|---|---|---|"]
        for source in sorted(self._source_to_target):
            target = self._source_to_target[source]
            names = ", ".join(s.flattened_name for s in self._file_symbols.get(target, [])) or "-"
            lines.append(f"| `{source}` | `{target}` | {names} |")
        return "\n".join(lines)


def build_index(
    units: Iterable[SourceUnit],
    to_target_path: Callable[[str], str],
    index_names: tuple[str, ...] = DEFAULT_INDEX_NAMES,
) -> ImportIndex:
    """
    Build the project-wide index. Pure: no I/O and no logging.

    Args:
        units: All source units of the project
        to_target_path: Maps a source path to its target path
        index_names: File stems that act as directory indexes

    Returns:
        A read-only ImportIndex. Qualified-name collisions (first definition
        wins) are listed in ``index.collisions`` for the caller to report.
    """
    unit_map: dict[str, SourceUnit] = {}
    source_to_target: dict[str, str] = {}
    qualified: dict[str, SymbolLocation] = {}
    simple: dict[str, list[SymbolLocation]] = {}
    file_symbols: dict[str, list[ExportedSymbol]] = {}
    collisions: list[str] = []

    for unit in sorted(units, key=lambda u: u.path):
        target_path = to_target_path(unit.path)
        unit_map[unit.path] = unit
        source_to_target[unit.path] = target_path
        file_symbols[target_path] = list(unit.exports)

        for symbol in unit.exports:
            location = SymbolLocation(target_path=target_path, symbol=symbol)
            if symbol.qualified_name in qualified:
                collisions.append(
                    f"{symbol.qualified_name} defined in {qualified[symbol.qualified_name].target_path} "
                    f"and {target_path}"
                )
            else:
                qualified[symbol.qualified_name] = location
            simple.setdefault(symbol.name, []).append(location)

    return ImportIndex(unit_map, source_to_target, qualified, simple, file_symbols, collisions, index_names)
