"""
Post-gate normalization of accepted target text.

Every pass is deterministic and idempotent: running ``Normalizer.apply`` on
its own output returns the same text.
"""

import logging
import re

from portmorph.analyzer.import_mapping import ImportMapper, RequiredImport
from portmorph.config.models import PortMetadata, SourceUnit
from portmorph.languages.base.lexing import word_pattern
from portmorph.languages.base.plugin import ImportReference, LanguagePlugin

logger = logging.getLogger(__name__)

MATH_QUALIFIER = re.compile(r"(?<![\w$.])math\.[A-Za-z_]")


def remove_statements(text: str, references: list[ImportReference]) -> str:
    """Delete the lines holding the given import statements."""
    spans = []
    for reference in references:
        start = text.rfind("\n", 0, reference.start) + 1
        end = text.find("\n", reference.end)
        end = len(text) if end == -1 else end + 1
        spans.append((start, end))

    for start, end in sorted(set(spans), reverse=True):
        text = text[:start] + text[end:]
    return text


class Normalizer:
    """
    Applies the fixed sequence of post-gate passes to a ported file.

    Passes, in order: strip self-imports, dialect conventions, merge duplicate
    classes, math import insertion, required import insertion, and pruning of
    unused or invalid project imports.
    """

    def __init__(self, target_plugin: LanguagePlugin, mapper: ImportMapper):
        self.plugin = target_plugin
        self.mapper = mapper

    def apply(self, text: str, unit: SourceUnit) -> str:
        current = self.mapper.target_path(unit)
        required = self.mapper.required_imports(unit)

        text = self.strip_self_imports(text, current)
        text = self.plugin.apply_conventions(text, unit.exports)
        text = self.plugin.merge_duplicate_classes(text)
        text = self.ensure_math_import(text)
        text = self.ensure_required_imports(text, current, required)
        text = self.prune_imports(text, current, required)
        return text.strip("\n") + "\n"

    def _references(self, text: str, current: str) -> list[ImportReference]:
        return self.plugin.parse_imports(text, current, self.mapper.package_name)

    def strip_self_imports(self, text: str, current: str) -> str:
        own = [r for r in self._references(text, current) if current in r.candidates]
        if own:
            logger.debug(f"Removing {len(own)} self-imports from {current}")
        return remove_statements(text, own) if own else text

    def ensure_math_import(self, text: str) -> str:
        statement = self.plugin.math_qualified_import
        if not statement or self.plugin.imports_math_qualified(text):
            return text
        if not MATH_QUALIFIER.search(self.plugin.mask(text)):
            return text
        return self.insert_import(text, statement)

    def ensure_required_imports(self, text: str, current: str, required: list[RequiredImport]) -> str:
        for entry in required:
            covered = any(entry.target_path in r.candidates for r in self._references(text, current))
            if not covered:
                text = self.insert_import(text, entry.statement)
        return text

    def prune_imports(self, text: str, current: str, required: list[RequiredImport]) -> str:
        """Drop project imports that point nowhere or whose symbols are never used."""
        known = self.mapper.index.target_paths
        required_targets = {entry.target_path for entry in required}
        references = self._references(text, current)

        body = remove_statements(text, references)
        masked_body = self.plugin.mask(body)
        doomed = []
        for reference in references:
            if not reference.is_internal:
                continue
            targets = [c for c in reference.candidates if c in known]
            if any(t in required_targets for t in targets):
                continue
            if not targets:
                doomed.append(reference)
                continue
            symbols = [s.flattened_name for t in targets for s in self.mapper.index.symbols_in(t)]
            if symbols and not any(word_pattern(name).search(masked_body) for name in symbols):
                doomed.append(reference)

        return remove_statements(text, doomed) if doomed else text

    def insert_import(self, text: str, statement: str) -> str:
        """Insert an import after the last header directive, or at the top."""
        matches = list(self.plugin.header_directive_pattern.finditer(self.plugin.mask_comments(text)))
        if not matches:
            return f"{statement}\n{text}" if text.startswith("\n") or not text else f"{statement}\n\n{text}"
        end = matches[-1].end()
        return text[:end] + "\n" + statement + text[end:]

    def import_metadata(self, text: str, unit: SourceUnit) -> PortMetadata:
        """Required versus actual imports of a finished file, with any remaining issues."""
        current = self.mapper.target_path(unit)
        required = self.mapper.required_imports(unit)
        references = self._references(text, current)
        known = self.mapper.index.target_paths

        issues = []
        for entry in required:
            if not any(entry.target_path in r.candidates for r in references):
                issues.append(f"Missing import: {entry.statement}")
        for reference in references:
            if reference.foreign and any(c in known for c in reference.candidates):
                issues.append(f"Invalid package import: {reference.statement}")

        return PortMetadata(
            import_issues=issues,
            required_imports=[entry.statement for entry in required],
            actual_imports=[reference.statement for reference in references],
        )
