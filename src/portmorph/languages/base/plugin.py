"""
Base dialect plugin interface.

Every dialect (TypeScript, Python, Dart, ...) implements this interface. A
plugin serves in two roles:

- As a *source* dialect it extracts exported declarations and intra-project
  imports. Extraction is a deliberate regex heuristic; a real parser can be
  swapped in as long as it returns the same ``ExportedSymbol`` list.
- As a *target* dialect it knows file naming conventions, how import
  statements are written and parsed, and what a top-level declaration looks
  like in generated text.
"""

import posixpath
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from portmorph.config.models import ExportedSymbol, LanguageType
from portmorph.languages.base.lexing import line_number, mask_comments_and_strings


# Top-level declaration starts used to pick chunk split points in source text
DECLARATION_BOUNDARY = re.compile(
    r"^\s*(export\s+)?(class|interface|type|enum|function|const|let|var)\b"
)


def to_snake_case(value: str) -> str:
    """Convert camelCase / kebab-case path segments to snake_case."""
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", value)
    return re.sub(r"[-\s]", "_", value).lower()


def to_pascal_case(value: str) -> str:
    """Convert snake_case to PascalCase."""
    return "".join(part[:1].upper() + part[1:] for part in value.split("_") if part)


def strip_extension(path: str) -> str:
    root, _ = posixpath.splitext(path)
    return root


def dedupe(items: list[str]) -> list[str]:
    """Drop repeated items, keeping first-seen order."""
    seen: set[str] = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


@dataclass
class ImportReference:
    """An import statement found in generated target text."""

    statement: str
    spec: str
    start: int = 0
    end: int = 0
    candidates: list[str] = field(default_factory=list)  # Project paths it may point at
    foreign: bool = False  # Project path addressed through another package name

    @property
    def is_internal(self) -> bool:
        return bool(self.candidates)


class LanguagePlugin(ABC):
    """
    Abstract base class for dialect plugins.

    Source-side hooks have permissive defaults (a dialect that is only ever a
    target does not need to extract exports). Target-side hooks that every
    port relies on are abstract.
    """

    line_comment: str | None = "//"
    block_comment: tuple[str, str] | None = ("/*", "*/")
    string_delimiters: tuple[str, ...] = ('"', "'", "`")
    has_static_imports: bool = False
    index_names: tuple[str, ...] = ()

    @property
    @abstractmethod
    def language(self) -> LanguageType:
        """Return the dialect this plugin handles."""
        pass

    @property
    @abstractmethod
    def file_extensions(self) -> list[str]:
        """Return file extensions for this dialect; the first is used for output."""
        pass

    @property
    @abstractmethod
    def feature_summary(self) -> str:
        """Short bullet list of language traits shown to the oracle."""
        pass

    @property
    def porting_rules(self) -> str:
        """Extra conversion rules included in full prompts when this dialect is the target."""
        return ""

    @property
    def language_name(self) -> str:
        return self.language.value

    @property
    def primary_extension(self) -> str:
        return self.file_extensions[0]

    # =========================================================================
    # Source dialect
    # =========================================================================

    def extract_exports(self, content: str) -> list[ExportedSymbol]:
        """Extract exported declarations from source text."""
        return []

    def extract_local_imports(self, content: str) -> list[str]:
        """Return relative import paths (``./x``, ``../y``) found in source text."""
        return []

    def extract_imported_names(self, content: str) -> dict[str, list[str]]:
        """Map each relative import path to the names it imports (empty when unknown)."""
        return {path: [] for path in self.extract_local_imports(content)}

    def extract_reexports(self, content: str) -> list[str]:
        """Return module paths re-exported by a barrel file."""
        return []

    def is_index_file(self, path: str) -> bool:
        """Whether ``path`` is a directory index (barrel) file."""
        stem = posixpath.basename(strip_extension(path))
        _, ext = posixpath.splitext(path)
        return stem in self.index_names and ext in self.file_extensions

    def leakage_patterns(self) -> list[tuple[re.Pattern, str]]:
        """Module syntax of this dialect that must not appear in another dialect's output."""
        return []

    @property
    def boundary_pattern(self) -> re.Pattern:
        return DECLARATION_BOUNDARY

    @property
    def entry_point_names(self) -> list[str]:
        return []

    # =========================================================================
    # Target dialect
    # =========================================================================

    def convert_path(self, source_path: str, source_language: LanguageType) -> str:
        """Map a source-relative path to the target-relative path for this dialect."""
        return strip_extension(source_path) + self.primary_extension

    @abstractmethod
    def build_import(
        self,
        target_path: str,
        current_target_path: str,
        package_name: str,
        symbols: list[str] | None = None,
    ) -> str:
        """Render the import statement that makes ``target_path`` visible in the current file."""
        pass

    @abstractmethod
    def parse_imports(
        self, text: str, current_target_path: str, package_name: str
    ) -> list[ImportReference]:
        """Find import statements in target text and classify them."""
        pass

    @property
    @abstractmethod
    def import_line_pattern(self) -> re.Pattern:
        """Matches whole import statements (possibly spanning lines)."""
        pass

    @property
    def header_directive_pattern(self) -> re.Pattern:
        """Directives stripped from every chunk but the first."""
        return self.import_line_pattern

    @property
    @abstractmethod
    def declaration_patterns(self) -> list[re.Pattern]:
        """Top-level declaration patterns for target text; each exposes a ``name`` group."""
        pass

    def top_level_declarations(self, text: str) -> list[tuple[str, int]]:
        """Return (name, line) for each top-level declaration in ``text``."""
        masked = self.mask(text)
        found = []
        for pattern in self.declaration_patterns:
            for match in pattern.finditer(masked):
                found.append((match.start(), match.group("name")))
        return [(name, line_number(masked, offset)) for offset, name in sorted(found)]

    def declaration_body(self, text: str, name: str) -> str | None:
        """Body text of the type or function declared as ``name``, or None."""
        return None

    @property
    def math_functions(self) -> list[str]:
        """Math functions that only resolve through the dialect's math import."""
        return []

    @property
    def math_qualified_import(self) -> str | None:
        """Import statement that makes the ``math.`` qualifier available."""
        return None

    def imports_math_unqualified(self, text: str) -> bool:
        return False

    def imports_math_qualified(self, text: str) -> bool:
        return False

    @abstractmethod
    def render_barrel(self, target_paths: list[str], current_target_path: str, package_name: str) -> str:
        """Deterministically render a re-export file for the given target paths."""
        pass

    def apply_conventions(self, text: str, exports: list[ExportedSymbol]) -> str:
        """Dialect-specific deterministic fixups (must be idempotent)."""
        return text

    def merge_duplicate_classes(self, text: str) -> str:
        """Merge repeated declarations of the same class into one (must be idempotent)."""
        return text

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def mask(self, text: str) -> str:
        """Same-length view of ``text`` with comments and string contents blanked."""
        return mask_comments_and_strings(
            text, self.line_comment, self.block_comment, self.string_delimiters
        )

    def mask_comments(self, text: str) -> str:
        """Same-length view of ``text`` with only comments blanked."""
        return mask_comments_and_strings(text, self.line_comment, self.block_comment, ())

    @staticmethod
    def relative_path(target_path: str, current_target_path: str) -> str:
        current_dir = posixpath.dirname(current_target_path) or "."
        return posixpath.relpath(target_path, current_dir)

    @staticmethod
    def join_relative(current_target_path: str, spec: str) -> str:
        current_dir = posixpath.dirname(current_target_path)
        return posixpath.normpath(posixpath.join(current_dir, spec))
