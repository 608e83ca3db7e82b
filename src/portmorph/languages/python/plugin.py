"""
Python dialect plugin.

Exports are top-level public classes, functions and UPPER_CASE constants.
Classes defined inside a top-level class are reported as nested symbols.
Python imports resolve through ``sys.path`` at runtime, so the plugin does not
claim static imports for scheduling; relative imports are still extracted to
build import hints.
"""

import posixpath
import re

from portmorph.config.models import ExportedSymbol, LanguageType, SymbolKind
from portmorph.languages.base.plugin import (
    ImportReference,
    LanguagePlugin,
    dedupe,
    strip_extension,
    to_snake_case,
)

TOP_LEVEL_CLASS = re.compile(r"^class\s+([A-Za-z_]\w*)", re.MULTILINE)
TOP_LEVEL_FUNCTION = re.compile(r"^(?:async\s+)?def\s+([A-Za-z_]\w*)", re.MULTILINE)
TOP_LEVEL_CONSTANT = re.compile(r"^([A-Z][A-Z0-9_]*)\s*(?::[^=\n]+)?=(?!=)", re.MULTILINE)
NESTED_CLASS = re.compile(r"^[ \t]+class\s+([A-Za-z_]\w*)", re.MULTILINE)
RELATIVE_IMPORT = re.compile(r"^[ \t]*from\s+(\.+)([\w.]*)\s+import\s+(\([^)]*\)|[^\n]+)", re.MULTILINE)

IMPORT_LINE = re.compile(
    r"^[ \t]*(?:from\s+[\w.]+\s+import\s+(?:\([^)]*\)|[^\n]*)|import\s+[\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)[ \t]*$",
    re.MULTILINE,
)
BOUNDARY = re.compile(r"^(?:@|(?:async\s+)?def\s|class\s)")


def _imported_names(clause: str) -> list[str]:
    clause = clause.strip().strip("()")
    names = []
    for entry in clause.split(","):
        name = entry.strip().split(" as ")[0].strip()
        if name and name != "*":
            names.append(name)
    return names


def _relative_module_path(dots: str, module: str) -> str:
    prefix = "./" if len(dots) == 1 else "../" * (len(dots) - 1)
    return prefix + module.replace(".", "/")


class PythonPlugin(LanguagePlugin):
    """Python dialect plugin."""

    line_comment = "#"
    block_comment = None
    string_delimiters = ('"""', "'''", '"', "'")
    index_names = ("__init__",)

    @property
    def language(self) -> LanguageType:
        return LanguageType.PYTHON

    @property
    def file_extensions(self) -> list[str]:
        return [".py"]

    @property
    def feature_summary(self) -> str:
        return (
            "- Dynamic typing with optional type hints\n"
            "- Indentation-based scoping\n"
            "- List comprehensions and generators\n"
            "- Decorators for metaprogramming\n"
            "- Context managers (with statement)"
        )

    @property
    def entry_point_names(self) -> list[str]:
        return ["main.py", "__main__.py", "app.py", "cli.py", "manage.py", "setup.py"]

    @property
    def porting_rules(self) -> str:
        return """## Python Conversion Rules (CRITICAL)
1. Functions, methods and variables use snake_case; classes keep PascalCase; constants keep UPPER_CASE names.
2. Interfaces and object types become dataclasses or typing.Protocol classes; enums become enum.Enum subclasses.
3. Nested types are extracted to top level and renamed `{Parent}{Name}`.
4. Never shadow builtins (list, dict, type, id, iter, ...) with variable names.
5. Use relative imports (`from .module import Name`) for project files. Do not use `export`, `require()`
   or `import ... from '...'` syntax."""

    @property
    def boundary_pattern(self) -> re.Pattern:
        return BOUNDARY

    # =========================================================================
    # Source dialect
    # =========================================================================

    def extract_exports(self, content: str) -> list[ExportedSymbol]:
        masked = self.mask(content)
        found: list[tuple[int, ExportedSymbol]] = []
        classes = [(m.start(), m.group(1)) for m in TOP_LEVEL_CLASS.finditer(masked)]

        for offset, name in classes:
            found.append((offset, ExportedSymbol(name=name, kind=SymbolKind.CLASS)))
        for match in TOP_LEVEL_FUNCTION.finditer(masked):
            found.append((match.start(), ExportedSymbol(name=match.group(1), kind=SymbolKind.FUNCTION)))
        for match in TOP_LEVEL_CONSTANT.finditer(masked):
            found.append((match.start(), ExportedSymbol(name=match.group(1), kind=SymbolKind.CONSTANT)))

        top_level_starts = sorted(
            m.start() for m in re.finditer(r"^[^\s#]", masked, re.MULTILINE)
        )
        for match in NESTED_CLASS.finditer(masked):
            owner = self._enclosing_class(match.start(), classes, top_level_starts)
            if owner:
                found.append(
                    (match.start(), ExportedSymbol(name=match.group(1), kind=SymbolKind.CLASS, parent=owner))
                )

        return [
            symbol
            for _, symbol in sorted(found, key=lambda item: item[0])
            if not symbol.name.startswith("_")
        ]

    @staticmethod
    def _enclosing_class(offset: int, classes: list[tuple[int, str]], top_level_starts: list[int]) -> str | None:
        # The enclosing statement is the last top-level line before the nested class
        preceding = [start for start in top_level_starts if start < offset]
        if not preceding:
            return None
        owner_start = preceding[-1]
        for start, name in classes:
            if start == owner_start:
                return name
        return None

    def extract_local_imports(self, content: str) -> list[str]:
        return list(self.extract_imported_names(content).keys())

    def extract_imported_names(self, content: str) -> dict[str, list[str]]:
        names: dict[str, list[str]] = {}
        for match in RELATIVE_IMPORT.finditer(self.mask_comments(content)):
            dots, module, clause = match.groups()
            imported = _imported_names(clause)
            if module:
                path = _relative_module_path(dots, module)
                names.setdefault(path, [])
                names[path].extend(n for n in imported if n not in names[path])
            else:
                # ``from . import a, b`` imports sibling modules
                for name in imported:
                    names.setdefault(_relative_module_path(dots, name), [])
        return names

    def extract_reexports(self, content: str) -> list[str]:
        return dedupe(self.extract_local_imports(content))

    def leakage_patterns(self) -> list[tuple[re.Pattern, str]]:
        return [
            (re.compile(r"^[ \t]*from\s+[\w.]+\s+import\s+\S", re.MULTILINE), "Python from-import"),
            (re.compile(r"^[ \t]*import\s+[\w.]+(?:\s+as\s+\w+)?[ \t]*$", re.MULTILINE), "Python import"),
            (re.compile(r"^[ \t]*(?:async\s+)?def\s+\w+\s*\(", re.MULTILINE), "Python def"),
        ]

    # =========================================================================
    # Target dialect
    # =========================================================================

    def convert_path(self, source_path: str, source_language: LanguageType) -> str:
        base = strip_extension(source_path)
        directory, stem = posixpath.split(base)
        if stem == "index":
            stem = "__init__"
        else:
            stem = to_snake_case(stem)
        directory = "/".join(to_snake_case(part) for part in directory.split("/")) if directory else ""
        return posixpath.join(directory, stem) + self.primary_extension

    def build_import(
        self,
        target_path: str,
        current_target_path: str,
        package_name: str,
        symbols: list[str] | None = None,
    ) -> str:
        module = strip_extension(target_path)
        if posixpath.basename(module) == "__init__":
            module = posixpath.dirname(module) or "."
        relative = self.relative_path(module, current_target_path)
        parts = relative.split("/")
        ups = 0
        while parts and parts[0] == "..":
            ups += 1
            parts.pop(0)
        parts = [p for p in parts if p and p != "."]
        spec = "." * (ups + 1) + ".".join(parts)
        names = ", ".join(symbols) if symbols else "*"
        return f"from {spec} import {names}"

    def parse_imports(
        self, text: str, current_target_path: str, package_name: str
    ) -> list[ImportReference]:
        references = []
        for match in IMPORT_LINE.finditer(self.mask_comments(text)):
            statement = text[match.start() : match.end()].strip()
            relative = re.match(r"from\s+(\.+)([\w.]*)\s+import", statement)
            absolute = re.match(r"from\s+([\w.]+)\s+import|import\s+([\w.]+)", statement)
            spec = relative.group(1) + relative.group(2) if relative else (absolute.group(1) or absolute.group(2))
            reference = ImportReference(statement=statement, spec=spec, start=match.start(), end=match.end())

            if relative:
                dots, module = relative.groups()
                base = posixpath.dirname(current_target_path)
                for _ in range(len(dots) - 1):
                    base = posixpath.dirname(base)
                if module:
                    path = posixpath.join(base, module.replace(".", "/")) if base else module.replace(".", "/")
                    reference.candidates = [f"{path}.py", f"{path}/__init__.py"]
                else:
                    init = posixpath.join(base, "__init__.py") if base else "__init__.py"
                    names = _imported_names(statement.split(" import ", 1)[1])
                    sibling = [posixpath.join(base, f"{n}.py") if base else f"{n}.py" for n in names]
                    reference.candidates = [init] + sibling
            elif package_name and spec.split(".")[0] == package_name:
                path = "/".join(spec.split(".")[1:])
                if path:
                    reference.candidates = [f"{path}.py", f"{path}/__init__.py"]
            references.append(reference)
        return references

    @property
    def import_line_pattern(self) -> re.Pattern:
        return IMPORT_LINE

    @property
    def declaration_patterns(self) -> list[re.Pattern]:
        return [
            re.compile(r"^class\s+(?P<name>[A-Za-z_]\w*)", re.MULTILINE),
            re.compile(r"^(?:async\s+)?def\s+(?P<name>[A-Za-z_]\w*)", re.MULTILINE),
        ]

    def declaration_body(self, text: str, name: str) -> str | None:
        lines = text.split("\n")
        masked_lines = self.mask(text).split("\n")
        header = re.compile(rf"^([ \t]*)(?:class|(?:async\s+)?def)\s+{re.escape(name)}\b")
        for index, masked in enumerate(masked_lines):
            match = header.match(masked)
            if not match:
                continue
            indent = len(match.group(1))
            end = index + 1
            while end < len(lines):
                stripped = masked_lines[end].strip()
                if stripped and len(masked_lines[end]) - len(masked_lines[end].lstrip()) <= indent:
                    break
                end += 1
            return "\n".join(lines[index + 1 : end])
        return None

    @property
    def math_functions(self) -> list[str]:
        return ["sqrt", "floor", "ceil", "sin", "cos", "tan", "atan2", "exp", "log10", "hypot", "radians", "degrees"]

    @property
    def math_qualified_import(self) -> str | None:
        return "import math"

    def imports_math_unqualified(self, text: str) -> bool:
        return re.search(r"^[ \t]*from\s+math\s+import\b", text, re.MULTILINE) is not None

    def imports_math_qualified(self, text: str) -> bool:
        return re.search(r"^[ \t]*import\s+math\b", text, re.MULTILINE) is not None

    def render_barrel(self, target_paths: list[str], current_target_path: str, package_name: str) -> str:
        lines = [self.build_import(path, current_target_path, package_name) for path in target_paths]
        return "\n".join(lines) + "\n"

    def merge_duplicate_classes(self, text: str) -> str:
        lines = text.split("\n")
        masked_lines = self.mask(text).split("\n")
        blocks: dict[str, list[tuple[int, int]]] = {}

        index = 0
        while index < len(lines):
            match = re.match(r"class\s+([A-Za-z_]\w*)", masked_lines[index])
            if not match:
                index += 1
                continue
            end = index + 1
            while end < len(lines) and (not masked_lines[end].strip() or masked_lines[end][:1] in (" ", "\t")):
                end += 1
            # Trailing blank lines belong to the gap, not the class
            while end > index + 1 and not lines[end - 1].strip():
                end -= 1
            blocks.setdefault(match.group(1), []).append((index, end))
            index = end

        duplicates = {name: spans for name, spans in blocks.items() if len(spans) > 1}
        if not duplicates:
            return text

        removed: set[int] = set()
        appended: dict[int, list[str]] = {}
        for spans in duplicates.values():
            first_end = spans[0][1]
            extra: list[str] = []
            for start, end in spans[1:]:
                extra.append("")
                extra.extend(lines[start + 1 : end])
                removed.update(range(start, end))
            appended[first_end - 1] = extra

        merged: list[str] = []
        for number, line in enumerate(lines):
            if number not in removed:
                merged.append(line)
            if number in appended:
                merged.extend(appended[number])
        return re.sub(r"\n{3,}", "\n\n", "\n".join(merged))
