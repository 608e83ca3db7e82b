"""
TypeScript and JavaScript dialect plugins.

Export and import extraction is regex based. Declarations inside an
``export namespace X { ... }`` block are reported as nested symbols with
``X`` as their parent.
"""

import posixpath
import re

from portmorph.config.models import ExportedSymbol, LanguageType, SymbolKind
from portmorph.languages.base.brace import BraceLanguagePlugin
from portmorph.languages.base.lexing import find_closing_brace
from portmorph.languages.base.plugin import ImportReference, dedupe, strip_extension

EXPORT_PATTERNS: list[tuple[re.Pattern, SymbolKind]] = [
    (re.compile(r"export\s+(?:declare\s+)?(?:abstract\s+)?class\s+([\w$]+)"), SymbolKind.CLASS),
    (re.compile(r"export\s+(?:declare\s+)?interface\s+([\w$]+)"), SymbolKind.INTERFACE),
    (re.compile(r"export\s+(?:declare\s+)?type\s+([\w$]+)\s*(?:<[^=]*>)?\s*="), SymbolKind.TYPE),
    (re.compile(r"export\s+(?:declare\s+)?(?:const\s+)?enum\s+([\w$]+)"), SymbolKind.ENUM),
    (re.compile(r"export\s+(?:declare\s+)?(?:async\s+)?function\s*\*?\s*([\w$]+)"), SymbolKind.FUNCTION),
    (re.compile(r"export\s+(?:declare\s+)?const\s+(?!enum\b)([\w$]+)"), SymbolKind.CONSTANT),
    (re.compile(r"export\s+(?:declare\s+)?(?:let|var)\s+([\w$]+)"), SymbolKind.VARIABLE),
]
DEFAULT_CLASS = re.compile(r"export\s+default\s+(?:abstract\s+)?class\s+([\w$]+)")
DEFAULT_FUNCTION = re.compile(r"export\s+default\s+(?:async\s+)?function\s*\*?\s*([\w$]+)")
NAMESPACE = re.compile(r"export\s+(?:declare\s+)?namespace\s+([\w$]+)\s*\{")
COMMONJS_OBJECT = re.compile(r"module\.exports\s*=\s*\{([^}]*)\}")
COMMONJS_NAMED = re.compile(r"(?:module\.)?exports\.([\w$]+)\s*=")

LOCAL_IMPORT_PATTERNS = [
    re.compile(r"import\s+[^'\"]*from\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"import\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"import\(\s*['\"]([^'\"]+)['\"]\s*\)"),
    re.compile(r"export\s+[^'\"]*from\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"require\(\s*['\"]([^'\"]+)['\"]\s*\)"),
]
NAMED_IMPORT = re.compile(
    r"import\s+(?:type\s+)?(?:[\w$]+\s*,\s*)?\{([^}]*)\}\s*from\s+['\"]([^'\"]+)['\"]"
)
REEXPORT = re.compile(r"export\s+(?:type\s+)?(?:\{[^}]*\}|\*(?:\s+as\s+[\w$]+)?)\s+from\s+['\"]([^'\"]+)['\"]")

TARGET_IMPORT = re.compile(
    r"^[ \t]*(?:import|export)\s+(?:type\s+)?(?:[^'\";]*?\s+from\s+)?['\"]([^'\"\n]+)['\"][ \t]*;?[ \t]*$",
    re.MULTILINE,
)
IMPORT_LINE = re.compile(
    r"^[ \t]*import\s+(?:type\s+)?(?:[^'\";]*?\s+from\s+)?['\"][^'\"\n]+['\"][ \t]*;?[ \t]*$",
    re.MULTILINE,
)

SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")


class TypeScriptPlugin(BraceLanguagePlugin):
    """TypeScript dialect plugin."""

    has_static_imports = True
    index_names = ("index",)

    @property
    def language(self) -> LanguageType:
        return LanguageType.TYPESCRIPT

    @property
    def file_extensions(self) -> list[str]:
        return [".ts", ".tsx"]

    @property
    def feature_summary(self) -> str:
        return (
            "- Static typing with type inference\n"
            "- Interfaces and type aliases\n"
            "- Generics\n"
            "- Union and intersection types\n"
            "- ES module imports and exports"
        )

    @property
    def entry_point_names(self) -> list[str]:
        return ["index.ts", "main.ts", "app.ts", "server.ts", "src/index.ts", "src/main.ts"]

    # =========================================================================
    # Source dialect
    # =========================================================================

    def extract_exports(self, content: str) -> list[ExportedSymbol]:
        masked = self.mask(content)
        namespaces = []
        for match in NAMESPACE.finditer(masked):
            close = find_closing_brace(masked, match.end() - 1)
            if close is not None:
                namespaces.append((match.end(), close, match.group(1)))

        def parent_at(offset: int) -> str | None:
            enclosing = [ns for ns in namespaces if ns[0] <= offset < ns[1]]
            if not enclosing:
                return None
            # Innermost namespace wins
            return max(enclosing, key=lambda ns: ns[0])[2]

        found: list[tuple[int, ExportedSymbol]] = []
        for match in DEFAULT_CLASS.finditer(masked):
            found.append(
                (match.start(), ExportedSymbol(name=match.group(1), kind=SymbolKind.CLASS, is_default=True))
            )
        for match in DEFAULT_FUNCTION.finditer(masked):
            found.append(
                (match.start(), ExportedSymbol(name=match.group(1), kind=SymbolKind.FUNCTION, is_default=True))
            )
        for pattern, kind in EXPORT_PATTERNS:
            for match in pattern.finditer(masked):
                found.append(
                    (match.start(), ExportedSymbol(name=match.group(1), kind=kind, parent=parent_at(match.start())))
                )
        found.extend(self._commonjs_exports(masked))

        symbols: list[ExportedSymbol] = []
        seen: set[tuple[str, str | None]] = set()
        for _, symbol in sorted(found, key=lambda item: item[0]):
            key = (symbol.name, symbol.parent)
            if key not in seen:
                seen.add(key)
                symbols.append(symbol)
        return symbols

    def _commonjs_exports(self, masked: str) -> list[tuple[int, ExportedSymbol]]:
        found = []
        for match in COMMONJS_OBJECT.finditer(masked):
            for entry in match.group(1).split(","):
                name = entry.split(":")[0].strip()
                if re.fullmatch(r"[\w$]+", name):
                    found.append((match.start(), ExportedSymbol(name=name, kind=SymbolKind.VARIABLE)))
        for match in COMMONJS_NAMED.finditer(masked):
            found.append((match.start(), ExportedSymbol(name=match.group(1), kind=SymbolKind.VARIABLE)))
        return found

    def extract_local_imports(self, content: str) -> list[str]:
        text = self.mask_comments(content)
        found: list[tuple[int, str]] = []
        for pattern in LOCAL_IMPORT_PATTERNS:
            for match in pattern.finditer(text):
                if match.group(1).startswith("."):
                    found.append((match.start(1), match.group(1)))
        return dedupe([path for _, path in sorted(found)])

    def extract_imported_names(self, content: str) -> dict[str, list[str]]:
        names: dict[str, list[str]] = {path: [] for path in self.extract_local_imports(content)}
        for match in NAMED_IMPORT.finditer(self.mask_comments(content)):
            path = match.group(2)
            if path not in names:
                continue
            for entry in match.group(1).split(","):
                name = re.sub(r"^type\s+", "", entry.strip()).split(" as ")[0].strip()
                if name and name not in names[path]:
                    names[path].append(name)
        return names

    def extract_reexports(self, content: str) -> list[str]:
        return dedupe([m.group(1) for m in REEXPORT.finditer(self.mask_comments(content))])

    def leakage_patterns(self) -> list[tuple[re.Pattern, str]]:
        return [
            (re.compile(r"^[ \t]*import\s+[^'\"\n]*\s+from\s+['\"]", re.MULTILINE), "ES module import syntax"),
            (re.compile(r"\brequire\(\s*['\"]"), "CommonJS require()"),
            (re.compile(r"\bmodule\.exports\b"), "CommonJS module.exports"),
            (re.compile(r"^[ \t]*export\s+default\b", re.MULTILINE), "default export"),
            (re.compile(r"^[ \t]*export\s*(?:\{|\*)", re.MULTILINE), "export list"),
            (
                re.compile(
                    r"^[ \t]*export\s+(?:abstract\s+)?(?:class|interface|function|const|let|type|namespace)\b",
                    re.MULTILINE,
                ),
                "export modifier on a declaration",
            ),
        ]

    # =========================================================================
    # Target dialect
    # =========================================================================

    def convert_path(self, source_path: str, source_language: LanguageType) -> str:
        base = strip_extension(source_path)
        if source_language == LanguageType.PYTHON:
            directory, stem = posixpath.split(base)
            if stem == "__init__":
                base = posixpath.join(directory, "index")
        return base + self.primary_extension

    def _module_spec(self, target_path: str, current_target_path: str) -> str:
        relative = strip_extension(self.relative_path(target_path, current_target_path))
        return relative if relative.startswith(".") else f"./{relative}"

    def build_import(
        self,
        target_path: str,
        current_target_path: str,
        package_name: str,
        symbols: list[str] | None = None,
    ) -> str:
        spec = self._module_spec(target_path, current_target_path)
        if not symbols:
            return f"import '{spec}';"
        return f"import {{ {', '.join(symbols)} }} from '{spec}';"

    def parse_imports(
        self, text: str, current_target_path: str, package_name: str
    ) -> list[ImportReference]:
        references = []
        for match in TARGET_IMPORT.finditer(self.mask_comments(text)):
            spec = match.group(1)
            reference = ImportReference(
                statement=text[match.start() : match.end()].strip(),
                spec=spec,
                start=match.start(),
                end=match.end(),
            )
            if spec.startswith("."):
                base = self.join_relative(current_target_path, spec)
                if posixpath.splitext(base)[1] in SOURCE_EXTENSIONS:
                    base = strip_extension(base)
                reference.candidates = [base + ext for ext in self.file_extensions] + [
                    f"{base}/index{ext}" for ext in self.file_extensions
                ]
            references.append(reference)
        return references

    @property
    def import_line_pattern(self) -> re.Pattern:
        return IMPORT_LINE

    @property
    def header_directive_pattern(self) -> re.Pattern:
        return TARGET_IMPORT

    @property
    def declaration_patterns(self) -> list[re.Pattern]:
        prefix = r"^(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:abstract\s+)?"
        return [
            re.compile(prefix + r"class\s+(?P<name>[\w$]+)", re.MULTILINE),
            re.compile(prefix + r"(?:const\s+)?enum\s+(?P<name>[\w$]+)", re.MULTILINE),
            re.compile(prefix + r"type\s+(?P<name>[\w$]+)\s*(?:<[^=\n]*>)?\s*=", re.MULTILINE),
            # Overload signatures end in ';' and are not separate declarations
            re.compile(
                prefix + r"(?:async\s+)?function\s*\*?\s*(?P<name>[\w$]+)[^;{\n]*(?:\{|$)", re.MULTILINE
            ),
            re.compile(prefix + r"(?:const|let|var)\s+(?!enum\b)(?P<name>[\w$]+)", re.MULTILINE),
        ]

    def render_barrel(self, target_paths: list[str], current_target_path: str, package_name: str) -> str:
        lines = [f"export * from '{self._module_spec(path, current_target_path)}';" for path in target_paths]
        return "\n".join(lines) + "\n"


class JavaScriptPlugin(TypeScriptPlugin):
    """JavaScript dialect plugin (ES modules and CommonJS)."""

    @property
    def language(self) -> LanguageType:
        return LanguageType.JAVASCRIPT

    @property
    def file_extensions(self) -> list[str]:
        return [".js", ".mjs", ".cjs", ".jsx"]

    @property
    def feature_summary(self) -> str:
        return (
            "- Dynamic typing\n"
            "- Prototype-based inheritance\n"
            "- First-class functions and closures\n"
            "- Async/await for asynchronous code\n"
            "- ES modules and CommonJS require()"
        )

    @property
    def entry_point_names(self) -> list[str]:
        return ["index.js", "main.js", "app.js", "server.js", "src/index.js", "src/main.js"]
