"""
Dart dialect plugin (target only).

Dart projects keep library code under ``lib/``. Files inside ``lib/`` import
each other with relative paths; anything else goes through
``package:<name>/...``. File names are snake_case.
"""

import posixpath
import re

from portmorph.config.models import ExportedSymbol, LanguageType, SymbolKind
from portmorph.languages.base.brace import BraceLanguagePlugin
from portmorph.languages.base.plugin import ImportReference, strip_extension, to_snake_case

DIRECTIVE = re.compile(
    r"^[ \t]*(import|export)\s+['\"]([^'\"\n]+)['\"][^;\n]*;[ \t]*$",
    re.MULTILINE,
)
IMPORT_LINE = re.compile(r"^[ \t]*import\s+['\"][^'\"\n]+['\"][^;\n]*;[ \t]*$", re.MULTILINE)
HEADER_DIRECTIVE = re.compile(
    r"^[ \t]*(?:import\s+['\"][^'\"\n]+['\"][^;\n]*;|library\b[^;\n]*;|export\s+['\"][^'\"\n]+['\"][^;\n]*;)[ \t]*$",
    re.MULTILINE,
)
CLASS_WITH_BODY = re.compile(r"\bclass\s+([A-Za-z_]\w*)[^{;]*\{")
FINAL_FIELD = re.compile(r"\b(?:late\s+)?final\s+([A-Za-z0-9_<>,\s?]+?)\s+([A-Za-z_]\w*)\s*;")


class DartPlugin(BraceLanguagePlugin):
    """Dart dialect plugin."""

    string_delimiters = ('"""', "'''", '"', "'")

    @property
    def language(self) -> LanguageType:
        return LanguageType.DART

    @property
    def file_extensions(self) -> list[str]:
        return [".dart"]

    @property
    def feature_summary(self) -> str:
        return (
            "- Static typing with sound null safety\n"
            "- Classes, mixins and extension methods\n"
            "- Named and optional parameters (use `required` for non-nullable named params)\n"
            "- Async/await with Future and Stream\n"
            "- Library-level imports; no nested type declarations"
        )

    @property
    def porting_rules(self) -> str:
        return """## Dart Conversion Rules (CRITICAL)
1. Non-nullable fields set through named constructor parameters MUST use `required`:
   WRONG: const Config({this.port});   RIGHT: const Config({required this.port});
2. A top-level constant object (`export const CONFIG = { port: 3000 }`) becomes a class plus a
   global constant instance. Preserve the constant name exactly, case-sensitive (`const CONFIG = Config(port: 3000);`).
3. Enums with explicit values become enhanced enums with lowerCamelCase values and a `final value` field:
   enum Operation { add('add'), subtract('subtract'); final String value; const Operation(this.value); }
4. Interfaces become classes. Optional properties become nullable fields.
5. Function type aliases become `typedef`; object type aliases become classes. Type aliases are NEVER enums.
6. Enums or static objects nested in a class are extracted to top level and renamed `{Parent}{Name}`
   (`Stave.Position` becomes `StavePosition`). Never emit two top-level declarations with the same name.
7. Identifiers that are Dart reserved words (`default`, `new`, `switch`, `in`, `is`, `required`, ...) get a
   suffix, e.g. `default` becomes `defaultValue`.
8. Private members use a leading underscore. Do not use `export` or `import ... from` syntax."""

    # =========================================================================
    # Target dialect
    # =========================================================================

    def convert_path(self, source_path: str, source_language: LanguageType) -> str:
        path = strip_extension(source_path) + self.primary_extension
        if path.startswith("src/"):
            path = "lib/" + path[4:]
        if source_language in (LanguageType.TYPESCRIPT, LanguageType.JAVASCRIPT):
            path = to_snake_case(path)
        return path

    @staticmethod
    def _strip_lib(path: str) -> str:
        return path[4:] if path.startswith("lib/") else path

    def build_import(
        self,
        target_path: str,
        current_target_path: str,
        package_name: str,
        symbols: list[str] | None = None,
    ) -> str:
        if target_path.startswith("lib/") and current_target_path.startswith("lib/"):
            return f"import '{self.relative_path(target_path, current_target_path)}';"
        return f"import 'package:{package_name}/{self._strip_lib(target_path)}';"

    def parse_imports(
        self, text: str, current_target_path: str, package_name: str
    ) -> list[ImportReference]:
        references = []
        for match in DIRECTIVE.finditer(self.mask_comments(text)):
            spec = match.group(2)
            reference = ImportReference(
                statement=text[match.start() : match.end()].strip(),
                spec=spec,
                start=match.start(),
                end=match.end(),
            )
            if spec.startswith("dart:"):
                pass
            elif spec.startswith("package:"):
                package, _, rest = spec[len("package:") :].partition("/")
                reference.candidates = [f"lib/{rest}"] if rest else []
                reference.foreign = package != package_name
            else:
                reference.candidates = [self.join_relative(current_target_path, spec)]
            references.append(reference)
        return references

    @property
    def import_line_pattern(self) -> re.Pattern:
        return IMPORT_LINE

    @property
    def header_directive_pattern(self) -> re.Pattern:
        return HEADER_DIRECTIVE

    @property
    def declaration_patterns(self) -> list[re.Pattern]:
        return [
            re.compile(
                r"^(?:(?:abstract|base|final|sealed|interface)\s+)*(?:class|mixin|enum|extension|typedef)\s+(?P<name>[A-Za-z_]\w*)",
                re.MULTILINE,
            ),
            re.compile(r"^(?:const|final|var|late\s+final)\s+(?:[\w<>?,\s]+\s+)?(?P<name>[A-Za-z_]\w*)\s*=", re.MULTILINE),
            re.compile(
                r"^(?!(?:return|else|if|import|export|library|part|class|enum|mixin|typedef|const|final|var)\b)"
                r"[A-Za-z_][\w<>?,\[\] ]*\s+(?P<name>[A-Za-z_]\w*)\s*(?:<[^>\n]*>)?\s*\(",
                re.MULTILINE,
            ),
        ]

    @property
    def math_functions(self) -> list[str]:
        return ["sqrt", "pow", "sin", "cos", "tan", "asin", "acos", "atan", "atan2", "exp", "log"]

    @property
    def math_qualified_import(self) -> str | None:
        return "import 'dart:math' as math;"

    def imports_math_unqualified(self, text: str) -> bool:
        return re.search(r"^[ \t]*import\s+['\"]dart:math['\"]\s*(?:show\b[^;]*)?;", text, re.MULTILINE) is not None

    def imports_math_qualified(self, text: str) -> bool:
        return re.search(r"^[ \t]*import\s+['\"]dart:math['\"]\s+as\s+math\s*;", text, re.MULTILINE) is not None

    def render_barrel(self, target_paths: list[str], current_target_path: str, package_name: str) -> str:
        directory = posixpath.dirname(self._strip_lib(current_target_path))
        library_name = to_snake_case(directory.replace("/", "_")) if directory else "main"
        lines = [f"/// Library exports for {directory or 'root'}", f"library {library_name};", ""]
        for path in target_paths:
            if path.startswith("lib/") and current_target_path.startswith("lib/"):
                lines.append(f"export '{self.relative_path(path, current_target_path)}';")
            else:
                lines.append(f"export 'package:{package_name}/{self._strip_lib(path)}';")
        return "\n".join(lines) + "\n"

    # =========================================================================
    # Conventions
    # =========================================================================

    def apply_conventions(self, text: str, exports: list[ExportedSymbol]) -> str:
        text = self._preserve_exported_constant_names(text, exports)
        return self._enforce_required_named_params(text)

    @staticmethod
    def _preserve_exported_constant_names(text: str, exports: list[ExportedSymbol]) -> str:
        for symbol in exports:
            name = symbol.name
            if symbol.kind != SymbolKind.CONSTANT or name != name.upper() or re.search(rf"\b{re.escape(name)}\b", text):
                continue
            lower = re.escape(name.lower())
            text = re.sub(rf"\b(const|final|var)\s+{lower}\b", rf"\1 {name}", text, count=1)
        return text

    def _enforce_required_named_params(self, text: str) -> str:
        masked = self.mask(text)
        classes = []
        for match in CLASS_WITH_BODY.finditer(masked):
            body_start = match.end()
            depth = 1
            index = body_start
            while index < len(masked) and depth > 0:
                if masked[index] == "{":
                    depth += 1
                elif masked[index] == "}":
                    depth -= 1
                index += 1
            if depth == 0:
                classes.append((match.group(1), body_start, index - 1))

        updated = text
        for name, body_start, body_end in reversed(classes):
            body = updated[body_start:body_end]
            required = {
                m.group(2) for m in FINAL_FIELD.finditer(self.mask(body)) if "?" not in m.group(1)
            }
            if not required:
                continue
            fixed = self._fix_constructors(body, name, required)
            if fixed != body:
                updated = updated[:body_start] + fixed + updated[body_end:]
        return updated

    def _fix_constructors(self, body: str, class_name: str, required: set[str]) -> str:
        constructor = re.compile(
            rf"\b(?:const\s+)?(?:factory\s+)?{re.escape(class_name)}(?:\s*\.\s*[A-Za-z_]\w*)?\s*\("
        )
        masked = self.mask(body)
        spans = []
        for match in constructor.finditer(masked):
            open_paren = match.end() - 1
            depth = 0
            for index in range(open_paren, len(masked)):
                if masked[index] == "(":
                    depth += 1
                elif masked[index] == ")":
                    depth -= 1
                    if depth == 0:
                        spans.append((open_paren + 1, index))
                        break

        for start, end in reversed(spans):
            params = body[start:end]
            fixed = self._fix_named_params(params, required)
            if fixed != params:
                body = body[:start] + fixed + body[end:]
        return body

    def _fix_named_params(self, params: str, required: set[str]) -> str:
        masked = self.mask(params)
        open_brace = masked.find("{")
        if open_brace == -1:
            return params
        depth = 0
        close_brace = -1
        for index in range(open_brace, len(masked)):
            if masked[index] == "{":
                depth += 1
            elif masked[index] == "}":
                depth -= 1
                if depth == 0:
                    close_brace = index
                    break
        if close_brace == -1:
            return params

        block = params[open_brace + 1 : close_brace]
        parts = _split_top_level(block, self.mask(block))
        changed = False
        for i, (start, end) in enumerate(parts):
            part = block[start:end]
            fixed = _ensure_required(part, required)
            if fixed != part:
                parts[i] = (start, end, fixed)
                changed = True
        if not changed:
            return params

        pieces = []
        cursor = 0
        for entry in parts:
            start, end = entry[0], entry[1]
            replacement = entry[2] if len(entry) == 3 else block[start:end]
            pieces.append(block[cursor:start])
            pieces.append(replacement)
            cursor = end
        pieces.append(block[cursor:])
        return params[: open_brace + 1] + "".join(pieces) + params[close_brace:]


def _split_top_level(block: str, masked: str) -> list[tuple]:
    """Spans of comma-separated parameters at nesting depth zero."""
    spans: list[tuple] = []
    depth = 0
    start = 0
    for index, char in enumerate(masked):
        if char in "([{<":
            depth += 1
        elif char in ")]}>":
            depth = max(0, depth - 1)
        elif char == "," and depth == 0:
            spans.append((start, index))
            start = index + 1
    spans.append((start, len(block)))
    return [span for span in spans if block[span[0] : span[1]].strip()]


def _ensure_required(part: str, required: set[str]) -> str:
    stripped = part.strip()
    if not stripped or re.search(r"\brequired\b", stripped) or "@required" in stripped or "=" in stripped:
        return part
    field = re.search(r"\bthis\.([A-Za-z_]\w*)\b", stripped)
    name = field.group(1) if field else None
    if name is None:
        bare = re.search(r"\b([A-Za-z_]\w*)\s*$", stripped)
        name = bare.group(1) if bare else None
    if not name or name not in required or "?" in stripped:
        return part
    leading = part[: len(part) - len(part.lstrip())]
    return f"{leading}required {part.lstrip()}"
