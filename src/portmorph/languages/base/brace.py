"""
Shared behaviour for curly-brace dialects (TypeScript, JavaScript, Dart).
"""

import re
from dataclasses import dataclass

from portmorph.languages.base.lexing import find_closing_brace, line_number, line_start_depths
from portmorph.languages.base.plugin import LanguagePlugin

CLASS_HEADER = re.compile(
    r"^[ \t]*(?:export\s+)?(?:abstract\s+)?(?:(?:final|base|sealed)\s+)?class\s+([A-Za-z_$][\w$]*)[^{;]*\{",
    re.MULTILINE,
)


@dataclass
class ClassBlock:
    """Location of a top-level class declaration in a text."""

    name: str
    start: int
    open_brace: int
    close_brace: int


class BraceLanguagePlugin(LanguagePlugin):
    """Base for dialects whose blocks are delimited by braces."""

    def top_level_declarations(self, text: str) -> list[tuple[str, int]]:
        masked = self.mask(text)
        depths = line_start_depths(masked)
        found = []
        for pattern in self.declaration_patterns:
            for match in pattern.finditer(masked):
                line_start = masked.rfind("\n", 0, match.start()) + 1
                if depths.get(line_start) == 0:
                    found.append((match.start(), match.group("name")))
        return [(name, line_number(masked, offset)) for offset, name in sorted(found)]

    def declaration_body(self, text: str, name: str) -> str | None:
        masked = self.mask(text)
        header = re.compile(
            rf"\b(?:class|interface|enum|mixin|extension|function|namespace)\s+{re.escape(name)}(?![\w$])"
        )
        match = header.search(masked)
        if not match:
            return None
        open_brace = masked.find("{", match.end())
        if open_brace == -1:
            return None
        close_brace = find_closing_brace(masked, open_brace)
        return text[open_brace + 1 : close_brace] if close_brace is not None else text[open_brace + 1 :]

    def find_top_level_classes(self, text: str) -> list[ClassBlock]:
        masked = self.mask(text)
        depths = line_start_depths(masked)
        blocks = []
        for match in CLASS_HEADER.finditer(masked):
            if depths.get(match.start()) != 0:
                continue
            open_brace = match.end() - 1
            close_brace = find_closing_brace(masked, open_brace)
            if close_brace is None:
                continue
            blocks.append(ClassBlock(match.group(1), match.start(), open_brace, close_brace))
        return blocks

    def merge_duplicate_classes(self, text: str) -> str:
        groups: dict[str, list[ClassBlock]] = {}
        for block in self.find_top_level_classes(text):
            groups.setdefault(block.name, []).append(block)

        edits: list[tuple[int, int, str]] = []
        for blocks in groups.values():
            if len(blocks) < 2:
                continue
            first = blocks[0]
            bodies = [text[b.open_brace + 1 : b.close_brace].strip("\n").rstrip() for b in blocks[1:]]
            extra = "\n\n".join(body for body in bodies if body.strip())
            if extra:
                prefix = "" if text[first.close_brace - 1] == "\n" else "\n"
                edits.append((first.close_brace, first.close_brace, f"{prefix}{extra}\n"))
            for block in blocks[1:]:
                end = block.close_brace + 1
                if text[end : end + 1] == "\n":
                    end += 1
                edits.append((block.start, end, ""))

        if not edits:
            return text

        merged = text
        for start, end, replacement in sorted(edits, key=lambda e: e[0], reverse=True):
            merged = merged[:start] + replacement + merged[end:]
        return re.sub(r"\n{3,}", "\n\n", merged)
