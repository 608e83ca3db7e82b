"""
Lightweight lexical helpers shared by the dialect plugins and the validation gate.

Nothing here parses a language. The helpers only know where comments and
string literals start and end, which is enough to count brackets and locate
top-level declarations without being fooled by ``"{"`` in a string.
"""

import re
from dataclasses import dataclass

BRACKET_PAIRS = {"{": "}", "(": ")", "[": "]"}


def mask_comments_and_strings(
    text: str,
    line_comment: str | None = "//",
    block_comment: tuple[str, str] | None = ("/*", "*/"),
    string_delimiters: tuple[str, ...] = ('"', "'", "`"),
) -> str:
    """
    Return a same-length view of ``text`` with comments and string contents blanked.

    String delimiters are kept so the view still shows that a literal was
    there; everything between them becomes spaces. Newlines are preserved
    everywhere so line numbers and offsets stay valid. Single-character
    delimiters other than the backtick end at a newline, which keeps an
    unterminated quote from swallowing the rest of the file.

    Args:
        text: Source or generated text
        line_comment: Line comment marker, or None
        block_comment: (open, close) block comment markers, or None
        string_delimiters: String delimiters, longest first (e.g. triple quotes)

    Returns:
        Masked text of the same length as ``text``
    """
    out: list[str] = []
    i = 0
    length = len(text)
    delimiters = sorted(string_delimiters, key=len, reverse=True)

    def blank(chunk: str) -> str:
        return "".join("\n" if c == "\n" else " " for c in chunk)

    while i < length:
        if block_comment and text.startswith(block_comment[0], i):
            end = text.find(block_comment[1], i + len(block_comment[0]))
            end = length if end == -1 else end + len(block_comment[1])
            out.append(blank(text[i:end]))
            i = end
            continue

        if line_comment and text.startswith(line_comment, i):
            end = text.find("\n", i)
            end = length if end == -1 else end
            out.append(blank(text[i:end]))
            i = end
            continue

        delimiter = next((d for d in delimiters if text.startswith(d, i)), None)
        if delimiter is None:
            out.append(text[i])
            i += 1
            continue

        out.append(delimiter)
        i += len(delimiter)
        multiline = len(delimiter) > 1 or delimiter == "`"
        while i < length:
            if text[i] == "\\" and i + 1 < length:
                out.append(blank(text[i : i + 2]))
                i += 2
                continue
            if text.startswith(delimiter, i):
                out.append(delimiter)
                i += len(delimiter)
                break
            if text[i] == "\n" and not multiline:
                break
            out.append(blank(text[i]))
            i += 1

    return "".join(out)


@dataclass
class BracketProblem:
    """First bracket mismatch found in a masked text."""

    message: str
    line: int


def find_bracket_problem(masked: str) -> BracketProblem | None:
    """Check that ``{}``, ``()`` and ``[]`` are balanced and properly nested."""
    stack: list[tuple[str, int]] = []
    line = 1
    closers = {v: k for k, v in BRACKET_PAIRS.items()}

    for char in masked:
        if char == "\n":
            line += 1
        elif char in BRACKET_PAIRS:
            stack.append((char, line))
        elif char in closers:
            if not stack:
                return BracketProblem(f"Unmatched '{char}'", line)
            opener, opened_at = stack.pop()
            if opener != closers[char]:
                return BracketProblem(
                    f"Mismatched '{char}' closes '{opener}' opened on line {opened_at}", line
                )

    if stack:
        opener, opened_at = stack[-1]
        return BracketProblem(f"Unclosed '{opener}' ({len(stack)} open at end of text)", opened_at)
    return None


def line_start_depths(masked: str) -> dict[int, int]:
    """Map each line's start offset to the brace depth at that point."""
    depths = {0: 0}
    depth = 0
    for index, char in enumerate(masked):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == "\n":
            depths[index + 1] = depth
    return depths


def find_closing_brace(masked: str, open_index: int) -> int | None:
    """Index of the ``}`` matching the ``{`` at ``open_index``."""
    depth = 0
    for index in range(open_index, len(masked)):
        char = masked[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def line_number(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def word_pattern(name: str) -> re.Pattern:
    return re.compile(rf"(?<![\w$]){re.escape(name)}(?![\w$])")
