"""
Context-window aware chunking of oversized source files.

Files whose prompt would exceed the token budget are split at top-level
declaration boundaries, each slice is ported on its own, and the outputs are
concatenated back in order. Finished chunks are checkpointed so an
interrupted file does not start over.
"""

import hashlib
import logging
import math
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import orjson

from portmorph.languages.base.plugin import LanguagePlugin

logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 2
CHECKPOINT_STRATEGY = "line-boundary-safe-split-v1"
BOUNDARY_LIKE_LINE = re.compile(r"[;}\])],?$")
MIN_SPLITTABLE_LINES = 24


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def chunk_count_for(estimate: int, budget: int, force: bool = False) -> int:
    """Number of chunks for a prompt estimate (at least 2 when chunking is forced)."""
    count = math.ceil(estimate / budget) if budget > 0 else 1
    return max(2, count) if force else max(1, count)


def find_chunk_boundaries(
    lines: list[str],
    target_lines_per_chunk: int,
    boundary_pattern: re.Pattern,
    lookback: int = 50,
) -> list[int]:
    """
    Pick line indexes at which to start new chunks.

    Walks forward in steps of ``target_lines_per_chunk``. At each step it
    scans back up to ``lookback`` lines for a declaration boundary and splits
    there, falling back to the even division point. Boundaries are strictly
    increasing and never 0.
    """
    step = max(1, target_lines_per_chunk)
    boundaries: list[int] = []
    previous = 0
    index = step
    while index < len(lines):
        boundary = index
        floor = max(previous, index - lookback)
        for i in range(index, floor, -1):
            if boundary_pattern.match(lines[i]):
                boundary = i
                break
        boundaries.append(boundary)
        previous = boundary
        index = boundary + step
    return boundaries


def split_by_line_boundaries(
    content: str,
    chunk_count: int,
    boundary_pattern: re.Pattern,
    lookback: int = 50,
) -> list[str]:
    """Split ``content`` into about ``chunk_count`` slices at declaration boundaries."""
    lines = content.split("\n")
    if chunk_count <= 1 or len(lines) <= 1:
        return [content]

    target = math.ceil(len(lines) / chunk_count)
    chunks = []
    start = 0
    for end in find_chunk_boundaries(lines, target, boundary_pattern, lookback):
        chunks.append("\n".join(lines[start:end]))
        start = end
    if start < len(lines):
        chunks.append("\n".join(lines[start:]))
    return [chunk for chunk in chunks if chunk.strip()]


def find_safe_split_index(lines: list[str]) -> int:
    """
    Choose where to cut an oversized chunk.

    Considers boundary-like lines (blank, or ending in ``;``, ``}``, ``]``,
    ``)``) within 20% of the middle and picks the one with the smallest net
    bracket imbalance, preferring the one nearest the middle.
    """
    if len(lines) <= 2:
        return max(1, len(lines) // 2)

    target = len(lines) // 2
    spread = int(len(lines) * 0.2)
    low = max(1, target - spread)
    high = min(len(lines) - 1, target + spread)

    paren = bracket = brace = 0
    candidates: list[tuple[int, int, int]] = []
    for i, line in enumerate(lines):
        paren += line.count("(") - line.count(")")
        bracket += line.count("[") - line.count("]")
        brace += line.count("{") - line.count("}")

        split_at = i + 1
        if split_at < low or split_at > high:
            continue
        stripped = line.strip()
        if stripped and not BOUNDARY_LIKE_LINE.search(stripped):
            continue
        score = abs(paren) + abs(bracket) + abs(brace)
        candidates.append((score, abs(split_at - target), split_at))

    if not candidates:
        return max(1, target)
    return min(candidates)[2]


def enforce_chunk_token_limit(
    chunks: list[str],
    estimate: Callable[[str], int],
    max_tokens: int,
) -> list[str]:
    """
    Split chunks whose prompt estimate is still over budget.

    Chunks of ``MIN_SPLITTABLE_LINES`` lines or fewer are kept as they are.
    """
    queue = list(chunks)
    limited: list[str] = []
    while queue:
        candidate = queue.pop(0)
        if not candidate.strip():
            continue
        lines = candidate.split("\n")
        if estimate(candidate) <= max_tokens or len(lines) <= MIN_SPLITTABLE_LINES:
            limited.append(candidate)
            continue

        split_at = find_safe_split_index(lines)
        left = "\n".join(lines[:split_at]).strip("\n")
        right = "\n".join(lines[split_at:]).strip("\n")
        queue[:0] = [part for part in (left, right) if part.strip()]

    return limited or chunks


def strip_imports(text: str, plugin: LanguagePlugin) -> str:
    """Remove import-like header directives from a chunk's output."""
    return plugin.header_directive_pattern.sub("", text).strip()


def reassemble(outputs: list[str], plugin: LanguagePlugin) -> str:
    """
    Concatenate chunk outputs in order and merge split class bodies.

    A single output is returned unchanged.
    """
    if len(outputs) == 1:
        return outputs[0]
    combined = "\n\n".join(output.strip() for output in outputs if output.strip())
    return plugin.merge_duplicate_classes(combined)


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass
class ChunkCheckpoint:
    """Finished chunk outputs of one file."""

    file: str
    file_hash: str
    total_chunks: int = 0
    chunks: list[str | None] = field(default_factory=list)

    def reset(self, total_chunks: int) -> None:
        self.total_chunks = total_chunks
        self.chunks = [None] * total_chunks

    def saved(self, index: int) -> str | None:
        if index < len(self.chunks) and self.chunks[index] and self.chunks[index].strip():
            return self.chunks[index]
        return None


class ChunkCheckpointStore:
    """
    Persists chunk outputs under ``<state_dir>/chunk-checkpoints``.

    A checkpoint is only reused when its version, strategy and source hash
    match; anything else starts a fresh, empty checkpoint.
    """

    def __init__(self, state_dir: Path):
        self.directory = Path(state_dir) / "chunk-checkpoints"

    def path_for(self, source_path: str) -> Path:
        safe = re.sub(r"[\\/]", "__", source_path)
        return self.directory / f"{safe}.json"

    def load(self, source_path: str, content: str) -> ChunkCheckpoint:
        file_hash = content_hash(content)
        fresh = ChunkCheckpoint(file=source_path, file_hash=file_hash)
        path = self.path_for(source_path)
        if not path.exists():
            return fresh

        try:
            data = orjson.loads(path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable chunk checkpoint {path}: {e}")
            return fresh

        if not isinstance(data, dict):
            return fresh
        chunks = data.get("chunks")
        if (
            data.get("version") != CHECKPOINT_VERSION
            or data.get("strategy") != CHECKPOINT_STRATEGY
            or data.get("fileHash") != file_hash
            or not isinstance(chunks, list)
        ):
            return fresh

        total = data.get("totalChunks")
        if total != len(chunks) or not all(chunk is None or isinstance(chunk, str) for chunk in chunks):
            logger.warning(f"Ignoring malformed chunk checkpoint {path}")
            return fresh
        return ChunkCheckpoint(file=source_path, file_hash=file_hash, total_chunks=total, chunks=chunks)

    def save(self, checkpoint: ChunkCheckpoint) -> None:
        path = self.path_for(checkpoint.file)
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "version": CHECKPOINT_VERSION,
            "strategy": CHECKPOINT_STRATEGY,
            "file": checkpoint.file,
            "fileHash": checkpoint.file_hash,
            "totalChunks": checkpoint.total_chunks,
            "chunks": checkpoint.chunks,
            "updatedAt": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        path.write_bytes(orjson.dumps(document, option=orjson.OPT_INDENT_2))

    def clear(self, source_path: str) -> None:
        self.path_for(source_path).unlink(missing_ok=True)
