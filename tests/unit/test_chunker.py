"""
Unit tests for chunking and chunk checkpoints.
"""

import tempfile
from pathlib import Path

import orjson
import pytest

from portmorph.languages.base.plugin import DECLARATION_BOUNDARY
from portmorph.languages.dart.plugin import DartPlugin
from portmorph.translator.chunker import (
    ChunkCheckpointStore,
    chunk_count_for,
    enforce_chunk_token_limit,
    estimate_tokens,
    find_chunk_boundaries,
    find_safe_split_index,
    reassemble,
    split_by_line_boundaries,
    strip_imports,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def three_functions() -> str:
    blocks = []
    for i in range(3):
        blocks.append("\n".join([f"export function f{i}() {{"] + ["  const x = 1;"] * 8 + ["}"]))
    return "\n".join(blocks)


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd" * 10) == 10
    assert estimate_tokens("abcde") == 2


def test_chunk_count():
    assert chunk_count_for(100, 2200) == 1
    assert chunk_count_for(5000, 2200) == 3
    assert chunk_count_for(100, 2200, force=True) == 2


def test_single_chunk_is_identity():
    content = three_functions()
    assert split_by_line_boundaries(content, 1, DECLARATION_BOUNDARY) == [content]


def test_split_lands_on_declarations():
    """Chunks start at declaration boundaries and concatenate back to the source."""
    content = three_functions()
    chunks = split_by_line_boundaries(content, 2, DECLARATION_BOUNDARY)

    assert len(chunks) == 3
    assert all(chunk.startswith("export function") for chunk in chunks)
    assert "\n".join(chunks) == content


def test_boundaries_strictly_increase():
    lines = three_functions().split("\n")
    boundaries = find_chunk_boundaries(lines, 15, DECLARATION_BOUNDARY)

    assert boundaries == [10, 20]
    assert 0 not in boundaries


def test_boundary_falls_back_to_even_split():
    """With no declaration in the lookback window the even split point is used."""
    lines = ["  x = 1;"] * 40
    assert find_chunk_boundaries(lines, 10, DECLARATION_BOUNDARY, lookback=5) == [10, 20, 30]


def test_safe_split_prefers_balanced_point():
    lines = [
        "function a() {",
        "  x;",
        "}",
        "function b() {",
        "  y;",
        "  z;",
        "}",
        "function c() {",
        "  w;",
        "}",
    ]
    assert find_safe_split_index(lines) in (3, 7)


def test_oversized_chunks_are_split():
    chunk = "\n".join(["  value = 1;"] * 60)
    limited = enforce_chunk_token_limit([chunk], lambda text: len(text.split("\n")) * 10, 300)

    assert len(limited) == 2
    assert all(len(part.split("\n")) * 10 <= 300 for part in limited)


def test_small_chunks_kept_even_when_over_budget():
    chunk = "\n".join(["  value = 1;"] * 10)
    assert enforce_chunk_token_limit([chunk], lambda text: 10_000, 300) == [chunk]


def test_strip_imports_and_reassemble():
    dart = DartPlugin()
    stripped = strip_imports("import 'a.dart';\n\nclass B {\n  int y = 2;\n}\n", dart)
    assert stripped == "class B {\n  int y = 2;\n}"

    assert reassemble(["class A {}"], dart) == "class A {}"
    combined = reassemble(["class A {\n  int x = 1;\n}", "class A {\n  int y = 2;\n}"], dart)
    assert combined.count("class A") == 1
    assert "int y = 2;" in combined


# =============================================================================
# Checkpoints
# =============================================================================


def test_checkpoint_round_trip(temp_dir):
    """Saved chunks are restored for the same file content."""
    store = ChunkCheckpointStore(temp_dir)
    checkpoint = store.load("src/big.ts", "content")
    checkpoint.reset(3)
    checkpoint.chunks[0] = "class A {}"
    store.save(checkpoint)

    restored = store.load("src/big.ts", "content")
    assert restored.total_chunks == 3
    assert restored.saved(0) == "class A {}"
    assert restored.saved(1) is None
    assert store.path_for("src/big.ts").name == "src__big.ts.json"


def test_checkpoint_ignored_when_source_changes(temp_dir):
    store = ChunkCheckpointStore(temp_dir)
    checkpoint = store.load("src/big.ts", "old content")
    checkpoint.reset(2)
    checkpoint.chunks[0] = "class A {}"
    store.save(checkpoint)

    fresh = store.load("src/big.ts", "new content")
    assert fresh.total_chunks == 0
    assert fresh.chunks == []


def test_corrupt_checkpoint_is_ignored(temp_dir):
    store = ChunkCheckpointStore(temp_dir)
    path = store.path_for("src/big.ts")
    path.parent.mkdir(parents=True)
    path.write_text("{not json")

    assert store.load("src/big.ts", "content").chunks == []


@pytest.mark.parametrize("chunks", [["class A {}"], ["class A {}", 7, None]])
def test_malformed_checkpoint_is_ignored(temp_dir, chunks):
    """A chunk list that disagrees with its count, or holds non-text entries, starts fresh."""
    store = ChunkCheckpointStore(temp_dir)
    checkpoint = store.load("src/big.ts", "content")
    checkpoint.reset(3)
    store.save(checkpoint)
    document = orjson.loads(store.path_for("src/big.ts").read_bytes())
    document["chunks"] = chunks
    store.path_for("src/big.ts").write_bytes(orjson.dumps(document))

    restored = store.load("src/big.ts", "content")

    assert restored.total_chunks == 0
    assert restored.chunks == []


def test_checkpoint_clear(temp_dir):
    store = ChunkCheckpointStore(temp_dir)
    checkpoint = store.load("src/big.ts", "content")
    checkpoint.reset(1)
    store.save(checkpoint)

    store.clear("src/big.ts")
    assert not store.path_for("src/big.ts").exists()
    store.clear("src/big.ts")
