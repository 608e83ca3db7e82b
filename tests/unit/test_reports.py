"""
Unit tests for run reports.
"""

import tempfile
from pathlib import Path

import pytest

from portmorph.config.loader import create_config_from_args
from portmorph.config.models import (
    AnalyzerReport,
    ErrorCategory,
    FileFailure,
    PortedUnit,
    PortMetadata,
    QualityMetrics,
    TaskUnderstanding,
)
from portmorph.state.persistence import SessionStore
from portmorph.state.reports import (
    build_analyzer_markdown,
    build_import_report,
    build_session_summary,
    write_analyzer_report,
    write_empty_response_report,
    write_import_report,
    write_session_summary,
)
from portmorph.utils.filesystem import FileSystem


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def session(temp_dir):
    config = create_config_from_args(
        source_dir=temp_dir / "source",
        target_dir=temp_dir / "target",
        source_lang="typescript",
        target_lang="dart",
    )
    return SessionStore(config.project.state_dir).create(config)


def ported(path: str, issues: list[str] | None = None) -> PortedUnit:
    metadata = PortMetadata(
        import_issues=issues or [],
        required_imports=["import 'types.dart';"],
        actual_imports=["import 'package:other/types.dart';"] if issues else [],
    )
    return PortedUnit(target_path=path, content="", original_path=path, metadata=metadata)


def test_import_report_without_issues():
    text, markdown = build_import_report([ported("lib/a.dart"), PortedUnit(target_path="lib/b.dart", content="", original_path="b")])
    assert text == "No import issues found."
    assert "No import issues found." in markdown


def test_import_report_lists_issues():
    """Only files with issues are listed, with their required and actual imports."""
    text, markdown = build_import_report(
        [ported("lib/a.dart"), ported("lib/b.dart", ["Invalid package import: import 'package:other/types.dart';"])]
    )

    assert "lib/a.dart" not in text
    assert text.startswith("File: lib/b.dart\nIssues:\n- Invalid package import")
    assert "Required Imports:\n- import 'types.dart';" in text
    assert "Actual Imports:\n- import 'package:other/types.dart';" in text
    assert "## lib/b.dart" in markdown
    assert "**Required Imports**" in markdown


def test_write_import_report(temp_dir):
    path = write_import_report(FileSystem(), temp_dir, [ported("lib/a.dart")])

    assert path == temp_dir / "portmorph-import-report.md"
    assert (temp_dir / "portmorph-import-report.txt").read_text() == "No import issues found."


def test_empty_response_report(temp_dir):
    fs = FileSystem()
    assert write_empty_response_report(fs, temp_dir, []) is None
    assert not (temp_dir / "portmorph-empty-response.txt").exists()

    write_empty_response_report(fs, temp_dir, ["src/a.ts", "src/b.ts"])
    assert (temp_dir / "portmorph-empty-response.txt").read_text() == "Empty response files:\n- src/a.ts\n- src/b.ts"


def test_analyzer_markdown_limits_issues():
    report = AnalyzerReport(
        error_count=2,
        warning_count=1,
        output=(
            "Analyzing target...\n"
            "  error • Undefined name 'x' • lib/a.dart:3:5 • undefined_identifier\n"
            "  error • Missing return • lib/a.dart:9:1 • body_might_complete_normally\n"
            "warning • Unused import • lib/b.dart:1:8 • unused_import\n"
        ),
    )

    markdown = build_analyzer_markdown(report, Path("out/portmorph-analyze.txt"), top_issues=2)

    assert "Total issues: 3" in markdown
    assert "- Errors: 2" in markdown
    assert "- error • Undefined name 'x' • lib/a.dart:3:5 • undefined_identifier" in markdown
    assert "Unused import" not in markdown
    assert "(Showing top 2 of 3 issues)" in markdown


def test_analyzer_markdown_without_issues():
    markdown = build_analyzer_markdown(AnalyzerReport(), Path("report.txt"), top_issues=20)
    assert "- No issues reported." in markdown
    assert "Showing top" not in markdown


def test_skipped_analyzer_writes_nothing(temp_dir):
    assert write_analyzer_report(FileSystem(), temp_dir, AnalyzerReport(skipped=True), 20) is None
    assert list(temp_dir.iterdir()) == []


def test_session_summary(session):
    session.total_files = 2
    session.mark_completed("src/a.ts")
    session.mark_failed(FileFailure(file="src/b.ts", error="Unbalanced brackets", category=ErrorCategory.SYNTAX))
    session.task_understanding = TaskUnderstanding(project_type="library")
    metrics = QualityMetrics(
        syntax_correctness=90, semantic_correctness=95, idiomatic_score=85, maintainability_index=80, overall_score=88
    )

    summary = build_session_summary(session, metrics)

    assert summary.startswith("# PortMorph Session Report")
    assert "- **Completed**: 1 (50.0%)" in summary
    assert "- **Overall**: 88/100" in summary
    assert "- **Project type**: library" in summary
    assert "- **src/b.ts** (syntax)" in summary
    assert "  - Unbalanced brackets" in summary


def test_write_session_summary(temp_dir, session):
    path = write_session_summary(FileSystem(), temp_dir, session)

    assert path.name == "portmorph-session.md"
    content = path.read_text()
    assert "## Quality" not in content
    assert "## Failed Files" not in content
