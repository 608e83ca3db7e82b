"""
Unit tests for the external analyzer wrapper and quality scoring.
"""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

from portmorph.config.models import AnalyzerReport, LanguageType, QualityMetrics, VerificationConfig
from portmorph.verifier.external import DartAnalyzer, ExternalAnalyzer, create_analyzer, parse_dart_output
from portmorph.verifier.quality import calculate_quality, reflect, select_refine_targets

DART_OUTPUT = """Analyzing out...

lib/models/user.dart:3:5 • error • Undefined name 'id' • undefined_identifier
lib/models/user.dart:9:1 • warning • Unused import • unused_import
lib/service.dart:2:8 • info • Prefer const constructors • prefer_const_constructors

3 issues found.
"""


# =============================================================================
# Analyzer output
# =============================================================================


def test_parse_dart_output():
    report = parse_dart_output(DART_OUTPUT)

    assert (report.error_count, report.warning_count, report.info_count) == (1, 1, 1)
    assert report.total_issues == 3
    assert report.issue_files == ["lib/models/user.dart", "lib/service.dart"]
    assert report.issues[0].line == 3
    assert report.issues[0].column == 5
    assert report.issues[0].message == "Undefined name 'id' • undefined_identifier"
    assert not report.valid


def test_parse_clean_output():
    report = parse_dart_output("Analyzing out...\nNo issues found!\n")
    assert report.total_issues == 0
    assert report.issues == []
    assert report.valid


def test_warnings_fail_only_when_configured():
    output = "lib/a.dart:1:1 • warning • Unused import • unused_import\n"
    assert parse_dart_output(output).valid
    assert not parse_dart_output(output, fail_on_warnings=True).valid


def test_windows_paths_normalized():
    report = parse_dart_output("lib\\a.dart:1:1 • error • Missing return • missing_return\n")
    assert report.issue_files == ["lib/a.dart"]


@patch("portmorph.verifier.external.subprocess.run")
def test_dart_analyzer_runs_in_project(mock_run):
    mock_run.side_effect = [
        MagicMock(returncode=0, stdout="Dart SDK version: 3.5.0", stderr=""),
        MagicMock(returncode=3, stdout=DART_OUTPUT, stderr=""),
    ]

    report = DartAnalyzer().analyze(Path("out"))

    assert not report.skipped
    assert report.error_count == 1
    analyze_call = mock_run.call_args_list[1]
    assert analyze_call.args[0] == ["dart", "analyze"]
    assert analyze_call.kwargs["cwd"] == Path("out")


@patch("portmorph.verifier.external.subprocess.run")
def test_missing_dart_sdk_skips(mock_run):
    """Without a Dart SDK the report is skipped and still valid."""
    mock_run.side_effect = FileNotFoundError("dart")

    report = DartAnalyzer().analyze(Path("out"))

    assert report.skipped
    assert report.valid


@patch("portmorph.verifier.external.subprocess.run")
def test_analyzer_timeout(mock_run):
    mock_run.side_effect = [
        MagicMock(returncode=0, stdout="", stderr=""),
        subprocess.TimeoutExpired(cmd="dart analyze", timeout=5),
    ]

    report = DartAnalyzer(timeout=5).analyze(Path("out"))

    assert not report.valid
    assert "Timed out after 5s" in report.output


def test_create_analyzer():
    assert isinstance(create_analyzer(LanguageType.DART), DartAnalyzer)
    analyzer = create_analyzer(LanguageType.PYTHON)
    assert type(analyzer) is ExternalAnalyzer
    assert analyzer.analyze(Path("out")).skipped


# =============================================================================
# Quality
# =============================================================================


def test_quality_without_problems():
    metrics = calculate_quality(0)
    assert metrics.syntax_correctness == 100
    assert metrics.semantic_correctness == 95
    assert metrics.idiomatic_score == 85
    assert metrics.maintainability_index == 80
    assert metrics.overall_score == 90


def test_quality_with_analyzer_issues():
    metrics = calculate_quality(1, AnalyzerReport(error_count=2, warning_count=5))
    assert metrics.syntax_correctness == 55
    assert metrics.semantic_correctness == 94
    assert metrics.idiomatic_score == 75
    assert metrics.overall_score == 76


def test_quality_never_negative():
    metrics = calculate_quality(15, AnalyzerReport(error_count=100, warning_count=100))
    assert metrics.syntax_correctness == 0
    assert metrics.semantic_correctness == 65
    assert metrics.idiomatic_score == 60
    assert 0 <= metrics.overall_score <= 100

    assert calculate_quality(15).overall_score == 63


def test_reflect_accepts_good_result():
    reflection = reflect(calculate_quality(0), None, [], VerificationConfig())
    assert reflection.acceptable
    assert not reflection.needs_refinement


def test_reflect_refine_band():
    reflection = reflect(QualityMetrics(overall_score=76), None, [], VerificationConfig())
    assert not reflection.acceptable
    assert reflection.needs_refinement
    assert reflection.reasons == ["score 76 in refine band"]


def test_reflect_analyzer_thresholds():
    """Analyzer issues trigger refinement per configured thresholds."""
    report = AnalyzerReport(error_count=2, warning_count=1)
    config = VerificationConfig(error_threshold=2, warning_threshold=5)

    reflection = reflect(QualityMetrics(overall_score=95), report, [], config)

    assert reflection.reasons == ["3 analyzer issues", "2 analyzer errors (threshold 2)"]


def test_reflect_zero_retry_threshold_disables_issue_trigger():
    report = AnalyzerReport(warning_count=4)
    reflection = reflect(QualityMetrics(overall_score=95), report, [], VerificationConfig(retry_threshold=0))
    assert not reflection.needs_refinement


def test_reflect_ignores_skipped_analyzer():
    report = AnalyzerReport(skipped=True, error_count=5)
    reflection = reflect(QualityMetrics(overall_score=95), report, ["src/a.ts"], VerificationConfig())
    assert reflection.reasons == ["1 files with import issues"]


def test_select_refine_targets_from_analyzer():
    targets = {"src/a.ts": "lib/a.dart", "src/b.ts": "lib/b.dart"}
    report = AnalyzerReport(issue_files=["/tmp/out/lib/b.dart"])

    assert select_refine_targets(targets, report, ["src/a.ts"]) == ["src/b.ts"]


def test_select_refine_targets_falls_back_to_import_issues():
    targets = {"src/a.ts": "lib/a.dart", "src/b.ts": "lib/b.dart"}
    report = AnalyzerReport(issue_files=["lib/unrelated.dart"])

    assert select_refine_targets(targets, report, ["src/a.ts", "src/gone.ts"]) == ["src/a.ts"]
    assert select_refine_targets(targets, None, []) == []
