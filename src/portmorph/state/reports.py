"""
Run reports written into the target directory.

Plain-text and Markdown renditions of import validation problems, files the
oracle answered with nothing, external analyzer output, and a session
summary.
"""

import time
from pathlib import Path

from portmorph.config.models import AnalyzerReport, PortedUnit, QualityMetrics
from portmorph.state.persistence import Session
from portmorph.utils.filesystem import FileSystem

IMPORT_REPORT = "portmorph-import-report"
EMPTY_RESPONSE_REPORT = "portmorph-empty-response"
ANALYZER_REPORT = "portmorph-analyze"
SESSION_REPORT = "portmorph-session.md"


def _bullets(items: list[str]) -> list[str]:
    return [f"- {item}" for item in items]


# ============================================================================
# Import validation
# ============================================================================


def build_import_report(ported: list[PortedUnit]) -> tuple[str, str]:
    """Text and Markdown import reports for files whose metadata lists issues."""
    entries = [unit for unit in ported if unit.metadata and unit.metadata.import_issues]
    if not entries:
        return "No import issues found.", "# Import Validation Report\n\nNo import issues found.\n"

    text: list[str] = []
    markdown = ["# Import Validation Report", ""]
    for unit in entries:
        metadata = unit.metadata
        text += [f"File: {unit.target_path}", "Issues:", *_bullets(metadata.import_issues)]
        markdown += [f"## {unit.target_path}", "", "**Issues**", *_bullets(metadata.import_issues)]
        if metadata.required_imports:
            text += ["Required Imports:", *_bullets(metadata.required_imports)]
            markdown += ["", "**Required Imports**", *_bullets(metadata.required_imports)]
        if metadata.actual_imports:
            text += ["Actual Imports:", *_bullets(metadata.actual_imports)]
            markdown += ["", "**Actual Imports**", *_bullets(metadata.actual_imports)]
        text.append("")
        markdown.append("")

    return "\n".join(text).strip(), "\n".join(markdown)


def write_import_report(fs: FileSystem, target_dir: Path, ported: list[PortedUnit]) -> Path:
    text, markdown = build_import_report(ported)
    fs.write_file(target_dir / f"{IMPORT_REPORT}.txt", text)
    fs.write_file(target_dir / f"{IMPORT_REPORT}.md", markdown)
    return target_dir / f"{IMPORT_REPORT}.md"


# ============================================================================
# Empty responses
# ============================================================================


def write_empty_response_report(fs: FileSystem, target_dir: Path, files: list[str]) -> Path | None:
    """List files whose oracle responses stayed empty; nothing is written when there are none."""
    if not files:
        return None
    fs.write_file(target_dir / f"{EMPTY_RESPONSE_REPORT}.txt", "\n".join(["Empty response files:", *_bullets(files)]))
    fs.write_file(
        target_dir / f"{EMPTY_RESPONSE_REPORT}.md",
        "\n".join(["# Empty Response Report", "", *_bullets(files), ""]),
    )
    return target_dir / f"{EMPTY_RESPONSE_REPORT}.md"


# ============================================================================
# External analyzer
# ============================================================================


def build_analyzer_markdown(report: AnalyzerReport, report_path: Path, top_issues: int) -> str:
    lines = [line.strip() for line in report.output.splitlines() if " • " in line]
    limited = lines[:top_issues] if top_issues > 0 else lines
    details = _bullets(limited) or ["- No issues reported."]

    markdown = [
        "# Analyzer Report",
        "",
        f"Report file: `{report_path}`",
        f"Total issues: {len(lines)}",
        "",
        "## Summary",
        f"- Errors: {report.error_count}",
        f"- Warnings: {report.warning_count}",
        f"- Infos: {report.info_count}",
        "",
        "## Top Issues",
        *details,
    ]
    if len(lines) > len(limited):
        markdown += ["", f"(Showing top {len(limited)} of {len(lines)} issues)"]
    markdown.append("")
    return "\n".join(markdown)


def write_analyzer_report(fs: FileSystem, target_dir: Path, report: AnalyzerReport, top_issues: int) -> Path | None:
    if report.skipped:
        return None
    text_path = target_dir / f"{ANALYZER_REPORT}.txt"
    fs.write_file(text_path, report.output or "No issues reported.")
    fs.write_file(target_dir / f"{ANALYZER_REPORT}.md", build_analyzer_markdown(report, text_path, top_issues))
    return text_path


# ============================================================================
# Session summary
# ============================================================================


def build_session_summary(session: Session, metrics: QualityMetrics | None = None) -> str:
    """Human-readable Markdown summary of a session."""
    progress = session.get_progress()
    lines = [
        "# PortMorph Session Report",
        "",
        f"**Source**: {session.source_path} ({session.source_language.value})",
        f"**Target**: {session.target_path} ({session.target_language.value})",
        f"**Model**: {session.model or 'unknown'}",
        f"**Started**: {time.ctime(session.started_at)}",
        f"**Last Updated**: {time.ctime(session.updated_at)}",
        "",
        "## Progress",
        "",
        f"- **Phase**: {progress['phase']}",
        f"- **Total Files**: {progress['total_files']}",
        f"- **Completed**: {progress['completed']} ({progress['percentage']:.1f}%)",
        f"- **Failed**: {progress['failed']}",
        "",
    ]

    if metrics is not None:
        lines += [
            "## Quality",
            "",
            f"- **Overall**: {metrics.overall_score}/100",
            f"- Syntax: {metrics.syntax_correctness}",
            f"- Semantic: {metrics.semantic_correctness}",
            f"- Idiomatic: {metrics.idiomatic_score}",
            f"- Maintainability: {metrics.maintainability_index}",
            "",
        ]

    if session.task_understanding:
        understanding = session.task_understanding
        lines += [
            "## Task Understanding",
            "",
            f"- **Project type**: {understanding.project_type}",
            f"- **Complexity**: {understanding.complexity.value}",
            f"- **Strategy**: {understanding.recommended_strategy}",
            "",
        ]

    if session.failed_files:
        lines += ["## Failed Files (Require Manual Attention)", ""]
        for failure in session.failed_files:
            lines.append(f"- **{failure.file}** ({failure.category.value})")
            lines.append(f"  - {failure.error}")
        lines.append("")

    return "\n".join(lines)


def write_session_summary(
    fs: FileSystem, target_dir: Path, session: Session, metrics: QualityMetrics | None = None
) -> Path:
    path = target_dir / SESSION_REPORT
    fs.write_file(path, build_session_summary(session, metrics))
    return path
