"""
External static analyzers for generated projects.

Wraps the target toolchain's analyzer (``dart analyze``) behind a small
interface. A missing toolchain is not an error: the report comes back
skipped and valid, and the run continues on the gate's structural checks.
"""

import logging
import re
import subprocess
from pathlib import Path

from portmorph.config.models import AnalyzerIssue, AnalyzerReport, LanguageType

logger = logging.getLogger(__name__)

DART_ISSUE_LINE = re.compile(r"^(.+?):(\d+):(\d+)\s+•\s+(error|warning|info)\b(.*)$")
SEVERITIES = ("error", "warning", "info")


class ExternalAnalyzer:
    """Base class for target-language analyzers."""

    name = "none"

    def __init__(self, timeout: int = 600, fail_on_warnings: bool = False):
        self.timeout = timeout
        self.fail_on_warnings = fail_on_warnings

    def is_available(self) -> bool:
        return False

    def analyze(self, project_path: Path) -> AnalyzerReport:
        return AnalyzerReport(skipped=True, valid=True)


class DartAnalyzer(ExternalAnalyzer):
    """
    Runs ``dart analyze`` over a generated project.

    Usage:
        analyzer = DartAnalyzer()
        report = analyzer.analyze(Path("./out"))
        print(report.error_count, report.issue_files)
    """

    name = "dart analyze"

    def is_available(self) -> bool:
        try:
            result = subprocess.run(
                ["dart", "--version"],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0

    def analyze(self, project_path: Path) -> AnalyzerReport:
        if not self.is_available():
            logger.info("Dart SDK not found; skipping analyzer")
            return AnalyzerReport(skipped=True, valid=True)

        try:
            result = subprocess.run(
                ["dart", "analyze"],
                cwd=project_path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return AnalyzerReport(skipped=True, valid=True)
        except subprocess.TimeoutExpired:
            logger.warning(f"dart analyze timed out after {self.timeout}s")
            return AnalyzerReport(valid=False, output=f"Timed out after {self.timeout}s")

        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        report = parse_dart_output(output, self.fail_on_warnings)
        logger.info(
            f"dart analyze: {report.error_count} errors, {report.warning_count} warnings, "
            f"{report.info_count} infos"
        )
        return report


def parse_dart_output(output: str, fail_on_warnings: bool = False) -> AnalyzerReport:
    """
    Parse ``dart analyze`` output.

    Severity counts come from lines containing `` • `` and the severity word;
    issues and issue files from lines shaped ``path:line:col • severity ...``.
    """
    counts = dict.fromkeys(SEVERITIES, 0)
    issues = []
    issue_files = []

    for raw in output.splitlines():
        line = raw.strip()
        if " • " not in line:
            continue
        for severity in SEVERITIES:
            if f" {severity}" in line:
                counts[severity] += 1
                break

        match = DART_ISSUE_LINE.match(line)
        if not match:
            continue
        path, row, column, severity, rest = match.groups()
        path = path.strip().replace("\\", "/")
        issues.append(
            AnalyzerIssue(
                file=path,
                line=int(row),
                column=int(column),
                severity=severity,
                message=rest.strip(" •"),
            )
        )
        if path not in issue_files:
            issue_files.append(path)

    return AnalyzerReport(
        error_count=counts["error"],
        warning_count=counts["warning"],
        info_count=counts["info"],
        issues=issues,
        issue_files=issue_files,
        valid=counts["error"] == 0 and (not fail_on_warnings or counts["warning"] == 0),
        output=output,
    )


def create_analyzer(language: LanguageType, fail_on_warnings: bool = False) -> ExternalAnalyzer:
    """Analyzer for a target language; a no-op analyzer when none is wired."""
    if language == LanguageType.DART:
        return DartAnalyzer(fail_on_warnings=fail_on_warnings)
    return ExternalAnalyzer()
