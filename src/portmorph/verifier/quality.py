"""
Quality scoring and reflection.

The score is a weighted penalty over structural syntax errors and external
analyzer diagnostics. Reflection turns a score and a report into a decision:
accept, refine a set of files, or stop.
"""

from dataclasses import dataclass, field

from portmorph.config.models import AnalyzerReport, QualityMetrics, VerificationConfig

MAINTAINABILITY_BASELINE = 80


def calculate_quality(syntax_errors: int, report: AnalyzerReport | None = None) -> QualityMetrics:
    """
    Compute quality metrics for a ported project.

    Args:
        syntax_errors: Structural syntax errors across ported files
        report: External analyzer report, if one ran

    Returns:
        QualityMetrics with an overall score in [0, 100]
    """
    errors = report.error_count if report else 0
    warnings = report.warning_count if report else 0

    syntax = max(0, 100 - 10 * syntax_errors - min(100, 10 * errors + 3 * warnings))
    semantic = max(0, 95 - min(30, (errors + syntax_errors) // 2))
    idiomatic = max(0, 85 - min(25, 2 * warnings))
    maintainability = MAINTAINABILITY_BASELINE
    overall = round((syntax + semantic + idiomatic + maintainability) / 4)

    return QualityMetrics(
        syntax_correctness=syntax,
        semantic_correctness=semantic,
        idiomatic_score=idiomatic,
        maintainability_index=maintainability,
        overall_score=overall,
    )


@dataclass
class Reflection:
    """Outcome of the reflection step."""

    acceptable: bool
    needs_refinement: bool
    reasons: list[str] = field(default_factory=list)


def reflect(
    metrics: QualityMetrics,
    report: AnalyzerReport | None,
    import_issue_files: list[str],
    config: VerificationConfig,
) -> Reflection:
    """Decide whether the ported project is acceptable and whether to refine it."""
    score = metrics.overall_score
    reasons = []

    if config.refine_min_score <= score < config.refine_max_score:
        reasons.append(f"score {score} in refine band")
    if report is not None and not report.skipped:
        if config.retry_threshold > 0 and report.total_issues >= config.retry_threshold:
            reasons.append(f"{report.total_issues} analyzer issues")
        for label, count, threshold in (
            ("errors", report.error_count, config.error_threshold),
            ("warnings", report.warning_count, config.warning_threshold),
            ("infos", report.info_count, config.info_threshold),
        ):
            if threshold is not None and count >= threshold:
                reasons.append(f"{count} analyzer {label} (threshold {threshold})")
    if import_issue_files:
        reasons.append(f"{len(import_issue_files)} files with import issues")

    return Reflection(
        acceptable=score >= config.acceptable_score,
        needs_refinement=bool(reasons),
        reasons=reasons,
    )


def select_refine_targets(
    target_paths: dict[str, str],
    report: AnalyzerReport | None,
    import_issue_files: list[str],
) -> list[str]:
    """
    Source files to re-port in a refine pass.

    Args:
        target_paths: Source path -> target path of each ported file
        report: Analyzer report whose issue files drive the selection
        import_issue_files: Source files whose metadata carries import issues

    Returns:
        Source paths matched by an analyzer issue file (equal, or the issue
        path ends with ``/`` + target path); the import-issue files when the
        analyzer matched nothing
    """
    selected = []
    issue_files = report.issue_files if report else []
    for source, target in target_paths.items():
        for issue_file in issue_files:
            if issue_file == target or issue_file.endswith("/" + target):
                selected.append(source)
                break
    if selected:
        return selected
    return [path for path in import_issue_files if path in target_paths]
