"""
Porting orchestrator.

Drives a run through its phases:

    ANALYSIS -> PORTING -> VERIFICATION -> REFLECTION -> (REFINE -> VERIFICATION)* -> COMPLETED | FAILED

Workers in a thread pool only transform files. The coordinating thread is
the single writer: it writes every accepted file as soon as it arrives,
updates the session after each file and owns the completed set.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from enum import Enum

from pydantic import BaseModel, ConfigDict
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from portmorph.analyzer.graph_builder import DependencyScheduler
from portmorph.analyzer.project_analyzer import AnalysisError, ProjectAnalyzer
from portmorph.analyzer.symbol_index import ImportIndex, build_index
from portmorph.analyzer.understanding import understand_task
from portmorph.config.models import (
    AnalyzerReport,
    ErrorCategory,
    FileFailure,
    PortedUnit,
    PortMorphConfig,
    QualityMetrics,
    SessionPhase,
    SourceUnit,
    TaskUnderstanding,
)
from portmorph.languages.registry import LanguagePluginRegistry
from portmorph.planning.execution_planner import ExecutionPlan, ExecutionPlanner
from portmorph.state.persistence import Session, SessionStore
from portmorph.state.reports import (
    write_analyzer_report,
    write_empty_response_report,
    write_import_report,
    write_session_summary,
)
from portmorph.translator.chunker import ChunkCheckpointStore
from portmorph.translator.engine import RunOptions, TransformationEngine
from portmorph.translator.errors import PortingFailedError
from portmorph.utils.filesystem import FileSystem
from portmorph.verifier.external import ExternalAnalyzer, create_analyzer
from portmorph.verifier.quality import calculate_quality, reflect, select_refine_targets

logger = logging.getLogger(__name__)
console = Console()


class RunState(str, Enum):
    """States of the orchestration state machine."""

    ANALYSIS = "analysis"
    PORTING = "porting"
    VERIFICATION = "verification"
    REFLECTION = "reflection"
    REFINE = "refine"
    COMPLETED = "completed"
    FAILED = "failed"


class RunResult(BaseModel):
    """Immutable accumulator threaded through the state transitions."""

    model_config = ConfigDict(frozen=True)

    state: RunState = RunState.ANALYSIS
    total_files: int = 0
    ported_files: tuple[str, ...] = ()
    skipped_files: tuple[str, ...] = ()
    failures: tuple[FileFailure, ...] = ()
    empty_response_files: tuple[str, ...] = ()
    understanding: TaskUnderstanding | None = None
    plan: ExecutionPlan | None = None
    metrics: QualityMetrics | None = None
    analyzer_report: AnalyzerReport | None = None
    refine_attempts: int = 0
    cancelled: bool = False
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.state == RunState.COMPLETED and not self.failures


class PortingOrchestrator:
    """
    Runs a whole-project port.

    Usage:
        orchestrator = PortingOrchestrator(config, client)
        result = orchestrator.run(resume=True)
        if not result.success:
            ...
    """

    def __init__(
        self,
        config: PortMorphConfig,
        client,
        fs: FileSystem | None = None,
        analyzer: ExternalAnalyzer | None = None,
        options: RunOptions | None = None,
    ):
        self.config = config
        self.client = client
        self.fs = fs or FileSystem()
        self.options = options or RunOptions()
        self.analyzer = analyzer or create_analyzer(
            config.project.target_language, config.verification.fail_on_warnings
        )

        self.source_plugin = LanguagePluginRegistry.get_plugin(config.project.source_language)
        self.target_plugin = LanguagePluginRegistry.get_plugin(config.project.target_language)
        self.target_dir = config.project.target_dir
        self.store = SessionStore(config.project.state_dir)

        self.session: Session | None = None
        self.units: dict[str, SourceUnit] = {}
        self.index: ImportIndex | None = None
        self.scheduler: DependencyScheduler | None = None
        self.engine: TransformationEngine | None = None
        self.order: list[str] = []
        self.ported: dict[str, PortedUnit] = {}
        self._cancel = threading.Event()

    def cancel(self):
        """Stop submitting new files; in-flight files finish and the session is saved."""
        if not self._cancel.is_set():
            logger.info("Cancellation requested; finishing in-flight files")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # =========================================================================
    # Entry point
    # =========================================================================

    def run(self, resume: bool = False, dry_run: bool = False) -> RunResult:
        """
        Execute the run.

        Args:
            resume: Continue the session stored in the target directory
            dry_run: Analyse and plan only; nothing is ported or written

        Returns:
            Final RunResult

        Raises:
            SessionMismatchError: If the stored session belongs to another run
            AnalysisError: If the source project cannot be analysed
        """
        started = time.time()
        self.session = self.store.load_for(self.config) if resume else None
        if self.session is not None:
            console.print(
                f"[cyan]Resuming session:[/cyan] {len(self.session.completed_files)} files already ported"
            )
        else:
            self.session = self.store.create(self.config)

        result = RunResult(state=RunState.ANALYSIS)
        try:
            result = self._analysis(result, resume, dry_run)
            if dry_run:
                self._print_plan(result)
                return result.model_copy(update={"state": RunState.COMPLETED, "duration": time.time() - started})

            result = self._porting(result)
            if not result.cancelled:
                result = self._verification(result)
                result = self._reflection(result)
        except AnalysisError:
            self.session.set_phase(SessionPhase.FAILED)
            if not dry_run:
                self.store.save(self.session)
            raise
        except KeyboardInterrupt:
            self.cancel()
            result = result.model_copy(update={"cancelled": True})

        if result.cancelled:
            if not dry_run:
                self.store.save(self.session)
            return result.model_copy(update={"state": RunState.FAILED, "duration": time.time() - started})

        state = RunState.FAILED if result.failures else RunState.COMPLETED
        self.session.set_phase(SessionPhase.FAILED if result.failures else SessionPhase.COMPLETED)
        self.store.save(self.session)
        write_session_summary(self.fs, self.target_dir, self.session, result.metrics)

        result = result.model_copy(update={"state": state, "duration": time.time() - started})
        self._print_summary(result)
        return result

    # =========================================================================
    # Analysis
    # =========================================================================

    def _analysis(self, result: RunResult, resume: bool, dry_run: bool) -> RunResult:
        console.print("\n[bold cyan]Analysis[/bold cyan]\n")
        session = self.session
        project = self.config.project

        if resume and session.task_understanding is not None:
            understanding = session.task_understanding
        else:
            understanding = understand_task(self.client, self.config)
            session.task_understanding = understanding
        console.print(f"[green]✓[/green] Project type: {understanding.project_type}")
        console.print(f"[green]✓[/green] Complexity: {understanding.complexity.value}")

        analyzer = ProjectAnalyzer(project.source_dir, project.source_language, project.exclude_patterns, self.fs)
        summary, units = analyzer.analyze()
        self.units = {unit.path: unit for unit in units}
        console.print(f"[green]✓[/green] Found {len(units)} source files")

        self.index = build_index(
            units, lambda path: self.target_plugin.convert_path(path, project.source_language)
        )
        for collision in self.index.collisions:
            logger.warning(f"Qualified name collision: {collision}")

        self.scheduler = DependencyScheduler(self.source_plugin, self.index, self.config.porting.priority_files)
        self.order = self.scheduler.order(units)
        cycles = self.scheduler.detect_cycles()
        if cycles:
            console.print(f"[yellow]⚠[/yellow] {len(cycles)} import cycles; members ported in priority order")
            for cycle in cycles[:3]:
                logger.info(f"Cycle: {' → '.join(cycle)}")

        planner = ExecutionPlanner()
        plan = planner.create_plan(understanding, self.order, str(project.source_dir))
        for issue in planner.validate_plan(plan):
            logger.warning(f"Plan: {issue}")

        self.engine = TransformationEngine(
            self.config,
            self.client,
            self.source_plugin,
            self.target_plugin,
            self.index,
            options=self.options,
            checkpoints=ChunkCheckpointStore(project.state_dir),
        )

        if not (resume and session.analysis is not None):
            session.analysis = summary
        session.total_files = len(units)
        session.set_phase(SessionPhase.PORTING)
        if not dry_run:
            self.store.save(session)
            self._checkpoint(plan, 1)

        return result.model_copy(
            update={
                "state": RunState.PORTING,
                "total_files": len(units),
                "understanding": understanding,
                "plan": plan,
            }
        )

    def _checkpoint(self, plan: ExecutionPlan | None, phase_number: int):
        if plan is None:
            return
        checkpoint = plan.checkpoint_for(phase_number)
        if checkpoint is not None:
            self.store.create_checkpoint(self.session, checkpoint.id)

    # =========================================================================
    # Porting
    # =========================================================================

    def _porting(self, result: RunResult) -> RunResult:
        console.print("\n[bold cyan]Porting[/bold cyan]\n")
        completed = set(self.session.completed_files)
        skipped = [path for path in self.order if path in completed]
        pending = [path for path in self.order if path not in completed]
        if skipped:
            console.print(f"[green]✓[/green] Skipping {len(skipped)} files completed earlier")

        result = result.model_copy(update={"skipped_files": tuple(skipped)})
        result = self._port_files(result, pending)
        if result.cancelled:
            return result

        ported_units = [self.ported[path] for path in result.ported_files if path in self.ported]
        write_import_report(self.fs, self.target_dir, ported_units)
        write_empty_response_report(self.fs, self.target_dir, list(result.empty_response_files))

        self.session.set_phase(SessionPhase.VERIFICATION)
        self.store.save(self.session)
        self._checkpoint(result.plan, 2)
        return result.model_copy(update={"state": RunState.VERIFICATION})

    def _port_files(
        self, result: RunResult, paths: list[str], feedback: dict[str, list[str]] | None = None
    ) -> RunResult:
        """
        Port ``paths`` with up to ``max_workers`` files in flight.

        A file is submitted once every dependency inside ``paths`` has
        settled (ported or failed). When nothing is ready and nothing is in
        flight, the remaining files form a cycle and the next one in order is
        submitted anyway.
        """
        feedback = feedback or {}
        pending = set(paths)
        queue = list(paths)
        settled: set[str] = set()
        in_flight: dict[Future, str] = {}
        ported: list[str] = list(result.ported_files)
        failures: dict[str, FileFailure] = {f.file: f for f in result.failures}
        empty: list[str] = list(result.empty_response_files)
        max_workers = self.config.porting.max_workers

        def ready(path: str) -> bool:
            return all(dep in settled or dep not in pending for dep in self.scheduler.dependencies_of(path))

        def submit(executor: ThreadPoolExecutor, path: str):
            queue.remove(path)
            in_flight[executor.submit(self.engine.transform, self.units[path], feedback.get(path))] = path

        def settle(future: Future, path: str):
            settled.add(path)
            try:
                unit = future.result()
            except PortingFailedError as e:
                self._record_failure(failures, FileFailure(file=path, error=e.message, category=e.category))
                if e.category == ErrorCategory.TRANSIENT_ORACLE and path not in empty:
                    empty.append(path)
                return
            except Exception as e:
                self._record_failure(failures, FileFailure(file=path, error=str(e), category=ErrorCategory.UNKNOWN))
                return

            self.fs.write_file(self.target_dir / unit.target_path, unit.content)
            self.ported[path] = unit
            failures.pop(path, None)
            if path not in ported:
                ported.append(path)
            self.session.mark_completed(path)
            self.store.save(self.session)
            logger.debug(f"Wrote {unit.target_path}")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Porting files...", total=len(paths))
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                try:
                    while queue or in_flight:
                        if not self.cancelled:
                            for path in list(queue):
                                if len(in_flight) >= max_workers:
                                    break
                                if ready(path):
                                    submit(executor, path)
                            if not in_flight and queue:
                                logger.debug(f"No file ready; breaking cycle at {queue[0]}")
                                submit(executor, queue[0])
                        if not in_flight:
                            break

                        done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                        for future in done:
                            path = in_flight.pop(future)
                            settle(future, path)
                            progress.update(task, advance=1, description=f"Ported {path}")
                except KeyboardInterrupt:
                    self.cancel()
                    for future in list(in_flight):
                        path = in_flight.pop(future)
                        wait([future])
                        settle(future, path)
                        progress.update(task, advance=1)

        return result.model_copy(
            update={
                "ported_files": tuple(ported),
                "failures": tuple(failures.values()),
                "empty_response_files": tuple(empty),
                "cancelled": self.cancelled,
            }
        )

    def _record_failure(self, failures: dict[str, FileFailure], failure: FileFailure):
        failures[failure.file] = failure
        self.session.mark_failed(failure)
        self.store.save(self.session)
        console.print(f"[red]✗[/red] {failure.file}: {failure.category.value}: {failure.error}")

    # =========================================================================
    # Verification & reflection
    # =========================================================================

    def _target_paths(self) -> dict[str, str]:
        """Source path -> target path of every file ported so far."""
        paths = {}
        for source in self.session.completed_files:
            target = self.index.target_path_for(source) if self.index else None
            if target is not None:
                paths[source] = target
        return paths

    def _import_issue_files(self) -> list[str]:
        return [
            path
            for path, unit in self.ported.items()
            if unit.metadata and unit.metadata.import_issues and path in self.session.completed_files
        ]

    def _verification(self, result: RunResult) -> RunResult:
        console.print("\n[bold cyan]Verification[/bold cyan]\n")
        gate = self.engine.gate
        syntax_errors = 0
        for source, target in self._target_paths().items():
            path = self.target_dir / target
            if not self.fs.is_file(path):
                continue
            text = self.fs.read_file(path)
            problems = gate.check_syntax(text, self.target_plugin.mask(text))
            if problems:
                logger.warning(f"{target}: {len(problems)} syntax problems")
            syntax_errors += len(problems)

        report = None
        if self.config.verification.run_analyzer:
            report = self.analyzer.analyze(self.target_dir)
            write_analyzer_report(self.fs, self.target_dir, report, self.config.verification.top_issues)
            if not report.skipped:
                console.print(
                    f"[green]✓[/green] Analyzer: {report.error_count} errors, {report.warning_count} warnings, "
                    f"{report.info_count} infos"
                )

        metrics = calculate_quality(syntax_errors, report)
        console.print(f"[green]✓[/green] Quality score: {metrics.overall_score}/100")
        self._checkpoint(result.plan, 3)
        return result.model_copy(
            update={"state": RunState.REFLECTION, "metrics": metrics, "analyzer_report": report}
        )

    def _reflection(self, result: RunResult) -> RunResult:
        verification = self.config.verification
        while True:
            import_issue_files = self._import_issue_files()
            decision = reflect(result.metrics, result.analyzer_report, import_issue_files, verification)
            console.print(
                f"[green]✓[/green] Acceptable: {'yes' if decision.acceptable else 'no'}; "
                f"refine: {'yes' if decision.needs_refinement else 'no'}"
            )
            if not decision.needs_refinement or result.refine_attempts >= verification.max_refine_attempts:
                return result

            targets = select_refine_targets(self._target_paths(), result.analyzer_report, import_issue_files)
            if not targets:
                return result

            console.print(f"\n[bold cyan]Refine[/bold cyan] ({len(targets)} files: {'; '.join(decision.reasons)})\n")
            result = result.model_copy(
                update={"state": RunState.REFINE, "refine_attempts": result.refine_attempts + 1}
            )
            result = self._port_files(result, targets, self._refine_feedback(targets, result.analyzer_report))
            if result.cancelled:
                return result
            result = self._verification(result)

    def _refine_feedback(self, targets: list[str], report: AnalyzerReport | None) -> dict[str, list[str]]:
        target_paths = self._target_paths()
        feedback: dict[str, list[str]] = {}
        for source in targets:
            target = target_paths.get(source, "")
            notes = []
            if report is not None:
                for issue in report.issues:
                    if issue.file == target or issue.file.endswith("/" + target):
                        notes.append(f"[analyzer] {issue.severity}: {issue.message} (line {issue.line})")
            unit = self.ported.get(source)
            if unit and unit.metadata:
                notes.extend(f"[import] {issue}" for issue in unit.metadata.import_issues)
            feedback[source] = notes
        return feedback

    # =========================================================================
    # Display
    # =========================================================================

    def _print_plan(self, result: RunResult):
        if result.plan is None:
            return
        console.print(f"\n[bold]{ExecutionPlanner().summary(result.plan)}[/bold]")
        table = Table(title="Porting Order")
        table.add_column("#", style="dim")
        table.add_column("Source")
        table.add_column("Target", style="cyan")
        for number, path in enumerate(self.order, 1):
            table.add_row(str(number), path, self.index.target_path_for(path) or "-")
        console.print(table)

    def _print_summary(self, result: RunResult):
        console.print("\n[bold]Porting Summary[/bold]\n")
        table = Table(show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Total files", str(result.total_files))
        table.add_row("Ported this run", str(len(result.ported_files)))
        table.add_row("Skipped (resumed)", str(len(result.skipped_files)))
        table.add_row("Failed", str(len(result.failures)))
        table.add_row("Refine passes", str(result.refine_attempts))
        if result.metrics:
            table.add_row("Quality score", f"{result.metrics.overall_score}/100")
        table.add_row("Duration", f"{result.duration:.1f}s")
        console.print(table)

        if result.failures:
            console.print("\n[bold red]Failed files[/bold red]")
            for failure in result.failures:
                console.print(f"  • {failure.file} ({failure.category.value}): {failure.error}")
