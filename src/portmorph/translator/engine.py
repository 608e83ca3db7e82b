"""
Transformation engine.

Ports one source unit at a time: deterministic barrels, single-pass
generation with bounded retries, and chunked generation for files whose
prompt would not fit the oracle's context window.
"""

import logging
import threading
import time
from dataclasses import dataclass, field

from portmorph.analyzer.import_mapping import ImportMapper
from portmorph.analyzer.symbol_index import ImportIndex
from portmorph.config.models import (
    ErrorCategory,
    FileKind,
    PortedUnit,
    PortMorphConfig,
    PromptMode,
    SourceUnit,
)
from portmorph.languages.base.lexing import word_pattern
from portmorph.languages.base.plugin import LanguagePlugin, dedupe
from portmorph.translator.chunker import (
    ChunkCheckpointStore,
    chunk_count_for,
    enforce_chunk_token_limit,
    estimate_tokens,
    reassemble,
    split_by_line_boundaries,
    strip_imports,
)
from portmorph.translator.errors import EmptyResponseError, PortingFailedError
from portmorph.translator.llm_client import GenerateOptions, extract_code
from portmorph.translator.prompts import ChunkRequest, PromptBuilder
from portmorph.translator.retry import RetryPolicy, initial_mode
from portmorph.verifier.gate import ValidationGate
from portmorph.verifier.normalizers import Normalizer

logger = logging.getLogger(__name__)

MAX_UNKNOWN_FAILURES = 2


@dataclass
class RunOptions:
    """Settings scoped to one porting run."""

    debug_prompt: bool = False
    verbose: bool = False
    _prompt_dumped: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def claim_prompt_dump(self) -> bool:
        """True exactly once per run, for the first prompt sent."""
        with self._lock:
            if self._prompt_dumped:
                return False
            self._prompt_dumped = True
            return True


class TransformationEngine:
    """
    Turns SourceUnits into PortedUnits.

    Usage:
        engine = TransformationEngine(config, client, source_plugin, target_plugin, index)
        ported = engine.transform(unit)
    """

    def __init__(
        self,
        config: PortMorphConfig,
        client,
        source_plugin: LanguagePlugin,
        target_plugin: LanguagePlugin,
        index: ImportIndex,
        options: RunOptions | None = None,
        checkpoints: ChunkCheckpointStore | None = None,
    ):
        self.config = config
        self.porting = config.porting
        self.client = client
        self.source_plugin = source_plugin
        self.target_plugin = target_plugin
        self.index = index
        self.options = options or RunOptions()
        self.checkpoints = checkpoints
        self.generate_options = GenerateOptions.from_config(config.llm)

        self.mapper = ImportMapper(index, source_plugin, target_plugin, config.project.effective_package_name)
        self.prompts = PromptBuilder(source_plugin, target_plugin, self.mapper)
        self.gate = ValidationGate(source_plugin, target_plugin, self.mapper, self.porting.contract_rules)
        self.normalizer = Normalizer(target_plugin, self.mapper)
        self.file_policy = RetryPolicy.for_file(self.porting)
        self.chunk_policy = RetryPolicy.for_chunk(self.porting)

    # =========================================================================
    # Entry point
    # =========================================================================

    def transform(self, unit: SourceUnit, issues: list[str] | None = None) -> PortedUnit:
        """
        Port one source unit.

        Args:
            unit: The unit to port
            issues: Problems reported for a previous version of the output
                (refine pass); passed to the oracle as feedback

        Returns:
            The accepted, normalized PortedUnit

        Raises:
            PortingFailedError: If the unit could not be ported
        """
        if self.is_pure_barrel(unit):
            return self.render_barrel(unit)

        estimate = self.estimate_prompt_tokens(unit)
        try:
            if estimate > self.porting.max_prompt_tokens:
                return self._transform_chunked(unit, estimate, issues=issues)
            return self._transform_single(unit, initial_mode(estimate, self.porting), issues=issues)
        except PortingFailedError as e:
            if e.category != ErrorCategory.TRANSIENT_ORACLE or e.chunked:
                raise
            logger.warning(f"{unit.path}: oracle kept returning empty output; retrying in minimal chunked mode")
            return self._transform_chunked(unit, estimate, force=True, issues=issues)

    def target_path(self, unit: SourceUnit) -> str:
        return self.mapper.target_path(unit)

    def estimate_prompt_tokens(self, unit: SourceUnit, chunk: ChunkRequest | None = None) -> int:
        mode = PromptMode.MINIMAL if chunk else PromptMode.FULL
        return estimate_tokens(self.prompts.build(unit, mode, chunk=chunk))

    # =========================================================================
    # Barrels
    # =========================================================================

    def is_pure_barrel(self, unit: SourceUnit) -> bool:
        """An index file with no exports of its own and nothing but import/re-export lines."""
        if unit.kind != FileKind.BARREL or unit.exports:
            return False
        if not self.source_plugin.extract_reexports(unit.content):
            return False
        text = self.source_plugin.mask_comments(unit.content)
        text = self.source_plugin.header_directive_pattern.sub("", text)
        text = self.source_plugin.import_line_pattern.sub("", text)
        return not text.strip(" \t\n;")

    def render_barrel(self, unit: SourceUnit) -> PortedUnit:
        current = self.target_path(unit)
        targets = []
        for spec in self.source_plugin.extract_reexports(unit.content):
            target = self.index.resolve_import(spec, unit.path)
            if target is None:
                logger.warning(f"{unit.path}: re-export '{spec}' does not resolve to a project file; dropped")
                continue
            targets.append(target)

        content = self.target_plugin.render_barrel(dedupe(targets), current, self.mapper.package_name)
        logger.debug(f"{unit.path}: rendered barrel with {len(targets)} re-exports")
        return PortedUnit(
            target_path=current,
            content=content,
            original_path=unit.path,
            deterministic=True,
        )

    # =========================================================================
    # Single pass
    # =========================================================================

    def _transform_single(
        self, unit: SourceUnit, start_mode: PromptMode, issues: list[str] | None = None
    ) -> PortedUnit:
        code, attempts = self._generate_with_retries(unit, self.file_policy, start_mode, issues=issues)
        content = self.normalizer.apply(code, unit)
        self._warn_missing_exports(unit, content)
        return PortedUnit(
            target_path=self.target_path(unit),
            content=content,
            original_path=unit.path,
            metadata=self.normalizer.import_metadata(content, unit),
            attempts=attempts,
        )

    def _warn_missing_exports(self, unit: SourceUnit, content: str) -> None:
        masked = self.target_plugin.mask(content)
        missing = [s.flattened_name for s in unit.exports if not word_pattern(s.flattened_name).search(masked)]
        if missing:
            logger.warning(f"{unit.path}: exported symbols not found in output: {', '.join(missing)}")

    # =========================================================================
    # Chunked
    # =========================================================================

    def split_into_chunks(self, unit: SourceUnit, estimate: int, force: bool = False) -> list[str]:
        """Source slices for a chunked port of ``unit``."""
        count = chunk_count_for(estimate, self.porting.max_prompt_tokens, force)
        pieces = split_by_line_boundaries(
            unit.content, count, self.source_plugin.boundary_pattern, self.porting.chunk_lookback_lines
        )
        return enforce_chunk_token_limit(
            pieces,
            lambda text: self.estimate_prompt_tokens(unit, ChunkRequest(0, 1, text)),
            self.porting.max_prompt_tokens,
        )

    def _transform_chunked(
        self, unit: SourceUnit, estimate: int, force: bool = False, issues: list[str] | None = None
    ) -> PortedUnit:
        pieces = self.split_into_chunks(unit, estimate, force)
        if len(pieces) <= 1:
            start = PromptMode.MINIMAL if force else initial_mode(estimate, self.porting)
            return self._transform_single(unit, start, issues=issues)

        total = len(pieces)
        logger.info(f"{unit.path}: porting in {total} chunks")
        checkpoint = None
        if self.checkpoints is not None and self.porting.chunk_checkpoints:
            checkpoint = self.checkpoints.load(unit.path, unit.content)
            if checkpoint.total_chunks != total:
                checkpoint.reset(total)

        outputs = []
        attempts = 0
        for index, piece in enumerate(pieces):
            saved = checkpoint.saved(index) if checkpoint else None
            if saved is not None:
                logger.debug(f"{unit.path}: chunk {index + 1}/{total} restored from checkpoint")
                outputs.append(saved.strip())
                continue

            chunk = ChunkRequest(index=index, total=total, content=piece)
            try:
                code, used = self._generate_with_retries(
                    unit, self.chunk_policy, PromptMode.MINIMAL, chunk=chunk, issues=issues
                )
            except PortingFailedError as e:
                raise PortingFailedError(
                    e.category, f"Chunk {index + 1}/{total} failed: {e.message}", chunked=True
                ) from e
            attempts += used
            outputs.append(code.strip())
            if checkpoint is not None:
                checkpoint.chunks[index] = code.strip()
                self.checkpoints.save(checkpoint)

        content = self.normalizer.apply(reassemble(outputs, self.target_plugin), unit)
        final_issues = self.gate.validate(content, unit)
        if final_issues:
            raise PortingFailedError(
                final_issues[0].category,
                "Combined chunk validation failed: " + "; ".join(str(i) for i in final_issues[:5]),
                chunked=True,
            )

        if checkpoint is not None:
            self.checkpoints.clear(unit.path)
        return PortedUnit(
            target_path=self.target_path(unit),
            content=content,
            original_path=unit.path,
            metadata=self.normalizer.import_metadata(content, unit),
            chunked=True,
            attempts=attempts,
        )

    # =========================================================================
    # Attempt loop
    # =========================================================================

    def _generate_with_retries(
        self,
        unit: SourceUnit,
        policy: RetryPolicy,
        start_mode: PromptMode,
        chunk: ChunkRequest | None = None,
        issues: list[str] | None = None,
    ) -> tuple[str, int]:
        """
        Call the oracle until the gate accepts its output.

        Returns:
            Tuple of (accepted code, attempts used)

        Raises:
            PortingFailedError: With the category of the last failure
        """
        suppress_imports = chunk.suppress_imports if chunk else False
        feedback = list(issues or [])
        correction: list[str] | None = None
        last_error = PortingFailedError(ErrorCategory.UNKNOWN, "no attempts made")
        unknown_failures = 0
        label = unit.path if chunk is None else f"{unit.path} [chunk {chunk.index + 1}/{chunk.total}]"

        for attempt in policy.attempts():
            delay = policy.backoff_seconds(attempt)
            if delay > 0:
                logger.info(f"{label}: waiting {delay:g}s before attempt {attempt}/{policy.max_attempts}")
                time.sleep(delay)

            mode = policy.mode_for(attempt, start_mode)
            prompt = self.prompts.build(unit, mode, chunk=chunk, correction=correction, issues=feedback)
            if self.options.debug_prompt and self.options.claim_prompt_dump():
                logger.info(f"Prompt for {label} ({mode.value} mode):\n{prompt}")

            try:
                code = extract_code(self.client.generate(prompt, self.generate_options))
                if not code.strip():
                    raise EmptyResponseError(f"Empty response from oracle on attempt {attempt}")
            except EmptyResponseError as e:
                logger.warning(f"{label}: {e}")
                last_error = PortingFailedError(ErrorCategory.TRANSIENT_ORACLE, str(e))
                continue
            except Exception as e:
                unknown_failures += 1
                logger.warning(f"{label}: attempt {attempt} raised {type(e).__name__}: {e}")
                last_error = PortingFailedError(ErrorCategory.UNKNOWN, str(e))
                if unknown_failures >= MAX_UNKNOWN_FAILURES:
                    break
                continue

            if suppress_imports:
                code = strip_imports(code, self.target_plugin)

            found = self.gate.validate(
                code,
                unit,
                chunked=chunk is not None,
                source_text=chunk.content if chunk else None,
                suppress_imports=suppress_imports,
            )
            if not found:
                if self.options.verbose:
                    logger.info(f"{label}: accepted on attempt {attempt} ({mode.value} mode)")
                return code, attempt

            logger.warning(f"{label}: attempt {attempt} rejected: {'; '.join(str(i) for i in found[:3])}")
            last_error = PortingFailedError(found[0].category, "; ".join(str(i) for i in found[:5]))
            feedback = [str(i) for i in found]
            if any(i.category == ErrorCategory.IMPORT for i in found) and not suppress_imports:
                correction = [entry.statement for entry in self.mapper.required_imports(unit)] or None

        raise last_error
