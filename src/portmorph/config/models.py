"""
Core configuration and data models for PortMorph.

Defines configuration structures and the data passed between the analysis,
porting and verification phases, using Pydantic for validation.
"""

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class LanguageType(str, Enum):
    """Supported source and target dialects."""

    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    DART = "dart"


class FileKind(str, Enum):
    """Classification of a source file."""

    SOURCE = "source"
    BARREL = "barrel"  # Re-exports sibling modules only
    TEST = "test"
    CONFIG = "config"
    UTILITY = "utility"
    MODEL = "model"
    SERVICE = "service"


class SymbolKind(str, Enum):
    """Kinds of exported declarations recognised by the dialect plugins."""

    TYPE = "type"
    INTERFACE = "interface"
    CLASS = "class"
    FUNCTION = "function"
    CONSTANT = "constant"
    ENUM = "enum"
    VARIABLE = "variable"


class PromptMode(str, Enum):
    """Prompt detail levels, from most to least verbose."""

    FULL = "full"
    REDUCED = "reduced"
    MINIMAL = "minimal"

    def degrade(self) -> "PromptMode":
        """Return the next less detailed mode (minimal stays minimal)."""
        order = [PromptMode.FULL, PromptMode.REDUCED, PromptMode.MINIMAL]
        index = order.index(self)
        return order[min(index + 1, len(order) - 1)]


class ErrorCategory(str, Enum):
    """Failure taxonomy for a single file port."""

    TRANSIENT_ORACLE = "transient_oracle"  # Empty or malformed oracle response
    SYNTAX = "syntax"  # Structural gate rejection
    IMPORT = "import"  # Import resolution/validation mismatch
    CONTRACT = "contract"  # Foundational API regression
    UNKNOWN = "unknown"  # Anything else that was raised


class SessionPhase(str, Enum):
    """Persisted phase of a porting session."""

    ANALYSIS = "analysis"
    PORTING = "porting"
    VERIFICATION = "verification"
    COMPLETED = "completed"
    FAILED = "failed"


class Complexity(str, Enum):
    """Estimated complexity of a porting task."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ============================================================================
# LLM Configuration
# ============================================================================


class LLMProvider(str, Enum):
    """Supported oracle providers."""

    OLLAMA = "ollama"
    OPENAI = "openai"  # Any OpenAI-compatible endpoint


class LLMConfig(BaseModel):
    """Configuration for the oracle client."""

    provider: LLMProvider = Field(default=LLMProvider.OLLAMA, description="LLM provider")
    host: str = Field(default="http://localhost:11434", description="Ollama server URL (for Ollama)")
    api_key: str | None = Field(default=None, description="API key (for OpenAI-compatible endpoints)")
    base_url: str | None = Field(default=None, description="Base URL for OpenAI-compatible endpoints")
    model: str = Field(default="qwen2.5-coder:7b", description="Model to use for porting")
    temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")
    top_p: float = Field(default=1.0, ge=0.0, le=1.0, description="Nucleus sampling cutoff")
    max_tokens: int = Field(default=4096, ge=1, description="Maximum tokens to generate")
    timeout: int = Field(default=300, description="Request timeout in seconds")


# ============================================================================
# Porting Configuration
# ============================================================================


class PortingConfig(BaseModel):
    """Configuration for per-file transformation, chunking and retries."""

    max_prompt_tokens: int = Field(
        default=2200, ge=1, description="Estimated prompt tokens above which a file is chunked"
    )
    reduced_prompt_tokens: int = Field(
        default=1400, ge=1, description="Estimate above which the first attempt starts in reduced mode"
    )
    minimal_prompt_tokens: int = Field(
        default=1800, ge=1, description="Estimate above which the first attempt starts in minimal mode"
    )
    max_attempts: int = Field(default=3, ge=1, description="Max oracle attempts per file")
    chunk_max_attempts: int = Field(default=2, ge=1, description="Max oracle attempts per chunk")
    backoff_schedule: list[float] = Field(
        default_factory=lambda: [0.0, 2.0, 5.0, 10.0],
        description="Seconds to wait before attempt 1, 2, 3, 4+",
    )
    chunk_lookback_lines: int = Field(
        default=50, ge=0, description="Lines scanned backwards for a declaration boundary"
    )
    max_workers: int = Field(default=2, ge=1, description="Files ported concurrently")
    priority_files: list[str] = Field(
        default_factory=list, description="Foundational files ported first, in this order"
    )
    contract_rules: dict[str, dict[str, list[str]]] = Field(
        default_factory=dict,
        description="Source path -> declaration name -> member names that must survive porting",
    )
    chunk_checkpoints: bool = Field(
        default=True, description="Persist finished chunks so interrupted files resume"
    )


# ============================================================================
# Verification Configuration
# ============================================================================


class VerificationConfig(BaseModel):
    """Configuration for verification, reflection and refinement."""

    run_analyzer: bool = Field(default=True, description="Run the target static analyzer if available")
    fail_on_warnings: bool = Field(default=False, description="Treat analyzer warnings as failures")
    top_issues: int = Field(default=20, ge=0, description="Issues listed in the analyzer report")
    retry_threshold: int = Field(
        default=1, ge=0, description="Total analyzer issues that trigger a refine pass"
    )
    error_threshold: int | None = Field(default=None, description="Analyzer errors that trigger a refine pass")
    warning_threshold: int | None = Field(default=None, description="Analyzer warnings that trigger a refine pass")
    info_threshold: int | None = Field(default=None, description="Analyzer infos that trigger a refine pass")
    max_refine_attempts: int = Field(default=1, ge=0, description="Bound on refine passes")
    acceptable_score: int = Field(default=85, ge=0, le=100, description="Quality score considered acceptable")
    refine_min_score: int = Field(default=70, ge=0, le=100, description="Lower bound of the refine band")
    refine_max_score: int = Field(default=90, ge=0, le=100, description="Upper bound of the refine band")
    fail_on_issues: bool = Field(
        default=False, description="Exit non-zero when files remain failed after the run"
    )


# ============================================================================
# Project Configuration
# ============================================================================


DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules",
    ".git",
    "__pycache__",
    "target",
    "dist",
    "build",
    ".venv",
    "venv",
    "*.d.ts",
    "*.test.*",
    "*.spec.*",
]


class ProjectConfig(BaseModel):
    """Source and target project configuration."""

    name: str = Field(default="portmorph_project", description="Project name")
    source_dir: Path = Field(description="Root of the project to port")
    target_dir: Path = Field(description="Root of the generated project")
    source_language: LanguageType
    target_language: LanguageType
    package_name: str | None = Field(
        default=None, description="Target package name used for package-style imports"
    )
    exclude_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS),
        description="Patterns to exclude from analysis",
    )
    state_dir_name: str = Field(default=".portmorph", description="State directory inside the target")

    @property
    def state_dir(self) -> Path:
        return self.target_dir / self.state_dir_name

    @property
    def effective_package_name(self) -> str:
        """Package name for the target project, derived from the target directory if unset."""
        if self.package_name:
            return self.package_name
        name = self.target_dir.resolve().name or self.name
        return name.replace("-", "_").lower()


# ============================================================================
# Main Configuration
# ============================================================================


class PortMorphConfig(BaseModel):
    """Root configuration model for PortMorph."""

    project: ProjectConfig
    llm: LLMConfig = Field(default_factory=LLMConfig)
    porting: PortingConfig = Field(default_factory=PortingConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)

    def get_translation_type(self) -> str:
        """Get a human-readable description of the port."""
        return f"{self.project.source_language.value} → {self.project.target_language.value}"


# ============================================================================
# Source Model (used across the system)
# ============================================================================


class ExportedSymbol(BaseModel):
    """A declaration exported by a source file."""

    name: str
    kind: SymbolKind
    parent: str | None = Field(default=None, description="Enclosing declaration for nested symbols")
    is_default: bool = False

    @property
    def qualified_name(self) -> str:
        return f"{self.parent}.{self.name}" if self.parent else self.name

    @property
    def flattened_name(self) -> str:
        """Top-level name the symbol must use in the target project."""
        return f"{self.parent}{self.name}" if self.parent else self.name

    @property
    def is_nested(self) -> bool:
        return self.parent is not None


class SourceUnit(BaseModel):
    """A single source file and what it exports."""

    path: str = Field(description="POSIX path relative to the source root")
    absolute_path: Path | None = None
    content: str
    kind: FileKind = FileKind.SOURCE
    exports: list[ExportedSymbol] = Field(default_factory=list)


class SymbolLocation(BaseModel):
    """Where a symbol lives in the target project."""

    target_path: str
    symbol: ExportedSymbol


class ValidationIssue(BaseModel):
    """A single rejection reason produced by the validation gate."""

    category: ErrorCategory
    gate: str = Field(description="syntax, semantic, import or contract")
    message: str
    line: int | None = None

    def __str__(self) -> str:
        location = f" (line {self.line})" if self.line is not None else ""
        return f"[{self.gate}] {self.message}{location}"


class PortMetadata(BaseModel):
    """Import bookkeeping attached to a ported file."""

    import_issues: list[str] = Field(default_factory=list)
    required_imports: list[str] = Field(default_factory=list)
    actual_imports: list[str] = Field(default_factory=list)


class PortedUnit(BaseModel):
    """The accepted target-side rendition of a source file."""

    target_path: str
    content: str
    original_path: str
    metadata: PortMetadata | None = None
    chunked: bool = False
    deterministic: bool = Field(default=False, description="Produced without calling the oracle")
    attempts: int = 0


# ============================================================================
# Analysis Models
# ============================================================================


class TaskUnderstanding(BaseModel):
    """The oracle's reading of the porting task."""

    project_type: str = "unknown"
    challenges: list[str] = Field(default_factory=list)
    critical_features: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    recommended_strategy: str = "file-by-file"
    complexity: Complexity = Complexity.MEDIUM


class FileInfo(BaseModel):
    """A file discovered during project analysis."""

    path: str
    kind: FileKind
    size: int = 0


class ProjectStructure(BaseModel):
    """Coarse shape of the source project."""

    has_tests: bool = False
    has_config: bool = False
    has_docs: bool = False
    directories: list[str] = Field(default_factory=list)


class AnalysisSummary(BaseModel):
    """Result of the analysis phase."""

    files: list[FileInfo] = Field(default_factory=list)
    entry_points: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    structure: ProjectStructure = Field(default_factory=ProjectStructure)
    language: LanguageType | None = None


class FileFailure(BaseModel):
    """A file that could not be ported."""

    file: str
    error: str
    category: ErrorCategory = ErrorCategory.UNKNOWN


# ============================================================================
# Verification Models
# ============================================================================


class AnalyzerIssue(BaseModel):
    """A single diagnostic reported by an external analyzer."""

    file: str
    line: int | None = None
    column: int | None = None
    severity: str = "error"
    message: str = ""


class AnalyzerReport(BaseModel):
    """Aggregated external analyzer output."""

    error_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    issues: list[AnalyzerIssue] = Field(default_factory=list)
    issue_files: list[str] = Field(default_factory=list)
    skipped: bool = False
    valid: bool = True
    output: str = ""

    @property
    def total_issues(self) -> int:
        return self.error_count + self.warning_count + self.info_count


class QualityMetrics(BaseModel):
    """Weighted-penalty quality score of a ported project."""

    syntax_correctness: int = 0
    semantic_correctness: int = 0
    idiomatic_score: int = 0
    maintainability_index: int = 0
    overall_score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()
