"""
Session persistence for PortMorph.

Handles saving and restoring porting sessions so an interrupted run can
resume where it stopped. One session document lives in the state directory
of each target project.
"""

import logging
import time
from pathlib import Path

import orjson
from pydantic import BaseModel, Field, ValidationError

from portmorph.config.models import (
    AnalysisSummary,
    FileFailure,
    LanguageType,
    PortMorphConfig,
    SessionPhase,
    TaskUnderstanding,
)

logger = logging.getLogger(__name__)

SESSION_VERSION = 1
SESSION_FILE = "session.json"


class SessionMismatchError(Exception):
    """A stored session belongs to a different source, target or language pair."""

    pass


class Session(BaseModel):
    """
    Persisted state of one porting run.

    Owned and mutated by the orchestrator only; workers never touch it.
    """

    version: int = SESSION_VERSION
    source_path: str
    target_path: str
    source_language: LanguageType
    target_language: LanguageType
    model: str | None = None
    started_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    phase: SessionPhase = SessionPhase.ANALYSIS
    task_understanding: TaskUnderstanding | None = None
    analysis: AnalysisSummary | None = None
    total_files: int = 0
    completed_files: list[str] = Field(default_factory=list)
    failed_files: list[FileFailure] = Field(default_factory=list)

    # =========================================================================
    # State Updates
    # =========================================================================

    def set_phase(self, phase: SessionPhase):
        self.phase = phase
        self.updated_at = time.time()

    def mark_completed(self, path: str):
        """Record a ported file and clear any earlier failure for it."""
        if path not in self.completed_files:
            self.completed_files.append(path)
        self.failed_files = [f for f in self.failed_files if f.file != path]
        self.updated_at = time.time()

    def mark_failed(self, failure: FileFailure):
        self.failed_files = [f for f in self.failed_files if f.file != failure.file]
        self.failed_files.append(failure)
        self.updated_at = time.time()

    def get_progress(self) -> dict[str, float | int | str]:
        """Get porting progress statistics."""
        completed = len(self.completed_files)
        return {
            "phase": self.phase.value,
            "total_files": self.total_files,
            "completed": completed,
            "failed": len(self.failed_files),
            "percentage": (completed / self.total_files * 100) if self.total_files else 0.0,
        }

    def mismatches(self, config: PortMorphConfig) -> list[str]:
        """Fields on which this session disagrees with the current run."""
        project = config.project
        expected = {
            "source_path": str(project.source_dir.resolve()),
            "target_path": str(project.target_dir.resolve()),
            "source_language": project.source_language,
            "target_language": project.target_language,
        }
        return [name for name, value in expected.items() if getattr(self, name) != value]


class SessionStore:
    """
    Reads and writes the session document of one target project.

    Usage:
        store = SessionStore(config.project.state_dir)
        session = store.load() or store.create(config)
        session.mark_completed("src/a.ts")
        store.save(session)
    """

    def __init__(self, state_dir: Path):
        self.state_dir = state_dir
        self.path = state_dir / SESSION_FILE

    def create(self, config: PortMorphConfig) -> Session:
        project = config.project
        return Session(
            source_path=str(project.source_dir.resolve()),
            target_path=str(project.target_dir.resolve()),
            source_language=project.source_language,
            target_language=project.target_language,
            model=config.llm.model,
        )

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Session | None:
        """
        Load the stored session.

        Returns:
            The session, or None when there is none, it cannot be parsed, or
            it was written by a different session format version
        """
        if not self.path.exists():
            return None
        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session {self.path}: {e}")
            return None

        if not isinstance(data, dict) or data.get("version") != SESSION_VERSION:
            logger.warning(f"Ignoring session {self.path}: unsupported version")
            return None
        try:
            return Session.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid session {self.path}: {e.error_count()} errors")
            return None

    def load_for(self, config: PortMorphConfig) -> Session | None:
        """
        Load the stored session and check it belongs to this run.

        Raises:
            SessionMismatchError: If the session was created for another
                source, target or language pair
        """
        session = self.load()
        if session is None:
            return None
        mismatched = session.mismatches(config)
        if mismatched:
            raise SessionMismatchError(
                f"Session in {self.path} does not match this run ({', '.join(mismatched)}). "
                "Remove it or choose another target directory."
            )
        return session

    def save(self, session: Session) -> Path:
        """
        Save the session to disk.

        Returns:
            Path to the saved session file
        """
        session.updated_at = time.time()
        self.state_dir.mkdir(parents=True, exist_ok=True)
        payload = orjson.dumps(session.model_dump(mode="json"), option=orjson.OPT_INDENT_2)

        # Write then rename so an interrupted save never leaves half a document
        temp = self.path.with_suffix(".json.tmp")
        temp.write_bytes(payload)
        temp.replace(self.path)
        return self.path

    def delete(self):
        if self.path.exists():
            self.path.unlink()

    # =========================================================================
    # Checkpoints
    # =========================================================================

    def create_checkpoint(self, session: Session, name: str) -> Path:
        """
        Create a named checkpoint.

        Args:
            session: Session to snapshot
            name: Checkpoint name (e.g., "checkpoint-1")

        Returns:
            Path to the checkpoint file
        """
        checkpoint_dir = self.state_dir / "checkpoints"
        checkpoint_dir.mkdir(parents=True, exist_ok=True)
        checkpoint_file = checkpoint_dir / f"{name}.json"

        data = session.model_dump(mode="json")
        data["checkpoint_name"] = name
        checkpoint_file.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))
        return checkpoint_file

    def list_checkpoints(self) -> list[dict[str, str | float | None]]:
        """List checkpoint metadata, skipping files that cannot be parsed."""
        checkpoint_dir = self.state_dir / "checkpoints"
        if not checkpoint_dir.exists():
            return []

        checkpoints = []
        for checkpoint_file in sorted(checkpoint_dir.glob("*.json")):
            try:
                data = orjson.loads(checkpoint_file.read_bytes())
            except (OSError, orjson.JSONDecodeError):
                logger.debug(f"Skipping unreadable checkpoint {checkpoint_file}")
                continue
            checkpoints.append(
                {
                    "file": str(checkpoint_file),
                    "name": data.get("checkpoint_name", "unknown"),
                    "phase": data.get("phase"),
                    "timestamp": data.get("updated_at"),
                }
            )
        return checkpoints
