"""
Project analysis: discover source files and summarise the project.

Builds the ``SourceUnit`` set that every later phase works from, plus an
``AnalysisSummary`` (entry points, declared dependencies, coarse structure)
that is persisted in the session and shown to the oracle.
"""

import json
import logging
import posixpath
import re
from collections import Counter
from pathlib import Path

from portmorph.config.models import (
    AnalysisSummary,
    FileInfo,
    FileKind,
    LanguageType,
    ProjectStructure,
    SourceUnit,
)
from portmorph.languages.registry import get_plugin, language_for_extension
from portmorph.utils.filesystem import FileSystem

logger = logging.getLogger(__name__)

TEST_SEGMENT = re.compile(r"(^|[/._-])(test|tests|spec|specs|__tests__)([/._-]|$)")

DEPENDENCY_MANIFESTS = {
    LanguageType.PYTHON: "requirements.txt",
    LanguageType.JAVASCRIPT: "package.json",
    LanguageType.TYPESCRIPT: "package.json",
}


class AnalysisError(Exception):
    """Raised when the source tree cannot be analyzed."""

    pass


def classify_file(path: str, is_index: bool = False) -> FileKind:
    """Classify a source path by naming conventions."""
    lower = path.lower()
    if is_index:
        return FileKind.BARREL
    if TEST_SEGMENT.search(lower):
        return FileKind.TEST
    if "config" in lower:
        return FileKind.CONFIG
    if "util" in lower or "helper" in lower:
        return FileKind.UTILITY
    if any(token in lower for token in ("model", "schema", "entity")):
        return FileKind.MODEL
    if "service" in lower or re.search(r"(^|/)api([/._-]|$)", lower):
        return FileKind.SERVICE
    return FileKind.SOURCE


def parse_dependencies(content: str, language: LanguageType) -> list[str]:
    """Extract dependency names from a requirements.txt or package.json."""
    if language == LanguageType.PYTHON:
        names = []
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith(("#", "-")):
                continue
            names.append(re.split(r"[=<>~!\[;\s]", line, maxsplit=1)[0])
        return names

    try:
        manifest = json.loads(content)
    except json.JSONDecodeError:
        logger.warning("package.json is not valid JSON; skipping dependency list")
        return []
    return list(manifest.get("dependencies", {}).keys()) + list(manifest.get("devDependencies", {}).keys())


class ProjectAnalyzer:
    """Discovers and reads the files of a source project."""

    def __init__(
        self,
        source_dir: Path,
        language: LanguageType | None = None,
        exclude_patterns: list[str] | None = None,
        fs: FileSystem | None = None,
    ):
        self.source_dir = Path(source_dir)
        self.language = language
        self.exclude_patterns = exclude_patterns or []
        self.fs = fs or FileSystem()

    def analyze(self) -> tuple[AnalysisSummary, list[SourceUnit]]:
        """
        Run the full analysis.

        Returns:
            Tuple of (summary, source units)

        Raises:
            AnalysisError: If the source directory is missing, unreadable or
                holds no files of the source language
        """
        if not self.fs.is_dir(self.source_dir):
            raise AnalysisError(f"Source directory not found: {self.source_dir}")

        try:
            all_files = self.fs.list_files_recursive(self.source_dir, self.exclude_patterns)
        except OSError as e:
            raise AnalysisError(f"Cannot read source tree {self.source_dir}: {e}")

        language = self.language or self.detect_language(all_files)
        if language is None:
            raise AnalysisError(f"Could not detect a supported language in {self.source_dir}")

        units = self.collect_units(all_files, language)
        if not units:
            raise AnalysisError(f"No {language.value} source files found in {self.source_dir}")

        summary = AnalysisSummary(
            files=[FileInfo(path=u.path, kind=u.kind, size=len(u.content)) for u in units],
            entry_points=self.find_entry_points(units, language),
            dependencies=self.extract_dependencies(language),
            structure=self.analyze_structure(all_files),
            language=language,
        )
        logger.info(f"Analyzed {len(units)} {language.value} files in {self.source_dir}")
        return summary, units

    def detect_language(self, files: list[Path]) -> LanguageType | None:
        """Pick the registered source dialect with the most files."""
        counts = Counter(path.suffix.lower() for path in files if path.suffix)
        totals: Counter = Counter()
        for extension, count in counts.items():
            language = language_for_extension(extension)
            if language is not None and language != LanguageType.DART:
                totals[language] += count
        if not totals:
            return None
        return totals.most_common(1)[0][0]

    def collect_units(self, files: list[Path], language: LanguageType) -> list[SourceUnit]:
        plugin = get_plugin(language)
        extensions = set(plugin.file_extensions)
        units = []
        for path in files:
            if path.suffix not in extensions:
                continue
            relative = path.relative_to(self.source_dir).as_posix()
            try:
                content = self.fs.read_file(path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable file {relative}: {e}")
                continue
            units.append(
                SourceUnit(
                    path=relative,
                    absolute_path=path,
                    content=content,
                    kind=classify_file(relative, plugin.is_index_file(relative)),
                    exports=plugin.extract_exports(content),
                )
            )
        return sorted(units, key=lambda u: u.path)

    def find_entry_points(self, units: list[SourceUnit], language: LanguageType) -> list[str]:
        names = get_plugin(language).entry_point_names
        return [
            u.path
            for u in units
            if any(u.path == name or u.path.endswith("/" + name) for name in names)
        ]

    def extract_dependencies(self, language: LanguageType) -> list[str]:
        manifest = DEPENDENCY_MANIFESTS.get(language)
        if manifest is None:
            return []
        path = self.source_dir / manifest
        if not self.fs.is_file(path):
            return []
        return parse_dependencies(self.fs.read_file(path), language)

    def analyze_structure(self, files: list[Path]) -> ProjectStructure:
        relative = [path.relative_to(self.source_dir).as_posix() for path in files]
        directories = sorted({posixpath.dirname(p) for p in relative} - {""})
        return ProjectStructure(
            has_tests=any(TEST_SEGMENT.search(p.lower()) for p in relative),
            has_config=any("config" in p.lower() or ".env" in p for p in relative),
            has_docs=any(p.endswith(".md") or p.startswith("docs/") or "/docs/" in p for p in relative),
            directories=directories,
        )
