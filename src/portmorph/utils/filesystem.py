"""
Filesystem collaborator.

All reads and writes of project files go through this class so tests can
point the pipeline at temporary directories or substitute a fake.
"""

import fnmatch
import shutil
from pathlib import Path


class FileSystem:
    """Thin wrapper around pathlib for project I/O."""

    def read_file(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_file(self, path: Path, content: str) -> None:
        """Write ``content`` to ``path``, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def is_file(self, path: Path) -> bool:
        return Path(path).is_file()

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir()

    def remove_directory(self, path: Path) -> None:
        shutil.rmtree(path, ignore_errors=True)

    def list_files_recursive(self, root: Path, exclude_patterns: list[str] | None = None) -> list[Path]:
        """
        List files under ``root`` in sorted order.

        Args:
            root: Directory to walk
            exclude_patterns: fnmatch patterns matched against every path
                component (directories are pruned, files skipped)

        Returns:
            Absolute file paths
        """
        root = Path(root)
        patterns = exclude_patterns or []
        results: list[Path] = []

        def excluded(name: str) -> bool:
            return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)

        def walk(directory: Path) -> None:
            for entry in sorted(directory.iterdir()):
                if excluded(entry.name):
                    continue
                if entry.is_dir():
                    walk(entry)
                elif entry.is_file():
                    results.append(entry)

        walk(root)
        return results
