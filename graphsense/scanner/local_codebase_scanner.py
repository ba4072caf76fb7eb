import os
from pathlib import Path
from typing import List, Optional, Iterator

import pathspec

from ..config import settings
from ..utils.logger import app_logger


def load_gitignore_spec(root_path: Path) -> Optional[pathspec.PathSpec]:
    """Load the root .gitignore as a PathSpec, or None when there is none."""
    gitignore_path = Path(root_path) / ".gitignore"
    if not gitignore_path.is_file():
        return None

    try:
        with open(gitignore_path, 'r', encoding='utf-8', errors='ignore') as f:
            lines = [
                line.rstrip("\n") for line in f
                if line.strip() and not line.lstrip().startswith('#')
            ]
    except OSError as e:
        app_logger.bind(component="scanner").warning(f"Could not read {gitignore_path}: {e}")
        return None

    return pathspec.PathSpec.from_lines('gitwildmatch', lines)


class LocalCodebaseScanner:
    """Scanner that enumerates indexable source files under a root."""

    def __init__(self, root_path: Optional[str] = None, extensions: Optional[List[str]] = None):
        if root_path is None:
            self.root_path = Path.cwd().resolve()
        else:
            self.root_path = Path(root_path).resolve()

        self.supported_extensions = set(extensions or settings.source_extensions_list)
        self.ignored_dirs = {
            '.git', 'node_modules', 'build', 'dist', 'logs', 'coverage',
            '.next', '.turbo', '.cache', '.idea', '.vscode'
        }
        self.gitignore = load_gitignore_spec(self.root_path)
        self.logger = app_logger.bind(component="scanner")

    def scan_directory(self) -> List[str]:
        """Scan directory and return absolute paths of source files."""
        self.logger.info(f"Scanning directory: {self.root_path}")

        all_files = list(self._walk_directory())

        self.logger.info(f"Found {len(all_files)} files to process")
        return all_files

    def _walk_directory(self) -> Iterator[str]:
        """Walk through directory and yield source file paths."""
        for root, dirs, files in os.walk(self.root_path):
            root_path = Path(root)
            rel_root = root_path.relative_to(self.root_path)

            # Remove ignored directories
            dirs[:] = sorted(
                d for d in dirs
                if d not in self.ignored_dirs
                and not self.is_gitignored((rel_root / d).as_posix() + '/')
            )

            for file_name in sorted(files):
                file_path = root_path / file_name
                if self._should_include_file(file_path):
                    yield str(file_path.resolve())

    def is_gitignored(self, relative_path: str) -> bool:
        """Check a root-relative posix path against the root .gitignore."""
        if self.gitignore is None:
            return False
        return self.gitignore.match_file(relative_path)

    def _should_include_file(self, file_path: Path) -> bool:
        """Check if file should be included in scan."""
        if file_path.suffix.lower() not in self.supported_extensions:
            return False

        if self.is_gitignored(file_path.relative_to(self.root_path).as_posix()):
            return False

        try:
            if file_path.stat().st_size > settings.max_file_size:
                self.logger.warning(f"Skipping large file: {file_path}")
                return False
        except OSError:
            return False

        return True

