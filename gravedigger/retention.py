"""Retention manager for gravedigger.

This module provides the RetentionManager class that keeps the N most
recent generation directories under the destination root and deletes the
rest.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List
import logging
import os
import shutil


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationDirectory:
    """A generation directory and when it was created."""
    path: Path
    created_at: datetime

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class RetentionResult:
    """Result of applying the retention policy."""
    kept: List[GenerationDirectory] = field(default_factory=list)
    deleted: List[GenerationDirectory] = field(default_factory=list)
    freed_bytes: int = 0
    warnings: List[str] = field(default_factory=list)


def directory_creation_time(path: Path) -> datetime:
    """
    Return when a directory was created.

    Uses the birth time where the platform reports one (Windows, macOS,
    BSD) and falls back to st_ctime elsewhere.
    """
    stat = path.stat()
    timestamp = getattr(stat, "st_birthtime", None)
    if timestamp is None:
        timestamp = stat.st_ctime
    return datetime.fromtimestamp(timestamp)


class RetentionManager:
    """
    Keeps the most recent generations and deletes older ones.

    Generations are ordered by directory creation time, newest first, with
    the directory name breaking ties. Names are never parsed: any immediate
    subdirectory of the destination counts as a generation.
    """

    def __init__(self, destination: Path, retain: int):
        """
        Initialize the retention manager.

        Args:
            destination: Destination root holding generation directories
            retain: Number of most recent generations to keep (at least 1)
        """
        if retain < 1:
            raise ValueError(f"retain must be at least 1, got {retain}")
        self.destination = Path(destination)
        self.retain = retain

    def _creation_time(self, path: Path) -> datetime:
        return directory_creation_time(path)

    def list_generations(self) -> List[GenerationDirectory]:
        """
        List generation directories, newest first.

        Returns:
            Empty list if the destination root does not exist
        """
        if not self.destination.is_dir():
            return []

        generations = [
            GenerationDirectory(path=entry, created_at=self._creation_time(entry))
            for entry in self.destination.iterdir()
            if entry.is_dir()
        ]
        generations.sort(key=lambda g: (g.created_at, g.name), reverse=True)
        return generations

    def apply_retention(self) -> RetentionResult:
        """
        Delete every generation beyond the newest `retain`.

        A generation that cannot be deleted is reported as a warning and
        kept; the remaining deletions are still attempted.

        Returns:
            RetentionResult with kept and deleted generations
        """
        logger.info(f"Cleaning up old generations (keeping {self.retain})...")

        generations = self.list_generations()
        result = RetentionResult()

        if len(generations) <= self.retain:
            result.kept = generations
            logger.info(
                f"Only {len(generations)} generation(s) exist, no cleanup needed"
            )
            return result

        result.kept = generations[:self.retain]

        for generation in generations[self.retain:]:
            size = self._get_directory_size(generation.path)
            logger.info(f"Deleting old generation: {generation.name}")
            try:
                shutil.rmtree(generation.path)
            except OSError as e:
                warning = f"Error deleting generation {generation.name}: {e}"
                logger.warning(warning)
                result.warnings.append(warning)
                result.kept.append(generation)
                continue
            result.deleted.append(generation)
            result.freed_bytes += size

        logger.info(f"Deleted {len(result.deleted)} old generation(s)")
        return result

    def _get_directory_size(self, path: Path) -> int:
        """
        Calculate total size of a directory in bytes.

        Symlinks are not followed; unreadable entries count as zero.
        """
        total_size = 0
        for root, _dirs, files in os.walk(path):
            for f in files:
                try:
                    total_size += os.lstat(os.path.join(root, f)).st_size
                except OSError:
                    pass
        return total_size
