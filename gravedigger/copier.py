"""File copying for gravedigger.

FileCopier copies the files matching a set of glob patterns from a shadow
copy directory into a generation directory, retrying transient failures
according to a RetryPolicy.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set, Tuple
import logging
import shutil
import time

from gravedigger.formatting import format_bytes
from gravedigger.retry import RetryPolicy, retry_call


logger = logging.getLogger(__name__)


@dataclass
class CopyResult:
    """Outcome of copying one batch of files."""
    files_copied: int = 0
    bytes_copied: int = 0
    copied_files: List[Path] = field(default_factory=list)
    failed_files: List[Tuple[str, str]] = field(default_factory=list)  # (name, error)
    warnings: List[str] = field(default_factory=list)


def list_matching_files(directory: Path, pattern: str) -> List[Path]:
    """Return regular files directly inside `directory` matching `pattern`, sorted by name."""
    return sorted(p for p in directory.glob(pattern) if p.is_file())


class FileCopier:
    """
    Copies files matching glob patterns, one at a time, with retries.

    A file that still fails after all retries is recorded in
    CopyResult.failed_files and the rest of the batch is still copied.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def _copy_file(self, source_file: Path, dest_file: Path) -> Path:
        return Path(shutil.copy2(source_file, dest_file))

    def copy_files(
        self,
        source_dir: Path,
        dest_dir: Path,
        patterns: Iterable[str],
    ) -> CopyResult:
        """
        Copy every file in `source_dir` matching `patterns` into `dest_dir`.

        Existing files of the same name are overwritten. A missing source
        directory skips the pattern with a warning. A file matched by more
        than one pattern is copied once.

        Args:
            source_dir: Directory to copy from (usually inside a shadow copy)
            dest_dir: Directory to copy into; created if missing
            patterns: Glob patterns such as "*.dat"

        Returns:
            CopyResult with running totals across all patterns
        """
        result = CopyResult()
        source_dir = Path(source_dir)
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)

        seen: Set[Path] = set()

        for pattern in patterns:
            logger.info(f"Copying files with extension: {pattern}")

            if not source_dir.is_dir():
                warning = f"Source directory does not exist: {source_dir}"
                logger.warning(warning)
                result.warnings.append(warning)
                continue

            try:
                files = list_matching_files(source_dir, pattern)
            except OSError as e:
                warning = f"Error listing {pattern} files in {source_dir}: {e}"
                logger.error(warning)
                result.warnings.append(warning)
                continue

            logger.info(f"Found {len(files)} file(s) matching {pattern}")

            for source_file in files:
                if source_file in seen:
                    continue
                seen.add(source_file)

                dest_file = dest_dir / source_file.name
                retry_result, copied = retry_call(
                    lambda: self._copy_file(source_file, dest_file),
                    self.policy,
                    sleep=self.sleep,
                    description=f"copy {source_file.name}",
                )

                if not retry_result.success:
                    error = retry_result.final_error_message or "unknown error"
                    result.failed_files.append((source_file.name, error))
                    result.warnings.append(
                        f"Failed to copy {source_file.name} after "
                        f"{retry_result.total_attempts} attempt(s): {error}"
                    )
                    continue

                size = copied.stat().st_size
                result.files_copied += 1
                result.bytes_copied += size
                result.copied_files.append(copied)
                logger.info(f"  Copied: {source_file.name} ({format_bytes(size)})")

        return result
