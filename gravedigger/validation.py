"""Post-copy validation for gravedigger.

This module provides the FileValidator class, which compares a generation
directory against the shadow copy it was copied from, and optional SHA-256
fingerprints for stronger comparison.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

from gravedigger.copier import list_matching_files
from gravedigger.formatting import format_bytes


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileFingerprint:
    """Size, modification time and SHA-256 digest of a file."""
    path: Path
    size: int
    mtime: float
    sha256: str


@dataclass
class ValidationResult:
    """Result of comparing source and destination directories."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    files_validated: int = 0
    total_bytes: int = 0

    def add_error(self, message: str) -> None:
        self.is_valid = False
        self.errors.append(message)


def _collect_files(directory: Path, patterns: Iterable[str]) -> Dict[str, List[Path]]:
    """Map each pattern to its matching files; a missing directory matches nothing."""
    if not directory.is_dir():
        return {pattern: [] for pattern in patterns}
    return {pattern: list_matching_files(directory, pattern) for pattern in patterns}


def _unique_files(by_pattern: Dict[str, List[Path]]) -> List[Path]:
    seen = {}
    for files in by_pattern.values():
        for path in files:
            seen.setdefault(path, None)
    return list(seen)


class FileValidator:
    """
    Validates replicated files against their source.

    validate_replication() checks presence and byte size. Content
    comparison through SHA-256 is available separately via
    verify_checksums() because it reads every byte of both copies.
    """

    CHUNK_SIZE = 1024 * 1024

    def validate_replication(
        self,
        source_dir: Path,
        dest_dir: Path,
        patterns: Iterable[str],
    ) -> ValidationResult:
        """
        Check that every source file exists in the destination with the same size.

        Missing files and size mismatches are errors and make the result
        invalid. Count mismatches and patterns with no source files are
        warnings only. This method never raises.

        Args:
            source_dir: Directory the files were copied from
            dest_dir: Generation directory they were copied to
            patterns: Glob patterns that were copied

        Returns:
            ValidationResult
        """
        result = ValidationResult()
        patterns = list(patterns)
        source_dir = Path(source_dir)
        dest_dir = Path(dest_dir)

        logger.info("Starting replication validation...")

        try:
            if not dest_dir.is_dir():
                result.add_error(f"Destination directory does not exist: {dest_dir}")
                logger.error(result.errors[-1])
                return result

            if not source_dir.is_dir():
                logger.warning(f"Directory does not exist: {source_dir}")

            source_by_pattern = _collect_files(source_dir, patterns)
            for pattern, files in source_by_pattern.items():
                if not files:
                    result.warnings.append(
                        f"No files matching {pattern} found in source directory: {source_dir}"
                    )

            source_files = _unique_files(source_by_pattern)
            dest_files = _unique_files(_collect_files(dest_dir, patterns))

            if len(source_files) != len(dest_files):
                result.warnings.append(
                    f"File count mismatch: Source={len(source_files)}, "
                    f"Destination={len(dest_files)}"
                )

            for source_file in source_files:
                dest_file = dest_dir / source_file.name

                if not dest_file.is_file():
                    result.add_error(f"Missing file in destination: {source_file.name}")
                    continue

                source_size = source_file.stat().st_size
                dest_size = dest_file.stat().st_size
                if source_size != dest_size:
                    result.add_error(
                        f"File size mismatch for {source_file.name}: "
                        f"source={source_size}, destination={dest_size}"
                    )
                else:
                    result.files_validated += 1
                    result.total_bytes += dest_size

        except Exception as e:
            result.add_error(f"Validation exception: {e}")
            logger.exception("Validation failed with exception")

        self._log_result(result)
        return result

    def verify_checksums(
        self,
        source_dir: Path,
        dest_dir: Path,
        patterns: Iterable[str],
    ) -> ValidationResult:
        """
        Compare SHA-256 digests of every source file and its destination copy.

        Files missing from the destination are reported as errors, the same
        as in validate_replication(). This method never raises.
        """
        result = ValidationResult()
        source_dir = Path(source_dir)
        dest_dir = Path(dest_dir)

        logger.info("Starting checksum verification...")

        try:
            source_files = _unique_files(_collect_files(source_dir, list(patterns)))
            for source_file in source_files:
                dest_file = dest_dir / source_file.name
                if not dest_file.is_file():
                    result.add_error(f"Missing file in destination: {source_file.name}")
                    continue

                source_print = self.fingerprint(source_file)
                dest_print = self.fingerprint(dest_file)
                if source_print.sha256 != dest_print.sha256:
                    result.add_error(f"Checksum mismatch for {source_file.name}")
                else:
                    result.files_validated += 1
                    result.total_bytes += dest_print.size
        except Exception as e:
            result.add_error(f"Checksum verification exception: {e}")
            logger.exception("Checksum verification failed with exception")

        self._log_result(result)
        return result

    def fingerprint(self, file_path: Path) -> FileFingerprint:
        """
        Calculate size, mtime and SHA-256 digest of a file.

        Raises:
            OSError: If the file cannot be read
        """
        file_path = Path(file_path)
        stat = file_path.stat()
        sha256_hash = hashlib.sha256()

        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(self.CHUNK_SIZE), b""):
                sha256_hash.update(chunk)

        return FileFingerprint(
            path=file_path,
            size=stat.st_size,
            mtime=stat.st_mtime,
            sha256=sha256_hash.hexdigest(),
        )

    def _log_result(self, result: ValidationResult) -> None:
        logger.info(
            f"Validation complete: {result.files_validated} files validated, "
            f"{format_bytes(result.total_bytes)} total"
        )

        if result.errors:
            logger.error(f"Validation failed with {len(result.errors)} error(s)")
            for error in result.errors:
                logger.error(f"  - {error}")

        for warning in result.warnings:
            logger.warning(f"  - {warning}")
