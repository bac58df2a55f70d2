"""Replication orchestration for gravedigger.

ReplicationEngine runs one replication from start to finish:

1. Verify the shadow copy service is running
2. Select the newest shadow copy of the source volume
3. Translate the database path into the shadow copy
4. Create a timestamped generation directory
5. Copy the configured file types, with retries
6. Validate the copy against the shadow copy
7. Delete generations beyond the retention count

Every outcome, including unexpected exceptions, is returned as a
ReplicationResult; execute() never raises. Each stage produces its own
result value and the engine folds them into a new ReplicationResult.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Tuple
import logging
import time

from gravedigger.config import ReplicationConfig
from gravedigger.copier import CopyResult, FileCopier
from gravedigger.formatting import format_bytes, format_duration
from gravedigger.retention import RetentionManager
from gravedigger.retry import RetryPolicy
from gravedigger.shadow import SnapshotRecord, SnapshotSource, snapshot_age, translate_path
from gravedigger.validation import FileValidator, ValidationResult


logger = logging.getLogger(__name__)

# Generation directory name format
GENERATION_FORMAT = "%Y%m%d_%H%M%S"

MAX_GENERATION_SEQUENCE = 99

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


@dataclass(frozen=True)
class ReplicationResult:
    """Outcome of one replication run."""
    success: bool = False
    files_copied: int = 0
    bytes_copied: int = 0
    duration_seconds: float = 0.0
    error_message: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    generation_path: Optional[Path] = None
    snapshot: Optional[SnapshotRecord] = None

    @property
    def exit_code(self) -> int:
        return EXIT_SUCCESS if self.success else EXIT_FAILURE

    def with_warnings(self, *warnings: str) -> "ReplicationResult":
        return replace(self, warnings=self.warnings + tuple(warnings))

    def failed(self, message: str) -> "ReplicationResult":
        return replace(self, success=False, error_message=message)

    @property
    def summary(self) -> str:
        if self.success:
            return (
                f"Successfully replicated {self.files_copied} files "
                f"({format_bytes(self.bytes_copied)}) in "
                f"{format_duration(self.duration_seconds)}"
            )
        return f"Replication failed: {self.error_message}"


class ReplicationEngine:
    """
    Orchestrates shadow copy replication for one configuration.

    The snapshot source, copier, validator and clock are injectable so runs
    can be exercised without Windows.
    """

    def __init__(
        self,
        config: ReplicationConfig,
        snapshot_source: SnapshotSource,
        copier: Optional[FileCopier] = None,
        validator: Optional[FileValidator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.snapshot_source = snapshot_source
        self.copier = copier or FileCopier(RetryPolicy.from_config(config.retry))
        self.validator = validator or FileValidator()
        self.clock = clock

    def execute(self) -> ReplicationResult:
        """
        Run one replication.

        Returns:
            ReplicationResult; success is False with error_message set on
            any fatal condition
        """
        start_time = time.time()
        result = ReplicationResult()

        try:
            result = self._run(result)
        except Exception as e:
            logger.critical("Replication failed with exception", exc_info=True)
            result = result.failed(str(e) or type(e).__name__)

        return replace(result, duration_seconds=time.time() - start_time)

    def _run(self, result: ReplicationResult) -> ReplicationResult:
        source = self.config.source
        destination = self.config.destination

        logger.info("=== Starting Replication Process ===")
        logger.info(f"Source: {source.database_path}")
        logger.info(f"Destination: {destination.path}")

        if not self._verify_service():
            return result.failed("VSS service is not running")

        snapshot = self.snapshot_source.get_latest_snapshot(source.volume)
        if snapshot is None:
            message = f"No shadow copy found for volume {source.volume}"
            logger.error(message)
            return result.failed(message)
        result = replace(result, snapshot=snapshot)

        age_warning = self._check_snapshot_age(snapshot)
        if age_warning:
            result = result.with_warnings(age_warning)

        shadow_db_path = Path(translate_path(snapshot.device_path, source.database_path))

        generation_path = self._create_generation_directory()
        result = replace(result, generation_path=generation_path)

        copy_result = self.copier.copy_files(shadow_db_path, generation_path, source.extensions)
        result = self._merge_copy(result, copy_result)

        if result.files_copied == 0:
            logger.error("No files were copied")
            self._remove_if_empty(generation_path)
            return result.failed("No files were copied")

        validation = self._validate(shadow_db_path, generation_path)
        if not validation.is_valid:
            logger.error("Replication validation failed")
            return result.with_warnings(*validation.errors).failed(
                "Replication validation failed"
            )
        result = result.with_warnings(*validation.warnings)

        result = result.with_warnings(*self._apply_retention())

        result = replace(result, success=True)
        logger.info("=== Replication Completed Successfully ===")
        logger.info(f"Files Replicated: {result.files_copied}")
        logger.info(f"Bytes Replicated: {format_bytes(result.bytes_copied)}")
        return result

    def _verify_service(self) -> bool:
        logger.info("Checking VSS service status...")
        if not self.snapshot_source.is_service_running():
            logger.error("VSS service is not running. Please start the service and try again.")
            logger.error("To start VSS service, run: net start VSS")
            return False
        logger.info("VSS service is running")
        return True

    def _check_snapshot_age(self, snapshot: SnapshotRecord) -> Optional[str]:
        max_hours = self.config.monitoring.max_snapshot_age_hours
        age_hours = snapshot_age(snapshot, self.clock()).total_seconds() / 3600
        if age_hours <= max_hours:
            return None
        warning = f"Shadow copy is {age_hours:.1f} hours old (max allowed: {max_hours:g})"
        logger.warning(warning)
        return warning

    def _create_generation_directory(self) -> Path:
        """
        Create destination/<YYYYMMDD_HHMMSS>.

        If a generation with that name already exists a _NN suffix is
        appended, so every run gets its own directory.
        """
        root = Path(self.config.destination.path)
        timestamp = self.clock().strftime(GENERATION_FORMAT)
        candidates = [timestamp] + [
            f"{timestamp}_{seq:02d}" for seq in range(1, MAX_GENERATION_SEQUENCE + 1)
        ]

        for name in candidates:
            generation_path = root / name
            try:
                generation_path.mkdir(parents=True, exist_ok=False)
            except FileExistsError:
                logger.debug(f"Generation {name} already exists, trying next sequence number")
                continue
            logger.info(f"Creating destination directory: {generation_path}")
            return generation_path

        raise FileExistsError(
            f"All generation names for {timestamp} are in use under {root}"
        )

    def _merge_copy(self, result: ReplicationResult, copy_result: CopyResult) -> ReplicationResult:
        return replace(
            result,
            files_copied=copy_result.files_copied,
            bytes_copied=copy_result.bytes_copied,
        ).with_warnings(*copy_result.warnings)

    def _remove_if_empty(self, generation_path: Path) -> None:
        try:
            generation_path.rmdir()
            logger.info(f"Removed empty generation directory: {generation_path}")
        except OSError as e:
            logger.warning(f"Could not remove generation directory {generation_path}: {e}")

    def _validate(self, shadow_db_path: Path, generation_path: Path) -> ValidationResult:
        extensions = self.config.source.extensions
        validation = self.validator.validate_replication(shadow_db_path, generation_path, extensions)
        if validation.is_valid and self.config.validation.verify_checksums:
            checksums = self.validator.verify_checksums(shadow_db_path, generation_path, extensions)
            checksums.warnings[:0] = validation.warnings
            return checksums
        return validation

    def _apply_retention(self) -> Tuple[str, ...]:
        """Run retention; never fails the run, problems come back as warnings."""
        manager = RetentionManager(
            self.config.destination.path,
            self.config.destination.retain_generations,
        )
        try:
            return tuple(manager.apply_retention().warnings)
        except Exception as e:
            warning = f"Error during generation cleanup: {e}"
            logger.warning(warning)
            return (warning,)
