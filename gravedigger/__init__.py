"""gravedigger - DBISAM database replication from Volume Shadow Copy snapshots."""

__version__ = "1.0.0"

from gravedigger.config import (
    ReplicationConfig,
    SourceConfig,
    DestinationConfig,
    RetryConfig,
    LoggingConfig,
    MonitoringConfig,
    ValidationConfig,
    ConfigurationError,
    ValidationError,
    parse_config,
    parse_config_string,
    validate_config,
    create_default_config,
)
from gravedigger.shadow import (
    InvalidPathError,
    SnapshotRecord,
    SnapshotSource,
    VssSnapshotSource,
    parse_vssadmin_output,
    select_latest_snapshot,
    snapshot_age,
    translate_path,
)
from gravedigger.retry import (
    RetryPolicy,
    RetryResult,
    retry_call,
)
from gravedigger.copier import CopyResult, FileCopier
from gravedigger.validation import FileFingerprint, FileValidator, ValidationResult
from gravedigger.retention import (
    GenerationDirectory,
    RetentionManager,
    RetentionResult,
)
from gravedigger.engine import ReplicationEngine, ReplicationResult
from gravedigger.formatting import format_bytes
from gravedigger.logger import (
    LoggingError,
    setup_logging,
    get_logger,
    get_session_log_path,
    cleanup_old_logs,
)

__all__ = [
    "ReplicationConfig",
    "SourceConfig",
    "DestinationConfig",
    "RetryConfig",
    "LoggingConfig",
    "MonitoringConfig",
    "ValidationConfig",
    "ConfigurationError",
    "ValidationError",
    "parse_config",
    "parse_config_string",
    "validate_config",
    "create_default_config",
    "InvalidPathError",
    "SnapshotRecord",
    "SnapshotSource",
    "VssSnapshotSource",
    "parse_vssadmin_output",
    "select_latest_snapshot",
    "snapshot_age",
    "translate_path",
    "RetryPolicy",
    "RetryResult",
    "retry_call",
    "CopyResult",
    "FileCopier",
    "FileFingerprint",
    "FileValidator",
    "ValidationResult",
    "GenerationDirectory",
    "RetentionManager",
    "RetentionResult",
    "ReplicationEngine",
    "ReplicationResult",
    "format_bytes",
    "LoggingError",
    "setup_logging",
    "get_logger",
    "get_session_log_path",
    "cleanup_old_logs",
]
