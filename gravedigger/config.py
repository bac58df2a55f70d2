"""Configuration management for gravedigger.

This module provides dataclasses for configuration and functions for
parsing and validating TOML configuration files.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import tomllib


class ConfigurationError(Exception):
    """Raised when configuration file is missing or malformed."""
    pass


class ValidationError(Exception):
    """Raised when configuration values have invalid types or values."""
    pass


# DBISAM table, index, blob and backup files
DEFAULT_EXTENSIONS: List[str] = ["*.dat", "*.idx", "*.blb", "*.bak"]

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Older configs spell INFO as "Information"
LOG_LEVEL_ALIASES = {"INFORMATION": "INFO"}


def normalize_log_level(level: str) -> str:
    """Return the canonical upper-case name for a configured log level."""
    level = level.upper()
    return LOG_LEVEL_ALIASES.get(level, level)


@dataclass
class SourceConfig:
    """Live volume and database directory to replicate from."""
    volume: str
    database_path: str
    extensions: List[str] = field(default_factory=lambda: DEFAULT_EXTENSIONS.copy())


@dataclass
class DestinationConfig:
    """Where generations are written and how many are kept."""
    path: Path
    retain_generations: int = 3


@dataclass
class RetryConfig:
    """Configuration for retrying transient copy failures."""
    enabled: bool = True
    attempts: int = 3
    delay_seconds: float = 300.0  # 5 minutes


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    log_dir: Path
    level: str = "INFO"
    retention_days: int = 30
    log_max_size_mb: int = 10  # errors.log rotation size
    log_backup_count: int = 5

    @property
    def log_max_bytes(self) -> int:
        """Return max size in bytes for use with RotatingFileHandler."""
        return self.log_max_size_mb * 1024 * 1024


@dataclass
class MonitoringConfig:
    """Thresholds that produce warnings rather than failures."""
    max_snapshot_age_hours: float = 2.0


@dataclass
class ValidationConfig:
    """Optional post-copy checks beyond size comparison."""
    verify_checksums: bool = False


@dataclass
class ReplicationConfig:
    """Main configuration for gravedigger."""
    source: SourceConfig
    destination: DestinationConfig
    logging: LoggingConfig
    retry: RetryConfig = field(default_factory=RetryConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)


# Default config file path
DEFAULT_CONFIG_PATH = Path("gravedigger.toml")

# Required keys per section
REQUIRED_KEYS = {
    "source": ["volume", "database_path"],
    "destination": ["path"],
    "logging": ["log_dir"],
}


def _validate_type(value: Any, expected_type: type, key: str) -> None:
    """Validate that a value has the expected type."""
    # bool is an int subclass; never accept it where a number is expected
    if isinstance(value, bool) and expected_type is not bool:
        raise ValidationError(
            f"Key '{key}' has invalid type: expected {expected_type.__name__}, "
            f"got bool"
        )
    if not isinstance(value, expected_type):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected {expected_type.__name__}, "
            f"got {type(value).__name__}"
        )


def _validate_number(value: Any, key: str) -> float:
    """Validate an int-or-float value and return it as a float."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            f"Key '{key}' has invalid type: expected int or float, "
            f"got {type(value).__name__}"
        )
    return float(value)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name, {})
    _validate_type(section, dict, name)
    return section


def _parse_source_config(data: Dict[str, Any]) -> SourceConfig:
    """Parse source configuration from dict."""
    source_data = _section(data, "source")

    volume = source_data["volume"]
    _validate_type(volume, str, "source.volume")

    database_path = source_data["database_path"]
    _validate_type(database_path, str, "source.database_path")

    extensions = source_data.get("extensions", DEFAULT_EXTENSIONS.copy())
    _validate_type(extensions, list, "source.extensions")
    for i, ext in enumerate(extensions):
        _validate_type(ext, str, f"source.extensions[{i}]")

    return SourceConfig(
        volume=volume,
        database_path=database_path,
        extensions=[e.strip() for e in extensions],
    )


def _parse_destination_config(data: Dict[str, Any]) -> DestinationConfig:
    """Parse destination configuration from dict."""
    destination_data = _section(data, "destination")

    path = destination_data["path"]
    _validate_type(path, str, "destination.path")

    retain = destination_data.get("retain_generations", 3)
    _validate_type(retain, int, "destination.retain_generations")

    return DestinationConfig(path=Path(path), retain_generations=retain)


def _parse_retry_config(data: Dict[str, Any]) -> RetryConfig:
    """Parse retry configuration from dict."""
    retry_data = _section(data, "retry")

    enabled = retry_data.get("enabled", True)
    _validate_type(enabled, bool, "retry.enabled")

    attempts = retry_data.get("attempts", 3)
    _validate_type(attempts, int, "retry.attempts")

    delay_seconds = _validate_number(
        retry_data.get("delay_seconds", 300.0), "retry.delay_seconds"
    )

    return RetryConfig(enabled=enabled, attempts=attempts, delay_seconds=delay_seconds)


def _parse_logging_config(data: Dict[str, Any]) -> LoggingConfig:
    """Parse logging configuration from dict."""
    logging_data = _section(data, "logging")

    log_dir = logging_data["log_dir"]
    _validate_type(log_dir, str, "logging.log_dir")

    level = logging_data.get("level", "INFO")
    _validate_type(level, str, "logging.level")

    retention_days = logging_data.get("retention_days", 30)
    _validate_type(retention_days, int, "logging.retention_days")

    log_max_size_mb = logging_data.get("log_max_size_mb", 10)
    _validate_type(log_max_size_mb, int, "logging.log_max_size_mb")

    log_backup_count = logging_data.get("log_backup_count", 5)
    _validate_type(log_backup_count, int, "logging.log_backup_count")

    return LoggingConfig(
        log_dir=Path(log_dir),
        level=level,
        retention_days=retention_days,
        log_max_size_mb=log_max_size_mb,
        log_backup_count=log_backup_count,
    )


def _parse_monitoring_config(data: Dict[str, Any]) -> MonitoringConfig:
    monitoring_data = _section(data, "monitoring")
    max_age = _validate_number(
        monitoring_data.get("max_snapshot_age_hours", 2.0),
        "monitoring.max_snapshot_age_hours",
    )
    return MonitoringConfig(max_snapshot_age_hours=max_age)


def _parse_validation_config(data: Dict[str, Any]) -> ValidationConfig:
    validation_data = _section(data, "validation")
    verify_checksums = validation_data.get("verify_checksums", False)
    _validate_type(verify_checksums, bool, "validation.verify_checksums")
    return ValidationConfig(verify_checksums=verify_checksums)


def validate_config(config: ReplicationConfig) -> None:
    """
    Check configuration invariants that types alone cannot express.

    All problems are collected and reported together.

    Raises:
        ValidationError: If any invariant is violated
    """
    errors = []

    if not config.source.volume.strip():
        errors.append("source.volume is required")
    if not config.source.database_path.strip():
        errors.append("source.database_path is required")
    if not str(config.destination.path).strip() or str(config.destination.path) == ".":
        errors.append("destination.path is required")
    if not str(config.logging.log_dir).strip() or str(config.logging.log_dir) == ".":
        errors.append("logging.log_dir is required")
    if not config.source.extensions or not all(e for e in config.source.extensions):
        errors.append("At least one non-empty file extension is required")
    if config.destination.retain_generations < 1:
        errors.append("destination.retain_generations must be at least 1")
    if config.retry.attempts < 0:
        errors.append("retry.attempts must be non-negative")
    if config.retry.delay_seconds < 0:
        errors.append("retry.delay_seconds must be non-negative")
    if normalize_log_level(config.logging.level) not in VALID_LOG_LEVELS:
        errors.append(
            f"logging.level must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )
    if config.logging.retention_days < 0:
        errors.append("logging.retention_days must be non-negative")

    if errors:
        raise ValidationError(
            "Configuration validation failed:\n" + "\n".join(errors)
        )


def parse_config_string(toml_content: str) -> ReplicationConfig:
    """
    Parse TOML string into a validated ReplicationConfig.

    Args:
        toml_content: TOML formatted string

    Returns:
        ReplicationConfig object

    Raises:
        ConfigurationError: If TOML is malformed or a required key is missing
        ValidationError: If a value has the wrong type or violates an invariant
    """
    try:
        data = tomllib.loads(toml_content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML format: {e}")

    for section, keys in REQUIRED_KEYS.items():
        section_data = data.get(section)
        if not isinstance(section_data, dict):
            raise ConfigurationError(f"Missing required configuration section: [{section}]")
        for key in keys:
            if key not in section_data:
                raise ConfigurationError(
                    f"Missing required configuration key: '{section}.{key}'"
                )

    config = ReplicationConfig(
        source=_parse_source_config(data),
        destination=_parse_destination_config(data),
        logging=_parse_logging_config(data),
        retry=_parse_retry_config(data),
        monitoring=_parse_monitoring_config(data),
        validation=_parse_validation_config(data),
    )
    validate_config(config)
    return config


def parse_config(config_path: Optional[Path] = None) -> ReplicationConfig:
    """
    Parse TOML configuration file into a ReplicationConfig.

    Args:
        config_path: Path to config file. Defaults to ./gravedigger.toml

    Returns:
        ReplicationConfig object

    Raises:
        ConfigurationError: If file doesn't exist or required key missing
        ValidationError: If value has wrong type
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}"
        )

    try:
        content = config_path.read_text(encoding="utf-8")
    except PermissionError:
        raise ConfigurationError(
            f"Permission denied reading configuration file: {config_path}"
        )
    except OSError as e:
        raise ConfigurationError(
            f"Error reading configuration file {config_path}: {e}"
        )

    return parse_config_string(content)


def describe_config(config: ReplicationConfig) -> str:
    """Summarise a configuration for the session log."""
    return "\n".join([
        f"Source: {config.source.database_path} on {config.source.volume}",
        f"Destination: {config.destination.path}",
        f"Extensions: {', '.join(config.source.extensions)}",
        f"Retain Generations: {config.destination.retain_generations}",
        f"Log Directory: {config.logging.log_dir}",
    ])


def create_default_config() -> str:
    """
    Generate default configuration TOML for `gravedigger init`.

    Returns:
        TOML formatted string with default configuration
    """
    template = '''# gravedigger configuration file
# DBISAM shadow copy replication

[source]
# Volume to read shadow copies from (e.g. "C:", "D:")
volume = "C:"

# Full path to the live database directory
database_path = 'C:\\Database\\Production'

# File patterns to replicate
extensions = [
'''

    for ext in DEFAULT_EXTENSIONS:
        template += f'    "{ext}",\n'

    template += ''']

[destination]
# Each run creates a timestamped subdirectory (YYYYMMDD_HHMMSS) here
path = 'D:\\Replicas\\Production'

# Number of generations to keep (older ones are deleted)
retain_generations = 3

[retry]
# Retry failed file copies
enabled = true
attempts = 3
# Delay between attempts in seconds
delay_seconds = 300.0

[logging]
log_dir = 'C:\\Gravedigger\\Logs'
# DEBUG, INFO, WARNING, ERROR, CRITICAL
level = "INFO"
# Days to keep per-run log files
retention_days = 30
log_max_size_mb = 10
log_backup_count = 5

[monitoring]
# Warn when the newest shadow copy is older than this
max_snapshot_age_hours = 2.0

[validation]
# Compare SHA-256 digests after the size check (slower)
verify_checksums = false
'''

    return template
