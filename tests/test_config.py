"""Unit tests for configuration parsing."""

from pathlib import Path

import pytest

from gravedigger.config import (
    ConfigurationError,
    DEFAULT_EXTENSIONS,
    VALID_LOG_LEVELS,
    ValidationError,
    create_default_config,
    describe_config,
    normalize_log_level,
    parse_config,
    parse_config_string,
)


MINIMAL_CONFIG = """
[source]
volume = "C:"
database_path = 'C:\\Database\\Production'

[destination]
path = 'D:\\Replicas'

[logging]
log_dir = 'C:\\Logs'
"""

FULL_CONFIG = """
[source]
volume = "D:"
database_path = 'D:\\Data\\Live'
extensions = ["*.dat", " *.idx "]

[destination]
path = '\\\\backup\\replicas'
retain_generations = 7

[retry]
enabled = false
attempts = 5
delay_seconds = 30

[logging]
log_dir = 'C:\\Logs'
level = "Information"
retention_days = 14
log_max_size_mb = 2
log_backup_count = 3

[monitoring]
max_snapshot_age_hours = 6

[validation]
verify_checksums = true
"""


class TestParseConfigString:
    """Tests for parse_config_string."""

    def test_minimal_config_uses_defaults(self):
        config = parse_config_string(MINIMAL_CONFIG)

        assert config.source.volume == "C:"
        assert config.source.database_path == "C:\\Database\\Production"
        assert config.source.extensions == DEFAULT_EXTENSIONS
        assert config.destination.path == Path("D:\\Replicas")
        assert config.destination.retain_generations == 3
        assert config.retry.enabled is True
        assert config.retry.attempts == 3
        assert config.retry.delay_seconds == 300.0
        assert config.logging.level == "INFO"
        assert config.logging.retention_days == 30
        assert config.monitoring.max_snapshot_age_hours == 2.0
        assert config.validation.verify_checksums is False

    def test_full_config(self):
        config = parse_config_string(FULL_CONFIG)

        assert config.source.extensions == ["*.dat", "*.idx"]
        assert config.destination.retain_generations == 7
        assert config.retry.enabled is False
        assert config.retry.attempts == 5
        assert config.retry.delay_seconds == 30.0
        assert config.logging.level == "Information"
        assert config.logging.log_max_bytes == 2 * 1024 * 1024
        assert config.monitoring.max_snapshot_age_hours == 6.0
        assert config.validation.verify_checksums is True

    def test_invalid_toml(self):
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            parse_config_string("[source\nvolume = ")

    def test_missing_section(self):
        content = MINIMAL_CONFIG.replace("[destination]\npath = 'D:\\Replicas'\n", "")

        with pytest.raises(ConfigurationError, match=r"\[destination\]"):
            parse_config_string(content)

    def test_missing_key(self):
        content = MINIMAL_CONFIG.replace('volume = "C:"\n', "")

        with pytest.raises(ConfigurationError, match="source.volume"):
            parse_config_string(content)

    def test_wrong_type(self):
        content = MINIMAL_CONFIG + "\n[retry]\nattempts = \"three\"\n"

        with pytest.raises(ValidationError, match="retry.attempts"):
            parse_config_string(content)

    def test_bool_is_not_a_number(self):
        content = MINIMAL_CONFIG.replace("[destination]\n", "[destination]\nretain_generations = true\n")

        with pytest.raises(ValidationError, match="got bool"):
            parse_config_string(content)

    def test_extension_must_be_string(self):
        content = MINIMAL_CONFIG.replace('[source]\n', '[source]\nextensions = ["*.dat", 3]\n')

        with pytest.raises(ValidationError, match=r"source.extensions\[1\]"):
            parse_config_string(content)

    def test_invariants_reported_together(self):
        content = MINIMAL_CONFIG.replace("[destination]\n", "[destination]\nretain_generations = 0\n")
        content += "\n[retry]\nattempts = -1\n"

        with pytest.raises(ValidationError) as exc_info:
            parse_config_string(content)

        message = str(exc_info.value)
        assert "retain_generations must be at least 1" in message
        assert "retry.attempts must be non-negative" in message

    def test_empty_extensions_rejected(self):
        content = MINIMAL_CONFIG.replace('[source]\n', '[source]\nextensions = []\n')

        with pytest.raises(ValidationError, match="extension"):
            parse_config_string(content)

    def test_blank_volume_rejected(self):
        content = MINIMAL_CONFIG.replace('volume = "C:"', 'volume = "  "')

        with pytest.raises(ValidationError, match="source.volume is required"):
            parse_config_string(content)

    def test_unknown_log_level_rejected(self):
        content = MINIMAL_CONFIG.replace("[logging]\n", "[logging]\nlevel = \"chatty\"\n")

        with pytest.raises(ValidationError, match="logging.level"):
            parse_config_string(content)

    @pytest.mark.parametrize("level,expected", [
        ("Information", "INFO"),
        ("information", "INFO"),
        ("warning", "WARNING"),
        ("Debug", "DEBUG"),
    ])
    def test_log_level_normalized(self, level, expected):
        assert normalize_log_level(level) == expected
        assert expected in VALID_LOG_LEVELS

    def test_alias_is_not_listed_as_a_level(self):
        assert "INFORMATION" not in VALID_LOG_LEVELS
        content = MINIMAL_CONFIG.replace("[logging]\n", "[logging]\nlevel = \"information\"\n")

        assert parse_config_string(content).logging.level == "information"


class TestParseConfig:
    """Tests for parse_config."""

    def test_reads_file(self, tmp_path: Path):
        config_file = tmp_path / "gravedigger.toml"
        config_file.write_text(MINIMAL_CONFIG, encoding="utf-8")

        config = parse_config(config_file)

        assert config.source.volume == "C:"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="not found"):
            parse_config(tmp_path / "missing.toml")


class TestDefaultConfig:
    """Tests for create_default_config and describe_config."""

    def test_default_config_parses(self):
        config = parse_config_string(create_default_config())

        assert config.source.volume == "C:"
        assert config.source.database_path == "C:\\Database\\Production"
        assert config.source.extensions == DEFAULT_EXTENSIONS
        assert config.destination.retain_generations == 3
        assert config.retry.delay_seconds == 300.0

    def test_describe_config(self):
        summary = describe_config(parse_config_string(MINIMAL_CONFIG))

        assert "Source: C:\\Database\\Production on C:" in summary
        assert "Retain Generations: 3" in summary
        assert "Extensions: *.dat, *.idx, *.blb, *.bak" in summary
