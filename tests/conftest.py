"""Pytest configuration and fixtures for gravedigger tests."""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pytest
from hypothesis import settings, Phase

from gravedigger.config import (
    DestinationConfig,
    LoggingConfig,
    MonitoringConfig,
    ReplicationConfig,
    RetryConfig,
    SourceConfig,
)
from gravedigger.logger import LOGGER_NAME
from gravedigger.shadow import SnapshotRecord, SnapshotSource

# Configure hypothesis to use fewer examples for faster test runs
# Disable shrinking phase to speed up tests further
settings.register_profile(
    "fast",
    max_examples=10,
    deadline=10000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate]
)
settings.register_profile("ci", max_examples=50, deadline=10000)
settings.register_profile("dev", max_examples=2, deadline=10000)

# Use the fast profile by default
settings.load_profile("fast")


class FakeSnapshotSource(SnapshotSource):
    """SnapshotSource returning canned records, recording every call."""

    def __init__(self, records: Optional[List[SnapshotRecord]] = None, running: bool = True):
        self.records = list(records or [])
        self.running = running
        self.list_calls: List[str] = []
        self.service_checks = 0

    def list_snapshots(self, volume: str) -> List[SnapshotRecord]:
        self.list_calls.append(volume)
        return list(self.records)

    def is_service_running(self) -> bool:
        self.service_checks += 1
        return self.running


@pytest.fixture(autouse=True)
def cleanup_logger():
    """Close handlers installed by setup_logging after each test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


@pytest.fixture
def shadow_root(tmp_path: Path) -> Path:
    """
    A directory standing in for a shadow copy device root.

    Holds the database at <root>/Database/Production with a.dat (100 bytes)
    and b.idx (50 bytes).
    """
    root = tmp_path / "HarddiskVolumeShadowCopy1"
    db = root / "Database" / "Production"
    db.mkdir(parents=True)
    (db / "a.dat").write_bytes(b"a" * 100)
    (db / "b.idx").write_bytes(b"b" * 50)
    return root


@pytest.fixture
def make_config(tmp_path: Path):
    """Build a ReplicationConfig rooted in tmp_path."""

    def _make(**overrides) -> ReplicationConfig:
        config = ReplicationConfig(
            source=SourceConfig(
                volume="C:",
                database_path="C:/Database/Production",
                extensions=["*.dat", "*.idx"],
            ),
            destination=DestinationConfig(path=tmp_path / "replicas", retain_generations=2),
            logging=LoggingConfig(log_dir=tmp_path / "logs"),
            retry=RetryConfig(enabled=True, attempts=2, delay_seconds=0.0),
            monitoring=MonitoringConfig(max_snapshot_age_hours=2.0),
        )
        for key, value in overrides.items():
            setattr(config, key, value)
        return config

    return _make


@pytest.fixture
def snapshot_record(shadow_root: Path) -> SnapshotRecord:
    return SnapshotRecord(
        device_path=str(shadow_root),
        creation_time=datetime(2025, 1, 15, 10, 0, 0),
        snapshot_id="{00000000-0000-0000-0000-000000000001}",
        source_volume="(C:)\\\\?\\Volume{f3b3d2a1}\\",
    )
