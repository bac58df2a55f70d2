"""Volume Shadow Copy discovery for gravedigger.

This module turns `vssadmin list shadows` output into SnapshotRecord values,
picks the newest shadow copy of a volume, and maps live paths onto the
shadow copy's device root.

Example of the parsed format:

    Contents of shadow copy set ID: {b5946137-7b9f-4925-af80-51abd60b20d5}
       Contained 1 shadow copies at creation time: 1/15/2025 10:30:00 AM
          Shadow Copy ID: id:{c5946137-7b9f-4925-af80-51abd60b20d5}
             Original Volume: (C:)\\\\?\\Volume{f3b3d2a1-0000-0000-0000-100000000000}\\
             Shadow Copy Volume: device:\\\\?\\GLOBALROOT\\Device\\HarddiskVolumeShadowCopy1

A labeled value starts after the second colon on its line, so the original
volume above parses as ")\\\\?\\Volume{...}\\".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence
import logging
import subprocess


logger = logging.getLogger(__name__)


class InvalidPathError(ValueError):
    """Raised when a live path is not of the form <letter>:<rest>."""
    pass


# Record boundary in vssadmin output
RECORD_SENTINEL = "Contents of shadow copy set"

DEVICE_PATH_LABEL = "Shadow Copy Volume:"
ORIGINAL_VOLUME_LABEL = "Original Volume:"
CREATION_TIME_LABEL = "Creation Time:"
SHADOW_COPY_ID_LABEL = "Shadow Copy ID:"
# vssadmin reports the set's creation time on its "Contained N shadow
# copies at creation time: ..." line
CONTAINED_CREATION_TIME_MARKER = "at creation time:"

# Locale formats vssadmin is known to print, tried in order
CREATION_TIME_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%d.%m.%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
)

# Zero value for an unparseable creation time
UNKNOWN_CREATION_TIME = datetime.min


@dataclass(frozen=True)
class SnapshotRecord:
    """One shadow copy as reported by vssadmin."""
    device_path: str
    creation_time: datetime = UNKNOWN_CREATION_TIME
    snapshot_id: str = ""
    source_volume: str = ""


def parse_creation_time(value: str) -> Optional[datetime]:
    """
    Parse a vssadmin creation time string.

    Args:
        value: Timestamp text, e.g. "1/15/2025 10:30:00 AM"

    Returns:
        Parsed datetime, or None if no known format matches
    """
    value = value.strip()
    for fmt in CREATION_TIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


# Labeled lines and the SnapshotRecord field each one sets
LABELED_FIELDS = (
    (DEVICE_PATH_LABEL, "device_path"),
    (ORIGINAL_VOLUME_LABEL, "source_volume"),
    (CREATION_TIME_LABEL, "creation_time"),
    (SHADOW_COPY_ID_LABEL, "snapshot_id"),
)


def _labeled_value(line: str, label: str) -> Optional[str]:
    """
    Return the value of a labeled line.

    The value is the trimmed text after the next colon following the
    label; the label's own colon does not count. With no further colon
    the line carries no value and None is returned.

        _labeled_value("Shadow Copy ID: X:{id-1}", "Shadow Copy ID:") -> "{id-1}"
    """
    colon = line.find(":", len(label))
    if colon == -1:
        return None
    return line[colon + 1:].strip()


def _match_field(line: str):
    """Return (field name, raw value) for a recognised line, else (None, None)."""
    for label, field_name in LABELED_FIELDS:
        if line.startswith(label):
            return field_name, _labeled_value(line, label)

    marker = line.lower().find(CONTAINED_CREATION_TIME_MARKER)
    if marker != -1:
        return "creation_time", line[marker + len(CONTAINED_CREATION_TIME_MARKER):].strip()
    return None, None


def _build_record(fields: Dict[str, object]) -> SnapshotRecord:
    return SnapshotRecord(
        device_path=fields.get("device_path", ""),
        creation_time=fields.get("creation_time", UNKNOWN_CREATION_TIME),
        snapshot_id=fields.get("snapshot_id", ""),
        source_volume=fields.get("source_volume", ""),
    )


def parse_vssadmin_output(output: str) -> List[SnapshotRecord]:
    """
    Parse `vssadmin list shadows` output into snapshot records.

    A line starting with "Contents of shadow copy set" opens a new record.
    Labeled lines inside a record fill in its fields with the text after
    the second colon of the line (the first belongs to the label); a
    labeled line with no second colon leaves its field unset. The
    "Contained N shadow copies at creation time:" line also sets the
    creation time. Anything else is ignored. The last record is kept only
    if it has a device path.

    Malformed lines are skipped; this never raises.

    Args:
        output: Raw stdout from vssadmin

    Returns:
        Records in the order they appear in the output
    """
    records: List[SnapshotRecord] = []
    current: Optional[Dict[str, object]] = None

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith(RECORD_SENTINEL):
            if current is not None:
                records.append(_build_record(current))
            current = {}
            continue

        if current is None:
            continue

        field_name, value = _match_field(line)
        if field_name is None or value is None:
            continue

        if field_name == "creation_time":
            parsed = parse_creation_time(value)
            if parsed is None:
                logger.debug(f"Unrecognised creation time: {value!r}")
                continue
            current[field_name] = parsed
        else:
            current[field_name] = value

    if current is not None and current.get("device_path"):
        records.append(_build_record(current))

    logger.debug(f"Parsed {len(records)} shadow copy entries from vssadmin output")
    return records


def select_latest_snapshot(
    records: Iterable[SnapshotRecord],
) -> Optional[SnapshotRecord]:
    """
    Pick the newest shadow copy.

    Equal creation times are resolved by the lexicographically greatest
    snapshot ID so the choice never depends on input order.

    Returns:
        The newest record, or None if there are no records
    """
    records = list(records)
    if not records:
        return None
    return max(records, key=lambda r: (r.creation_time, r.snapshot_id))


def snapshot_age(record: SnapshotRecord, now: datetime) -> timedelta:
    """Return how long ago the shadow copy was created."""
    return now - record.creation_time


def translate_path(device_path: str, live_path: str) -> str:
    """
    Map a live absolute path onto a shadow copy's device root.

    The drive prefix is dropped and the remainder, including its leading
    separator, is appended verbatim:

        translate_path(r"\\\\?\\GLOBALROOT\\Device\\HarddiskVolumeShadowCopy1",
                       r"C:\\Database\\Production")
        -> r"\\\\?\\GLOBALROOT\\Device\\HarddiskVolumeShadowCopy1\\Database\\Production"

    Raises:
        InvalidPathError: If live_path is shorter than 3 characters or does
            not start with a drive letter and colon
    """
    if (
        len(live_path) < 3
        or not (live_path[0].isascii() and live_path[0].isalpha())
        or live_path[1] != ":"
    ):
        raise InvalidPathError(f"Invalid path format: {live_path!r}")

    shadow_path = device_path + live_path[2:]
    logger.debug(f"Translated path: {live_path} -> {shadow_path}")
    return shadow_path


class SnapshotSource(ABC):
    """Where shadow copies and the shadow copy service status come from."""

    @abstractmethod
    def list_snapshots(self, volume: str) -> List[SnapshotRecord]:
        """Return every shadow copy of `volume`; empty on any failure."""
        ...

    @abstractmethod
    def is_service_running(self) -> bool:
        """Return True if the shadow copy service is running."""
        ...

    def get_latest_snapshot(self, volume: str) -> Optional[SnapshotRecord]:
        """List the shadow copies of `volume` and return the newest one."""
        logger.info(f"Searching for shadow copies on volume: {volume}")
        latest = select_latest_snapshot(self.list_snapshots(volume))

        if latest is None:
            logger.warning(f"No shadow copies found for volume: {volume}")
            return None

        logger.info("Found latest shadow copy:")
        logger.info(f"  Device Path: {latest.device_path}")
        logger.info(f"  Creation Time: {latest.creation_time:%Y-%m-%d %H:%M:%S}")
        logger.info(f"  Shadow Copy ID: {latest.snapshot_id}")
        return latest


class VssSnapshotSource(SnapshotSource):
    """
    Queries Windows Volume Shadow Copy Service through its command-line tools.

    `vssadmin list shadows /for=<volume>` lists shadow copies and
    `sc query VSS` reports the service state.
    """

    def __init__(self, timeout_seconds: int = 60):
        self.timeout_seconds = timeout_seconds

    def _run(self, command: Sequence[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            list(command),
            capture_output=True,
            text=True,
            timeout=self.timeout_seconds,
        )

    def list_snapshots(self, volume: str) -> List[SnapshotRecord]:
        try:
            result = self._run(["vssadmin", "list", "shadows", f"/for={volume}"])
        except subprocess.TimeoutExpired:
            logger.error(
                f"vssadmin timed out after {self.timeout_seconds}s listing shadow copies"
            )
            return []
        except OSError as e:
            logger.error(f"Error listing shadow copies: {e}")
            return []

        if result.returncode != 0:
            logger.error(
                f"vssadmin failed with exit code {result.returncode}: "
                f"{(result.stderr or '').strip()}"
            )
            return []

        return parse_vssadmin_output(result.stdout or "")

    def is_service_running(self) -> bool:
        try:
            result = self._run(["sc", "query", "VSS"])
        except subprocess.TimeoutExpired:
            logger.error("Timed out checking VSS service status")
            return False
        except OSError as e:
            logger.error(f"Error checking VSS service status: {e}")
            return False

        return "RUNNING" in (result.stdout or "")
