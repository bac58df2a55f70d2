"""Unit tests for FileCopier."""

from pathlib import Path
from typing import List

from gravedigger.copier import FileCopier, list_matching_files
from gravedigger.retry import RetryPolicy


class FailingCopier(FileCopier):
    """FileCopier whose copies of `broken` names always raise OSError."""

    def __init__(self, broken, **kwargs):
        super().__init__(**kwargs)
        self.broken = set(broken)
        self.tries: List[str] = []

    def _copy_file(self, source_file: Path, dest_file: Path) -> Path:
        self.tries.append(source_file.name)
        if source_file.name in self.broken:
            raise OSError(f"sharing violation on {source_file.name}")
        return super()._copy_file(source_file, dest_file)


def make_copier(**kwargs) -> FileCopier:
    kwargs.setdefault("policy", RetryPolicy(attempts=2, delay_seconds=0.0))
    kwargs.setdefault("sleep", lambda s: None)
    return FileCopier(**kwargs)


class TestListMatchingFiles:
    """Tests for list_matching_files."""

    def test_only_regular_files_sorted(self, tmp_path: Path):
        (tmp_path / "b.dat").write_bytes(b"b")
        (tmp_path / "a.dat").write_bytes(b"a")
        (tmp_path / "dir.dat").mkdir()
        (tmp_path / "c.idx").write_bytes(b"c")

        assert [p.name for p in list_matching_files(tmp_path, "*.dat")] == ["a.dat", "b.dat"]

    def test_not_recursive(self, tmp_path: Path):
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "nested.dat").write_bytes(b"n")

        assert list_matching_files(tmp_path, "*.dat") == []


class TestCopyFiles:
    """Tests for FileCopier.copy_files."""

    def test_copies_matching_files(self, shadow_root: Path, tmp_path: Path):
        source = shadow_root / "Database" / "Production"
        dest = tmp_path / "out"

        result = make_copier().copy_files(source, dest, ["*.dat", "*.idx"])

        assert result.files_copied == 2
        assert result.bytes_copied == 150
        assert result.failed_files == []
        assert result.warnings == []
        assert (dest / "a.dat").read_bytes() == b"a" * 100
        assert (dest / "b.idx").read_bytes() == b"b" * 50

    def test_creates_destination(self, shadow_root: Path, tmp_path: Path):
        dest = tmp_path / "deep" / "out"

        make_copier().copy_files(shadow_root / "Database" / "Production", dest, ["*.dat"])

        assert dest.is_dir()

    def test_unmatched_files_not_copied(self, shadow_root: Path, tmp_path: Path):
        source = shadow_root / "Database" / "Production"
        (source / "notes.txt").write_text("ignore me")
        dest = tmp_path / "out"

        make_copier().copy_files(source, dest, ["*.dat"])

        assert sorted(p.name for p in dest.iterdir()) == ["a.dat"]

    def test_copy_is_idempotent(self, shadow_root: Path, tmp_path: Path):
        source = shadow_root / "Database" / "Production"
        dest = tmp_path / "out"
        copier = make_copier()

        first = copier.copy_files(source, dest, ["*.dat", "*.idx"])
        second = copier.copy_files(source, dest, ["*.dat", "*.idx"])

        assert first.files_copied == second.files_copied == 2
        assert sorted(p.name for p in dest.iterdir()) == ["a.dat", "b.idx"]

    def test_overwrites_existing_destination_file(self, shadow_root: Path, tmp_path: Path):
        dest = tmp_path / "out"
        dest.mkdir()
        (dest / "a.dat").write_bytes(b"stale")

        make_copier().copy_files(shadow_root / "Database" / "Production", dest, ["*.dat"])

        assert (dest / "a.dat").read_bytes() == b"a" * 100

    def test_missing_source_directory_warns(self, tmp_path: Path):
        result = make_copier().copy_files(tmp_path / "missing", tmp_path / "out", ["*.dat", "*.idx"])

        assert result.files_copied == 0
        assert len(result.warnings) == 2
        assert all("Source directory does not exist" in w for w in result.warnings)

    def test_pattern_matching_nothing(self, shadow_root: Path, tmp_path: Path):
        result = make_copier().copy_files(
            shadow_root / "Database" / "Production", tmp_path / "out", ["*.blb"]
        )

        assert result.files_copied == 0
        assert result.failed_files == []

    def test_overlapping_patterns_copy_once(self, shadow_root: Path, tmp_path: Path):
        result = make_copier().copy_files(
            shadow_root / "Database" / "Production", tmp_path / "out", ["*.dat", "a.*"]
        )

        assert result.files_copied == 1
        assert result.bytes_copied == 100

    def test_failed_file_does_not_abort_batch(self, shadow_root: Path, tmp_path: Path):
        copier = FailingCopier(
            broken={"a.dat"},
            policy=RetryPolicy(attempts=2, delay_seconds=0.0),
            sleep=lambda s: None,
        )

        result = copier.copy_files(
            shadow_root / "Database" / "Production", tmp_path / "out", ["*.dat", "*.idx"]
        )

        assert result.files_copied == 1
        assert result.bytes_copied == 50
        assert result.failed_files == [("a.dat", "sharing violation on a.dat")]
        assert copier.tries.count("a.dat") == 3
        assert any("Failed to copy a.dat after 3 attempt(s)" in w for w in result.warnings)
        assert (tmp_path / "out" / "b.idx").exists()

    def test_transient_failure_recovers(self, shadow_root: Path, tmp_path: Path):
        sleeps: List[float] = []

        class FlakyCopier(FileCopier):
            calls = 0

            def _copy_file(self, source_file, dest_file):
                FlakyCopier.calls += 1
                if FlakyCopier.calls == 1:
                    raise PermissionError("file locked")
                return super()._copy_file(source_file, dest_file)

        copier = FlakyCopier(RetryPolicy(attempts=3, delay_seconds=5.0), sleep=sleeps.append)

        result = copier.copy_files(shadow_root / "Database" / "Production", tmp_path / "out", ["*.dat"])

        assert result.files_copied == 1
        assert result.failed_files == []
        assert sleeps == [5.0]
