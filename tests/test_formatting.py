"""Tests for human-readable formatting helpers."""

import pytest

from gravedigger.formatting import format_bytes, format_duration


@pytest.mark.parametrize("size,expected", [
    (0, "0 B"),
    (150, "150 B"),
    (1023, "1023 B"),
    (1024, "1 KB"),
    (1536, "1.5 KB"),
    (10 * 1024 * 1024, "10 MB"),
    (int(2.25 * 1024 ** 3), "2.25 GB"),
    (5 * 1024 ** 5, "5120 TB"),
])
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


def test_format_duration():
    assert format_duration(1.5) == "1.50 seconds"
    assert format_duration(0) == "0.00 seconds"
