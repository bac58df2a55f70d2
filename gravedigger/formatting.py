"""Human-readable formatting helpers."""

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(size: int) -> str:
    """
    Format a byte count using binary multiples, e.g. 1536 -> "1.5 KB".

    At most two decimals are shown and trailing zeros are dropped.
    """
    value = float(size)
    order = 0
    while value >= 1024 and order < len(SIZE_UNITS) - 1:
        order += 1
        value /= 1024

    number = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{number} {SIZE_UNITS[order]}"


def format_duration(seconds: float) -> str:
    return f"{seconds:.2f} seconds"
