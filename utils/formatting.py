from __future__ import annotations

_UNITS = ("KB", "MB", "GB", "TB")


def format_bytes(size: int) -> str:
    """Render a byte count using decimal file-size units."""

    if size <= 0:
        return "0 KB"
    if size < 1000:
        return f"{size} bytes"
    value = float(size)
    for unit in _UNITS:
        value /= 1000
        if value < 1000 or unit == _UNITS[-1]:
            break
    if value >= 100 or unit == "KB":
        return f"{value:.0f} {unit}"
    return f"{value:.1f} {unit}"
