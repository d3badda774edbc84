"""
Human-readable number and byte-size formatting shared by the reports.
"""
from typing import List

_IEC_UNITS: List[str] = ["KiB", "MiB", "GiB", "TiB", "PiB", "EiB"]


def format_bytes(size: int) -> str:
    """
    Format a byte count with IEC units: 0 -> "0 B", 1536 -> "1.50 KiB".
    """
    unit = 1024
    if size < unit:
        return f"{size} B"

    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.2f} {_IEC_UNITS[exp]}"


def format_number(n: int) -> str:
    """
    Thousands separators plus a short form for large values,
    e.g. 1234567 -> "1,234,567 (1.23M)".
    """
    grouped = f"{n:,}"
    if n >= 1_000_000_000_000:
        return f"{grouped} ({n / 1_000_000_000_000:.2f}T)"
    if n >= 1_000_000_000:
        return f"{grouped} ({n / 1_000_000_000:.2f}B)"
    if n >= 1_000_000:
        return f"{grouped} ({n / 1_000_000:.2f}M)"
    if n >= 1_000:
        return f"{grouped} ({n / 1_000:.2f}K)"
    return grouped
