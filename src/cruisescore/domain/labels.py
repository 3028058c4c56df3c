"""
Marketing-correct duration labels.

Carnival advertises sailings by days (a 6-night sailing is a "7-Day" cruise); every
other line advertises nights.
"""

from __future__ import annotations


def format_duration_label(cruise_line: str | None, nights: int | None) -> str:
    """Return e.g. "7-Day" (Carnival) or "7-Night"; "TBD" when nights is unknown or zero."""
    if not nights:
        return "TBD"
    line = (cruise_line or "").lower()
    if "carnival" in line:
        return f"{nights + 1}-Day"
    return f"{nights}-Night"
