"""Loose string matching for user-typed labels (cruise lines, cabin types, ports)."""

from __future__ import annotations

import re

_WS = re.compile(r"\s+")


def normalize_value(value: str | None) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return _WS.sub(" ", str(value or "")).strip().lower()


def equals_loose(a: str | None, b: str | None) -> bool:
    return normalize_value(a) == normalize_value(b)
