"""Stable content hashing for audit records."""

from __future__ import annotations

import json
from hashlib import sha256
from typing import Any


def stable_hash(payload: Any) -> str:
    """Hash a JSON-compatible payload independent of dict key order (12 hex chars)."""
    text = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return sha256(text.encode("utf-8")).hexdigest()[:12]
