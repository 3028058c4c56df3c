"""
Shared scoring utilities.

This module contains small, reusable helpers used across component scorers:
- `clamp01`: keep values within 0..1 for stable UI/output
- `round3`: the precision scores are published at
- `combine_components`: the weighted composite, normalized by the weight sum
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal

from cruisescore.domain.models import DecisionWeights


def clamp01(x: float) -> float:
    """Clamp a number into the [0.0, 1.0] range (NaN becomes 0.0)."""
    x = float(x)
    if math.isnan(x):
        return 0.0
    return max(0.0, min(1.0, x))


def round3(x: float) -> float:
    return round(float(x), 3)


@dataclass(frozen=True)
class ComponentResult:
    """A normalized component score plus explainability payload."""

    score: float
    details: dict[str, Any] = field(default_factory=dict)
    reasons: list[str] = field(default_factory=list)
    flags: list[str] = field(default_factory=list)


ComponentName = Literal["price", "cabin", "preference", "demand", "risk"]
COMPONENT_NAMES: tuple[ComponentName, ...] = ("price", "cabin", "preference", "demand", "risk")
COMPOSITE_PRECISION = 9


def normalize_weights(weights: DecisionWeights) -> dict[str, float]:
    """Convert weights into a 1.0-summing distribution keyed by component name."""
    total = weights.total()
    return {name: float(getattr(weights, name)) / total for name in COMPONENT_NAMES}


def combine_components(scores: dict[str, float], weights: DecisionWeights) -> float:
    """Composite = sum(w_i * c_i) / sum(w_i), clamped to 0..1.

    The sum is quantized to 9 decimals so float noise from the weight scale cannot tip a
    later `round3` across a midpoint (0.5725 must publish the same for any scaling).
    """
    normalized = normalize_weights(weights)
    weighted = sum(normalized[name] * float(scores[name]) for name in COMPONENT_NAMES)
    return clamp01(round(weighted, COMPOSITE_PRECISION))
