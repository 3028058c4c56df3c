"""
Small explainability formatting helpers.

Used by the CLI to print compact summaries of decision results.
"""

from __future__ import annotations

from cruisescore.domain.models import DecisionResult, DecisionWeights
from cruisescore.scoring.composite import COMPONENT_NAMES, normalize_weights


def one_line_summary(result: DecisionResult, weights: DecisionWeights) -> str:
    """Render a compact single-line summary for a decision result."""
    shares = normalize_weights(weights)
    parts = [f"score={result.score:.3f}", f"confidence={result.confidence:.3f}"]
    for name in COMPONENT_NAMES:
        parts.append(f"{name}={getattr(result.components, name):.3f} (w={shares[name]:.2f})")
    return " | ".join(parts)
