"""
Confidence estimation.

Confidence is how much a ranking position should be trusted, not how good the sailing
is. It is the product of four factors, each in 0..1:

- completeness: which signals backed this sailing's score (pricing counts most)
- pool size: a shortlist drawn from very few candidates is less informative
- separation: a score within `tie_epsilon` of a neighbour could swap places on noise
- rule stability: very wide date windows or a request with no budget and no
  preferences leave most components at their neutral defaults
"""

from __future__ import annotations

from cruisescore.config.settings import Settings
from cruisescore.core.time import days_between
from cruisescore.domain.models import CruiseDecisionInput
from cruisescore.scoring.composite import clamp01


def data_completeness(*, has_pricing: bool, has_availability: bool, has_risk: bool, settings: Settings) -> float:
    weights = settings.decision.confidence.signal_weights
    present = {"pricing": has_pricing, "availability": has_availability, "risk": has_risk}
    total = sum(float(v) for v in weights.values())
    if total <= 0:
        return 1.0
    return clamp01(sum(float(weights[k]) for k, ok in present.items() if ok) / total)


def rule_stability(decision_input: CruiseDecisionInput, *, settings: Settings) -> float:
    cfg = settings.decision.confidence
    s = 1.0
    range_days = days_between(decision_input.date_range.start, decision_input.date_range.end)
    if range_days > cfg.wide_range_days:
        s *= cfg.wide_range_multiplier
    if range_days > cfg.very_wide_range_days:
        s *= cfg.very_wide_range_multiplier

    has_budget = bool(decision_input.budget and decision_input.budget.max_per_person)
    has_prefs = bool(decision_input.preferences and not decision_input.preferences.is_empty())
    if not has_budget and not has_prefs:
        s *= cfg.unconstrained_multiplier
    return clamp01(s)


def ranked_confidences(
    scores: list[float],
    completeness: list[float],
    *,
    decision_input: CruiseDecisionInput,
    settings: Settings,
) -> list[float]:
    """Confidence per position of an already-sorted (descending) score list."""
    cfg = settings.decision.confidence
    n = len(scores)
    pool = cfg.small_pool_multiplier if n < cfg.small_pool_size else 1.0
    stability = rule_stability(decision_input, settings=settings)
    floor = float(cfg.completeness_floor)

    out: list[float] = []
    for i, score in enumerate(scores):
        gaps = []
        if i > 0:
            gaps.append(abs(scores[i - 1] - score))
        if i + 1 < n:
            gaps.append(abs(score - scores[i + 1]))
        separation = cfg.tie_multiplier if gaps and min(gaps) <= cfg.tie_epsilon else 1.0

        completeness_factor = floor + (1.0 - floor) * completeness[i]
        out.append(round(clamp01(completeness_factor * pool * separation * stability), 3))
    return out
