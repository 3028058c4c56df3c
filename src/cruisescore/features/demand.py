"""
Demand feature (sailing-level).

When the provider supplies a `demand_pressure` signal it is used directly. Otherwise
demand is approximated from days until departure with a step mapping:

    days < high_within_days               -> high_score
    high_within_days <= days <= low_beyond_days -> medium_score
    days > low_beyond_days                -> low_score

The breakpoints are a policy default (no measured booking-curve data backs them) and
live in settings so they can change without touching this module. The calendar's
demand tiers read the same `tier_*` thresholds.
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from cruisescore.config.settings import Settings
from cruisescore.core.time import days_between
from cruisescore.domain.models import AvailabilitySnapshot, Sailing
from cruisescore.scoring.composite import ComponentResult, clamp01

FLAG_HIGH_DEMAND = "high demand"

DemandTier = Literal["low", "medium", "high"]


def demand_tier(score: float | None, *, settings: Settings) -> DemandTier:
    """Bucket a demand component score for display ("medium" when unknown)."""
    cfg = settings.decision.demand
    if score is None:
        return "medium"
    if score >= cfg.tier_high_min:
        return "high"
    if score >= cfg.tier_medium_min:
        return "medium"
    return "low"


def score_demand(
    sailing: Sailing,
    *,
    availability: AvailabilitySnapshot | None,
    today: date,
    settings: Settings,
) -> ComponentResult:
    cfg = settings.decision.demand

    if availability is not None and availability.demand_pressure is not None:
        score = clamp01(availability.demand_pressure)
        source = "demand_pressure"
        days_out = None
    else:
        source = "days_until_departure"
        days_out = days_between(today, sailing.depart_date) if sailing.depart_date else None
        if days_out is None:
            score = float(cfg.medium_score)
        elif days_out < cfg.high_within_days:
            score = float(cfg.high_score)
        elif days_out <= cfg.low_beyond_days:
            score = float(cfg.medium_score)
        else:
            score = float(cfg.low_score)

    flags: list[str] = []
    reasons: list[str] = []
    if demand_tier(score, settings=settings) == "high":
        flags.append(FLAG_HIGH_DEMAND)
        reasons.append("High demand, limited availability")

    return ComponentResult(
        score=score,
        details={"source": source, "days_until_departure": days_out},
        reasons=reasons,
        flags=flags,
    )
