"""
Cabin fit feature (sailing-level).

Live inventory is optional: without an availability snapshot this is a neutral
constant. With one, the best still-bookable cabin category sets the score (never below
neutral, so an interior-only sailing is not penalized for reporting inventory), and a
small bonus applies when one of the traveler's preferred cabin types is available.
"""

from __future__ import annotations

from cruisescore.config.settings import Settings
from cruisescore.core.text import normalize_value
from cruisescore.domain.models import AvailabilitySnapshot, Preferences
from cruisescore.scoring.composite import ComponentResult, clamp01


def score_cabin(
    availability: AvailabilitySnapshot | None,
    *,
    preferences: Preferences | None,
    settings: Settings,
) -> ComponentResult:
    cfg = settings.decision.cabin
    cabin_types = [normalize_value(t) for t in (availability.available_cabin_types if availability else [])]
    cabin_types = [t for t in cabin_types if t]
    if not cabin_types:
        return ComponentResult(score=float(cfg.neutral_score), details={"cabin_types": []})

    type_scores = {normalize_value(k): float(v) for k, v in cfg.type_scores.items()}
    best = float(cfg.neutral_score)
    best_type = None
    for cabin_type in cabin_types:
        s = type_scores.get(cabin_type, float(cfg.neutral_score))
        if s > best:
            best, best_type = s, cabin_type

    preferred_available = False
    if preferences and preferences.cabin_type:
        wanted = {normalize_value(t) for t in preferences.cabin_type}
        preferred_available = bool(wanted.intersection(cabin_types))
        if preferred_available:
            best += float(cfg.preferred_type_bonus)

    score = clamp01(best)
    reasons: list[str] = []
    if score >= 0.85:
        reasons.append("Balcony upgrade likely")
    elif score >= 0.65:
        reasons.append("Good cabin availability")

    return ComponentResult(
        score=score,
        details={
            "cabin_types": cabin_types,
            "best_type": best_type,
            "preferred_available": preferred_available,
        },
        reasons=reasons,
    )
