# src/cruisescore/features/preference_match.py
"""
Preference match feature (sailing-level).

This module implements a simple, explainable "criteria match" score:
- The traveler may list preferred cruise lines, ship classes, itinerary keywords and cabin types.
- Each non-empty list is one criterion; a sailing satisfies a criterion when any listed value matches.
- The score is `mismatch + (matched / criteria) * (1 - mismatch)`, so it is always 0..1.

Policy notes:
- No preferences at all is neutral (0.5), not an automatic match.
- With only a cruise-line preference, a match scores 1.0 and a miss scores `mismatch_score`.
"""

from __future__ import annotations

# Settings provides the neutral/mismatch constants (config-driven; no tuning constants in code).
from cruisescore.config.settings import Settings
# Loose matching tolerates case and spacing differences in user-typed values.
from cruisescore.core.text import equals_loose, normalize_value
from cruisescore.domain.models import AvailabilitySnapshot, Preferences, Sailing, Ship
# Clamp keeps the score stable even if config values are odd.
from cruisescore.scoring.composite import ComponentResult, clamp01

FLAG_PREFERRED_LINE = "preferred line match"


def score_preference_match(
    sailing: Sailing,
    *,
    ship: Ship | None,
    availability: AvailabilitySnapshot | None,
    preferences: Preferences | None,
    settings: Settings,
) -> ComponentResult:
    cfg = settings.decision.preference

    # "No preference" is neutral so it neither helps nor hurts a sailing relative to others.
    if preferences is None or preferences.is_empty():
        return ComponentResult(score=float(cfg.neutral_score), details={"criteria": 0, "matched": []})

    criteria = 0
    matched: list[str] = []

    if preferences.cruise_line:
        criteria += 1
        if any(equals_loose(line, sailing.cruise_line) for line in preferences.cruise_line):
            matched.append("cruise_line")

    if preferences.ship_class:
        criteria += 1
        # Missing ship metadata simply cannot satisfy this criterion (it never fails the sailing).
        if ship is not None and ship.ship_class:
            if any(equals_loose(cls, ship.ship_class) for cls in preferences.ship_class):
                matched.append("ship_class")

    if preferences.itinerary:
        criteria += 1
        tags = {normalize_value(t) for t in sailing.itinerary_tags}
        if any(normalize_value(t) in tags for t in preferences.itinerary):
            matched.append("itinerary")

    if preferences.cabin_type:
        criteria += 1
        cabins = {normalize_value(t) for t in (availability.available_cabin_types if availability else [])}
        if any(normalize_value(t) in cabins for t in preferences.cabin_type):
            matched.append("cabin_type")

    mismatch = float(cfg.mismatch_score)
    score = clamp01(mismatch + (len(matched) / criteria) * (1.0 - mismatch))

    reasons: list[str] = []
    flags: list[str] = []
    if "cruise_line" in matched:
        flags.append(FLAG_PREFERRED_LINE)
    if score >= 0.75:
        reasons.append("Matches your preferred cruise line and itinerary")

    return ComponentResult(
        score=score,
        details={"criteria": criteria, "matched": matched},
        reasons=reasons,
        flags=flags,
    )
