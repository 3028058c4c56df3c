"""
Risk feature (sailing-level).

The component is expressed as safety so that, like every other component, higher is
better: `1 - risk_score`, using `default_risk` when no risk snapshot exists. A
"force review" override subtracts a fixed penalty and flags the sailing; a
"disabled" override never reaches this scorer (the engine drops those sailings).
"""

from __future__ import annotations

from cruisescore.config.settings import Settings
from cruisescore.domain.models import DecisionOverride, RiskSnapshot
from cruisescore.scoring.composite import ComponentResult, clamp01

FLAG_FORCE_REVIEW = "flagged for review"
FLAG_HIGH_RISK = "high risk"


def score_risk(
    risk: RiskSnapshot | None, *, override: DecisionOverride | None, settings: Settings
) -> ComponentResult:
    cfg = settings.decision.risk
    known = risk is not None and risk.risk_score is not None
    risk_score = float(risk.risk_score) if known else float(cfg.default_risk)

    score = 1.0 - risk_score
    flags: list[str] = []
    reasons: list[str] = []

    if known and risk_score >= cfg.high_risk_min:
        flags.append(FLAG_HIGH_RISK)
        reasons.append("Higher policy risk than average")
    elif known and risk_score <= 0.35:
        reasons.append("Low cancellation risk")

    if override is not None and override.force_review:
        score -= float(cfg.force_review_penalty)
        flags.append(FLAG_FORCE_REVIEW)

    return ComponentResult(
        score=clamp01(score),
        details={
            "risk_score": risk_score,
            "risk_known": known,
            "force_review": bool(override and override.force_review),
            "note": override.note if override else None,
        },
        reasons=reasons,
        flags=flags,
    )
