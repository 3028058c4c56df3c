# src/cruisescore/features/price.py
"""
Price fit feature (sailing-level).

The score answers "how comfortably does the cheapest fare fit the traveler's budget?":
- no budget given: neutral (nothing to compare against)
- budget given but no fare observed: a fixed, slightly-below-neutral uncertainty score
- within budget: rises from `at_budget_score` toward 1.0 as the fare drops below the budget,
  saturating once it is `full_score_discount` (as a fraction of budget) cheaper
- over budget: decays exponentially with the relative overage; flexible budgets decay
  gently from `at_budget_score`, strict budgets start near zero and fall further

The mapping is non-increasing in price for a fixed budget: a cheaper fare never scores lower.
"""

from __future__ import annotations

import math

from cruisescore.config.settings import Settings
from cruisescore.domain.models import Budget, PricingSnapshot
from cruisescore.scoring.composite import ComponentResult, clamp01

FLAG_OVER_BUDGET = "over budget"
FLAG_UNDER_BUDGET = "under budget"
FLAG_MISSING_PRICING = "missing pricing"


def observed_price(pricing: PricingSnapshot | None) -> float | None:
    """Cheapest per-person fare, or None when missing or non-positive."""
    if pricing is None or pricing.min_per_person is None:
        return None
    price = float(pricing.min_per_person)
    return price if price > 0 else None


def score_price(
    budget: Budget | None, pricing: PricingSnapshot | None, *, settings: Settings
) -> ComponentResult:
    cfg = settings.decision.price
    price = observed_price(pricing)
    max_pp = budget.max_per_person if budget else None

    flags: list[str] = []
    if price is None:
        flags.append(FLAG_MISSING_PRICING)

    if not max_pp:
        return ComponentResult(
            score=float(cfg.neutral_score),
            details={"price": price, "max_per_person": None},
            reasons=[],
            flags=flags,
        )

    if price is None:
        return ComponentResult(
            score=float(cfg.missing_price_score),
            details={"price": None, "max_per_person": max_pp},
            reasons=[],
            flags=flags,
        )

    ratio = price / float(max_pp)
    reasons: list[str] = []
    if ratio <= 1.0:
        discount = 1.0 - ratio
        progress = min(1.0, discount / float(cfg.full_score_discount))
        score = cfg.at_budget_score + progress * (1.0 - cfg.at_budget_score)
        if discount >= cfg.under_budget_margin:
            flags.append(FLAG_UNDER_BUDGET)
        reasons.append("Fits your target price")
    else:
        overage = ratio - 1.0
        if budget is not None and budget.flexible:
            score = cfg.at_budget_score * math.exp(-overage / float(cfg.flexible_decay))
        else:
            score = cfg.strict_over_budget_score * math.exp(-overage / float(cfg.strict_decay))
        flags.append(FLAG_OVER_BUDGET)

    score = clamp01(score)
    if score >= 0.8:
        reasons.insert(0, "Strong value for your budget")

    return ComponentResult(
        score=score,
        details={"price": price, "max_per_person": max_pp, "ratio": round(ratio, 4)},
        reasons=reasons,
        flags=flags,
    )
