from __future__ import annotations

# This module is the "orchestrator" for the decision pipeline.
# It wires together:
# - domain input (CruiseDecisionInput)
# - the data provider (sailings, ships, pricing and optional availability/risk/override signals)
# - component scoring (price, cabin, preference, demand, risk)
# - final ranking + explainable results (DecisionResponse)
#
# Design goal:
# - Keep each layer focused (providers fetch; features do math; this file orchestrates).
# - Partial data is never an error (missing ship or price falls back); provider failures propagate.

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date

from cruisescore.config.overrides import apply_settings_overrides
from cruisescore.config.settings import Settings, get_settings
from cruisescore.core.text import equals_loose
from cruisescore.core.time import is_weekend, today_in
from cruisescore.domain.models import (
    AvailabilitySnapshot,
    CruiseDecisionInput,
    DecisionComponents,
    DecisionOverride,
    DecisionResponse,
    DecisionResult,
    DecisionWeights,
    PricingSnapshot,
    RiskSnapshot,
    Sailing,
    Ship,
)
from cruisescore.features.cabin import score_cabin
from cruisescore.features.demand import score_demand
from cruisescore.features.preference_match import score_preference_match
from cruisescore.features.price import observed_price, score_price
from cruisescore.features.risk import score_risk
from cruisescore.providers.base import CruiseDataProvider
from cruisescore.scoring.composite import COMPONENT_NAMES, ComponentResult, combine_components, round3
from cruisescore.scoring.confidence import data_completeness, ranked_confidences

logger = logging.getLogger(__name__)


class InvalidDecisionInput(ValueError):
    """Caller error: the request is rejected before any data is fetched."""


@dataclass
class DecisionContext:
    """Everything the ranking step needs, fetched once per request."""

    sailings: list[Sailing]
    ships: dict[str, Ship] = field(default_factory=dict)
    pricing: dict[str, PricingSnapshot] = field(default_factory=dict)
    availability: dict[str, AvailabilitySnapshot] = field(default_factory=dict)
    risks: dict[str, RiskSnapshot] = field(default_factory=dict)
    overrides: dict[str, DecisionOverride] = field(default_factory=dict)


@dataclass
class _Scored:
    sailing: Sailing
    score: float
    components: dict[str, float]
    completeness: float
    flags: list[str]
    reasons: list[str]


def validate_decision_input(
    decision_input: CruiseDecisionInput, *, settings: Settings, limit: int | None = None
) -> None:
    """Raise InvalidDecisionInput for requests the engine must not silently correct."""
    supported = settings.decision.supported_port
    if decision_input.departure_port != supported:
        raise InvalidDecisionInput(f"departurePort must be {supported}")
    date_range = decision_input.date_range
    if date_range is None or date_range.start is None or date_range.end is None:
        raise InvalidDecisionInput("dateRange.start and dateRange.end are required")
    if date_range.start > date_range.end:
        raise InvalidDecisionInput("dateRange.start must be on or before dateRange.end")
    if decision_input.passengers is None or decision_input.passengers.adults < 1:
        raise InvalidDecisionInput("passengers.adults must be >= 1")
    if limit is not None and limit < 1:
        raise InvalidDecisionInput("limit must be >= 1")


def resolve_settings(decision_input: CruiseDecisionInput, settings: Settings | None) -> Settings:
    """Base settings plus the request's whitelisted `settings_overrides`."""
    settings = settings or get_settings()
    try:
        return apply_settings_overrides(settings, decision_input.settings_overrides)
    except ValueError as e:
        raise InvalidDecisionInput(str(e)) from e


async def gather_decision_context(
    decision_input: CruiseDecisionInput, provider: CruiseDataProvider
) -> DecisionContext:
    """Fetch candidates, then fan out the batched per-sailing lookups concurrently."""
    ship_filter = decision_input.constraints.ship_id if decision_input.constraints else None
    sailings = await provider.get_sailings(
        departure_port=decision_input.departure_port,
        start=decision_input.date_range.start,
        end=decision_input.date_range.end,
        ship_id=ship_filter,
    )
    if not sailings:
        return DecisionContext(sailings=[])

    ship_ids = sorted({s.ship_id for s in sailings if s.ship_id})
    sailing_ids = [s.id for s in sailings]

    # Fan-out/fan-in: one call per signal for the whole batch; any failure propagates.
    ships, pricing, availability, risks, overrides = await asyncio.gather(
        provider.get_ships_by_ids(ship_ids),
        provider.get_latest_pricing_by_sailing_ids(sailing_ids),
        provider.get_latest_availability_by_sailing_ids(sailing_ids),
        provider.get_latest_risk_by_sailing_ids(sailing_ids),
        provider.get_overrides_by_sailing_ids(sailing_ids),
    )
    return DecisionContext(
        sailings=sailings,
        ships=ships,
        pricing=pricing,
        availability=availability,
        risks=risks,
        overrides=overrides,
    )


def _is_eligible(
    decision_input: CruiseDecisionInput,
    sailing: Sailing,
    override: DecisionOverride | None,
) -> bool:
    # Disabled overrides are a hard filter, independent of how well the sailing would score.
    if override is not None and override.disabled:
        return False
    if not sailing.is_active or sailing.depart_date is None:
        return False
    if not equals_loose(sailing.departure_port, decision_input.departure_port):
        return False
    if not (decision_input.date_range.start <= sailing.depart_date <= decision_input.date_range.end):
        return False

    constraints = decision_input.constraints
    if constraints is not None:
        if constraints.sea_pay_eligible_only and not sailing.sea_pay_eligible:
            return False
        if constraints.must_sail_weekend and not is_weekend(sailing.depart_date):
            return False
        if constraints.ship_id and sailing.ship_id != constraints.ship_id:
            return False
    return True


def _finalize_reasons(reasons: list[str], decision_input: CruiseDecisionInput, *, max_reasons: int) -> list[str]:
    uniq = list(dict.fromkeys(reasons))[:max_reasons]
    if uniq:
        return uniq
    if decision_input.budget and decision_input.budget.max_per_person:
        return ["Good match for your date range"]
    return ["Matches your date range"]


def _score_sailing(
    decision_input: CruiseDecisionInput,
    sailing: Sailing,
    context: DecisionContext,
    *,
    weights: DecisionWeights,
    settings: Settings,
    today: date,
) -> _Scored:
    ship = context.ships.get(sailing.ship_id) if sailing.ship_id else None
    pricing = context.pricing.get(sailing.id)
    availability = context.availability.get(sailing.id)
    risk = context.risks.get(sailing.id)
    override = context.overrides.get(sailing.id)

    results: dict[str, ComponentResult] = {
        "price": score_price(decision_input.budget, pricing, settings=settings),
        "cabin": score_cabin(availability, preferences=decision_input.preferences, settings=settings),
        "preference": score_preference_match(
            sailing,
            ship=ship,
            availability=availability,
            preferences=decision_input.preferences,
            settings=settings,
        ),
        "demand": score_demand(sailing, availability=availability, today=today, settings=settings),
        "risk": score_risk(risk, override=override, settings=settings),
    }
    components = {name: round3(results[name].score) for name in COMPONENT_NAMES}
    score = round3(combine_components(components, weights))

    flags: list[str] = []
    reasons: list[str] = []
    for name in COMPONENT_NAMES:
        flags.extend(f for f in results[name].flags if f not in flags)
        reasons.extend(results[name].reasons)

    completeness = data_completeness(
        has_pricing=observed_price(pricing) is not None,
        has_availability=bool(availability and availability.available_cabin_types),
        has_risk=bool(risk and risk.risk_score is not None),
        settings=settings,
    )
    return _Scored(
        sailing=sailing,
        score=score,
        components=components,
        completeness=completeness,
        flags=flags,
        reasons=_finalize_reasons(reasons, decision_input, max_reasons=settings.decision.max_reasons),
    )


def rank_sailings(
    decision_input: CruiseDecisionInput,
    context: DecisionContext,
    *,
    weights: DecisionWeights,
    settings: Settings,
    today: date,
) -> list[DecisionResult]:
    """Score every eligible sailing in `context` and return them best-first.

    Pure and synchronous: identical inputs always produce identical output.
    """
    scored = [
        _score_sailing(decision_input, s, context, weights=weights, settings=settings, today=today)
        for s in context.sailings
        if _is_eligible(decision_input, s, context.overrides.get(s.id))
    ]
    # Ties: earlier departure first, then sailing id.
    scored.sort(key=lambda item: (-item.score, item.sailing.depart_date, item.sailing.id))

    confidences = ranked_confidences(
        [item.score for item in scored],
        [item.completeness for item in scored],
        decision_input=decision_input,
        settings=settings,
    )
    return [
        DecisionResult(
            sailing_id=item.sailing.id,
            score=item.score,
            components=DecisionComponents(**item.components),
            confidence=confidence,
            flags=item.flags,
            reasons=item.reasons,
        )
        for item, confidence in zip(scored, confidences)
    ]


async def run_decision_engine(
    decision_input: CruiseDecisionInput,
    provider: CruiseDataProvider,
    *,
    limit: int | None = None,
    weights: DecisionWeights | None = None,
    settings: Settings | None = None,
    today: date | None = None,
) -> DecisionResponse:
    """Rank candidate sailings for `decision_input`.

    `limit` caps the number of results (fewer is valid). `weights` defaults to the configured
    decision weights; they are normalized by their sum, so any positive scale works.
    """
    t0 = time.monotonic()
    settings = resolve_settings(decision_input, settings)
    validate_decision_input(decision_input, settings=settings, limit=limit)
    weights = weights or settings.decision.weights
    today = today or today_in(settings.app.timezone)

    context = await gather_decision_context(decision_input, provider)
    if not context.sailings:
        logger.info(
            "decision engine: no sailings between %s and %s",
            decision_input.date_range.start,
            decision_input.date_range.end,
        )
        return DecisionResponse(results=[], weights=weights)

    ranked = rank_sailings(decision_input, context, weights=weights, settings=settings, today=today)
    results = ranked[:limit] if limit is not None else ranked

    logger.info(
        "decision engine ranked %d eligible of %d sailings, returned %d in %d ms",
        len(ranked),
        len(context.sailings),
        len(results),
        int((time.monotonic() - t0) * 1000),
    )
    return DecisionResponse(results=results, weights=weights)
