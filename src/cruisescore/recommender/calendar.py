from __future__ import annotations

# Calendar view models.
#
# The calendar shows every sailing in the window, not only the shortlist, so the engine is
# run without a limit and its results are merged back onto the raw sailing/ship/pricing
# records. Sailings the engine did not score (constraints filtered them out) still appear
# with a neutral demand level and no score.

import logging
from datetime import date

from cruisescore.config.settings import Settings
from cruisescore.core.time import add_months, today_in
from cruisescore.domain.labels import format_duration_label
from cruisescore.domain.models import (
    Budget,
    CalendarEntry,
    Constraints,
    CruiseDecisionInput,
    DateRange,
    DecisionWeights,
    Passengers,
    Preferences,
)
from cruisescore.features.demand import demand_tier
from cruisescore.providers.base import CruiseDataProvider
from cruisescore.recommender.engine import (
    gather_decision_context,
    rank_sailings,
    resolve_settings,
    validate_decision_input,
)

logger = logging.getLogger(__name__)


async def build_calendar_entries(
    decision_input: CruiseDecisionInput,
    provider: CruiseDataProvider,
    *,
    weights: DecisionWeights | None = None,
    settings: Settings | None = None,
    today: date | None = None,
) -> list[CalendarEntry]:
    """Display-ready entries for every sailing in the window, earliest departure first."""
    settings = resolve_settings(decision_input, settings)
    validate_decision_input(decision_input, settings=settings)
    weights = weights or settings.decision.weights
    today = today or today_in(settings.app.timezone)

    context = await gather_decision_context(decision_input, provider)
    if not context.sailings:
        return []

    results = {
        r.sailing_id: r
        for r in rank_sailings(decision_input, context, weights=weights, settings=settings, today=today)
    }

    entries: list[CalendarEntry] = []
    for sailing in context.sailings:
        if sailing.depart_date is None or not sailing.is_active:
            continue
        override = context.overrides.get(sailing.id)
        if override is not None and override.disabled:
            continue

        ship = context.ships.get(sailing.ship_id) if sailing.ship_id else None
        pricing = context.pricing.get(sailing.id)
        result = results.get(sailing.id)
        entries.append(
            CalendarEntry(
                sailing_id=sailing.id,
                cruise_line=sailing.cruise_line,
                ship_name=ship.name if ship else sailing.cruise_line,
                depart_date=sailing.depart_date,
                return_date=sailing.return_date,
                nights=sailing.nights,
                days=sailing.nights + 1,
                duration_label=format_duration_label(sailing.cruise_line, sailing.nights),
                demand_level=demand_tier(result.components.demand if result else None, settings=settings),
                price_from=pricing.min_per_person if pricing else None,
                decision_score=result.score if result else None,
                confidence=result.confidence if result else None,
                flags=result.flags if result else None,
            )
        )

    entries.sort(key=lambda e: (e.depart_date, e.sailing_id))
    logger.info("calendar: %d entries (%d scored)", len(entries), len(results))
    return entries


def calendar_input(
    *,
    settings: Settings,
    today: date,
    start: date | None = None,
    end: date | None = None,
    adults: int | None = None,
    children: int | None = None,
    max_per_person: float | None = None,
    flexible: bool | None = None,
    sea_pay_only: bool = False,
    cruise_line: str | None = None,
    ship_id: str | None = None,
) -> CruiseDecisionInput:
    """Build a calendar request from loose query-style parameters.

    Missing dates default to today through `calendar.default_window_months`; a missing or
    non-positive adult count falls back to `calendar.default_adults`.
    """
    start = start or today
    end = end or add_months(start, settings.calendar.default_window_months)

    budget = None
    if max_per_person:
        budget = Budget(max_per_person=max_per_person, flexible=bool(flexible))
    elif flexible is not None:
        budget = Budget(flexible=flexible)

    return CruiseDecisionInput(
        departure_port=settings.decision.supported_port,
        date_range=DateRange(start=start, end=end),
        passengers=Passengers(
            adults=adults if adults and adults > 0 else settings.calendar.default_adults,
            children=children or None,
        ),
        budget=budget,
        preferences=Preferences(cruise_line=[cruise_line]) if cruise_line else None,
        constraints=Constraints(sea_pay_eligible_only=sea_pay_only, ship_id=ship_id or None)
        if sea_pay_only or ship_id
        else None,
    )
