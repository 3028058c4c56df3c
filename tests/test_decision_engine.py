import asyncio
from collections import Counter
from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from cruisescore.config.settings import get_settings
from cruisescore.domain.models import (
    AvailabilitySnapshot,
    CruiseDecisionInput,
    DecisionOverride,
    DecisionWeights,
    PricingSnapshot,
    Sailing,
    Ship,
)
from cruisescore.features.price import FLAG_MISSING_PRICING
from cruisescore.features.risk import FLAG_FORCE_REVIEW
from cruisescore.providers.base import ProviderError
from cruisescore.providers.memory import InMemoryCruiseProvider
from cruisescore.recommender.engine import InvalidDecisionInput, run_decision_engine

TODAY = date(2026, 10, 19)
AS_OF = datetime(2026, 10, 15, tzinfo=timezone.utc)


def _sailing(sid: str, line: str, ship_id: str | None, depart: str, ret: str, **kw) -> Sailing:
    return Sailing(
        id=sid,
        cruise_line=line,
        ship_id=ship_id,
        departure_port="Galveston",
        depart_date=date.fromisoformat(depart),
        return_date=date.fromisoformat(ret),
        **kw,
    )


def _price(sid: str, amount: float) -> PricingSnapshot:
    return PricingSnapshot(sailing_id=sid, min_per_person=amount, as_of=AS_OF)


class CountingProvider(InMemoryCruiseProvider):
    """In-memory provider that records how often each lookup is called."""

    def __init__(self, **kw):
        super().__init__(**kw)
        self.calls: Counter[str] = Counter()

    async def get_sailings(self, **kw):
        self.calls["get_sailings"] += 1
        return await super().get_sailings(**kw)

    async def get_ships_by_ids(self, ship_ids):
        self.calls["get_ships_by_ids"] += 1
        return await super().get_ships_by_ids(ship_ids)

    async def get_latest_pricing_by_sailing_ids(self, sailing_ids):
        self.calls["get_latest_pricing_by_sailing_ids"] += 1
        return await super().get_latest_pricing_by_sailing_ids(sailing_ids)

    async def get_latest_availability_by_sailing_ids(self, sailing_ids):
        self.calls["get_latest_availability_by_sailing_ids"] += 1
        return await super().get_latest_availability_by_sailing_ids(sailing_ids)

    async def get_latest_risk_by_sailing_ids(self, sailing_ids):
        self.calls["get_latest_risk_by_sailing_ids"] += 1
        return await super().get_latest_risk_by_sailing_ids(sailing_ids)

    async def get_overrides_by_sailing_ids(self, sailing_ids):
        self.calls["get_overrides_by_sailing_ids"] += 1
        return await super().get_overrides_by_sailing_ids(sailing_ids)


def _provider(**extra) -> CountingProvider:
    sailings = [
        _sailing("s1", "Carnival Cruise Line", "jubilee", "2026-11-07", "2026-11-14", sea_pay_eligible=True),
        _sailing("s2", "Royal Caribbean", "allure", "2026-11-14", "2026-11-21"),
        _sailing("s3", "Norwegian Cruise Line", "prima", "2026-12-05", "2026-12-12"),
        _sailing("s4", "MSC Cruises", "ghost-ship", "2026-11-20", "2026-11-27"),
        # Outside the requested window.
        _sailing("s5", "Carnival Cruise Line", "jubilee", "2027-03-01", "2027-03-06"),
    ]
    ships = [
        Ship(id="jubilee", name="Carnival Jubilee", cruise_line="Carnival Cruise Line"),
        Ship(id="allure", name="Allure of the Seas", cruise_line="Royal Caribbean", ship_class="Oasis"),
        Ship(id="prima", name="Norwegian Prima", cruise_line="Norwegian Cruise Line"),
    ]
    pricing = [_price("s1", 700), _price("s2", 1200), _price("s4", 800), _price("s5", 500)]
    availability = [
        AvailabilitySnapshot(sailing_id="s1", as_of=AS_OF, demand_pressure=0.8, available_cabin_types=["balcony"]),
    ]
    kw = {"sailings": sailings, "ships": ships, "pricing": pricing, "availability": availability}
    kw.update(extra)
    return CountingProvider(**kw)


def _input(**overrides) -> CruiseDecisionInput:
    payload = {
        "departurePort": "Galveston",
        "dateRange": {"start": "2026-11-01", "end": "2026-12-31"},
        "passengers": {"adults": 2},
        "budget": {"maxPerPerson": 1000},
    }
    payload.update(overrides)
    return CruiseDecisionInput.model_validate(payload)


def _run(decision_input, provider, **kw):
    return asyncio.run(run_decision_engine(decision_input, provider, today=TODAY, **kw))


def test_results_are_sorted_and_bounded():
    response = _run(_input(), _provider())

    ids = [r.sailing_id for r in response.results]
    assert set(ids) == {"s1", "s2", "s3", "s4"}
    scores = [r.score for r in response.results]
    assert scores == sorted(scores, reverse=True)
    for r in response.results:
        assert 0.0 <= r.score <= 1.0
        assert 0.0 <= r.confidence <= 1.0
        assert 1 <= len(r.reasons) <= 4
    assert response.weights == DecisionWeights()


def test_scaling_weights_does_not_change_ranking_or_scores():
    base = DecisionWeights(price=0.35, cabin=0.15, preference=0.20, demand=0.15, risk=0.15)
    doubled = DecisionWeights(price=0.70, cabin=0.30, preference=0.40, demand=0.30, risk=0.30)

    a = _run(_input(), _provider(), weights=base)
    b = _run(_input(), _provider(), weights=doubled)

    assert [r.model_dump() for r in a.results] == [r.model_dump() for r in b.results]


@pytest.mark.parametrize("k", [0.1, 0.3, 3, 7, 10])
def test_scaling_weights_keeps_midpoint_scores_stable(k):
    # At budget, no cabin/preference signal, 47 days out, unknown risk:
    # 0.35*0.6 + 0.15*0.5 + 0.20*0.5 + 0.15*0.55 + 0.15*0.7 = 0.5725 exactly.
    provider = InMemoryCruiseProvider(
        sailings=[_sailing("mid", "Royal Caribbean", None, "2026-12-05", "2026-12-12")],
        pricing=[_price("mid", 1000)],
    )
    base = DecisionWeights()
    scaled = DecisionWeights(
        price=base.price * k,
        cabin=base.cabin * k,
        preference=base.preference * k,
        demand=base.demand * k,
        risk=base.risk * k,
    )

    a = _run(_input(), provider, weights=base).results[0]
    b = _run(_input(), provider, weights=scaled).results[0]

    assert a.components.model_dump() == {
        "price": 0.6,
        "cabin": 0.5,
        "preference": 0.5,
        "demand": 0.55,
        "risk": 0.7,
    }
    assert a.score == 0.573
    assert b.score == a.score


def test_scaling_weights_by_non_powers_of_two_keeps_ranking():
    base = DecisionWeights()
    tripled = DecisionWeights(price=1.05, cabin=0.45, preference=0.6, demand=0.45, risk=0.45)

    a = _run(_input(), _provider(), weights=base)
    b = _run(_input(), _provider(), weights=tripled)

    assert [(r.sailing_id, r.score) for r in a.results] == [(r.sailing_id, r.score) for r in b.results]


def test_same_input_gives_identical_output():
    a = _run(_input(), _provider())
    b = _run(_input(), _provider())
    assert a.model_dump() == b.model_dump()


def test_disabled_override_is_a_hard_filter():
    best = _run(_input(), _provider()).results[0].sailing_id
    provider = _provider(overrides=[DecisionOverride(sailing_id=best, disabled=True)])

    ids = [r.sailing_id for r in _run(_input(), provider).results]
    assert best not in ids
    assert len(ids) == 3


def test_force_review_penalizes_risk_and_flags():
    provider = _provider(overrides=[DecisionOverride(sailing_id="s2", force_review=True)])
    result = next(r for r in _run(_input(), provider).results if r.sailing_id == "s2")
    assert FLAG_FORCE_REVIEW in result.flags
    assert result.components.risk == pytest.approx(0.3)


def test_empty_window_returns_no_results_with_weights():
    response = _run(_input(dateRange={"start": "2028-01-01", "end": "2028-01-31"}), _provider())
    assert response.results == []
    assert response.weights == DecisionWeights()


def test_limit_caps_results():
    assert len(_run(_input(), _provider(), limit=2).results) == 2
    assert len(_run(_input(), _provider(), limit=50).results) == 4


def test_missing_price_still_ranks_with_uncertainty_score():
    result = next(r for r in _run(_input(), _provider()).results if r.sailing_id == "s3")
    assert result.components.price == pytest.approx(0.4)
    assert FLAG_MISSING_PRICING in result.flags


def test_missing_ship_does_not_drop_sailing():
    ids = [r.sailing_id for r in _run(_input(), _provider()).results]
    assert "s4" in ids


def test_lower_confidence_without_budget_or_preferences():
    constrained = _run(_input(), _provider())
    unconstrained = _run(_input(budget=None), _provider())
    by_id = {r.sailing_id: r.confidence for r in constrained.results}
    for r in unconstrained.results:
        assert r.confidence <= by_id[r.sailing_id]


def test_equal_scores_order_by_departure_then_id():
    sailings = [
        _sailing("z", "Royal Caribbean", "allure", "2026-11-20", "2026-11-25"),
        _sailing("m", "Royal Caribbean", "allure", "2026-11-21", "2026-11-26"),
        _sailing("a", "Royal Caribbean", "allure", "2026-11-21", "2026-11-26"),
    ]
    provider = CountingProvider(
        sailings=sailings,
        ships=[Ship(id="allure", name="Allure of the Seas", cruise_line="Royal Caribbean")],
        pricing=[_price(s.id, 900) for s in sailings],
    )
    response = _run(_input(), provider)

    assert [r.sailing_id for r in response.results] == ["z", "a", "m"]
    assert len({r.score for r in response.results}) == 1


def test_batched_lookups_are_called_once_per_run():
    provider = _provider()
    _run(_input(), provider)
    assert provider.calls == Counter(
        {
            "get_sailings": 1,
            "get_ships_by_ids": 1,
            "get_latest_pricing_by_sailing_ids": 1,
            "get_latest_availability_by_sailing_ids": 1,
            "get_latest_risk_by_sailing_ids": 1,
            "get_overrides_by_sailing_ids": 1,
        }
    )


def test_constraints_filter_candidates():
    provider = _provider()
    ids = [r.sailing_id for r in _run(_input(constraints={"seaPayEligibleOnly": True}), provider).results]
    assert ids == ["s1"]

    # 2026-11-07 and 2026-11-14 are Saturdays; 2026-11-20 is a Friday and 2026-12-05 a Saturday.
    ids = {r.sailing_id for r in _run(_input(constraints={"mustSailWeekend": True}), provider).results}
    assert ids == {"s1", "s2", "s3"}


def test_preferred_line_scores_preference_component():
    response = _run(_input(preferences={"cruiseLine": ["carnival cruise line"]}), _provider())
    by_id = {r.sailing_id: r for r in response.results}
    assert by_id["s1"].components.preference == pytest.approx(1.0)
    assert by_id["s2"].components.preference == pytest.approx(0.1)
    assert "preferred line match" in by_id["s1"].flags
    assert "high demand" in by_id["s1"].flags
    assert "preferred line match" not in by_id["s2"].flags


@pytest.mark.parametrize(
    ("overrides", "limit"),
    [
        ({"departurePort": "Houston"}, None),
        ({}, 0),
    ],
)
def test_invalid_input_is_rejected_before_fetching(overrides, limit):
    provider = _provider()
    with pytest.raises(InvalidDecisionInput):
        _run(_input(**overrides), provider, limit=limit)
    assert provider.calls["get_sailings"] == 0


def test_model_validation_rejects_inverted_range_and_no_adults():
    with pytest.raises(ValidationError):
        _input(dateRange={"start": "2026-12-01", "end": "2026-11-01"})
    with pytest.raises(ValidationError):
        _input(passengers={"adults": 0})


def test_settings_overrides_apply_per_request():
    decision_input = _input(settingsOverrides={"decision": {"price": {"missing_price_score": 0.2}}})
    result = next(r for r in _run(decision_input, _provider()).results if r.sailing_id == "s3")
    assert result.components.price == pytest.approx(0.2)
    # The shared settings are untouched.
    assert get_settings().decision.price.missing_price_score == pytest.approx(0.4)


def test_disallowed_settings_override_is_invalid_input():
    decision_input = _input(settingsOverrides={"provider": {"rest_url": "http://evil"}})
    with pytest.raises(InvalidDecisionInput, match="provider"):
        _run(decision_input, _provider())


def test_provider_failure_propagates():
    class FailingPricing(CountingProvider):
        async def get_latest_pricing_by_sailing_ids(self, sailing_ids):
            raise ProviderError("pricing_latest query failed: 503")

    base = _provider()
    provider = FailingPricing(
        sailings=base.sailings,
        ships=base.ships.values(),
        pricing=base.pricing.values(),
    )
    with pytest.raises(ProviderError, match="503"):
        _run(_input(), provider)
