from datetime import datetime, timezone

import pytest

from cruisescore.config.settings import get_settings
from cruisescore.domain.models import Budget, PricingSnapshot
from cruisescore.features.price import (
    FLAG_MISSING_PRICING,
    FLAG_OVER_BUDGET,
    FLAG_UNDER_BUDGET,
    score_price,
)

AS_OF = datetime(2026, 10, 1, tzinfo=timezone.utc)


def _pricing(price: float | None) -> PricingSnapshot:
    return PricingSnapshot(sailing_id="s1", min_per_person=price, as_of=AS_OF)


def test_no_budget_is_neutral():
    settings = get_settings()
    out = score_price(None, _pricing(800), settings=settings)
    assert out.score == pytest.approx(0.5)
    assert out.flags == []


def test_budget_without_price_scores_below_neutral_and_flags():
    settings = get_settings()
    out = score_price(Budget(max_per_person=1000), None, settings=settings)
    assert out.score == pytest.approx(0.4)
    assert FLAG_MISSING_PRICING in out.flags


def test_non_positive_price_counts_as_missing():
    settings = get_settings()
    out = score_price(Budget(max_per_person=1000), _pricing(0), settings=settings)
    assert out.score == pytest.approx(0.4)
    assert FLAG_MISSING_PRICING in out.flags


def test_at_budget_and_deep_discount_anchor_points():
    settings = get_settings()
    budget = Budget(max_per_person=1000)
    assert score_price(budget, _pricing(1000), settings=settings).score == pytest.approx(0.6)
    assert score_price(budget, _pricing(600), settings=settings).score == pytest.approx(1.0)
    # Saturates below the full-score discount.
    assert score_price(budget, _pricing(300), settings=settings).score == pytest.approx(1.0)


@pytest.mark.parametrize("flexible", [False, True])
def test_cheaper_price_never_scores_lower(flexible):
    settings = get_settings()
    budget = Budget(max_per_person=1000, flexible=flexible)
    prices = [250, 500, 650, 800, 950, 1000, 1050, 1200, 1600, 3000]
    scores = [score_price(budget, _pricing(p), settings=settings).score for p in prices]
    assert scores == sorted(scores, reverse=True)
    assert all(0.0 <= s <= 1.0 for s in scores)


def test_flexible_budget_penalizes_overage_less_than_strict():
    settings = get_settings()
    strict = score_price(Budget(max_per_person=1000), _pricing(1100), settings=settings)
    flexible = score_price(Budget(max_per_person=1000, flexible=True), _pricing(1100), settings=settings)
    assert flexible.score > strict.score
    assert FLAG_OVER_BUDGET in strict.flags
    assert FLAG_OVER_BUDGET in flexible.flags


def test_under_budget_flag_needs_a_real_discount():
    settings = get_settings()
    budget = Budget(max_per_person=1000)
    assert FLAG_UNDER_BUDGET in score_price(budget, _pricing(800), settings=settings).flags
    assert FLAG_UNDER_BUDGET not in score_price(budget, _pricing(950), settings=settings).flags
