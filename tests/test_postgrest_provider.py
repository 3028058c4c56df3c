import asyncio
from datetime import date

import httpx
import pytest

import cruisescore.providers.postgrest as postgrest
from cruisescore.config.settings import Settings
from cruisescore.providers.base import ProviderError
from cruisescore.providers.postgrest import PostgrestAdminStore, PostgrestCruiseProvider, sailing_from_row


def _settings() -> Settings:
    return Settings.model_validate(
        {"provider": {"kind": "postgrest", "rest_url": "https://db.example.co/", "rest_key": "service-key"}}
    )


def _undefined_column(url: str) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", url)
    response = httpx.Response(400, json={"code": "42703", "message": "column sailings.depart_date does not exist"}, request=request)
    return httpx.HTTPStatusError("400 Bad Request", request=request, response=response)


class FakeRest:
    """Stands in for `get_json`: records every call and answers per table."""

    def __init__(self, answers):
        self.answers = answers
        self.calls = []

    async def __call__(self, url, *, params=None, headers=None, timeout_seconds=15):
        self.calls.append((url, list(params or []), headers))
        table = url.rsplit("/", 1)[-1]
        answer = self.answers[table]
        if callable(answer):
            answer = answer(url, params)
        if isinstance(answer, Exception):
            raise answer
        return answer


def test_missing_credentials_is_a_provider_error():
    with pytest.raises(ProviderError, match="SUPABASE_URL"):
        PostgrestCruiseProvider(Settings())


def test_get_sailings_maps_current_schema(monkeypatch):
    fake = FakeRest(
        {
            "sailings": [
                {
                    "id": "s1",
                    "depart_date": "2026-11-07",
                    "return_date": "2026-11-14",
                    "cruise_line": "Carnival Cruise Line",
                    "ship_id": "jubilee",
                    "departure_port": "Galveston",
                    "itinerary_tags": ["Cozumel", "Roatan"],
                    "seapay_eligible": True,
                },
                # Malformed row (return before depart) is skipped, not fatal.
                {"id": "bad", "depart_date": "2026-11-10", "return_date": "2026-11-01", "cruise_line": "X"},
            ]
        }
    )
    monkeypatch.setattr(postgrest, "get_json", fake)
    provider = PostgrestCruiseProvider(_settings())

    sailings = asyncio.run(
        provider.get_sailings(departure_port="Galveston", start=date(2026, 11, 1), end=date(2026, 11, 30))
    )

    assert [s.id for s in sailings] == ["s1"]
    assert sailings[0].nights == 7
    assert sailings[0].sea_pay_eligible is True
    url, params, headers = fake.calls[0]
    assert url == "https://db.example.co/rest/v1/sailings"
    assert ("depart_date", "gte.2026-11-01") in params
    assert ("limit", 240) in params
    assert headers["Authorization"] == "Bearer service-key"


def test_get_sailings_falls_back_to_legacy_schema(monkeypatch):
    def sailings_answer(url, params):
        if dict(params)["select"] == postgrest.SAILINGS_SELECT:
            return _undefined_column(url)
        return [
            {
                "id": "legacy-1",
                "sail_date": "2026-12-05",
                "return_date": "2026-12-10",
                "ports": "Cozumel, Progreso",
                "sea_pay_eligible": None,
                "ship": [{"id": "mariner", "name": "Mariner of the Seas", "cruise_line": {"name": "Royal Caribbean"}}],
            }
        ]

    fake = FakeRest({"sailings": sailings_answer})
    monkeypatch.setattr(postgrest, "get_json", fake)
    provider = PostgrestCruiseProvider(_settings())

    sailings = asyncio.run(
        provider.get_sailings(departure_port="Galveston", start=date(2026, 12, 1), end=date(2026, 12, 31))
    )

    assert len(fake.calls) == 2
    assert ("sail_date", "lte.2026-12-31") in fake.calls[1][1]
    s = sailings[0]
    assert s.cruise_line == "Royal Caribbean"
    assert s.ship_id == "mariner"
    assert s.depart_date == date(2026, 12, 5)
    assert s.nights == 5
    assert s.itinerary_tags == ["Cozumel", "Progreso"]
    assert s.departure_port == "Galveston"


def test_other_http_errors_propagate(monkeypatch):
    request = httpx.Request("GET", "https://db.example.co/rest/v1/sailings")
    outage = httpx.HTTPStatusError(
        "503", request=request, response=httpx.Response(503, text="unavailable", request=request)
    )
    monkeypatch.setattr(postgrest, "get_json", FakeRest({"sailings": outage}))
    provider = PostgrestCruiseProvider(_settings())

    with pytest.raises(ProviderError, match="sailings"):
        asyncio.run(provider.get_sailings(departure_port="Galveston", start=date(2026, 1, 1), end=date(2026, 2, 1)))


def test_pricing_lookup_batches_and_coerces_numeric_strings(monkeypatch):
    fake = FakeRest(
        {
            "pricing_latest": [
                {"sailing_id": "s1", "as_of": "2026-10-01T00:00:00Z", "min_per_person": "799.00"},
                {"sailing_id": "s1", "as_of": "2026-10-10T00:00:00Z", "min_per_person": "749.00"},
                {"sailing_id": "s2", "as_of": "2026-10-10T00:00:00Z", "min_per_person": None},
            ]
        }
    )
    monkeypatch.setattr(postgrest, "get_json", fake)
    provider = PostgrestCruiseProvider(_settings())

    pricing = asyncio.run(provider.get_latest_pricing_by_sailing_ids(["s1", "s2"]))

    assert pricing["s1"].min_per_person == 749.0
    assert pricing["s2"].min_per_person is None
    assert len(fake.calls) == 1
    assert ("sailing_id", 'in.("s1","s2")') in fake.calls[0][1]


def test_empty_id_lists_skip_the_network(monkeypatch):
    fake = FakeRest({})
    monkeypatch.setattr(postgrest, "get_json", fake)
    provider = PostgrestCruiseProvider(_settings())

    assert asyncio.run(provider.get_ships_by_ids([])) == {}
    assert asyncio.run(provider.get_latest_risk_by_sailing_ids([])) == {}
    assert fake.calls == []


def test_admin_store_weights_fill_null_columns_from_defaults(monkeypatch):
    fake = FakeRest({"decision_weights": [{"id": 1, "price": "0.5", "cabin": None, "preference": 0.2, "demand": 0.15, "risk": 0.15}]})
    monkeypatch.setattr(postgrest, "get_json", fake)
    store = PostgrestAdminStore(_settings())

    weights = asyncio.run(store.get_weights())
    assert weights.price == 0.5
    assert weights.cabin == 0.15


def test_admin_store_overrides_tolerate_null_flags(monkeypatch):
    fake = FakeRest(
        {"decision_overrides": [{"sailing_id": "s1", "disabled": None, "force_review": True, "note": None}]}
    )
    monkeypatch.setattr(postgrest, "get_json", fake)
    store = PostgrestAdminStore(_settings())

    overrides = asyncio.run(store.list_overrides())
    assert overrides[0].disabled is False
    assert overrides[0].force_review is True


def test_sailing_from_row_defaults():
    s = sailing_from_row({"id": 42, "sail_date": "2027-01-09T00:00:00+00:00"}, default_port="Galveston")
    assert s.id == "42"
    assert s.cruise_line == "Unknown"
    assert s.ship_id is None
    assert s.depart_date == date(2027, 1, 9)
    assert s.is_active is True


def test_malformed_snapshot_and_ship_rows_are_skipped(monkeypatch):
    fake = FakeRest(
        {
            "pricing_latest": [
                {"sailing_id": "s1", "as_of": None, "min_per_person": "799.00"},
                {"sailing_id": "s2", "as_of": "2026-10-10T00:00:00Z", "min_per_person": "649.00"},
            ],
            "risk_latest": [{"as_of": "2026-10-10T00:00:00Z", "risk_score": 0.2}],
            "ships": [{"id": "jubilee", "name": "Carnival Jubilee"}, {"name": "No Id"}],
        }
    )
    monkeypatch.setattr(postgrest, "get_json", fake)
    provider = PostgrestCruiseProvider(_settings())

    pricing = asyncio.run(provider.get_latest_pricing_by_sailing_ids(["s1", "s2"]))
    risks = asyncio.run(provider.get_latest_risk_by_sailing_ids(["s1"]))
    ships = asyncio.run(provider.get_ships_by_ids(["jubilee", "ghost"]))

    assert list(pricing) == ["s2"]
    assert risks == {}
    assert list(ships) == ["jubilee"]


def test_malformed_override_row_is_a_provider_error(monkeypatch):
    fake = FakeRest({"decision_overrides": [{"sailing_id": "s1", "disabled": "sometimes"}]})
    monkeypatch.setattr(postgrest, "get_json", fake)
    provider = PostgrestCruiseProvider(_settings())

    with pytest.raises(ProviderError, match="decision_overrides"):
        asyncio.run(provider.get_overrides_by_sailing_ids(["s1"]))
