"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- data provider records (`Sailing`, `Ship`, pricing/availability/risk snapshots, overrides)
- API/CLI inputs (`CruiseDecisionInput`)
- explainable scoring output (`DecisionResult`, `DecisionResponse`, `CalendarEntry`)

JSON payloads use camelCase keys (`departurePort`, `sailingId`) because that is the
shape the site's API routes already speak; Python code uses snake_case attribute
names and may construct models with either.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: camelCase JSON aliases, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Ship(CamelModel):
    id: str
    name: str
    cruise_line: str
    ship_class: str | None = None


class Sailing(CamelModel):
    """One scheduled departure/return pair for a specific ship."""

    id: str
    cruise_line: str
    ship_id: str | None = None
    departure_port: str
    depart_date: date | None = None
    return_date: date | None = None
    nights: int = Field(0, ge=0)
    is_active: bool = True
    itinerary_tags: list[str] = Field(default_factory=list)
    sea_pay_eligible: bool = False

    @model_validator(mode="after")
    def _derive_nights(self) -> "Sailing":
        # Dates are the source of truth; a stored night count never disagrees with them.
        if self.depart_date and self.return_date:
            if self.return_date < self.depart_date:
                raise ValueError("return_date must be on or after depart_date")
            self.nights = (self.return_date - self.depart_date).days
        return self


class PricingSnapshot(CamelModel):
    """Point-in-time price observation for a sailing."""

    sailing_id: str
    min_per_person: float | None = None
    as_of: datetime
    currency: str = "USD"

    @field_validator("as_of")
    @classmethod
    def _normalize_as_of(cls, value: datetime) -> datetime:
        return _utc(value)


class AvailabilitySnapshot(CamelModel):
    """Inventory signal for a sailing (cabin types still bookable + demand pressure)."""

    sailing_id: str
    as_of: datetime
    demand_pressure: float | None = Field(default=None, ge=0, le=1)
    available_cabin_types: list[str] = Field(default_factory=list)

    @field_validator("as_of")
    @classmethod
    def _normalize_as_of(cls, value: datetime) -> datetime:
        return _utc(value)


class RiskSnapshot(CamelModel):
    """Policy/cancellation risk estimate for a sailing (0 = safe, 1 = risky)."""

    sailing_id: str
    as_of: datetime
    risk_score: float | None = Field(default=None, ge=0, le=1)

    @field_validator("as_of")
    @classmethod
    def _normalize_as_of(cls, value: datetime) -> datetime:
        return _utc(value)


class DecisionOverride(CamelModel):
    """Administrative flag on a sailing: exclude it, or keep it but ask for manual review."""

    sailing_id: str
    disabled: bool = False
    force_review: bool = False
    note: str | None = None

    @field_validator("disabled", "force_review", mode="before")
    @classmethod
    def _null_is_false(cls, value: object) -> object:
        # Database rows carry NULL for flags that were never set.
        return False if value is None else value


class DateRange(CamelModel):
    """Inclusive departure window."""

    start: date
    end: date

    @model_validator(mode="after")
    def _validate_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("dateRange.start must be on or before dateRange.end")
        return self


class Passengers(CamelModel):
    adults: int = Field(..., ge=1)
    children: int | None = Field(default=None, ge=0)

    @property
    def total(self) -> int:
        return self.adults + (self.children or 0)


class Budget(CamelModel):
    max_per_person: float | None = Field(default=None, gt=0)
    flexible: bool = False


class Preferences(CamelModel):
    cruise_line: list[str] = Field(default_factory=list)
    ship_class: list[str] = Field(default_factory=list)
    itinerary: list[str] = Field(default_factory=list)
    cabin_type: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.cruise_line or self.ship_class or self.itinerary or self.cabin_type)


class Constraints(CamelModel):
    sea_pay_eligible_only: bool = False
    must_sail_weekend: bool = False
    ship_id: str | None = None


class CruiseDecisionInput(CamelModel):
    """Caller-supplied request for a ranked sailing shortlist."""

    departure_port: str
    date_range: DateRange
    passengers: Passengers
    budget: Budget | None = None
    preferences: Preferences | None = None
    constraints: Constraints | None = None
    settings_overrides: dict[str, Any] | None = None


class DecisionWeights(CamelModel):
    """Five-factor weighting; the engine divides by the sum, so weights need not add to 1."""

    model_config = ConfigDict(frozen=True)

    price: float = Field(0.35, ge=0)
    cabin: float = Field(0.15, ge=0)
    preference: float = Field(0.20, ge=0)
    demand: float = Field(0.15, ge=0)
    risk: float = Field(0.15, ge=0)

    @model_validator(mode="after")
    def _validate_total(self) -> "DecisionWeights":
        if self.total() <= 0:
            raise ValueError("decision weights must not all be zero")
        return self

    def total(self) -> float:
        return self.price + self.cabin + self.preference + self.demand + self.risk


DEFAULT_WEIGHTS = DecisionWeights()


class DecisionComponents(CamelModel):
    price: float = Field(..., ge=0, le=1)
    cabin: float = Field(..., ge=0, le=1)
    preference: float = Field(..., ge=0, le=1)
    demand: float = Field(..., ge=0, le=1)
    risk: float = Field(..., ge=0, le=1)


class DecisionResult(CamelModel):
    """One ranked sailing with its explainable breakdown."""

    sailing_id: str
    score: float = Field(..., ge=0, le=1)
    components: DecisionComponents
    confidence: float = Field(..., ge=0, le=1)
    flags: list[str] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)


class DecisionResponse(CamelModel):
    results: list[DecisionResult]
    weights: DecisionWeights


class CalendarEntry(CamelModel):
    """Display-ready sailing for month/list calendar views."""

    sailing_id: str
    cruise_line: str
    ship_name: str
    depart_date: date
    return_date: date | None = None
    nights: int
    days: int
    duration_label: str
    demand_level: Literal["low", "medium", "high"]
    price_from: float | None = None
    decision_score: float | None = None
    confidence: float | None = None
    flags: list[str] | None = None


class DecisionLogEntry(CamelModel):
    """Audit record of one engine run."""

    id: int | None = None
    input_hash: str
    top_sailing_id: str | None = None
    score_spread: float = 0.0
    confidence: float = 0.0
    created_at: datetime | None = None
