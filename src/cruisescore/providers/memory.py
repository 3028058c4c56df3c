"""
In-memory data provider + JSON catalog loader.

The catalog is a local JSON file (default: `data/catalogs/sailings.json`) with one list per
record type:

    {"ships": [...], "sailings": [...], "pricing": [...],
     "availability": [...], "risk": [...], "overrides": [...]}

Records are validated into typed Pydantic models so the engine can assume a consistent
shape. Pricing/availability/risk may contain many snapshots per sailing; only the latest
one per sailing is served. Used for local demos, the CLI and tests.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable

from pydantic import TypeAdapter

from cruisescore.core.env import resolve_project_path
from cruisescore.core.text import equals_loose
from cruisescore.domain.models import (
    AvailabilitySnapshot,
    DecisionLogEntry,
    DecisionOverride,
    DecisionWeights,
    PricingSnapshot,
    RiskSnapshot,
    Sailing,
    Ship,
)
from cruisescore.providers.base import CruiseDataProvider, DecisionAdminStore, latest_by_sailing

_SHIPS_ADAPTER = TypeAdapter(list[Ship])
_SAILINGS_ADAPTER = TypeAdapter(list[Sailing])
_PRICING_ADAPTER = TypeAdapter(list[PricingSnapshot])
_AVAILABILITY_ADAPTER = TypeAdapter(list[AvailabilitySnapshot])
_RISK_ADAPTER = TypeAdapter(list[RiskSnapshot])
_OVERRIDES_ADAPTER = TypeAdapter(list[DecisionOverride])


class InMemoryCruiseProvider(CruiseDataProvider):
    def __init__(
        self,
        *,
        sailings: Iterable[Sailing],
        ships: Iterable[Ship] = (),
        pricing: Iterable[PricingSnapshot] = (),
        availability: Iterable[AvailabilitySnapshot] = (),
        risks: Iterable[RiskSnapshot] = (),
        overrides: Iterable[DecisionOverride] = (),
    ) -> None:
        self.sailings = list(sailings)
        self.ships = {s.id: s for s in ships}
        self.pricing = latest_by_sailing(pricing)
        self.availability = latest_by_sailing(availability)
        self.risks = latest_by_sailing(risks)
        # Shared with InMemoryAdminStore so saved overrides take effect on the next run.
        self.overrides: dict[str, DecisionOverride] = {o.sailing_id: o for o in overrides}

    async def get_sailings(
        self, *, departure_port: str, start: date, end: date, ship_id: str | None = None
    ) -> list[Sailing]:
        out = []
        for s in self.sailings:
            if not equals_loose(s.departure_port, departure_port):
                continue
            if s.depart_date is None or not (start <= s.depart_date <= end):
                continue
            if ship_id and s.ship_id != ship_id:
                continue
            out.append(s)
        return out

    async def get_ships_by_ids(self, ship_ids: list[str]) -> dict[str, Ship]:
        return {i: self.ships[i] for i in ship_ids if i in self.ships}

    async def get_latest_pricing_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, PricingSnapshot]:
        return {i: self.pricing[i] for i in sailing_ids if i in self.pricing}

    async def get_latest_availability_by_sailing_ids(
        self, sailing_ids: list[str]
    ) -> dict[str, AvailabilitySnapshot]:
        return {i: self.availability[i] for i in sailing_ids if i in self.availability}

    async def get_latest_risk_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, RiskSnapshot]:
        return {i: self.risks[i] for i in sailing_ids if i in self.risks}

    async def get_overrides_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, DecisionOverride]:
        return {i: self.overrides[i] for i in sailing_ids if i in self.overrides}

    async def get_all_ships(self) -> list[Ship]:
        return sorted(self.ships.values(), key=lambda s: (s.cruise_line, s.name))


class InMemoryAdminStore(DecisionAdminStore):
    def __init__(
        self,
        *,
        overrides: dict[str, DecisionOverride] | None = None,
        weights: DecisionWeights | None = None,
    ) -> None:
        self.overrides = overrides if overrides is not None else {}
        self.weights = weights
        self.logs: list[DecisionLogEntry] = []

    async def get_weights(self) -> DecisionWeights | None:
        return self.weights

    async def save_weights(self, weights: DecisionWeights) -> DecisionWeights:
        self.weights = weights
        return weights

    async def list_overrides(self) -> list[DecisionOverride]:
        return list(reversed(self.overrides.values()))

    async def save_override(self, override: DecisionOverride) -> DecisionOverride:
        # Re-insert so the latest upsert lists first, matching the database ordering.
        self.overrides.pop(override.sailing_id, None)
        self.overrides[override.sailing_id] = override
        return override

    async def record_decision(self, entry: DecisionLogEntry) -> None:
        stamped = entry.model_copy(
            update={
                "id": len(self.logs) + 1,
                "created_at": entry.created_at or datetime.now(timezone.utc),
            }
        )
        self.logs.append(stamped)

    async def list_decisions(self, *, limit: int = 50) -> list[DecisionLogEntry]:
        return list(reversed(self.logs))[:limit]


def load_memory_provider(path: str | Path) -> InMemoryCruiseProvider:
    """Load and validate a sailings catalog JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Invalid catalog root in {resolved}; expected an object.")
    return InMemoryCruiseProvider(
        sailings=_SAILINGS_ADAPTER.validate_python(payload.get("sailings") or []),
        ships=_SHIPS_ADAPTER.validate_python(payload.get("ships") or []),
        pricing=_PRICING_ADAPTER.validate_python(payload.get("pricing") or []),
        availability=_AVAILABILITY_ADAPTER.validate_python(payload.get("availability") or []),
        risks=_RISK_ADAPTER.validate_python(payload.get("risk") or []),
        overrides=_OVERRIDES_ADAPTER.validate_python(payload.get("overrides") or []),
    )
