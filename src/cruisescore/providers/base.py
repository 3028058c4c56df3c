"""
Data provider contract.

The decision engine depends only on `CruiseDataProvider`; every concrete source
(in-memory catalog, PostgREST database) implements it and owns its own schema
quirks, fallbacks and transport errors.

Contract:
- `get_sailings` returns every sailing departing `departure_port` with a depart date in
  [start, end] inclusive. Order is unspecified.
- Batched lookups return mappings; ids with no data are simply absent (never an error).
- Failures raise. An empty list/mapping always means "no data", never "the store is down".

`DecisionAdminStore` is the matching contract for persisted engine configuration:
decision weights, per-sailing overrides and the decision audit log.
"""

from __future__ import annotations

import abc
from datetime import date
from typing import Iterable, TypeVar

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


class ProviderError(RuntimeError):
    """Upstream data failure (network, HTTP status, malformed payload)."""


SnapshotT = TypeVar("SnapshotT", PricingSnapshot, AvailabilitySnapshot, RiskSnapshot)


def latest_by_sailing(snapshots: Iterable[SnapshotT]) -> dict[str, SnapshotT]:
    """Resolve many snapshots to the most recent one per sailing.

    Snapshots are stable-sorted ascending by `as_of` and the last one wins, so among equal
    timestamps the one that came later in the input is kept.
    """
    out: dict[str, SnapshotT] = {}
    for snap in sorted(snapshots, key=lambda s: s.as_of):
        out[snap.sailing_id] = snap
    return out


class CruiseDataProvider(abc.ABC):
    """Read-only source of sailings, ships and per-sailing signals."""

    @abc.abstractmethod
    async def get_sailings(
        self, *, departure_port: str, start: date, end: date, ship_id: str | None = None
    ) -> list[Sailing]:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_ships_by_ids(self, ship_ids: list[str]) -> dict[str, Ship]:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_latest_pricing_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, PricingSnapshot]:
        raise NotImplementedError

    async def get_latest_availability_by_sailing_ids(
        self, sailing_ids: list[str]
    ) -> dict[str, AvailabilitySnapshot]:
        """Optional inventory signal; sources without one return no data."""
        return {}

    async def get_latest_risk_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, RiskSnapshot]:
        """Optional risk signal; sources without one return no data."""
        return {}

    async def get_overrides_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, DecisionOverride]:
        """Optional administrative overrides; sources without one return no data."""
        return {}

    async def get_all_ships(self) -> list[Ship]:
        """Full fleet listing for UI collaborators (not used by the engine)."""
        raise NotImplementedError(f"{type(self).__name__} does not list ships")


class DecisionAdminStore(abc.ABC):
    """Persisted engine configuration and audit trail."""

    @abc.abstractmethod
    async def get_weights(self) -> DecisionWeights | None:
        """Stored weights, or None when nothing has been saved yet."""

    @abc.abstractmethod
    async def save_weights(self, weights: DecisionWeights) -> DecisionWeights:
        ...

    @abc.abstractmethod
    async def list_overrides(self) -> list[DecisionOverride]:
        ...

    @abc.abstractmethod
    async def save_override(self, override: DecisionOverride) -> DecisionOverride:
        ...

    @abc.abstractmethod
    async def record_decision(self, entry: DecisionLogEntry) -> None:
        ...

    @abc.abstractmethod
    async def list_decisions(self, *, limit: int = 50) -> list[DecisionLogEntry]:
        ...
