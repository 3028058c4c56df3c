"""
PostgREST (Supabase) data provider.

Reads the site's Postgres tables over the PostgREST HTTP interface. All schema variance
lives here, invisible to the engine:
- current schema: `sailings.depart_date` + flat `cruise_line`/`ship_id` columns
- legacy schema: `sailings.sail_date` + nested `ship:ships(..., cruise_line:cruise_lines(name))`
  (used automatically when the current columns are missing)
- numeric columns that arrive as strings, NULL arrays, comma-separated port lists

Transport and HTTP failures are raised as `ProviderError`; nothing is retried here. Rows that
fail validation are skipped with a warning (a missing snapshot has a scoring fallback),
except override rows, where a malformed row is a `ProviderError`.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, TypeVar

import httpx
from pydantic import ValidationError

from cruisescore.config.settings import Settings
from cruisescore.core.http import get_json, post_json
from cruisescore.core.time import parse_iso_date
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
from cruisescore.providers.base import CruiseDataProvider, DecisionAdminStore, ProviderError, latest_by_sailing

logger = logging.getLogger(__name__)

T = TypeVar("T")

SAILINGS_SELECT = (
    "id,depart_date,return_date,nights,cruise_line,ship_id,departure_port,"
    "itinerary_tags,seapay_eligible,is_active"
)
LEGACY_SAILINGS_SELECT = (
    "id,sail_date,return_date,ports,itinerary,departure_port,sea_pay_eligible,is_active,"
    "ship:ships(id,name,ship_class,cruise_line:cruise_lines(name))"
)
SHIPS_SELECT = "id,name,cruise_line,ship_class"
PRICING_SELECT = "sailing_id,as_of,min_per_person,currency"
AVAILABILITY_SELECT = "sailing_id,as_of,demand_pressure,available_cabin_types"
RISK_SELECT = "sailing_id,as_of,risk_score"
OVERRIDES_SELECT = "sailing_id,disabled,force_review,note"
LOGS_SELECT = "id,input_hash,top_sailing_id,score_spread,confidence,created_at"

# PostgREST answers 400 with Postgres code 42703 when a selected column does not exist.
_UNDEFINED_COLUMN = "42703"


def _in_filter(values: list[str]) -> str:
    quoted = ",".join('"' + str(v).replace('"', '\\"') + '"' for v in values)
    return f"in.({quoted})"


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _first(value: Any) -> Any:
    # Embedded relations come back as an object or a one-element list depending on the FK.
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _split_tags(*values: Any) -> list[str]:
    tags: list[str] = []
    for value in values:
        if isinstance(value, list):
            tags.extend(str(v).strip() for v in value if v)
        elif isinstance(value, str):
            tags.extend(part.strip() for part in value.split(","))
    return [t for t in tags if t]


def sailing_from_row(row: dict[str, Any], *, default_port: str) -> Sailing:
    """Map a current or legacy `sailings` row onto a Sailing."""
    ship = _first(row.get("ship"))
    line_row = _first(ship.get("cruise_line")) if isinstance(ship, dict) else None
    cruise_line = row.get("cruise_line")
    if not isinstance(cruise_line, str) or not cruise_line.strip():
        cruise_line = (line_row or {}).get("name") if isinstance(line_row, dict) else None
    ship_id = row.get("ship_id") or (ship.get("id") if isinstance(ship, dict) else None)

    return Sailing(
        id=str(row["id"]),
        cruise_line=cruise_line or "Unknown",
        ship_id=str(ship_id) if ship_id else None,
        departure_port=row.get("departure_port") or default_port,
        depart_date=parse_iso_date(row.get("depart_date") or row.get("sail_date")),
        return_date=parse_iso_date(row.get("return_date")),
        nights=max(0, int(_to_float(row.get("nights")) or 0)),
        is_active=row.get("is_active") is not False,
        itinerary_tags=_split_tags(row.get("itinerary_tags"), row.get("ports"), row.get("itinerary")),
        sea_pay_eligible=bool(row.get("seapay_eligible") or row.get("sea_pay_eligible")),
    )


def ship_from_row(row: dict[str, Any]) -> Ship:
    line = row.get("cruise_line")
    if isinstance(line, (dict, list)):
        line = (_first(line) or {}).get("name")
    return Ship(
        id=str(row["id"]),
        name=row.get("name") or "",
        cruise_line=line or "Unknown",
        ship_class=row.get("ship_class") or None,
    )


def _rows_or_skip(table: str, rows: list[dict[str, Any]], build: Callable[[dict[str, Any]], T]) -> list[T]:
    """Map rows with `build`, dropping (and logging) rows that do not validate."""
    out: list[T] = []
    for row in rows:
        try:
            out.append(build(row))
        except (KeyError, ValidationError) as e:
            logger.warning("Skipping malformed %s row id=%s: %s", table, row.get("sailing_id", row.get("id")), e)
    return out


class PostgrestClient:
    """Thin request wrapper: auth headers, URL building, error translation."""

    def __init__(self, settings: Settings) -> None:
        cfg = settings.provider
        if not cfg.rest_url or not cfg.rest_key:
            raise ProviderError("Missing Supabase environment variables (SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY).")
        self.base_url = cfg.rest_url.rstrip("/") + "/rest/v1"
        self.timeout_seconds = float(cfg.http_timeout_seconds)
        self._headers = {"apikey": cfg.rest_key, "Authorization": f"Bearer {cfg.rest_key}"}

    async def select(self, table: str, params: list[tuple[str, Any]]) -> list[dict[str, Any]]:
        try:
            data = await get_json(
                f"{self.base_url}/{table}",
                params=params,
                headers=self._headers,
                timeout_seconds=self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"{table} query failed: {e}") from e
        except ValueError as e:
            raise ProviderError(f"{table} query returned invalid JSON: {e}") from e
        if not isinstance(data, list):
            raise ProviderError(f"{table} query returned {type(data).__name__}, expected a list")
        return [r for r in data if isinstance(r, dict)]

    async def upsert(self, table: str, payload: Any, *, on_conflict: str | None = None) -> Any:
        headers = {**self._headers, "Prefer": "resolution=merge-duplicates,return=representation"}
        params = {"on_conflict": on_conflict} if on_conflict else None
        try:
            return await post_json(
                f"{self.base_url}/{table}",
                payload=payload,
                params=params,
                headers=headers,
                timeout_seconds=self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"{table} write failed: {e}") from e


def _is_undefined_column(exc: ProviderError) -> bool:
    cause = exc.__cause__
    if not isinstance(cause, httpx.HTTPStatusError) or cause.response.status_code != 400:
        return False
    try:
        body = cause.response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("code") == _UNDEFINED_COLUMN


class PostgrestCruiseProvider(CruiseDataProvider):
    def __init__(self, settings: Settings, client: PostgrestClient | None = None) -> None:
        self.settings = settings
        self.tables = settings.provider.tables
        self.max_sailings = int(settings.provider.max_sailings)
        self.client = client or PostgrestClient(settings)

    async def get_sailings(
        self, *, departure_port: str, start: date, end: date, ship_id: str | None = None
    ) -> list[Sailing]:
        try:
            rows = await self._select_sailings(
                SAILINGS_SELECT, "depart_date", departure_port, start, end, ship_id
            )
        except ProviderError as e:
            if not _is_undefined_column(e):
                raise
            logger.info("sailings table lacks depart_date columns; using legacy sail_date schema")
            rows = await self._select_sailings(
                LEGACY_SAILINGS_SELECT, "sail_date", departure_port, start, end, ship_id
            )

        return _rows_or_skip(
            self.tables.sailings, rows, lambda r: sailing_from_row(r, default_port=departure_port)
        )

    async def _select_sailings(
        self,
        select: str,
        date_column: str,
        departure_port: str,
        start: date,
        end: date,
        ship_id: str | None,
    ) -> list[dict[str, Any]]:
        params: list[tuple[str, Any]] = [
            ("select", select),
            ("departure_port", f"eq.{departure_port}"),
            (date_column, f"gte.{start.isoformat()}"),
            (date_column, f"lte.{end.isoformat()}"),
            ("order", f"{date_column}.asc"),
            ("limit", self.max_sailings),
        ]
        if ship_id:
            params.append(("ship_id", f"eq.{ship_id}"))
        return await self.client.select(self.tables.sailings, params)

    async def get_ships_by_ids(self, ship_ids: list[str]) -> dict[str, Ship]:
        if not ship_ids:
            return {}
        rows = await self.client.select(
            self.tables.ships, [("select", SHIPS_SELECT), ("id", _in_filter(ship_ids))]
        )
        ships = _rows_or_skip(self.tables.ships, rows, ship_from_row)
        return {s.id: s for s in ships}

    async def get_all_ships(self) -> list[Ship]:
        rows = await self.client.select(self.tables.ships, [("select", SHIPS_SELECT), ("order", "name.asc")])
        return _rows_or_skip(self.tables.ships, rows, ship_from_row)

    async def _latest(self, table: str, select: str, sailing_ids: list[str]) -> list[dict[str, Any]]:
        if not sailing_ids:
            return []
        return await self.client.select(table, [("select", select), ("sailing_id", _in_filter(sailing_ids))])

    async def get_latest_pricing_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, PricingSnapshot]:
        rows = await self._latest(self.tables.pricing, PRICING_SELECT, sailing_ids)
        snaps = _rows_or_skip(
            self.tables.pricing,
            rows,
            lambda r: PricingSnapshot(
                sailing_id=str(r["sailing_id"]),
                as_of=r["as_of"],
                min_per_person=_to_float(r.get("min_per_person")),
                currency=r.get("currency") or "USD",
            ),
        )
        # The *_latest views already hold one row per sailing; resolving again keeps plain tables safe.
        return latest_by_sailing(snaps)

    async def get_latest_availability_by_sailing_ids(
        self, sailing_ids: list[str]
    ) -> dict[str, AvailabilitySnapshot]:
        rows = await self._latest(self.tables.availability, AVAILABILITY_SELECT, sailing_ids)
        snaps = _rows_or_skip(
            self.tables.availability,
            rows,
            lambda r: AvailabilitySnapshot(
                sailing_id=str(r["sailing_id"]),
                as_of=r["as_of"],
                demand_pressure=_to_float(r.get("demand_pressure")),
                available_cabin_types=list(r.get("available_cabin_types") or []),
            ),
        )
        return latest_by_sailing(snaps)

    async def get_latest_risk_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, RiskSnapshot]:
        rows = await self._latest(self.tables.risk, RISK_SELECT, sailing_ids)
        snaps = _rows_or_skip(
            self.tables.risk,
            rows,
            lambda r: RiskSnapshot(
                sailing_id=str(r["sailing_id"]),
                as_of=r["as_of"],
                risk_score=_to_float(r.get("risk_score")),
            ),
        )
        return latest_by_sailing(snaps)

    async def get_overrides_by_sailing_ids(self, sailing_ids: list[str]) -> dict[str, DecisionOverride]:
        rows = await self._latest(self.tables.overrides, OVERRIDES_SELECT, sailing_ids)
        overrides: dict[str, DecisionOverride] = {}
        for r in rows:
            # A skipped row could hide a `disabled` flag, so a bad override fails the lookup.
            try:
                override = DecisionOverride.model_validate(r)
            except ValidationError as e:
                raise ProviderError(f"{self.tables.overrides} returned a malformed row: {e}") from e
            overrides[override.sailing_id] = override
        return overrides


class PostgrestAdminStore(DecisionAdminStore):
    """Decision weights (single row id=1), overrides and audit log tables."""

    def __init__(self, settings: Settings, client: PostgrestClient | None = None) -> None:
        self.tables = settings.provider.tables
        self.client = client or PostgrestClient(settings)

    async def get_weights(self) -> DecisionWeights | None:
        rows = await self.client.select(self.tables.weights, [("select", "*"), ("limit", 1)])
        if not rows:
            return None
        # NULL columns fall back to the model defaults.
        values: dict[str, float] = {}
        for name in ("price", "cabin", "preference", "demand", "risk"):
            value = _to_float(rows[0].get(name))
            if value is not None:
                values[name] = value
        return DecisionWeights(**values)

    async def save_weights(self, weights: DecisionWeights) -> DecisionWeights:
        await self.client.upsert(self.tables.weights, {"id": 1, **weights.model_dump()})
        return weights

    async def list_overrides(self) -> list[DecisionOverride]:
        rows = await self.client.select(
            self.tables.overrides, [("select", OVERRIDES_SELECT), ("order", "created_at.desc")]
        )
        return [DecisionOverride.model_validate(r) for r in rows]

    async def save_override(self, override: DecisionOverride) -> DecisionOverride:
        await self.client.upsert(
            self.tables.overrides, override.model_dump(mode="json"), on_conflict="sailing_id"
        )
        return override

    async def record_decision(self, entry: DecisionLogEntry) -> None:
        payload = entry.model_dump(mode="json", exclude={"id", "created_at"})
        await self.client.upsert(self.tables.logs, payload)

    async def list_decisions(self, *, limit: int = 50) -> list[DecisionLogEntry]:
        rows = await self.client.select(
            self.tables.logs,
            [("select", LOGS_SELECT), ("order", "created_at.desc"), ("limit", limit)],
        )
        return [DecisionLogEntry.model_validate(r) for r in rows]
