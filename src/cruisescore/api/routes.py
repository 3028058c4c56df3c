"""
API routes.

Endpoints:
- POST `/api/cruise/decision`: ranked sailing shortlist for a decision input.
- GET  `/api/calendar`: calendar entries for every sailing in a window.
- GET/POST `/api/decision-engine/weights`: read or save the active weights.
- GET/POST `/api/decision-engine/overrides`: list or upsert per-sailing overrides.
- GET  `/api/decision-engine/logs`: latest decision audit records.
- GET  `/api/health`: liveness.

Errors are returned as `{"error": message}`. Only request problems map to 400: pydantic
validation of the request itself, bad query values and `InvalidDecisionInput`. Anything
raised while fetching or ranking data (provider/network failures, malformed rows) is a 500.

Decision, calendar and weights responses carry `X-Weights-Source`: `stored`, `default`
(nothing saved yet) or `fallback` (the admin store failed and defaults were used).
"""

from __future__ import annotations

import logging
from datetime import date
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Body, Query, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from cruisescore.config.settings import get_settings
from cruisescore.core.hashing import stable_hash
from cruisescore.core.time import parse_iso_date, today_in
from cruisescore.domain.models import (
    CruiseDecisionInput,
    DecisionLogEntry,
    DecisionOverride,
    DecisionResponse,
    DecisionWeights,
)
from cruisescore.providers.base import CruiseDataProvider, DecisionAdminStore
from cruisescore.providers.factory import build_backends
from cruisescore.recommender.calendar import build_calendar_entries, calendar_input
from cruisescore.recommender.engine import InvalidDecisionInput, run_decision_engine

logger = logging.getLogger(__name__)

router = APIRouter()

_TRUTHY = {"1", "true", "yes", "y"}


@lru_cache
def _backends() -> tuple[CruiseDataProvider, DecisionAdminStore]:
    return build_backends(get_settings())


def _error(status_code: int, e: Exception, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={**extra, "error": str(e) or type(e).__name__})


def _result_limit() -> int:
    cfg = get_settings().decision
    return min(cfg.result_limit_default, cfg.result_limit_max)


WEIGHTS_SOURCE_HEADER = "X-Weights-Source"


async def _active_weights(store: DecisionAdminStore) -> tuple[DecisionWeights, str]:
    """Stored weights and where they came from; the configured defaults when none are saved.

    A failing store does not fail the request, but it changes rankings, so it is logged at
    error level and reported to the caller as source `fallback`.
    """
    try:
        stored = await store.get_weights()
    except Exception:
        logger.exception("Weights store unavailable; ranking with default weights")
        return get_settings().decision.weights, "fallback"
    if stored is None:
        return get_settings().decision.weights, "default"
    return stored, "stored"


def _log_entry(decision_input: CruiseDecisionInput, response: DecisionResponse) -> DecisionLogEntry | None:
    if not response.results:
        return None
    scores = sorted(r.score for r in response.results)
    median = scores[len(scores) // 2]
    top = response.results[0]
    return DecisionLogEntry(
        input_hash=stable_hash(decision_input.model_dump(mode="json", by_alias=True, exclude_none=True)),
        top_sailing_id=top.sailing_id,
        score_spread=round(max(0.0, scores[-1] - median), 3),
        confidence=top.confidence,
    )


@router.get("/api/health")
def get_health() -> dict:
    settings = get_settings()
    return {
        "ok": True,
        "provider": settings.provider.kind,
        "hasRestUrl": bool(settings.provider.rest_url),
    }


@router.post("/api/cruise/decision")
async def post_decision(response: Response, payload: dict[str, Any] = Body(...)) -> Any:
    """Validate the input, rank sailings with the active weights and record an audit entry."""
    provider, store = _backends()
    try:
        decision_input = CruiseDecisionInput.model_validate(payload)
    except ValidationError as e:
        return _error(400, e)

    weights, source = await _active_weights(store)
    try:
        decision = await run_decision_engine(decision_input, provider, limit=_result_limit(), weights=weights)
    except InvalidDecisionInput as e:
        return _error(400, e)
    except Exception as e:
        logger.exception("Decision engine failed")
        return _error(500, e)
    response.headers[WEIGHTS_SOURCE_HEADER] = source

    entry = _log_entry(decision_input, decision)
    if entry is not None:
        # Audit logging never fails the request.
        try:
            await store.record_decision(entry)
        except Exception as e:
            logger.warning("Failed to record decision log: %s", e)

    return decision.model_dump(mode="json", by_alias=True)


@router.get("/api/calendar")
async def get_calendar(
    response: Response,
    start: str | None = None,
    end: str | None = None,
    adults: int | None = None,
    children: int | None = None,
    max_per_person: float | None = Query(None, alias="max"),
    flex: str | None = None,
    seapay: str | None = None,
    line: str | None = None,
    ship: str | None = None,
) -> Any:
    """Return `{entries}` for every sailing between `start` and `end` (defaults: the next 12 months)."""
    settings = get_settings()
    provider, store = _backends()
    try:
        start_date: date | None = parse_iso_date(start)
        end_date: date | None = parse_iso_date(end)
        if start and start_date is None:
            raise ValueError(f"Invalid start date: {start!r}")
        if end and end_date is None:
            raise ValueError(f"Invalid end date: {end!r}")

        decision_input = calendar_input(
            settings=settings,
            today=today_in(settings.app.timezone),
            start=start_date,
            end=end_date,
            adults=adults,
            children=children,
            max_per_person=max_per_person,
            flexible=(flex.strip().lower() in _TRUTHY) if flex else None,
            sea_pay_only=bool(seapay and seapay.strip().lower() in _TRUTHY),
            cruise_line=line,
            ship_id=ship,
        )
    except ValueError as e:
        return _error(400, e, entries=[])

    weights, source = await _active_weights(store)
    try:
        entries = await build_calendar_entries(decision_input, provider, weights=weights, settings=settings)
    except InvalidDecisionInput as e:
        return _error(400, e, entries=[])
    except Exception as e:
        logger.exception("Calendar build failed")
        return _error(500, e, entries=[])
    response.headers[WEIGHTS_SOURCE_HEADER] = source

    return {"entries": [e.model_dump(mode="json", by_alias=True) for e in entries]}


@router.get("/api/decision-engine/weights")
async def get_weights(response: Response) -> dict:
    _, store = _backends()
    weights, source = await _active_weights(store)
    response.headers[WEIGHTS_SOURCE_HEADER] = source
    return {"weights": weights.model_dump(mode="json"), "source": source}


@router.post("/api/decision-engine/weights")
async def post_weights(payload: dict[str, Any] = Body(...)) -> Any:
    """Save weights; missing keys fall back to the configured defaults."""
    _, store = _backends()
    defaults = get_settings().decision.weights.model_dump()
    try:
        merged = {**defaults, **{k: v for k, v in payload.items() if k in defaults and v is not None}}
        weights = DecisionWeights.model_validate(merged)
    except ValidationError as e:
        return _error(400, e, ok=False)

    try:
        saved = await store.save_weights(weights)
    except Exception as e:
        logger.exception("Failed to save weights")
        return _error(500, e, ok=False)
    return {"ok": True, "weights": saved.model_dump(mode="json")}


@router.get("/api/decision-engine/overrides")
async def get_overrides() -> Any:
    _, store = _backends()
    try:
        overrides = await store.list_overrides()
    except Exception as e:
        logger.exception("Failed to list overrides")
        return _error(500, e, overrides=[])
    return {"overrides": [o.model_dump(mode="json") for o in overrides]}


@router.post("/api/decision-engine/overrides")
async def post_override(payload: dict[str, Any] = Body(...)) -> Any:
    _, store = _backends()
    if not (payload.get("sailing_id") or payload.get("sailingId")):
        return JSONResponse(status_code=400, content={"ok": False, "error": "Missing sailing_id"})
    try:
        override = DecisionOverride.model_validate(payload)
    except ValidationError as e:
        return _error(400, e, ok=False)

    try:
        await store.save_override(override)
    except Exception as e:
        logger.exception("Failed to save override")
        return _error(500, e, ok=False)
    return {"ok": True, "override": override.model_dump(mode="json")}


@router.get("/api/decision-engine/logs")
async def get_logs(limit: int = 50) -> Any:
    _, store = _backends()
    try:
        logs = await store.list_decisions(limit=max(1, min(200, int(limit))))
    except Exception as e:
        logger.exception("Failed to list decision logs")
        return _error(500, e, logs=[])
    return {"logs": [entry.model_dump(mode="json") for entry in logs]}
