"""
CruiseScore CLI entrypoint.

This CLI is intended for quick local demos and debugging without the web site.
It delegates all ranking logic to `cruisescore.recommender.engine.run_decision_engine`.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import Any

from cruisescore.config.settings import get_settings
from cruisescore.core.logging import configure_logging
from cruisescore.core.time import parse_iso_date, today_in
from cruisescore.domain.models import Budget, Constraints, CruiseDecisionInput, DecisionWeights, Preferences
from cruisescore.providers.base import CruiseDataProvider
from cruisescore.providers.factory import build_backends
from cruisescore.providers.memory import load_memory_provider
from cruisescore.recommender.calendar import build_calendar_entries, calendar_input
from cruisescore.recommender.engine import run_decision_engine
from cruisescore.scoring.composite import COMPONENT_NAMES, normalize_weights
from cruisescore.scoring.explain import one_line_summary


def _parse_weight_pairs(pairs: list[str]) -> dict[str, float]:
    """Parse `NAME=VALUE` CLI arguments into a weights dict."""
    out: dict[str, float] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Invalid --weight '{pair}', expected NAME=VALUE")
        name, value = pair.split("=", 1)
        name = name.strip().lower()
        if name not in COMPONENT_NAMES:
            raise ValueError(f"Unknown weight '{name}' (expected one of {', '.join(COMPONENT_NAMES)})")
        out[name] = float(value)
    return out


def _date_arg(value: str | None, flag: str) -> date | None:
    if value is None:
        return None
    parsed = parse_iso_date(value)
    if parsed is None:
        raise ValueError(f"Invalid {flag} '{value}', expected YYYY-MM-DD")
    return parsed


def _provider(args: argparse.Namespace) -> CruiseDataProvider:
    if getattr(args, "catalog", None):
        return load_memory_provider(args.catalog)
    provider, _ = build_backends(get_settings())
    return provider


def _weights(args: argparse.Namespace) -> DecisionWeights | None:
    if not args.weight:
        return None
    base = get_settings().decision.weights.model_dump()
    return DecisionWeights.model_validate({**base, **_parse_weight_pairs(args.weight)})


def _cmd_decide(args: argparse.Namespace) -> int:
    """Handle the `decide` subcommand."""
    settings = get_settings()

    budget = None
    if args.max is not None or args.flex:
        budget = Budget(max_per_person=args.max, flexible=bool(args.flex))
    preferences = Preferences(
        cruise_line=args.line or [],
        ship_class=args.ship_class or [],
        itinerary=args.itinerary or [],
        cabin_type=args.cabin_type or [],
    )
    constraints = Constraints(sea_pay_eligible_only=args.seapay, must_sail_weekend=args.weekend, ship_id=args.ship)

    decision_input = CruiseDecisionInput(
        departure_port=args.port or settings.decision.supported_port,
        date_range={"start": _date_arg(args.start, "--start"), "end": _date_arg(args.end, "--end")},
        passengers={"adults": args.adults, "children": args.children},
        budget=budget,
        preferences=None if preferences.is_empty() else preferences,
        constraints=constraints,
    )
    weights = _weights(args)
    response = asyncio.run(
        run_decision_engine(decision_input, _provider(args), limit=args.limit, weights=weights, settings=settings)
    )

    if args.json:
        print(json.dumps(response.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))
        return 0

    if not response.results:
        print("No sailings matched.")
        return 0
    print("Top sailings:")
    for i, item in enumerate(response.results, start=1):
        print(f"{i:>2}. {item.sailing_id}  {one_line_summary(item, response.weights)}")
        if item.flags:
            print(f"    flags: {', '.join(item.flags)}")
        for reason in item.reasons:
            print(f"    - {reason}")
    return 0


def _cmd_calendar(args: argparse.Namespace) -> int:
    settings = get_settings()
    decision_input = calendar_input(
        settings=settings,
        today=today_in(settings.app.timezone),
        start=_date_arg(args.start, "--start"),
        end=_date_arg(args.end, "--end"),
        adults=args.adults,
        children=args.children,
        max_per_person=args.max,
        flexible=True if args.flex else None,
        sea_pay_only=args.seapay,
        cruise_line=args.line,
        ship_id=args.ship,
    )
    entries = asyncio.run(build_calendar_entries(decision_input, _provider(args), settings=settings))

    if args.json:
        payload = {"entries": [e.model_dump(mode="json", by_alias=True) for e in entries]}
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    for e in entries:
        price = f"${e.price_from:,.0f}" if e.price_from is not None else "n/a"
        score = f"{e.decision_score:.3f}" if e.decision_score is not None else "-"
        print(
            f"{e.depart_date.isoformat()}  {e.duration_label:>8}  {e.ship_name:<28} "
            f"from {price:>8}  demand={e.demand_level:<6} score={score}"
        )
    return 0


def _cmd_weights(args: argparse.Namespace) -> int:
    weights = _weights(args) or get_settings().decision.weights
    shares = normalize_weights(weights)
    if args.json:
        print(json.dumps({"weights": weights.model_dump(mode="json"), "shares": shares}, indent=2))
        return 0
    for name in COMPONENT_NAMES:
        print(f"{name:<11} weight={getattr(weights, name):.2f}  share={shares[name]:.1%}")
    return 0


def _add_filter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--adults", type=int, default=2)
    p.add_argument("--children", type=int, default=None)
    p.add_argument("--max", type=float, default=None, help="Budget: max price per person (USD)")
    p.add_argument("--flex", action="store_true", help="Budget is flexible (soft penalty when over)")
    p.add_argument("--seapay", action="store_true", help="Only Sea Pay eligible sailings")
    p.add_argument("--ship", type=str, default=None, help="Restrict to one ship id")
    p.add_argument("--catalog", type=str, default=None, help="Read sailings from this JSON catalog")
    p.add_argument("--json", action="store_true", help="Output machine-readable JSON")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CruiseScore CLI."""
    parser = argparse.ArgumentParser(prog="cruisescore")
    sub = parser.add_subparsers(dest="command", required=True)

    dec = sub.add_parser("decide", help="Rank sailings for a date range, budget and preferences.")
    dec.add_argument("--start", required=True, help="ISO date (e.g. 2026-03-01)")
    dec.add_argument("--end", required=True, help="ISO date (e.g. 2026-05-31)")
    dec.add_argument("--port", type=str, default=None)
    dec.add_argument("--limit", type=int, default=None)
    _add_filter_args(dec)
    dec.add_argument("--line", action="append", default=[], help="Preferred cruise line (repeatable)")
    dec.add_argument("--ship-class", action="append", default=[])
    dec.add_argument("--itinerary", action="append", default=[], help="Port of call / keyword (repeatable)")
    dec.add_argument("--cabin-type", action="append", default=[])
    dec.add_argument("--weekend", action="store_true", help="Only weekend departures")
    dec.add_argument("--weight", action="append", default=[], help="Override a weight: NAME=VALUE")
    dec.set_defaults(func=_cmd_decide)

    cal = sub.add_parser("calendar", help="List calendar entries for a window (default: next 12 months).")
    cal.add_argument("--start", default=None)
    cal.add_argument("--end", default=None)
    _add_filter_args(cal)
    cal.add_argument("--line", type=str, default=None)
    cal.set_defaults(func=_cmd_calendar)

    w = sub.add_parser("weights", help="Show the configured weights and their normalized shares.")
    w.add_argument("--weight", action="append", default=[], help="Override a weight: NAME=VALUE")
    w.add_argument("--json", action="store_true")
    w.set_defaults(func=_cmd_weights)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m cruisescore.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    try:
        return int(func(args))
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
