"""Command line entry point: quote trips and sync fare schedules."""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from typing import Any

from .engine import FareEngine
from .fare import AirportTrip, LocalTrip, OutstationTrip, TripParams
from .fare_logging import setup_logging_from_settings
from .schedules import TripKind, TripMode
from .settings import Settings, get_settings
from .vehicles import package_display_name


def build_trip(args: argparse.Namespace) -> TripParams:
    kind = TripKind(args.trip_kind)
    if kind == TripKind.OUTSTATION:
        return OutstationTrip(
            distance_km=args.distance,
            mode=TripMode(args.mode),
            pickup_at=args.pickup,
            return_at=args.return_at,
        )
    if kind == TripKind.LOCAL:
        return LocalTrip(
            package_id=args.package,
            distance_km=args.distance,
            duration_hours=args.hours,
        )
    return AirportTrip(distance_km=args.distance)


async def run_quote(engine: FareEngine, args: argparse.Namespace) -> dict[str, Any]:
    trip = build_trip(args)
    quotes = await engine.service.quote_many(args.vehicle, trip)
    result = {vehicle: quote.model_dump(mode="json") for vehicle, quote in quotes.items()}
    if isinstance(trip, LocalTrip):
        for quote in result.values():
            quote["package"] = package_display_name(trip.package_id)
    return result


async def run_sync(engine: FareEngine, args: argparse.Namespace) -> dict[str, Any]:
    results = await engine.service.sync_all(force=args.force)
    return {kind.value: refreshed for kind, refreshed in results.items()}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cab fare engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    quote = subparsers.add_parser("quote", help="Quote a trip for one or more vehicles")
    quote.add_argument(
        "--trip-kind",
        choices=[kind.value for kind in TripKind],
        required=True,
        help="Trip family to price",
    )
    quote.add_argument(
        "--vehicle",
        action="append",
        required=True,
        help="Vehicle class; repeat to quote several vehicles",
    )
    quote.add_argument("--distance", type=float, default=0.0, help="One-way distance in km")
    quote.add_argument(
        "--mode",
        choices=[mode.value for mode in TripMode],
        default=TripMode.ONE_WAY.value,
        help="Outstation trip mode",
    )
    quote.add_argument(
        "--pickup", type=datetime.fromisoformat, default=None, help="Pickup time (ISO 8601)"
    )
    quote.add_argument(
        "--return",
        dest="return_at",
        type=datetime.fromisoformat,
        default=None,
        help="Return time for round trips (ISO 8601)",
    )
    quote.add_argument("--package", default=None, help="Local package, e.g. 8hrs-80km")
    quote.add_argument("--hours", type=float, default=None, help="Local trip duration in hours")

    sync = subparsers.add_parser("sync", help="Bulk refresh fare schedules for every trip kind")
    sync.add_argument("--force", action="store_true", help="Ignore the bulk sync freshness window")

    return parser


async def run(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    engine = FareEngine(settings)
    try:
        if args.command == "quote":
            return await run_quote(engine, args)
        return await run_sync(engine, args)
    finally:
        await engine.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging_from_settings(settings.engine)

    result = asyncio.run(run(args, settings))
    json.dump(result, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
