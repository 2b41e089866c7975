#!/usr/bin/env python3
"""CLI tool for running the poller and jobs outside Celery.

Usage:
    # Run the long-lived poll loop in this process
    uv run python -m app.cli run-poller

    # Run a single poll cycle (ignoring operating hours with --force)
    uv run python -m app.cli poll-once --force

    # Send the morning summary now
    uv run python -m app.cli morning

    # Prune expired notification history
    uv run python -m app.cli cleanup

    # Resolve an interval code to a station (and distance to a target)
    uv run python -m app.cli resolve --line A --direction down --code 18 --station 8

    # List enabled subscriptions
    uv run python -m app.cli list-subscriptions
"""

import argparse
import asyncio
import signal
import sys

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_session_factory
from app.core.logging import configure_logging
from app.network.stations import Direction, Line, get_station
from app.network.topology import get_topology
from app.schemas.tram import TramPosition
from app.services.distance_service import resolve_distance
from app.services.jobs import open_job_context, run_history_cleanup, run_morning_notifications, run_poll_cycle
from app.services.polling_service import TramPoller
from app.services.subscription_service import SubscriptionService
from app.services.tram_service import TramApiError


async def cmd_run_poller(args: argparse.Namespace) -> int:
    """
    Poll until SIGINT/SIGTERM, then drain in-flight cycles.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        async with open_job_context() as context:
            poller = TramPoller(lambda: run_poll_cycle(context), interval=args.interval)
            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop.set)

            poller.start()
            print(f"🚋 Polling every {poller.interval:g}s (Ctrl+C to stop)")
            await stop.wait()
            await poller.stop()
    except ValueError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    print("✅ Poller stopped")
    return 0


async def cmd_poll_once(args: argparse.Namespace) -> int:
    """Run one poll cycle and print its outcome."""
    try:
        async with open_job_context() as context:
            result = await run_poll_cycle(context, respect_operating_hours=not args.force)
    except ValueError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    if not result.success:
        print(f"❌ Poll failed: {result.error}", file=sys.stderr)
        return 1
    if result.skipped:
        print("⏸  Outside operating hours, poll skipped (use --force to poll anyway)")
        return 0
    print(f"✅ Poll complete: {result.tram_count} tram(s), {result.notification_count} notification(s) sent")
    return 0


async def cmd_morning(args: argparse.Namespace) -> int:
    """Send the morning summary to every user with enabled subscriptions."""
    try:
        async with open_job_context() as context:
            result = await run_morning_notifications(context)
    except (ValueError, TramApiError, SQLAlchemyError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    print(f"✅ Morning summary sent to {result.notification_count} user(s) ({result.tram_count} tram(s) in service)")
    return 0


async def cmd_cleanup(args: argparse.Namespace) -> int:
    """Prune notification history past the retention window."""
    try:
        deleted = await run_history_cleanup()
    except SQLAlchemyError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1
    print(f"✅ Deleted {deleted} history record(s) older than {settings.HISTORY_RETENTION_HOURS}h")
    return 0


async def cmd_resolve(args: argparse.Namespace) -> int:
    """
    Resolve an interval code, optionally measuring the distance to a station.

    Returns:
        Exit code (0 if resolved, 1 if the code or station does not resolve)
    """
    topology = get_topology()
    line = Line(args.line)
    direction = Direction(args.direction)

    if (resolution := topology.resolve(line, direction, args.code)) is None:
        print(f"❌ Code {args.code} does not map to a station on line {line.value} ({direction.value})")
        return 1

    current = get_station(resolution.station_id)
    where = "at" if resolution.is_at_station else "approaching"
    print(f"Line {line.value} {direction.value} code {args.code}: {where} {current.name} (#{current.id})")

    if args.station is None:
        return 0
    if not (target := get_station(args.station)):
        print(f"❌ Unknown station: {args.station}", file=sys.stderr)
        return 1

    position = TramPosition(interval_id=args.code, rosen=line, us=direction.flag, vehicle_id=0)
    if (result := resolve_distance(topology, position, target.id, direction)) is None:
        print(f"➖ Tram is not heading to {target.name} ({direction.value})")
        return 1
    print(f"➡  {target.name}: {result.stops_away} stop(s), about {result.estimated_minutes} min")
    return 0


async def cmd_list_subscriptions(args: argparse.Namespace, session: AsyncSession) -> int:
    """List enabled subscriptions of active users."""
    subscriptions = await SubscriptionService(session).get_active_subscriptions()

    if not subscriptions:
        print("No active subscriptions found")
        return 0

    print(f"{'Subscription ID':<38} {'Station':<16} {'Dir':<5} {'Stops':<6} {'Window':<12} Days")
    print("-" * 100)
    for subscription in subscriptions:
        station = get_station(subscription.station_id)
        station_name = station.name if station else f"#{subscription.station_id}"
        window = "all day"
        if subscription.start_time and subscription.end_time:
            window = f"{subscription.start_time:%H:%M}-{subscription.end_time:%H:%M}"
        days = ",".join(subscription.days_of_week) if subscription.days_of_week else "every day"
        print(
            f"{subscription.id!s:<38} {station_name:<16} {subscription.direction.value:<5} "
            f"{subscription.trigger_stops:<6} {window:<12} {days}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Kumamoto tram notifier jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uv run python -m app.cli run-poller --interval 30
  uv run python -m app.cli poll-once --force
  uv run python -m app.cli resolve --line A --direction down --code 18 --station 8
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_poller_parser = subparsers.add_parser(
        "run-poller",
        help="Run the poll loop until interrupted",
        description="Poll the tram feed every interval and send approach alerts.",
    )
    run_poller_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help=f"Seconds between polls (default: {settings.POLL_INTERVAL_SECONDS:g})",
    )

    poll_once_parser = subparsers.add_parser("poll-once", help="Run a single poll cycle")
    poll_once_parser.add_argument(
        "--force",
        action="store_true",
        help="Poll even outside operating hours",
    )

    subparsers.add_parser("morning", help="Send the morning summary now")
    subparsers.add_parser("cleanup", help="Prune expired notification history")
    subparsers.add_parser("list-subscriptions", help="List enabled subscriptions of active users")

    resolve_parser = subparsers.add_parser(
        "resolve",
        help="Resolve an interval code to a station",
        description="Show which station an interval code maps to, and optionally the distance to a target station.",
    )
    resolve_parser.add_argument("--line", required=True, choices=[line.value for line in Line])
    resolve_parser.add_argument("--direction", required=True, choices=[direction.value for direction in Direction])
    resolve_parser.add_argument("--code", required=True, type=int, help="Interval code from the feed")
    resolve_parser.add_argument("--station", type=int, default=None, help="Target station id")

    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI tool.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(log_level=settings.LOG_LEVEL)

    command_handlers = {
        "run-poller": cmd_run_poller,
        "poll-once": cmd_poll_once,
        "morning": cmd_morning,
        "cleanup": cmd_cleanup,
        "resolve": cmd_resolve,
    }

    if args.command == "list-subscriptions":

        async def run_with_session() -> int:
            async with get_session_factory()() as session:
                return await cmd_list_subscriptions(args, session)

        return asyncio.run(run_with_session())

    if handler := command_handlers.get(args.command):
        return asyncio.run(handler(args))

    print(f"❌ Unknown command: {args.command}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
