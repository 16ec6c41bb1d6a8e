"""
Gridwatch service entry point.

Usage:
    # Poll every POLL_INTERVAL_SECONDS until interrupted
    python -m gridwatch

    # Run a single cycle and print the summary
    python -m gridwatch --once
"""
import argparse
import asyncio
import json
import logging

from gridwatch.config import settings
from gridwatch.monitoring.scheduler import build_poller, setup_apscheduler

logger = logging.getLogger("gridwatch")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run_once() -> dict:
    poller = build_poller()
    summary = await poller.run_cycle()
    # Deferred levels are not awaited in one-shot mode.
    poller.engine.shutdown()
    return summary.to_dict()


async def run_forever(interval_seconds: int) -> None:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler

    poller = build_poller()
    scheduler = AsyncIOScheduler()
    setup_apscheduler(scheduler, poller=poller, interval_seconds=interval_seconds)
    scheduler.start()
    logger.info("Gridwatch started")

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        poller.engine.shutdown()
        logger.info("Gridwatch stopped")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Meter abnormality monitoring and alert escalation")
    parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.POLL_INTERVAL_SECONDS,
        help="Seconds between poll cycles",
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    if args.once:
        summary = asyncio.run(run_once())
        print(json.dumps(summary, indent=2))
        return 0

    try:
        asyncio.run(run_forever(args.interval))
    except KeyboardInterrupt:
        pass
    return 0
