"""
Run the workflow rule sweep worker.

Usage:
    python run.py
    python run.py --interval 30   # Sweep every 30 seconds
    python run.py --once          # Single sweep, then exit
"""
import argparse
import asyncio

from app.config.settings import settings
from app.repositories.mongo_client import close_connection, create_indexes, health_check
from app.scheduler.rule_sweep_scheduler import RuleSweepScheduler, start_scheduler, stop_scheduler
from app.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


async def run_forever(interval: int) -> None:
    start_scheduler(interval)
    try:
        await asyncio.Event().wait()
    finally:
        stop_scheduler()


async def run_once() -> int:
    return await RuleSweepScheduler().run_once()


def main():
    parser = argparse.ArgumentParser(description="Run the service request rule sweep worker")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.rule_sweep_interval_seconds,
        help=f"Seconds between sweeps (default: {settings.rule_sweep_interval_seconds})"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit"
    )

    args = parser.parse_args()

    setup_logging()

    health = health_check()
    if health["status"] != "healthy":
        logger.error(f"MongoDB unavailable, not starting worker: {health.get('error')}")
        raise SystemExit(1)
    create_indexes()

    print("Starting service request rule sweep worker...")
    print(f"  Environment: {settings.environment}")
    print(f"  Database: {settings.mongo_db}")
    print(f"  Interval: {args.interval}s")
    print()

    try:
        if args.once:
            fired = asyncio.run(run_once())
            logger.info(f"Single sweep dispatched {fired} rule firing(s)")
        else:
            asyncio.run(run_forever(args.interval))
    except KeyboardInterrupt:
        logger.info("Rule sweep worker interrupted")
    finally:
        close_connection()


if __name__ == "__main__":
    main()
