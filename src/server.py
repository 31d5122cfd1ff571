"""Background sweep runner for the delivery domain.

Runs the Delayed Transition Scheduler sweep once per interval until
interrupted. Deployments without a long-running process can instead hit
``POST /triggers/sweep`` from an external cron.

Usage:
    python src/server.py                 # Sweep every SWEEP_INTERVAL_SECONDS
    python src/server.py --interval 15   # Sweep every 15 seconds
    python src/server.py --once          # Run a single sweep and exit
"""

import argparse
import asyncio
import signal

import structlog

from delivery.config import Settings
from delivery.domain import delivery
from delivery.services import build_services
from delivery.utils.logging import add_context, configure_logging

logger = structlog.get_logger(__name__)


async def run(interval: float, once: bool = False):
    settings = Settings.from_env()
    services = build_services(delivery, settings=settings)

    if once:
        await services.scheduler.sweep()
        return

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("Sweep runner started", interval=interval)
    await services.scheduler.run_forever(interval, stop)
    logger.info("Sweep runner stopped")


def main():
    parser = argparse.ArgumentParser(description="Delivery sweep runner")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps (default: SWEEP_INTERVAL_SECONDS)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    args = parser.parse_args()

    delivery.init()
    configure_logging()
    add_context(component="sweep-runner")

    interval = args.interval if args.interval is not None else Settings.from_env().sweep_interval_seconds
    asyncio.run(run(interval, once=args.once))


if __name__ == "__main__":
    main()
