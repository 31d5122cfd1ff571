"""Delivery operator CLI.

Usage:
    python src/manage.py sweep [--as-of 2026-01-15T14:30:00+00:00]
    python src/manage.py failed                 # List failed transitions
    python src/manage.py retry <transition_id>  # Put a failed transition back
    python src/manage.py republish <order_id> [--reset-assignment]
"""

import argparse
import asyncio
import sys
from datetime import datetime

from protean.exceptions import ValidationError

from delivery.domain import delivery
from delivery.errors import DeliveryError
from delivery.services import build_services
from delivery.utils.logging import add_context, configure_logging


async def sweep(services, as_of=None):
    report = await services.scheduler.sweep(as_of=as_of)
    print(
        f"Swept as of {report.as_of.isoformat()}: "
        f"{len(report.completed)} completed, {len(report.retrying)} retrying, {len(report.failed)} failed"
    )


async def list_failed(services):
    transitions = await services.scheduler.failed_transitions()
    if not transitions:
        print("No failed transitions.")
        return

    print(f"{len(transitions)} failed transition(s):")
    for t in transitions:
        due = t.due_at.isoformat() if t.due_at else "-"
        print(f"  {t.id}  order={t.order_id}  kind={t.kind}  due={due}  attempts={t.attempts}")
        if t.last_error:
            print(f"      last error: {t.last_error}")


async def retry(services, transition_id):
    transition = await services.scheduler.retry(transition_id)
    print(f"Transition {transition.id} for order {transition.order_id} is pending again.")


async def republish(services, order_id, reset_assignment=False):
    message_id = await services.republish(order_id, reset_assignment=reset_assignment)
    print(f"Re-published orderReady for order {order_id} ({message_id}).")


def main():
    parser = argparse.ArgumentParser(description="Delivery operator commands")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sweep_parser = subparsers.add_parser("sweep", help="Apply due pending transitions once")
    sweep_parser.add_argument("--as-of", type=datetime.fromisoformat, default=None)

    subparsers.add_parser("failed", help="List transitions that exhausted their retries")

    retry_parser = subparsers.add_parser("retry", help="Retry a failed transition")
    retry_parser.add_argument("transition_id")

    republish_parser = subparsers.add_parser("republish", help="Publish orderReady again for an order")
    republish_parser.add_argument("order_id")
    republish_parser.add_argument(
        "--reset-assignment",
        action="store_true",
        help="Clear the recorded worker so the order is dispatched afresh",
    )

    args = parser.parse_args()

    delivery.init()
    configure_logging()
    add_context(component="manage", command=args.command)
    services = build_services(delivery)

    if args.command == "sweep":
        coro = sweep(services, as_of=args.as_of)
    elif args.command == "failed":
        coro = list_failed(services)
    elif args.command == "retry":
        coro = retry(services, args.transition_id)
    elif args.command == "republish":
        coro = republish(services, args.order_id, reset_assignment=args.reset_assignment)
    else:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(coro)
    except (DeliveryError, ValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
