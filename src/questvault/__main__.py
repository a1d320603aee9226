"""Command line entry point."""
import argparse
import logging
import sys
from typing import List, Optional

from questvault.config import settings
from questvault.errors import QuestVaultError
from questvault.logging_config import setup_logging
from questvault.models.base import SessionLocal, init_db
from questvault.monitoring import start_monitoring
from questvault.services.record_store import RecordStore
from questvault.services.review_scheduler import ReviewScheduler
from questvault.services.sequence_planner import build_plan

logger = logging.getLogger("questvault")


def preview(units: int, batch: int, periods: int) -> None:
    """Print how a pool would be spread over the periods."""
    plan = build_plan(units, batch, periods)
    print(f"{plan.total_units} units -> {plan.total_batches} batches over {len(plan.periods)} periods")
    for period in plan.periods:
        units_in_period = sum(b.unit_count for b in plan.batches_in_period(period.period_index))
        print(
            f"Period {period.period_index}: batches {period.first_batch}-{period.last_batch} "
            f"({period.batch_count} batches, {units_in_period} units)"
        )


def show_due(owner_id: str) -> None:
    db = SessionLocal()
    try:
        scheduler = ReviewScheduler(RecordStore(db))
        items = scheduler.list_due(owner_id)
        if not items:
            print(f"Nothing due for {owner_id}")
        for item in items:
            print(
                f"{item.id}\t{item.subject_key}\tlevel {item.repetition_level}\t"
                f"due {item.next_review_at.isoformat()}"
            )
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="questvault", description="Review scheduling and batch planning")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create database tables")

    preview_parser = sub.add_parser("preview", help="show a distribution plan")
    preview_parser.add_argument("--units", type=int, required=True)
    preview_parser.add_argument("--batch", type=int, default=settings.plan.units_per_batch)
    preview_parser.add_argument("--periods", type=int, default=settings.plan.duration_periods)

    due_parser = sub.add_parser("due", help="list a learner's due items")
    due_parser.add_argument("owner_id")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    if settings.monitoring.enabled:
        start_monitoring(settings.monitoring.port)
        logger.info("Metrics exported on port %d", settings.monitoring.port)

    try:
        if args.command == "init-db":
            init_db()
            logger.info("Database initialized at %s", settings.database.url)
        elif args.command == "preview":
            preview(args.units, args.batch, args.periods)
        elif args.command == "due":
            show_due(args.owner_id)
    except QuestVaultError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
