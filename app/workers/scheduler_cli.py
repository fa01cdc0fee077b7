from __future__ import annotations

import argparse
import json
import logging
import time

from app.config import load_config, setup_logging
from app.domain.exceptions import EnergyScheduleError
from app.services.container import ServiceContainer
from app.workers.scheduled_tasks import TASKS, register_all_tasks
from app.workers.state_reconciler import describe_decision

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="energy-scheduler")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the scheduler loop (default)")

    reconcile = subparsers.add_parser("reconcile-user", help="Force a reconciliation pass for one user")
    reconcile.add_argument("user_id")

    run_job = subparsers.add_parser("run-job", help="Run one registered job once and print its result")
    run_job.add_argument("name", choices=sorted(TASKS))

    return parser


def _run_loop(container: ServiceContainer) -> int:
    from app.workers.scheduled_tasks import configure_scheduler

    configure_scheduler(container.scheduler, container)
    logger.info("Scheduler running (press Ctrl+C to stop)")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Stopping scheduler...")
    return 0


def _reconcile_user(container: ServiceContainer, user_id: str) -> int:
    outcome = container.reconciler.reconcile_user(user_id)
    if outcome.error:
        print(f"{user_id}: {outcome.error}")
        return 1
    if outcome.decision is None:
        print(f"{user_id}: no schedules active today")
        return 0
    print(
        f"{user_id}: {outcome.window} target {outcome.target}%, actual {outcome.actual}% -> "
        f"{describe_decision(outcome.decision)} ({outcome.status})"
    )
    return 0


def _run_job(container: ServiceContainer, name: str) -> int:
    register_all_tasks(container.scheduler, container)
    result = container.scheduler.run_now(name)
    if result is None:
        print(f"Task not found: {name}")
        return 2
    print(json.dumps({"success": result.success, "result": result.result, "error": result.error}, indent=2, default=str))
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    """Run the schedule jobs without starting a web server."""
    args = _build_parser().parse_args(argv)

    config = load_config()
    setup_logging(debug=config.DEBUG, log_file=config.log_file, level=config.log_level)

    container = ServiceContainer.build(config)
    try:
        if args.command == "reconcile-user":
            return _reconcile_user(container, args.user_id)
        if args.command == "run-job":
            return _run_job(container, args.name)
        return _run_loop(container)
    except EnergyScheduleError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        try:
            container.shutdown()
        except (RuntimeError, OSError, AttributeError, TypeError):
            logger.exception("Failed to shut down scheduler cleanly")


if __name__ == "__main__":
    import sys

    raise SystemExit(main(sys.argv[1:]))
