"""Command-line entry points for cron and operators."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from typing import Sequence

from psycopg_pool import ConnectionPool

from .config import get_settings
from .domain.errors import DirectoryError
from .domain.lifecycle import today_in
from .logging_config import configure_logging
from .main import build_mailer, build_runner
from .repository import SubscriberRepository
from .scheduling.daily_check import RunAlreadyRecorded, build_run_guard, execute_daily_check
from .scheduling.run_guard import InMemoryRunGuard
from .security.tokens import SERVICE_ROLE, issue_access_token

logger = logging.getLogger("subscription_service.cli")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Control Financiero subscription service")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("run-check", help="Run the daily subscription check once")
    check_parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Evaluate as if today were YYYY-MM-DD (default: today in LIFECYCLE_TIMEZONE)",
    )
    check_parser.add_argument(
        "--force", action="store_true", help="Run even if the date was already processed"
    )

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: HTTP_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: HTTP_PORT)")

    token_parser = subparsers.add_parser(
        "issue-service-token", help="Print a service-role token for the scheduler"
    )
    token_parser.add_argument("--ttl-days", type=int, default=365)

    return parser.parse_args(argv)


def _run_check(run_date: date | None, force: bool) -> int:
    settings = get_settings()
    target = run_date or today_in(settings.lifecycle_timezone)
    guard = build_run_guard(settings)
    if isinstance(guard, InMemoryRunGuard):
        # each cron process starts with an empty lease table
        logger.warning(
            "run guard is in-memory; repeated run-check calls for %s are not refused, "
            "set RUN_GUARD_BACKEND=redis to enforce one run per date",
            target.isoformat(),
        )
    with ConnectionPool(settings.database_url, open=True) as pool:
        mailer = build_mailer(settings)
        try:
            runner = build_runner(SubscriberRepository(pool), mailer, settings)
            report = execute_daily_check(runner, guard, target, force=force)
        except RunAlreadyRecorded as exc:
            logger.warning("%s", exc)
            return 0
        except DirectoryError as exc:
            logger.error("subscription check aborted: %s", exc)
            return 1
        finally:
            mailer.close()
    print(f"checked={report.checked} warned={report.warned} expired={report.expired} "
          f"suspended={report.suspended} email_failures={report.email_failures}")
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    if args.command == "run-check":
        sys.exit(_run_check(args.date, args.force))
    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "app.main:app",
            host=args.host or settings.http_host,
            port=args.port or settings.http_port,
        )
        return
    if args.command == "issue-service-token":
        print(
            issue_access_token(
                subject="scheduler", role=SERVICE_ROLE, ttl_seconds=args.ttl_days * 86400
            )
        )


if __name__ == "__main__":
    main()
