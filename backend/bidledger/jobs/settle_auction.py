from __future__ import annotations
import argparse
import asyncio
from dataclasses import asdict

import structlog

from bidledger.logging_setup import configure_logging
from bidledger.services.settlement import settle_due_week, settle_week

log = structlog.get_logger()


async def _run(week_key: str | None = None) -> dict:
    if week_key:
        report = await settle_week(week_key)
    else:
        report = await settle_due_week()
    return asdict(report)


def settle_weekly_auction(week_key: str | None = None) -> dict:
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_run(week_key))


def main(argv: list[str] | None = None) -> int:
    """Cron entry point: `python -m bidledger.jobs.settle_auction` every Monday 00:00 in the auction timezone."""
    parser = argparse.ArgumentParser(description="Close a weekly ad auction")
    parser.add_argument("--week-key", help="Monday (YYYY-MM-DD) of the week to settle; defaults to the current week")
    args = parser.parse_args(argv)

    configure_logging()
    try:
        result = settle_weekly_auction(args.week_key)
    except Exception:
        log.exception("settlement_job_failed", week_key=args.week_key)
        return 1
    log.info("settlement_job_finished", **result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
