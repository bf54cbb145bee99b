#!/usr/bin/env python3
"""
Run one scheduling cycle for recurring expense and budget actions.

Invoked once per cycle by an external periodic trigger (cron, a cloud
scheduler, ...).  Delivery may be at-least-once: a repeated run for the
same date writes nothing new.

Usage:
    python3 scripts/run_scheduled_actions.py [options]

Examples:
    # Today's cycle with the default settings file
    python3 scripts/run_scheduled_actions.py

    # A given date against a local database, creating tables first
    python3 scripts/run_scheduled_actions.py --date 2024-03-15 \\
        --database-url sqlite:///splitledger.db --create-tables

    # Run one action now, outside its schedule
    python3 scripts/run_scheduled_actions.py --action-id act_123

Exit status:
    0  the cycle ran (individual actions may have failed; they are due
       again next cycle and appear in the printed summary)
    1  settings or database could not be loaded
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

import yaml  # noqa: E402
from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from splitledger_batch.orchestrator import SchedulingContainer  # noqa: E402
from splitledger_config import get_active_config  # noqa: E402
from splitledger_config.schema import DISPATCH_MODES  # noqa: E402
from splitledger_kernel.db.engine import (  # noqa: E402
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from splitledger_kernel.domain.clock import SystemClock  # noqa: E402
from splitledger_kernel.exceptions import ScheduledActionNotFoundError  # noqa: E402
from splitledger_kernel.logging_config import configure_logging, get_logger  # noqa: E402

logger = get_logger("scripts.run_scheduled_actions")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the recurring-action scheduler for one calendar date.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--date",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Trigger date (YYYY-MM-DD). Default: today (UTC).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML file. Default: splitledger_config/sets/default.yaml.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL; overrides the settings file and environment.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create ledger and scheduling tables before running.",
    )
    parser.add_argument(
        "--dispatch",
        choices=DISPATCH_MODES,
        default=None,
        help="Dispatch mode; overrides the settings file.",
    )
    parser.add_argument(
        "--action-id",
        default=None,
        help="Run this one action now instead of the daily cycle.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        config = get_active_config(args.config)
    except (OSError, KeyError, ValueError, yaml.YAMLError) as exc:
        print(f"Could not load settings: {exc}", file=sys.stderr)
        return 1

    configure_logging(level=config.logging.level)

    database_url = args.database_url or config.database.url
    try:
        engine = init_engine_from_url(database_url, echo=config.database.echo)
        if args.create_tables:
            create_tables(engine)
    except SQLAlchemyError as exc:
        logger.error("engine_initialization_failed", exc_info=True)
        print(f"Could not initialize database: {exc}", file=sys.stderr)
        reset_engine()
        return 1

    if args.dispatch is not None:
        scheduler = config.scheduler
        config = replace(
            config,
            scheduler=replace(scheduler, dispatch=replace(scheduler.dispatch, mode=args.dispatch)),
        )

    container = SchedulingContainer.from_config(config, get_session_factory(), clock=SystemClock())

    try:
        if args.action_id:
            summary = container.trigger_immediate_run(args.action_id, args.date)
        else:
            summary = container.run_orchestrator(args.date or container.clock.now())
    except ScheduledActionNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except SQLAlchemyError as exc:
        logger.error("scheduler_run_failed", exc_info=True)
        print(f"Database error: {exc}", file=sys.stderr)
        return 1
    finally:
        reset_engine()

    print(json.dumps(summary.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
