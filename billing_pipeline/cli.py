"""
billing-pipeline command line.

    billing-pipeline worker --consumer generate-invoice [--consumer audit-log]
    billing-pipeline replay --dlq generate-invoice-dlq --target generate-invoice [--max-messages 100]
    billing-pipeline prune [--older-than-days 7]
    billing-pipeline init-db
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from datetime import timedelta
from typing import List, Optional

from billing_pipeline.application.exceptions import ApplicationError
from billing_pipeline.config.logging import configure_logging
from billing_pipeline.config.settings import AppSettings, get_settings
from billing_pipeline.core.container import Container
from billing_pipeline.domain.exceptions import DomainError
from billing_pipeline.infrastructure.database.schema import init_schema
from billing_pipeline.infrastructure.database.session import Database

logger = logging.getLogger(__name__)


async def run_workers(settings: AppSettings, consumers: List[str]) -> int:
    container = await Container(settings).start()
    runners = container.runners(consumers or None)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: [r.stop() for r in runners])
        except NotImplementedError:
            pass
    try:
        await asyncio.gather(*(runner.run() for runner in runners))
    finally:
        await container.close()
    return 0


async def run_replay(settings: AppSettings, dlq: str, target: str, max_messages: Optional[int]) -> int:
    container = await Container(settings).start()
    try:
        result = await container.reprocessor().replay(dlq, target, max_messages=max_messages)
    finally:
        await container.close()
    print(json.dumps(result.to_response().model_dump(by_alias=True)))
    return 0 if result.total_failed == 0 else 1


async def run_prune(settings: AppSettings, older_than_days: int) -> int:
    container = Container(settings)
    try:
        deleted = await container.store.prune(timedelta(days=older_than_days))
    finally:
        await container.close()
    print(json.dumps({"deleted": deleted}))
    return 0


async def run_init_db(settings: AppSettings) -> int:
    database = Database.from_settings(settings)
    try:
        await init_schema(database)
    finally:
        await database.dispose()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="billing-pipeline", description="Subscription event pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    worker = sub.add_parser("worker", help="Run consumer poll loops")
    worker.add_argument(
        "--consumer",
        action="append",
        default=[],
        help="Consumer to run; repeat for several. Default: all.",
    )

    replay = sub.add_parser("replay", help="Replay a dead-letter channel onto its consumer channel")
    replay.add_argument("--dlq", required=True, help="Dead-letter channel, e.g. generate-invoice-dlq")
    replay.add_argument("--target", required=True, help="Channel to re-send to, e.g. generate-invoice")
    replay.add_argument("--max-messages", type=int, default=None)

    prune = sub.add_parser("prune", help="Delete old idempotency records")
    prune.add_argument("--older-than-days", type=int, default=None)

    sub.add_parser("init-db", help="Create tables and row-level security policies")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    if args.command == "worker":
        coro = run_workers(settings, args.consumer)
    elif args.command == "replay":
        coro = run_replay(settings, args.dlq, args.target, args.max_messages)
    elif args.command == "prune":
        coro = run_prune(settings, args.older_than_days or settings.idempotency_retention_days)
    else:
        coro = run_init_db(settings)

    try:
        return asyncio.run(coro)
    except (ApplicationError, DomainError) as e:
        logger.error("command_failed", extra={"command": args.command, "error": e.message})
        print(f"error: {e.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
