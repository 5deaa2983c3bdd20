#!/usr/bin/env python3
"""
Storefront Mail Out-of-Band Jobs
================================
Run from cron (or by hand) for the work that does not belong in a request.

Usage:
    python scripts/run_email_jobs.py process-queue [--batch-size 50]
    python scripts/run_email_jobs.py sweep-tokens
    python scripts/run_email_jobs.py stats
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import get_settings  # noqa: E402
from app.database import Base, SessionLocal, engine  # noqa: E402
from app.errors import EmailServiceError  # noqa: E402
from app.services.transport import build_transport  # noqa: E402
from app.services.unsubscribe import sweep_expired  # noqa: E402
from app.worker.queue_processor import QueueProcessor, get_queue_stats  # noqa: E402


def process_queue(db, batch_size: int) -> dict:
    settings = get_settings()
    processor = QueueProcessor(db, build_transport(settings), app_url=settings.app_url)
    result = processor.process_batch(batch_size)
    return {"result": result.to_dict(), "stats": get_queue_stats(db)}


def sweep_tokens(db) -> dict:
    return {"removed": sweep_expired(db)}


def stats(db) -> dict:
    return {"stats": get_queue_stats(db)}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Storefront mail background jobs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    queue_parser = subparsers.add_parser("process-queue", help="Send one batch of due queue entries")
    queue_parser.add_argument(
        "--batch-size",
        type=int,
        default=get_settings().default_batch_size,
        help="Entries to process (1-500)",
    )
    subparsers.add_parser("sweep-tokens", help="Delete expired unsubscribe tokens")
    subparsers.add_parser("stats", help="Print queue counts by status")

    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if args.command == "process-queue":
            output = process_queue(db, args.batch_size)
        elif args.command == "sweep-tokens":
            output = sweep_tokens(db)
        else:
            output = stats(db)
    except EmailServiceError as e:
        print(json.dumps({"success": False, "error": e.message, "error_code": e.error_code}))
        return 1
    finally:
        db.close()

    print(json.dumps({"success": True, **output}, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
