#!/usr/bin/env python3
"""
Escrow sweep job runner

Expires stale offers, cancels transactions past their payment deadline and
auto-completes transfers whose confirmation window elapsed. Designed to be
run by cron every few minutes; it can also be executed manually.

Usage:
    # Run all sweeps now
    python -m scripts.run_escrow_sweeps

    # Report what is due without writing
    python -m scripts.run_escrow_sweeps --dry-run

    # Evaluate deadlines at a given instant
    python -m scripts.run_escrow_sweeps --as-of 2025-06-01T12:00:00Z

    # Hand the work to the rq worker instead of running inline
    python -m scripts.run_escrow_sweeps --enqueue
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from eventswap.infrastructure.database import SessionLocal
from eventswap.infrastructure.logging_config import trace_id_context
from eventswap.workers.jobs import QUEUE_NAME, due_counts, enqueue_sweeps, run_sweeps

JOB_NAME = "escrow_sweeps"


def generate_trace_id(as_of: datetime) -> str:
    """
    Format: job-escrow-sweeps-YYYYMMDDHHMM-<shortuuid>
    """
    return f"job-escrow-sweeps-{as_of.strftime('%Y%m%d%H%M')}-{str(uuid4())[:8]}"


def parse_as_of(as_of_str: Optional[str]) -> datetime:
    """Parse --as-of (ISO 8601) or default to now UTC"""
    if not as_of_str:
        return datetime.now(timezone.utc)
    try:
        value = datetime.fromisoformat(as_of_str.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"Invalid datetime format: {as_of_str}. Expected ISO 8601")
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Run escrow and offer sweeps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--as-of", type=str, default=None, help="Instant for deadline checks (ISO 8601, default: now UTC)")
    parser.add_argument("--dry-run", action="store_true", help="Report due counts without writing")
    parser.add_argument("--enqueue", action="store_true", help="Enqueue rq jobs instead of running inline")
    parser.add_argument("--limit", type=int, default=200, help="Maximum rows per sweep (default: 200)")
    args = parser.parse_args(argv)

    try:
        as_of = parse_as_of(args.as_of)
    except ValueError as e:
        print(json.dumps({"job": JOB_NAME, "error": str(e), "exit_code": 1}), file=sys.stderr)
        return 1

    trace_id = generate_trace_id(as_of)
    token = trace_id_context.set(trace_id)
    output = {"job": JOB_NAME, "trace_id": trace_id, "as_of": as_of.isoformat(), "dry_run": args.dry_run}

    if args.enqueue:
        from rq import Queue
        from eventswap.workers.worker import get_queue_connection

        queue = Queue(QUEUE_NAME, connection=get_queue_connection())
        output.update(enqueued=enqueue_sweeps(queue, limit=args.limit), exit_code=0)
        print(json.dumps(output))
        trace_id_context.reset(token)
        return 0

    db = SessionLocal()
    try:
        if args.dry_run:
            summary = due_counts(db, as_of)
        else:
            summary = run_sweeps(db, now=as_of, limit=args.limit)
        output.update(summary=summary, exit_code=0)
        print(json.dumps(output))
        return 0
    except Exception as e:
        output.update(error=f"Unexpected error: {type(e).__name__}: {str(e)}", exit_code=1)
        print(json.dumps(output), file=sys.stderr)
        return 1
    finally:
        db.close()
        trace_id_context.reset(token)


if __name__ == "__main__":
    sys.exit(main())
