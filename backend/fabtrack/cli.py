"""
FabTrack CLI - thin entrypoint for operators.

Commands:
- list: List stored jobs
- show: Print one job document as JSON
- history: Print a job's audit trail
- timing: Print time spent per stage
- serve: Run the HTTP backend

The CLI reads the SQLite store directly; it never transitions jobs.

Exit Codes:
===========
- 0: Success
- 1: Not found
- 4: System error (storage unreadable, bad configuration, etc.)
"""

import argparse
import json
import logging
import sys
from typing import NoReturn, Optional, Sequence

from pydantic import ValidationError

from fabtrack.config import get_bind_host, get_bind_port, get_db_path
from fabtrack.persistence import PersistenceError, PersistenceManager
from fabtrack.workflow.models import Job
from fabtrack.workflow.timing import format_time_elapsed, is_overdue, now_ms

EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_SYSTEM_ERROR = 4


def _open_store(args: argparse.Namespace) -> PersistenceManager:
    """
    Raises:
        SystemExit(4): If the database cannot be opened
    """
    db_path = args.db or get_db_path()
    try:
        return PersistenceManager(db_path=db_path)
    except PersistenceError as e:
        print(f"ERROR: Cannot open job store {db_path}: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM_ERROR)


def cmd_list(args: argparse.Namespace) -> NoReturn:
    """
    List stored jobs, most recently updated first.

    Exit codes:
        0: Success (also when the store is empty)
        4: Storage error or unreadable job document
    """
    store = _open_store(args)
    try:
        jobs = [Job.from_wire(data) for data in store.load_all_jobs() if data is not None]
    except (PersistenceError, ValidationError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM_ERROR)

    if not args.all:
        jobs = [job for job in jobs if not job.is_completed]

    now = now_ms()
    for job in jobs:
        state = "DONE" if job.is_completed else job.current_stage.value
        flag = " OVERDUE" if is_overdue(job, now) else ""
        print(
            f"{job.id}  {job.code_no:<12} {job.customer:<20} {job.total_qty:>6}  "
            f"{state:<15} {job.qc_status.value:<13} batches={len(job.batches)}{flag}"
        )
    print(f"{len(jobs)} job(s)")
    sys.exit(EXIT_OK)


def cmd_show(args: argparse.Namespace) -> NoReturn:
    """
    Print a job document in wire format.

    Exit codes:
        0: Success
        1: Job not found
        4: Storage error
    """
    store = _open_store(args)
    try:
        data = store.load_job(args.job_id)
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM_ERROR)

    if data is None:
        print(f"ERROR: Job not found: {args.job_id}", file=sys.stderr)
        sys.exit(EXIT_NOT_FOUND)

    print(json.dumps(data, indent=2))
    sys.exit(EXIT_OK)


def cmd_history(args: argparse.Namespace) -> NoReturn:
    """
    Print a job's audit trail, newest first.

    Exit codes:
        0: Success
        1: Job not found or no entries
        4: Storage error
    """
    store = _open_store(args)
    try:
        entries = store.load_history(args.job_id, batch_id=args.batch)
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM_ERROR)

    if not entries:
        print(f"ERROR: No history for job {args.job_id}", file=sys.stderr)
        sys.exit(EXIT_NOT_FOUND)

    for entry in entries:
        scope = entry["batchId"] or "job"
        details = f"  {entry['details']}" if entry["details"] else ""
        print(f"{entry['timestamp']}  {scope:<6} {entry['stage']:<15} {entry['action']:<18} {entry['user']}{details}")
    sys.exit(EXIT_OK)


def cmd_timing(args: argparse.Namespace) -> NoReturn:
    """
    Print time spent per stage for one job.

    Exit codes:
        0: Success
        1: Job not found
        4: Storage error or unreadable job document
    """
    store = _open_store(args)
    try:
        data = store.load_job(args.job_id)
    except PersistenceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM_ERROR)

    if data is None:
        print(f"ERROR: Job not found: {args.job_id}", file=sys.stderr)
        sys.exit(EXIT_NOT_FOUND)

    try:
        job = Job.from_wire(data)
    except ValidationError as e:
        print(f"ERROR: Unreadable document for job {args.job_id}: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM_ERROR)

    for stage, ms in job.stage_times.items():
        print(f"{stage.value:<15} {format_time_elapsed(ms)}")
    sys.exit(EXIT_OK)


def cmd_serve(args: argparse.Namespace) -> NoReturn:
    """
    Run the HTTP backend.

    Exit codes:
        0: Shutdown via signal (normal)
        4: Bad configuration
    """
    import uvicorn

    from fabtrack.main import create_app

    try:
        host = args.host or get_bind_host()
        port = args.port or get_bind_port()
    except ValueError as e:
        print(f"ERROR: Invalid port configuration: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM_ERROR)

    print(f"Starting FabTrack backend on {host}:{port}")
    uvicorn.run(create_app(), host=host, port=port)
    sys.exit(EXIT_OK)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='fabtrack',
        description='FabTrack - fabrication job order tracking',
    )
    parser.add_argument(
        '--db',
        default=None,
        help='Path to SQLite job store (default: $FABTRACK_DB_PATH or ./fabtrack.db)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True, help='Command to execute')

    # List command
    parser_list = subparsers.add_parser('list', help='List stored jobs')
    parser_list.add_argument(
        '--all',
        action='store_true',
        help='Include completed jobs'
    )
    parser_list.set_defaults(func=cmd_list)

    # Show command
    parser_show = subparsers.add_parser('show', help='Print a job as JSON')
    parser_show.add_argument('job_id', help='Job ID')
    parser_show.set_defaults(func=cmd_show)

    # History command
    parser_history = subparsers.add_parser('history', help="Print a job's audit trail")
    parser_history.add_argument('job_id', help='Job ID')
    parser_history.add_argument(
        '--batch',
        default=None,
        help='Only entries for this batch id (e.g. B2)'
    )
    parser_history.set_defaults(func=cmd_history)

    # Timing command
    parser_timing = subparsers.add_parser('timing', help='Print time spent per stage')
    parser_timing.add_argument('job_id', help='Job ID')
    parser_timing.set_defaults(func=cmd_timing)

    # Serve command
    parser_serve = subparsers.add_parser('serve', help='Run the HTTP backend')
    parser_serve.add_argument('--host', default=None, help='Bind host (default: 127.0.0.1)')
    parser_serve.add_argument('--port', type=int, default=None, help='Bind port (default: 8085)')
    parser_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entrypoint.

    Parses arguments and dispatches to subcommands.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == '__main__':
    main()
