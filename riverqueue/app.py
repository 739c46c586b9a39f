import argparse
import json
from datetime import datetime
from typing import List, Optional

from . import __version__
from .client import Client
from .database import get_session, init_database
from .driver import SQLAlchemyDriver
from .env import Settings, load_env
from .errors import ConfigurationError
from .insert_opts import InsertOpts, UniqueOpts
from .job import JobArgsDict, JobState
from .logger import get_logger


def _make_client(args: argparse.Namespace, settings: Settings) -> Client:
    engine = init_database(args.database_url)
    return Client(
        SQLAlchemyDriver(get_session(engine)),
        advisory_lock_prefix=settings.advisory_lock_prefix,
    )


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    init_database(args.database_url)
    print(f"Initialized {args.database_url}")


def cmd_insert(args: argparse.Namespace, settings: Settings) -> None:
    try:
        job_args = JobArgsDict(args.kind, json.loads(args.args))
    except json.JSONDecodeError as e:
        raise SystemExit(f"--args should be a JSON object: {e}")

    scheduled_at = None
    if args.scheduled_at:
        try:
            scheduled_at = datetime.fromisoformat(args.scheduled_at.replace("Z", "+00:00"))
        except ValueError:
            raise SystemExit(f"--scheduled-at should be ISO 8601: {args.scheduled_at}")
        if scheduled_at.tzinfo is None:
            raise SystemExit("--scheduled-at should include a UTC offset")

    unique_opts = UniqueOpts(
        by_args=True if args.unique_by_args else None,
        by_period=args.unique_by_period,
        by_queue=True if args.unique_by_queue else None,
        by_state=[JobState(s) for s in args.unique_by_state] if args.unique_by_state else None,
        exclude_kind=True if args.unique_exclude_kind else None,
    )

    insert_opts = InsertOpts(
        max_attempts=args.max_attempts,
        priority=args.priority,
        queue=args.queue,
        scheduled_at=scheduled_at,
        tags=args.tag,
        unique_opts=unique_opts,
    )

    try:
        client = _make_client(args, settings)
        result = client.insert(job_args, insert_opts=insert_opts)
    except ConfigurationError as e:
        raise SystemExit(f"Invalid insert: {e}")

    print(f"Job: {result.job.id}")
    print(f"Status: {'duplicate' if result.unique_skipped_as_duplicated else 'inserted'}")


def cmd_list(args: argparse.Namespace, settings: Settings) -> None:
    driver = SQLAlchemyDriver(get_session(init_database(args.database_url)))
    jobs = [j for j in driver.job_list() if args.kind is None or j.kind == args.kind]
    if not jobs:
        print("No jobs.")
        return
    print(f"Found {len(jobs)} jobs:\n")
    for job in jobs:
        print(f"ID: {job.id}")
        print(f"  Kind: {job.kind}")
        print(f"  Args: {json.dumps(job.args)}")
        print(f"  Queue: {job.queue}")
        print(f"  State: {job.state.value}")
        print(f"  Scheduled: {job.scheduled_at.isoformat()}")
        if job.tags:
            print(f"  Tags: {', '.join(job.tags)}")
        if job.unique_key is not None:
            print(f"  Unique key: {job.unique_key.hex()}")
        print()


def main(argv: Optional[List[str]] = None):
    # Load .env if present (RIVER_DATABASE_URL, RIVER_LOG_LEVEL, etc.)
    load_env()
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(prog="riverqueue", description="Insert jobs into a River job table")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--database-url", default=settings.database_url, help=f"Database URL (default: {settings.database_url})")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create the river_job table")
    ini.set_defaults(func=cmd_init_db)

    ins = subparsers.add_parser("insert", help="Insert a job")
    ins.add_argument("--kind", required=True, help="Job kind, matching the worker's")
    ins.add_argument("--args", default="{}", help="Job args as a JSON object (default: {})")
    ins.add_argument("--queue", help="Queue name (default: default)")
    ins.add_argument("--priority", type=int, help="Priority, 1 is highest (default: 1)")
    ins.add_argument("--max-attempts", type=int, help="Maximum attempts (default: 25)")
    ins.add_argument("--scheduled-at", help="ISO 8601 time to run the job at")
    ins.add_argument("--tag", action="append", help="Tag for the job, repeatable")
    ins.add_argument("--unique-by-args", action="store_true", help="Unique by encoded args")
    ins.add_argument("--unique-by-period", type=int, metavar="SECONDS", help="Unique within a time period")
    ins.add_argument("--unique-by-queue", action="store_true", help="Unique by queue")
    ins.add_argument("--unique-by-state", nargs="+", choices=[s.value for s in JobState], help="States a duplicate may be in")
    ins.add_argument("--unique-exclude-kind", action="store_true", help="Leave kind out of the unique key")
    ins.set_defaults(func=cmd_insert)

    lst = subparsers.add_parser("list", help="List stored jobs")
    lst.add_argument("--kind", help="Only list jobs of this kind")
    lst.set_defaults(func=cmd_list)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        get_logger(level=settings.log_level, log_dir=settings.log_dir)
        args.func(args, settings)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
