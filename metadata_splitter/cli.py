"""Command-line interface for metadata splitter."""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from .backends import LocalConnection, S3Connection
from .balancer import DEFAULT_MAX_PER_SPLIT
from .config import HarvestConfig, parse_source_paths
from .credentials import credential_types
from .db import SplitPlanStore
from .errors import MetadataSplitterError
from .logging_config import setup_logging
from .models import record_schema
from .planner import plan_splits
from .reader import SplitReader


def format_size(size: int) -> str:
    """Format file size in human-readable form."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="metadata-splitter",
        description="Harvest file metadata and split it into balanced work units.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s plan /data/,/archive --db plan.db
  %(prog)s plan /logs/ --backend s3 --bucket my-bucket --access-key AK --secret-key SK --db plan.db
  %(prog)s emit --db plan.db --split 0
        """
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL env var or WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan = subparsers.add_parser("plan", help="Harvest source roots and store a split plan")
    plan.add_argument("source_paths", type=parse_source_paths, help="Comma-delimited source roots")
    plan.add_argument(
        "--db", "-d",
        type=Path,
        default=Path("split_plan.db"),
        help="Path to SQLite file the plan is written to (default: split_plan.db)"
    )
    plan.add_argument("--no-recursive", dest="recursive", action="store_false",
                      help="Only list the direct children of each root")
    plan.add_argument("--max-per-split", type=int, default=DEFAULT_MAX_PER_SPLIT,
                      help=f"Maximum entries per split (default: {DEFAULT_MAX_PER_SPLIT})")
    plan.add_argument("--backend", choices=["local", "s3"], default="local")
    plan.add_argument("--fs-uri", default="file:///", help="Local filesystem URI")
    plan.add_argument("--bucket", help="S3 bucket name")
    plan.add_argument("--access-key", help="S3 access key id")
    plan.add_argument("--secret-key", help="S3 secret key id")
    plan.add_argument("--region", help="S3 region")
    plan.add_argument("--endpoint-url", help="S3-compatible endpoint URL")
    plan.add_argument("--progress", action="store_true", help="Show a progress bar")

    emit = subparsers.add_parser("emit", help="Print the records of one split as JSON lines")
    emit.add_argument("--db", "-d", type=Path, default=Path("split_plan.db"))
    emit.add_argument("--split", "-s", type=int, required=True, help="Split index")

    schema = subparsers.add_parser("schema", help="Print the output record schema")
    schema.add_argument("--backend", choices=credential_types(), default="local")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> HarvestConfig:
    """Turn parsed ``plan`` arguments into a HarvestConfig."""
    if args.backend == "s3":
        missing = [flag for flag, value in (
            ("--bucket", args.bucket),
            ("--access-key", args.access_key),
            ("--secret-key", args.secret_key),
        ) if not value]
        if missing:
            raise ValueError(f"S3 backend requires {', '.join(missing)}")
        connection = S3Connection(
            access_key_id=args.access_key,
            secret_key_id=args.secret_key,
            bucket_name=args.bucket,
            region=args.region,
            endpoint_url=args.endpoint_url
        )
    else:
        connection = LocalConnection(uri=args.fs_uri)

    return HarvestConfig(
        source_paths=args.source_paths,
        connection=connection,
        recursive=args.recursive,
        max_per_split=args.max_per_split
    )


def run_plan(args: argparse.Namespace) -> int:
    config = build_config(args)
    store = SplitPlanStore(args.db)
    try:
        result, plan = plan_splits(config, store=store, progress=args.progress)
    finally:
        store.close()

    print("=" * 60)
    print("SPLIT PLAN")
    print("=" * 60)
    print(f"Entries harvested: {len(result.entries)} ({format_size(result.total_bytes)})")
    print(f"Splits: {plan.num_splits} (max {config.max_per_split} entries each)")
    for i, split in enumerate(plan):
        print(f"  [{i}] {split.load} entries, {format_size(split.total_bytes)}")

    if result.warnings:
        print(f"\n--- Warnings ({len(result.warnings)}) ---")
        for warning in result.warnings[:10]:  # Show first 10
            print(f"  [{warning.kind}] {warning.path}")
            print(f"    {warning.error}")
        if len(result.warnings) > 10:
            print(f"  ... and {len(result.warnings) - 10} more warnings")

    print(f"\nPlan written to: {args.db}")
    return 0


def run_emit(args: argparse.Namespace) -> int:
    if not args.db.exists():
        print(f"Error: Plan database does not exist: {args.db}", file=sys.stderr)
        return 1

    store = SplitPlanStore(args.db)
    try:
        split = store.get_split(args.split)
    finally:
        store.close()

    reader = SplitReader(split)
    for record in reader:
        print(json.dumps(record))

    for error in reader.errors:
        print(f"Warning: entry {error.position} ({error.full_path}): {error.error}", file=sys.stderr)
    return 0


def run_schema(args: argparse.Namespace) -> int:
    for name, field_type in record_schema(args.backend):
        print(f"{name}\t{field_type}")
    return 0


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(log_level=args.log_level)

    commands = {
        "plan": run_plan,
        "emit": run_emit,
        "schema": run_schema,
    }

    try:
        status = commands[args.command](args)
    except KeyboardInterrupt:
        print("\n\nInterrupted! No plan was written.", file=sys.stderr)
        sys.exit(1)
    except (MetadataSplitterError, ValueError, IndexError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if status:
        sys.exit(status)
