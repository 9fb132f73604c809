import argparse
import sys
from typing import List, Optional

from . import config as cfg
from .location import resolve_location
from .log import setup_logging
from .orchestrator import UnsupportedOperation, default_client_factory, run_copy, run_remove
from .progress import ProgressSink
from .transfer import TransferConfig, TransferError


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="s3tool",
        description="Upload a local directory tree to S3, or delete every object under an S3 prefix.",
    )
    p.add_argument("--profile", required=True, help="AWS profile name to use for credentials")
    p.add_argument("--sse", action="store_true", help="Enable server-side encryption (AES256) on uploads")
    p.add_argument(
        "--region",
        default=None,
        help=f"AWS region (env S3TOOL_REGION, default {cfg.DEFAULT_REGION})",
    )
    p.add_argument(
        "--concurrency",
        "-c",
        type=int,
        default=None,
        help=f"Concurrent uploads (env S3TOOL_CONCURRENCY, default {cfg.DEFAULT_CONCURRENCY})",
    )
    p.add_argument(
        "--backoff",
        type=float,
        default=cfg.DEFAULT_BACKOFF,
        help="Multiplier applied to the retry delay after each failed attempt",
    )
    p.add_argument(
        "--max-attempts",
        type=int,
        default=cfg.DEFAULT_MAX_ATTEMPTS,
        help="Attempts per object before giving up",
    )
    p.add_argument("--quiet", "-q", action="store_true", help="Do not draw the progress bar")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = p.add_subparsers(dest="command", required=True)
    cp = sub.add_parser("cp", help="Copy a local file or directory to S3")
    cp.add_argument("src", help="Local path")
    cp.add_argument("dest", help="s3://bucket/key or host:port/bucket/key")
    rm = sub.add_parser("rm", help="Delete every object under an S3 prefix")
    rm.add_argument("prefix", help="s3://bucket/prefix or host:port/bucket/prefix")
    return p.parse_args(argv)


def resolve_region(args: argparse.Namespace) -> str:
    # Priority: --region > env S3TOOL_REGION > config.DEFAULT_REGION
    return args.region or cfg.env_region() or cfg.DEFAULT_REGION


def resolve_transfer_config(args: argparse.Namespace) -> TransferConfig:
    concurrency = args.concurrency or cfg.env_concurrency() or cfg.DEFAULT_CONCURRENCY
    return TransferConfig(
        backoff_multiplier=args.backoff,
        concurrency=max(1, int(concurrency)),
        max_attempts=max(1, int(args.max_attempts)),
    )


def main(argv: Optional[List[str]] = None, client_factory=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    config = resolve_transfer_config(args)
    if client_factory is None:
        client_factory = default_client_factory(args.profile, resolve_region(args), config)

    try:
        if args.command == "cp":
            src = resolve_location(args.src)
            dest = resolve_location(args.dest)
            sink = ProgressSink(enabled=not args.quiet)
            results = run_copy(src, dest, client_factory, config, sink, sse=args.sse)
            print(f"Uploaded {len(results)} files ({sink.transferred}B) to {dest}", flush=True)
        else:
            prefix = resolve_location(args.prefix)
            deleted = run_remove(prefix, client_factory, config)
            print(f"Deleted {deleted} objects under {prefix}", flush=True)
    except UnsupportedOperation as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except TransferError as e:
        print(f"Transfer failed:\n{e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
