"""
swc CLI - Thin entrypoint for operator commands.

- run: Download and convert sources (one job per source)
- probe: Show source metadata without downloading

Design Principles:
==================
- CLI is a dispatcher only
- No execution logic inside CLI
- Surface errors verbatim from execution layer
- Exit non-zero on failure
- No interactive prompts
- stdout carries summaries and JSON; logs go to stderr

Exit Codes:
===========
- 0: Every job succeeded
- 1: Validation or configuration error
- 2: At least one job failed or was cancelled
- 4: System error (report not writable, unexpected failure)
"""

import argparse
import logging
import signal
import sys
from contextlib import contextmanager
from typing import List, Optional

from .. import __version__
from ..execution.formats import QUALITY_LEVELS, SUPPORTED_FORMATS
from .commands import EXIT_JOB_FAILED, EXIT_SYSTEM_ERROR, probe_source, run_sources

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Delivered as KeyboardInterrupt so every command shuts down the same way
TERMINATION_SIGNALS = ("SIGTERM", "SIGHUP")


def configure_logging(level: Optional[str] = None, verbose: int = 0) -> None:
    """
    Configure the root logger once, writing to stderr.

    An explicit level wins; otherwise -v gives INFO and -vv DEBUG.
    """
    if level is None:
        level = "DEBUG" if verbose >= 2 else "INFO" if verbose == 1 else "WARNING"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def cmd_run(args: argparse.Namespace) -> int:
    overrides = {
        "output_dir": args.output,
        "max_concurrent_jobs": args.concurrency,
        "retry_limit": args.retries,
        "download_timeout_seconds": args.timeout,
        "transcode_timeout_seconds": args.timeout,
        "overwrite_existing": True if args.overwrite else None,
    }
    return run_sources(
        args.sources,
        args.format,
        quality=args.quality,
        config_path=args.config,
        overrides=overrides,
        as_json=args.json,
        report_path=args.report,
    )


def cmd_probe(args: argparse.Namespace) -> int:
    return probe_source(args.source, config_path=args.config, as_json=args.json)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swc",
        description="swc - download media and convert it with external tools",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v INFO, -vv DEBUG)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (overrides -v)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to execute")

    # Run command
    parser_run = subparsers.add_parser("run", help="Download and convert one or more sources")
    parser_run.add_argument("sources", nargs="+", metavar="SOURCE", help="URL or locator")
    parser_run.add_argument(
        "-f", "--format",
        required=True,
        help=f"Target format ({', '.join(sorted(SUPPORTED_FORMATS))})",
    )
    parser_run.add_argument(
        "-q", "--quality",
        default=None,
        help=f"Quality hint ({', '.join(QUALITY_LEVELS)}; default: medium)",
    )
    parser_run.add_argument("-o", "--output", default=None, help="Destination directory")
    parser_run.add_argument(
        "-c", "--concurrency",
        type=int,
        default=None,
        help="Maximum concurrently running jobs",
    )
    parser_run.add_argument("--retries", type=int, default=None, help="Retries per stage")
    parser_run.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-stage timeout in seconds",
    )
    parser_run.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing destination files",
    )
    parser_run.add_argument("--config", default=None, help="JSON config file")
    parser_run.add_argument("--json", action="store_true", help="Print the run summary as JSON")
    parser_run.add_argument("--report", default=None, help="Also write the JSON summary here")
    parser_run.set_defaults(func=cmd_run)

    # Probe command
    parser_probe = subparsers.add_parser("probe", help="Show metadata for a source")
    parser_probe.add_argument("source", metavar="SOURCE", help="URL or locator")
    parser_probe.add_argument("--config", default=None, help="JSON config file")
    parser_probe.add_argument("--json", action="store_true", help="Print metadata as JSON")
    parser_probe.set_defaults(func=cmd_probe)

    return parser


def _raise_interrupt(signum, frame) -> None:
    raise KeyboardInterrupt(f"received signal {signum}")


@contextmanager
def interrupt_on_termination():
    """
    Deliver SIGTERM and SIGHUP as KeyboardInterrupt while the body runs.

    Commands already cancel and reap their jobs on KeyboardInterrupt, so
    `docker stop` or a closed terminal never orphans a child process or
    leaves a workspace behind. Previous handlers are restored on exit.
    Outside the main thread this is a no-op.
    """
    previous = {}
    for name in TERMINATION_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        try:
            previous[signum] = signal.signal(signum, _raise_interrupt)
        except ValueError:
            break  # Not the main thread
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entrypoint.

    Parses arguments and dispatches to subcommands.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.verbose)

    with interrupt_on_termination():
        try:
            return args.func(args)
        except KeyboardInterrupt:
            print("\nInterrupted", file=sys.stderr)
            return EXIT_JOB_FAILED
        except Exception as e:
            logger.exception(f"[CLI] Unexpected failure: {e}")
            print(f"FATAL: {e}", file=sys.stderr)
            return EXIT_SYSTEM_ERROR


if __name__ == "__main__":
    sys.exit(main())
