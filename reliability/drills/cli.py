"""Load drill command line entry point.

Runs the Gmail push webhook, WhatsApp webhook and streaming chat scenarios
against a deployed site, one after another, and exits non-zero when any
executed scenario misses its SLO.

Usage:
    # Default profile against a deployment
    reliability-load-drill --base-url=https://example.convex.site

    # Smallest smoke run
    reliability-load-drill --quick

    # Chat only, with an auth pool and stride rotation
    reliability-load-drill --profile=m1_1k --scenarios=chat_stream_http \\
        --chat-auth-pool-file=pool.json --chat-rotation-mode=stride --chat-rotation-stride=7
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence

import structlog
from pydantic import ValidationError

from reliability.config import ConfigurationError, Settings
from reliability.shared.flags import build_flag_parser, parse_flags
from reliability.shared.logging import setup_logging

from .models import DrillReport
from .options import DrillOptions, resolve_options
from .report import print_summary, write_report
from .runner import run_drill

logger = structlog.get_logger()

FLAG_NAMES = (
    "base-url",
    "profile",
    "quick",
    "scenarios",
    "auth-token",
    "thread-id",
    "chat-auth-pool-file",
    "chat-auth-pool-json",
    "chat-load-scale",
    "chat-concurrency-scale",
    "chat-duration-scale",
    "chat-rotation-mode",
    "chat-rotation-stride",
    "chat-rotation-seed",
    "chat-min-unique-coverage",
    "chat-min-unique-users",
    "chat-min-pool-size",
    "gmail-token",
    "whatsapp-secret",
    "output-dir",
    "timeout-ms",
    "stage-plan",
    "chat-model-id",
    "gmail-path",
    "whatsapp-path",
    "chat-path",
    "log-level",
)


def build_parser() -> argparse.ArgumentParser:
    return build_flag_parser("Bounded load drill with SLO evaluation", FLAG_NAMES)


async def execute_drill(options: DrillOptions) -> tuple[DrillReport, int]:
    """Run the drill, write its report and print the summary.

    Returns the report and the process exit code.
    """
    report = await run_drill(options)
    path = write_report(report, options.output_dir)
    print_summary(report, path)
    return report, 0 if report.passed else 1


def main(argv: Sequence[str] | None = None) -> int:
    flags = parse_flags(build_parser(), argv)
    try:
        settings = Settings()
        setup_logging(flags.get("log-level") or settings.log_level)
        options = resolve_options(flags, settings)
    except (ConfigurationError, ValidationError) as exc:
        logger.error("load_drill_configuration_error", error=str(exc))
        print(f"Load drill failed: {exc}", file=sys.stderr)
        return 1

    _report, exit_code = asyncio.run(execute_drill(options))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
