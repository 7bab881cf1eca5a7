"""
DB Controller - Command Line

Usage:
    dbcontroller -c config.json [-t SECONDS] [-d DIRECTORY]

Exit codes:
    0 - Experiment completed and results uploaded
    1 - Experiment failed or upload failed
    2 - Invalid command line arguments
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from .collectors import CollectorFactory
from .config import ControllerSettings, DEFAULT_OBSERVATION_SECONDS, DEFAULT_OUTPUT_DIRECTORY
from .logger import configure_logging
from .orchestrator import run_experiment
from .uploader import ResultUploader

logger = logging.getLogger(__name__)


def _non_negative_int(value: str) -> int:
    try:
        seconds = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if seconds < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {seconds}")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbcontroller",
        description="Capture database knobs and metrics around an externally driven workload",
    )
    parser.add_argument(
        "-c", "--config",
        required=True,
        help="[required] Controller configuration file"
    )
    parser.add_argument(
        "-t", "--time",
        type=_non_negative_int,
        default=DEFAULT_OBSERVATION_SECONDS,
        help=f"The observation time in seconds (default: {DEFAULT_OBSERVATION_SECONDS})"
    )
    parser.add_argument(
        "-d", "--directory",
        default=DEFAULT_OUTPUT_DIRECTORY,
        help=f"Base directory for the result files (default: '{DEFAULT_OUTPUT_DIRECTORY}')"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = ControllerSettings.from_env()
    is_valid, errors = settings.validate()
    configure_logging(
        settings.log_level if is_valid else "INFO",
        json_format=settings.log_format == "json",
    )
    for error in errors:
        logger.warning(f"Settings issue: {error}")

    logger.info(f"Experiment time is set to: {args.time}")
    logger.info(f"Experiment output directory is set to: {args.directory}")

    with ResultUploader(
        timeout=settings.upload_timeout,
        max_retries=settings.upload_max_retries,
        retry_delay=settings.upload_retry_delay,
    ) as uploader:
        outcome = run_experiment(
            args.config,
            observation_time=args.time,
            output_directory=args.directory,
            factory=CollectorFactory(connect_timeout=settings.connect_timeout),
            uploader=uploader,
        )

    print("=" * 70)
    if not outcome.succeeded:
        print(f"[FAIL] Experiment failed during {outcome.failed_phase.name}")
        print(f"       {outcome.error_kind.value}: {outcome.error_message}")
        print("=" * 70)
        return 1

    print("[OK] Experiment complete")
    for name, path in outcome.artifacts.items():
        print(f"     {name:<15} {path}")
    if outcome.upload_error:
        print(f"[FAIL] Upload failed: {outcome.upload_error}")
        print("=" * 70)
        return 1
    print("[OK] Results uploaded")
    print("=" * 70)
    return 0


if __name__ == "__main__":
    sys.exit(main())
