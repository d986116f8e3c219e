"""
Command-line entry point.

Usage:
    salesintel --data-dir data/olist --as-of 2018-10-01
    salesintel --data-dir data/olist --as-of 2018-10-01 --output reports/insights.json --parallel
"""

import argparse
import json
import sys
from datetime import date
from typing import List, Optional

import structlog

from salesintel.config.logging import configure_logging
from salesintel.config.settings import build_analysis_config
from salesintel.exceptions import ConfigurationError, DataIntegrityError
from salesintel.ingestion.snapshot import SnapshotLoader
from salesintel.reporting.assembler import ReportAssembler

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_CONFIGURATION = 2
EXIT_INTEGRITY = 3


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="salesintel",
        description="E-commerce sales intelligence over a CSV order snapshot",
    )
    parser.add_argument(
        "--data-dir",
        required=True,
        help="Directory holding the snapshot CSV files",
    )
    parser.add_argument(
        "--as-of",
        required=True,
        type=_parse_date,
        help="As-of date for recency and churn (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--output",
        help="Write the JSON report here instead of stdout",
    )
    parser.add_argument(
        "--pareto-threshold",
        type=float,
        help="Cumulative revenue share for the Pareto cut-off (default 0.80)",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Run the analysis engines concurrently",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        help="Override the configured log format",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(log_level=args.log_level, log_format=args.log_format)

    try:
        config = build_analysis_config(
            as_of_date=args.as_of,
            pareto_threshold=args.pareto_threshold,
        )
        facts = SnapshotLoader(data_dir=args.data_dir).load()
        report = ReportAssembler(facts, config).assemble(parallel=args.parallel)
    except ConfigurationError as e:
        logger.error("Configuration error", parameter=e.parameter, error=str(e))
        return EXIT_CONFIGURATION
    except DataIntegrityError as e:
        logger.error("Data integrity error", check=e.check, error=str(e), details=e.details)
        return EXIT_INTEGRITY

    if args.output:
        report.write_json(args.output)
    else:
        json.dump(report.to_dict(), sys.stdout, indent=2, default=str)
        sys.stdout.write("\n")

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
