#!/usr/bin/env python3
"""Command-line interface for batch analytics jobs.

Usage:
    zonetrack validate
    zonetrack assign
    zonetrack calculate --academic-year 2024-2025
    zonetrack calculate --academic-year 2024-2025 --student-id s-001
    zonetrack aggregate --academic-year 2024-2025
    zonetrack recompute --academic-year 2024-2025

Uses PostgreSQL when DB_HOST (or DB_SECRET_ARN) is set. Each command
prints a JSON summary and exits non-zero when any item failed.
"""
import argparse
import json
import logging
import sys
from typing import Any, Dict

from zonetrack.shared.database import connection_manager_from_env
from zonetrack.shared.models import CalculationTrigger
from zonetrack.services.analytics_service import AnalyticsConfig, AnalyticsPipeline
from zonetrack.services.analytics_service.analytics_repository import student_analytics_to_json

logger = logging.getLogger(__name__)


def setup_parser() -> argparse.ArgumentParser:
    """Set up argument parser."""
    parser = argparse.ArgumentParser(
        prog="zonetrack",
        description="Zone analytics batch jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser(
        "validate", help="Validate and auto-fix every admitted student"
    )
    subparsers.add_parser(
        "assign", help="Assign classes to admitted students without one"
    )

    calculate_parser = subparsers.add_parser(
        "calculate", help="Recalculate student analytics"
    )
    calculate_parser.add_argument(
        "--academic-year", required=True,
        help="Academic year, e.g. 2024-2025"
    )
    calculate_parser.add_argument(
        "--student-id",
        help="Recalculate a single student instead of every admitted student"
    )

    aggregate_parser = subparsers.add_parser(
        "aggregate", help="Regenerate overall and subject zone statistics"
    )
    aggregate_parser.add_argument(
        "--academic-year", required=True,
        help="Academic year, e.g. 2024-2025"
    )

    recompute_parser = subparsers.add_parser(
        "recompute", help="Validate, recalculate and regenerate everything"
    )
    recompute_parser.add_argument(
        "--academic-year", required=True,
        help="Academic year, e.g. 2024-2025"
    )

    return parser


def _print(summary: Dict[str, Any]) -> None:
    print(json.dumps(summary, indent=2, default=str))


def cmd_validate(pipeline: AnalyticsPipeline, args) -> int:
    summary = pipeline.validate_all()
    _print(summary)
    return 1 if summary["failed"] else 0


def cmd_assign(pipeline: AnalyticsPipeline, args) -> int:
    summary = pipeline.assignment.assign_all_unassigned_students().to_dict()
    _print(summary)
    return 1 if summary["failed"] else 0


def cmd_calculate(pipeline: AnalyticsPipeline, args) -> int:
    if args.student_id:
        analytics = pipeline.builder.calculate_for_student(
            args.student_id, args.academic_year, CalculationTrigger.MANUAL
        )
        _print(student_analytics_to_json(analytics))
        return 0

    summary = pipeline.builder.calculate_all_student_analytics(args.academic_year).to_dict()
    _print(summary)
    return 1 if summary["failed"] else 0


def cmd_aggregate(pipeline: AnalyticsPipeline, args) -> int:
    _print(pipeline.aggregation.refresh_all_statistics(args.academic_year).to_dict())
    return 0


def cmd_recompute(pipeline: AnalyticsPipeline, args) -> int:
    summary = pipeline.force_refresh_analytics(args.academic_year)
    _print(summary)
    return 1 if summary["student_analytics"]["failed"] else 0


COMMANDS = {
    "validate": cmd_validate,
    "assign": cmd_assign,
    "calculate": cmd_calculate,
    "aggregate": cmd_aggregate,
    "recompute": cmd_recompute,
}


def main(argv=None) -> int:
    """Main entry point."""
    parser = setup_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 0

    logger.info("CLI_COMMAND_STARTED", extra={"command": args.command})
    connection_manager = connection_manager_from_env(AnalyticsConfig.from_env().batch_size)
    pipeline = AnalyticsPipeline.from_env(connection_manager)
    try:
        return command(pipeline, args)
    finally:
        if connection_manager is not None:
            connection_manager.close()


if __name__ == "__main__":
    sys.exit(main())
