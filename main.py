# main.py

"""Entry point for the price_engine headless CLI."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from price_engine.config.logging_config import setup_logging
from price_engine.config.settings import Settings
from price_engine.models.offer import BestPlatformCriteria

logger = logging.getLogger("price_engine.main")


def _add_output_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(p["id"] for p in Settings.AVAILABLE_PLATFORMS)

    parser = argparse.ArgumentParser(
        prog="price_engine",
        description="Price intelligence engine for Japanese marketplaces.",
        epilog=f"Available platforms: {valid_ids}",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        dest="db_path",
        help="Price history database (default: PRICE_ENGINE_DB_PATH).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Validate and store quotes.")
    ingest.add_argument("file", type=Path, help="JSON list of quotes.")

    stats = sub.add_parser("stats", help="Statistics, trend and low.")
    stats.add_argument("product_id")
    stats.add_argument("-p", "--platform", default=None)
    stats.add_argument(
        "-d", "--days", type=int, default=Settings.DEFAULT_TREND_DAYS,
    )
    _add_output_flag(stats)

    drops = sub.add_parser("drops", help="Significant price drops.")
    drops.add_argument("product_id")
    drops.add_argument("-p", "--platform", default=None)
    drops.add_argument(
        "-t",
        "--threshold",
        type=float,
        default=Settings.DEFAULT_DROP_THRESHOLD_PCT,
        help="Minimum drop in percent.",
    )
    _add_output_flag(drops)

    alerts = sub.add_parser("alerts", help="Evaluate alert conditions.")
    alerts.add_argument("file", type=Path, help="JSON list of conditions.")
    _add_output_flag(alerts)

    compare = sub.add_parser("compare", help="Cross-platform comparison.")
    compare.add_argument("product_id")
    compare.add_argument(
        "-s",
        "--platforms",
        default=None,
        help="Comma-separated platform IDs (default: all).",
    )
    compare.add_argument(
        "-c",
        "--condition",
        choices=["any", "new", "used", "refurbished"],
        default="any",
    )
    compare.add_argument(
        "--no-shipping",
        action="store_false",
        dest="include_shipping",
        help="Rank by item price only.",
    )
    compare.add_argument("--currency", default="JPY")
    compare.add_argument("--timeout", type=float, default=None)
    compare.add_argument(
        "--best",
        choices=[c.value for c in BestPlatformCriteria],
        default=None,
        help="Also pick a best platform by this criterion.",
    )
    compare.add_argument(
        "--fixtures",
        type=Path,
        default=None,
        help="Serve quotes from a JSON fixture file instead of HTTP.",
    )
    _add_output_flag(compare)
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Run the selected subcommand and return its exit code."""
    from price_engine.cli import runner

    if args.command == "ingest":
        return asyncio.run(runner.cli_ingest(args.file, args.db_path))
    if args.command == "stats":
        return asyncio.run(runner.cli_stats(
            args.product_id,
            args.platform,
            args.days,
            args.output_format,
            args.db_path,
        ))
    if args.command == "drops":
        return asyncio.run(runner.cli_drops(
            args.product_id,
            args.platform,
            args.threshold,
            args.output_format,
            args.db_path,
        ))
    if args.command == "alerts":
        return asyncio.run(runner.cli_alerts(
            args.file, args.output_format, args.db_path,
        ))
    return asyncio.run(runner.cli_compare(
        args.product_id,
        args.platforms,
        args.condition,
        args.include_shipping,
        args.currency,
        args.output_format,
        fixtures=args.fixtures,
        timeout=args.timeout,
        best=args.best,
    ))


def main() -> None:
    log_file = setup_logging()
    logger.info("price_engine starting, log file: %s", log_file)

    args = _build_parser().parse_args()
    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error during CLI run", exc_info=True)
        raise
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
