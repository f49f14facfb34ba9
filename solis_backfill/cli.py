# solis_backfill/cli.py
import argparse


def build_parser():
    parser = argparse.ArgumentParser(
        prog="solis-backfill",
        description="Detect and fill missing SolisCloud daily summaries"
    )

    parser.add_argument(
        "--config",
        default="solis_backfill.conf",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress stdout output (cron-friendly)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit the run report as JSON instead of human-readable text"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # Gap backfill: full history, or an explicit range when both flags are given
    cmd_backfill = sub.add_parser(
        "backfill",
        help="Fill missing daily summaries from the provider",
    )
    cmd_backfill.add_argument(
        "--start",
        metavar="YYYY-MM-DD",
        help="First day of an explicit range (requires --end)",
    )
    cmd_backfill.add_argument(
        "--end",
        metavar="YYYY-MM-DD",
        help="Last day of an explicit range, inclusive (requires --start)",
    )
    cmd_backfill.add_argument(
        "--dry",
        action="store_true",
        help="Preview gaps and prepared rows without writing",
    )
    cmd_backfill.add_argument(
        "--device",
        action="append",
        dest="devices",
        metavar="SN",
        help="Only reconcile this inverter serial (repeatable)",
    )

    # Monthly rollup from the daily table
    cmd_rollup = sub.add_parser(
        "rollup-monthly",
        help="Rebuild monthly summaries from daily summaries",
    )
    cmd_rollup.add_argument(
        "--dry",
        action="store_true",
        help="Compute monthly rows without writing",
    )

    return parser
