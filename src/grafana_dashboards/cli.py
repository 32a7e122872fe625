"""
grafana-dashboards — manage the Resource Consumption Analysis dashboards.

Commands:
  import   Import/update all dashboards to Grafana
  delete   Delete all dashboards from Grafana
  list     List dashboards in the target folder
  status   Check connection and folder status

Run:
    python -m grafana_dashboards status
    # or via the installed script:
    grafana-dashboards --url https://grafana.example.com import
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

import structlog

from grafana_dashboards import console
from grafana_dashboards.client import GrafanaAPIError, GrafanaClient
from grafana_dashboards.commands import (
    EXIT_FAILURE,
    ask_confirmation,
    cmd_delete,
    cmd_import,
    cmd_list,
    cmd_status,
)
from grafana_dashboards.config import (
    DEFAULT_FOLDER_TITLE,
    AuthMode,
    ConfigError,
    Settings,
    resolve_settings,
)

log = structlog.get_logger(__name__)

COMMANDS = ("import", "delete", "list", "status")

EPILOG = """\
Environment Variables:
    GRAFANA_URL             Alternative to --url
    GRAFANA_API_KEY         Alternative to --api-key
    GRAFANA_USER            Alternative to --user
    GRAFANA_PASSWORD        Alternative to --password

Examples:
    export GRAFANA_URL="https://grafana.example.com"
    export GRAFANA_API_KEY="glsa_xxxxxxxxxxxx"
    grafana-dashboards import

    grafana-dashboards -u https://grafana.example.com --user me --password secret import
    grafana-dashboards --namespace-filter "^prod-" import
    grafana-dashboards --workload-kinds "ReplicaSet|StatefulSet|DaemonSet" import
"""


def configure_logging(verbose: bool = False) -> None:
    """Structured JSON logs to stderr; stdout is reserved for the report."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.WARNING),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grafana-dashboards",
        description="Manage Resource Consumption Analysis dashboards in Grafana.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("command", choices=COMMANDS, help="Action to perform")
    parser.add_argument("-u", "--url", help="Grafana server URL, e.g. https://grafana.example.com")

    auth = parser.add_argument_group("authentication (choose one method)")
    auth.add_argument("-k", "--api-key", dest="api_key", help="Grafana API key or service account token")
    auth.add_argument("--user", help="Grafana username (use with --password)")
    auth.add_argument("--password", help="Grafana password (use with --user)")

    parser.add_argument("-f", "--folder", help=f'Folder title (default: "{DEFAULT_FOLDER_TITLE}")')
    parser.add_argument(
        "-d", "--dashboard-dir", dest="dashboard_dir", type=Path,
        help="Directory containing the dashboard JSON files (default: bundled dashboards)",
    )
    parser.add_argument(
        "-o", "--overwrite", dest="overwrite", action="store_true", default=None,
        help="Overwrite existing dashboards (default)",
    )
    parser.add_argument(
        "-n", "--no-overwrite", dest="overwrite", action="store_false",
        help="Don't overwrite existing dashboards",
    )
    parser.add_argument(
        "--namespace-filter", dest="namespace_filter", metavar="REGEX",
        help='Namespace filter regex to preset in imported dashboards, e.g. "^prod-"',
    )
    parser.add_argument(
        "--workload-kinds", dest="workload_kinds", metavar="KINDS",
        help='Workload kinds to preset, e.g. "ReplicaSet|StatefulSet|DaemonSet"',
    )
    parser.add_argument("--insecure", action="store_true", help="Skip TLS certificate verification")
    parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation before deleting")
    parser.add_argument("--config", type=Path, help="YAML config file (default: ~/.config/grafana-dashboards/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Emit debug logs to stderr")
    return parser


async def run(settings: Settings, command: str, assume_yes: bool = False) -> int:
    async with GrafanaClient(settings) as client:
        if command == "import":
            return await cmd_import(settings, client)
        if command == "delete":
            confirm = (lambda _prompt: True) if assume_yes else ask_confirmation
            return await cmd_delete(settings, client, confirm=confirm)
        if command == "list":
            return await cmd_list(settings, client)
        return await cmd_status(settings, client)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = resolve_settings(vars(args), environ=os.environ, config_file=args.config)
    except ConfigError as exc:
        console.error(str(exc))
        return EXIT_FAILURE

    if settings.auth_mode is AuthMode.API_KEY:
        console.info("Using API key authentication")
    else:
        console.info("Using username/password authentication")
    if settings.insecure:
        console.warning("TLS certificate verification is disabled (insecure mode)")

    try:
        return asyncio.run(run(settings, args.command, assume_yes=args.yes))
    except GrafanaAPIError as exc:
        console.error(str(exc))
        return EXIT_FAILURE
    except KeyboardInterrupt:
        console.info("Aborted")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
