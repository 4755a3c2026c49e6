"""
route-monitor CLI: inspect and clean up Dynatrace synthetic monitors.

Usage:
    route-monitor version
    route-monitor --config operator.yaml locations resolve "N. Virginia"
    route-monitor locations resolve backplane --access-type Private
    route-monitor monitors exists <cluster-id>
    route-monitor monitors delete <cluster-id>

Without ``--config`` the Dynatrace connection is read from
ROUTE_MONITOR_DYNATRACE_URL / ROUTE_MONITOR_DYNATRACE_TOKEN.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from route_monitor import __version__
from route_monitor.config import OperatorConfig
from route_monitor.errors import RouteMonitorError
from route_monitor.types import EndpointAccess

logger = logging.getLogger(__name__)


def _load_config(path: Optional[str]) -> OperatorConfig:
    if path:
        return OperatorConfig.from_yaml(path)
    return OperatorConfig.from_env()


def cli(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point. Returns exit code."""
    parser = argparse.ArgumentParser(
        prog="route-monitor",
        description="Monitoring configuration for exposed endpoints",
    )
    parser.add_argument("--config", help="Operator configuration YAML file")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    subparsers = parser.add_subparsers(dest="command")

    # version subcommand
    subparsers.add_parser("version", help="Show version")

    # locations subcommand
    loc_parser = subparsers.add_parser("locations", help="Dynatrace synthetic locations")
    loc_sub = loc_parser.add_subparsers(dest="locations_command")
    resolve = loc_sub.add_parser("resolve", help="Resolve a location name to its entity id")
    resolve.add_argument("name")
    resolve.add_argument(
        "--access-type",
        default=EndpointAccess.PUBLIC_AND_PRIVATE.value,
        choices=[EndpointAccess.PUBLIC_AND_PRIVATE.value, EndpointAccess.PRIVATE.value],
    )

    # monitors subcommand
    mon_parser = subparsers.add_parser("monitors", help="Dynatrace synthetic monitors")
    mon_sub = mon_parser.add_subparsers(dest="monitors_command")
    exists = mon_sub.add_parser("exists", help="Check (and deduplicate) a cluster's monitor")
    exists.add_argument("cluster_id")
    delete = mon_sub.add_parser("delete", help="Delete all monitors of a cluster")
    delete.add_argument("cluster_id")

    parsed = parser.parse_args(args)
    logging.basicConfig(
        level=getattr(logging, parsed.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if parsed.command == "version":
        print(f"route-monitor {__version__}")
        return 0

    if parsed.command == "locations" and parsed.locations_command is None:
        loc_parser.print_help()
        return 1
    if parsed.command == "monitors" and parsed.monitors_command is None:
        mon_parser.print_help()
        return 1
    if parsed.command not in ("locations", "monitors"):
        parser.print_help()
        return 1

    try:
        client = _load_config(parsed.config).dynatrace.build_client()

        if parsed.command == "locations":
            entity_id = client.get_location_entity_id(
                parsed.name, EndpointAccess(parsed.access_type)
            )
            print(entity_id)
            return 0

        if parsed.monitors_command == "exists":
            found = client.monitor_exists(parsed.cluster_id)
            print(json.dumps({"clusterId": parsed.cluster_id, "exists": found}))
            return 0

        client.delete_monitor(parsed.cluster_id)
        print(f"Deleted monitors for cluster {parsed.cluster_id}")
        return 0
    except RouteMonitorError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1


def main() -> int:
    return cli()


if __name__ == "__main__":
    sys.exit(main())
