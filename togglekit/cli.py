"""Administrative commands for the configured feature store.

Usage:
    togglekit list-stored
    togglekit purge [NAME ...]
    togglekit prune-expired
    togglekit prune-snapshots --days 90
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from togglekit.core.config import get_settings
from togglekit.core.errors import ConfigurationError, FeatureStoreError
from togglekit.core.feature_store.database import DatabaseFeatureStore
from togglekit.core.feature_store.factory import create_snapshot_repository, create_store
from togglekit.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="togglekit", description="Feature store maintenance"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("list-stored", help="List features with stored values")

    purge_parser = subparsers.add_parser("purge", help="Remove stored feature values")
    purge_parser.add_argument("names", nargs="*", help="Features to purge (default: all)")

    subparsers.add_parser("prune-expired", help="Delete expired rows from the durable store")

    prune_parser = subparsers.add_parser("prune-snapshots", help="Delete old snapshots")
    prune_parser.add_argument(
        "--days", type=int, default=None, help="Retention in days (default: configured)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    try:
        store = create_store(settings)

        if args.command == "list-stored":
            for name in store.list_stored():
                print(name)

        elif args.command == "purge":
            store.purge(args.names or None)
            target = ", ".join(args.names) if args.names else "all features"
            print(f"Purged {target}")

        elif args.command == "prune-expired":
            if not isinstance(store, DatabaseFeatureStore):
                raise ConfigurationError(
                    f"prune-expired needs the database store, not {settings.STORE_DRIVER!r}"
                )
            removed = store.prune_expired()
            print(f"Pruned {removed} expired feature values")

        elif args.command == "prune-snapshots":
            days = args.days if args.days is not None else settings.SNAPSHOT_RETENTION_DAYS
            removed = create_snapshot_repository(store, settings).prune(days)
            print(f"Pruned {removed} snapshots older than {days} days")

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}", extra={"error_code": e.code.value})
        print(f"error: {e.message}", file=sys.stderr)
        return 2
    except FeatureStoreError as e:
        logger.error(f"Command failed: {e.message}", extra={"error_code": e.code.value})
        print(f"error: {e.message}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
