"""Marketplace management CLI.

Schema management plus the two out-of-band reconciliation jobs.

Usage:
    python src/manage.py setup-db              # Create all tables
    python src/manage.py drop-db               # Drop all tables
    python src/manage.py sweep-reservations    # Release reservations of orders never persisted
    python src/manage.py retry-settlements     # Retry pending delivery settlements
"""

import argparse
import sys
from datetime import timedelta


def _domain():
    from marketplace.domain import marketplace

    marketplace.init()
    return marketplace


def setup_database():
    from marketplace.utils.db import setup_db

    print("Creating marketplace database schema...")
    setup_db(_domain())
    print("Done.")


def drop_database():
    from marketplace.utils.db import drop_db

    print("Dropping marketplace database schema...")
    drop_db(_domain())
    print("Done.")


def sweep_reservations(minutes=None):
    from marketplace.order.creation import sweep_orphaned_reservations

    domain = _domain()
    with domain.domain_context():
        older_than = timedelta(minutes=minutes) if minutes is not None else None
        released = sweep_orphaned_reservations(older_than=older_than)
    print(f"Released {released} orphaned reservation(s).")


def retry_settlements():
    from marketplace.order.settlement import retry_pending_settlements

    domain = _domain()
    with domain.domain_context():
        settled = retry_pending_settlements()
    print(f"Settled {settled} pending order(s).")


def main():
    parser = argparse.ArgumentParser(description="Marketplace management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    sweep_parser = subparsers.add_parser("sweep-reservations", help="Release orphaned stock reservations")
    sweep_parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=None,
        help="Only release reservations older than this (default: configured timeout)",
    )

    subparsers.add_parser("retry-settlements", help="Retry pending delivery settlements")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "sweep-reservations":
        sweep_reservations(args.older_than_minutes)
    elif args.command == "retry-settlements":
        retry_settlements()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
