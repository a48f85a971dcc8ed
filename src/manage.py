"""Courier database management CLI.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
    python src/manage.py relay      # Publish every pending outbox message once
"""

import argparse
import sys


def setup_database():
    from courier.domain import courier
    from courier.utils.db import setup_db

    print("Initializing courier domain...")
    courier.init()
    print("Creating courier database schema...")
    setup_db(courier)
    print("Done.")


def drop_database():
    from courier.domain import courier
    from courier.utils.db import drop_db

    print("Initializing courier domain...")
    courier.init()
    print("Dropping courier database schema...")
    drop_db(courier)
    print("Done.")


def relay_outbox():
    from courier.domain import courier
    from courier.messaging.publisher import EventPublisher

    courier.init()
    with courier.domain_context():
        report = EventPublisher().relay_all()
    print(f"Published {report.published} message(s); {report.pending} still pending.")
    if report.error:
        print(f"Last error: {report.error}")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description="Courier database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("relay", help="Publish pending outbox messages")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "relay":
        relay_outbox()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
