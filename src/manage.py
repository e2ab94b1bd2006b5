"""Ordering database management CLI.

Creates or drops the SQL schema for the ordering domain, using the
setup_db/drop_db utilities in ``ordering.utils.db``.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
    python src/manage.py seed-storefront "Main Store" shop.example.com
"""

import argparse
import sys


def _domain():
    from ordering.domain import ordering

    print("Initializing ordering domain...")
    ordering.init()
    return ordering


def setup_database():
    from ordering.utils.db import setup_db

    domain = _domain()
    print("Creating ordering database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from ordering.utils.db import drop_db

    domain = _domain()
    print("Dropping ordering database schema...")
    drop_db(domain)
    print("Done.")


def seed_storefront(name, host):
    from ordering.storefront.storefront import Storefront

    domain = _domain()
    with domain.domain_context():
        storefront = Storefront.register(name=name, host=host)
        domain.repository_for(Storefront).add(storefront)
    print(f"Storefront {storefront.name} registered for {storefront.host} ({storefront.id}).")


def main():
    parser = argparse.ArgumentParser(description="Ordering database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    seed_parser = subparsers.add_parser("seed-storefront", help="Register a storefront host")
    seed_parser.add_argument("name")
    seed_parser.add_argument("host")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "seed-storefront":
        seed_storefront(args.name, args.host)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
