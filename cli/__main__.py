#!/usr/bin/env python3
"""
Spendtree CLI - command-line interface for managing expense categories.

Usage:
    python -m cli <command> <subcommand> [options]

Commands:
    categories   Manage the category tree
    expenses     Record and list expenses
    migrate      Database migrations

Examples:
    python -m cli migrate apply
    python -m cli categories seed
    python -m cli categories create Groceries --parent 1
    python -m cli categories move 7 --parent 3
    python -m cli categories delete 7 --cascade
    python -m cli expenses add 7 12.50 --date 2025-01-15
    python -m cli categories total 1 --month 2025-01
"""

import sys
import argparse
from cli import categories, expenses, migrate
from config import load_config
from errors import StorageError
from services.base import Services
from logger import setup_logging


def main():
    """Main CLI entry point with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cli",
        description="Spendtree - Hierarchical expense category management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    # Register each command's subparser
    categories.setup_parser(subparsers)
    expenses.setup_parser(subparsers)
    migrate.setup_parser(subparsers)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        config = load_config()
        setup_logging(config)
        services = Services(config)

        # migrate works on the raw database manager, everything else on services
        if args.command == "migrate":
            args.func(args, services.db_manager)
        else:
            args.func(args, services)
    except StorageError as e:
        print(f"Storage error (try again): {e}")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
