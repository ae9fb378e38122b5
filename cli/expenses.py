#!/usr/bin/env python3

import sys
from datetime import date

from dateutil import parser as date_parser

from errors import NotFoundError, StorageError, ValidationError
from logger import get_logger

logger = get_logger()


def cmd_add(args, services):
    """Record an expense under a category."""
    owner_id = services.config.user_id

    try:
        category = services.category_tree.get(owner_id, args.category_id)
    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    expense_date = date_parser.parse(args.date).date() if args.date else date.today()

    try:
        expense = services.expenses.create(
            owner_id,
            category.id,
            args.amount,
            expense_date,
            description=args.description,
        )
    except (ValidationError, StorageError) as e:
        logger.error(f"Error creating expense: {e}")
        sys.exit(1)

    logger.info(
        f"✓ Expense {expense.id} of {expense.amount} on {expense.expense_date} "
        f"filed under '{category.name}'"
    )


def cmd_list(args, services):
    """List the expenses of a category."""
    owner_id = services.config.user_id

    try:
        path = services.category_tree.get_full_path(owner_id, args.category_id)
    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    expenses = services.expenses.find_by_category(args.category_id)
    if not expenses:
        logger.info(f"No expenses under {path}.")
        return

    logger.info(f"\nExpenses under {path}:")
    logger.info("=" * 80)
    for expense in expenses:
        logger.info(
            f"{expense.id:>5}  {expense.expense_date}  {expense.amount:>12}  "
            f"{expense.description or ''}"
        )
    logger.info("=" * 80)
    logger.info(f"Total: {sum(e.amount for e in expenses)}")


def setup_parser(subparsers):
    """Setup expenses subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "expenses",
        help="Record expenses",
        description="Record and list expenses filed under categories",
    )

    expenses_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available expense commands",
        dest="subcommand",
        required=True,
    )

    add_parser = expenses_subparsers.add_parser("add", help="Record an expense")
    add_parser.add_argument("category_id", type=int, help="ID of the category")
    add_parser.add_argument("amount", help="Amount spent, e.g. 12.50")
    add_parser.add_argument("--date", help="Date of the expense (default: today)")
    add_parser.add_argument("--description", help="Optional description")
    add_parser.set_defaults(func=cmd_add)

    list_parser = expenses_subparsers.add_parser(
        "list", help="List the expenses of a category"
    )
    list_parser.add_argument("category_id", type=int, help="ID of the category")
    list_parser.set_defaults(func=cmd_list)
