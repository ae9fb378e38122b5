#!/usr/bin/env python3

import sys
import json
from datetime import date
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from config import get_seed_file
from errors import NotFoundError, StorageError, ValidationError
from logger import get_logger
from services.category_tree import DeleteStatus

logger = get_logger()


def _report_validation(error: ValidationError) -> None:
    for field_error in error.errors:
        logger.error(f"  {field_error.field}: {field_error.reason}")


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date_parser.parse(value).date()


def _month_range(value: str):
    """Expand 'YYYY-MM' to the first and last day of that month."""
    first = date_parser.parse(f"{value}-01").date()
    return first, first + relativedelta(day=31)


def cmd_list(args, services):
    """List the category tree as indented labels."""
    owner_id = services.config.user_id
    labels = services.category_tree.flatten_for_dropdown(
        owner_id, active_only=not args.all
    )

    if not labels:
        logger.info("No categories found.")
        return

    logger.info("\nCategories:")
    logger.info("=" * 80)
    for category_id, label in labels.items():
        logger.info(f"{category_id:>5}  {label}")
    logger.info("=" * 80)
    logger.info(f"Total categories: {len(labels)}")


def cmd_show(args, services):
    """Show one category with its path, children and totals."""
    owner_id = services.config.user_id
    tree = services.category_tree

    try:
        category = tree.get(owner_id, args.category_id)
    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"\nID: {category.id}")
    logger.info(f"Path: {tree.get_full_path(owner_id, category.id)}")
    logger.info(f"Depth: {tree.get_depth(owner_id, category.id)}")
    logger.info(f"Status: {category.status_label}")
    logger.info(f"Icon: {category.icon}  Color: {category.color}")
    if category.description:
        logger.info(f"Description: {category.description}")

    children = tree.get_children(owner_id, category.id)
    if children:
        logger.info("Children:")
        for child in children:
            marker = " +" if child["has_children"] else ""
            logger.info(f"  {child['id']:>5}  {child['name']}{marker}")

    logger.info(f"Expenses: {tree.expense_count(owner_id, category.id)} "
                f"({tree.expense_count(owner_id, category.id, include_children=True)} with children)")
    logger.info(f"Total: {tree.total_expense(owner_id, category.id)}")
    logger.info(f"Can delete: {'yes' if tree.can_delete(owner_id, category.id) else 'no'}")


def cmd_create(args, services):
    """Create a new category."""
    owner_id = services.config.user_id

    try:
        category = services.category_tree.create(
            owner_id,
            args.name,
            parent_id=args.parent,
            description=args.description,
            icon=args.icon,
            color=args.color,
        )
    except ValidationError as e:
        logger.error("Could not create category:")
        _report_validation(e)
        sys.exit(1)

    logger.info(f"\n✓ Category created successfully with ID: {category.id}")
    logger.info(f"  Path: {services.category_tree.get_full_path(owner_id, category.id)}")


def cmd_rename(args, services):
    """Rename a category."""
    try:
        category = services.category_tree.rename(
            services.config.user_id, args.category_id, args.name
        )
    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except ValidationError as e:
        logger.error("Could not rename category:")
        _report_validation(e)
        sys.exit(1)

    logger.info(f"✓ Category {category.id} renamed to '{category.name}'.")


def cmd_move(args, services):
    """Move a category (and its subtree) under a new parent or to the root."""
    owner_id = services.config.user_id

    try:
        category = services.category_tree.move(owner_id, args.category_id, args.parent)
    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except ValidationError as e:
        logger.error("Could not move category:")
        _report_validation(e)
        sys.exit(1)

    logger.info(f"✓ Moved: {services.category_tree.get_full_path(owner_id, category.id)}")


def cmd_toggle(args, services):
    """Toggle a category between Active and Inactive."""
    try:
        category = services.category_tree.toggle_status(
            services.config.user_id, args.category_id
        )
    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"✓ Category '{category.name}' is now {category.status_label}.")


def cmd_delete(args, services):
    """Delete one or more categories by ID."""
    owner_id = services.config.user_id
    tree = services.category_tree

    if not args.yes:
        mode = "and all of their children" if args.cascade else "(children move up one level)"
        confirm = (
            input(f"\nDelete {len(args.category_ids)} category(s) {mode}? (yes/no): ")
            .strip()
            .lower()
        )
        if confirm != "yes":
            logger.info("Deletion cancelled.")
            return

    if len(args.category_ids) > 1:
        result = tree.bulk_delete(owner_id, args.category_ids, cascade_children=args.cascade)
        logger.info(f"{result.deleted_count} category(s) deleted.")
        logger.info(f"{result.deactivated_count} category(s) deactivated.")
        logger.info(f"{result.failed_count} category(s) failed.")
        if not result.success:
            sys.exit(1)
        return

    category_id = args.category_ids[0]
    try:
        outcome = tree.delete(owner_id, category_id, cascade_children=args.cascade)
    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    if outcome.status is DeleteStatus.DELETED:
        logger.info(f"✓ Category {category_id} deleted successfully.")
    elif outcome.status is DeleteStatus.DEACTIVATED:
        logger.info(f"✓ Category {category_id} deactivated (has associated expenses).")
    else:
        logger.error(f"Failed to delete category {category_id}: {outcome.reason}")
        sys.exit(1)


def cmd_tree(args, services):
    """Print the tree widget projection as JSON."""
    data = services.category_tree.to_widget_projection(
        services.config.user_id, active_only=args.active_only
    )
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_total(args, services):
    """Show the expense total of a category."""
    owner_id = services.config.user_id

    if args.month:
        start_date, end_date = _month_range(args.month)
    else:
        start_date, end_date = _parse_date(args.start), _parse_date(args.end)

    try:
        total = services.category_tree.total_expense(
            owner_id,
            args.category_id,
            start_date=start_date,
            end_date=end_date,
            include_children=not args.own_only,
        )
        path = services.category_tree.get_full_path(owner_id, args.category_id)
    except NotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    period = f"{start_date or '...'} to {end_date or '...'}"
    logger.info(f"{path} ({period}): {total}")


def seed_tree(services, owner_id: int, nodes: list, parent_id: Optional[int] = None):
    """Create a nested list of category definitions, skipping existing ones.

    Args:
        services: Services container.
        owner_id: Owner the categories are created for.
        nodes: List of dicts with "name" and optional "description", "icon",
            "color" and "children".
        parent_id: Parent the nodes are created under.

    Returns:
        Tuple of (created_count, skipped_count).
    """
    tree = services.category_tree
    created_count = 0
    skipped_count = 0

    for node in nodes:
        name = node.get("name")
        if not name:
            logger.warning("Skipping category with no name")
            continue

        existing = tree.find_by_name(owner_id, name, parent_id)
        if existing:
            logger.info(f"⊘ Skipped '{name}' (already exists)")
            skipped_count += 1
            category_id = existing.id
        else:
            try:
                category = tree.create(
                    owner_id,
                    name,
                    parent_id=parent_id,
                    description=node.get("description"),
                    icon=node.get("icon"),
                    color=node.get("color"),
                )
            except (ValidationError, StorageError) as e:
                logger.error(f"Error creating category '{name}': {e}")
                continue
            logger.info(f"✓ Created '{tree.get_full_path(owner_id, category.id)}' (ID: {category.id})")
            created_count += 1
            category_id = category.id

        created, skipped = seed_tree(services, owner_id, node.get("children", []), category_id)
        created_count += created
        skipped_count += skipped

    return created_count, skipped_count


def cmd_seed(args, services):
    """Seed categories from the JSON seed file."""
    seed_file = get_seed_file()

    if not seed_file.exists():
        logger.error(f"Seed file not found: {seed_file}")
        sys.exit(1)

    try:
        with open(seed_file, "r") as f:
            categories_data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Error parsing JSON file: {e}")
        sys.exit(1)

    logger.info("\nSeeding categories from db/seed/categories.json")
    logger.info("=" * 80)

    created_count, skipped_count = seed_tree(
        services, services.config.user_id, categories_data
    )

    logger.info("=" * 80)
    logger.info("\nSeeding complete!")
    logger.info(f"Created: {created_count}")
    logger.info(f"Skipped: {skipped_count}")


def setup_parser(subparsers):
    """Setup categories subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "categories",
        help="Manage categories",
        description="Create, move, list and delete expense categories",
    )

    categories_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available category commands",
        dest="subcommand",
        required=True,
    )

    # categories list
    list_parser = categories_subparsers.add_parser("list", help="List the category tree")
    list_parser.add_argument(
        "--all", action="store_true", help="Include inactive categories"
    )
    list_parser.set_defaults(func=cmd_list)

    # categories show
    show_parser = categories_subparsers.add_parser("show", help="Show one category")
    show_parser.add_argument("category_id", type=int, help="ID of the category")
    show_parser.set_defaults(func=cmd_show)

    # categories create
    create_parser = categories_subparsers.add_parser("create", help="Create a new category")
    create_parser.add_argument("name", help="Category name")
    create_parser.add_argument("--parent", type=int, help="Parent category ID")
    create_parser.add_argument("--description", help="Optional description")
    create_parser.add_argument("--icon", help="Icon class, e.g. bi-cart")
    create_parser.add_argument("--color", help="Hex color, e.g. #dc2626")
    create_parser.set_defaults(func=cmd_create)

    # categories rename
    rename_parser = categories_subparsers.add_parser("rename", help="Rename a category")
    rename_parser.add_argument("category_id", type=int, help="ID of the category")
    rename_parser.add_argument("name", help="New name")
    rename_parser.set_defaults(func=cmd_rename)

    # categories move
    move_parser = categories_subparsers.add_parser(
        "move", help="Move a category under another parent"
    )
    move_parser.add_argument("category_id", type=int, help="ID of the category")
    move_parser.add_argument(
        "--parent", type=int, help="New parent category ID (omit to move to the root)"
    )
    move_parser.set_defaults(func=cmd_move)

    # categories toggle
    toggle_parser = categories_subparsers.add_parser(
        "toggle", help="Toggle a category between active and inactive"
    )
    toggle_parser.add_argument("category_id", type=int, help="ID of the category")
    toggle_parser.set_defaults(func=cmd_toggle)

    # categories delete
    delete_parser = categories_subparsers.add_parser(
        "delete", help="Delete categories by ID"
    )
    delete_parser.add_argument(
        "category_ids", type=int, nargs="+", help="ID(s) of the categories to delete"
    )
    delete_parser.add_argument(
        "--cascade", action="store_true", help="Also delete or deactivate all children"
    )
    delete_parser.add_argument("--yes", action="store_true", help="Skip confirmation")
    delete_parser.set_defaults(func=cmd_delete)

    # categories tree
    tree_parser = categories_subparsers.add_parser(
        "tree", help="Print the category tree as widget JSON"
    )
    tree_parser.add_argument(
        "--active-only", action="store_true", help="Leave out inactive categories"
    )
    tree_parser.set_defaults(func=cmd_tree)

    # categories total
    total_parser = categories_subparsers.add_parser(
        "total", help="Total expenses of a category"
    )
    total_parser.add_argument("category_id", type=int, help="ID of the category")
    total_parser.add_argument("--start", help="Start date (inclusive)")
    total_parser.add_argument("--end", help="End date (inclusive)")
    total_parser.add_argument("--month", help="Month in YYYY-MM format")
    total_parser.add_argument(
        "--own-only", action="store_true", help="Do not include child categories"
    )
    total_parser.set_defaults(func=cmd_total)

    # categories seed
    seed_parser = categories_subparsers.add_parser(
        "seed", help="Seed categories from JSON file"
    )
    seed_parser.set_defaults(func=cmd_seed)
