"""Hierarchical expense categories: validation, projections and mutations.

CategoryTree sits on top of the category persistence gateway. Every operation
takes the acting owner's ID explicitly and only ever sees that owner's rows.
Reads load the owner's categories once and work on an in-memory adjacency
map, so no traversal goes back to the database per node.
"""

import re
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set

from config import DEFAULT_COLOR, DEFAULT_ICON, DEFAULT_INDENT_MARKER, DEFAULT_MAX_DEPTH
from errors import FieldError, NotFoundError, StorageError, ValidationError
from logger import get_logger
from models.category import Category, CategoryStatus, TreeNode

logger = get_logger()

COLOR_PATTERN = re.compile(r"#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})")
_TAG_PATTERN = re.compile(r"<[^>]*>")

NAME_MAX_LENGTH = 191
ICON_MAX_LENGTH = 50

_EDITABLE_FIELDS = {"name", "description", "icon", "color", "parent_id", "status"}


class DeleteStatus(Enum):
    DELETED = "deleted"
    DEACTIVATED = "deactivated"
    FAILED = "failed"


@dataclass(frozen=True)
class DeleteOutcome:
    """Terminal state of a delete request.

    Attributes:
        status: DELETED (row removed), DEACTIVATED (soft delete) or FAILED.
        reason: Why the delete failed, None otherwise.
        error: The exception that caused the rollback, if any.
    """

    status: DeleteStatus
    reason: Optional[str] = None
    error: Optional[Exception] = None

    @classmethod
    def deleted(cls) -> "DeleteOutcome":
        return cls(DeleteStatus.DELETED)

    @classmethod
    def deactivated(cls) -> "DeleteOutcome":
        return cls(DeleteStatus.DEACTIVATED)

    @classmethod
    def failed(cls, reason: str, error: Optional[Exception] = None) -> "DeleteOutcome":
        return cls(DeleteStatus.FAILED, reason=reason, error=error)


@dataclass(frozen=True)
class DeleteEvaluation:
    """Result of the evaluate step of a delete.

    Attributes:
        has_own_expenses: Expenses are filed directly under the category.
        has_blocked_descendant: Some descendant, at any depth, has expenses.
    """

    has_own_expenses: bool
    has_blocked_descendant: bool

    @property
    def blocked(self) -> bool:
        return self.has_own_expenses or self.has_blocked_descendant


@dataclass
class BulkDeleteResult:
    deleted_count: int = 0
    deactivated_count: int = 0
    failed_count: int = 0

    @property
    def success(self) -> bool:
        return self.failed_count == 0

    def to_dict(self) -> dict:
        return {
            "deleted_count": self.deleted_count,
            "deactivated_count": self.deactivated_count,
            "failed_count": self.failed_count,
        }


class _Forest:
    """One owner's categories indexed by id and by parent id.

    Sibling lists are ordered alphabetically by name (id breaks ties).
    """

    def __init__(self, categories: Iterable[Category], max_depth: int):
        self.max_depth = max_depth
        self.by_id: Dict[int, Category] = {}
        self.children: Dict[Optional[int], List[Category]] = defaultdict(list)

        for category in categories:
            self.by_id[category.id] = category
            self.children[category.parent_id].append(category)

        for siblings in self.children.values():
            siblings.sort(key=lambda c: (c.name, c.id))

    def children_of(self, category_id: Optional[int]) -> List[Category]:
        return self.children.get(category_id, [])

    def descendant_ids(self, category_id: int) -> List[int]:
        """All descendants in depth-first pre-order, excluding the node itself."""
        result: List[int] = []
        seen = {category_id}
        stack = list(reversed(self.children_of(category_id)))

        while stack:
            node = stack.pop()
            if node.id in seen:
                logger.warning(f"Cycle detected below category {category_id} at {node.id}")
                continue
            seen.add(node.id)
            result.append(node.id)
            stack.extend(reversed(self.children_of(node.id)))

        return result

    def ancestors(self, category_id: int) -> List[Category]:
        """Ancestors ordered root-first.

        The walk stops after max_depth + 1 hops so corrupt cyclic data can
        not loop forever.
        """
        chain: List[Category] = []
        seen = {category_id}
        current = self.by_id.get(category_id)

        while current is not None and current.parent_id is not None:
            parent = self.by_id.get(current.parent_id)
            if parent is None:
                break
            if parent.id in seen or len(chain) > self.max_depth:
                logger.warning(f"Ancestor walk for category {category_id} cut off at {parent.id}")
                break
            seen.add(parent.id)
            chain.append(parent)
            current = parent

        chain.reverse()
        return chain

    def depth(self, category_id: int) -> int:
        return len(self.ancestors(category_id))

    def height(self, category_id: int) -> int:
        """Number of levels hanging below a node (0 for a leaf)."""
        height = 0
        level = self.children_of(category_id)
        seen = {category_id}

        while level:
            level = [c for c in level if c.id not in seen]
            if not level:
                break
            height += 1
            seen.update(c.id for c in level)
            level = [child for c in level for child in self.children_of(c.id)]

        return height


class CategoryTree:
    """Manages one owner's expense category hierarchy.

    Args:
        categories: Category persistence gateway (CategoryService).
        max_depth: Maximum number of levels, root level included.
        default_icon: Icon given to categories created without one.
        default_color: Color given to root categories created without one.
        indent_marker: Prefix repeated once per depth level in dropdown labels.
    """

    def __init__(
        self,
        categories,
        max_depth: int = DEFAULT_MAX_DEPTH,
        default_icon: str = DEFAULT_ICON,
        default_color: str = DEFAULT_COLOR,
        indent_marker: str = DEFAULT_INDENT_MARKER,
    ):
        self.categories = categories
        self.max_depth = max_depth
        self.default_icon = default_icon
        self.default_color = default_color
        self.indent_marker = indent_marker

    def create(
        self,
        owner_id: int,
        name: str,
        parent_id: Optional[int] = None,
        description: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        status: CategoryStatus = CategoryStatus.ACTIVE,
    ) -> Category:
        """Create a category, optionally under a parent.

        Without an explicit color the category inherits its parent's color,
        or gets the default color when it is a root.

        Args:
            owner_id: ID of the owning user.
            name: Category name; trimmed and stripped of markup.
            parent_id: Parent category ID, None for a root category.
            description: Optional description.
            icon: Icon class, defaults to the configured default icon.
            color: Hex color, see above for the default.
            status: Initial status, Active unless given.

        Returns:
            The saved Category.

        Raises:
            ValidationError: Listing every rule the new category violates.
            StorageError: If the database write fails.
        """
        forest = self._load(owner_id)
        parent = forest.by_id.get(parent_id) if parent_id is not None else None

        if color is None:
            color = parent.color if parent is not None else self.default_color

        category = Category(
            id=None,
            owner_id=owner_id,
            name=_clean_name(name),
            parent_id=parent_id,
            description=description,
            icon=icon or self.default_icon,
            color=color,
            status=status,
        )
        self._validate(forest, category)

        saved = self.categories.save(category)
        logger.info(f"Created category '{saved.name}' (ID: {saved.id}) for owner {owner_id}")
        return saved

    def update(self, owner_id: int, category_id: int, **changes) -> Category:
        """Edit any of name, description, icon, color, parent_id and status.

        The edited category is re-validated against every rule before it is
        written.

        Raises:
            TypeError: If an unknown field is passed.
            NotFoundError: If the category is missing or owned by someone else.
            ValidationError: Listing every violated rule.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise TypeError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        forest = self._load(owner_id)
        current = self._require(forest, category_id)

        if "name" in changes:
            changes["name"] = _clean_name(changes["name"])
        if "status" in changes and changes["status"] in (0, 1):
            changes["status"] = CategoryStatus(changes["status"])
        edited = replace(current, **changes)
        self._validate(forest, edited)

        saved = self.categories.save(edited)
        logger.info(f"Updated category '{saved.name}' (ID: {saved.id}): {', '.join(sorted(changes))}")
        return saved

    def rename(self, owner_id: int, category_id: int, new_name: str) -> Category:
        """Rename a category, keeping it under the same parent."""
        return self.update(owner_id, category_id, name=new_name)

    def move(self, owner_id: int, category_id: int, new_parent_id: Optional[int]) -> Category:
        """Reparent a category together with its whole subtree.

        Only parent_id changes; the structure below the category is kept.

        Raises:
            NotFoundError: If the category is missing or owned by someone else.
            ValidationError: If the new parent is missing, is the category
                itself or one of its descendants, or the moved subtree would
                exceed the maximum depth.
        """
        return self.update(owner_id, category_id, parent_id=new_parent_id)

    def toggle_status(self, owner_id: int, category_id: int) -> Category:
        """Flip a category between Active and Inactive. Children are untouched."""
        category = self.get(owner_id, category_id)
        toggled = replace(category, status=CategoryStatus(category.status).toggled())

        saved = self.categories.save(toggled)
        logger.info(f"Category '{saved.name}' (ID: {saved.id}) is now {saved.status_label}")
        return saved

    def evaluate_delete(self, owner_id: int, category_id: int) -> DeleteEvaluation:
        """Run the evaluate step of delete without changing anything."""
        forest = self._load(owner_id)
        category = self._require(forest, category_id)
        return self._evaluate(forest, category)

    def delete(
        self, owner_id: int, category_id: int, cascade_children: bool = False
    ) -> DeleteOutcome:
        """Delete a category, or deactivate it when expenses depend on it.

        If the category or any descendant has expenses, the category is
        deactivated instead (and, with cascade_children, every descendant
        too). Otherwise it is removed inside one transaction: with
        cascade_children all descendants are removed bottom-up first,
        without it the direct children are moved up to the category's own
        parent. A failure rolls the whole operation back.

        Args:
            owner_id: ID of the acting owner.
            category_id: The category to delete.
            cascade_children: Apply the delete/deactivate to all descendants.

        Returns:
            DeleteOutcome with status DELETED, DEACTIVATED or FAILED.

        Raises:
            NotFoundError: If the category is missing or owned by someone else.
        """
        forest = self._load(owner_id)
        category = self._require(forest, category_id)
        evaluation = self._evaluate(forest, category)

        if evaluation.blocked:
            return self._soft_delete(forest, category, cascade_children)
        return self._hard_delete(forest, category, cascade_children)

    def bulk_delete(
        self, owner_id: int, category_ids: Iterable[int], cascade_children: bool = False
    ) -> BulkDeleteResult:
        """Delete several categories independently and tally the outcomes.

        A failing id never stops the rest of the batch.
        """
        result = BulkDeleteResult()

        for category_id in category_ids:
            try:
                outcome = self.delete(owner_id, category_id, cascade_children)
            except (NotFoundError, StorageError) as e:
                logger.warning(f"Bulk delete failed for category {category_id}: {e}")
                result.failed_count += 1
                continue

            if outcome.status is DeleteStatus.DELETED:
                result.deleted_count += 1
            elif outcome.status is DeleteStatus.DEACTIVATED:
                result.deactivated_count += 1
            else:
                result.failed_count += 1

        logger.info(
            f"Bulk delete: {result.deleted_count} deleted, "
            f"{result.deactivated_count} deactivated, {result.failed_count} failed"
        )
        return result

    def get(self, owner_id: int, category_id: int) -> Category:
        """Get a category owned by owner_id.

        Raises:
            NotFoundError: If it is missing or owned by someone else.
        """
        category = self.categories.find_by_id(category_id, owner_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def find_by_name(
        self, owner_id: int, name: str, parent_id: Optional[int] = None
    ) -> Optional[Category]:
        return self.categories.find_by_name(owner_id, name, parent_id)

    def get_ancestors(self, owner_id: int, category_id: int) -> List[Category]:
        """Ancestors of a category ordered root-first (the category itself excluded)."""
        forest = self._load(owner_id)
        self._require(forest, category_id)
        return forest.ancestors(category_id)

    def get_descendants(self, owner_id: int, category_id: int) -> Set[int]:
        """IDs of every category below this one, at any depth."""
        forest = self._load(owner_id)
        self._require(forest, category_id)
        return set(forest.descendant_ids(category_id))

    def get_depth(self, owner_id: int, category_id: int) -> int:
        """Number of ancestor hops from a root; roots have depth 0."""
        return len(self.get_ancestors(owner_id, category_id))

    def get_breadcrumb_path(self, owner_id: int, category_id: int) -> List[str]:
        """Names from the root down to the category itself."""
        forest = self._load(owner_id)
        category = self._require(forest, category_id)
        return [a.name for a in forest.ancestors(category_id)] + [category.name]

    def get_full_path(self, owner_id: int, category_id: int, separator: str = " > ") -> str:
        return separator.join(self.get_breadcrumb_path(owner_id, category_id))

    def get_children(self, owner_id: int, category_id: int) -> List[dict]:
        """Direct children of a category, for lazily expanding tree views."""
        forest = self._load(owner_id)
        self._require(forest, category_id)
        return [
            {
                "id": child.id,
                "name": child.name,
                "icon": child.icon,
                "color": child.color,
                "status": int(child.status),
                "has_children": bool(forest.children_of(child.id)),
            }
            for child in forest.children_of(category_id)
        ]

    def get_root_categories(self, owner_id: int, active_only: bool = True) -> List[Category]:
        forest = self._load(owner_id, active_only)
        return list(forest.children_of(None))

    def name_map(self, owner_id: int, active_only: bool = True) -> Dict[int, str]:
        """Flat id -> name mapping, alphabetical by name."""
        categories = self.categories.find_by_owner(owner_id, active_only)
        return {c.id: c.name for c in sorted(categories, key=lambda c: (c.name, c.id))}

    def build_tree(self, owner_id: int, active_only: bool = True) -> List[TreeNode]:
        """Build the nested category tree of an owner.

        Siblings are sorted alphabetically. With active_only, inactive
        categories are dropped along with everything below them.

        Args:
            owner_id: ID of the owner.
            active_only: Leave out inactive categories.

        Returns:
            List of root TreeNodes, each carrying its children recursively.
        """
        forest = self._load(owner_id, active_only)
        seen: Set[int] = set()

        def build(parent_id: Optional[int]) -> List[TreeNode]:
            nodes = []
            for category in forest.children_of(parent_id):
                if category.id in seen:
                    continue
                seen.add(category.id)
                node = TreeNode.from_category(category)
                node.children = build(category.id)
                nodes.append(node)
            return nodes

        return build(None)

    def flatten_for_dropdown(
        self, owner_id: int, exclude_id: Optional[int] = None, active_only: bool = True
    ) -> Dict[int, str]:
        """Flatten the tree into indented labels for a parent picker.

        The mapping is in depth-first pre-order and each label is prefixed
        with the indent marker once per depth level. exclude_id and all of
        its descendants are left out so a category can't be offered as its
        own new parent.

        Args:
            owner_id: ID of the owner.
            exclude_id: Category whose subtree must not be offered.
            active_only: Leave out inactive categories.

        Returns:
            Ordered dict of category id -> indented label.
        """
        excluded: Set[int] = set()
        if exclude_id is not None:
            forest = self._load(owner_id)
            if exclude_id in forest.by_id:
                excluded = {exclude_id, *forest.descendant_ids(exclude_id)}

        result: Dict[int, str] = {}

        def walk(nodes: List[TreeNode], depth: int) -> None:
            for node in nodes:
                if node.id in excluded:
                    continue
                result[node.id] = self.indent_marker * depth + node.name
                walk(node.children, depth + 1)

        walk(self.build_tree(owner_id, active_only), 0)
        return result

    def to_widget_projection(self, owner_id: int, active_only: bool = False) -> List[dict]:
        """Project the tree into the node format of a jsTree-style widget."""

        def convert(nodes: List[TreeNode]) -> List[dict]:
            items = []
            for node in nodes:
                active = node.status == CategoryStatus.ACTIVE
                item = {
                    "id": node.id,
                    "text": node.name,
                    "icon": node.icon or self.default_icon,
                    "state": {"opened": True},
                    "li_attr": {
                        "data-color": node.color or self.default_color,
                        "data-status": int(node.status),
                    },
                    "a_attr": {"class": "" if active else "text-muted"},
                }
                if node.children:
                    item["children"] = convert(node.children)
                items.append(item)
            return items

        return convert(self.build_tree(owner_id, active_only))

    def total_expense(
        self,
        owner_id: int,
        category_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        include_children: bool = True,
    ) -> Decimal:
        """Sum expenses of a category, optionally with all of its descendants.

        Args:
            owner_id: ID of the owner.
            category_id: The category to total.
            start_date: Inclusive lower bound on expense date.
            end_date: Inclusive upper bound on expense date.
            include_children: Add the totals of every descendant.

        Returns:
            Total as Decimal.
        """
        ids = self._scope_ids(owner_id, category_id, include_children)
        date_range = (start_date, end_date)
        return sum(
            (self.categories.sum_expenses_for_category(cid, date_range) for cid in ids),
            Decimal("0"),
        )

    def expense_count(
        self, owner_id: int, category_id: int, include_children: bool = False
    ) -> int:
        ids = self._scope_ids(owner_id, category_id, include_children)
        return sum(self.categories.count_expenses_for_category(cid) for cid in ids)

    def can_delete(self, owner_id: int, category_id: int) -> bool:
        """True when neither the category nor any descendant has expenses."""
        return not self.evaluate_delete(owner_id, category_id).blocked

    def _load(self, owner_id: int, active_only: bool = False) -> _Forest:
        return _Forest(self.categories.find_by_owner(owner_id, active_only), self.max_depth)

    def _require(self, forest: _Forest, category_id: int) -> Category:
        category = forest.by_id.get(category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def _scope_ids(self, owner_id: int, category_id: int, include_children: bool) -> List[int]:
        forest = self._load(owner_id)
        self._require(forest, category_id)
        if include_children:
            return [category_id, *forest.descendant_ids(category_id)]
        return [category_id]

    def _has_expenses(self, category_id: int) -> bool:
        return self.categories.count_expenses_for_category(category_id) > 0

    def _evaluate(self, forest: _Forest, category: Category) -> DeleteEvaluation:
        has_own = self._has_expenses(category.id)
        has_blocked = any(self._has_expenses(cid) for cid in forest.descendant_ids(category.id))
        return DeleteEvaluation(has_own_expenses=has_own, has_blocked_descendant=has_blocked)

    def _soft_delete(
        self, forest: _Forest, category: Category, cascade_children: bool
    ) -> DeleteOutcome:
        targets = [category]
        if cascade_children:
            targets += [forest.by_id[cid] for cid in forest.descendant_ids(category.id)]

        def deactivate() -> None:
            for target in targets:
                if target.status != CategoryStatus.INACTIVE:
                    self.categories.save(replace(target, status=CategoryStatus.INACTIVE))

        outcome = self._run_atomically(category, deactivate)
        if outcome is None:
            logger.warning(
                f"Category '{category.name}' (ID: {category.id}) has associated expenses; "
                f"deactivated {len(targets)} category(s) instead of deleting"
            )
            return DeleteOutcome.deactivated()
        return outcome

    def _hard_delete(
        self, forest: _Forest, category: Category, cascade_children: bool
    ) -> DeleteOutcome:
        def remove() -> None:
            if cascade_children:
                # Reversed pre-order puts every node after all of its descendants.
                for cid in reversed(forest.descendant_ids(category.id)):
                    self._delete_row(forest.by_id[cid])
                self._delete_row(category)
            else:
                # The row goes first so a child sharing its name can take its
                # place; the deferred parent_id key is checked at commit.
                self._delete_row(category)
                for child in forest.children_of(category.id):
                    self.categories.save(replace(child, parent_id=category.parent_id))

        outcome = self._run_atomically(category, remove)
        if outcome is None:
            logger.info(f"Deleted category '{category.name}' (ID: {category.id})")
            return DeleteOutcome.deleted()
        return outcome

    def _delete_row(self, category: Category) -> None:
        if not self.categories.delete_row(category.id):
            raise StorageError(f"Failed to delete category: {category.name}")

    def _run_atomically(
        self, category: Category, work: Callable[[], None]
    ) -> Optional[DeleteOutcome]:
        """Run work in one transaction; a FAILED outcome if it rolled back."""
        try:
            self.categories.run_in_transaction(work)
        except (StorageError, ValidationError, NotFoundError) as e:
            logger.error(f"Failed to delete category '{category.name}' (ID: {category.id}): {e}")
            return DeleteOutcome.failed(str(e), error=e)
        return None

    def _validate(self, forest: _Forest, category: Category) -> None:
        """Check every rule against the owner's current tree.

        Raises:
            ValidationError: With one FieldError per violated rule.
        """
        errors: List[FieldError] = []
        is_new = category.id is None

        if not category.name:
            errors.append(FieldError("name", "Category name cannot be blank."))
        elif len(category.name) > NAME_MAX_LENGTH:
            errors.append(
                FieldError("name", f"Category name must be at most {NAME_MAX_LENGTH} characters.")
            )
        elif any(
            sibling.name == category.name and sibling.id != category.id
            for sibling in forest.children_of(category.parent_id)
        ):
            errors.append(
                FieldError("name", "You already have a category with this name at this level.")
            )

        if category.color is None or not COLOR_PATTERN.fullmatch(category.color):
            errors.append(
                FieldError("color", "Invalid color format. Use hex format (e.g., #dc2626).")
            )

        if not category.icon or len(category.icon) > ICON_MAX_LENGTH:
            errors.append(
                FieldError("icon", f"Icon must be 1 to {ICON_MAX_LENGTH} characters.")
            )

        if category.status not in (CategoryStatus.ACTIVE, CategoryStatus.INACTIVE):
            errors.append(FieldError("status", "Status must be Active or Inactive."))

        errors.extend(self._validate_parent(forest, category, is_new))

        if errors:
            raise ValidationError(errors)

    def _validate_parent(
        self, forest: _Forest, category: Category, is_new: bool
    ) -> List[FieldError]:
        parent_id = category.parent_id
        if parent_id is None:
            return []

        if not is_new and parent_id == category.id:
            return [FieldError("parent_id", "Category cannot be its own parent.")]

        if parent_id not in forest.by_id:
            return [FieldError("parent_id", "Parent category does not exist.")]

        if not is_new and parent_id in forest.descendant_ids(category.id):
            return [FieldError("parent_id", "Cannot move category under its own descendant.")]

        # Deepest level of the (moved) subtree, counting the root level as 1.
        subtree_height = 0 if is_new else forest.height(category.id)
        levels = forest.depth(parent_id) + 2 + subtree_height
        if levels > self.max_depth:
            return [
                FieldError("parent_id", f"Maximum category depth ({self.max_depth}) exceeded.")
            ]

        return []


def _clean_name(name: Optional[str]) -> str:
    return _TAG_PATTERN.sub("", name or "").strip()
