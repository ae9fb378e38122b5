"""Category model for hierarchical expense categorization."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import List, Optional

from config import DEFAULT_COLOR, DEFAULT_ICON


class CategoryStatus(IntEnum):
    INACTIVE = 0
    ACTIVE = 1

    @property
    def label(self) -> str:
        return "Active" if self is CategoryStatus.ACTIVE else "Inactive"

    def toggled(self) -> "CategoryStatus":
        if self is CategoryStatus.ACTIVE:
            return CategoryStatus.INACTIVE
        return CategoryStatus.ACTIVE


@dataclass
class Category:
    """Represents a user-owned expense category.

    Attributes:
        id: Unique identifier (assigned on first save, None before that).
        owner_id: ID of the owning user.
        name: Category name (unique among siblings of the same owner).
        parent_id: Parent category ID, None for root categories.
        description: Optional description of what belongs in this category.
        icon: Bootstrap icon class, e.g. "bi-cart".
        color: Hex color code, "#RGB" or "#RRGGBB".
        status: Active/Inactive.
        created_at, updated_at, created_by, updated_by: Audit metadata stamped
            by the persistence layer on save.
    """

    id: Optional[int]
    owner_id: int
    name: str
    parent_id: Optional[int] = None
    description: Optional[str] = None
    icon: str = DEFAULT_ICON
    color: str = DEFAULT_COLOR
    status: CategoryStatus = CategoryStatus.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_active(self) -> bool:
        return self.status == CategoryStatus.ACTIVE

    @property
    def status_label(self) -> str:
        return CategoryStatus(self.status).label

    def to_dict(self) -> dict:
        """Convert category to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "parent_id": self.parent_id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
            "status": int(self.status),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }


@dataclass
class TreeNode:
    """One category in a nested tree built from flat rows."""

    id: int
    name: str
    icon: str
    color: str
    status: CategoryStatus
    description: Optional[str]
    children: List["TreeNode"] = field(default_factory=list)

    @classmethod
    def from_category(cls, category: Category) -> "TreeNode":
        return cls(
            id=category.id,
            name=category.name,
            icon=category.icon,
            color=category.color,
            status=category.status,
            description=category.description,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "status": int(self.status),
            "description": self.description,
            "children": [child.to_dict() for child in self.children],
        }
