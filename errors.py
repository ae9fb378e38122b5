"""Error types raised by the category services."""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class FieldError:
    """A single failed validation rule.

    Attributes:
        field: Name of the offending attribute (e.g. "name", "parent_id").
        reason: Human-readable message.
    """

    field: str
    reason: str


class ValidationError(Exception):
    """One or more validation rules failed.

    All violated rules are collected before raising so callers can present
    the complete list at once.
    """

    def __init__(self, errors: List[FieldError]):
        self.errors = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.reason}" for e in self.errors))

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]

    def reasons_for(self, field: str) -> List[str]:
        """Return every reason recorded against the given field."""
        return [e.reason for e in self.errors if e.field == field]


class NotFoundError(Exception):
    """The category does not exist or belongs to another owner."""

    def __init__(self, entity: str, entity_id: Optional[int]):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found")


class StorageError(Exception):
    """The persistence layer failed; the caller may retry."""
