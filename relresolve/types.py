from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Any


class Direction(IntEnum):
    """
    Which way a relationship is traversed.
    """

    FORWARD = 0  # source → target (key field → unique identifier)
    INVERSE = 1  # target → source (unique identifier → key field)


@dataclass(frozen=True)
class Relationship:
    """A named foreign-key association from one table to another"""

    name: str
    source_table: str
    target_table: str
    key_field: str  # Lives on the source table, holds target unique identifiers
    direction: Direction = Direction.FORWARD

    def inverse(self) -> Relationship:
        """The same relationship traversed the other way."""
        flipped = Direction.INVERSE if self.direction == Direction.FORWARD else Direction.FORWARD
        return replace(self, direction=flipped)

    @property
    def is_inverse(self) -> bool:
        return self.direction == Direction.INVERSE

    @property
    def from_table(self) -> str:
        """Table whose records this traversal starts from."""
        return self.target_table if self.is_inverse else self.source_table

    @property
    def to_table(self) -> str:
        """Table whose records this traversal returns."""
        return self.source_table if self.is_inverse else self.target_table


@dataclass(frozen=True)
class Record:
    """Represents a single table row"""

    row_id: str
    table: str
    values: dict[str, Any]
    global_id: Any  # Normalized unique identifier, None when the row has none

    # Position of the row within its table
    index: int

    def get(self, field: str, case_insensitive: bool = True) -> Any:
        """
        Value of an attribute, or None if the record has no such attribute.

        Exact names win; otherwise names are compared case-insensitively.
        """
        if field in self.values:
            return self.values[field]
        if case_insensitive:
            folded = field.casefold()
            for name, value in self.values.items():
                if name.casefold() == folded:
                    return value
        return None


@dataclass(frozen=True)
class RelatedResultSet:
    """Records reached from one record through one relationship"""

    relationship: Relationship
    key_value: Any  # The normalized value the lookup was keyed on
    records: tuple[Record, ...] = ()

    @property
    def related_table(self) -> str:
        return self.relationship.to_table

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def global_ids(self) -> list[Any]:
        return [record.global_id for record in self.records]

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)
