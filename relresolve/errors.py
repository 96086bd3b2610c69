"""
Error kinds raised while loading, indexing and resolving relationships.

Configuration errors are fatal and never retried. Data-integrity errors mean
the stored data breaks an assumption the resolver relies on (unique
identifiers being unique).
"""

from __future__ import annotations

from typing import Any


class RelResolveError(Exception):
    """Base class for all relresolve errors."""


class ConfigurationError(RelResolveError):
    """The schema or the database does not match what was declared."""


class UnknownTableError(ConfigurationError, KeyError):
    """A table name that is not present in the loaded schema or database file."""

    def __init__(self, table_name: str, available: list[str] | None = None) -> None:
        self.table_name = table_name
        self.available = sorted(available) if available is not None else None
        message = f"Unknown table '{table_name}'"
        if self.available is not None:
            message += f" (available: {', '.join(self.available) or 'none'})"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class SchemaError(ConfigurationError, ValueError):
    """Malformed relationship metadata."""


class DataIntegrityError(RelResolveError):
    """Stored data violates an integrity assumption."""


class AmbiguousMatchError(DataIntegrityError):
    """A key value matches more than one record of a table whose identifier must be unique."""

    def __init__(self, table_name: str, key_value: Any, row_ids: list[str]) -> None:
        self.table_name = table_name
        self.key_value = key_value
        self.row_ids = row_ids
        super().__init__(
            f"Key {key_value!r} matches {len(row_ids)} records in '{table_name}': "
            f"{', '.join(row_ids)}"
        )
