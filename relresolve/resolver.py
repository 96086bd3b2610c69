"""
Relationship resolution over an indexed, read-only snapshot of tables.

Every relationship is resolved on its own: the forward direction reads that
relationship's key field from the record and looks it up in the target
table's unique-identifier index; the inverse direction reads the
relationship's reverse index, built from the same lookup. Nothing is shared
between relationships, even when they connect the same pair of tables.
"""

from __future__ import annotations

from typing import Any, Sequence

from loguru import logger

from relresolve.errors import AmbiguousMatchError, SchemaError
from relresolve.graph_builder import RelationshipGraphBuilder
from relresolve.types import RelatedResultSet, Record, Relationship


class RelationshipResolver:
    """Answers related-record and attribute queries against a built graph."""

    def __init__(self, graph: RelationshipGraphBuilder) -> None:
        self.graph = graph

    @property
    def relationships(self) -> tuple[Relationship, ...]:
        return self.graph.relationships

    def resolve_related(
        self,
        table: str,
        record: Record,
        relationships: Sequence[Relationship],
    ) -> list[RelatedResultSet]:
        """
        Resolve each relationship for one record, independently and in order.

        Args:
            table: Name of the table `record` belongs to
            record: The record to start from
            relationships: Relationships (or inverses) whose `from_table` is `table`

        Returns:
            One RelatedResultSet per relationship, in input order

        Raises:
            UnknownTableError: if `table` is not loaded
            SchemaError: if the list is empty or a relationship does not start at `table`
            AmbiguousMatchError: if a key matches several target records
        """
        self.graph.check_table(table)
        if not relationships:
            raise SchemaError(f"No relationships given to resolve for '{table}'")
        if record.table != table:
            raise SchemaError(f"Record {record.row_id} does not belong to table '{table}'")

        results = []
        for rel in relationships:
            if rel.from_table != table:
                raise SchemaError(
                    f"Relationship '{rel.name}' starts at '{rel.from_table}', not '{table}'"
                )
            if rel.is_inverse:
                results.append(self._resolve_inverse(record, rel))
            else:
                results.append(self._resolve_forward(record, rel))
        return results

    def _resolve_forward(self, record: Record, rel: Relationship) -> RelatedResultSet:
        key = self.graph.key_value(record, rel)
        if key is None:
            logger.debug(f"{record.row_id}: '{rel.key_field}' is null, nothing related via '{rel.name}'")
            return RelatedResultSet(relationship=rel, key_value=None)

        targets = self.graph.lookup(rel.target_table, key)
        if len(targets) > 1:
            raise AmbiguousMatchError(rel.target_table, key, [t.row_id for t in targets])
        if not targets:
            logger.debug(f"{record.row_id}: '{rel.key_field}'={key} has no match in '{rel.target_table}'")
        return RelatedResultSet(relationship=rel, key_value=key, records=tuple(targets))

    def _resolve_inverse(self, record: Record, rel: Relationship) -> RelatedResultSet:
        if record.global_id is None:
            logger.warning(f"{record.row_id} has no unique identifier; nothing can reference it")
            return RelatedResultSet(relationship=rel, key_value=None)

        sources = self.graph.referencing(rel, record.global_id)
        return RelatedResultSet(relationship=rel, key_value=record.global_id, records=tuple(sources))

    def relationships_for(self, table: str) -> list[Relationship]:
        """
        Every declared relationship applicable to a table.

        Forward relationships (table is the source) come first, then inverses
        (table is the target), each in declaration order.
        """
        self.graph.check_table(table)
        forward = [rel for rel in self.relationships if rel.source_table == table]
        inverse = [rel.inverse() for rel in self.relationships if rel.target_table == table]
        return forward + inverse

    def resolve_all(self, table: str, record: Record) -> list[RelatedResultSet]:
        """Resolve every relationship applicable to the record's table."""
        relationships = self.relationships_for(table)
        if not relationships:
            return []
        return self.resolve_related(table, record, relationships)

    def query(self, table: str, field: str, value: Any) -> list[Record]:
        """
        Attribute query: records whose `field` equals `value`.

        Values are compared after key normalization, so GUIDs match
        regardless of case and braces. A null value matches nothing.
        """
        wanted = self.graph.normalize(value)
        if wanted is None:
            return []
        case_insensitive = self.graph.config.case_insensitive_fields
        return [
            record
            for record in self.graph.records(table)
            if self.graph.normalize(record.get(field, case_insensitive=case_insensitive)) == wanted
        ]

    def get_record(self, table: str, global_id: Any) -> Record | None:
        """The record with the given unique identifier, or None if there is none."""
        key = self.graph.normalize(global_id)
        matches = self.graph.lookup(table, key)
        if len(matches) > 1:
            raise AmbiguousMatchError(table, key, [m.row_id for m in matches])
        return matches[0] if matches else None
