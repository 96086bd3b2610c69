"""
Diagnostic report for related-record lookups.

Prints one line per relationship and flags the three defects a faulty
related-records implementation shows:

1. Collisions: two relationships to the same table, keyed on fields holding
   different values, resolving to the same record.
2. Asymmetry: a forward hit S -> T whose inverse from T does not return S.
3. Cross-check mismatches: a related result differing from the plain
   attribute query on the relationship's key field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Sequence

from loguru import logger

from relresolve.resolver import RelationshipResolver
from relresolve.types import RelatedResultSet, Record, Relationship


@dataclass
class Collision:
    """Two relationships with different key values that share related records."""

    row_id: str
    first: RelatedResultSet
    second: RelatedResultSet
    shared_ids: list[Any]

    def describe(self) -> str:
        return (
            f"{self.row_id}: '{self.first.relationship.name}' ({self.first.relationship.key_field}="
            f"{self.first.key_value}) and '{self.second.relationship.name}' "
            f"({self.second.relationship.key_field}={self.second.key_value}) "
            f"both resolve to {', '.join(map(str, self.shared_ids))}"
        )


@dataclass
class SymmetryViolation:
    """A related record whose inverse lookup does not lead back."""

    relationship: Relationship
    row_id: str
    related_row_id: str

    def describe(self) -> str:
        return (
            f"{self.row_id} -> {self.related_row_id} via '{self.relationship.name}', "
            f"but the inverse lookup from {self.related_row_id} does not return {self.row_id}"
        )


@dataclass
class CrossCheckMismatch:
    """A related result that disagrees with the equivalent attribute query."""

    relationship: Relationship
    row_id: str
    expected: list[str]
    actual: list[str]

    def describe(self) -> str:
        return (
            f"{self.row_id} via '{self.relationship.name}': attribute query found "
            f"{len(self.expected)} records {self.expected}, related lookup found "
            f"{len(self.actual)} records {self.actual}"
        )


@dataclass
class DiagnosticReport:
    """Results and findings for one starting record."""

    table: str
    record: Record
    results: list[RelatedResultSet] = field(default_factory=list)
    collisions: list[Collision] = field(default_factory=list)
    symmetry_violations: list[SymmetryViolation] = field(default_factory=list)
    mismatches: list[CrossCheckMismatch] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.collisions or self.symmetry_violations or self.mismatches)

    @property
    def lines(self) -> list[str]:
        return [format_result(result) for result in self.results]

    @property
    def findings(self) -> list[str]:
        return [
            finding.describe()
            for finding in (*self.collisions, *self.symmetry_violations, *self.mismatches)
        ]


def format_result(result: RelatedResultSet) -> str:
    """One report line: relationship, key field, related table, count and identifiers."""
    rel = result.relationship
    name = f"{rel.name} (inverse)" if rel.is_inverse else rel.name
    ids = ", ".join(str(gid) for gid in result.global_ids) or "-"
    return (
        f"Relationship: {name}, key field: {rel.key_field}, "
        f"related table: {result.related_table}, "
        f"related record count: {result.count}, globalid: {ids}"
    )


def find_collisions(record: Record, results: Sequence[RelatedResultSet]) -> list[Collision]:
    """
    Pairs of result sets that share records although their key values differ.

    Only pairs reaching the same table through different key fields are
    compared; equal key values legitimately resolve to the same record.
    """
    collisions = []
    for first, second in combinations(results, 2):
        if first.related_table != second.related_table:
            continue
        if first.relationship.key_field == second.relationship.key_field:
            continue
        if first.key_value is None or second.key_value is None:
            continue
        if first.key_value == second.key_value:
            continue
        first_ids = {r.row_id for r in first.records}
        shared = [r.global_id for r in second.records if r.row_id in first_ids]
        if shared:
            collisions.append(Collision(record.row_id, first, second, shared))
    return collisions


def check_symmetry(
    resolver: RelationshipResolver,
    record: Record,
    results: Sequence[RelatedResultSet],
) -> list[SymmetryViolation]:
    """Resolve every related record back through the inverse relationship."""
    violations = []
    for result in results:
        inverse = result.relationship.inverse()
        for related in result.records:
            (back,) = resolver.resolve_related(result.related_table, related, [inverse])
            if record.row_id not in {r.row_id for r in back.records}:
                violations.append(SymmetryViolation(result.relationship, record.row_id, related.row_id))
    return violations


def cross_check(
    resolver: RelationshipResolver,
    record: Record,
    results: Sequence[RelatedResultSet],
) -> list[CrossCheckMismatch]:
    """
    Compare each related result against a plain attribute query.

    Forward results are checked against the target table's identifier
    field, inverse results against the source table's key field.
    """
    uid_field = resolver.graph.config.unique_id_field
    mismatches = []
    for result in results:
        rel = result.relationship
        if result.key_value is None:
            continue
        if rel.is_inverse:
            expected = resolver.query(rel.source_table, rel.key_field, result.key_value)
        else:
            expected = resolver.query(rel.target_table, uid_field, result.key_value)

        expected_ids = [r.row_id for r in expected]
        actual_ids = [r.row_id for r in result.records]
        if sorted(expected_ids) != sorted(actual_ids):
            mismatches.append(CrossCheckMismatch(rel, record.row_id, expected_ids, actual_ids))
    return mismatches


def build_report(
    resolver: RelationshipResolver,
    table: str,
    record: Record,
    relationships: Sequence[Relationship] | None = None,
) -> DiagnosticReport:
    """
    Resolve relationships for one record and run every check on the results.

    Args:
        resolver: Resolver over the loaded tables
        table: Table the record belongs to
        record: Starting record
        relationships: Relationships to resolve (default: all applicable to `table`)

    Returns:
        DiagnosticReport with results and findings
    """
    if relationships is None:
        results = resolver.resolve_all(table, record)
    else:
        results = resolver.resolve_related(table, record, relationships)

    report = DiagnosticReport(
        table=table,
        record=record,
        results=results,
        collisions=find_collisions(record, results),
        symmetry_violations=check_symmetry(resolver, record, results),
        mismatches=cross_check(resolver, record, results),
    )
    for finding in report.findings:
        logger.error(finding)
    return report


def print_report(report: DiagnosticReport) -> None:
    """Print a report's lines and findings to stdout."""
    print(f"{report.table} {report.record.row_id}:")
    if not report.results:
        print("  (no relationships)")
    for line in report.lines:
        print(f"  {line}")
    for finding in report.findings:
        print(f"  ✗ {finding}")
