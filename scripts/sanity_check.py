"""
Sanity check script for database files.

Lists every table in a geodatabase / SQLite / DuckDB file (or parquet
directory) with row counts, and, given a relationship schema, verifies that
every declared table and key field exists.

Usage:
    uv run python scripts/sanity_check.py data/gdb.geodatabase
    uv run python scripts/sanity_check.py data/gdb.geodatabase --schema schema.toml
    uv run python scripts/sanity_check.py data/gdb.geodatabase --verbose --system
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path

from relresolve.configurations import SchemaConfig, load_schema
from relresolve.data import find_column, get_table_info, load_frame
from relresolve.errors import ConfigurationError


@dataclass
class TableCheckResult:
    """Result of checking a single declared table."""

    name: str
    success: bool
    rows: int = 0
    error: str | None = None


def check_schema(db_path: Path, schema: SchemaConfig) -> list[TableCheckResult]:
    """Verify the tables, identifier columns and key fields a schema declares.

    Args:
        db_path: Path to the database file or directory.
        schema: Relationship declarations to check.

    Returns:
        One TableCheckResult per referenced table.
    """
    results = []
    uid_field = schema.resolver.unique_id_field
    for table_name in schema.table_names:
        try:
            df = load_frame(db_path, table_name)
        except ConfigurationError as e:
            results.append(TableCheckResult(name=table_name, success=False, error=str(e)))
            continue

        missing = []
        if any(rel.target_table == table_name for rel in schema.relationships):
            if find_column(df, uid_field) is None:
                missing.append(uid_field)
        for rel in schema.relationships:
            if rel.source_table == table_name and find_column(df, rel.key_field) is None:
                missing.append(f"{rel.key_field} ({rel.name})")

        if missing:
            results.append(
                TableCheckResult(
                    name=table_name,
                    success=False,
                    rows=len(df),
                    error=f"missing columns: {', '.join(missing)}",
                )
            )
        else:
            results.append(TableCheckResult(name=table_name, success=True, rows=len(df)))
    return results


def print_result(result: TableCheckResult) -> None:
    """Print the result of a table check."""
    if result.success:
        print(f"  ✓ {result.name}: {result.rows:,} rows")
    else:
        print(f"  ✗ {result.name}: FAILED - {result.error}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Sanity check a database file")
    parser.add_argument("db", type=Path, help="Database file or parquet directory")
    parser.add_argument("--schema", type=Path, default=None, help="Relationship schema to verify")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show column names")
    parser.add_argument("--system", action="store_true", help="Include geodatabase system tables")
    args = parser.parse_args()

    try:
        info = get_table_info(args.db, include_system=args.system)
    except ConfigurationError as e:
        print(f"✗ {e}")
        return 1

    print(f"Tables in {args.db} ({len(info)}):")
    for table in info:
        print(f"  - {table['name']}: {table['rows']:,} rows")
        if args.verbose:
            print(f"      columns: {table['columns']}")

    if args.schema is None:
        return 0

    try:
        schema = load_schema(args.schema)
    except ConfigurationError as e:
        print(f"✗ {e}")
        return 1

    print(f"\nChecking {len(schema.relationships)} relationships:")
    results = check_schema(args.db, schema)
    for result in results:
        print_result(result)

    failed = [r for r in results if not r.success]
    print(f"\n{len(results) - len(failed)}/{len(results)} tables OK")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
