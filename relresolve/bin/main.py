"""
Diagnostic run: resolve every relationship of one record, then resolve back
from each related record, and report collisions and asymmetries.

Usage:
    relresolve --demo
    relresolve --db data/gdb.geodatabase --schema schema.toml \
        --table OverettlinjeLys --where "FKNavInst1={F9158A1D-A1BF-4110-B964-6B25ABC0E143}"
    relresolve --db data/gdb.geodatabase --schema schema.toml \
        --table Lys --global-id "{F9158A1D-A1BF-4110-B964-6B25ABC0E143}"

Exit status: 0 clean, 1 defect detected, 2 configuration error.
"""

import argparse
import os
import sys
from pathlib import Path

from loguru import logger

from relresolve.configurations import DiagnosticConfig, load_schema
from relresolve.data import load_database
from relresolve.dummy_data import FRONT_LIGHT_ID, LEADING_LINES_TABLE, create_dummy_database, dummy_schema
from relresolve.errors import ConfigurationError, DataIntegrityError
from relresolve.graph_builder import RelationshipGraphBuilder
from relresolve.report import DiagnosticReport, build_report, print_report
from relresolve.resolver import RelationshipResolver
from relresolve.types import Record

EXIT_OK = 0
EXIT_DEFECT = 1
EXIT_CONFIG_ERROR = 2


def build_resolver(config: DiagnosticConfig) -> RelationshipResolver:
    """Load tables and relationships and index them."""
    if config.demo:
        schema = dummy_schema()
        db = create_dummy_database(schema)
    else:
        if config.db_path is None or config.schema_path is None:
            raise ConfigurationError("--db and --schema are required unless --demo is given")
        schema = load_schema(config.schema_path)
        db = load_database(config.db_path, schema)

    graph = RelationshipGraphBuilder(
        db,
        schema.relationships,
        schema.resolver,
        show_progress=sys.stderr.isatty(),
    )
    logger.info(f"Indexed {graph.num_records} records in {len(graph.table_names)} tables")
    return RelationshipResolver(graph)


def select_record(resolver: RelationshipResolver, config: DiagnosticConfig) -> Record:
    """Find the starting record by unique identifier or by FIELD=VALUE."""
    table = config.table
    if table is None:
        raise ConfigurationError("--table is required")

    if config.global_id is not None:
        record = resolver.get_record(table, config.global_id)
        if record is None:
            raise ConfigurationError(f"No record in '{table}' with identifier {config.global_id}")
        return record

    if config.where_field is None:
        raise ConfigurationError("Either --global-id or --where is required")

    matches = resolver.query(table, config.where_field, config.where_value)
    if not matches:
        raise ConfigurationError(f"No record in '{table}' where {config.where_field} = {config.where_value}")
    if len(matches) > 1:
        logger.warning(f"{len(matches)} records match, using the first ({matches[0].row_id})")
    return matches[0]


def run(config: DiagnosticConfig) -> list[DiagnosticReport]:
    """
    Run both diagnostic passes.

    The first pass resolves every relationship of the selected record. The
    second starts from each record found in the first pass and resolves
    every relationship of its table, which exercises the inverse direction.
    """
    resolver = build_resolver(config)
    record = select_record(resolver, config)

    reports = [build_report(resolver, config.table, record)]

    seen = {record.row_id}
    for result in reports[0].results:
        for related in result.records:
            if related.row_id in seen:
                continue
            seen.add(related.row_id)
            reports.append(build_report(resolver, result.related_table, related))

    return reports


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Diagnose many-to-many related-record lookups")

    parser.add_argument("--db", type=Path, default=None, help="Geodatabase, SQLite, DuckDB file or parquet directory")
    parser.add_argument("--schema", type=Path, default=None, help="TOML file declaring the relationships")
    parser.add_argument("--table", type=str, default=None, help="Table of the starting record")
    parser.add_argument("--global-id", type=str, default=None, help="Unique identifier of the starting record")
    parser.add_argument(
        "--where",
        type=str,
        default=None,
        help="Select the starting record by FIELD=VALUE instead of --global-id",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Use the built-in sample database (leading lines and lights)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("RELRESOLVE_LOG_LEVEL", "INFO"),
        help="Log level (default: $RELRESOLVE_LOG_LEVEL or INFO)",
    )

    args = parser.parse_args(argv)

    config = DiagnosticConfig(
        db_path=args.db,
        schema_path=args.schema,
        table=args.table,
        global_id=args.global_id,
        demo=args.demo,
        log_level=args.log_level.upper(),
    )
    if args.where is not None:
        field, sep, value = args.where.partition("=")
        if not sep or not field.strip():
            parser.error("--where must look like FIELD=VALUE")
        config.where_field = field.strip()
        config.where_value = value.strip().strip("'\"").strip()
        if not config.where_value:
            parser.error("--where needs a non-empty VALUE")
    if config.demo:
        # Default starting point: the leading line referencing the front light
        config.table = config.table or LEADING_LINES_TABLE
        if config.global_id is None and config.where_field is None:
            config.where_field = "FKNavInst1"
            config.where_value = FRONT_LIGHT_ID

    logger.remove()
    logger.add(sys.stderr, level=config.log_level)

    try:
        reports = run(config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    except DataIntegrityError as e:
        logger.error(f"Data integrity error: {e}")
        return EXIT_DEFECT

    for report in reports:
        print_report(report)

    defects = sum(len(report.findings) for report in reports)
    if defects:
        logger.error(f"{defects} defects found in {len(reports)} reports")
        return EXIT_DEFECT
    logger.success(f"All {len(reports)} reports consistent")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
