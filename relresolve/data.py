"""
Data loading utilities for local database files.

Supported sources:
    *.geodatabase, *.sqlite, *.db   Mobile geodatabases and other SQLite files
    *.duckdb                        DuckDB database files
    <directory>                     One <table>.parquet file per table

Every loader returns fully materialized data and closes its connection
before returning; the resolver only ever sees in-memory snapshots.

Usage:
    from relresolve.data import list_tables, load_database, load_table

    # List user tables in a mobile geodatabase
    tables = list_tables(Path("data/gdb.geodatabase"))

    # Load a single table keyed on its globalid column
    table = load_table(Path("data/gdb.geodatabase"), "Lys")

    # Load every table a schema refers to, with foreign keys attached
    db = load_database(Path("data/gdb.geodatabase"), schema)
"""

import sqlite3
from contextlib import closing
from pathlib import Path

import duckdb
import pandas as pd
from loguru import logger
from relbench.base import Database, Table

from relresolve.configurations import SchemaConfig
from relresolve.errors import ConfigurationError, UnknownTableError

SQLITE_SUFFIXES = {".geodatabase", ".sqlite", ".sqlite3", ".db"}
DUCKDB_SUFFIXES = {".duckdb"}

# Geodatabase bookkeeping tables, hidden unless explicitly requested.
SYSTEM_TABLE_PREFIXES = ("sqlite_", "gdb_", "st_")


def _source_kind(db_path: Path) -> str:
    if db_path.is_dir():
        return "parquet"
    if not db_path.exists():
        raise ConfigurationError(f"Database not found: {db_path}")
    suffix = db_path.suffix.lower()
    if suffix in SQLITE_SUFFIXES:
        return "sqlite"
    if suffix in DUCKDB_SUFFIXES:
        return "duckdb"
    raise ConfigurationError(f"Unsupported database file type: {db_path}")


def _connect_sqlite(db_path: Path) -> sqlite3.Connection:
    """Open a SQLite file read-only."""
    return sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _is_system_table(name: str) -> bool:
    return name.lower().startswith(SYSTEM_TABLE_PREFIXES)


def list_tables(db_path: Path, include_system: bool = False) -> list[str]:
    """
    List table names in a database file or parquet directory.

    Args:
        db_path: Path to the database file or directory
        include_system: Also return geodatabase/SQLite bookkeeping tables

    Returns:
        Sorted list of table names
    """
    db_path = Path(db_path)
    kind = _source_kind(db_path)

    if kind == "sqlite":
        with closing(_connect_sqlite(db_path)) as conn:
            rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        names = [name for (name,) in rows]
    elif kind == "duckdb":
        with closing(duckdb.connect(str(db_path), read_only=True)) as conn:
            names = [name for (name,) in conn.sql("SHOW TABLES").fetchall()]
    else:
        names = [p.stem for p in db_path.glob("*.parquet")]

    if not include_system:
        names = [name for name in names if not _is_system_table(name)]
    return sorted(names)


def load_frame(db_path: Path, table_name: str) -> pd.DataFrame:
    """
    Read a whole table into a DataFrame.

    Raises:
        UnknownTableError: if the table does not exist in the source
    """
    db_path = Path(db_path)
    kind = _source_kind(db_path)
    available = list_tables(db_path, include_system=True)
    if table_name not in available:
        raise UnknownTableError(table_name, [t for t in available if not _is_system_table(t)])

    if kind == "sqlite":
        with closing(_connect_sqlite(db_path)) as conn:
            df = pd.read_sql_query(f"SELECT * FROM {_quote(table_name)}", conn)
    elif kind == "duckdb":
        with closing(duckdb.connect(str(db_path), read_only=True)) as conn:
            df = conn.sql(f"SELECT * FROM {_quote(table_name)}").df()
    else:
        df = pd.read_parquet(db_path / f"{table_name}.parquet")

    logger.debug(f"Read {len(df)} rows from {db_path}:{table_name}")
    return df


def find_column(df: pd.DataFrame, name: str) -> str | None:
    """Actual column name matching `name`, exactly or ignoring case."""
    if name in df.columns:
        return name
    folded = name.casefold()
    for col in df.columns:
        if str(col).casefold() == folded:
            return col
    return None


def load_table(
    db_path: Path,
    table_name: str,
    unique_id_field: str = "globalid",
    fkey_col_to_pkey_table: dict[str, str] | None = None,
) -> Table:
    """
    Load a table as a relbench Table keyed on its unique-identifier column.

    Args:
        db_path: Path to the database file or parquet directory
        table_name: Name of the table to load
        unique_id_field: Column holding each row's unique identifier
        fkey_col_to_pkey_table: Foreign key columns of this table and the tables they reference

    Returns:
        relbench Table (pkey_col is None when the table has no identifier column)
    """
    df = load_frame(db_path, table_name)

    pkey_col = find_column(df, unique_id_field)
    if pkey_col is None:
        logger.warning(f"Table '{table_name}' has no '{unique_id_field}' column")

    # Key columns are stored under their actual (possibly differently cased) names.
    fkeys: dict[str, str] = {}
    for fk_col, pkey_table in (fkey_col_to_pkey_table or {}).items():
        actual = find_column(df, fk_col)
        if actual is None:
            logger.warning(f"Table '{table_name}' has no key field '{fk_col}'")
            continue
        fkeys[actual] = pkey_table

    return Table(df=df, fkey_col_to_pkey_table=fkeys, pkey_col=pkey_col)


def load_database(db_path: Path, schema: SchemaConfig) -> Database:
    """
    Load every table referenced by the schema's relationships.

    Args:
        db_path: Path to the database file or parquet directory
        schema: Relationship declarations and resolver settings

    Returns:
        relbench Database containing only the referenced tables
    """
    db_path = Path(db_path)
    logger.info(f"Loading {len(schema.table_names)} tables from {db_path}")

    table_dict: dict[str, Table] = {}
    for table_name in schema.table_names:
        fkeys = {
            rel.key_field: rel.target_table
            for rel in schema.relationships
            if rel.source_table == table_name
        }
        table = load_table(
            db_path,
            table_name,
            unique_id_field=schema.resolver.unique_id_field,
            fkey_col_to_pkey_table=fkeys,
        )
        table_dict[table_name] = table
        logger.info(f"  {table_name}: {len(table)} rows")

    return Database(table_dict=table_dict)


def get_table_info(db_path: Path, include_system: bool = False) -> list[dict[str, str | int]]:
    """
    Get information about all tables in a database file.

    Args:
        db_path: Path to the database file or parquet directory
        include_system: Also report geodatabase/SQLite bookkeeping tables

    Returns:
        List of dicts with table name, row count and column names
    """
    info = []
    for table_name in list_tables(db_path, include_system=include_system):
        df = load_frame(db_path, table_name)
        info.append({"name": table_name, "rows": len(df), "columns": ", ".join(map(str, df.columns))})
    return info
