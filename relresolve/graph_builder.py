import uuid
from collections import defaultdict
from typing import Any, Iterable

import numpy as np
import pandas as pd
from loguru import logger
from relbench.base import Database
from tqdm import tqdm

from relresolve.configurations import ResolverConfig, validate_relationships
from relresolve.data import find_column
from relresolve.errors import SchemaError, UnknownTableError
from relresolve.types import Record, Relationship


def normalize_key(value: Any, normalize_guids: bool = True) -> Any:
    """
    Canonical form of a key or identifier value, or None for null.

    GUIDs compare as lowercase without braces, so "{F9158A1D-...}" and
    "f9158a1d-..." are the same key. Whole floats become ints because
    pandas stores integer key columns containing nulls as float.
    """
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if pd.api.types.is_scalar(value) and not isinstance(value, (str, bytes)) and pd.isna(value):
        return None
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        if normalize_guids:
            try:
                return str(uuid.UUID(value))
            except ValueError:
                pass
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class RelationshipGraphBuilder:
    """
    Converts a relbench Database + relationship declarations into indexed Records.

    The graph includes:
    - One Record per table row, addressable by row_id
    - A unique-identifier index per table: (table_name, global_id) -> row_ids
    - A reverse index per relationship: relationship -> global_id -> source row_ids

    Relationships are never merged per table pair; each one keeps its own
    reverse index even when several share the same source and target.
    """

    def __init__(
        self,
        db: Database,
        relationships: Iterable[Relationship],
        config: ResolverConfig | None = None,
        show_progress: bool = False,
    ) -> None:
        self.db = db
        self.config = config or ResolverConfig()
        self.relationships: tuple[Relationship, ...] = tuple(relationships)
        self.show_progress = show_progress

        # Records keyed by global row_id
        self.rows: dict[str, Record] = {}

        # Records per table, in table order
        self._table_rows: dict[str, list[Record]] = {}

        # Index for unique-identifier lookups: (table_name, global_id) -> row_ids
        # More than one row_id means the identifier is duplicated.
        self._pkey_index: dict[tuple[str, Any], list[str]] = {}

        # Reverse index: forward relationship -> target global_id -> source row_ids
        # Keyed by the whole declaration, so equal names with different key fields never share.
        self._reverse_index: dict[Relationship, dict[Any, list[str]]] = {}

        self._validate_schema()
        self._build_rows()
        self._build_relationships()

    def _validate_schema(self) -> None:
        """Fail fast on declarations that do not match the loaded tables."""
        validate_relationships(self.relationships)
        available = list(self.db.table_dict.keys())
        for rel in self.relationships:
            for table_name in (rel.source_table, rel.target_table):
                if table_name not in self.db.table_dict:
                    raise UnknownTableError(table_name, available)
            if self._unique_id_column(rel.target_table) is None:
                raise SchemaError(
                    f"Relationship '{rel.name}' targets '{rel.target_table}', "
                    f"which has no '{self.config.unique_id_field}' column"
                )

    def _unique_id_column(self, table_name: str) -> str | None:
        table = self.db.table_dict[table_name]
        if table.pkey_col is not None and table.pkey_col in table.df.columns:
            return table.pkey_col
        return self._find_column(table.df, self.config.unique_id_field)

    def _find_column(self, df: pd.DataFrame, name: str) -> str | None:
        if self.config.case_insensitive_fields:
            return find_column(df, name)
        return name if name in df.columns else None

    def _build_rows(self) -> None:
        """Create Record objects for each database row."""
        tables = tqdm(
            self.db.table_dict.items(),
            desc="Indexing tables",
            disable=not self.show_progress,
        )
        for table_name, table in tables:
            uid_col = self._unique_id_column(table_name)
            if uid_col is None:
                logger.warning(
                    f"Table '{table_name}' has no '{self.config.unique_id_field}' column. "
                    "Its records can only be reached through their key fields."
                )

            records: list[Record] = []
            for idx, raw in enumerate(table.df.to_dict(orient="records")):
                values = {str(col): (None if normalize_key(v, False) is None else v) for col, v in raw.items()}
                global_id = (
                    normalize_key(raw[uid_col], self.config.normalize_guids)
                    if uid_col is not None
                    else None
                )

                row_id = self._make_row_id(table_name, global_id, idx)
                record = Record(
                    row_id=row_id,
                    table=table_name,
                    values=values,
                    global_id=global_id,
                    index=idx,
                )
                self.rows[row_id] = record
                records.append(record)

                # Index by unique identifier for target lookups
                if global_id is not None:
                    self._pkey_index.setdefault((table_name, global_id), []).append(row_id)

            self._table_rows[table_name] = records
            logger.debug(f"Indexed {len(records)} records from '{table_name}'")

        duplicates = [key for key, row_ids in self._pkey_index.items() if len(row_ids) > 1]
        if duplicates:
            logger.warning(
                f"{len(duplicates)} duplicated unique identifiers, e.g. "
                f"{duplicates[0][0]}:{duplicates[0][1]}"
            )

    def _build_relationships(self) -> None:
        """Build the reverse index of every declared relationship."""
        for rel in self.relationships:
            self._reverse_index[rel] = self._build_reverse_index(rel)

    def _build_reverse_index(self, rel: Relationship) -> dict[Any, list[str]]:
        """
        Map each target global_id to the source rows whose key field points at it.

        Uses the same key extraction and target lookup as forward resolution,
        so a forward hit S → T always has S in T's reverse entry and vice versa.
        """
        self.check_table(rel.source_table)
        self.check_table(rel.target_table)
        source_df = self.db.table_dict[rel.source_table].df
        if self._find_column(source_df, rel.key_field) is None:
            logger.warning(
                f"Relationship '{rel.name}': table '{rel.source_table}' has no "
                f"key field '{rel.key_field}'; it resolves to nothing"
            )

        reverse: dict[Any, list[str]] = defaultdict(list)
        dangling = 0
        for record in self.records(rel.source_table):
            key = self.key_value(record, rel)
            if key is None:
                continue
            if not self.lookup(rel.target_table, key):
                dangling += 1
                continue
            # One back-link per source row, even when the identifier is duplicated
            reverse[key].append(record.row_id)

        if dangling:
            logger.warning(
                f"Relationship '{rel.name}': {dangling} records in '{rel.source_table}' "
                f"reference missing '{rel.target_table}' records"
            )
        logger.info(
            f"Relationship '{rel.name}' ({rel.source_table}.{rel.key_field} -> "
            f"{rel.target_table}): {sum(map(len, reverse.values()))} links"
        )
        return dict(reverse)

    def _make_row_id(self, table_name: str, global_id: Any, idx: int) -> str:
        """Generate a globally unique row ID."""
        if global_id is not None:
            row_id = f"{table_name}:{global_id}"
            if row_id not in self.rows:
                return row_id
        # Fallback to index for rows without (or with a duplicated) identifier
        return f"{table_name}:idx:{idx}"

    def key_value(self, record: Record, relationship: Relationship) -> Any:
        """Normalized value of the relationship's key field on a source record."""
        raw = record.get(relationship.key_field, case_insensitive=self.config.case_insensitive_fields)
        return normalize_key(raw, self.config.normalize_guids)

    def normalize(self, value: Any) -> Any:
        return normalize_key(value, self.config.normalize_guids)

    def lookup(self, table_name: str, global_id: Any) -> list[Record]:
        """All records of a table whose unique identifier equals `global_id`."""
        self.check_table(table_name)
        row_ids = self._pkey_index.get((table_name, global_id), [])
        return [self.rows[row_id] for row_id in row_ids]

    def referencing(self, relationship: Relationship, global_id: Any) -> list[Record]:
        """
        Source records whose key field points at the target record `global_id`.

        Relationships that were not declared up front are indexed on first use,
        with the same pass as declared ones.
        """
        forward = relationship.inverse() if relationship.is_inverse else relationship
        if forward not in self._reverse_index:
            self._reverse_index[forward] = self._build_reverse_index(forward)
        row_ids = self._reverse_index[forward].get(global_id, [])
        return [self.rows[row_id] for row_id in row_ids]

    def records(self, table_name: str) -> list[Record]:
        """Every record of a table, in table order."""
        self.check_table(table_name)
        return self._table_rows[table_name]

    def check_table(self, table_name: str) -> None:
        if table_name not in self._table_rows:
            raise UnknownTableError(table_name, list(self._table_rows))

    @property
    def table_names(self) -> list[str]:
        return list(self._table_rows)

    @property
    def num_records(self) -> int:
        return len(self.rows)
