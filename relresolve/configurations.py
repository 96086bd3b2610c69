# This file contains *all* of the various data classes that define the configurations
# for the different components of the system, plus the loader for relationship schemas.

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from relresolve.errors import ConfigurationError, SchemaError
from relresolve.types import Relationship


@dataclass
class ResolverConfig:
    # Attribute holding each record's unique identifier, in every table.
    unique_id_field: str = "globalid"

    # Compare GUID-looking values in canonical form ("{ABC-...}" == "abc-...").
    normalize_guids: bool = True

    # Geodatabase field names are case-insensitive.
    case_insensitive_fields: bool = True


@dataclass
class SchemaConfig:
    """
    Static relationship declarations, as read from a schema file.
    """

    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    relationships: tuple[Relationship, ...] = ()

    @property
    def table_names(self) -> list[str]:
        """Every table referenced by a relationship, in first-seen order."""
        names: list[str] = []
        for rel in self.relationships:
            for name in (rel.source_table, rel.target_table):
                if name not in names:
                    names.append(name)
        return names


@dataclass
class DiagnosticConfig:
    """
    Configuration for a single diagnostic run of the CLI.
    """

    db_path: Path | None = None
    schema_path: Path | None = None
    table: str | None = None

    # Record selection: either by unique identifier or by FIELD=VALUE.
    global_id: str | None = None
    where_field: str | None = None
    where_value: str | None = None

    # Use the built-in sample database instead of a file.
    demo: bool = False
    log_level: str = "INFO"


_RELATIONSHIP_KEYS = ("name", "source_table", "target_table", "key_field")


def validate_relationships(relationships: tuple[Relationship, ...]) -> None:
    """
    Check declarations for blank fields and duplicate names.

    Raises:
        SchemaError: on the first malformed declaration
    """
    seen: set[str] = set()
    for rel in relationships:
        for key in _RELATIONSHIP_KEYS:
            value = getattr(rel, key)
            if not isinstance(value, str) or not value.strip():
                raise SchemaError(f"Relationship {rel.name!r}: '{key}' must be a non-empty string")
        if rel.name in seen:
            raise SchemaError(f"Duplicate relationship name {rel.name!r}")
        seen.add(rel.name)


def parse_schema(data: dict) -> SchemaConfig:
    """
    Build a SchemaConfig from an already-parsed TOML document.

    Args:
        data: Mapping with an optional `unique_id_field` and a `relationships` array

    Returns:
        SchemaConfig with validated relationships
    """
    resolver = ResolverConfig()
    if "unique_id_field" in data:
        resolver.unique_id_field = data["unique_id_field"]
    if "normalize_guids" in data:
        resolver.normalize_guids = bool(data["normalize_guids"])
    if "case_insensitive_fields" in data:
        resolver.case_insensitive_fields = bool(data["case_insensitive_fields"])

    if not isinstance(resolver.unique_id_field, str) or not resolver.unique_id_field:
        raise SchemaError("'unique_id_field' must be a non-empty string")

    entries = data.get("relationships")
    if not entries:
        raise SchemaError("Schema declares no relationships")

    relationships = []
    for i, entry in enumerate(entries):
        missing = [key for key in _RELATIONSHIP_KEYS if key not in entry]
        if missing:
            raise SchemaError(f"Relationship #{i} is missing {', '.join(missing)}")
        relationships.append(Relationship(**{key: entry[key] for key in _RELATIONSHIP_KEYS}))

    schema = SchemaConfig(resolver=resolver, relationships=tuple(relationships))
    validate_relationships(schema.relationships)
    return schema


def load_schema(path: Path | str) -> SchemaConfig:
    """Read relationship declarations from a TOML file."""
    path = Path(path)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Schema file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise SchemaError(f"Cannot parse schema file {path}: {e}") from e

    schema = parse_schema(data)
    logger.info(f"Loaded {len(schema.relationships)} relationships from {path}")
    return schema
