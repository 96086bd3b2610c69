# This file contains a small sample database for testing and development.
#
# Two lights (table "Lys") placed at different heights form a leading line
# (table "OverettlinjeLys"). Each leading line references BOTH of its lights,
# through two relationships to the same table keyed on different fields:
#   OverettlinjeLys   FKNavInst1 -> Lys.globalid
#   OverettlinjeLys2  FKNavInst2 -> Lys.globalid

import sqlite3
from contextlib import closing
from pathlib import Path

import pandas as pd
from relbench.base import Database, Table

from relresolve.configurations import ResolverConfig, SchemaConfig
from relresolve.types import Relationship

LIGHTS_TABLE = "Lys"
LEADING_LINES_TABLE = "OverettlinjeLys"

# Stored the way a geodatabase stores GUIDs: uppercase, in braces.
FRONT_LIGHT_ID = "{F9158A1D-A1BF-4110-B964-6B25ABC0E143}"
REAR_LIGHT_ID = "{946AAA97-DE68-48D2-B259-5E955F1693D9}"
HARBOUR_LIGHT_ID = "{3C0D58A2-7F4E-4B8B-9A51-2D6E1C7B9F04}"
UNUSED_LIGHT_ID = "{A7E2B0C4-55D1-4E3F-8C6A-0F9B2E4D7A13}"

MAIN_LINE_ID = "{5B8E6F21-0C3A-4D7E-9B12-6A4F8C2E1D90}"
HALF_LINE_ID = "{D2C47A19-8E5B-4F06-A3D7-1B9E0C6F2A58}"
UNLINKED_LINE_ID = "{71F3E9B6-2A4D-4C8E-B05F-9D1A7E3C6B24}"


def dummy_schema() -> SchemaConfig:
    """The two relationships from leading lines to lights."""
    return SchemaConfig(
        resolver=ResolverConfig(),
        relationships=(
            Relationship(
                name="OverettlinjeLys",
                source_table=LEADING_LINES_TABLE,
                target_table=LIGHTS_TABLE,
                key_field="FKNavInst1",
            ),
            Relationship(
                name="OverettlinjeLys2",
                source_table=LEADING_LINES_TABLE,
                target_table=LIGHTS_TABLE,
                key_field="FKNavInst2",
            ),
        ),
    )


def dummy_frames() -> dict[str, pd.DataFrame]:
    lights = pd.DataFrame(
        {
            "globalid": [FRONT_LIGHT_ID, REAR_LIGHT_ID, HARBOUR_LIGHT_ID, UNUSED_LIGHT_ID],
            "name": ["Front light", "Rear light", "Harbour light", "Unused light"],
            "height": [6.5, 14.0, 9.0, 3.0],
        }
    )
    # Key fields are written in both cases and with/without braces, like real data.
    leading_lines = pd.DataFrame(
        {
            "globalid": [MAIN_LINE_ID, HALF_LINE_ID, UNLINKED_LINE_ID],
            "name": ["Main leading line", "Half leading line", "Unlinked leading line"],
            "FKNavInst1": [FRONT_LIGHT_ID, HARBOUR_LIGHT_ID.lower().strip("{}"), None],
            "FKNavInst2": [REAR_LIGHT_ID, None, None],
        }
    )
    return {LIGHTS_TABLE: lights, LEADING_LINES_TABLE: leading_lines}


def create_dummy_database(schema: SchemaConfig | None = None) -> Database:
    """Sample database as relbench Tables with the schema's foreign keys attached."""
    schema = schema or dummy_schema()
    table_dict = {}
    for table_name, df in dummy_frames().items():
        fkeys = {
            rel.key_field: rel.target_table
            for rel in schema.relationships
            if rel.source_table == table_name
        }
        table_dict[table_name] = Table(
            df=df,
            fkey_col_to_pkey_table=fkeys,
            pkey_col=schema.resolver.unique_id_field,
        )
    return Database(table_dict=table_dict)


def write_dummy_geodatabase(path: Path) -> Path:
    """Write the sample tables to a SQLite file, as a mobile geodatabase stores them."""
    path = Path(path)
    with closing(sqlite3.connect(path)) as conn:
        for table_name, df in dummy_frames().items():
            df.to_sql(table_name, conn, index=False, if_exists="replace")
        conn.commit()
    return path


DUMMY_SCHEMA_TOML = """\
unique_id_field = "globalid"

[[relationships]]
name = "OverettlinjeLys"
source_table = "OverettlinjeLys"
target_table = "Lys"
key_field = "FKNavInst1"

[[relationships]]
name = "OverettlinjeLys2"
source_table = "OverettlinjeLys"
target_table = "Lys"
key_field = "FKNavInst2"
"""


def write_dummy_schema(path: Path) -> Path:
    """Write the sample relationship schema as TOML."""
    path = Path(path)
    path.write_text(DUMMY_SCHEMA_TOML, encoding="utf-8")
    return path
