from collections.abc import Callable

import pandas as pd
import pytest
from relbench.base import Database, Table

from relresolve.configurations import ResolverConfig, SchemaConfig
from relresolve.dummy_data import create_dummy_database, dummy_schema
from relresolve.graph_builder import RelationshipGraphBuilder
from relresolve.resolver import RelationshipResolver
from relresolve.types import Relationship


@pytest.fixture
def schema() -> SchemaConfig:
    return dummy_schema()


@pytest.fixture
def relationships(schema: SchemaConfig) -> tuple[Relationship, ...]:
    return schema.relationships


@pytest.fixture
def graph(schema: SchemaConfig) -> RelationshipGraphBuilder:
    return RelationshipGraphBuilder(create_dummy_database(schema), schema.relationships, schema.resolver)


@pytest.fixture
def resolver(graph: RelationshipGraphBuilder) -> RelationshipResolver:
    return RelationshipResolver(graph)


@pytest.fixture
def make_resolver() -> Callable[..., RelationshipResolver]:
    """Build a resolver from plain DataFrames and relationship declarations."""

    def _make(
        frames: dict[str, pd.DataFrame],
        relationships: list[Relationship],
        config: ResolverConfig | None = None,
    ) -> RelationshipResolver:
        config = config or ResolverConfig()
        db = Database(
            table_dict={
                name: Table(df=df, fkey_col_to_pkey_table={}, pkey_col=None)
                for name, df in frames.items()
            }
        )
        return RelationshipResolver(RelationshipGraphBuilder(db, relationships, config))

    return _make
