import pandas as pd
import pytest

from relresolve.dummy_data import (
    FRONT_LIGHT_ID,
    HALF_LINE_ID,
    HARBOUR_LIGHT_ID,
    LEADING_LINES_TABLE,
    LIGHTS_TABLE,
    MAIN_LINE_ID,
    REAR_LIGHT_ID,
    UNLINKED_LINE_ID,
    UNUSED_LIGHT_ID,
)
from relresolve.errors import AmbiguousMatchError, SchemaError, UnknownTableError
from relresolve.graph_builder import normalize_key
from relresolve.types import Direction, Relationship


def gid(value: str) -> str:
    return normalize_key(value)


@pytest.fixture
def main_line(resolver):
    return resolver.get_record(LEADING_LINES_TABLE, MAIN_LINE_ID)


def test_each_relationship_resolves_its_own_key_field(resolver, relationships, main_line) -> None:
    first, second = resolver.resolve_related(LEADING_LINES_TABLE, main_line, relationships)

    assert first.relationship.name == "OverettlinjeLys"
    assert first.global_ids == [gid(FRONT_LIGHT_ID)]
    assert second.relationship.name == "OverettlinjeLys2"
    assert second.global_ids == [gid(REAR_LIGHT_ID)]
    assert first.global_ids != second.global_ids


def test_results_follow_input_order(resolver, relationships, main_line) -> None:
    reversed_rels = list(reversed(relationships))
    results = resolver.resolve_related(LEADING_LINES_TABLE, main_line, reversed_rels)

    assert [r.relationship for r in results] == reversed_rels
    assert results[0].global_ids == [gid(REAR_LIGHT_ID)]
    assert results[1].global_ids == [gid(FRONT_LIGHT_ID)]


def test_result_is_tagged_with_relationship(resolver, relationships, main_line) -> None:
    (result,) = resolver.resolve_related(LEADING_LINES_TABLE, main_line, [relationships[1]])

    assert result.relationship.key_field == "FKNavInst2"
    assert result.related_table == LIGHTS_TABLE
    assert result.key_value == gid(REAR_LIGHT_ID)
    assert result.count == 1


def test_null_key_gives_empty_result(resolver, relationships) -> None:
    half_line = resolver.get_record(LEADING_LINES_TABLE, HALF_LINE_ID)

    first, second = resolver.resolve_related(LEADING_LINES_TABLE, half_line, relationships)

    assert first.global_ids == [gid(HARBOUR_LIGHT_ID)]
    assert second.records == ()
    assert second.key_value is None


def test_unknown_key_field_gives_empty_result(resolver, main_line) -> None:
    ghost = Relationship("Ghost", LEADING_LINES_TABLE, LIGHTS_TABLE, "FKNavInst9")

    (result,) = resolver.resolve_related(LEADING_LINES_TABLE, main_line, [ghost])

    assert result.count == 0


def test_key_fields_match_case_insensitively(resolver, main_line) -> None:
    lowercase = Relationship("lower", LEADING_LINES_TABLE, LIGHTS_TABLE, "fknavinst1")

    (result,) = resolver.resolve_related(LEADING_LINES_TABLE, main_line, [lowercase])

    assert result.global_ids == [gid(FRONT_LIGHT_ID)]


def test_round_trip_through_inverse(resolver, relationships) -> None:
    checked = 0
    for line in resolver.graph.records(LEADING_LINES_TABLE):
        for result in resolver.resolve_related(LEADING_LINES_TABLE, line, relationships):
            for light in result.records:
                (back,) = resolver.resolve_related(LIGHTS_TABLE, light, [result.relationship.inverse()])
                assert line.row_id in [r.row_id for r in back.records]
                checked += 1
    assert checked == 3


def test_inverse_is_keyed_per_relationship(resolver, relationships) -> None:
    front = resolver.get_record(LIGHTS_TABLE, FRONT_LIGHT_ID)
    rear = resolver.get_record(LIGHTS_TABLE, REAR_LIGHT_ID)
    inverses = [rel.inverse() for rel in relationships]

    front_first, front_second = resolver.resolve_related(LIGHTS_TABLE, front, inverses)
    rear_first, rear_second = resolver.resolve_related(LIGHTS_TABLE, rear, inverses)

    assert front_first.global_ids == [gid(MAIN_LINE_ID)]
    assert front_second.global_ids == []
    assert rear_first.global_ids == []
    assert rear_second.global_ids == [gid(MAIN_LINE_ID)]


def test_inverse_excludes_unrelated_sources(resolver, relationships) -> None:
    front = resolver.get_record(LIGHTS_TABLE, FRONT_LIGHT_ID)

    (result,) = resolver.resolve_related(LIGHTS_TABLE, front, [relationships[0].inverse()])

    assert result.related_table == LEADING_LINES_TABLE
    assert gid(UNLINKED_LINE_ID) not in result.global_ids
    assert result.count == 1


def test_unreferenced_target_has_empty_inverse(resolver, relationships) -> None:
    unused = resolver.get_record(LIGHTS_TABLE, UNUSED_LIGHT_ID)

    results = resolver.resolve_related(LIGHTS_TABLE, unused, [rel.inverse() for rel in relationships])

    assert [r.count for r in results] == [0, 0]


def test_repeated_calls_are_identical(resolver, relationships, main_line) -> None:
    first = resolver.resolve_related(LEADING_LINES_TABLE, main_line, relationships)
    second = resolver.resolve_related(LEADING_LINES_TABLE, main_line, relationships)

    assert first == second


def test_inverse_of_inverse_is_original(relationships) -> None:
    rel = relationships[0]

    assert rel.inverse().direction == Direction.INVERSE
    assert rel.inverse().from_table == LIGHTS_TABLE
    assert rel.inverse().to_table == LEADING_LINES_TABLE
    assert rel.inverse().inverse() == rel


@pytest.mark.parametrize(
    ("key_a", "key_b"),
    [
        ("X", "Y"),
        ("Y", "X"),
        ("{11111111-2222-3333-4444-555555555555}", "{66666666-7777-8888-9999-000000000000}"),
        (1, 2),
    ],
)
def test_distinct_keys_give_distinct_results(make_resolver, key_a, key_b) -> None:
    rel_a = Relationship("RelationshipA", "source", "target", "keyFieldA")
    rel_b = Relationship("RelationshipB", "source", "target", "keyFieldB")
    resolver = make_resolver(
        {
            "source": pd.DataFrame({"globalid": ["S"], "keyFieldA": [key_a], "keyFieldB": [key_b]}),
            "target": pd.DataFrame({"globalid": [key_a, key_b], "label": ["a", "b"]}),
        },
        [rel_a, rel_b],
    )
    source = resolver.get_record("source", "S")

    result_a, result_b = resolver.resolve_related("source", source, [rel_a, rel_b])

    assert [r.get("label") for r in result_a.records] == ["a"]
    assert [r.get("label") for r in result_b.records] == ["b"]


def test_equal_keys_give_the_same_record(make_resolver) -> None:
    rel_a = Relationship("RelationshipA", "source", "target", "keyFieldA")
    rel_b = Relationship("RelationshipB", "source", "target", "keyFieldB")
    resolver = make_resolver(
        {
            "source": pd.DataFrame({"globalid": ["S"], "keyFieldA": ["X"], "keyFieldB": ["X"]}),
            "target": pd.DataFrame({"globalid": ["X"]}),
        },
        [rel_a, rel_b],
    )
    source = resolver.get_record("source", "S")

    result_a, result_b = resolver.resolve_related("source", source, [rel_a, rel_b])

    assert result_a.global_ids == result_b.global_ids == ["X"]


def test_inverse_finds_only_matching_source(make_resolver) -> None:
    rel_a = Relationship("RelationshipA", "source", "target", "keyFieldA")
    resolver = make_resolver(
        {
            "source": pd.DataFrame({"globalid": ["S1", "S2"], "keyFieldA": ["X", None]}),
            "target": pd.DataFrame({"globalid": ["X"]}),
        },
        [rel_a],
    )
    target = resolver.get_record("target", "X")

    (result,) = resolver.resolve_related("target", target, [rel_a.inverse()])

    assert result.global_ids == ["S1"]


def test_inverse_returns_every_referencing_source(make_resolver) -> None:
    rel = Relationship("Rel", "source", "target", "fk")
    resolver = make_resolver(
        {
            "source": pd.DataFrame({"globalid": ["S1", "S2", "S3"], "fk": ["X", "Y", "X"]}),
            "target": pd.DataFrame({"globalid": ["X", "Y"]}),
        },
        [rel],
    )

    (result,) = resolver.resolve_related("target", resolver.get_record("target", "X"), [rel.inverse()])

    assert result.global_ids == ["S1", "S3"]


def test_dangling_reference_gives_empty_result(make_resolver) -> None:
    rel = Relationship("Rel", "source", "target", "fk")
    resolver = make_resolver(
        {
            "source": pd.DataFrame({"globalid": ["S"], "fk": ["missing"]}),
            "target": pd.DataFrame({"globalid": ["X"]}),
        },
        [rel],
    )

    (result,) = resolver.resolve_related("source", resolver.get_record("source", "S"), [rel])

    assert result.count == 0
    assert result.key_value == "missing"


def test_duplicate_target_identifier_is_an_integrity_error(make_resolver) -> None:
    rel = Relationship("Rel", "source", "target", "fk")
    resolver = make_resolver(
        {
            "source": pd.DataFrame({"globalid": ["S"], "fk": ["X"]}),
            "target": pd.DataFrame({"globalid": ["X", "X"], "label": ["one", "two"]}),
        },
        [rel],
    )

    with pytest.raises(AmbiguousMatchError) as exc_info:
        resolver.resolve_related("source", resolver.get_record("source", "S"), [rel])

    assert exc_info.value.table_name == "target"
    assert len(exc_info.value.row_ids) == 2
    with pytest.raises(AmbiguousMatchError):
        resolver.get_record("target", "X")


def test_empty_relationship_list_is_rejected(resolver, main_line) -> None:
    with pytest.raises(SchemaError):
        resolver.resolve_related(LEADING_LINES_TABLE, main_line, [])


def test_relationship_not_starting_at_table_is_rejected(resolver, relationships, main_line) -> None:
    with pytest.raises(SchemaError, match="starts at"):
        resolver.resolve_related(LEADING_LINES_TABLE, main_line, [relationships[0].inverse()])


def test_record_from_another_table_is_rejected(resolver, relationships) -> None:
    front = resolver.get_record(LIGHTS_TABLE, FRONT_LIGHT_ID)

    with pytest.raises(SchemaError, match="does not belong"):
        resolver.resolve_related(LEADING_LINES_TABLE, front, relationships)


def test_unknown_table_is_rejected(resolver, relationships, main_line) -> None:
    with pytest.raises(UnknownTableError):
        resolver.resolve_related("Fyr", main_line, relationships)


def test_relationships_for_lists_forward_then_inverse(resolver, relationships) -> None:
    assert resolver.relationships_for(LEADING_LINES_TABLE) == list(relationships)
    assert resolver.relationships_for(LIGHTS_TABLE) == [rel.inverse() for rel in relationships]


def test_resolve_all_from_light(resolver) -> None:
    rear = resolver.get_record(LIGHTS_TABLE, REAR_LIGHT_ID)

    results = resolver.resolve_all(LIGHTS_TABLE, rear)

    assert [(r.relationship.name, r.count) for r in results] == [
        ("OverettlinjeLys", 0),
        ("OverettlinjeLys2", 1),
    ]


def test_resolve_all_without_relationships(make_resolver) -> None:
    rel = Relationship("Rel", "source", "target", "fk")
    resolver = make_resolver(
        {
            "source": pd.DataFrame({"globalid": ["S"], "fk": ["X"]}),
            "target": pd.DataFrame({"globalid": ["X"]}),
            "other": pd.DataFrame({"globalid": ["O"]}),
        },
        [rel],
    )

    assert resolver.resolve_all("other", resolver.get_record("other", "O")) == []


def test_attribute_query_normalizes_guids(resolver) -> None:
    matches = resolver.query(LEADING_LINES_TABLE, "FKNavinst1", FRONT_LIGHT_ID.lower().strip("{}"))

    assert [m.global_id for m in matches] == [gid(MAIN_LINE_ID)]


def test_get_record_missing_returns_none(resolver) -> None:
    assert resolver.get_record(LIGHTS_TABLE, "{00000000-0000-0000-0000-000000000000}") is None


def test_undeclared_relationship_round_trips(resolver, main_line) -> None:
    lowercase = Relationship("lower", LEADING_LINES_TABLE, LIGHTS_TABLE, "fknavinst1")
    front = resolver.get_record(LIGHTS_TABLE, FRONT_LIGHT_ID)

    (forward,) = resolver.resolve_related(LEADING_LINES_TABLE, main_line, [lowercase])
    (back,) = resolver.resolve_related(LIGHTS_TABLE, front, [lowercase.inverse()])

    assert forward.global_ids == [gid(FRONT_LIGHT_ID)]
    assert back.global_ids == [gid(MAIN_LINE_ID)]


def test_same_name_with_other_key_field_does_not_share_index(resolver) -> None:
    renamed = Relationship("OverettlinjeLys", LEADING_LINES_TABLE, LIGHTS_TABLE, "FKNavInst2")
    front = resolver.get_record(LIGHTS_TABLE, FRONT_LIGHT_ID)
    rear = resolver.get_record(LIGHTS_TABLE, REAR_LIGHT_ID)

    (from_rear,) = resolver.resolve_related(LIGHTS_TABLE, rear, [renamed.inverse()])
    (from_front,) = resolver.resolve_related(LIGHTS_TABLE, front, [renamed.inverse()])

    assert from_rear.global_ids == [gid(MAIN_LINE_ID)]
    assert from_front.global_ids == []


def test_inverse_from_duplicated_target_lists_source_once(make_resolver) -> None:
    rel = Relationship("Rel", "source", "target", "fk")
    resolver = make_resolver(
        {
            "source": pd.DataFrame({"globalid": ["S"], "fk": ["X"]}),
            "target": pd.DataFrame({"globalid": ["X", "X"]}),
        },
        [rel],
    )

    for target in resolver.graph.records("target"):
        (result,) = resolver.resolve_related("target", target, [rel.inverse()])
        assert result.global_ids == ["S"]
        assert [r.row_id for r in resolver.query("source", "fk", target.global_id)] == [
            r.row_id for r in result.records
        ]


def test_attribute_query_for_null_matches_nothing(resolver) -> None:
    assert resolver.query(LEADING_LINES_TABLE, "FKNavInst2", None) == []
    assert resolver.query(LEADING_LINES_TABLE, "FKNavInst2", "  ") == []
