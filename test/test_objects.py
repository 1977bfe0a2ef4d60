from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from hypothesis import given

from jsongraph import (
    ConversionError,
    MissingMemberError,
    MissingRequiredMemberError,
    deserialize,
    populate,
)
from jsongraph._errors import AmbiguousConstructorError, UnexpectedTokenError
from jsongraph.constants import (
    DefaultValueHandling,
    MissingMemberHandling,
    NullValueHandling,
    ObjectCreationHandling,
)
from jsongraph.materialize import loads
from jsongraph.settings import JsonGraphSettings
from jsongraph.tokens import TreeTokenStream

from test.models import (
    Account,
    Coordinates,
    FrozenPair,
    Node,
    Person,
    Point,
    Policies,
    Settings,
    Temperature,
    TwoConstructors,
)
from test.strategies import people


def test_parameterized_construction() -> None:
    result = loads('{"age": "42", "name": "Ann"}', Person)

    assert result == Person(name="Ann", age=42)


def test_property_names_match_ignoring_case() -> None:
    assert loads('{"NAME": "Ann", "Age": 1}', Person) == Person(name="Ann", age=1)


def test_last_duplicate_property_wins() -> None:
    assert loads('{"name": "a", "name": "b"}', Person) == Person(name="b")


def test_unknown_properties_are_skipped_by_default() -> None:
    text = '{"name": "Ann", "extra": {"deep": [1, {"x": null}]}, "age": 2}'

    assert loads(text, Person) == Person(name="Ann", age=2)


def test_unknown_properties_can_be_errors() -> None:
    with pytest.raises(MissingMemberError) as exc_info:
        loads(
            '{"name": "Ann", "extra": 1}',
            Person,
            missing_member_handling=MissingMemberHandling.Error,
        )

    assert exc_info.value.member_name == "extra"
    assert exc_info.value.target_type is Person


def test_ignored_members_are_not_missing() -> None:
    result = loads(
        '{"login": "ann", "secret": "s", "displayName": "Ann"}',
        Account,
        missing_member_handling=MissingMemberHandling.Error,
    )

    assert result == Account(login="ann", secret="hidden", display_name="Ann")


@pytest.mark.parametrize(
    "text", ['{"displayName": "Ann"}', '{"login": null, "displayName": "Ann"}']
)
def test_required_member_must_be_present_and_not_null(text: str) -> None:
    with pytest.raises(MissingRequiredMemberError) as exc_info:
        loads(text, Account)

    assert exc_info.value.member_name == "login"
    assert exc_info.value.target_type is Account


def test_plain_class_constructor_then_remaining_members() -> None:
    result = loads('{"label": "origin", "y": 2, "x": 1}', Point)

    assert isinstance(result, Point)
    assert (result.x, result.y, result.label) == (1, 2, "origin")


def test_missing_constructor_arguments_are_None() -> None:
    result = loads('{"x": 1}', Point)

    assert isinstance(result, Point)
    assert (result.x, result.y) == (1, None)


def test_frozen_dataclass() -> None:
    result = loads('{"left": 1, "partner": {"left": 2, "right": 3}}', FrozenPair)

    assert result == FrozenPair(left=1, partner=FrozenPair(left=2, right=3))


def test_namedtuple() -> None:
    assert loads('{"lat": 1.5}', Coordinates) == Coordinates(1.5, 0.0)


def test_marked_classmethod_constructor() -> None:
    result = loads('{"celsius": 10}', Temperature)

    assert isinstance(result, Temperature)
    assert result.kelvin == pytest.approx(283.15)


def test_ambiguous_constructors() -> None:
    with pytest.raises(AmbiguousConstructorError):
        loads('{"value": 1}', TwoConstructors)


def test_default_construct_then_fill() -> None:
    result = loads('{"name": "root", "children": [{"name": "a"}]}', Node)

    assert result == Node(name="root", children=[Node(name="a")])


def test_existing_collections_are_reused() -> None:
    result = loads('{"tags": ["a"], "limits": {"x": 1}}', Settings)

    assert result == Settings(tags=["initial", "a"], limits={"x": 1})


def test_replace_creates_new_collections() -> None:
    result = loads(
        '{"tags": ["a"]}',
        Settings,
        object_creation_handling=ObjectCreationHandling.Replace,
    )

    assert result == Settings(tags=["a"])


def test_existing_objects_are_filled() -> None:
    owner = Person(name="Ann", age=30)
    settings = Settings(owner=owner)

    populate(TreeTokenStream({"owner": {"name": "Ann", "age": 31}}), settings)

    assert settings.owner is owner
    assert owner == Person(name="Ann", age=31)


def test_required_members_are_checked_when_populating() -> None:
    with pytest.raises(MissingRequiredMemberError):
        populate(TreeTokenStream({"owner": {"age": 31}}), Settings(owner=Person("A")))


@dataclass
class HasPair:
    pair: FrozenPair = field(default_factory=lambda: FrozenPair(left=1))


def test_immutable_members_are_replaced() -> None:
    holder = HasPair()
    original = holder.pair

    populate(TreeTokenStream({"pair": {"left": 5}}), holder)

    assert holder.pair == FrozenPair(left=5)
    assert original == FrozenPair(left=1)


def test_null_value_handling() -> None:
    result = loads('{"keep": null, "replace": null}', Policies)

    assert result == Policies(keep="kept", replace=None)


def test_null_value_handling_setting() -> None:
    result = loads(
        '{"replace": null}',
        Policies,
        null_value_handling=NullValueHandling.Ignore,
    )

    assert result == Policies(replace="replaced")


def test_default_value_handling() -> None:
    policies = Policies(count=3)

    populate(TreeTokenStream({"count": 7}), policies)

    assert policies.count == 3


def test_default_value_handling_setting() -> None:
    settings = Settings(name="custom")

    populate(
        TreeTokenStream({"name": "default"}),
        settings,
        settings=JsonGraphSettings(
            default_value_handling=DefaultValueHandling.Ignore
        ),
    )

    assert settings.name == "custom"


def test_populate_rejects_scalars() -> None:
    with pytest.raises(UnexpectedTokenError):
        populate(TreeTokenStream(1), Settings())


def test_populate_rejects_immutable_targets() -> None:
    with pytest.raises(ConversionError):
        populate(TreeTokenStream({"left": 1}), FrozenPair(left=0))


@given(people)
def test_people(person: dict[str, Any]) -> None:
    assert deserialize(TreeTokenStream(person), Person) == Person(**person)
