from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal

import pytest

from jsongraph import (
    ConversionError,
    JsonGraphSettings,
    Materializer,
    RawJson,
    UnexpectedEndError,
    UnexpectedTokenError,
    deserialize,
    loads,
)
from jsongraph._references import ReferenceTable
from jsongraph.constants import TokenKind
from jsongraph.materialize import (
    DefaultMaterializeContext,
    TokenHandlerRegistry,
    ValueReader,
)
from jsongraph.shapes import TypeShape
from jsongraph.tokens import IterTokenStream, Token, TreeTokenStream
from jsongraph.values import DBNull, DBNullType

from test.models import Person

K = TokenKind


@pytest.mark.parametrize(
    "text,target,expected",
    [
        ("1", None, 1),
        ("1", float, 1.0),
        ("1.5", Decimal, Decimal("1.5")),
        ('"7"', int, 7),
        ("true", str, "true"),
        ('"a"', Literal["a", "b"], "a"),
        ("null", int, None),
        ("null", DBNullType, DBNull),
        ("null", DBNullType | int, DBNull),
        ("3", DBNullType | int, 3),
        ('"x"', Any, "x"),
    ],
)
def test_scalars(text: str, target: object, expected: object) -> None:
    result = loads(text, target)

    assert result == expected
    assert type(result) is type(expected)


def test_empty_input_is_None() -> None:
    assert loads("") is None
    assert loads("   ", Person) is None
    assert deserialize(IterTokenStream([Token(K.Comment, "only a comment")])) is None


def test_date_tokens() -> None:
    when = datetime(2024, 5, 6, 7, 8, tzinfo=timezone.utc)

    assert deserialize(TreeTokenStream(when)) == when
    assert deserialize(TreeTokenStream(when), str) == when.isoformat()


def test_DBNull_target_rejects_values() -> None:
    with pytest.raises(ConversionError):
        loads("1", DBNullType)


def test_scalar_cannot_be_an_array() -> None:
    with pytest.raises(UnexpectedTokenError, match="An array cannot be"):
        loads("[1]", int)


def test_object_cannot_be_a_scalar() -> None:
    with pytest.raises(UnexpectedTokenError, match="An object cannot be"):
        loads('{"a": 1}', str)


def test_collection_cannot_be_a_scalar() -> None:
    with pytest.raises(ConversionError):
        loads('"abc"', list[str])


def test_comments_are_skipped() -> None:
    stream = IterTokenStream(
        [
            Token(K.Comment, "before"),
            Token(K.StartObject),
            Token(K.Comment, "inside"),
            Token(K.PropertyName, "a"),
            Token(K.Comment, "before value"),
            Token(K.StartArray),
            Token(K.Comment, "in array"),
            Token(K.Integer, 1),
            Token(K.EndArray),
            Token(K.EndObject),
        ]
    )

    assert deserialize(stream) == {"a": [1]}


def test_constructor_tokens_produce_their_name() -> None:
    stream = IterTokenStream(
        [
            Token(K.StartArray),
            Token(K.StartConstructor, "Date"),
            Token(K.Integer, 0),
            Token(K.StartArray),
            Token(K.EndArray),
            Token(K.EndConstructor, "Date"),
            Token(K.Integer, 2),
            Token(K.EndArray),
        ]
    )

    assert deserialize(stream) == ["Date", 2]


def test_stream_is_left_on_the_last_token_of_the_value() -> None:
    stream = TreeTokenStream([{"a": 1}, 2])
    stream.advance()
    stream.advance()

    assert deserialize(stream) == {"a": 1}
    assert stream.kind is K.EndObject
    assert stream.advance()
    assert stream.value == 2


def test_truncated_stream() -> None:
    stream = IterTokenStream([Token(K.StartObject), Token(K.PropertyName, "a")])

    with pytest.raises(UnexpectedEndError):
        deserialize(stream)


def test_value_where_property_name_expected() -> None:
    stream = IterTokenStream([Token(K.StartObject), Token(K.Integer, 1)])

    with pytest.raises(UnexpectedTokenError, match="Expected a property name"):
        deserialize(stream)


def test_raw_json_defers_materialization() -> None:
    raw = loads('{"name": "Ann", "age": 3}', RawJson)

    assert isinstance(raw, RawJson)
    assert deserialize(raw.stream(), Person) == Person(name="Ann", age=3)


def test_generic_containers_follow_settings() -> None:
    class Obj(dict[str, object]):
        pass

    class Arr(list[object]):
        pass

    settings = JsonGraphSettings(object_type=Obj, array_type=Arr)
    result = loads('{"a": [1]}', settings=settings)

    assert type(result) is Obj
    assert type(result["a"]) is Arr  # type: ignore[index]


def test_loads_rejects_settings_with_options() -> None:
    with pytest.raises(TypeError, match="'settings' argument cannot be passed"):
        loads("1", settings=JsonGraphSettings(), object_type=dict)


def test_loads_rejects_unknown_options() -> None:
    with pytest.raises(TypeError):
        loads("1", not_an_option=True)


def test_Materializer_shares_settings_between_calls() -> None:
    class Obj(dict[str, object]):
        pass

    materializer = Materializer(JsonGraphSettings(object_type=Obj))

    assert type(materializer.loads("{}")) is Obj
    assert type(materializer.deserialize(TreeTokenStream({}))) is Obj


def test_references_can_span_calls() -> None:
    references = ReferenceTable()
    first = deserialize(TreeTokenStream({"$id": "1", "a": 1}), references=references)
    second = deserialize(TreeTokenStream({"$ref": "1"}), references=references)

    assert second is first


def test_token_handlers_can_be_overridden() -> None:
    def read_upper_string(
        value_reader: ValueReader,
        kind: TokenKind,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
    ) -> object:
        return str(ctx.stream.value).upper()

    handlers = TokenHandlerRegistry()
    handlers.register(K.String, read_upper_string)
    materializer = Materializer(value_reader=ValueReader(handlers))

    assert materializer.loads('["a", 1]') == ["A", 1]


def test_handler_registry_covers_all_value_tokens() -> None:
    reader = ValueReader()

    for kind in [K.Integer, K.Float, K.String, K.Boolean, K.Date, K.Null, K.Undefined]:
        assert reader.handlers.match(kind) is not None
    assert reader.handlers.match(K.PropertyName) is None
    assert reader.handlers.match(K.EndArray) is None
