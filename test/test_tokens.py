from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator

import ijson
import pytest
from hypothesis import given

from jsongraph._errors import UnexpectedEndError, UnexpectedTokenError
from jsongraph.constants import TokenKind
from jsongraph.tokens import (
    BaseTokenStream,
    IterTokenStream,
    JsonTextTokenStream,
    Token,
    TreeTokenStream,
    capture_subtree,
    iter_tree_tokens,
    read_required,
)
from jsongraph.values import DBNull, RawJson

from test.strategies import json_trees

K = TokenKind


def kinds_and_depths(stream: BaseTokenStream) -> list[tuple[K, int]]:
    result = []
    while stream.advance():
        result.append((stream.kind, stream.depth))
    return result


def test_new_stream_is_before_the_first_token() -> None:
    stream = TreeTokenStream(1)

    assert stream.kind is K.NoToken
    assert stream.depth == 0


def test_depth_of_nested_containers() -> None:
    stream = JsonTextTokenStream('{"a": [1, {}]}')

    assert kinds_and_depths(stream) == [
        (K.StartObject, 0),
        (K.PropertyName, 1),
        (K.StartArray, 1),
        (K.Integer, 2),
        (K.StartObject, 2),
        (K.EndObject, 2),
        (K.EndArray, 1),
        (K.EndObject, 0),
    ]


def test_exhausted_stream_returns_to_NoToken() -> None:
    stream = TreeTokenStream("x")

    assert stream.advance()
    assert not stream.advance()
    assert stream.kind is K.NoToken


def test_mismatched_end_token_is_rejected() -> None:
    stream = IterTokenStream([Token(K.StartArray), Token(K.EndObject)])
    stream.advance()

    with pytest.raises(UnexpectedTokenError) as exc_info:
        stream.advance()

    assert exc_info.value.token is K.EndObject


def test_read_required_fails_at_the_end() -> None:
    stream = IterTokenStream([Token(K.StartArray)])
    stream.advance()

    with pytest.raises(UnexpectedEndError) as exc_info:
        read_required(stream)

    assert exc_info.value.token is K.StartArray


def test_skip_from_property_name_consumes_the_value() -> None:
    stream = JsonTextTokenStream('{"a": {"b": [1, 2]}, "c": 3}')
    stream.advance()
    stream.advance()
    assert stream.value == "a"

    stream.skip()

    assert stream.kind is K.EndObject
    assert stream.depth == 1
    stream.advance()
    assert stream.value == "c"


def test_skip_on_scalar_stays_in_place() -> None:
    stream = TreeTokenStream([1, 2])
    stream.advance()
    stream.advance()

    stream.skip()

    assert (stream.kind, stream.value) == (K.Integer, 1)


def test_skip_passes_over_comments_before_the_value() -> None:
    stream = IterTokenStream(
        [
            Token(K.StartObject),
            Token(K.PropertyName, "a"),
            Token(K.Comment, "note"),
            Token(K.StartArray),
            Token(K.EndArray),
            Token(K.EndObject),
        ]
    )
    stream.advance()
    stream.advance()

    stream.skip()

    assert stream.kind is K.EndArray


def test_skip_constructor() -> None:
    stream = IterTokenStream(
        [
            Token(K.StartConstructor, "Date"),
            Token(K.Integer, 0),
            Token(K.EndConstructor, "Date"),
        ]
    )
    stream.advance()

    stream.skip()

    assert stream.kind is K.EndConstructor


@pytest.mark.parametrize(
    "text,expected",
    [
        ("1", Token(K.Integer, 1)),
        ("-1.5", Token(K.Float, -1.5)),
        ('"x"', Token(K.String, "x")),
        ("true", Token(K.Boolean, True)),
        ("null", Token(K.Null)),
    ],
)
def test_json_text_scalars(text: str, expected: Token) -> None:
    stream = JsonTextTokenStream(text)

    assert stream.advance()
    assert stream.token == expected
    assert type(stream.value) is type(expected.value)


def test_json_text_from_bytes_and_files() -> None:
    assert JsonTextTokenStream(b"[]").advance()

    stream = JsonTextTokenStream(io.BytesIO(b'{"a": 1}'))
    assert kinds_and_depths(stream) == [
        (K.StartObject, 0),
        (K.PropertyName, 1),
        (K.Integer, 1),
        (K.EndObject, 0),
    ]


def test_json_text_rejects_unsupported_parser_events(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def basic_parse(source: object, **kwargs: object) -> Iterator[tuple[str, object]]:
        yield ("start_array", None)
        yield ("mystery", None)

    monkeypatch.setattr(ijson, "basic_parse", basic_parse)
    stream = JsonTextTokenStream("[]")

    assert stream.advance()
    with pytest.raises(UnexpectedTokenError, match="Unsupported JSON parser event"):
        stream.advance()


def test_tree_tokens_of_special_values() -> None:
    when = datetime(2024, 1, 2, tzinfo=timezone.utc)
    raw = RawJson((Token(K.StartArray), Token(K.EndArray)))

    tokens = list(iter_tree_tokens([DBNull, Decimal("1.5"), when, raw]))

    assert tokens == [
        Token(K.StartArray),
        Token(K.Null),
        Token(K.Float, 1.5),
        Token(K.Date, when),
        Token(K.StartArray),
        Token(K.EndArray),
        Token(K.EndArray),
    ]


def test_tree_tokens_reject_unknown_values() -> None:
    with pytest.raises(TypeError, match="cannot be represented as tokens"):
        list(iter_tree_tokens({"a": object()}))


def test_capture_subtree_leaves_the_stream_on_the_last_token() -> None:
    stream = JsonTextTokenStream('[[1, [2]], 3]')
    stream.advance()
    stream.advance()

    raw = capture_subtree(stream)

    assert raw.tokens == (
        Token(K.StartArray),
        Token(K.Integer, 1),
        Token(K.StartArray),
        Token(K.Integer, 2),
        Token(K.EndArray),
        Token(K.EndArray),
    )
    assert stream.kind is K.EndArray
    assert stream.depth == 1
    assert read_required(stream) is K.Integer


def test_capture_subtree_drops_comments() -> None:
    stream = IterTokenStream(
        [Token(K.StartArray), Token(K.Comment, "c"), Token(K.EndArray)]
    )
    stream.advance()

    assert capture_subtree(stream).tokens == (Token(K.StartArray), Token(K.EndArray))


@given(json_trees())
def test_json_text_and_tree_streams_agree(tree: object) -> None:
    text_stream = JsonTextTokenStream(json.dumps(tree))
    tree_stream = TreeTokenStream(tree)

    while True:
        more = text_stream.advance()
        assert tree_stream.advance() == more
        assert text_stream.token == tree_stream.token
        assert text_stream.depth == tree_stream.depth
        if not more:
            break
