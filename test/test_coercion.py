from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone
from decimal import Decimal
from fractions import Fraction
from pathlib import PurePosixPath
from typing import Literal
from uuid import UUID

import pytest
from hypothesis import given
from hypothesis import strategies as st

from jsongraph._errors import ConversionError
from jsongraph.coercion import coerce_scalar, coerce_to_class

from test.strategies import INT64_MAX, INT64_MIN


class Colour(enum.Enum):
    Red = "r"
    Green = "g"
    Blue = "b"


class Level(enum.IntEnum):
    Low = 10
    High = 20


@pytest.mark.parametrize(
    "value,target,expected",
    [
        ("42", int, 42),
        (2.5, int, 2),
        (3.5, int, 4),
        (True, int, 1),
        (1, float, 1.0),
        ("1.25", float, 1.25),
        (0.1, Decimal, Decimal("0.1")),
        ("0.5", Fraction, Fraction(1, 2)),
        (1, bool, True),
        ("False", bool, False),
        (True, str, "true"),
        (12, str, "12"),
        ("2024-02-01", date, date(2024, 2, 1)),
        ("2024-02-01T10:30:00", date, date(2024, 2, 1)),
        ("10:30", time, time(10, 30)),
        (
            "2024-02-01T12:00:00+00:00",
            datetime,
            datetime(2024, 2, 1, 12, tzinfo=timezone.utc),
        ),
        (
            "12345678-1234-5678-1234-567812345678",
            UUID,
            UUID("12345678-1234-5678-1234-567812345678"),
        ),
        ("aGk=", bytes, b"hi"),
        ("/tmp/x", PurePosixPath, PurePosixPath("/tmp/x")),
    ],
)
def test_coerce_to_class(value: object, target: type, expected: object) -> None:
    result = coerce_to_class(value, target)

    assert result == expected
    assert type(result) is type(expected)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("Green", Colour.Green),
        ("blue", Colour.Blue),
        ("r", Colour.Red),
        (1, Colour.Green),
        ("2", Colour.Blue),
    ],
)
def test_coerce_enum(value: object, expected: Colour) -> None:
    assert coerce_to_class(value, Colour) is expected


def test_coerce_int_enum_prefers_values_to_ordinals() -> None:
    assert coerce_to_class(20, Level) is Level.High
    assert coerce_to_class(1, Level) is Level.High
    assert coerce_to_class("low", Level) is Level.Low


@pytest.mark.parametrize(
    "value,target",
    [
        ("x", int),
        (float("inf"), int),
        ("maybe", bool),
        ("not base64!", bytes),
        ("Purple", Colour),
        (7, Colour),
        (1.5, UUID),
    ],
)
def test_coerce_to_class_failures(value: object, target: type) -> None:
    with pytest.raises(ConversionError) as exc_info:
        coerce_to_class(value, target)

    assert exc_info.value.value == value
    assert exc_info.value.target_type is target


def test_coerce_scalar_leaves_null_and_untyped_values_alone() -> None:
    value = object()

    assert coerce_scalar(None, int) is None
    assert coerce_scalar(value) is value


def test_coerce_scalar_union_tries_each_member() -> None:
    assert coerce_scalar("12", int | date) == 12
    assert coerce_scalar("2024-01-01", int | date) == date(2024, 1, 1)

    with pytest.raises(ConversionError, match="matches no member of the Union"):
        coerce_scalar("neither", int | date)


def test_coerce_scalar_literal() -> None:
    assert coerce_scalar("1", Literal[1, 2]) == 1
    assert coerce_scalar("a", Literal["a", "b"]) == "a"

    with pytest.raises(ConversionError, match="not one of the Literal's values"):
        coerce_scalar("c", Literal["a", "b"])


def test_coerce_scalar_rejects_collection_targets() -> None:
    with pytest.raises(ConversionError):
        coerce_scalar("abc", list[str])


@given(st.integers(min_value=INT64_MIN, max_value=INT64_MAX))
def test_integer_text_round_trips(n: int) -> None:
    assert coerce_scalar(str(n), int) == n
    assert coerce_scalar(n, str) == str(n)
