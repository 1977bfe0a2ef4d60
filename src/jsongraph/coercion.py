"""Convert scalar token values to the type a member or item requires."""

from __future__ import annotations

import base64
import binascii
import math
from collections.abc import Callable, Mapping
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from types import MappingProxyType
from typing import Any, Final, TypeVar
from uuid import UUID

from jsongraph._errors import ConversionError
from jsongraph.shapes import ShapeKind, TypeShape, get_shape

T = TypeVar("T")

ScalarRule = Callable[[object, type[T]], T]
"""A function that converts a value to a class, or raises ValueError/TypeError."""


def _to_bool(value: object, cls: type[bool]) -> bool:
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, str):
        normalised = value.strip().lower()
        if normalised in ("true", "false"):
            return normalised == "true"
    raise ValueError(f"{value!r} is not a boolean")


def _to_int(value: object, cls: type[int]) -> int:
    if isinstance(value, (float, Decimal)):
        if not math.isfinite(value):
            raise ValueError(f"{value!r} has no integer value")
        # round() rounds half to even
        return cls(round(value))
    if isinstance(value, (int, str)):
        return cls(value)
    raise TypeError(f"{type(value).__name__} has no integer value")


def _to_float(value: object, cls: type[float]) -> float:
    if isinstance(value, (int, float, Decimal, str)):
        return cls(value)
    raise TypeError(f"{type(value).__name__} has no float value")


def _to_decimal(value: object, cls: type[Decimal]) -> Decimal:
    if isinstance(value, float):
        # str() gives the shortest repr, not the exact binary expansion
        return cls(str(value))
    if isinstance(value, (int, str, Decimal)):
        return cls(value)
    raise TypeError(f"{type(value).__name__} has no decimal value")


def _to_fraction(value: object, cls: type[Fraction]) -> Fraction:
    if isinstance(value, (int, float, str, Decimal)):
        return cls(value)
    raise TypeError(f"{type(value).__name__} has no fraction value")


def _to_str(value: object, cls: type[str]) -> str:
    if isinstance(value, bool):
        return cls("true" if value else "false")
    if isinstance(value, (date, time)):
        return cls(value.isoformat())
    if isinstance(value, Enum):
        return cls(value.name)
    return cls(value)


def _to_datetime(value: object, cls: type[datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return cls.combine(value, time())
    if isinstance(value, str):
        return cls.fromisoformat(value.strip())
    raise TypeError(f"{type(value).__name__} is not a datetime")


def _to_date(value: object, cls: type[date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        try:
            return cls.fromisoformat(value.strip())
        except ValueError:
            return datetime.fromisoformat(value.strip()).date()
    raise TypeError(f"{type(value).__name__} is not a date")


def _to_time(value: object, cls: type[time]) -> time:
    if isinstance(value, datetime):
        return value.timetz()
    if isinstance(value, str):
        return cls.fromisoformat(value.strip())
    raise TypeError(f"{type(value).__name__} is not a time")


def _to_uuid(value: object, cls: type[UUID]) -> UUID:
    if isinstance(value, str):
        return cls(value)
    raise TypeError(f"{type(value).__name__} is not a UUID")


def _to_bytes(value: object, cls: type[bytes]) -> bytes:
    if isinstance(value, str):
        return cls(base64.b64decode(value, validate=True))
    raise TypeError(f"{type(value).__name__} is not base64 text")


def _to_enum(value: object, cls: type[Enum]) -> Enum:
    if isinstance(value, cls):
        return value
    if isinstance(value, str):
        member = cls.__members__.get(value)
        if member is not None:
            return member
        folded = value.casefold()
        for name, member in cls.__members__.items():
            if name.casefold() == folded:
                return member
        try:
            return cls(value)
        except ValueError:
            pass
        # Numeric strings select by value or ordinal, like numbers
        try:
            value = int(value)
        except ValueError:
            raise ValueError(f"{value!r} is not a member of {cls.__name__}") from None
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return cls(value)
        except ValueError:
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
            raise
    return cls(value)


SCALAR_RULES: Final[Mapping[type, ScalarRule[Any]]] = MappingProxyType(
    {
        bool: _to_bool,
        int: _to_int,
        float: _to_float,
        Decimal: _to_decimal,
        Fraction: _to_fraction,
        str: _to_str,
        datetime: _to_datetime,
        date: _to_date,
        time: _to_time,
        UUID: _to_uuid,
        bytes: _to_bytes,
        bytearray: _to_bytes,
    }
)
"""Conversion functions for scalar classes and their subclasses."""


def _find_rule(cls: type) -> ScalarRule[Any] | None:
    # IntEnum members are ints, but Enum rules take priority
    if issubclass(cls, Enum):
        return _to_enum
    for base in cls.__mro__:
        rule = SCALAR_RULES.get(base)
        if rule is not None:
            return rule
    return None


def _type_name(target: object) -> str:
    return getattr(target, "__qualname__", None) or repr(target)


def coerce_to_class(value: object, cls: type[T]) -> T:
    """Convert a non-null scalar value to an instance of `cls`.

    >>> coerce_to_class("42", int)
    42
    >>> coerce_to_class(2.5, int)
    2
    >>> coerce_to_class("TRUE", bool)
    True

    Raises
    ------
    ConversionError
        If no rule can convert the value.
    """
    if type(value) is cls:
        return value  # type: ignore[return-value]
    rule = _find_rule(cls)
    try:
        if rule is not None:
            return rule(value, cls)
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(value)  # type: ignore[call-arg]
    except (ValueError, TypeError, ArithmeticError, binascii.Error) as e:
        raise ConversionError(
            f"Cannot convert {type(value).__name__} value to {_type_name(cls)}",
            value=value,
            target_type=cls,
        ) from e
    raise ConversionError(
        f"No conversion from {type(value).__name__} to {_type_name(cls)}",
        value=value,
        target_type=cls,
    )


def coerce_scalar(value: object, target_type: object = None) -> object:
    """Convert a scalar token value to the type of `target_type`.

    The value is returned unchanged if its type already is the target type,
    or if there's no target type. `None` always stays `None`.

    >>> from typing import Literal
    >>> coerce_scalar("2024-02-01T12:00:00Z", datetime)
    datetime.datetime(2024, 2, 1, 12, 0, tzinfo=datetime.timezone.utc)
    >>> coerce_scalar("b", Literal["a", "b"])
    'b'
    >>> coerce_scalar("1", int | None)
    1

    Raises
    ------
    ConversionError
        If the value can't be represented as the target type.
    """
    if value is None:
        return None
    return _coerce_shape(value, get_shape(target_type))


def _coerce_shape(value: object, shape: TypeShape) -> object:
    if shape.kind is ShapeKind.Any:
        return value
    if shape.kind is ShapeKind.Union:
        for option in shape.options:
            try:
                return _coerce_shape(value, get_shape(option))
            except ConversionError:
                continue
        raise ConversionError(
            f"{type(value).__name__} value matches no member of the Union",
            value=value,
            target_type=shape.annotation,
        )
    if shape.is_literal:
        return _coerce_literal(value, shape)
    if shape.cls is None or shape.kind not in (ShapeKind.Scalar, ShapeKind.Object):
        raise ConversionError(
            f"Cannot convert {type(value).__name__} value to {shape.annotation!r}",
            value=value,
            target_type=shape.annotation,
        )
    return coerce_to_class(value, shape.cls)


def _coerce_literal(value: object, shape: TypeShape) -> object:
    for option in shape.options:
        if type(option) is type(value) and option == value:
            return option
    for option in shape.options:
        if option is None:
            continue
        try:
            if coerce_to_class(value, type(option)) == option:
                return option
        except ConversionError:
            continue
    raise ConversionError(
        "Value is not one of the Literal's values",
        value=value,
        target_type=shape.annotation,
    )
