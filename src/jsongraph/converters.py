"""Converters take over materializing values of the types they accept."""

from __future__ import annotations

from datetime import date, datetime
from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
    NamedTuple,
    Protocol,
    TypeVar,
    get_args,
    get_origin,
    runtime_checkable,
)

from jsongraph._errors import (
    ConversionError,
    MissingRequiredMemberError,
    UnexpectedTokenError,
)
from jsongraph.constants import TokenKind
from jsongraph.shapes import get_shape
from jsongraph.tokens import read_required

if TYPE_CHECKING:
    from jsongraph.materialize import MaterializeContext

K = TypeVar("K")
V = TypeVar("V")


@runtime_checkable
class JsonConverter(Protocol):
    """Something that materializes values of certain types in its own way.

    A converter is used for a value when it's declared for the member holding
    the value (`member(converter=...)`), when it's declared for the value's
    class (`@json_converter(...)`), or when it's in the `converters` of the
    settings. In each case, it's only used if `can_convert()` accepts the type.
    """

    def can_convert(self, target_type: object) -> bool:
        """Return True if this converter can materialize `target_type`."""

    def read_json(
        self, ctx: MaterializeContext, target_type: object, existing_value: object
    ) -> object:
        """Materialize the value that `ctx.stream` is positioned on.

        The converter must consume the whole value, leaving the stream on the
        value's last token. Nested values can be materialized normally with
        `ctx.materialize()`.
        """


class IsoDateTimeConverter:
    """Read dates and datetimes from ISO 8601 strings, or a `strptime` format.

    >>> from jsongraph import loads
    >>> converter = IsoDateTimeConverter(date_format="%d/%m/%Y")
    >>> loads('"25/12/2024"', date, converters=[converter])
    datetime.date(2024, 12, 25)
    """

    __slots__ = ("date_format",)

    date_format: str | None

    def __init__(self, date_format: str | None = None) -> None:
        self.date_format = date_format

    def __repr__(self) -> str:
        return f"IsoDateTimeConverter(date_format={self.date_format!r})"

    def can_convert(self, target_type: object) -> bool:
        cls = get_shape(target_type).cls
        return cls is not None and issubclass(cls, date)

    def read_json(
        self, ctx: MaterializeContext, target_type: object, existing_value: object
    ) -> object:
        stream = ctx.stream
        shape = get_shape(target_type)
        cls = shape.cls
        assert cls is not None

        if stream.kind in (TokenKind.Null, TokenKind.Undefined):
            if not shape.nullable:
                raise ConversionError(
                    "Cannot convert null to a non-nullable type",
                    value=None,
                    target_type=target_type,
                )
            return None
        value = stream.value
        if stream.kind is TokenKind.String and isinstance(value, str):
            text = value
            try:
                if self.date_format is None:
                    value = datetime.fromisoformat(text)
                else:
                    value = datetime.strptime(text, self.date_format)
            except ValueError as e:
                raise ConversionError(
                    "String is not a date in the expected format",
                    value=text,
                    target_type=target_type,
                ) from e
        elif stream.kind is not TokenKind.Date or not isinstance(value, datetime):
            raise UnexpectedTokenError(
                "Expected a date or string",
                token=stream.kind,
                depth=stream.depth,
            )

        if issubclass(cls, datetime):
            return value
        return value.date()


class KeyValuePair(NamedTuple, Generic[K, V]):
    """A key and value, read from an object with `Key` and `Value` properties."""

    key: K
    value: V


class KeyValuePairConverter:
    """Read `KeyValuePair`s from objects with `Key` and `Value` properties.

    Property names are matched without regard to case.

    >>> from jsongraph import loads
    >>> loads('{"Key": "a", "Value": 1}', KeyValuePair[str, int],
    ...       converters=[KeyValuePairConverter()])
    KeyValuePair(key='a', value=1)
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "KeyValuePairConverter()"

    def can_convert(self, target_type: object) -> bool:
        cls = get_shape(target_type).cls
        return cls is KeyValuePair

    def read_json(
        self, ctx: MaterializeContext, target_type: object, existing_value: object
    ) -> object:
        stream = ctx.stream
        shape = get_shape(target_type)
        if stream.kind is TokenKind.Null and shape.nullable:
            return None
        if stream.kind is not TokenKind.StartObject:
            raise UnexpectedTokenError(
                "Expected an object with Key and Value properties",
                token=stream.kind,
                depth=stream.depth,
            )

        annotation = shape.annotation
        # Optional and Annotated have the KeyValuePair as an argument
        if get_origin(annotation) is not KeyValuePair:
            annotation = next(
                (a for a in get_args(annotation) if get_origin(a) is KeyValuePair),
                KeyValuePair,
            )
        key_type, value_type = get_args(annotation) or (Any, Any)
        values: dict[str, object] = {}
        while read_required(stream) is not TokenKind.EndObject:
            if stream.kind is TokenKind.Comment:
                continue
            if stream.kind is not TokenKind.PropertyName:
                raise UnexpectedTokenError(
                    "Expected a property name",
                    token=stream.kind,
                    depth=stream.depth,
                )
            name = str(stream.value).casefold()
            if name == "key":
                read_required(stream)
                values["key"] = ctx.materialize(key_type)
            elif name == "value":
                read_required(stream)
                values["value"] = ctx.materialize(value_type)
            else:
                stream.skip()

        for name in ("key", "value"):
            if name not in values:
                raise MissingRequiredMemberError(
                    "KeyValuePair object is missing a property",
                    member_name=name.capitalize(),
                    target_type=KeyValuePair,
                )
        return KeyValuePair(values["key"], values["value"])
