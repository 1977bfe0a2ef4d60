"""Forward-only streams of structural tokens, and ways to create them."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import TYPE_CHECKING, Generator, NamedTuple, Protocol, Union

import ijson

from jsongraph._errors import UnexpectedEndError, UnexpectedTokenError
from jsongraph.constants import END_TOKENS, MATCHING_END_TOKEN, START_TOKENS, TokenKind
from jsongraph.values import DBNull, RawJson

if TYPE_CHECKING:
    from typing_extensions import TypeAlias

    from _typeshed import SupportsRead

logger = logging.getLogger(__name__)


class Token(NamedTuple):
    """A token and its value.

    Scalar tokens carry their Python value, `PropertyName` carries the name,
    and `StartConstructor`/`EndConstructor` carry the constructor name. Other
    tokens have no value.
    """

    kind: TokenKind
    value: object = None

    def __repr__(self) -> str:
        if self.value is None:
            return f"Token({self.kind.name})"
        return f"Token({self.kind.name}, {self.value!r})"


class TokenStream(Protocol):
    """A forward-only reader of tokens, with at most one token of lookahead.

    A new stream is positioned before its first token (`kind` is `NoToken`).
    """

    @property
    def kind(self) -> TokenKind:
        """The kind of the token the stream is positioned on."""

    @property
    def value(self) -> object:
        """The value of the token the stream is positioned on."""

    @property
    def depth(self) -> int:
        """The nesting depth of the current token.

        Start tokens have the depth of the level that contains them, and End
        tokens the same depth as their Start. Property names and the values
        inside a container are one level deeper than the container.
        """

    def advance(self) -> bool:
        """Move to the next token.

        Returns
        -------
        :
            False if the stream is exhausted, in which case `kind` is `NoToken`.
        """

    def skip(self) -> None:
        """Consume the current value without materializing it.

        From a `PropertyName`, the stream moves onto the property's value
        first. From a Start token, the stream moves to the matching End token.
        Otherwise the stream stays where it is.

        Raises
        ------
        UnexpectedEndError
            If the stream is exhausted before the value is complete.
        """


class BaseTokenStream:
    """Tracks the position and nesting depth of a stream of `Token`s.

    Subclasses provide the tokens by implementing `_next_token()`.
    """

    __slots__ = ("_token", "_depth", "_open")

    _token: Token
    _depth: int
    _open: list[TokenKind]

    def __init__(self) -> None:
        self._token = Token(TokenKind.NoToken)
        self._depth = 0
        self._open = []

    def _next_token(self) -> Token | None:
        raise NotImplementedError

    @property
    def kind(self) -> TokenKind:
        return self._token.kind

    @property
    def value(self) -> object:
        return self._token.value

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def token(self) -> Token:
        return self._token

    def advance(self) -> bool:
        token = self._next_token()
        if token is None:
            self._token = Token(TokenKind.NoToken)
            return False

        kind = token.kind
        if kind in END_TOKENS:
            if not self._open or MATCHING_END_TOKEN[self._open[-1]] is not kind:
                raise UnexpectedTokenError(
                    "End token does not close the current container",
                    token=kind,
                    depth=len(self._open),
                )
            self._open.pop()
            self._depth = len(self._open)
        elif kind in START_TOKENS:
            self._depth = len(self._open)
            self._open.append(kind)
        else:
            self._depth = len(self._open)
        self._token = token
        return True

    def skip(self) -> None:
        if self.kind is TokenKind.PropertyName:
            read_required(self)
            while self.kind is TokenKind.Comment:
                read_required(self)
        if self.kind in START_TOKENS:
            depth = self.depth
            while True:
                read_required(self)
                if self.kind in END_TOKENS and self.depth == depth:
                    return

    def __repr__(self) -> str:
        return f"{type(self).__name__}(token={self._token!r}, depth={self._depth})"


def read_required(stream: TokenStream) -> TokenKind:
    """Advance the stream, failing if it's exhausted.

    Returns
    -------
    :
        The kind of the token the stream moved to.

    Raises
    ------
    UnexpectedEndError
        If the stream has no more tokens.
    """
    kind, depth = stream.kind, stream.depth
    if not stream.advance():
        raise UnexpectedEndError(
            "Token stream ended before the current value was complete",
            token=kind,
            depth=depth,
        )
    return stream.kind


class IterTokenStream(BaseTokenStream):
    """A `TokenStream` that reads `Token`s from an iterable.

    >>> stream = IterTokenStream([Token(TokenKind.StartArray),
    ...                           Token(TokenKind.Integer, 1),
    ...                           Token(TokenKind.EndArray)])
    >>> stream.advance(), stream.kind.name, stream.depth
    (True, 'StartArray', 0)
    >>> stream.advance(), stream.value, stream.depth
    (True, 1, 1)
    >>> stream.advance(), stream.kind.name, stream.depth
    (True, 'EndArray', 0)
    >>> stream.advance(), stream.kind.name
    (False, 'NoToken')
    """

    __slots__ = ("_tokens",)

    _tokens: Iterator[Token]

    def __init__(self, tokens: Iterable[Token]) -> None:
        super().__init__()
        self._tokens = iter(tokens)

    def _next_token(self) -> Token | None:
        return next(self._tokens, None)


def iter_tree_tokens(value: object) -> Generator[Token, None, None]:
    """Generate the tokens of a tree of Python values.

    Trees are made of `Mapping`s with `str` keys, `list`s and `tuple`s, and
    scalar values. `RawJson` values produce their captured tokens.

    >>> [t.kind.name for t in iter_tree_tokens({"a": [1, None]})]
    ... # doctest: +NORMALIZE_WHITESPACE
    ['StartObject', 'PropertyName', 'StartArray', 'Integer', 'Null', 'EndArray',
     'EndObject']
    """
    if value is None or value is DBNull:
        yield Token(TokenKind.Null)
    # bool is an int subclass
    elif isinstance(value, bool):
        yield Token(TokenKind.Boolean, value)
    elif isinstance(value, int):
        yield Token(TokenKind.Integer, value)
    elif isinstance(value, float):
        yield Token(TokenKind.Float, value)
    elif isinstance(value, Decimal):
        yield Token(TokenKind.Float, float(value))
    elif isinstance(value, str):
        yield Token(TokenKind.String, value)
    elif isinstance(value, datetime):
        yield Token(TokenKind.Date, value)
    elif isinstance(value, RawJson):
        yield from value.tokens
    elif isinstance(value, Mapping):
        yield Token(TokenKind.StartObject)
        for k, v in value.items():
            yield Token(TokenKind.PropertyName, str(k))
            yield from iter_tree_tokens(v)
        yield Token(TokenKind.EndObject)
    elif isinstance(value, (list, tuple)):
        yield Token(TokenKind.StartArray)
        for item in value:
            yield from iter_tree_tokens(item)
        yield Token(TokenKind.EndArray)
    else:
        raise TypeError(
            f"Value of type {type(value).__name__} cannot be represented as tokens"
        )


class TreeTokenStream(IterTokenStream):
    """A `TokenStream` over a tree of Python values.

    See `iter_tree_tokens()` for the values that can be read.
    """

    __slots__ = ()

    def __init__(self, tree: object) -> None:
        super().__init__(iter_tree_tokens(tree))


JsonSource: TypeAlias = Union[str, bytes, bytearray, "SupportsRead[bytes]"]

_SCALAR_EVENTS = {
    "null": TokenKind.Null,
    "boolean": TokenKind.Boolean,
    "string": TokenKind.String,
}
_STRUCTURE_EVENTS = {
    "start_map": TokenKind.StartObject,
    "end_map": TokenKind.EndObject,
    "start_array": TokenKind.StartArray,
    "end_array": TokenKind.EndArray,
    "map_key": TokenKind.PropertyName,
}


def _ijson_event_token(event: str, value: object) -> Token | None:
    kind = _STRUCTURE_EVENTS.get(event) or _SCALAR_EVENTS.get(event)
    if kind is not None:
        return Token(kind, value)
    # ijson backends differ in whether numbers are integer/double or number
    # events, so the kind follows the value's type.
    if isinstance(value, int):
        return Token(TokenKind.Integer, value)
    if isinstance(value, Decimal):
        return Token(TokenKind.Float, float(value))
    if isinstance(value, float):
        return Token(TokenKind.Float, value)
    return None


class JsonTextTokenStream(BaseTokenStream):
    """A `TokenStream` that reads JSON text, using `ijson`'s event parser.

    The text is parsed incrementally as the stream advances, so a file-like
    source is only read as far as the tokens that are consumed.

    >>> stream = JsonTextTokenStream('{"n": 1.5}')
    >>> while stream.advance():
    ...     print(stream.depth, stream.kind.name, stream.value)
    0 StartObject None
    1 PropertyName n
    1 Float 1.5
    0 EndObject None

    Whitespace-only text has no tokens:

    >>> JsonTextTokenStream("  ").advance()
    False
    """

    __slots__ = ("_events",)

    _events: Iterator[tuple[str, object]] | None

    def __init__(self, source: JsonSource) -> None:
        super().__init__()
        if isinstance(source, str):
            source = source.encode("utf-8")
        if isinstance(source, (bytes, bytearray)):
            if not source.strip():
                self._events = None
                return
            source = BytesIO(source)
        self._events = ijson.basic_parse(source, use_float=True)

    def _next_token(self) -> Token | None:
        if self._events is None:
            return None
        try:
            event, value = next(self._events)
        except StopIteration:
            self._events = None
            return None
        except ijson.IncompleteJSONError as e:
            raise UnexpectedEndError(
                f"JSON text ended before the current value was complete: {e}",
                token=self.kind,
                depth=self.depth,
            ) from e
        except ijson.JSONError as e:
            raise UnexpectedTokenError(
                f"JSON text is not well-formed: {e}",
                token=self.kind,
                depth=self.depth,
            ) from e
        token = _ijson_event_token(event, value)
        if token is None:
            raise UnexpectedTokenError(
                f"Unsupported JSON parser event: {event!r}",
                token=self.kind,
                depth=self.depth,
            )
        return token


def capture_subtree(stream: TokenStream) -> RawJson:
    """Read the value the stream is positioned on as unparsed tokens.

    The stream is left on the last token of the value. Comments inside the
    value are dropped.

    >>> stream = JsonTextTokenStream('[{"a": 1}, 2]')
    >>> stream.advance()
    True
    >>> capture_subtree(stream).tokens  # doctest: +NORMALIZE_WHITESPACE
    (Token(StartArray), Token(StartObject), Token(PropertyName, 'a'),
     Token(Integer, 1), Token(EndObject), Token(Integer, 2), Token(EndArray))
    """
    buffer = [Token(stream.kind, stream.value)]
    if stream.kind in START_TOKENS:
        depth = stream.depth
        while True:
            kind = read_required(stream)
            if kind is TokenKind.Comment:
                continue
            buffer.append(Token(kind, stream.value))
            if kind in END_TOKENS and stream.depth == depth:
                break
    logger.debug("Captured %d raw tokens", len(buffer))
    return RawJson(tuple(buffer))
