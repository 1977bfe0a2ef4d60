"""Values with special meaning to the materializer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final, Literal

if TYPE_CHECKING:
    from typing_extensions import TypeAlias

    from jsongraph.tokens import Token, TokenStream


class DBNullEnum(Enum):
    """Defines the DBNull enum value."""

    DBNull = "DBNull"
    """A database null, distinct from `None`."""

    def __repr__(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name

    def __bool__(self) -> bool:
        return False


DBNullType: TypeAlias = Literal[DBNullEnum.DBNull]
DBNull: Final = DBNullEnum.DBNull
"""A database null.

A `null` token is materialized as `DBNull` instead of `None` when the requested
type is `DBNullType`.

>>> from jsongraph import loads
>>> loads('null', DBNullType)
DBNull
>>> loads('null') is None
True
"""


@dataclass(frozen=True, slots=True)
class RawJson:
    """The unparsed tokens of a value.

    Requesting `RawJson` as the type of a value (or of a member) captures its
    whole subtree instead of materializing it. The captured tokens can be
    materialized later, as any type.

    >>> from jsongraph import deserialize, loads
    >>> raw = loads('{"a": [1, 2]}', RawJson)
    >>> [t.kind.name for t in raw.tokens]  # doctest: +NORMALIZE_WHITESPACE
    ['StartObject', 'PropertyName', 'StartArray', 'Integer', 'Integer',
     'EndArray', 'EndObject']
    >>> deserialize(raw.stream())
    {'a': [1, 2]}
    """

    tokens: tuple[Token, ...]

    def stream(self) -> TokenStream:
        """Get a new `TokenStream` that reads the captured tokens."""
        from jsongraph.tokens import IterTokenStream

        return IterTokenStream(self.tokens)
