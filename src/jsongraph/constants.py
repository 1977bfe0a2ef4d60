"""Constant values related to the token stream and the `$`-property protocol."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, AbstractSet, Final, Generic, Literal, TypeVar

from jsongraph._pycompat.dataclasses import FrozenAfterInitDataclass

if TYPE_CHECKING:
    from typing_extensions import TypeGuard


class TokenKind(IntEnum):
    """The kinds of token a `TokenStream` can be positioned on.

    `NoToken` is the state of a stream before its first `advance()`, and after
    it has been exhausted.
    """

    NoToken = 0
    StartObject = 1
    StartArray = 2
    StartConstructor = 3
    PropertyName = 4
    Comment = 5
    Integer = 6
    Float = 7
    String = 8
    Boolean = 9
    Null = 10
    Undefined = 11
    EndObject = 12
    EndArray = 13
    EndConstructor = 14
    Date = 15


ID_PROPERTY: Final = "$id"
"""The property that registers an object with a reference id."""
REF_PROPERTY: Final = "$ref"
"""The property that refers to an object registered earlier with `$id`."""
TYPE_PROPERTY: Final = "$type"
"""The property that names the concrete type of an object."""
VALUES_PROPERTY: Final = "$values"
"""The property holding the items of a collection wrapped in an object."""

RESERVED_PROPERTY_NAMES: Final = frozenset(
    {ID_PROPERTY, REF_PROPERTY, TYPE_PROPERTY, VALUES_PROPERTY}
)
"""Property names that are interpreted as protocol metadata, not member data.

These are only special as the leading properties of an object. Data stored
under these exact names can't round-trip, which is a documented limitation of
the format.
"""


TokenKindT_co = TypeVar("TokenKindT_co", bound=TokenKind, covariant=True)


@dataclass(unsafe_hash=True, slots=True)
class TokenConstraint(FrozenAfterInitDataclass, Generic[TokenKindT_co]):
    """A named set of `TokenKind`s."""

    name: str
    """A description of the tokens allowed by this constraint."""
    allowed_tokens: AbstractSet[TokenKindT_co]
    """The set of tokens allowed by this constraint."""

    def __contains__(self, token: object) -> TypeGuard[TokenKindT_co]:
        """Return True if `token` is allowed by the constraint."""
        return token in self.allowed_tokens

    @property
    def allowed_token_names(self) -> str:
        """A human-readable list of `TokenKind`s allowed by this constraint."""
        return ", ".join(sorted(t.name for t in self.allowed_tokens))

    def __str__(self) -> str:
        return f"{self.name}: {self.allowed_token_names}"


ScalarToken = Literal[
    TokenKind.Integer,
    TokenKind.Float,
    TokenKind.String,
    TokenKind.Boolean,
    TokenKind.Date,
]

SCALAR_TOKENS: Final = TokenConstraint[ScalarToken](
    name="Scalar values",
    allowed_tokens=frozenset(
        {
            TokenKind.Integer,
            TokenKind.Float,
            TokenKind.String,
            TokenKind.Boolean,
            TokenKind.Date,
        }
    ),
)
"""Tokens that carry a primitive value."""

NullToken = Literal[TokenKind.Null, TokenKind.Undefined]

NULL_TOKENS: Final = TokenConstraint[NullToken](
    name="Null values",
    allowed_tokens=frozenset({TokenKind.Null, TokenKind.Undefined}),
)

StartToken = Literal[
    TokenKind.StartObject, TokenKind.StartArray, TokenKind.StartConstructor
]

START_TOKENS: Final = TokenConstraint[StartToken](
    name="Container starts",
    allowed_tokens=frozenset(
        {TokenKind.StartObject, TokenKind.StartArray, TokenKind.StartConstructor}
    ),
)
"""Tokens that open a nested level, each closed by the matching `END_TOKENS`."""

EndToken = Literal[TokenKind.EndObject, TokenKind.EndArray, TokenKind.EndConstructor]

END_TOKENS: Final = TokenConstraint[EndToken](
    name="Container ends",
    allowed_tokens=frozenset(
        {TokenKind.EndObject, TokenKind.EndArray, TokenKind.EndConstructor}
    ),
)

VALUE_START_TOKENS: Final = TokenConstraint[TokenKind](
    name="Value starts",
    allowed_tokens=SCALAR_TOKENS.allowed_tokens
    | NULL_TOKENS.allowed_tokens
    | START_TOKENS.allowed_tokens,
)
"""Tokens that can begin a value."""

MATCHING_END_TOKEN: Final = {
    TokenKind.StartObject: TokenKind.EndObject,
    TokenKind.StartArray: TokenKind.EndArray,
    TokenKind.StartConstructor: TokenKind.EndConstructor,
}


class MissingMemberHandling(Enum):
    """What happens to a property that has no member to receive it."""

    Ignore = "ignore"
    """The property's value is skipped without being materialized."""
    Error = "error"
    """The property fails with `MissingMemberError`."""


class NullValueHandling(Enum):
    """Whether `null` property values are written to their members."""

    Include = "include"
    Ignore = "ignore"
    """A `null` value leaves the member's current value in place."""


class DefaultValueHandling(Enum):
    """Whether values equal to a member's declared default are written."""

    Include = "include"
    Ignore = "ignore"
    """A value equal to the member's default leaves the member unchanged."""


class ObjectCreationHandling(Enum):
    """Whether a member's current composite value is filled or replaced."""

    Auto = "auto"
    """Reuse a member's existing mutable object or collection when it has one."""
    Reuse = "reuse"
    """The same as `Auto`."""
    Replace = "replace"
    """Always create a new value and assign it to the member."""


class TypeNameHandling(Enum):
    """Whether `$type` properties select the type that is created."""

    Disabled = "disabled"
    """`$type` is read and ignored, the requested type is always used (default)."""
    Auto = "auto"
    """`$type` is honoured when present."""


class ConstructionPlan(Enum):
    """The strategy used to create the value of an object-shaped target."""

    PopulateExisting = "populate-existing"
    """An existing instance is filled with the object's members."""
    DefaultConstructThenFill = "default-construct-then-fill"
    """A new instance is created without arguments, then filled."""
    ParameterizedConstruct = "parameterized-construct"
    """Members are gathered first, then passed to a constructor."""
