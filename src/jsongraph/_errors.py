from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from jsongraph.constants import TokenKind


@dataclass(init=False)
class JsonGraphError(Exception):
    """The base class that all jsongraph errors are subclasses of."""

    if not TYPE_CHECKING:
        message: str  # needed to have dataclass include message in the repr, etc

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(message, *args)

    @property
    def message(self) -> str:
        return cast(str, self.args[0])

    def __str__(self) -> str:
        field_values = [
            (f.name, getattr(self, f.name)) for f in fields(self) if f.name != "message"
        ]
        values_fmt = ", ".join(f"{f}={v!r}" for (f, v) in field_values)

        if values_fmt:
            return f"{self.message}: {values_fmt}"
        return self.message


@dataclass(init=False)
class StructuralError(JsonGraphError, ValueError):
    """The token stream does not have the structure required at this point."""

    token: TokenKind
    depth: int

    def __init__(
        self, message: str, *args: object, token: TokenKind, depth: int
    ) -> None:
        super().__init__(message, *args)
        self.token = token
        self.depth = depth


@dataclass(init=False)
class UnexpectedTokenError(StructuralError):
    """A token occurred that is not valid where it was found."""


@dataclass(init=False)
class UnexpectedEndError(StructuralError):
    """The token stream ended before the value being read was complete."""


@dataclass(init=False)
class MissingMemberError(JsonGraphError, ValueError):
    """
    A property has no member to receive it.

    Only raised when `MissingMemberHandling.Error` is in effect, otherwise
    unknown properties are skipped.
    """

    member_name: str
    target_type: type

    def __init__(
        self, message: str, *args: object, member_name: str, target_type: type
    ) -> None:
        super().__init__(message, *args)
        self.member_name = member_name
        self.target_type = target_type


@dataclass(init=False)
class MissingRequiredMemberError(JsonGraphError, ValueError):
    """A required member was absent (or `null`) when its object ended."""

    member_name: str
    target_type: type

    def __init__(
        self, message: str, *args: object, member_name: str, target_type: type
    ) -> None:
        super().__init__(message, *args)
        self.member_name = member_name
        self.target_type = target_type


@dataclass(init=False)
class TypeResolutionError(JsonGraphError, TypeError):
    """A `$type` name could not be turned into a type."""

    type_name: str

    def __init__(self, message: str, *args: object, type_name: str) -> None:
        super().__init__(message, *args)
        self.type_name = type_name


@dataclass(init=False)
class TypeMismatchError(TypeResolutionError):
    """A `$type` resolved to a type that is not assignable to the requested type."""

    resolved_type: type
    requested_type: object

    def __init__(
        self,
        message: str,
        *args: object,
        type_name: str,
        resolved_type: type,
        requested_type: object,
    ) -> None:
        super().__init__(message, *args, type_name=type_name)
        self.resolved_type = resolved_type
        self.requested_type = requested_type


@dataclass(init=False)
class ConstructionError(JsonGraphError, TypeError):
    target_type: type

    def __init__(self, message: str, *args: object, target_type: type) -> None:
        super().__init__(message, *args)
        self.target_type = target_type


@dataclass(init=False)
class AbstractTypeError(ConstructionError):
    """The type to create is abstract or a Protocol, so it can't be instantiated."""


@dataclass(init=False)
class NoConstructorError(ConstructionError):
    """The type to create has no constructor that can be called."""


@dataclass(init=False)
class AmbiguousConstructorError(ConstructionError):
    """
    The type to create has more than one constructor marked with `json_constructor`.

    There's no rule to choose between them, so the type must only mark one.
    """

    candidates: tuple[str, ...]

    def __init__(
        self,
        message: str,
        *args: object,
        target_type: type,
        candidates: tuple[str, ...],
    ) -> None:
        super().__init__(message, *args, target_type=target_type)
        self.candidates = candidates


@dataclass(init=False)
class ConversionError(JsonGraphError, ValueError):
    """A scalar value can't be represented as the requested type."""

    value: object
    target_type: object

    def __init__(
        self, message: str, *args: object, value: object, target_type: object
    ) -> None:
        super().__init__(message, *args)
        self.value = value
        self.target_type = target_type


@dataclass(init=False)
class IncompatibleConverterError(JsonGraphError, TypeError):
    """A converter declared on a member or class refuses the type it's declared for."""

    converter: object
    target_type: object

    def __init__(
        self, message: str, *args: object, converter: object, target_type: object
    ) -> None:
        super().__init__(message, *args)
        self.converter = converter
        self.target_type = target_type
