"""Classes materialized by the tests.

They are defined at module level so that `$type` names can resolve them.
"""

from __future__ import annotations

import abc
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from typing import Annotated, NamedTuple

from jsongraph.catalog import MemberOptions, json_constructor, json_converter, member
from jsongraph.constants import DefaultValueHandling, NullValueHandling
from jsongraph.converters import IsoDateTimeConverter


def type_name(cls: type) -> str:
    """The `$type` name that `DefaultTypeBinder` resolves to `cls`."""
    return f"{cls.__module__}.{cls.__qualname__}"


@dataclass
class Person:
    name: str
    age: int = 0
    email: str | None = None


@dataclass
class Node:
    name: str = ""
    parent: Node | None = field(default=None, metadata=member(name="up"))
    children: list[Node] = field(default_factory=list)


@dataclass
class Base:
    id: int = 0


@dataclass
class Derived(Base):
    extra: str = ""


@dataclass
class Unrelated:
    id: int = 0


@dataclass
class Holder:
    item: Base | None = None
    items: list[Base] = field(default_factory=list)


class Point:
    """A class that can only be created with arguments."""

    def __init__(self, x: int, y: int) -> None:
        self.x = x
        self.y = y
        self.label: str | None = None

    x: int
    y: int
    label: str | None


@dataclass(frozen=True)
class FrozenPair:
    left: int
    right: int = 0
    partner: FrozenPair | None = None


class Coordinates(NamedTuple):
    lat: float
    lon: float = 0.0


class Shape(abc.ABC):
    @abc.abstractmethod
    def area(self) -> float: ...


@dataclass
class Square(Shape):
    side: float = 0.0

    def area(self) -> float:
        return self.side**2


@dataclass
class Drawing:
    shape: Shape | None = None


class TwoConstructors:
    def __init__(self) -> None:
        self.value = 0

    value: int

    @json_constructor
    @classmethod
    def from_value(cls, value: int) -> TwoConstructors:
        instance = cls()
        instance.value = value
        return instance

    @json_constructor
    @staticmethod
    def from_text(text: str) -> TwoConstructors:
        return TwoConstructors.from_value(int(text))


class Temperature:
    """Created through a marked classmethod."""

    def __init__(self) -> None:
        self.kelvin = 0.0

    kelvin: float

    @json_constructor
    @classmethod
    def from_celsius(cls, celsius: float) -> Temperature:
        instance = cls()
        instance.kelvin = celsius + 273.15
        return instance


@dataclass
class Settings:
    name: str = "default"
    tags: list[str] = field(default_factory=lambda: ["initial"])
    limits: dict[str, int] = field(default_factory=dict)
    owner: Person | None = None


@dataclass
class Policies:
    keep: str | None = field(
        default="kept", metadata=member(null_value_handling=NullValueHandling.Ignore)
    )
    replace: str | None = "replaced"
    count: int = field(
        default=7,
        metadata=member(default_value_handling=DefaultValueHandling.Ignore),
    )


@dataclass
class Account:
    login: str = field(metadata=member(required=True), default="")
    secret: str = field(default="hidden", metadata=member(ignored=True))
    display_name: Annotated[str, MemberOptions(name="displayName")] = ""


@dataclass
class Event:
    title: str = ""
    day: date | None = field(
        default=None,
        metadata=member(converter=IsoDateTimeConverter(date_format="%d/%m/%Y")),
    )


@json_converter(IsoDateTimeConverter(date_format="%Y%m%d"))
class CompactDate(date):
    pass


@dataclass
class Inventory:
    counts: dict[str, int] = field(default_factory=dict)
    queue: deque[int] = field(default_factory=deque)
    labels: set[str] = field(default_factory=set)
    frozen: frozenset[int] = frozenset()
    pair: tuple[int, str] | None = None
