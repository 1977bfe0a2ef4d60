"""Classify type annotations by the kind of value that materializes them."""

from __future__ import annotations

import collections.abc as abc
import types
from collections import deque
from dataclasses import dataclass, replace
from datetime import date, time
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from functools import lru_cache
from pathlib import PurePath
from typing import (
    Annotated,
    Any,
    ClassVar,
    Final,
    Literal,
    NewType,
    TypeVar,
    Union,
    get_args,
    get_origin,
)
from uuid import UUID

from jsongraph.values import DBNull, DBNullEnum, RawJson

SCALAR_TYPES: Final = (
    str,
    bytes,
    bytearray,
    bool,
    int,
    float,
    Decimal,
    Fraction,
    date,
    time,
    UUID,
    Enum,
    PurePath,
)
"""Classes (and their subclasses) that are materialized from a single token."""

_ABSTRACT_SEQUENCES: Final = frozenset(
    {
        list,
        abc.Sequence,
        abc.MutableSequence,
        abc.Iterable,
        abc.Collection,
        abc.Reversible,
    }
)
_ABSTRACT_SETS: Final = frozenset({set, abc.Set, abc.MutableSet})
_ABSTRACT_MAPPINGS: Final = frozenset({dict, abc.Mapping, abc.MutableMapping})


class ShapeKind(Enum):
    """The kind of value an annotation describes."""

    Any = "any"
    """No particular type: values become generic `dict`/`list`/scalar trees."""
    Scalar = "scalar"
    Object = "object"
    """A class whose members are filled from an object's properties."""
    Sequence = "sequence"
    Set = "set"
    Mapping = "mapping"
    """A class filled from an object's properties as keys and values."""
    Union = "union"
    Raw = "raw"
    """`RawJson`: the value's tokens are captured without being materialized."""
    DBNull = "dbnull"


@dataclass(frozen=True, slots=True)
class TypeShape:
    """The result of analysing a type annotation.

    `origin` is the class the annotation declares, and `cls` is the class to
    create. They differ for abstract collection annotations like
    `Sequence[int]`, for which `cls` is the concrete class substituted for
    them (`list`).
    """

    kind: ShapeKind
    annotation: object
    origin: type | None = None
    cls: type | None = None
    nullable: bool = False
    item_type: object = Any
    """The type of a collection's items."""
    item_types: tuple[object, ...] | None = None
    """The types of each position of a fixed-length tuple."""
    key_type: object = Any
    value_type: object = Any
    fixed: bool = False
    """The value can't be modified after it's created, so items are gathered
    first and the value is created from them at the end."""
    options: tuple[object, ...] = ()
    """The members of a `Union`, or the values of a `Literal`."""
    metadata: tuple[object, ...] = ()
    """The extra arguments of an `Annotated` annotation."""

    @property
    def is_literal(self) -> bool:
        return self.kind is ShapeKind.Scalar and self.cls is None

    @property
    def is_composite(self) -> bool:
        """Values of this shape are materialized from StartObject or StartArray."""
        return self.kind in _COMPOSITE_KINDS

    def item_type_at(self, index: int) -> object:
        """The type of the item at `index` of a sequence."""
        if self.item_types is None:
            return self.item_type
        if index < len(self.item_types):
            return self.item_types[index]
        return Any


_COMPOSITE_KINDS: Final = frozenset(
    {ShapeKind.Object, ShapeKind.Sequence, ShapeKind.Set, ShapeKind.Mapping}
)

ANY_SHAPE: Final = TypeShape(ShapeKind.Any, Any)


def get_shape(annotation: object) -> TypeShape:
    """Analyse an annotation to find out how to materialize values of it.

    Analysis results are cached, so the same annotation is only analysed once.

    >>> shape = get_shape(list[int])
    >>> shape.kind, shape.cls, shape.item_type
    (<ShapeKind.Sequence: 'sequence'>, <class 'list'>, <class 'int'>)
    >>> get_shape(abc.Mapping[str, int]).cls
    <class 'dict'>
    >>> shape = get_shape(tuple[int, str] | None)
    >>> shape.fixed, shape.nullable, shape.item_types
    (True, True, (<class 'int'>, <class 'str'>))
    """
    try:
        hash(annotation)
    except TypeError:
        return _analyse_shape(annotation)
    return _get_cached_shape(annotation)


@lru_cache(maxsize=1024)
def _get_cached_shape(annotation: object) -> TypeShape:
    return _analyse_shape(annotation)


def _analyse_shape(annotation: object) -> TypeShape:
    if annotation is None or annotation is Any or annotation is object:
        return ANY_SHAPE
    if isinstance(annotation, TypeVar):
        if annotation.__bound__ is not None:
            return replace(get_shape(annotation.__bound__), annotation=annotation)
        return ANY_SHAPE
    if isinstance(annotation, NewType):
        return replace(get_shape(annotation.__supertype__), annotation=annotation)

    origin = get_origin(annotation)
    args = get_args(annotation)

    if origin is Annotated:
        inner = get_shape(args[0])
        return replace(inner, annotation=annotation, metadata=args[1:])
    if origin is ClassVar or origin is Final:
        return get_shape(args[0]) if args else ANY_SHAPE
    if origin is Union or origin is types.UnionType:
        return _union_shape(annotation, args)
    if origin is Literal:
        if all(a is DBNull for a in args):
            return TypeShape(
                ShapeKind.DBNull, annotation, origin=DBNullEnum, cls=DBNullEnum
            )
        return TypeShape(ShapeKind.Scalar, annotation, options=args)

    cls = origin if origin is not None else annotation
    if not isinstance(cls, type):
        return ANY_SHAPE
    if cls is RawJson:
        return TypeShape(ShapeKind.Raw, annotation, origin=cls, cls=cls)
    if cls is DBNullEnum:
        return TypeShape(ShapeKind.DBNull, annotation, origin=cls, cls=cls)
    if cls is type(None):
        return TypeShape(ShapeKind.Scalar, annotation, nullable=True, options=(None,))
    if issubclass(cls, SCALAR_TYPES):
        return TypeShape(ShapeKind.Scalar, annotation, origin=cls, cls=cls)
    if issubclass(cls, abc.Mapping):
        return _mapping_shape(annotation, cls, args)
    if issubclass(cls, tuple):
        # NamedTuples are objects with named members, not sequences
        if hasattr(cls, "_fields"):
            return TypeShape(ShapeKind.Object, annotation, origin=cls, cls=cls)
        return _tuple_shape(annotation, cls, args)
    if issubclass(cls, abc.Set):
        return _set_shape(annotation, cls, args)
    if cls in _ABSTRACT_SEQUENCES or issubclass(
        cls, (list, deque, abc.MutableSequence)
    ):
        return TypeShape(
            ShapeKind.Sequence,
            annotation,
            origin=cls,
            cls=list if cls in _ABSTRACT_SEQUENCES else cls,
            item_type=args[0] if args else Any,
        )
    return TypeShape(ShapeKind.Object, annotation, origin=cls, cls=cls)


def _union_shape(annotation: object, args: tuple[object, ...]) -> TypeShape:
    members = tuple(a for a in args if a is not type(None))
    nullable = len(members) < len(args)
    if len(members) == 1:
        return replace(get_shape(members[0]), annotation=annotation, nullable=nullable)
    return TypeShape(ShapeKind.Union, annotation, nullable=nullable, options=members)


def _mapping_shape(
    annotation: object, cls: type, args: tuple[object, ...]
) -> TypeShape:
    key_type, value_type = args if len(args) == 2 else (Any, Any)
    abstract = cls in _ABSTRACT_MAPPINGS
    return TypeShape(
        ShapeKind.Mapping,
        annotation,
        origin=cls,
        cls=dict if abstract else cls,
        key_type=key_type,
        value_type=value_type,
        fixed=not abstract and not issubclass(cls, abc.MutableMapping),
    )


def _tuple_shape(annotation: object, cls: type, args: tuple[object, ...]) -> TypeShape:
    if not args or (len(args) == 2 and args[1] is Ellipsis):
        return TypeShape(
            ShapeKind.Sequence,
            annotation,
            origin=cls,
            cls=cls,
            item_type=args[0] if args else Any,
            fixed=True,
        )
    return TypeShape(
        ShapeKind.Sequence,
        annotation,
        origin=cls,
        cls=cls,
        # tuple[()] is the empty tuple
        item_types=() if args == ((),) else args,
        fixed=True,
    )


def _set_shape(annotation: object, cls: type, args: tuple[object, ...]) -> TypeShape:
    abstract = cls in _ABSTRACT_SETS
    return TypeShape(
        ShapeKind.Set,
        annotation,
        origin=cls,
        cls=set if abstract else cls,
        item_type=args[0] if args else Any,
        fixed=not abstract and not issubclass(cls, abc.MutableSet),
    )


def is_assignable(cls: type, annotation: object) -> bool:
    """Check if instances of `cls` can be used where `annotation` is required.

    >>> is_assignable(bool, int | None)
    True
    >>> is_assignable(str, abc.Sequence[int])
    True
    >>> is_assignable(list, dict)
    False
    """
    shape = get_shape(annotation)
    if shape.kind is ShapeKind.Any:
        return True
    if shape.kind is ShapeKind.Union:
        return any(is_assignable(cls, option) for option in shape.options)
    if shape.origin is None:
        return False
    return issubclass(cls, shape.origin)
