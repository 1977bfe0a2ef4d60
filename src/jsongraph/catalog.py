"""Describe how the properties of JSON objects map onto Python classes."""

from __future__ import annotations

import dataclasses
import inspect
import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Final,
    TypeVar,
    get_origin,
    get_type_hints,
    overload,
)

from jsongraph._errors import (
    AbstractTypeError,
    AmbiguousConstructorError,
    IncompatibleConverterError,
    NoConstructorError,
)
from jsongraph.constants import (
    ConstructionPlan,
    DefaultValueHandling,
    NullValueHandling,
)
from jsongraph.shapes import get_shape

if TYPE_CHECKING:
    from jsongraph.converters import JsonConverter

logger = logging.getLogger(__name__)

MEMBER_OPTIONS_KEY: Final = "jsongraph"
"""The dataclass field metadata key that holds a field's `MemberOptions`."""

CONSTRUCTOR_MARKER: Final = "__json_constructor__"
CONVERTER_ATTRIBUTE: Final = "__json_converter__"

F = TypeVar("F", bound=Callable[..., object])
C = TypeVar("C", bound=type)


class NoDefaultType:
    """The type of `NO_DEFAULT`."""

    def __repr__(self) -> str:
        return "NO_DEFAULT"


NO_DEFAULT: Final = NoDefaultType()
"""The default value of a member that has no default."""


@dataclass(frozen=True, slots=True)
class MemberOptions:
    """Options that change how a member is mapped to a property.

    Use `member()` to set these on a dataclass field, or use a `MemberOptions`
    as an `Annotated` annotation argument:

    >>> from typing import Annotated
    >>> class Point:
    ...     x: Annotated[int, MemberOptions(name="X")]
    >>> get_type_contract(Point).members["X"].member_name
    'x'
    """

    name: str | None = None
    """The property name, if it's not the member's name."""
    required: bool | None = None
    """Override whether the member must be present with a non-null value."""
    ignored: bool = False
    """The member is never read or written."""
    null_value_handling: NullValueHandling | None = None
    default_value_handling: DefaultValueHandling | None = None
    converter: JsonConverter | None = None


def member(
    *,
    name: str | None = None,
    required: bool | None = None,
    ignored: bool = False,
    null_value_handling: NullValueHandling | None = None,
    default_value_handling: DefaultValueHandling | None = None,
    converter: JsonConverter | None = None,
) -> dict[str, MemberOptions]:
    """Create dataclass field metadata that holds `MemberOptions`.

    Examples
    --------
    >>> from dataclasses import dataclass, field
    >>> @dataclass
    ... class Node:
    ...     parent: object = field(default=None, metadata=member(name="up"))
    >>> get_type_contract(Node).members["up"].member_name
    'parent'
    """
    return {
        MEMBER_OPTIONS_KEY: MemberOptions(
            name=name,
            required=required,
            ignored=ignored,
            null_value_handling=null_value_handling,
            default_value_handling=default_value_handling,
            converter=converter,
        )
    }


@dataclass(frozen=True, slots=True)
class MemberMapping:
    """The correspondence between one property and one member of a class."""

    property_name: str
    member_name: str
    member_type: object = Any
    writable: bool = True
    readable: bool = True
    ignored: bool = False
    required: bool = False
    default: object = NO_DEFAULT
    null_value_handling: NullValueHandling | None = None
    default_value_handling: DefaultValueHandling | None = None
    converter: JsonConverter | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT


class MemberMappingSet(Mapping[str, MemberMapping]):
    """The `MemberMapping`s of a class, by property name.

    Lookups with `closest_match()` fall back to ignoring case when there's no
    exact match.

    >>> members = MemberMappingSet([MemberMapping("Name", "name")])
    >>> members.closest_match("name").member_name
    'name'
    >>> members.closest_match("other") is None
    True
    """

    __slots__ = ("_by_name", "_by_folded_name")

    _by_name: dict[str, MemberMapping]
    _by_folded_name: dict[str, MemberMapping]

    def __init__(self, mappings: Iterable[MemberMapping] = ()) -> None:
        self._by_name = {}
        self._by_folded_name = {}
        for mapping in mappings:
            if mapping.property_name in self._by_name:
                raise ValueError(
                    f"More than one member maps to the property "
                    f"{mapping.property_name!r}"
                )
            self._by_name[mapping.property_name] = mapping
            self._by_folded_name.setdefault(mapping.property_name.casefold(), mapping)

    def __getitem__(self, key: str) -> MemberMapping:
        return self._by_name[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)

    def __repr__(self) -> str:
        return f"MemberMappingSet({list(self._by_name.values())!r})"

    def closest_match(self, name: str) -> MemberMapping | None:
        """Get the mapping with exactly `name`, or the same name in another case."""
        mapping = self._by_name.get(name)
        if mapping is not None:
            return mapping
        return self._by_folded_name.get(name.casefold())

    @property
    def required(self) -> tuple[MemberMapping, ...]:
        return tuple(
            m for m in self._by_name.values() if m.required and not m.ignored
        )


@overload
def json_constructor(fn: classmethod[Any, Any, Any]) -> classmethod[Any, Any, Any]: ...


@overload
def json_constructor(fn: staticmethod[Any, Any]) -> staticmethod[Any, Any]: ...


@overload
def json_constructor(fn: F) -> F: ...


def json_constructor(fn: Any) -> Any:
    """Mark the function that creates instances of a class from its properties.

    Classmethods and staticmethods can be marked, and so can `__init__` to use
    it even when the class could be created without arguments. Objects of the
    class are materialized by calling the marked function with the values of
    properties matching its parameter names.

    >>> class Point:
    ...     def __init__(self) -> None:
    ...         self.x, self.y = 0, 0
    ...
    ...     @json_constructor
    ...     @classmethod
    ...     def create(cls, x: int, y: int) -> Point:
    ...         point = cls()
    ...         point.x, point.y = x, y
    ...         return point
    >>> get_type_contract(Point).creator_name
    'create'
    """
    function = fn.__func__ if isinstance(fn, (classmethod, staticmethod)) else fn
    setattr(function, CONSTRUCTOR_MARKER, True)
    return fn


def json_converter(converter: JsonConverter) -> Callable[[C], C]:
    """Use a converter to materialize all values of the decorated class."""

    def json_converter__decorator(cls: C) -> C:
        if not converter.can_convert(cls):
            raise IncompatibleConverterError(
                "Converter cannot convert the class it is declared for",
                converter=converter,
                target_type=cls,
            )
        setattr(cls, CONVERTER_ATTRIBUTE, converter)
        return cls

    return json_converter__decorator


@dataclass(frozen=True, slots=True)
class TypeContract:
    """Everything needed to materialize objects of a class."""

    type: type
    members: MemberMappingSet
    is_abstract: bool = False
    immutable: bool = False
    """Instances can't be modified after they are created."""
    creator: Callable[..., object] | None = None
    """The function that creates instances from property values."""
    creator_name: str | None = None
    creator_parameters: tuple[inspect.Parameter, ...] = ()
    default_constructible: bool = False
    constructor_candidates: tuple[str, ...] = ()
    """The names of all marked constructors, when more than one is marked."""
    converter: JsonConverter | None = None

    def construction_plan(self, *, has_existing_value: bool) -> ConstructionPlan:
        """Choose how an object of this class will be materialized.

        Raises
        ------
        AbstractTypeError
            If the class is abstract or a Protocol.
        AmbiguousConstructorError
            If more than one constructor is marked with `json_constructor`.
        NoConstructorError
            If there's no way to create an instance.
        """
        if has_existing_value:
            return ConstructionPlan.PopulateExisting
        if self.is_abstract:
            raise AbstractTypeError(
                "Cannot create an instance of an abstract type",
                target_type=self.type,
            )
        if len(self.constructor_candidates) > 1:
            raise AmbiguousConstructorError(
                "More than one constructor is marked with json_constructor",
                target_type=self.type,
                candidates=self.constructor_candidates,
            )
        if self.default_constructible:
            return ConstructionPlan.DefaultConstructThenFill
        if self.creator is None:
            raise NoConstructorError(
                "Type has no constructor that can be called",
                target_type=self.type,
            )
        return ConstructionPlan.ParameterizedConstruct


def _is_abstract(cls: type) -> bool:
    return inspect.isabstract(cls) or bool(getattr(cls, "_is_protocol", False))


def _is_immutable(cls: type) -> bool:
    if dataclasses.is_dataclass(cls):
        return bool(cls.__dataclass_params__.frozen)  # type: ignore[attr-defined]
    return issubclass(cls, tuple)


def _get_type_hints(obj: object) -> dict[str, Any]:
    try:
        return get_type_hints(obj, include_extras=True)
    except (NameError, TypeError) as e:
        # Annotations that can't be evaluated, such as names that only exist
        # inside a function, are materialized without a type.
        logger.debug("Cannot resolve annotations of %r: %s", obj, e)
        return dict(getattr(obj, "__annotations__", {}))


def _annotated_options(annotation: object) -> MemberOptions | None:
    for arg in get_shape(annotation).metadata:
        if isinstance(arg, MemberOptions):
            return arg
    return None


def _create_mapping(
    name: str,
    annotation: object,
    *,
    options: MemberOptions | None,
    writable: bool,
    readable: bool = True,
    required: bool = False,
    default: object = NO_DEFAULT,
) -> MemberMapping:
    if options is None:
        options = _annotated_options(annotation) or MemberOptions()
    return MemberMapping(
        property_name=options.name or name,
        member_name=name,
        member_type=annotation,
        writable=writable,
        readable=readable,
        ignored=options.ignored,
        required=required if options.required is None else options.required,
        default=default,
        null_value_handling=options.null_value_handling,
        default_value_handling=options.default_value_handling,
        converter=options.converter,
    )


def _dataclass_members(cls: type, hints: Mapping[str, Any]) -> list[MemberMapping]:
    frozen = _is_immutable(cls)
    mappings = []
    for f in dataclasses.fields(cls):
        has_default = f.default is not dataclasses.MISSING
        has_factory = f.default_factory is not dataclasses.MISSING
        mappings.append(
            _create_mapping(
                f.name,
                hints.get(f.name, Any),
                options=f.metadata.get(MEMBER_OPTIONS_KEY),
                writable=not frozen,
                required=f.init and not (has_default or has_factory),
                default=f.default if has_default else NO_DEFAULT,
            )
        )
    return mappings


def _namedtuple_members(cls: type, hints: Mapping[str, Any]) -> list[MemberMapping]:
    field_defaults: Mapping[str, object] = getattr(cls, "_field_defaults", {})
    return [
        _create_mapping(
            name,
            hints.get(name, Any),
            options=None,
            writable=False,
            required=name not in field_defaults,
            default=field_defaults.get(name, NO_DEFAULT),
        )
        for name in cls._fields  # type: ignore[attr-defined]
    ]


def _class_members(cls: type, hints: Mapping[str, Any]) -> list[MemberMapping]:
    mappings: dict[str, MemberMapping] = {}
    for name, annotation in hints.items():
        if name.startswith("_") or get_origin(annotation) is ClassVar:
            continue
        default = cls.__dict__.get(name, NO_DEFAULT)
        mappings[name] = _create_mapping(
            name, annotation, options=None, writable=True, default=default
        )

    for klass in reversed(cls.__mro__):
        for name, attr in vars(klass).items():
            if name.startswith("_") or not isinstance(attr, property):
                continue
            return_type = (
                _get_type_hints(attr.fget).get("return", Any) if attr.fget else Any
            )
            mappings[name] = _create_mapping(
                name,
                return_type,
                options=None,
                writable=attr.fset is not None,
                readable=attr.fget is not None,
            )
    return list(mappings.values())


def _find_marked_constructors(cls: type) -> dict[str, object]:
    marked: dict[str, object] = {}
    seen: set[str] = set()
    for klass in cls.__mro__:
        for name, attr in vars(klass).items():
            if name in seen:
                continue
            seen.add(name)
            function = (
                attr.__func__ if isinstance(attr, (classmethod, staticmethod)) else attr
            )
            if getattr(function, CONSTRUCTOR_MARKER, False):
                marked[name] = attr
    return marked


def _signature(fn: Callable[..., object]) -> inspect.Signature | None:
    try:
        return inspect.signature(fn, eval_str=True)
    except NameError:
        return inspect.signature(fn)
    except (ValueError, TypeError):
        return None


def build_type_contract(cls: type) -> TypeContract:
    """Create the `TypeContract` of a class by inspecting it."""
    hints = _get_type_hints(cls)
    if dataclasses.is_dataclass(cls):
        mappings = _dataclass_members(cls, hints)
    elif issubclass(cls, tuple) and hasattr(cls, "_fields"):
        mappings = _namedtuple_members(cls, hints)
    else:
        mappings = _class_members(cls, hints)

    marked = _find_marked_constructors(cls)
    creator: Callable[..., object] | None
    if len(marked) > 1:
        creator, creator_name = None, None
    elif marked:
        (creator_name,) = marked
        creator = cls if creator_name == "__init__" else getattr(cls, creator_name)
    else:
        creator, creator_name = cls, None

    signature = _signature(creator) if creator is not None else None
    if signature is None:
        creator = None
    parameters = (
        tuple(
            p
            for p in signature.parameters.values()
            if p.kind not in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
        )
        if signature
        else ()
    )

    # Constructor parameters that aren't members can still receive properties
    member_names = {m.member_name for m in mappings}
    property_names = {m.property_name for m in mappings}
    for p in parameters:
        if p.name in member_names or p.name in property_names:
            continue
        annotation = Any if p.annotation is p.empty else p.annotation
        mappings.append(
            _create_mapping(
                p.name,
                annotation,
                options=None,
                writable=False,
                readable=False,
                default=NO_DEFAULT if p.default is p.empty else p.default,
            )
        )

    immutable = _is_immutable(cls)
    default_constructible = (
        creator is cls
        and creator_name is None
        and not immutable
        and all(p.default is not p.empty for p in parameters)
    )

    converter: JsonConverter | None = getattr(cls, CONVERTER_ATTRIBUTE, None)
    if converter is not None and not converter.can_convert(cls):
        if CONVERTER_ATTRIBUTE in vars(cls):
            raise IncompatibleConverterError(
                "Converter cannot convert the class it is declared for",
                converter=converter,
                target_type=cls,
            )
        converter = None

    members = MemberMappingSet(mappings)
    for mapping in members.values():
        if mapping.converter is not None and not mapping.converter.can_convert(
            mapping.member_type
        ):
            raise IncompatibleConverterError(
                f"Converter of member {mapping.member_name!r} cannot convert "
                f"its type",
                converter=mapping.converter,
                target_type=mapping.member_type,
            )

    return TypeContract(
        type=cls,
        members=members,
        is_abstract=_is_abstract(cls),
        immutable=immutable,
        creator=creator,
        creator_name=creator_name,
        creator_parameters=parameters,
        default_constructible=default_constructible,
        constructor_candidates=tuple(sorted(marked)) if len(marked) > 1 else (),
        converter=converter,
    )


class TypeCatalog:
    """A thread-safe cache of the `TypeContract`s of classes.

    Contracts are built when a class is first looked up, or can be registered
    ahead of time to replace inspection of the class.
    """

    __slots__ = ("_contracts", "_lock")

    _contracts: dict[type, TypeContract]
    _lock: threading.Lock

    def __init__(self, contracts: Iterable[TypeContract] = ()) -> None:
        self._contracts = {c.type: c for c in contracts}
        self._lock = threading.Lock()

    def __contains__(self, cls: object) -> bool:
        return cls in self._contracts

    def get_contract(self, cls: type) -> TypeContract:
        contract = self._contracts.get(cls)
        if contract is not None:
            return contract
        with self._lock:
            # Another thread may have built it while we waited for the lock
            contract = self._contracts.get(cls)
            if contract is None:
                contract = build_type_contract(cls)
                self._contracts[cls] = contract
                logger.debug(
                    "Built contract for %s: %d members, creator=%s",
                    cls.__qualname__,
                    len(contract.members),
                    contract.creator_name or ("default" if contract.creator else None),
                )
        return contract

    def register(self, contract: TypeContract) -> None:
        """Use `contract` for its class instead of inspecting the class."""
        with self._lock:
            self._contracts[contract.type] = contract


default_catalog: Final = TypeCatalog()
"""The catalog used when no other catalog is specified."""


def get_type_contract(cls: type) -> TypeContract:
    """Get the contract of a class from the `default_catalog`."""
    return default_catalog.get_contract(cls)
