from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, Generator, Generic, overload

from jsongraph._errors import JsonGraphError

if TYPE_CHECKING:
    from typing_extensions import TypeVar

    T = TypeVar("T", default=object)
else:
    from typing import TypeVar

    T = TypeVar("T")


@dataclass(init=False)
class ObjectReferenceError(JsonGraphError, KeyError):
    reference_id: str

    def __init__(self, message: str, *args: object, reference_id: str) -> None:
        super(ObjectReferenceError, self).__init__(message, *args)
        self.reference_id = reference_id


@dataclass(init=False)
class UnresolvedReferenceError(ObjectReferenceError):
    """A `$ref` names an id that no earlier `$id` registered."""


@dataclass(init=False)
class DuplicateReferenceError(ObjectReferenceError):
    """An `$id` was registered more than once in the same reference table."""


@dataclass(init=False)
class IllegalCyclicReferenceError(ObjectReferenceError):
    """
    A `$ref` refers to an object that is still being constructed.

    Objects created by a parameterized constructor don't exist until all their
    properties have been read, so their own properties can't refer back to them.
    """


@dataclass(init=False)
class NonReferenceableTargetError(ObjectReferenceError):
    """An `$id` was given to a value that can't be registered before it's filled."""

    target_type: object

    def __init__(
        self, message: str, *args: object, reference_id: str, target_type: object
    ) -> None:
        super(NonReferenceableTargetError, self).__init__(
            message, *args, reference_id=reference_id
        )
        self.target_type = target_type


class ReferenceTable:
    """Instances registered by `$id`, so that `$ref` can refer to them.

    Shared references and cycles in the object graph are represented by
    registering an object under an id when it's first created, and referring
    to it by that id later on. A table is normally scoped to one top-level
    materialize call.

    >>> table = ReferenceTable()
    >>> shared = []
    >>> table.add_reference("1", shared)
    >>> table.resolve_reference("1") is shared
    True
    >>> "2" in table
    False
    """

    __slots__ = ("_object_by_id", "_id_by_pyid")

    _object_by_id: dict[str, object]
    _id_by_pyid: dict[int, str]

    def __init__(self) -> None:
        self._object_by_id = dict()
        self._id_by_pyid = dict()

    def __contains__(self, reference_id: object) -> bool:
        return reference_id in self._object_by_id

    def __len__(self) -> int:
        return len(self._object_by_id)

    def add_reference(self, reference_id: str, obj: object) -> None:
        if reference_id in self._object_by_id:
            raise DuplicateReferenceError(
                "Reference id has already been registered", reference_id=reference_id
            )
        self._object_by_id[reference_id] = obj
        self._id_by_pyid[id(obj)] = reference_id

    def resolve_reference(self, reference_id: str) -> object:
        try:
            value = self._object_by_id[reference_id]
        except KeyError:
            raise UnresolvedReferenceError(
                "Reference id has not been registered", reference_id=reference_id
            ) from None
        if isinstance(value, ForwardReference):
            try:
                return value.get_value()
            except ForwardReferenceError as e:
                raise IllegalCyclicReferenceError(
                    "Reference id refers to an object that is still being "
                    "constructed",
                    reference_id=reference_id,
                ) from e
        return value

    def get_reference(self, obj: object) -> str:
        """Get the id an object was registered with."""
        try:
            return self._id_by_pyid[id(obj)]
        except KeyError:
            raise UnresolvedReferenceError(
                "Object has not been registered", reference_id=repr(obj)
            ) from None

    @contextmanager
    def reserve_reference(
        self, reference_id: str
    ) -> Generator[ForwardReference[object], None, None]:
        """Register an id before the object it refers to exists.

        This is a context manager. The id can't be resolved until the
        `ForwardReference` it yields receives a value. If the block exits
        without setting a value, the reservation is withdrawn.
        """
        if reference_id in self._object_by_id:
            raise DuplicateReferenceError(
                "Reference id has already been registered", reference_id=reference_id
            )
        forward_reference: ForwardReference[object] = ForwardReference()
        self._object_by_id[reference_id] = forward_reference

        try:
            yield forward_reference
        finally:
            if forward_reference.has_value:
                obj = forward_reference.get_value()
                self._object_by_id[reference_id] = obj
                self._id_by_pyid[id(obj)] = reference_id
            else:
                del self._object_by_id[reference_id]


_sentinel: Final[Any] = object()


class ForwardReferenceError(ReferenceError, Generic[T]):
    forward_reference: ForwardReference[T]

    def __init__(self, message: str, forward_reference: ForwardReference[T]) -> None:
        super().__init__(message)
        self.forward_reference = forward_reference


@dataclass(init=False, slots=True)
class ForwardReference(Generic[T]):
    __value: T

    @overload
    def __init__(self) -> None: ...

    @overload
    def __init__(self, *, value: T) -> None: ...

    def __init__(self, *, value: T = _sentinel) -> None:
        self.__value = value

    @property
    def has_value(self) -> bool:
        return self.__value is not _sentinel

    def get_value(self) -> T:
        value = self.__value
        if value is _sentinel:
            raise ForwardReferenceError("ForwardReference has no value set", self)
        return value

    def set_value(self, value: T) -> None:
        if self.__value is not _sentinel:
            raise ForwardReferenceError("ForwardReference already has a value", self)
        self.__value = value

    def __repr__(self) -> str:
        if self.__value is _sentinel:
            return "ForwardReference()"
        try:
            return f"ForwardReference(value={self.__value!r})"
        except RecursionError:
            return "ForwardReference(value=...)"
