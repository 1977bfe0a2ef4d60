from __future__ import annotations

from collections.abc import Callable, MutableMapping, MutableSequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from jsongraph.binder import DefaultTypeBinder, TypeBinder
from jsongraph.catalog import TypeCatalog, default_catalog
from jsongraph.constants import (
    DefaultValueHandling,
    MissingMemberHandling,
    NullValueHandling,
    ObjectCreationHandling,
    TypeNameHandling,
)

if TYPE_CHECKING:
    from jsongraph.converters import JsonConverter

ObjectType = Callable[[], MutableMapping[str, object]]
ArrayType = Callable[[], MutableSequence[object]]


@dataclass(frozen=True, slots=True)
class JsonGraphSettings:
    """
    The options that control how token streams are materialized.

    Settings are immutable. Use `dataclasses.replace()` to derive settings
    with different options.

    Parameters
    ----------
    missing_member_handling
        Whether properties with no matching member are skipped or an error.
        Default: skipped.
    null_value_handling
        Whether `null` values are assigned to members. Members can override
        this. Default: assigned.
    default_value_handling
        Whether values equal to a member's default are assigned. Members can
        override this. Default: assigned.
    object_creation_handling
        Whether a member's existing object or collection is filled, or
        replaced with a new value. Default: filled when possible.
    type_name_handling
        Whether `$type` properties select the class that is created.
        Only enable `TypeNameHandling.Auto` for trusted input, or with a
        `binder` that limits the classes that can be created. Default: `$type`
        is ignored.
    converters
        Converters that are used for any type they accept, in order of
        priority. Default: no converters.
    binder
        Resolves `$type` names to classes. Default: `DefaultTypeBinder()`,
        which resolves classes in modules that are already imported.
    catalog
        Provides the `TypeContract` of classes. Default: the shared
        `default_catalog`.
    object_type
        A function returning an empty mapping to represent objects when there's
        no target type. Default: `dict`.
    array_type
        A function returning an empty sequence to represent arrays when there's
        no target type. Default: `list`.
    """

    missing_member_handling: MissingMemberHandling = MissingMemberHandling.Ignore
    null_value_handling: NullValueHandling = NullValueHandling.Include
    default_value_handling: DefaultValueHandling = DefaultValueHandling.Include
    object_creation_handling: ObjectCreationHandling = ObjectCreationHandling.Auto
    type_name_handling: TypeNameHandling = TypeNameHandling.Disabled
    converters: tuple[JsonConverter, ...] = ()
    binder: TypeBinder = field(default_factory=DefaultTypeBinder)
    catalog: TypeCatalog = default_catalog
    object_type: ObjectType = dict
    array_type: ArrayType = list

    def __post_init__(self) -> None:
        # Allow any iterable of converters, but store a tuple
        if not isinstance(self.converters, tuple):
            object.__setattr__(self, "converters", tuple(self.converters))

    def find_converter(self, target_type: object) -> JsonConverter | None:
        """Get the first of the `converters` that can convert `target_type`."""
        for converter in self.converters:
            if converter.can_convert(target_type):
                return converter
        return None


default_settings: JsonGraphSettings = JsonGraphSettings()
"""The settings used when no other settings are specified."""
