"""Resolve the type names of `$type` properties to Python classes."""

from __future__ import annotations

import importlib
import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol

from packaging.version import InvalidVersion, Version

from jsongraph._errors import TypeResolutionError

logger = logging.getLogger(__name__)


def parse_assembly_version(version: str) -> Version:
    """
    Parse the `Version` of an assembly name.

    Assembly versions can end with a `-suffix`, which PEP 440 doesn't allow.
    The suffix becomes the local part of the Python `Version`.

    >>> parse_assembly_version("2.1.0-nightly")
    <Version('2.1.0+nightly')>
    >>> parse_assembly_version("1.0.0.0")
    <Version('1.0.0.0')>
    >>> parse_assembly_version("latest")  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    packaging.version.InvalidVersion: latest
    """
    try:
        return Version(version)
    except InvalidVersion:
        release, _, suffix = version.partition("-")
        if not suffix:
            raise
    return Version(f"{release}+{suffix}")


class TypeBinder(Protocol):
    """Something that finds the class identified by a type name."""

    def bind_to_type(self, assembly_name: str | None, type_name: str) -> type | None:
        """Get the class named `type_name`, or None if there's no such class.

        Parameters
        ----------
        assembly_name
            The assembly part of the `$type` value (everything after its first
            comma), or None if it has no assembly part.
        type_name
            The name of the type, like `"package.module.Class"`.
        """


@dataclass(frozen=True, slots=True)
class AssemblyName:
    """The assembly part of a qualified type name.

    >>> AssemblyName.parse("MyApp, Version=1.2.0-nightly, Culture=neutral")
    ... # doctest: +NORMALIZE_WHITESPACE
    AssemblyName(name='MyApp', version=<Version('1.2.0+nightly')>,
                 properties=mappingproxy({'Culture': 'neutral'}))
    """

    name: str
    version: Version | None = None
    properties: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def parse(cls, assembly_name: str) -> AssemblyName:
        name, *attributes = (part.strip() for part in assembly_name.split(","))
        version: Version | None = None
        properties: dict[str, str] = {}
        for attribute in attributes:
            key, sep, value = (part.strip() for part in attribute.partition("="))
            if not sep:
                continue
            if key != "Version":
                properties[key] = value
                continue
            try:
                version = parse_assembly_version(value)
            except InvalidVersion as e:
                raise TypeResolutionError(
                    "Assembly version is not valid", type_name=assembly_name
                ) from e
        return cls(name=name, version=version, properties=MappingProxyType(properties))


@dataclass(frozen=True, slots=True)
class QualifiedTypeName:
    """A `$type` value, split into its type name and assembly name.

    >>> QualifiedTypeName.parse("shop.Order, shop")
    QualifiedTypeName(type_name='shop.Order', assembly_name='shop')
    >>> QualifiedTypeName.parse("shop.Order")
    QualifiedTypeName(type_name='shop.Order', assembly_name=None)
    """

    type_name: str
    assembly_name: str | None = None

    @classmethod
    def parse(cls, qualified_name: str) -> QualifiedTypeName:
        type_name, sep, assembly_name = qualified_name.partition(",")
        type_name = type_name.strip()
        if not type_name:
            raise TypeResolutionError("Type name is empty", type_name=qualified_name)
        return cls(type_name=type_name, assembly_name=assembly_name.strip() or None)

    def __str__(self) -> str:
        if self.assembly_name is None:
            return self.type_name
        return f"{self.type_name}, {self.assembly_name}"


def _resolve_qualname(obj: object, qualname: str) -> object | None:
    for attr in qualname.split("."):
        if attr == "<locals>":
            return None
        try:
            obj = getattr(obj, attr)
        except AttributeError:
            return None
    return obj


@dataclass(frozen=True, slots=True)
class DefaultTypeBinder:
    """Bind type names to classes in Python modules.

    Names can be `"module:Qualname"` or `"module.Qualname"`. With the dotted
    form, the longest prefix that names a module is the module.

    An assembly name, if present, must be the name of the module, or a parent
    package of the module. Assembly versions are ignored.

    Modules are only imported if `import_modules` is True, otherwise only
    modules that have already been imported can be used.

    >>> from collections import OrderedDict
    >>> DefaultTypeBinder().bind_to_type(None, "collections.OrderedDict")
    <class 'collections.OrderedDict'>
    >>> DefaultTypeBinder().bind_to_type("os", "collections:OrderedDict") is None
    True
    """

    import_modules: bool = False

    def bind_to_type(self, assembly_name: str | None, type_name: str) -> type | None:
        module_name, sep, qualname = type_name.partition(":")
        if sep:
            candidates = [(module_name, qualname)]
        else:
            parts = type_name.split(".")
            candidates = [
                (".".join(parts[:i]), ".".join(parts[i:]))
                for i in range(len(parts) - 1, 0, -1)
            ]

        if assembly_name is not None:
            assembly = AssemblyName.parse(assembly_name).name
            candidates = [
                (m, q)
                for (m, q) in candidates
                if m == assembly or m.startswith(f"{assembly}.")
            ]

        for module_name, qualname in candidates:
            module = self._get_module(module_name)
            if module is None:
                continue
            obj = _resolve_qualname(module, qualname)
            if isinstance(obj, type):
                logger.debug("Bound %r to %r", type_name, obj)
                return obj
        return None

    def _get_module(self, module_name: str) -> object | None:
        module = sys.modules.get(module_name)
        if module is not None or not self.import_modules:
            return module
        try:
            return importlib.import_module(module_name)
        except ImportError:
            return None


class RegistryTypeBinder:
    """Bind type names to classes that have been explicitly registered.

    Only registered classes can be created, so the `$type` names in the input
    can't cause arbitrary classes to be instantiated.

    Registrations can have a version. A name requested with a version binds to
    the class registered with exactly that version, or else the class
    registered without a version. A name requested without a version binds to
    the class with the highest registered version.

    >>> class OrderV1: pass
    >>> class OrderV2: pass
    >>> binder = RegistryTypeBinder()
    >>> binder.register(OrderV1, "Order", assembly="shop", version="1.0")
    >>> binder.register(OrderV2, "Order", assembly="shop", version="2.0")
    >>> binder.bind_to_type("shop, Version=1.0", "Order").__name__
    'OrderV1'
    >>> binder.bind_to_type("shop", "Order").__name__
    'OrderV2'
    """

    __slots__ = ("_registrations",)

    _registrations: dict[tuple[str | None, str], dict[Version | None, type]]

    def __init__(self) -> None:
        self._registrations = {}

    def register(
        self,
        cls: type,
        name: str | None = None,
        *,
        assembly: str | None = None,
        version: str | Version | None = None,
    ) -> None:
        """Allow `cls` to be bound by name.

        Parameters
        ----------
        cls
            The class to bind to.
        name
            The type name. Default: the class's module and qualified name,
            like `"package.module.Class"`.
        assembly
            The assembly name that must accompany the type name.
        version
            The assembly version of this registration.
        """
        if name is None:
            name = f"{cls.__module__}.{cls.__qualname__}"
        if isinstance(version, str):
            version = parse_assembly_version(version)
        self._registrations.setdefault((assembly, name), {})[version] = cls

    def bind_to_type(self, assembly_name: str | None, type_name: str) -> type | None:
        if assembly_name is None:
            assembly = None
            requested_version = None
        else:
            parsed = AssemblyName.parse(assembly_name)
            assembly, requested_version = parsed.name, parsed.version

        versions = self._registrations.get((assembly, type_name))
        if not versions:
            return None
        if requested_version is not None:
            return versions.get(requested_version, versions.get(None))
        versioned = [v for v in versions if v is not None]
        if versioned:
            return versions[max(versioned)]
        return versions.get(None)


def resolve_type_name(binder: TypeBinder, qualified_name: str) -> type:
    """Bind a `$type` value to a class.

    Raises
    ------
    TypeResolutionError
        If the binder can't find a class for the name.
    """
    name = QualifiedTypeName.parse(qualified_name)
    cls = binder.bind_to_type(name.assembly_name, name.type_name)
    if cls is None:
        raise TypeResolutionError(
            "Type name could not be resolved to a type", type_name=qualified_name
        )
    logger.debug("Resolved $type %r to %s", qualified_name, cls.__qualname__)
    return cls
