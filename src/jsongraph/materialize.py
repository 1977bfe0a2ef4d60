"""Materialize token streams as Python values."""

from __future__ import annotations

import logging
from collections.abc import (
    Callable,
    Iterator,
    Mapping,
    MutableMapping,
    MutableSequence,
    MutableSet,
)
from contextlib import ExitStack
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, cast, overload

from jsongraph._errors import (
    ConversionError,
    MissingMemberError,
    MissingRequiredMemberError,
    TypeMismatchError,
    UnexpectedTokenError,
)
from jsongraph._references import (
    ForwardReference,
    NonReferenceableTargetError,
    ReferenceTable,
)
from jsongraph.binder import resolve_type_name
from jsongraph.catalog import (
    CONVERTER_ATTRIBUTE,
    MemberMapping,
    TypeContract,
)
from jsongraph.coercion import coerce_scalar
from jsongraph.constants import (
    ID_PROPERTY,
    NULL_TOKENS,
    REF_PROPERTY,
    SCALAR_TOKENS,
    TYPE_PROPERTY,
    VALUES_PROPERTY,
    ConstructionPlan,
    DefaultValueHandling,
    MissingMemberHandling,
    NullValueHandling,
    ObjectCreationHandling,
    TokenConstraint,
    TokenKind,
    TypeNameHandling,
)
from jsongraph.settings import JsonGraphSettings, default_settings
from jsongraph.shapes import (
    ANY_SHAPE,
    ShapeKind,
    TypeShape,
    get_shape,
    is_assignable,
)
from jsongraph.tokens import (
    JsonSource,
    JsonTextTokenStream,
    TokenStream,
    capture_subtree,
    read_required,
)
from jsongraph.values import DBNull

if TYPE_CHECKING:
    from typing_extensions import Never

    from jsongraph.converters import JsonConverter

T = TypeVar("T")

logger = logging.getLogger(__name__)

_UNCHANGED_TYPES = (str, bytes, tuple, frozenset, MappingProxyType)


class MaterializeContext(Protocol):
    """The state of one top-level materialize call.

    Converters receive the context so that they can read the stream, and
    materialize nested values in the usual way.
    """

    if TYPE_CHECKING:

        @property
        def stream(self) -> TokenStream:
            """The `TokenStream` this context reads from."""

        @property
        def settings(self) -> JsonGraphSettings:
            """The options in effect for this call."""

        @property
        def references(self) -> ReferenceTable:
            """The objects registered with `$id` so far."""

    else:
        stream: TokenStream
        """The `TokenStream` this context reads from."""
        settings: JsonGraphSettings
        """The options in effect for this call."""
        references: ReferenceTable
        """The objects registered with `$id` so far."""

    def materialize(
        self,
        target_type: object = None,
        *,
        existing_value: object = None,
        converter: JsonConverter | None = None,
    ) -> object:
        """
        Return a value by reading the value the stream is positioned on.

        The stream must be positioned on the first token of the value (or on
        comments preceding it), and it's left on the value's last token.

        Parameters
        ----------
        target_type
            The type of value to create. If None, a generic tree of
            dicts, lists and scalars is created.
        existing_value
            An instance to fill with the value's members or items instead of
            creating a new instance.
        converter
            A converter declared for the member holding this value. It's
            used if it accepts `target_type`.

        Raises
        ------
        JsonGraphError
            If the value can't be materialized as `target_type`.
        """


class TokenHandlerFn(Protocol):
    """
    The type of a function that reads values on behalf of a `ValueReader`.

    Typically this is an unbound method of `ValueReader`.
    """

    def __call__(
        self,
        value_reader: ValueReader,
        kind: TokenKind,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
        /,
    ) -> object: ...


@dataclass(init=False, slots=True)
class TokenHandlerRegistry:
    """
    A registry of `TokenKind`s and the functions that can read values they start.

    `ValueReader` uses this to dispatch materialize calls to an appropriate
    function.
    """

    index: Mapping[TokenKind, TokenHandlerFn]
    _index: dict[TokenKind, TokenHandlerFn]

    def __init__(self, entries: TokenHandlerRegistry | None = None) -> None:
        self._index = {}
        self.index = MappingProxyType(self._index)
        if entries:
            self.register_all(entries)

    def register(
        self, kind: TokenKind | TokenConstraint[TokenKind], handler: TokenHandlerFn
    ) -> None:
        """Associate a function with a token, so that `match()` will return it."""
        if isinstance(kind, TokenConstraint):
            for k in sorted(kind.allowed_tokens):
                self._index[k] = handler
        else:
            self._index[kind] = handler

    def register_all(self, registry: TokenHandlerRegistry) -> None:
        """
        Copy the registrations of another registry into this one.

        Existing registrations that also occur in `registry` are overwritten.
        """
        self._index.update(registry.index)

    def match(self, kind: TokenKind) -> TokenHandlerFn | None:
        """Get the `TokenHandlerFn` function registered for a token, or `None`."""
        return self._index.get(kind)


@dataclass(init=False, slots=True)
class DefaultMaterializeContext(MaterializeContext):
    """
    The default implementation of [`MaterializeContext`].

    [`MaterializeContext`]: `jsongraph.materialize.MaterializeContext`
    """

    stream: TokenStream
    settings: JsonGraphSettings
    references: ReferenceTable
    value_reader: ValueReader

    def __init__(
        self,
        *,
        stream: TokenStream,
        settings: JsonGraphSettings | None = None,
        references: ReferenceTable | None = None,
        value_reader: ValueReader | None = None,
    ) -> None:
        self.stream = stream
        self.settings = default_settings if settings is None else settings
        self.references = ReferenceTable() if references is None else references
        self.value_reader = (
            default_value_reader if value_reader is None else value_reader
        )

    def materialize(
        self,
        target_type: object = None,
        *,
        existing_value: object = None,
        converter: JsonConverter | None = None,
    ) -> object:
        kind = self._move_to_content()

        if converter is not None and converter.can_convert(target_type):
            return converter.read_json(self, target_type, existing_value)

        target = get_shape(target_type)
        if target.kind is not ShapeKind.Any:
            converter = self._find_class_converter(target)
            if converter is None:
                converter = self.settings.find_converter(target_type)
            if converter is not None:
                return converter.read_json(self, target_type, existing_value)

        if target.kind is ShapeKind.Raw:
            return capture_subtree(self.stream)

        return self.value_reader.read_value(
            kind, ctx=self, target=target, existing_value=existing_value
        )

    def _move_to_content(self) -> TokenKind:
        stream = self.stream
        if stream.kind is TokenKind.NoToken:
            read_required(stream)
        while stream.kind is TokenKind.Comment:
            read_required(stream)
        return stream.kind

    def _find_class_converter(self, target: TypeShape) -> JsonConverter | None:
        if target.cls is None:
            return None
        converter: JsonConverter | None = getattr(
            target.cls, CONVERTER_ATTRIBUTE, None
        )
        if converter is not None and converter.can_convert(target.cls):
            return converter
        return None


def _iter_properties(stream: TokenStream) -> Iterator[str]:
    """Yield the name of each property until the end of the current object.

    The stream must be positioned on the first property, or the EndObject.
    Each time a name is yielded, the stream is on the PropertyName. The caller
    must consume the property's value before requesting the next name.
    """
    while True:
        kind = stream.kind
        if kind is TokenKind.EndObject:
            return
        if kind is TokenKind.PropertyName:
            yield cast(str, stream.value)
        elif kind is not TokenKind.Comment:
            raise UnexpectedTokenError(
                "Expected a property name or the end of the object",
                token=kind,
                depth=stream.depth,
            )
        read_required(stream)


def _move_to_property_value(stream: TokenStream) -> TokenKind:
    """Move from a PropertyName to the first token of its value."""
    kind = read_required(stream)
    while kind is TokenKind.Comment:
        kind = read_required(stream)
    return kind


def _is_reusable(value: object, shape: TypeShape, contract_immutable: bool) -> bool:
    if value is None or shape.fixed or isinstance(value, _UNCHANGED_TYPES):
        return False
    if shape.kind is ShapeKind.Object:
        return not contract_immutable
    if shape.kind is ShapeKind.Mapping:
        return isinstance(value, MutableMapping)
    if shape.kind is ShapeKind.Sequence:
        return isinstance(value, MutableSequence)
    if shape.kind is ShapeKind.Set:
        return isinstance(value, MutableSet)
    return False


def _equals_default(mapping: MemberMapping, value: object) -> bool:
    if not mapping.has_default:
        return value is None
    default = mapping.default
    return type(value) is type(default) and bool(value == default)


def _should_assign(
    settings: JsonGraphSettings, mapping: MemberMapping, value: object
) -> bool:
    """Check if a member's new value is written, or is suppressed."""
    if not mapping.writable:
        return False
    null_handling = mapping.null_value_handling or settings.null_value_handling
    if value is None and null_handling is NullValueHandling.Ignore:
        return False
    default_handling = (
        mapping.default_value_handling or settings.default_value_handling
    )
    if default_handling is DefaultValueHandling.Ignore and _equals_default(
        mapping, value
    ):
        return False
    return True


def _report_missing_member(
    ctx: DefaultMaterializeContext, name: str, contract: TypeContract
) -> None:
    if ctx.settings.missing_member_handling is MissingMemberHandling.Error:
        raise MissingMemberError(
            "Property has no member to receive it",
            member_name=name,
            target_type=contract.type,
        )


def _report_missing_required(
    unseen_required: Mapping[str, MemberMapping], contract: TypeContract
) -> None:
    mapping = next(iter(unseen_required.values()), None)
    if mapping is not None:
        raise MissingRequiredMemberError(
            "Required member was missing or null",
            member_name=mapping.property_name,
            target_type=contract.type,
        )


def _member_note(mapping: MemberMapping, contract: TypeContract) -> str:
    return (
        f"while reading member {mapping.member_name!r} of "
        f"{contract.type.__qualname__}"
    )


@dataclass(init=False, slots=True)
class ValueReader:
    """
    Creates Python values from the tokens of a value, by dispatching on the
    kind of its first token.

    Customise the way values are read by passing a `TokenHandlerRegistry`
    with functions that override the default handlers.

    Parameters
    ----------
    handlers
        Override the token handler functions. Default: no overrides.
    """

    handlers: TokenHandlerRegistry

    def __init__(self, handlers: TokenHandlerRegistry | None = None) -> None:
        self.handlers = TokenHandlerRegistry()
        self.register_handlers(self.handlers)
        if handlers:
            self.handlers.register_all(handlers)

    def register_handlers(self, handlers: TokenHandlerRegistry) -> None:
        r = handlers.register

        r(SCALAR_TOKENS, ValueReader.read_scalar)
        r(NULL_TOKENS, ValueReader.read_null)
        r(TokenKind.StartConstructor, ValueReader.read_constructor)
        r(TokenKind.EndConstructor, ValueReader.read_constructor)
        r(TokenKind.StartObject, ValueReader.read_object)
        r(TokenKind.StartArray, ValueReader.read_array)

    def read_value(
        self,
        kind: TokenKind,
        /,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
    ) -> object:
        handler = self.handlers.match(kind)
        if handler is None:
            self._report_unexpected_token(ctx, "Token cannot start a value")
        return handler(self, kind, ctx, target, existing_value)

    def _report_unexpected_token(
        self, ctx: DefaultMaterializeContext, message: str
    ) -> Never:
        raise UnexpectedTokenError(
            message, token=ctx.stream.kind, depth=ctx.stream.depth
        )

    def read_scalar(
        self,
        kind: TokenKind,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
    ) -> object:
        return coerce_scalar(ctx.stream.value, target.annotation)

    def read_null(
        self,
        kind: TokenKind,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
    ) -> object:
        if target.kind is ShapeKind.DBNull:
            return DBNull
        if target.kind is ShapeKind.Union and any(
            get_shape(option).kind is ShapeKind.DBNull for option in target.options
        ):
            return DBNull
        return None

    def read_constructor(
        self,
        kind: TokenKind,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
    ) -> object:
        name = ctx.stream.value
        # The constructor's arguments are not materialized
        ctx.stream.skip()
        return coerce_scalar(name, target.annotation)

    def read_object(
        self,
        kind: TokenKind,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
    ) -> object:
        stream = ctx.stream
        requested = target
        reference_id: str | None = None

        while read_required(stream) is not TokenKind.EndObject:
            if stream.kind is TokenKind.Comment:
                continue
            if stream.kind is not TokenKind.PropertyName:
                self._report_unexpected_token(ctx, "Expected a property name")
            name = stream.value

            if name == REF_PROPERTY:
                return self._read_reference(ctx)
            elif name == TYPE_PROPERTY:
                type_name = self._read_metadata_string(ctx)
                if ctx.settings.type_name_handling is TypeNameHandling.Disabled:
                    continue
                target = self._resolve_type(ctx, type_name, requested)
                if target.cls is None or not isinstance(existing_value, target.cls):
                    existing_value = None
            elif name == ID_PROPERTY:
                reference_id = self._read_metadata_string(ctx)
            elif name == VALUES_PROPERTY:
                if _move_to_property_value(stream) is not TokenKind.StartArray:
                    self._report_unexpected_token(ctx, "$values must be an array")
                value = self._read_array(ctx, target, existing_value, reference_id)
                while read_required(stream) is TokenKind.Comment:
                    pass
                if stream.kind is not TokenKind.EndObject:
                    self._report_unexpected_token(
                        ctx, "$values must be the last property of its object"
                    )
                return value
            else:
                break

        if target.kind is ShapeKind.Union:
            target = self._select_union_option(
                ctx, target, (ShapeKind.Object, ShapeKind.Mapping, ShapeKind.Any)
            )
        if target.kind is ShapeKind.Any:
            return self._read_generic_object(ctx, reference_id)
        if target.kind is ShapeKind.Mapping:
            return self._read_dictionary(ctx, target, existing_value, reference_id)
        if target.kind is ShapeKind.Object:
            return self._read_typed_object(ctx, target, existing_value, reference_id)
        self._report_unexpected_token(
            ctx, f"An object cannot be materialized as {target.annotation!r}"
        )

    def _read_metadata_string(self, ctx: DefaultMaterializeContext) -> str:
        kind = _move_to_property_value(ctx.stream)
        if kind not in SCALAR_TOKENS:
            self._report_unexpected_token(ctx, "Expected a string value")
        return cast(str, coerce_scalar(ctx.stream.value, str))

    def _read_reference(self, ctx: DefaultMaterializeContext) -> object:
        stream = ctx.stream
        reference_id = self._read_metadata_string(ctx)
        while read_required(stream) is TokenKind.Comment:
            pass
        if stream.kind is not TokenKind.EndObject:
            self._report_unexpected_token(
                ctx, "$ref must be the only property of its object"
            )
        return ctx.references.resolve_reference(reference_id)

    def _resolve_type(
        self, ctx: DefaultMaterializeContext, type_name: str, requested: TypeShape
    ) -> TypeShape:
        resolved = resolve_type_name(ctx.settings.binder, type_name)
        if not is_assignable(resolved, requested.annotation):
            raise TypeMismatchError(
                "$type is not assignable to the requested type",
                type_name=type_name,
                resolved_type=resolved,
                requested_type=requested.annotation,
            )
        # Keep the requested annotation's type arguments when $type names the
        # same class.
        if requested.origin is resolved:
            return requested
        return get_shape(resolved)

    def _select_union_option(
        self,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        kinds: tuple[ShapeKind, ...],
    ) -> TypeShape:
        for option in target.options:
            shape = get_shape(option)
            if shape.kind in kinds:
                return shape
        self._report_unexpected_token(
            ctx, f"No member of {target.annotation!r} can hold this value"
        )

    def _read_generic_object(
        self, ctx: DefaultMaterializeContext, reference_id: str | None
    ) -> object:
        obj = ctx.settings.object_type()
        if reference_id is not None:
            ctx.references.add_reference(reference_id, obj)
        for name in _iter_properties(ctx.stream):
            read_required(ctx.stream)
            obj[name] = ctx.materialize()
        return obj

    def _read_dictionary(
        self,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
        reference_id: str | None,
    ) -> object:
        assert target.cls is not None
        mapping: MutableMapping[object, object]
        if isinstance(existing_value, MutableMapping):
            mapping = existing_value
        elif target.fixed:
            mapping = {}
        else:
            mapping = target.cls()

        if reference_id is not None:
            if target.fixed:
                raise NonReferenceableTargetError(
                    "Immutable mappings cannot be registered with $id",
                    reference_id=reference_id,
                    target_type=target.annotation,
                )
            ctx.references.add_reference(reference_id, mapping)

        for name in _iter_properties(ctx.stream):
            key = coerce_scalar(name, target.key_type)
            read_required(ctx.stream)
            try:
                mapping[key] = ctx.materialize(target.value_type)
            except Exception as e:
                e.add_note(f"while reading the value of key {name!r}")
                raise

        if target.fixed:
            return target.cls(mapping)
        return mapping

    def _read_typed_object(
        self,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
        reference_id: str | None,
    ) -> object:
        assert target.cls is not None
        catalog = ctx.settings.catalog
        if existing_value is not None:
            contract = catalog.get_contract(type(existing_value))
        else:
            contract = catalog.get_contract(target.cls)
        plan = contract.construction_plan(has_existing_value=existing_value is not None)
        logger.debug("Materializing %s: %s", contract.type.__qualname__, plan.name)

        if plan is ConstructionPlan.ParameterizedConstruct:
            return self._construct_object(ctx, contract, reference_id)

        if plan is ConstructionPlan.PopulateExisting:
            obj = existing_value
        else:
            assert contract.creator is not None
            obj = contract.creator()
        if reference_id is not None:
            ctx.references.add_reference(reference_id, obj)
        self._fill_members(ctx, contract, obj)
        return obj

    def _fill_members(
        self, ctx: DefaultMaterializeContext, contract: TypeContract, obj: object
    ) -> None:
        stream = ctx.stream
        members = contract.members
        unseen_required = {m.property_name: m for m in members.required}

        for name in _iter_properties(stream):
            mapping = members.closest_match(name)
            if mapping is None or mapping.ignored:
                if mapping is None:
                    _report_missing_member(ctx, name, contract)
                stream.skip()
                continue
            if _move_to_property_value(stream) not in NULL_TOKENS:
                unseen_required.pop(mapping.property_name, None)
            try:
                self._set_member(ctx, obj, mapping)
            except Exception as e:
                e.add_note(_member_note(mapping, contract))
                raise

        _report_missing_required(unseen_required, contract)

    def _set_member(
        self, ctx: DefaultMaterializeContext, obj: object, mapping: MemberMapping
    ) -> None:
        stream = ctx.stream
        settings = ctx.settings
        current: object = None
        if (
            mapping.readable
            and settings.object_creation_handling is not ObjectCreationHandling.Replace
            and stream.kind in (TokenKind.StartObject, TokenKind.StartArray)
        ):
            candidate = getattr(obj, mapping.member_name, None)
            shape = get_shape(mapping.member_type)
            immutable = (
                shape.kind is ShapeKind.Object
                and candidate is not None
                and settings.catalog.get_contract(type(candidate)).immutable
            )
            if _is_reusable(candidate, shape, immutable):
                current = candidate

        value = ctx.materialize(
            mapping.member_type, existing_value=current, converter=mapping.converter
        )
        if current is not None and value is current:
            return
        if _should_assign(settings, mapping, value):
            setattr(obj, mapping.member_name, value)

    def _construct_object(
        self,
        ctx: DefaultMaterializeContext,
        contract: TypeContract,
        reference_id: str | None,
    ) -> object:
        stream = ctx.stream
        members = contract.members
        unseen_required = {m.property_name: m for m in members.required}
        values: dict[str, tuple[MemberMapping, object]] = {}

        with ExitStack() as stack:
            forward_reference: ForwardReference[object] | None = None
            if reference_id is not None:
                forward_reference = stack.enter_context(
                    ctx.references.reserve_reference(reference_id)
                )

            for name in _iter_properties(stream):
                mapping = members.closest_match(name)
                if mapping is None or mapping.ignored:
                    if mapping is None:
                        _report_missing_member(ctx, name, contract)
                    stream.skip()
                    continue
                if _move_to_property_value(stream) not in NULL_TOKENS:
                    unseen_required.pop(mapping.property_name, None)
                try:
                    value = ctx.materialize(
                        mapping.member_type, converter=mapping.converter
                    )
                except Exception as e:
                    e.add_note(_member_note(mapping, contract))
                    raise
                # Repeated properties: the last value wins
                values[mapping.property_name] = (mapping, value)

            _report_missing_required(unseen_required, contract)

            args, kwargs, used = self._bind_parameters(contract, values)
            assert contract.creator is not None
            obj = contract.creator(*args, **kwargs)
            if forward_reference is not None:
                forward_reference.set_value(obj)

        for property_name, (mapping, value) in values.items():
            if property_name in used:
                continue
            if _should_assign(ctx.settings, mapping, value):
                setattr(obj, mapping.member_name, value)
        return obj

    def _bind_parameters(
        self,
        contract: TypeContract,
        values: Mapping[str, tuple[MemberMapping, object]],
    ) -> tuple[list[object], dict[str, object], set[str]]:
        """Match property values to the parameters of the contract's creator.

        Parameters match properties by member name or property name, first
        exactly, then ignoring case.
        """
        by_name: dict[str, str] = {}
        for property_name, (mapping, _) in values.items():
            by_name.setdefault(mapping.member_name, property_name)
            by_name.setdefault(property_name, property_name)
        by_folded_name: dict[str, str] = {}
        for name, property_name in by_name.items():
            by_folded_name.setdefault(name.casefold(), property_name)

        args: list[object] = []
        kwargs: dict[str, object] = {}
        used: set[str] = set()
        for parameter in contract.creator_parameters:
            property_name = by_name.get(parameter.name) or by_folded_name.get(
                parameter.name.casefold()
            )
            if property_name is not None and property_name not in used:
                used.add(property_name)
                value = values[property_name][1]
            elif parameter.default is not parameter.empty:
                if parameter.kind is not parameter.POSITIONAL_ONLY:
                    continue
                value = parameter.default
            else:
                value = None

            if parameter.kind is parameter.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[parameter.name] = value
        return args, kwargs, used

    def read_array(
        self,
        kind: TokenKind,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
    ) -> object:
        return self._read_array(ctx, target, existing_value, reference_id=None)

    def _read_array(
        self,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        existing_value: object,
        reference_id: str | None,
    ) -> object:
        if target.kind is ShapeKind.Union:
            target = self._select_union_option(
                ctx, target, (ShapeKind.Sequence, ShapeKind.Set, ShapeKind.Any)
            )
        if target.kind is ShapeKind.Any:
            return self._read_generic_array(ctx, reference_id)
        if target.kind not in (ShapeKind.Sequence, ShapeKind.Set):
            self._report_unexpected_token(
                ctx, f"An array cannot be materialized as {target.annotation!r}"
            )
        assert target.cls is not None

        if target.fixed:
            if reference_id is not None:
                raise NonReferenceableTargetError(
                    "Immutable collections cannot be registered with $id",
                    reference_id=reference_id,
                    target_type=target.annotation,
                )
            items: list[object] = []
            self._read_items(ctx, target, items.append)
            return self._create_fixed_collection(target, items)

        collection: MutableSequence[object] | MutableSet[object]
        if _is_reusable(existing_value, target, contract_immutable=False):
            collection = cast(
                "MutableSequence[object] | MutableSet[object]", existing_value
            )
        else:
            collection = target.cls()
        if reference_id is not None:
            ctx.references.add_reference(reference_id, collection)

        if isinstance(collection, MutableSet):
            self._read_items(ctx, target, collection.add)
        else:
            self._read_items(ctx, target, collection.append)
        return collection

    def _read_items(
        self,
        ctx: DefaultMaterializeContext,
        target: TypeShape,
        add: Callable[[object], object],
    ) -> None:
        stream = ctx.stream
        index = 0
        while read_required(stream) is not TokenKind.EndArray:
            if stream.kind is TokenKind.Comment:
                continue
            try:
                add(ctx.materialize(target.item_type_at(index)))
            except Exception as e:
                e.add_note(f"while reading item {index}")
                raise
            index += 1

    def _create_fixed_collection(
        self, target: TypeShape, items: list[object]
    ) -> object:
        assert target.cls is not None
        if target.item_types is not None and len(items) != len(target.item_types):
            raise ConversionError(
                f"Array has {len(items)} items but the tuple has "
                f"{len(target.item_types)}",
                value=items,
                target_type=target.annotation,
            )
        return target.cls(items)

    def _read_generic_array(
        self, ctx: DefaultMaterializeContext, reference_id: str | None
    ) -> object:
        array = ctx.settings.array_type()
        if reference_id is not None:
            ctx.references.add_reference(reference_id, array)
        self._read_items(ctx, ANY_SHAPE, array.append)
        return array


default_value_reader = ValueReader()
"""The `ValueReader` used when no other is specified."""


def _move_to_first_content(stream: TokenStream) -> bool:
    if stream.kind is TokenKind.NoToken and not stream.advance():
        return False
    while stream.kind is TokenKind.Comment:
        if not stream.advance():
            return False
    return True


@dataclass(init=False)
class Materializer:
    """
    A re-usable configuration for materializing token streams.

    The `deserialize()`, `populate()` and `loads()` methods behave like the
    module-level functions of the same names without needing to pass the
    `settings` for every call.

    Parameters
    ----------
    settings
        The options that control how values are materialized.
    value_reader
        The `ValueReader` that creates values for each kind of token.
    """

    settings: JsonGraphSettings
    value_reader: ValueReader

    def __init__(
        self,
        settings: JsonGraphSettings | None = None,
        value_reader: ValueReader | None = None,
    ) -> None:
        self.settings = default_settings if settings is None else settings
        self.value_reader = (
            default_value_reader if value_reader is None else value_reader
        )

    def _context(
        self, stream: TokenStream, references: ReferenceTable | None
    ) -> DefaultMaterializeContext:
        return DefaultMaterializeContext(
            stream=stream,
            settings=self.settings,
            references=references,
            value_reader=self.value_reader,
        )

    @overload
    def deserialize(
        self,
        stream: TokenStream,
        target_type: type[T],
        *,
        references: ReferenceTable | None = None,
    ) -> T | None: ...

    @overload
    def deserialize(
        self,
        stream: TokenStream,
        target_type: object = None,
        *,
        references: ReferenceTable | None = None,
    ) -> object: ...

    def deserialize(
        self,
        stream: TokenStream,
        target_type: object = None,
        *,
        references: ReferenceTable | None = None,
    ) -> object:
        """
        Materialize the first value in a token stream.

        Parameters
        ----------
        stream
            The stream to read. It's left on the last token of the value.
        target_type
            The type of value to create. If None, a generic tree of
            `settings.object_type` and `settings.array_type` is created.
        references
            A table of `$id` registrations to share with other calls. Default:
            a new table for this call.

        Returns
        -------
        :
            The value, or None if the stream has no tokens.
        """
        if not _move_to_first_content(stream):
            return None
        return self._context(stream, references).materialize(target_type)

    def populate(
        self,
        stream: TokenStream,
        target: object,
        *,
        references: ReferenceTable | None = None,
    ) -> None:
        """
        Fill an existing object or collection from the value in a token stream.

        The value must be an object or an array.

        Raises
        ------
        UnexpectedTokenError
            If the value is not an object or array.
        ConversionError
            If `target` can't be modified.
        TypeMismatchError
            If `$type` names a class that `target` is not an instance of.
        """
        if not _move_to_first_content(stream):
            return
        if stream.kind not in (TokenKind.StartObject, TokenKind.StartArray):
            raise UnexpectedTokenError(
                "Only objects and arrays can populate an existing value",
                token=stream.kind,
                depth=stream.depth,
            )
        shape = get_shape(type(target))
        immutable = (
            shape.kind is ShapeKind.Object
            and self.settings.catalog.get_contract(type(target)).immutable
        )
        if not _is_reusable(target, shape, immutable):
            raise ConversionError(
                "Value cannot be populated because it can't be modified",
                value=target,
                target_type=type(target),
            )
        result = self._context(stream, references).materialize(
            type(target), existing_value=target
        )
        if result is target:
            return
        resolved = type(result)
        if resolved is type(target):
            raise ConversionError(
                "Value was read as another object instead of populating the target",
                value=result,
                target_type=resolved,
            )
        raise TypeMismatchError(
            "$type names a class that the populated value is not an instance of",
            type_name=f"{resolved.__module__}.{resolved.__qualname__}",
            resolved_type=resolved,
            requested_type=type(target),
        )

    @overload
    def loads(self, data: JsonSource, target_type: type[T]) -> T | None: ...

    @overload
    def loads(self, data: JsonSource, target_type: object = None) -> object: ...

    def loads(self, data: JsonSource, target_type: object = None) -> object:
        """Materialize the value in JSON text."""
        return self.deserialize(JsonTextTokenStream(data), target_type)


@overload
def deserialize(
    stream: TokenStream,
    target_type: type[T],
    *,
    settings: JsonGraphSettings | None = None,
    references: ReferenceTable | None = None,
) -> T | None: ...


@overload
def deserialize(
    stream: TokenStream,
    target_type: object = None,
    *,
    settings: JsonGraphSettings | None = None,
    references: ReferenceTable | None = None,
) -> object: ...


def deserialize(
    stream: TokenStream,
    target_type: object = None,
    *,
    settings: JsonGraphSettings | None = None,
    references: ReferenceTable | None = None,
) -> object:
    """
    Materialize the first value in a token stream as `target_type`.

    Examples
    --------
    >>> from dataclasses import dataclass
    >>> from jsongraph.tokens import TreeTokenStream
    >>> @dataclass
    ... class Point:
    ...     x: int
    ...     y: int = 0
    >>> deserialize(TreeTokenStream({"x": "1"}), Point)
    Point(x=1, y=0)

    Without a `target_type`, a generic tree is created:

    >>> deserialize(TreeTokenStream({"x": [1, 2]}))
    {'x': [1, 2]}
    """
    return Materializer(settings).deserialize(
        stream, target_type, references=references
    )


def populate(
    stream: TokenStream,
    target: object,
    *,
    settings: JsonGraphSettings | None = None,
    references: ReferenceTable | None = None,
) -> None:
    """
    Fill an existing object or collection from the value in a token stream.

    Examples
    --------
    >>> from jsongraph.tokens import TreeTokenStream
    >>> names = ["a"]
    >>> populate(TreeTokenStream(["b", "c"]), names)
    >>> names
    ['a', 'b', 'c']
    """
    Materializer(settings).populate(stream, target, references=references)


@overload
def loads(
    data: JsonSource,
    target_type: type[T],
    *,
    settings: JsonGraphSettings | None = None,
) -> T | None: ...


@overload
def loads(
    data: JsonSource,
    target_type: object = None,
    *,
    settings: JsonGraphSettings | None = None,
    **options: Any,
) -> object: ...


def loads(
    data: JsonSource,
    target_type: object = None,
    *,
    settings: JsonGraphSettings | None = None,
    **options: Any,
) -> object:
    """Materialize a value from JSON text.

    The materialization options can be set in two ways:

    1. If `settings` is set, they are used as-is and no other options can
        also be set.
    2. If `settings` is not set, the keyword options are used to create a
        [JsonGraphSettings].

    [JsonGraphSettings]: `jsongraph.settings.JsonGraphSettings`

    Parameters
    ----------
    data
        The JSON text, as `str` or UTF-8 `bytes`, or a binary file-like object.
    target_type
        The type of value to create. If None, a generic tree of `dict`, `list`
        and scalar values is created.
    settings
        The options that control how values are materialized.
    options
        Keyword arguments of `JsonGraphSettings`.

    Returns
    -------
    :
        The value, or None if `data` is empty.

    Raises
    ------
    JsonGraphError
        If the JSON text can't be materialized as `target_type`.

    Examples
    --------
    >>> loads('{"$id": "1", "self": {"$ref": "1"}}')
    {'self': {...}}

    >>> from jsongraph.constants import MissingMemberHandling
    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class Person:
    ...     name: str
    >>> loads('{"name": "Ann", "age": 3}', Person)
    Person(name='Ann')
    >>> loads('{"name": "Ann", "age": 3}', Person,
    ...       missing_member_handling=MissingMemberHandling.Error)
    ... # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    jsongraph._errors.MissingMemberError: Property has no member to receive it
    """
    if settings is not None:
        if options:
            raise TypeError(
                "'settings' argument cannot be passed to loads() with "
                "other arguments for JsonGraphSettings"
            )
    else:
        settings = JsonGraphSettings(**options) if options else default_settings
    return Materializer(settings).loads(data, target_type)
