"""The main public API of jsongraph."""

from __future__ import annotations

from jsongraph._errors import AbstractTypeError as AbstractTypeError
from jsongraph._errors import AmbiguousConstructorError as AmbiguousConstructorError
from jsongraph._errors import ConstructionError as ConstructionError
from jsongraph._errors import ConversionError as ConversionError
from jsongraph._errors import IncompatibleConverterError as IncompatibleConverterError
from jsongraph._errors import JsonGraphError as JsonGraphError
from jsongraph._errors import MissingMemberError as MissingMemberError
from jsongraph._errors import MissingRequiredMemberError as MissingRequiredMemberError
from jsongraph._errors import NoConstructorError as NoConstructorError
from jsongraph._errors import StructuralError as StructuralError
from jsongraph._errors import TypeMismatchError as TypeMismatchError
from jsongraph._errors import TypeResolutionError as TypeResolutionError
from jsongraph._errors import UnexpectedEndError as UnexpectedEndError
from jsongraph._errors import UnexpectedTokenError as UnexpectedTokenError
from jsongraph._references import (
    DuplicateReferenceError as DuplicateReferenceError,
)
from jsongraph._references import (
    IllegalCyclicReferenceError as IllegalCyclicReferenceError,
)
from jsongraph._references import (
    NonReferenceableTargetError as NonReferenceableTargetError,
)
from jsongraph._references import ObjectReferenceError as ObjectReferenceError
from jsongraph._references import ReferenceTable as ReferenceTable
from jsongraph._references import (
    UnresolvedReferenceError as UnresolvedReferenceError,
)
from jsongraph.binder import DefaultTypeBinder as DefaultTypeBinder
from jsongraph.binder import RegistryTypeBinder as RegistryTypeBinder
from jsongraph.binder import TypeBinder as TypeBinder
from jsongraph.catalog import MemberOptions as MemberOptions
from jsongraph.catalog import TypeCatalog as TypeCatalog
from jsongraph.catalog import json_constructor as json_constructor
from jsongraph.catalog import json_converter as json_converter
from jsongraph.catalog import member as member
from jsongraph.constants import DefaultValueHandling as DefaultValueHandling
from jsongraph.constants import MissingMemberHandling as MissingMemberHandling
from jsongraph.constants import NullValueHandling as NullValueHandling
from jsongraph.constants import ObjectCreationHandling as ObjectCreationHandling
from jsongraph.constants import TokenKind as TokenKind
from jsongraph.constants import TypeNameHandling as TypeNameHandling
from jsongraph.converters import IsoDateTimeConverter as IsoDateTimeConverter
from jsongraph.converters import JsonConverter as JsonConverter
from jsongraph.converters import KeyValuePair as KeyValuePair
from jsongraph.converters import KeyValuePairConverter as KeyValuePairConverter
from jsongraph.materialize import MaterializeContext as MaterializeContext
from jsongraph.materialize import Materializer as Materializer
from jsongraph.materialize import TokenHandlerRegistry as TokenHandlerRegistry
from jsongraph.materialize import ValueReader as ValueReader
from jsongraph.materialize import deserialize as deserialize
from jsongraph.materialize import loads as loads
from jsongraph.materialize import populate as populate
from jsongraph.settings import JsonGraphSettings as JsonGraphSettings
from jsongraph.tokens import JsonTextTokenStream as JsonTextTokenStream
from jsongraph.tokens import Token as Token
from jsongraph.tokens import TokenStream as TokenStream
from jsongraph.tokens import TreeTokenStream as TreeTokenStream
from jsongraph.values import DBNull as DBNull
from jsongraph.values import DBNullType as DBNullType
from jsongraph.values import RawJson as RawJson
