"""uritree - URI-addressable resource trees over expensive object graphs."""

from uritree.backings import MemoryStore, RemoteSession
from uritree.config import UriTreeConfig, load_config
from uritree.delegate import ROOT, Delegate
from uritree.errors import (
    BackingError,
    ErrorCode,
    MutationError,
    ParseError,
    RoutingError,
    SchemaError,
    UriTreeError,
)
from uritree.parsing import SchemaParser, parse_uri
from uritree.query import Pagination, Predicate, QueryState, SortSpec
from uritree.result import Err, Ok, Result
from uritree.router import Resolver, SchemeRegistry
from uritree.specifier import (
    CollectionSpecifier,
    CompoundSpecifier,
    ComputedSpecifier,
    ScalarSpecifier,
    Specifier,
    specifier_for,
)
from uritree.types import (
    AddressingMode,
    CollectionSchema,
    CompoundSchema,
    NamespaceSchema,
    NumericSegments,
    ScalarSchema,
    ScalarType,
    SchemaRegistry,
    collection,
    compound,
    computed,
    lazy,
    namespace,
    ref,
    scalar,
)
from uritree.uri import Addressing, build_uri

__all__ = [
    # Main API
    "Resolver",
    "SchemeRegistry",
    "SchemaParser",
    "parse_uri",
    "build_uri",
    "Addressing",
    # Specifiers
    "Specifier",
    "ScalarSpecifier",
    "ComputedSpecifier",
    "CompoundSpecifier",
    "CollectionSpecifier",
    "specifier_for",
    # Schema
    "ScalarType",
    "AddressingMode",
    "NumericSegments",
    "ScalarSchema",
    "CollectionSchema",
    "CompoundSchema",
    "NamespaceSchema",
    "SchemaRegistry",
    "scalar",
    "lazy",
    "computed",
    "collection",
    "compound",
    "namespace",
    "ref",
    # Backings
    "Delegate",
    "ROOT",
    "MemoryStore",
    "RemoteSession",
    # Query
    "Predicate",
    "SortSpec",
    "Pagination",
    "QueryState",
    # Results and errors
    "Ok",
    "Err",
    "Result",
    "ErrorCode",
    "UriTreeError",
    "ParseError",
    "RoutingError",
    "BackingError",
    "MutationError",
    "SchemaError",
    # Config
    "UriTreeConfig",
    "load_config",
]

__version__ = "0.1.0"
