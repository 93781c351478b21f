"""Schema descriptors for the uritree library."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable

from uritree.errors import SchemaError


class ScalarType(Enum):
    """Value types a scalar property can declare."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    STRING_ARRAY = "string_array"
    ANY = "any"

    def coerce(self, raw: Any) -> Any:
        """Check a raw backing value against this type and normalize it.

        None passes for every type (absent optional values). Raises
        TypeError on a mismatch.
        """
        if raw is None or self is ScalarType.ANY:
            return raw
        if self is ScalarType.STRING:
            if not isinstance(raw, str):
                raise TypeError(f"expected string, got {type(raw).__name__}")
            return raw
        if self is ScalarType.NUMBER:
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                raise TypeError(f"expected number, got {type(raw).__name__}")
            return raw
        if self is ScalarType.BOOLEAN:
            if not isinstance(raw, bool):
                raise TypeError(f"expected boolean, got {type(raw).__name__}")
            return raw
        if self is ScalarType.DATE:
            if isinstance(raw, (datetime, date)):
                return raw
            if isinstance(raw, str):
                try:
                    return datetime.fromisoformat(raw)
                except ValueError as e:
                    raise TypeError(f"expected date, got unparseable '{raw}'") from e
            raise TypeError(f"expected date, got {type(raw).__name__}")
        # STRING_ARRAY
        if not isinstance(raw, (list, tuple)) or not all(isinstance(v, str) for v in raw):
            raise TypeError(f"expected string array, got {type(raw).__name__}")
        return list(raw)


# Mapping from type name strings to ScalarType enum values
SCALAR_TYPE_NAMES: dict[str, ScalarType] = {st.value: st for st in ScalarType}


class AddressingMode(Enum):
    """Ways an element of a collection can be addressed."""

    INDEX = "index"
    NAME = "name"
    ID = "id"


class NumericSegments(Enum):
    """How a bare integer path component addressing a collection is read."""

    ID = "id"
    NAME = "name"


class MutationKind(Enum):
    UNAVAILABLE = "unavailable"
    DEFAULT = "default"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Mutation:
    """Declared create/delete/move behavior of a collection."""

    kind: MutationKind = MutationKind.UNAVAILABLE
    handler: Callable[..., Any] | None = None

    @classmethod
    def unavailable(cls) -> Mutation:
        return cls(MutationKind.UNAVAILABLE)

    @classmethod
    def default(cls) -> Mutation:
        return cls(MutationKind.DEFAULT)

    @classmethod
    def custom(cls, handler: Callable[..., Any]) -> Mutation:
        return cls(MutationKind.CUSTOM, handler)

    @property
    def available(self) -> bool:
        return self.kind is not MutationKind.UNAVAILABLE


@dataclass(frozen=True)
class SchemaRef:
    """Forward reference to a named compound, patched in by SchemaRegistry.bind()."""

    name: str


@dataclass(eq=False, repr=False)
class SchemaNode:
    """Base class for all schema nodes."""

    alias: str | None = None

    @property
    def is_scalar(self) -> bool:
        """Return whether this node is a scalar."""
        return False

    @property
    def is_collection(self) -> bool:
        """Return whether this node is a collection."""
        return False

    @property
    def is_compound(self) -> bool:
        """Return whether this node is a compound."""
        return False

    @property
    def is_namespace(self) -> bool:
        """Return whether this node is a virtual grouping over its parent's position."""
        return False

    def backing_name(self, name: str) -> str:
        """Return the name used in the backing store for a property called `name`."""
        return self.alias or name

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


@dataclass(eq=False, repr=False)
class ScalarSchema(SchemaNode):
    """A leaf value."""

    type: ScalarType = ScalarType.ANY
    lazy: bool = False
    settable: bool = False
    computed: Callable[[Any], Any] | None = None

    @property
    def is_scalar(self) -> bool:
        return True

    @property
    def is_computed(self) -> bool:
        return self.computed is not None

    def __repr__(self) -> str:
        flags = [f for f, on in (("lazy", self.lazy), ("settable", self.settable),
                                 ("computed", self.is_computed)) if on]
        return f"ScalarSchema({self.type.value}{', ' if flags else ''}{', '.join(flags)})"


@dataclass(eq=False, repr=False)
class CollectionSchema(SchemaNode):
    """An addressable sequence of elements sharing one item schema.

    `item` may be a node, a SchemaRef resolved by SchemaRegistry.bind(), or a
    zero-argument callable returning the node (resolved on first use).
    """

    item: SchemaNode | SchemaRef | Callable[[], SchemaNode] | None = None
    addressing: frozenset[AddressingMode] = frozenset({AddressingMode.INDEX})
    create: Mutation = field(default_factory=Mutation.unavailable)
    delete: Mutation = field(default_factory=Mutation.unavailable)
    move: Mutation = field(default_factory=Mutation.unavailable)
    numeric_segments: NumericSegments | None = None
    enumerable: bool = True

    @property
    def is_collection(self) -> bool:
        return True

    @property
    def item_schema(self) -> SchemaNode:
        """Return the element schema, resolving a thunk on first use."""
        item = self.item
        if isinstance(item, SchemaNode):
            return item
        if isinstance(item, SchemaRef):
            raise SchemaError(f"Unbound reference to '{item.name}'; call SchemaRegistry.bind()")
        if callable(item):
            resolved = item()
            if not isinstance(resolved, SchemaNode):
                raise SchemaError(f"Collection item thunk returned {type(resolved).__name__}")
            self.item = resolved
            return resolved
        raise SchemaError("Collection has no item schema")

    @property
    def numeric_policy(self) -> NumericSegments:
        """Return how a bare integer segment addressing this collection is read.

        Without an explicit choice, integers are ids when the collection
        supports id addressing and names otherwise.
        """
        if self.numeric_segments is not None:
            return self.numeric_segments
        if AddressingMode.ID in self.addressing:
            return NumericSegments.ID
        return NumericSegments.NAME

    def supports(self, mode: AddressingMode) -> bool:
        return mode in self.addressing

    def sorted_modes(self) -> list[str]:
        return [m.value for m in AddressingMode if m in self.addressing]

    def __repr__(self) -> str:
        item = self.item
        if isinstance(item, CompoundSchema):
            item_name = item.name
        elif isinstance(item, SchemaRef):
            item_name = f"ref:{item.name}"
        else:
            item_name = type(item).__name__
        return f"CollectionSchema({item_name}[{', '.join(self.sorted_modes())}])"


@dataclass(eq=False, repr=False)
class CompoundSchema(SchemaNode):
    """A record with an ordered map of named properties."""

    name: str = ""
    properties: dict[str, SchemaNode | SchemaRef] = field(default_factory=dict)

    @property
    def is_compound(self) -> bool:
        return True

    def get_property(self, name: str) -> SchemaNode | None:
        """Get a property node by name."""
        node = self.properties.get(name)
        if isinstance(node, SchemaRef):
            raise SchemaError(f"Unbound reference to '{node.name}'; call SchemaRegistry.bind()")
        return node

    def property_names(self) -> list[str]:
        """Return property names in declaration order."""
        return list(self.properties)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.property_names()})"


@dataclass(eq=False, repr=False)
class NamespaceSchema(CompoundSchema):
    """Virtual grouping: adds a URI segment but shares the parent's backing position."""

    @property
    def is_namespace(self) -> bool:
        return True


def _type_of(type_name: str | ScalarType) -> ScalarType:
    if isinstance(type_name, ScalarType):
        return type_name
    try:
        return SCALAR_TYPE_NAMES[type_name]
    except KeyError:
        raise SchemaError(f"Unknown scalar type '{type_name}'") from None


def _modes_of(modes: Iterable[str | AddressingMode]) -> frozenset[AddressingMode]:
    result = set()
    for mode in modes:
        if isinstance(mode, AddressingMode):
            result.add(mode)
            continue
        try:
            result.add(AddressingMode(mode))
        except ValueError:
            raise SchemaError(f"Unknown addressing mode '{mode}'") from None
    return frozenset(result)


def scalar(
    type_name: str | ScalarType = ScalarType.ANY,
    *,
    settable: bool = False,
    alias: str | None = None,
) -> ScalarSchema:
    """Declare an eager scalar, inlined into its parent's resolved value."""
    return ScalarSchema(type=_type_of(type_name), settable=settable, alias=alias)


def lazy(
    type_name: str | ScalarType = ScalarType.ANY,
    *,
    settable: bool = False,
    alias: str | None = None,
) -> ScalarSchema:
    """Declare a lazy scalar, left as a Specifier when its parent resolves."""
    return ScalarSchema(type=_type_of(type_name), lazy=True, settable=settable, alias=alias)


def computed(fn: Callable[[Any], Any], type_name: str | ScalarType = ScalarType.ANY) -> ScalarSchema:
    """Declare a scalar derived from the owning element's raw backing value."""
    if not callable(fn):
        raise SchemaError("computed() requires a callable")
    return ScalarSchema(type=_type_of(type_name), computed=fn)


def _mutation(value: Mutation | bool | Callable[..., Any] | None) -> Mutation:
    if isinstance(value, Mutation):
        return value
    if value is None or value is False:
        return Mutation.unavailable()
    if value is True:
        return Mutation.default()
    if callable(value):
        return Mutation.custom(value)
    raise SchemaError(f"Invalid mutation behavior: {value!r}")


def collection(
    item: SchemaNode | SchemaRef | Callable[[], SchemaNode] | str,
    addressing: Iterable[str | AddressingMode] = ("index",),
    *,
    create: Mutation | bool | Callable[..., Any] | None = None,
    delete: Mutation | bool | Callable[..., Any] | None = None,
    move: Mutation | bool | Callable[..., Any] | None = None,
    numeric_segments: str | NumericSegments | None = None,
    enumerable: bool = True,
    alias: str | None = None,
) -> CollectionSchema:
    """Declare a collection.

    Args:
        item: Element schema, a SchemaRef, a type name (shorthand for a
            SchemaRef) or a thunk for self-referential schemas.
        addressing: Supported addressing modes ("index", "name", "id").
        create: True for the backing store's default, a callable for custom
            behavior, None/False when unavailable. Same for delete and move.
        numeric_segments: "id" or "name", overriding how bare integer path
            components addressing this collection are read.
        enumerable: Whether the collection can be listed without addressing.
        alias: Backing-store name when it differs from the URI name.
    """
    if isinstance(item, str):
        item = SchemaRef(item)
    policy = None
    if numeric_segments is not None:
        policy = (numeric_segments if isinstance(numeric_segments, NumericSegments)
                  else NumericSegments(numeric_segments))
    node = CollectionSchema(
        item=item,
        addressing=_modes_of(addressing),
        create=_mutation(create),
        delete=_mutation(delete),
        move=_mutation(move),
        numeric_segments=policy,
        enumerable=enumerable,
        alias=alias,
    )
    _validate_collection(node)
    return node


def compound(name: str, properties: dict[str, SchemaNode | SchemaRef] | None = None) -> CompoundSchema:
    """Declare a compound node with properties in declaration order."""
    return CompoundSchema(name=name, properties=dict(properties or {}))


def namespace(name: str, properties: dict[str, SchemaNode | SchemaRef] | None = None) -> NamespaceSchema:
    """Declare a virtual grouping of properties over the parent's position."""
    return NamespaceSchema(name=name, properties=dict(properties or {}))


def ref(name: str) -> SchemaRef:
    """Forward-reference a compound registered under `name`."""
    return SchemaRef(name)


def _validate_collection(node: CollectionSchema) -> None:
    if not node.addressing and not node.enumerable:
        raise SchemaError("Collection declares no addressing modes and is not enumerable")
    for label in ("create", "delete", "move"):
        mutation: Mutation = getattr(node, label)
        if mutation.kind is MutationKind.CUSTOM and not callable(mutation.handler):
            raise SchemaError(f"Custom {label} behavior requires a callable handler")


class SchemaRegistry:
    """Registry of named compound nodes with forward-declaration support."""

    def __init__(self) -> None:
        self._nodes: dict[str, CompoundSchema] = {}
        self.root_name: str | None = None

    def root(self) -> CompoundSchema:
        """Return the bound root node declared for this registry."""
        if self.root_name is None:
            raise SchemaError("No root schema declared")
        return self.bind(self.root_name)

    def register(self, node: CompoundSchema) -> CompoundSchema:
        """Register a compound node under its name."""
        if not node.name:
            raise SchemaError("Cannot register an unnamed compound")
        existing = self._nodes.get(node.name)
        if existing is not None and existing is not node:
            raise SchemaError(f"Schema '{node.name}' is already defined")
        self._nodes[node.name] = node
        return node

    def get(self, name: str) -> CompoundSchema | None:
        """Get a node by name."""
        return self._nodes.get(name)

    def get_or_raise(self, name: str) -> CompoundSchema:
        """Get a node by name, raising if not found."""
        node = self._nodes.get(name)
        if node is None:
            raise KeyError(f"Schema '{name}' not found")
        return node

    def register_stub(self, name: str) -> CompoundSchema:
        """Pre-register an empty compound for forward/self-references.

        Idempotent: returns existing stub if name is already an empty compound.
        Raises SchemaError if name is registered with a populated node.
        """
        existing = self._nodes.get(name)
        if existing is not None:
            if not existing.properties:
                return existing
            raise SchemaError(f"Schema '{name}' is already defined")
        stub = CompoundSchema(name=name)
        self._nodes[name] = stub
        return stub

    def is_stub(self, name: str) -> bool:
        """Check if a node is registered as an unpopulated stub."""
        node = self._nodes.get(name)
        return node is not None and not node.properties

    def list_nodes(self) -> list[str]:
        """Return registered node names in registration order."""
        return list(self._nodes)

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def bind(self, root: str | CompoundSchema) -> CompoundSchema:
        """Patch every SchemaRef reachable from `root` and validate the graph.

        Raises SchemaError when a reference names an unregistered node or
        the graph contains an invalid collection.
        """
        root_node = self.get_or_raise(root) if isinstance(root, str) else root
        seen: set[int] = set()
        pending: list[SchemaNode] = [root_node]
        while pending:
            node = pending.pop()
            if id(node) in seen:
                continue
            seen.add(id(node))
            if isinstance(node, CompoundSchema):
                for prop_name, child in list(node.properties.items()):
                    if isinstance(child, SchemaRef):
                        child = self._deref(child)
                        node.properties[prop_name] = child
                    pending.append(child)
            elif isinstance(node, CollectionSchema):
                _validate_collection(node)
                if isinstance(node.item, SchemaRef):
                    node.item = self._deref(node.item)
                if isinstance(node.item, SchemaNode):
                    pending.append(node.item)
        return root_node

    def _deref(self, reference: SchemaRef) -> CompoundSchema:
        node = self._nodes.get(reference.name)
        if node is None:
            raise SchemaError(f"Cannot resolve schema reference '{reference.name}'")
        return node
