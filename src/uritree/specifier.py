"""Specifier runtime: a schema node bound to a delegate.

Navigation builds child specifiers from a dispatch table computed once per
compound node; nothing touches the backing store until resolve(), exists()
or a mutation is called.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping
from weakref import WeakKeyDictionary

from uritree.config import ResolverConfig
from uritree.delegate import Delegate
from uritree.errors import BackingError, MutationError, RoutingError, UriTreeError
from uritree.logging import get_logger
from uritree.query import (
    OPERATORS,
    Pagination,
    Predicate,
    SortSpec,
    apply_query,
    as_predicate,
)
from uritree.result import Err, Ok, Result
from uritree.types import (
    AddressingMode,
    CollectionSchema,
    CompoundSchema,
    MutationKind,
    ScalarSchema,
    SchemaNode,
)
from uritree.uri import Addressing, Index, build_uri

logger = get_logger(__name__)

DEFAULT_CONFIG = ResolverConfig()


@dataclass(frozen=True)
class DispatchEntry:
    """How to reach one property: its schema and the delegate navigation."""

    name: str
    schema: SchemaNode
    navigate: Callable[[Delegate], Delegate]


_DISPATCH: WeakKeyDictionary[CompoundSchema, dict[str, DispatchEntry]] = WeakKeyDictionary()


def _navigator(name: str, node: SchemaNode) -> Callable[[Delegate], Delegate]:
    if node.is_namespace or (isinstance(node, ScalarSchema) and node.is_computed):
        return lambda delegate: delegate.namespace(name)
    backing = node.backing_name(name)
    return lambda delegate: delegate.prop(name, backing)


def dispatch_table(schema: CompoundSchema) -> dict[str, DispatchEntry]:
    """Return the property dispatch table for a compound, building it on first use."""
    table = _DISPATCH.get(schema)
    if table is None:
        table = {}
        for name in schema.property_names():
            node = schema.get_property(name)
            if node is None:
                continue
            table[name] = DispatchEntry(name, node, _navigator(name, node))
        _DISPATCH[schema] = table
    return table


def specifier_for(
    schema: SchemaNode,
    delegate: Delegate,
    container: CollectionSchema | None = None,
    config: ResolverConfig | None = None,
    parent: Specifier | None = None,
) -> Specifier:
    """Bind a schema node to a delegate."""
    config = config or DEFAULT_CONFIG
    if isinstance(schema, ScalarSchema):
        if schema.is_computed:
            return ComputedSpecifier(schema, delegate, container, config, parent)
        return ScalarSpecifier(schema, delegate, container, config, parent)
    if isinstance(schema, CollectionSchema):
        return CollectionSpecifier(schema, delegate, container, config, parent)
    if isinstance(schema, CompoundSchema):
        return CompoundSpecifier(schema, delegate, container, config, parent)
    raise TypeError(f"Cannot bind {type(schema).__name__}")


# Instance attributes set in Specifier.__init__; never routed to properties
_SPECIFIER_FIELDS = frozenset({"schema", "delegate", "container", "config"})


def _run_handler(handler: Callable[..., Any], uri: str, *args: Any) -> Result[str]:
    """Call a custom mutation handler and normalize what it returned."""
    try:
        value = handler(*args)
    except UriTreeError as e:
        return Err(e)
    if isinstance(value, (Ok, Err)):
        return value
    if isinstance(value, str):
        return Ok(value)
    return Err(BackingError.round_trip(uri, f"mutation handler returned {type(value).__name__}"))


class Specifier:
    """Base class: an addressable, resolvable handle."""

    def __init__(
        self,
        schema: SchemaNode,
        delegate: Delegate,
        container: CollectionSchema | None = None,
        config: ResolverConfig | None = None,
        parent: Specifier | None = None,
    ) -> None:
        self.schema = schema
        self.delegate = delegate
        self.container = container
        self.config = config or DEFAULT_CONFIG
        self._parent = parent

    def uri(self) -> str:
        return self.delegate.uri()

    def parent(self) -> Specifier | None:
        """The specifier this one was navigated from; None at a root."""
        return self._parent

    def resolve(self) -> Result[Any]:
        raise NotImplementedError

    def exists(self) -> bool:
        """Confirm reachability with one round trip. Never raises."""
        try:
            return self.delegate.get().ok
        except Exception as e:  # noqa: BLE001
            logger.debug("exists_failed", uri=self.uri(), error=str(e))
            return False

    # -- element mutations ------------------------------------------------

    def delete(self) -> Result[str]:
        """Remove this element from its collection."""
        if self.container is None:
            return Err(MutationError.no_parent_collection(
                self.uri(), "Cannot delete: item not in a collection"))
        behavior = self.container.delete
        if behavior.kind is MutationKind.UNAVAILABLE:
            return Err(MutationError.unsupported(self.uri(), "delete"))
        if behavior.kind is MutationKind.CUSTOM:
            return _run_handler(behavior.handler, self.uri(), self.delegate)
        return self.delegate.delete()

    def move_to(self, destination: Specifier) -> Result[str]:
        """Move this element into another collection, returning its new URI."""
        if self.container is None:
            return Err(MutationError.no_parent_collection(
                self.uri(), "Cannot remove item from source: no parent array"))
        behavior = self.container.move
        if behavior.kind is MutationKind.UNAVAILABLE:
            return Err(MutationError.unsupported(self.uri(), "move"))
        if not isinstance(destination, CollectionSpecifier):
            return Err(MutationError.not_a_collection(
                destination.uri(), "Destination is not a collection"))
        if behavior.kind is MutationKind.CUSTOM:
            return _run_handler(behavior.handler, self.uri(), self.delegate, destination.delegate)
        return self.delegate.move_to(destination.delegate, destination.addressing())

    # -- identity ---------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Specifier):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.schema is other.schema
            and self.uri() == other.uri()
        )

    def __hash__(self) -> int:
        return hash((type(self), id(self.schema), self.uri()))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.uri()}>"


class ScalarSpecifier(Specifier):
    """A leaf value."""

    schema: ScalarSchema

    def resolve(self) -> Result[Any]:
        result = self.delegate.get()
        if not result.ok:
            return result
        return self._coerce(result.value)

    def _coerce(self, raw: Any) -> Result[Any]:
        try:
            return Ok(self.schema.type.coerce(raw))
        except TypeError:
            return Err(BackingError.type_mismatch(self.uri(), self.schema.type.value, raw))

    def set(self, value: Any) -> Result[None]:
        if not self.schema.settable:
            return Err(MutationError.unsupported(self.uri(), "set"))
        checked = self._coerce(value)
        if not checked.ok:
            return checked
        return self.delegate.set(value)


class ComputedSpecifier(ScalarSpecifier):
    """A scalar derived from the owning element's raw value."""

    def resolve(self) -> Result[Any]:
        result = self.delegate.get()
        if not result.ok:
            return result
        return self.derive(result.value)

    def derive(self, raw: Any) -> Result[Any]:
        """Apply the computing function to an already fetched owner value."""
        try:
            value = self.schema.computed(raw)  # type: ignore[misc]
        except (LookupError, TypeError, ValueError, AttributeError) as e:
            return Err(BackingError.round_trip(self.uri(), f"computed value failed: {e}"))
        return self._coerce(value)

    def set(self, value: Any) -> Result[None]:
        return Err(MutationError.unsupported(self.uri(), "set of a computed property"))


class CompoundSpecifier(Specifier):
    """A record. Properties are reachable as attributes, by child() or by indexing."""

    schema: CompoundSchema

    def properties(self) -> list[str]:
        return list(dispatch_table(self.schema))

    def child(self, name: str) -> Specifier:
        entry = dispatch_table(self.schema).get(name)
        if entry is None:
            raise AttributeError(
                f"'{self.schema.name}' has no property '{name}'. "
                f"Available: {', '.join(self.properties())}"
            )
        return specifier_for(entry.schema, entry.navigate(self.delegate), None, self.config, self)

    def __getitem__(self, name: str) -> Specifier:
        try:
            return self.child(name)
        except AttributeError as e:
            raise KeyError(name) from e

    def __getattr__(self, name: str) -> Specifier:
        if name.startswith("_") or name in _SPECIFIER_FIELDS:
            raise AttributeError(name)
        return self.child(name)

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self.properties()))

    def resolve(self) -> Result[dict[str, Any]]:
        """Resolve eager children; lazy scalars and collections stay specifiers.

        Computed scalars are derived from the record fetched here. An eager
        scalar missing from a dict record (an element created without it)
        resolves to None.
        """
        found = self.delegate.get()
        if not found.ok:
            return found
        raw = found.value
        value: dict[str, Any] = {}
        for name, entry in dispatch_table(self.schema).items():
            child = specifier_for(entry.schema, entry.navigate(self.delegate), None, self.config, self)
            node = entry.schema
            if isinstance(node, CollectionSchema) or (isinstance(node, ScalarSchema) and node.lazy):
                value[name] = child
                continue
            if isinstance(child, ComputedSpecifier):
                resolved = child.derive(raw)
            elif (isinstance(node, ScalarSchema) and isinstance(raw, Mapping)
                  and node.backing_name(name) not in raw):
                value[name] = None
                continue
            else:
                resolved = child.resolve()
            if not resolved.ok:
                return resolved
            value[name] = resolved.value
        return Ok(value)


class CollectionSpecifier(Specifier):
    """An addressable sequence.

    by_index/by_name/by_id are only present when the collection declares the
    matching addressing mode; otherwise attribute access raises
    AttributeError and hasattr() is False.
    """

    schema: CollectionSchema

    _ADDRESSERS = {
        "by_index": AddressingMode.INDEX,
        "by_name": AddressingMode.NAME,
        "by_id": AddressingMode.ID,
    }

    def __getattr__(self, name: str) -> Any:
        mode = self._ADDRESSERS.get(name)
        if mode is None:
            raise AttributeError(name)
        if not self.schema.supports(mode):
            raise AttributeError(
                f"Collection does not support {mode.value} addressing "
                f"(supported: {', '.join(self.schema.sorted_modes()) or 'none'})"
            )
        return getattr(self, f"_{name}")

    def _element(self, delegate: Delegate) -> Specifier:
        return specifier_for(self.schema.item_schema, delegate, self.schema, self.config, self)

    def _by_index(self, index: int) -> Specifier:
        return self._element(self.delegate.by_index(index))

    def _by_name(self, name: str) -> Specifier:
        return self._element(self.delegate.by_name(name))

    def _by_id(self, id_value: str | int) -> Specifier:
        return self._element(self.delegate.by_id(id_value))

    def addressing(self) -> Addressing:
        return Addressing(self.schema.addressing, self.schema.numeric_policy)

    # -- query ------------------------------------------------------------

    def _rebind(self, delegate: Delegate) -> CollectionSpecifier:
        return CollectionSpecifier(self.schema, delegate, self.container, self.config, self._parent)

    def _field_type(self, field_name: str) -> ScalarSchema | None:
        item = self.schema.item_schema
        if isinstance(item, CompoundSchema):
            node = item.get_property(field_name)
            return node if isinstance(node, ScalarSchema) else None
        return None

    def whose(self, filters: Mapping[str, Any] | None = None, **kwargs: Any) -> CollectionSpecifier:
        """Add filters. Values are Predicates, (operator, value) pairs or plain values.

        Raises ValueError when an operator does not apply to the field's type.
        """
        merged: dict[str, Predicate] = {}
        for field_name, raw in {**(filters or {}), **kwargs}.items():
            if isinstance(raw, tuple) and len(raw) == 2 and raw[0] in OPERATORS:
                predicate = Predicate.of(raw[0], raw[1])
            else:
                predicate = as_predicate(raw)
            node = self._field_type(field_name)
            if node is not None and not predicate.operator.accepts(node.type):
                raise ValueError(
                    f"Operator '{predicate.operator.name}' does not apply to "
                    f"{node.type.value} field '{field_name}'"
                )
            merged[field_name] = predicate
        return self._rebind(self.delegate.with_filter(merged))

    def sort_by(self, field_name: str, direction: str = "asc") -> CollectionSpecifier:
        return self._rebind(self.delegate.with_sort(SortSpec(field_name, direction)))

    def paginate(self, limit: int | None = None, offset: int = 0) -> CollectionSpecifier:
        return self._rebind(self.delegate.with_pagination(Pagination(limit, offset)))

    def expand(self, *fields: str) -> CollectionSpecifier:
        return self._rebind(self.delegate.with_expand(fields))

    # -- resolution -------------------------------------------------------

    def _element_uri(self, row: Any, position: int) -> str:
        id_value = name_value = None
        if isinstance(row, Mapping):
            id_value, name_value = row.get("id"), row.get("name")
            if isinstance(id_value, Specifier):
                id_value = None
            if isinstance(name_value, Specifier):
                name_value = None
        segment = self.addressing().segment_for(id_value, name_value, position) or Index(position)
        return build_uri(self.delegate.path() + (segment,))

    @staticmethod
    def _value_of(row: Any, field_name: str) -> Any:
        if not isinstance(row, Mapping):
            return None
        value = row.get(field_name)
        if isinstance(value, Specifier):
            resolved = value.resolve()
            return resolved.value if resolved.ok else None
        return value

    def resolve(self) -> Result[list[Any]]:
        """Resolve elements, then apply filter, sort, pagination and expand in that order."""
        if not self.schema.enumerable:
            return Err(RoutingError.not_enumerable(self.uri(), self.schema.sorted_modes()))
        listed = self.delegate.elements()
        if not listed.ok:
            return listed

        rows: list[Any] = []
        uris: list[str] = []
        for position, element in enumerate(listed.value):
            resolved = self._element(element).resolve()
            if not resolved.ok:
                return resolved
            last = element.path()[-1] if element.path() else None
            index = last.value if isinstance(last, Index) else position
            rows.append(resolved.value)
            uris.append(self._element_uri(resolved.value, index))

        state = self.delegate.query_state()
        tagged = apply_query(
            list(zip(rows, uris)), state, lambda pair, f: self._value_of(pair[0], f)
        )

        if self.config.collection_results == "uris":
            return Ok([uri for _, uri in tagged])

        out: list[Any] = []
        for row, uri in tagged:
            if isinstance(row, dict):
                expanded = self._expand(row, state.expand)
                if not expanded.ok:
                    return expanded
                row[self.config.uri_key] = uri
            out.append(row)
        return Ok(out)

    def _expand(self, row: dict[str, Any], fields: tuple[str, ...]) -> Result[None]:
        for field_name in fields:
            value = row.get(field_name)
            if not isinstance(value, Specifier):
                continue
            resolved = value.resolve()
            if resolved.ok:
                row[field_name] = resolved.value
            elif self.config.strict_expand:
                return resolved
            else:
                logger.warning("expand_failed", uri=value.uri(), error=resolved.message)
        return Ok(None)

    # -- mutation ---------------------------------------------------------

    def create(self, properties: Mapping[str, Any] | None = None, **kwargs: Any) -> Result[str]:
        """Create an element, returning a URI that routes back to it."""
        props = {**(properties or {}), **kwargs}
        behavior = self.schema.create
        if behavior.kind is MutationKind.UNAVAILABLE:
            return Err(MutationError.unsupported(self.uri(), "create"))
        if behavior.kind is MutationKind.CUSTOM:
            return _run_handler(behavior.handler, self.uri(), self.delegate, props)
        return self.delegate.create(props, self.addressing())
