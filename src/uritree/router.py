"""Scheme registry and URI resolver.

The resolver walks lexed segments against the registered schema, building a
delegate chain as it goes, and returns the terminal Specifier. Walking never
touches the backing store except in canonical_uri(), which reads element
keys to replace index addresses.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from uritree.config import ResolverConfig
from uritree.delegate import Delegate
from uritree.errors import ErrorCode, ParseError, RoutingError
from uritree.logging import get_logger
from uritree.parsing.uri_parser import (
    IdQualifier,
    IndexQualifier,
    ParsedQuery,
    ParsedSegment,
    ParsedURI,
    parse_uri,
)
from uritree.query import OPERATORS, Pagination, Predicate, SortSpec
from uritree.result import Err, Ok, Result
from uritree.specifier import Specifier, dispatch_table, specifier_for
from uritree.types import (
    AddressingMode,
    CollectionSchema,
    CompoundSchema,
    NumericSegments,
    ScalarSchema,
    SchemaNode,
)
from uritree.uri import Addressing, Id, Index, build_full_uri, is_integer

logger = get_logger(__name__)

_SCHEME_NAME_RE = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*\Z")


@dataclass(frozen=True)
class SchemeEntry:
    name: str
    root_factory: Callable[[], Delegate]
    root_schema: CompoundSchema


class SchemeRegistry:
    """Maps scheme names to a root-delegate factory and a root schema.

    Built once at startup and passed to a Resolver; read-only afterwards.
    """

    def __init__(self) -> None:
        self._schemes: dict[str, SchemeEntry] = {}

    def register_scheme(
        self,
        name: str,
        root_factory: Callable[[], Delegate],
        root_schema: CompoundSchema,
    ) -> SchemeEntry:
        """Register a scheme.

        Raises:
            ValueError: If the name is not a valid URI scheme or is taken.
        """
        if not _SCHEME_NAME_RE.match(name):
            raise ValueError(f"Invalid scheme name '{name}'")
        if name in self._schemes:
            raise ValueError(f"Scheme '{name}' is already registered")
        if not isinstance(root_schema, CompoundSchema):
            raise ValueError("Root schema must be a compound node")
        entry = SchemeEntry(name, root_factory, root_schema)
        self._schemes[name] = entry
        return entry

    def lookup(self, name: str) -> Result[SchemeEntry]:
        entry = self._schemes.get(name)
        if entry is None:
            return Err(RoutingError.unknown_scheme(name, self.schemes()))
        return Ok(entry)

    def schemes(self) -> list[str]:
        return sorted(self._schemes)

    def __contains__(self, name: str) -> bool:
        return name in self._schemes


@dataclass
class _Position:
    """Where the walk is: schema node, delegate, and the collection owning it."""

    node: SchemaNode
    delegate: Delegate
    container: CollectionSchema | None = None
    label: str = ""
    parent: Specifier | None = None


class Resolver:
    """Turns URI strings into Specifiers against a SchemeRegistry."""

    def __init__(self, registry: SchemeRegistry, config: ResolverConfig | None = None) -> None:
        self.registry = registry
        self.config = config or ResolverConfig()

    def root(self, scheme: str) -> Result[Specifier]:
        found = self.registry.lookup(scheme)
        if not found.ok:
            return found
        entry = found.value
        return Ok(specifier_for(entry.root_schema, entry.root_factory(), None, self.config))

    def specifier_from_uri(self, uri: str) -> Result[Specifier]:
        """Parse and route a URI. Errors are returned, never raised."""
        try:
            parsed = parse_uri(uri)
        except ParseError as e:
            return Err(e)
        walked = self._walk(parsed)
        if not walked.ok:
            logger.debug("routing_failed", uri=uri, error=walked.message)
            return walked
        return Ok(self._bind(walked.value))

    def canonical_uri(self, uri: str) -> Result[str]:
        """Rewrite index addresses to id or name addresses where the data allows.

        Makes one round trip per index-addressed element to read its keys.
        """
        try:
            parsed = parse_uri(uri)
        except ParseError as e:
            return Err(e)
        walked = self._walk(parsed, canonical=True)
        if not walked.ok:
            return walked
        delegate = walked.value.delegate
        return Ok(build_full_uri(delegate.path(), delegate.query_state()))

    # -- walking ----------------------------------------------------------

    def _bind(self, pos: _Position) -> Specifier:
        return specifier_for(pos.node, pos.delegate, pos.container, self.config, pos.parent)

    def _walk(self, parsed: ParsedURI, canonical: bool = False) -> Result[_Position]:
        found = self.registry.lookup(parsed.scheme)
        if not found.ok:
            return found
        entry = found.value
        pos = _Position(entry.root_schema, entry.root_factory(), None, parsed.scheme)

        pending: deque[ParsedSegment] = deque(parsed.segments)
        while pending:
            seg = pending.popleft()
            node = pos.node
            owner = self._bind(pos)
            if isinstance(node, CollectionSchema):
                stepped = self._address(pos, node, seg.head)
            elif isinstance(node, CompoundSchema):
                stepped = self._property(pos, node, seg.head)
            else:
                return Err(RoutingError(
                    code=ErrorCode.ROUTING_UNKNOWN_SEGMENT,
                    message=f"Cannot navigate below scalar '{pos.label}' to '{seg.head}'",
                ))
            if not stepped.ok:
                return stepped
            pos = stepped.value
            pos.parent = owner

            qualifier = seg.qualifier
            if qualifier is None:
                continue
            if isinstance(pos.node, CollectionSchema):
                owner = self._bind(pos)
                stepped = self._qualify(pos, pos.node, qualifier, canonical)
                if not stepped.ok:
                    return stepped
                pos = stepped.value
                pos.parent = owner
            elif isinstance(qualifier, IdQualifier):
                # Not a collection: the integer was its own segment after all
                pending.appendleft(ParsedSegment(qualifier.raw, None, seg.position))
            else:
                return Err(RoutingError.invalid_qualifier(
                    seg.head, "index addressing requires a collection"))

        if parsed.query is not None:
            return self._apply_query(pos, parsed.query)
        return Ok(pos)

    def _property(self, pos: _Position, node: CompoundSchema, head: str) -> Result[_Position]:
        table = dispatch_table(node)
        entry = table.get(head)
        if entry is None:
            return Err(RoutingError.unknown_segment(head, list(table)))
        return Ok(_Position(entry.schema, entry.navigate(pos.delegate), None, head))

    def _address(self, pos: _Position, node: CollectionSchema, head: str) -> Result[_Position]:
        """A bare head under a collection: name address, else id address."""
        if node.supports(AddressingMode.NAME):
            delegate = pos.delegate.by_name(head)
        elif node.supports(AddressingMode.ID):
            delegate = pos.delegate.by_id(int(head) if is_integer(head) else head)
        else:
            return Err(RoutingError.unsupported_addressing(
                pos.label, "name or id", node.sorted_modes()))
        return Ok(_Position(node.item_schema, delegate, node, head))

    def _qualify(
        self,
        pos: _Position,
        node: CollectionSchema,
        qualifier: IndexQualifier | IdQualifier,
        canonical: bool,
    ) -> Result[_Position]:
        if isinstance(qualifier, IndexQualifier):
            if not node.supports(AddressingMode.INDEX):
                return Err(RoutingError.unsupported_addressing(
                    pos.label, "index", node.sorted_modes()))
            element = pos.delegate.by_index(qualifier.value)
            if canonical:
                element = self._canonical_element(node, pos.delegate, element, qualifier.value)
            return Ok(_Position(node.item_schema, element, node, pos.label))

        policy = node.numeric_policy
        if policy is NumericSegments.ID and node.supports(AddressingMode.ID):
            element = pos.delegate.by_id(qualifier.value)
        elif node.supports(AddressingMode.NAME):
            element = pos.delegate.by_name(qualifier.raw)
        elif node.supports(AddressingMode.ID):
            element = pos.delegate.by_id(qualifier.value)
        else:
            return Err(RoutingError.unsupported_addressing(
                pos.label, "id", node.sorted_modes()))
        return Ok(_Position(node.item_schema, element, node, pos.label))

    def _canonical_element(
        self, node: CollectionSchema, collection: Delegate, element: Delegate, index: int
    ) -> Delegate:
        keys: dict[str, Any] = {}
        item = node.item_schema
        if isinstance(item, CompoundSchema):
            for key in ("id", "name"):
                prop = item.get_property(key)
                if isinstance(prop, ScalarSchema) and not prop.is_computed:
                    read = element.prop(key, prop.backing_name(key)).get()
                    if read.ok:
                        keys[key] = read.value
        addressing = Addressing(node.addressing, node.numeric_policy)
        segment = addressing.segment_for(keys.get("id"), keys.get("name"), index)
        if segment is None or isinstance(segment, Index):
            return element
        if isinstance(segment, Id):
            return collection.by_id(segment.value)
        return collection.by_name(segment.value)  # type: ignore[arg-type]

    # -- query ------------------------------------------------------------

    def _apply_query(self, pos: _Position, query: ParsedQuery) -> Result[_Position]:
        node = pos.node
        if not isinstance(node, CollectionSchema):
            return Err(RoutingError.invalid_qualifier(pos.label, "a query requires a collection"))
        item = node.item_schema
        fields: dict[str, ScalarSchema] = {}
        if isinstance(item, CompoundSchema):
            for name in item.property_names():
                prop = item.get_property(name)
                if isinstance(prop, ScalarSchema):
                    fields[name] = prop

        delegate = pos.delegate
        filters: dict[str, Predicate] = {}
        for term in query.filters:
            prop = fields.get(term.field)
            if prop is None:
                return Err(RoutingError.invalid_filter(
                    f"Unknown filter field '{term.field}'", list(fields)))
            operator = OPERATORS[term.operator]
            if not operator.accepts(prop.type):
                return Err(RoutingError.invalid_filter(
                    f"Operator '{operator.name}' is not valid for "
                    f"{prop.type.value} field '{term.field}'"))
            try:
                value = operator.parse_uri(term.raw_value, prop.type)
            except ValueError as e:
                return Err(RoutingError.invalid_filter(
                    f"Invalid value for '{term.field}': {e}"))
            filters[term.field] = Predicate(operator, value)
        if filters:
            delegate = delegate.with_filter(filters)

        if query.sort is not None:
            sort_field, direction = query.sort
            if sort_field not in fields:
                return Err(RoutingError.invalid_filter(
                    f"Unknown sort field '{sort_field}'", list(fields)))
            delegate = delegate.with_sort(SortSpec(sort_field, direction))

        if query.limit is not None or query.offset is not None:
            delegate = delegate.with_pagination(Pagination(query.limit, query.offset or 0))

        if query.expand:
            known = set(item.property_names()) if isinstance(item, CompoundSchema) else set()
            expand = [f for f in query.expand if f in known]
            if expand:
                delegate = delegate.with_expand(expand)

        return Ok(_Position(node, delegate, pos.container, pos.label, pos.parent))
