"""Parser for the schema definition DSL.

Example::

    Mailbox {
        name: string,
        unreadCount: number,
        messages: Message[index, id] create delete move,
        mailboxes: Mailbox[name, index],
    }
    root Mail { accounts: Account[name, index, id] }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Union

import ply.yacc as yacc

from uritree.errors import SchemaError
from uritree.parsing.schema_lexer import SchemaLexer
from uritree.types import (
    SCALAR_TYPE_NAMES,
    CompoundSchema,
    Mutation,
    NamespaceSchema,
    SchemaNode,
    SchemaRegistry,
    collection,
    computed,
    scalar,
)


@dataclass
class ScalarSpec:
    """Scalar property before resolution."""

    type_name: str
    lazy: bool = False
    settable: bool = False


@dataclass
class ComputedSpec:
    """Computed property: a type and the name of its function."""

    type_name: str
    function: str


@dataclass
class CollectionSpec:
    """Collection property before resolution."""

    item: str
    modes: list[str]
    mutations: dict[str, str | None] = field(default_factory=dict)  # None = default behavior
    numeric: str | None = None


TypeSpec = Union[ScalarSpec, ComputedSpec, CollectionSpec]


@dataclass
class PropSpec:
    name: str
    type_spec: TypeSpec
    alias: str | None = None


@dataclass
class NamespaceSpec:
    name: str
    props: list[PropSpec | NamespaceSpec]


@dataclass
class NodeSpec:
    """Compound node before resolution."""

    name: str
    props: list[PropSpec | NamespaceSpec]
    is_root: bool = False


class SchemaParser:
    """Parser for the schema definition DSL.

    Computed properties and custom mutation handlers name functions looked
    up in `functions`.
    """

    tokens = SchemaLexer.tokens

    def __init__(self, functions: dict[str, Callable[..., Any]] | None = None) -> None:
        self.lexer = SchemaLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self.functions = dict(functions or {})
        self.registry: SchemaRegistry = SchemaRegistry()
        self._specs: list[NodeSpec] = []

    def p_schema(self, p: yacc.YaccProduction) -> None:
        """schema : node_list"""
        p[0] = p[1]

    def p_node_list_single(self, p: yacc.YaccProduction) -> None:
        """node_list : statement"""
        p[0] = [p[1]]

    def p_node_list_multiple(self, p: yacc.YaccProduction) -> None:
        """node_list : node_list statement"""
        p[0] = p[1] + [p[2]]

    def p_statement_node(self, p: yacc.YaccProduction) -> None:
        """statement : node_def"""
        p[0] = p[1]

    def p_statement_root(self, p: yacc.YaccProduction) -> None:
        """statement : ROOT node_def"""
        p[2].is_root = True
        p[0] = p[2]

    def p_node_def(self, p: yacc.YaccProduction) -> None:
        """node_def : IDENTIFIER LBRACE prop_list RBRACE
                    | IDENTIFIER LBRACE prop_list COMMA RBRACE"""
        p[0] = NodeSpec(name=p[1], props=p[3])

    def p_node_def_empty(self, p: yacc.YaccProduction) -> None:
        """node_def : IDENTIFIER LBRACE RBRACE"""
        p[0] = NodeSpec(name=p[1], props=[])

    def p_prop_list_single(self, p: yacc.YaccProduction) -> None:
        """prop_list : prop"""
        p[0] = [p[1]]

    def p_prop_list_multiple(self, p: yacc.YaccProduction) -> None:
        """prop_list : prop_list COMMA prop"""
        p[0] = p[1] + [p[3]]

    def p_prop(self, p: yacc.YaccProduction) -> None:
        """prop : IDENTIFIER COLON prop_type alias_opt"""
        p[0] = PropSpec(name=p[1], type_spec=p[3], alias=p[4])

    def p_prop_namespace(self, p: yacc.YaccProduction) -> None:
        """prop : NAMESPACE IDENTIFIER LBRACE prop_list RBRACE
                | NAMESPACE IDENTIFIER LBRACE prop_list COMMA RBRACE"""
        p[0] = NamespaceSpec(name=p[2], props=p[4])

    def p_alias_opt(self, p: yacc.YaccProduction) -> None:
        """alias_opt : AS STRING
                     | empty"""
        p[0] = p[2] if len(p) == 3 else None

    def p_prop_type_scalar(self, p: yacc.YaccProduction) -> None:
        """prop_type : IDENTIFIER"""
        p[0] = ScalarSpec(type_name=p[1])

    def p_prop_type_modified(self, p: yacc.YaccProduction) -> None:
        """prop_type : scalar_mods IDENTIFIER"""
        p[0] = ScalarSpec(type_name=p[2], lazy="lazy" in p[1], settable="settable" in p[1])

    def p_scalar_mods_single(self, p: yacc.YaccProduction) -> None:
        """scalar_mods : LAZY
                       | SETTABLE"""
        p[0] = {p[1]}

    def p_scalar_mods_multiple(self, p: yacc.YaccProduction) -> None:
        """scalar_mods : scalar_mods LAZY
                       | scalar_mods SETTABLE"""
        p[0] = p[1] | {p[2]}

    def p_prop_type_computed(self, p: yacc.YaccProduction) -> None:
        """prop_type : COMPUTED IDENTIFIER EQUALS IDENTIFIER"""
        p[0] = ComputedSpec(type_name=p[2], function=p[4])

    def p_prop_type_collection(self, p: yacc.YaccProduction) -> None:
        """prop_type : IDENTIFIER LBRACKET mode_list RBRACKET collection_opts"""
        mutations, numeric = p[5]
        p[0] = CollectionSpec(item=p[1], modes=p[3], mutations=mutations, numeric=numeric)

    def p_prop_type_enumerable(self, p: yacc.YaccProduction) -> None:
        """prop_type : IDENTIFIER LBRACKET RBRACKET collection_opts"""
        mutations, numeric = p[4]
        p[0] = CollectionSpec(item=p[1], modes=[], mutations=mutations, numeric=numeric)

    def p_mode_list_single(self, p: yacc.YaccProduction) -> None:
        """mode_list : IDENTIFIER"""
        p[0] = [p[1]]

    def p_mode_list_multiple(self, p: yacc.YaccProduction) -> None:
        """mode_list : mode_list COMMA IDENTIFIER"""
        p[0] = p[1] + [p[3]]

    def p_collection_opts_empty(self, p: yacc.YaccProduction) -> None:
        """collection_opts : empty"""
        p[0] = ({}, None)

    def p_collection_opts_mutation(self, p: yacc.YaccProduction) -> None:
        """collection_opts : collection_opts mutation"""
        mutations, numeric = p[1]
        kind, handler = p[2]
        p[0] = ({**mutations, kind: handler}, numeric)

    def p_collection_opts_numeric(self, p: yacc.YaccProduction) -> None:
        """collection_opts : collection_opts NUMERIC IDENTIFIER"""
        mutations, _ = p[1]
        p[0] = (mutations, p[3])

    def p_mutation(self, p: yacc.YaccProduction) -> None:
        """mutation : CREATE
                    | DELETE
                    | MOVE"""
        p[0] = (p[1], None)

    def p_mutation_custom(self, p: yacc.YaccProduction) -> None:
        """mutation : CREATE EQUALS IDENTIFIER
                    | DELETE EQUALS IDENTIFIER
                    | MOVE EQUALS IDENTIFIER"""
        p[0] = (p[1], p[3])

    def p_empty(self, p: yacc.YaccProduction) -> None:
        """empty :"""
        p[0] = None

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (line {p.lineno})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse(self, data: str) -> SchemaRegistry:
        """Parse schema definitions and return a bound SchemaRegistry.

        Raises:
            SyntaxError: On malformed input.
            ValueError: On unresolvable references, unknown functions or a
                missing/duplicate root.
        """
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        self.registry = SchemaRegistry()
        self.lexer.input(data)
        specs = self.parser.parse(lexer=self.lexer.lexer)
        self._specs = specs or []

        roots = [s.name for s in self._specs if s.is_root]
        if len(roots) != 1:
            raise SchemaError(f"Expected exactly one root node, found {len(roots)}")
        self.registry.root_name = roots[0]

        self._resolve_specs()
        self.registry.bind(roots[0])
        return self.registry

    def _resolve_specs(self) -> None:
        """Resolve all specs into schema nodes using two-phase resolution.

        Phase 1: Pre-register stubs for every node so that self-referential
        and mutually referential collections can resolve.
        Phase 2: Populate the stubs in place.
        """
        for spec in self._specs:
            if spec.name in self.registry:
                raise SchemaError(f"Schema '{spec.name}' is already defined")
            self.registry.register_stub(spec.name)

        unresolved: list[str] = []
        for spec in self._specs:
            stub = self.registry.get_or_raise(spec.name)
            stub.properties = self._resolve_props(spec.props, unresolved)

        if unresolved:
            raise SchemaError(f"Cannot resolve types: {sorted(set(unresolved))}")

    def _resolve_props(
        self, props: list[PropSpec | NamespaceSpec], unresolved: list[str]
    ) -> dict[str, SchemaNode]:
        resolved: dict[str, SchemaNode] = {}
        for prop in props:
            if prop.name in resolved:
                raise SchemaError(f"Property '{prop.name}' is declared twice")
            if isinstance(prop, NamespaceSpec):
                resolved[prop.name] = NamespaceSchema(
                    name=prop.name, properties=self._resolve_props(prop.props, unresolved)
                )
                continue
            node = self._resolve_type(prop.type_spec, unresolved)
            if node is not None:
                if prop.alias is not None:
                    if isinstance(node, CompoundSchema):
                        raise SchemaError(f"Property '{prop.name}' cannot alias a compound")
                    node.alias = prop.alias
                resolved[prop.name] = node
        return resolved

    def _resolve_type(self, spec: TypeSpec, unresolved: list[str]) -> SchemaNode | None:
        if isinstance(spec, ComputedSpec):
            return computed(self._function(spec.function), self._scalar_type(spec.type_name))
        if isinstance(spec, CollectionSpec):
            item = self.registry.get(spec.item)
            if item is None:
                unresolved.append(spec.item)
                return None
            return collection(
                item,
                spec.modes,
                create=self._mutation(spec.mutations, "create"),
                delete=self._mutation(spec.mutations, "delete"),
                move=self._mutation(spec.mutations, "move"),
                numeric_segments=spec.numeric,
                enumerable=True,
            )
        if spec.type_name in SCALAR_TYPE_NAMES:
            node = scalar(spec.type_name, settable=spec.settable)
            node.lazy = spec.lazy
            return node
        if spec.lazy or spec.settable:
            raise SchemaError(f"'{spec.type_name}' is not a scalar type")
        # A compound-typed property: a nested record
        nested = self.registry.get(spec.type_name)
        if nested is None:
            unresolved.append(spec.type_name)
        return nested

    def _scalar_type(self, name: str) -> str:
        if name not in SCALAR_TYPE_NAMES:
            raise SchemaError(f"Unknown scalar type '{name}'")
        return name

    def _function(self, name: str) -> Callable[..., Any]:
        fn = self.functions.get(name)
        if fn is None:
            raise SchemaError(f"Unknown function '{name}'")
        return fn

    def _mutation(self, mutations: dict[str, str | None], kind: str) -> Mutation:
        if kind not in mutations:
            return Mutation.unavailable()
        handler = mutations[kind]
        if handler is None:
            return Mutation.default()
        return Mutation.custom(self._function(handler))
