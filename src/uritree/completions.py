"""URI completion for partially typed addresses."""

from __future__ import annotations

from dataclasses import dataclass

from uritree.query import URI_OPERATORS
from uritree.router import Resolver
from uritree.specifier import CollectionSpecifier, CompoundSpecifier, Specifier
from uritree.types import AddressingMode, CollectionSchema, CompoundSchema, ScalarSchema
from uritree.uri import encode_component

# Collections are listed to suggest element names; only this many are offered
MAX_ELEMENT_SUGGESTIONS = 10


@dataclass(frozen=True)
class Completion:
    """One suggestion. `value` replaces the fragment being typed."""

    value: str
    kind: str  # scheme, property, element, query, operator
    description: str


def complete(resolver: Resolver, partial: str) -> list[Completion]:
    """Suggest continuations of `partial`.

    Scheme and property suggestions never touch the backing store; element
    name/id suggestions resolve the collection once.
    """
    scheme, sep, path = partial.partition("://")
    if not sep:
        return [
            Completion(f"{s}://", "scheme", "Scheme")
            for s in resolver.registry.schemes()
            if s.startswith(scheme)
        ]

    base, qmark, query = path.partition("?")
    if qmark:
        return _query_completions(resolver, f"{scheme}://{base}", query)

    parent_path, _, fragment = base.rpartition("/")
    found = resolver.specifier_from_uri(f"{scheme}://{parent_path}")
    if not found.ok:
        return []
    parent = found.value
    if isinstance(parent, CollectionSpecifier):
        return _collection_completions(parent, fragment)
    if isinstance(parent, CompoundSpecifier):
        return _property_completions(parent, fragment)
    return []


def _describe(spec: Specifier, name: str) -> str:
    node = spec.schema
    if isinstance(node, CompoundSchema):
        node = node.get_property(name)
    if isinstance(node, CollectionSchema):
        return f"Collection ({', '.join(node.sorted_modes()) or 'enumerable'})"
    if isinstance(node, ScalarSchema):
        if node.is_computed:
            return f"Computed {node.type.value}"
        return f"{'Lazy ' if node.lazy else ''}{node.type.value}"
    if node is not None and node.is_namespace:
        return "Namespace"
    return "Object"


def _property_completions(spec: CompoundSpecifier, fragment: str) -> list[Completion]:
    return [
        Completion(name, "property", _describe(spec, name))
        for name in spec.properties()
        if name.lower().startswith(fragment.lower())
    ]


def _collection_completions(spec: CollectionSpecifier, fragment: str) -> list[Completion]:
    schema = spec.schema
    completions: list[Completion] = []
    key = None
    if schema.supports(AddressingMode.NAME):
        key, label = "name", "By name"
    elif schema.supports(AddressingMode.ID):
        key, label = "id", "By ID"

    if key is not None:
        resolved = spec.resolve()
        if resolved.ok:
            for row in resolved.value[:MAX_ELEMENT_SUGGESTIONS]:
                value = row.get(key) if isinstance(row, dict) else None
                if value is None:
                    continue
                text = str(value)
                if text.lower().startswith(fragment.lower()):
                    completions.append(Completion(encode_component(text), "element", label))

    if fragment == "":
        completions.append(Completion("?", "query", "Add filter/sort/pagination"))
    return completions


def _query_completions(resolver: Resolver, base_uri: str, query: str) -> list[Completion]:
    found = resolver.specifier_from_uri(base_uri)
    if not found.ok or not isinstance(found.value, CollectionSpecifier):
        return []
    item = found.value.schema.item_schema
    if not isinstance(item, CompoundSchema):
        return []

    current = query.rpartition("&")[2]
    if "=" in current:
        return []
    field_name, dot, op_fragment = current.partition(".")

    completions: list[Completion] = []
    if dot:
        prop = item.get_property(field_name)
        if isinstance(prop, ScalarSchema):
            for suffix, operator in URI_OPERATORS.items():
                if operator.accepts(prop.type) and suffix.startswith(op_fragment):
                    completions.append(Completion(
                        f"{field_name}.{suffix}=", "operator", f"Filter operator ({operator.name})"))
        return completions

    for name in item.property_names():
        prop = item.get_property(name)
        if isinstance(prop, ScalarSchema) and name.startswith(field_name):
            completions.append(Completion(f"{name}=", "query", f"Filter on {prop.type.value}"))
    for keyword, description in (
        ("sort", "Sort by field (field.asc or field.desc)"),
        ("limit", "Maximum number of results"),
        ("offset", "Skip results"),
        ("expand", "Resolve lazy fields inline"),
    ):
        if keyword.startswith(field_name):
            completions.append(Completion(f"{keyword}=", "query", description))
    return completions
