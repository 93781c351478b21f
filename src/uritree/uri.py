"""Path segments, the canonical URI builder, and stable element addressing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Union
from urllib.parse import quote

from uritree.types import AddressingMode, NumericSegments

if TYPE_CHECKING:
    from uritree.query import QueryState


@dataclass(frozen=True)
class Root:
    scheme: str


@dataclass(frozen=True)
class Prop:
    name: str


@dataclass(frozen=True)
class Index:
    value: int


@dataclass(frozen=True)
class Name:
    value: str


@dataclass(frozen=True)
class Id:
    value: str | int


PathSegment = Union[Root, Prop, Index, Name, Id]

_INTEGER_RE = re.compile(r"-?\d+\Z")


def is_integer(text: str) -> bool:
    """Return whether text is an optionally signed run of digits."""
    return bool(_INTEGER_RE.match(text))


def encode_component(value: Any) -> str:
    """Percent-encode a single path component."""
    return quote(str(value), safe="")


def build_uri(segments: Iterable[PathSegment]) -> str:
    """Serialize a segment sequence. Pure: never touches a backing store."""
    out = ""
    at_root = True
    for seg in segments:
        if isinstance(seg, Root):
            out = f"{seg.scheme}://"
            at_root = True
            continue
        if isinstance(seg, Index):
            out += f"[{seg.value}]"
        else:
            value = seg.name if isinstance(seg, Prop) else seg.value
            out += ("" if at_root else "/") + encode_component(value)
        at_root = False
    return out


def build_query_string(state: QueryState) -> str:
    """Serialize a QueryState as the canonical query string, without the leading '?'."""
    parts: list[str] = []
    for field_name, predicate in state.filter.items():
        key, value = predicate.operator.to_uri(field_name, predicate.value)
        parts.append(f"{quote(key, safe='.')}={quote(value, safe='')}")
    if state.sort is not None:
        parts.append(f"sort={quote(state.sort.field, safe='')}.{state.sort.direction}")
    if state.pagination is not None:
        if state.pagination.limit is not None:
            parts.append(f"limit={state.pagination.limit}")
        if state.pagination.offset:
            parts.append(f"offset={state.pagination.offset}")
    if state.expand:
        parts.append("expand=" + ",".join(quote(f, safe="") for f in state.expand))
    return "&".join(parts)


def build_full_uri(segments: Iterable[PathSegment], state: QueryState | None) -> str:
    """Serialize segments plus an optional query."""
    base = build_uri(segments)
    if state is None:
        return base
    query = build_query_string(state)
    return f"{base}?{query}" if query else base


@dataclass(frozen=True)
class Addressing:
    """Chooses the most stable segment that routes back to the same element.

    Preference is id, then name, then index. An id is only chosen when the
    router will read it back as an id: integers need the collection's numeric
    policy to be ID, and string ids need the collection to lack name
    addressing (otherwise a bare string head is taken as a name).
    """

    modes: frozenset[AddressingMode] = frozenset(AddressingMode)
    numeric: NumericSegments = NumericSegments.ID

    def segment_for(self, id_value: Any = None, name_value: Any = None,
                    index: int | None = None) -> PathSegment | None:
        if AddressingMode.ID in self.modes and id_value is not None:
            numeric = isinstance(id_value, int) or is_integer(str(id_value))
            if numeric and self.numeric is NumericSegments.ID:
                return Id(int(id_value))
            if not numeric and AddressingMode.NAME not in self.modes:
                return Id(id_value)
        if AddressingMode.NAME in self.modes and name_value:
            text = str(name_value)
            if not is_integer(text) or self.numeric is NumericSegments.NAME:
                return Name(text)
        if AddressingMode.INDEX in self.modes and index is not None:
            return Index(index)
        return None


DEFAULT_ADDRESSING = Addressing()
