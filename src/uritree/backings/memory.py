"""In-memory backing over nested dicts and lists.

Collections are lists, elements and records are dicts. Positions are kept as
a chain of steps and located again from the root on every round trip, so a
Delegate never holds a stale reference after a mutation.
"""

from __future__ import annotations

from typing import Any, Mapping

from uritree.delegate import Delegate
from uritree.errors import BackingError, MutationError
from uritree.logging import get_logger
from uritree.query import QueryState
from uritree.result import Err, Ok, Result
from uritree.uri import (
    DEFAULT_ADDRESSING,
    Addressing,
    Id,
    Index,
    Name,
    PathSegment,
    Prop,
    Root,
    build_uri,
)

logger = get_logger(__name__)

Step = tuple[str, Any]


class MemoryStore:
    """Shared mutable storage behind every MemoryDelegate of one tree."""

    def __init__(self, data: dict[str, Any], scheme: str = "memory", first_id: int = 1000) -> None:
        self.data = data
        self.scheme = scheme
        self.round_trips = 0
        self._next_id = first_id

    def next_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def root(self) -> MemoryDelegate:
        """Root delegate factory for scheme registration."""
        return MemoryDelegate(self, (Root(self.scheme),), ())

    def _count(self, operation: str, uri: str) -> None:
        self.round_trips += 1
        logger.debug("round_trip", backing="memory", operation=operation, uri=uri)


def _find(items: list[Any], key: str, value: Any) -> int:
    for position, item in enumerate(items):
        if isinstance(item, Mapping) and key in item and str(item[key]) == str(value):
            return position
    raise LookupError(f"no element with {key} '{value}'")


def _step_into(current: Any, step: Step) -> tuple[Any, list[Any] | None, int | None]:
    """Apply one step, returning (value, containing list, position in it)."""
    kind, arg = step
    if kind == "prop":
        if not isinstance(current, Mapping):
            raise LookupError(f"cannot read property '{arg}' of {type(current).__name__}")
        if arg not in current:
            raise LookupError(f"property '{arg}' not found")
        return current[arg], None, None
    if not isinstance(current, list):
        raise LookupError(f"cannot address {kind} '{arg}' in {type(current).__name__}")
    if kind == "index":
        if not 0 <= arg < len(current):
            raise LookupError(f"index {arg} out of range (length {len(current)})")
        position = arg
    else:
        position = _find(current, kind, arg)
    return current[position], current, position


class MemoryDelegate(Delegate):
    """Delegate over a MemoryStore."""

    def __init__(
        self,
        store: MemoryStore,
        segments: tuple[PathSegment, ...],
        steps: tuple[Step, ...],
        parent: MemoryDelegate | None = None,
        query: QueryState | None = None,
    ) -> None:
        super().__init__(segments, parent, query)
        self.store = store
        self._steps = steps

    # -- navigation -------------------------------------------------------

    def _child(self, segment: PathSegment, step: Step | None) -> MemoryDelegate:
        steps = self._steps + ((step,) if step is not None else ())
        return MemoryDelegate(self.store, self._segments + (segment,), steps, parent=self)

    def prop(self, name: str, backing_name: str | None = None) -> MemoryDelegate:
        return self._child(Prop(name), ("prop", backing_name or name))

    def by_index(self, index: int) -> MemoryDelegate:
        return self._child(Index(index), ("index", index))

    def by_name(self, name: str) -> MemoryDelegate:
        return self._child(Name(name), ("name", name))

    def by_id(self, id_value: str | int) -> MemoryDelegate:
        return self._child(Id(id_value), ("id", id_value))

    def namespace(self, name: str) -> MemoryDelegate:
        return self._child(Prop(name), None)

    def _with_query(self, query: QueryState) -> MemoryDelegate:
        return MemoryDelegate(self.store, self._segments, self._steps, self._parent, query)  # type: ignore[arg-type]

    # -- location ---------------------------------------------------------

    def _locate(self) -> tuple[Any, list[Any] | None, int | None, Any]:
        """Walk the steps from the root: (value, container, position, owner)."""
        current: Any = self.store.data
        owner: Any = None
        container: list[Any] | None = None
        position: int | None = None
        for step in self._steps:
            owner = current
            current, container, position = _step_into(current, step)
        return current, container, position, owner

    def _fail(self, exc: Exception) -> Err:
        return Err(BackingError.round_trip(self.uri(), str(exc)))

    # -- round trips ------------------------------------------------------

    def get(self) -> Result[Any]:
        self.store._count("get", self.uri())
        try:
            value, _, _, _ = self._locate()
        except LookupError as e:
            return self._fail(e)
        return Ok(value)

    def set(self, value: Any) -> Result[None]:
        self.store._count("set", self.uri())
        if not self._steps:
            return Err(MutationError.cannot_set_root(self.uri()))
        try:
            _, container, position, owner = self._locate()
        except LookupError as e:
            return self._fail(e)
        kind, arg = self._steps[-1]
        if container is not None and position is not None:
            container[position] = value
        else:
            owner[arg] = value
        return Ok(None)

    def elements(self) -> Result[list[Delegate]]:
        self.store._count("elements", self.uri())
        try:
            value, _, _, _ = self._locate()
        except LookupError as e:
            return self._fail(e)
        if not isinstance(value, list):
            return self._fail(LookupError("not a collection"))
        return Ok([self.by_index(i) for i in range(len(value))])

    def create(self, properties: Mapping[str, Any],
               addressing: Addressing | None = None) -> Result[str]:
        self.store._count("create", self.uri())
        try:
            target, _, _, _ = self._locate()
        except LookupError as e:
            return self._fail(e)
        if not isinstance(target, list):
            return Err(MutationError.not_a_collection(self.uri(), "Cannot create: not a collection"))
        item = dict(properties)
        if item.get("id") is None:
            taken = {str(e.get("id")) for e in target if isinstance(e, Mapping)}
            new_id = self.store.next_id()
            while str(new_id) in taken:
                new_id = self.store.next_id()
            item["id"] = new_id
        target.append(item)
        return Ok(self._element_uri(self._segments, item, len(target) - 1, addressing))

    def delete(self) -> Result[str]:
        self.store._count("delete", self.uri())
        try:
            _, container, position, _ = self._locate()
        except LookupError as e:
            return self._fail(e)
        if container is None or position is None:
            return Err(MutationError.no_parent_collection(
                self.uri(), "Cannot delete: item not in a collection"))
        del container[position]
        return Ok(build_uri(self._segments))

    def move_to(self, destination: Delegate, addressing: Addressing | None = None) -> Result[str]:
        self.store._count("move", self.uri())
        if not isinstance(destination, MemoryDelegate):
            return Err(MutationError.not_a_collection(
                destination.uri(), "Destination is not a collection"))
        try:
            item, container, position, _ = self._locate()
            target, _, _, _ = destination._locate()
        except LookupError as e:
            return self._fail(e)
        if container is None or position is None:
            return Err(MutationError.no_parent_collection(
                self.uri(), "Cannot remove item from source: no parent array"))
        if not isinstance(target, list):
            return Err(MutationError.not_a_collection(
                destination.uri(), "Destination is not a collection"))
        del container[position]
        target.append(item)
        return Ok(self._element_uri(destination.path(), item, len(target) - 1, addressing))

    @staticmethod
    def _element_uri(collection: tuple[PathSegment, ...], item: Any, position: int,
                     addressing: Addressing | None) -> str:
        addressing = addressing or DEFAULT_ADDRESSING
        id_value = name_value = None
        if isinstance(item, Mapping):
            id_value, name_value = item.get("id"), item.get("name")
        segment = addressing.segment_for(id_value, name_value, position) or Index(position)
        return build_uri(collection + (segment,))
