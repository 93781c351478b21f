"""Backing over a live application's scripting bridge.

The bridge is described by two small protocols, RemoteObject and
RemoteCollection, in the shape of OSA/JXA object specifiers: reading a
property yields a value or another reference, collections can be indexed,
looked up by name or id, filtered with ``whose`` and extended with ``make``.
The connector that speaks to a real application implements these protocols;
this module only replays navigation against them.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

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


class RemoteError(Exception):
    """Raised by bridge implementations when the application rejects a request."""


class RemoteObject(Protocol):
    def get_property(self, name: str) -> Any: ...

    def set_property(self, name: str, value: Any) -> None: ...

    def delete(self) -> None: ...

    def move(self, destination: RemoteCollection) -> RemoteObject: ...


class RemoteCollection(Protocol):
    def items(self) -> list[Any]: ...

    def at(self, index: int) -> Any: ...

    def named(self, name: str) -> Any: ...

    def with_id(self, id_value: str | int) -> Any: ...

    def whose(self, native_filter: Mapping[str, Any]) -> RemoteCollection: ...

    def make(self, properties: Mapping[str, Any]) -> RemoteObject: ...


# Exceptions a bridge may surface for a failed request
BRIDGE_ERRORS = (RemoteError, LookupError, AttributeError, TypeError, ValueError)


def _is_collection(value: Any) -> bool:
    return callable(getattr(value, "items", None)) and callable(getattr(value, "make", None))


def _read_key(obj: Any, name: str) -> Any:
    try:
        return obj.get_property(name)
    except BRIDGE_ERRORS:
        return None


def _positions_of(matches: list[Any], listed: list[Any]) -> list[int]:
    """Positions of each match within the full listing, in order.

    Raises ValueError when a match is not part of the listing.
    """
    positions: list[int] = []
    start = 0
    for obj in matches:
        start = listed.index(obj, start)
        positions.append(start)
        start += 1
    return positions


class RemoteSession:
    """Connection-wide state: the application root and a round-trip counter."""

    def __init__(self, application: RemoteObject, scheme: str) -> None:
        self.application = application
        self.scheme = scheme
        self.round_trips = 0

    def root(self) -> RemoteDelegate:
        """Root delegate factory for scheme registration."""
        return RemoteDelegate(self, (Root(self.scheme),), ())

    def _count(self, operation: str, uri: str) -> None:
        self.round_trips += 1
        logger.debug("round_trip", backing="remote", operation=operation, uri=uri)


Step = tuple[str, Any]


def _apply(current: Any, step: Step) -> Any:
    kind, arg = step
    if kind == "prop":
        return current.get_property(arg)
    if kind == "index":
        return current.at(arg)
    if kind == "name":
        return current.named(arg)
    if kind == "id":
        return current.with_id(arg)
    raise ValueError(f"unknown navigation step '{kind}'")


class RemoteDelegate(Delegate):
    """Delegate replaying navigation steps against a RemoteSession."""

    def __init__(
        self,
        session: RemoteSession,
        segments: tuple[PathSegment, ...],
        steps: tuple[Step, ...],
        parent: RemoteDelegate | None = None,
        query: QueryState | None = None,
    ) -> None:
        super().__init__(segments, parent, query)
        self.session = session
        self._steps = steps

    def _child(self, segment: PathSegment, step: Step | None) -> RemoteDelegate:
        steps = self._steps + ((step,) if step is not None else ())
        return RemoteDelegate(self.session, self._segments + (segment,), steps, parent=self)

    def prop(self, name: str, backing_name: str | None = None) -> RemoteDelegate:
        return self._child(Prop(name), ("prop", backing_name or name))

    def by_index(self, index: int) -> RemoteDelegate:
        return self._child(Index(index), ("index", index))

    def by_name(self, name: str) -> RemoteDelegate:
        return self._child(Name(name), ("name", name))

    def by_id(self, id_value: str | int) -> RemoteDelegate:
        return self._child(Id(id_value), ("id", id_value))

    def namespace(self, name: str) -> RemoteDelegate:
        return self._child(Prop(name), None)

    def _with_query(self, query: QueryState) -> RemoteDelegate:
        return RemoteDelegate(self.session, self._segments, self._steps, self._parent, query)  # type: ignore[arg-type]

    def _resolve(self, steps: tuple[Step, ...] | None = None) -> Any:
        current: Any = self.session.application
        for step in self._steps if steps is None else steps:
            current = _apply(current, step)
        return current

    def _fail(self, exc: Exception) -> Err:
        return Err(BackingError.round_trip(self.uri(), str(exc) or type(exc).__name__))

    @property
    def _in_collection(self) -> bool:
        return bool(self._steps) and self._steps[-1][0] in ("index", "name", "id")

    def get(self) -> Result[Any]:
        self.session._count("get", self.uri())
        try:
            return Ok(self._resolve())
        except BRIDGE_ERRORS as e:
            return self._fail(e)

    def set(self, value: Any) -> Result[None]:
        self.session._count("set", self.uri())
        if not self._steps:
            return Err(MutationError.cannot_set_root(self.uri()))
        kind, arg = self._steps[-1]
        if kind != "prop":
            return Err(MutationError.unsupported(self.uri(), "set of a whole element"))
        try:
            self._resolve(self._steps[:-1]).set_property(arg, value)
        except BRIDGE_ERRORS as e:
            return self._fail(e)
        return Ok(None)

    def elements(self) -> Result[list[Delegate]]:
        """List element delegates, addressed by position in the unfiltered collection.

        A filter is offered to ``whose`` first; its matches are mapped back to
        their positions so element URIs stay valid without the filter.
        """
        self.session._count("elements", self.uri())
        try:
            target = self._resolve()
            if not _is_collection(target):
                return self._fail(LookupError("not a collection"))
            listed = target.items()
        except BRIDGE_ERRORS as e:
            return self._fail(e)

        positions = list(range(len(listed)))
        if self._query.filter:
            native = {name: pred.operator.push_down(pred.value)
                      for name, pred in self._query.filter.items()}
            try:
                positions = _positions_of(target.whose(native).items(), listed)
            except BRIDGE_ERRORS as e:
                logger.debug("filter_push_down_failed", uri=self.uri(), error=str(e))

        return Ok([
            RemoteDelegate(self.session, self._segments + (Index(i),), self._steps + (("index", i),),
                           parent=self)
            for i in positions
        ])

    def create(self, properties: Mapping[str, Any],
               addressing: Addressing | None = None) -> Result[str]:
        self.session._count("create", self.uri())
        try:
            target = self._resolve()
            if not _is_collection(target):
                return Err(MutationError.not_a_collection(
                    self.uri(), "Cannot create: not a collection"))
            created = target.make(dict(properties))
            position = len(target.items()) - 1
        except BRIDGE_ERRORS as e:
            return self._fail(e)
        return Ok(self._element_uri(self._segments, created, position, addressing))

    def delete(self) -> Result[str]:
        self.session._count("delete", self.uri())
        if not self._in_collection:
            return Err(MutationError.no_parent_collection(
                self.uri(), "Cannot delete: item not in a collection"))
        try:
            self._resolve().delete()
        except BRIDGE_ERRORS as e:
            return self._fail(e)
        return Ok(build_uri(self._segments))

    def move_to(self, destination: Delegate, addressing: Addressing | None = None) -> Result[str]:
        self.session._count("move", self.uri())
        if not self._in_collection:
            return Err(MutationError.no_parent_collection(
                self.uri(), "Cannot remove item from source: no parent array"))
        if not isinstance(destination, RemoteDelegate):
            return Err(MutationError.not_a_collection(
                destination.uri(), "Destination is not a collection"))
        try:
            target = destination._resolve()
            if not _is_collection(target):
                return Err(MutationError.not_a_collection(
                    destination.uri(), "Destination is not a collection"))
            moved = self._resolve().move(target)
            position = len(target.items()) - 1
        except BRIDGE_ERRORS as e:
            return self._fail(e)
        return Ok(self._element_uri(destination.path(), moved, position, addressing))

    @staticmethod
    def _element_uri(collection: tuple[PathSegment, ...], obj: Any, position: int,
                     addressing: Addressing | None) -> str:
        addressing = addressing or DEFAULT_ADDRESSING
        segment = addressing.segment_for(
            _read_key(obj, "id"), _read_key(obj, "name"), position
        ) or Index(position)
        return build_uri(collection + (segment,))
