"""The backing-store interface every delegate implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping

from uritree.query import Pagination, QueryState, SortSpec
from uritree.result import Result
from uritree.uri import Addressing, PathSegment, build_full_uri


class _RootMarker:
    """Returned by Delegate.parent() at the top of the tree."""

    _instance: _RootMarker | None = None

    def __new__(cls) -> _RootMarker:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ROOT"

    def __bool__(self) -> bool:
        return False


ROOT = _RootMarker()


class Delegate(ABC):
    """A position in a backing store plus accumulated path and query state.

    Navigation methods (prop, by_index, by_name, by_id, namespace, with_*)
    are pure: they return a new Delegate, never mutate this one and never
    touch the backing store. Invalid names only fail when a later round trip
    (get, set, elements, create, delete, move_to) is made. Round trips return
    a Result and never raise.
    """

    def __init__(
        self,
        segments: tuple[PathSegment, ...],
        parent: Delegate | None = None,
        query: QueryState | None = None,
    ) -> None:
        self._segments = segments
        self._parent = parent
        self._query = query or QueryState()

    # -- navigation -------------------------------------------------------

    @abstractmethod
    def prop(self, name: str, backing_name: str | None = None) -> Delegate:
        """Navigate to a named child. `backing_name` is the store's name when aliased."""

    @abstractmethod
    def by_index(self, index: int) -> Delegate:
        ...

    @abstractmethod
    def by_name(self, name: str) -> Delegate:
        ...

    @abstractmethod
    def by_id(self, id_value: str | int) -> Delegate:
        ...

    @abstractmethod
    def namespace(self, name: str) -> Delegate:
        """Add a URI segment while keeping the same backing position."""

    def parent(self) -> Delegate | _RootMarker:
        return self._parent if self._parent is not None else ROOT

    # -- round trips ------------------------------------------------------

    @abstractmethod
    def get(self) -> Result[Any]:
        """Fetch the raw value at this position."""

    @abstractmethod
    def set(self, value: Any) -> Result[None]:
        ...

    @abstractmethod
    def elements(self) -> Result[list[Delegate]]:
        """Enumerate a collection into one Delegate per element.

        Backings may push filters down; callers still replay the query.
        """

    @abstractmethod
    def move_to(self, destination: Delegate, addressing: Addressing | None = None) -> Result[str]:
        """Move the referent into `destination`, returning its new URI."""

    @abstractmethod
    def delete(self) -> Result[str]:
        """Remove the referent from its collection, returning the URI it had."""

    @abstractmethod
    def create(self, properties: Mapping[str, Any],
               addressing: Addressing | None = None) -> Result[str]:
        """Insert a new element into the addressed collection, returning its URI."""

    # -- query accumulation -----------------------------------------------

    @abstractmethod
    def _with_query(self, query: QueryState) -> Delegate:
        """Return a copy of this Delegate carrying `query`."""

    def with_filter(self, filters: Mapping[str, Any]) -> Delegate:
        return self._with_query(self._query.with_filter(filters))

    def with_sort(self, sort: SortSpec) -> Delegate:
        return self._with_query(self._query.with_sort(sort))

    def with_pagination(self, pagination: Pagination) -> Delegate:
        return self._with_query(self._query.with_pagination(pagination))

    def with_expand(self, fields: Iterable[str]) -> Delegate:
        return self._with_query(self._query.with_expand(fields))

    def query_state(self) -> QueryState:
        return self._query

    # -- addressing -------------------------------------------------------

    def path(self) -> tuple[PathSegment, ...]:
        return self._segments

    def uri(self) -> str:
        """Pure function of the accumulated segments and query state."""
        return build_full_uri(self._segments, self._query)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.uri()!r})"
