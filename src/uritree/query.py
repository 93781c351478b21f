"""Filter operators, query state and the in-memory query pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping

from uritree.types import ScalarType


def _compare(actual: Any, operator: str, expected: Any) -> bool:
    """Compare a field value against a filter value."""
    try:
        if isinstance(expected, (datetime, date)) and isinstance(actual, str):
            actual = datetime.fromisoformat(actual)
        if operator == "equals":
            return actual == expected
        if actual is None:
            return False
        if operator == "contains":
            if isinstance(actual, str):
                return str(expected) in actual
            if isinstance(actual, (list, tuple)):
                return expected in actual
            return False
        if operator == "startsWith":
            return isinstance(actual, str) and actual.startswith(str(expected))
        if operator == "gt":
            return actual > expected
        if operator == "lt":
            return actual < expected
    except (TypeError, ValueError):
        return False
    return False


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def _parse_number(text: str) -> int | float:
    try:
        return int(text)
    except ValueError:
        return float(text)


def _parse_value(text: str, scalar_type: ScalarType, ordered: bool) -> Any:
    if scalar_type is ScalarType.NUMBER:
        return _parse_number(text)
    if scalar_type is ScalarType.BOOLEAN:
        lowered = text.lower()
        if lowered not in ("true", "false"):
            raise ValueError(f"expected true or false, got '{text}'")
        return lowered == "true"
    if scalar_type is ScalarType.DATE:
        return datetime.fromisoformat(text)
    if scalar_type is ScalarType.ANY and ordered:
        return _parse_number(text)
    return text


@dataclass(frozen=True)
class FilterOperator:
    """A filter operator and its three mutually consistent renderings.

    push_down() gives the backing store's native filter form, test() is the
    in-memory fallback, to_uri()/parse_uri() are the query-string encoding.
    """

    name: str
    suffix: str | None
    native_key: str | None
    applies_to: frozenset[ScalarType]

    def push_down(self, value: Any) -> Any:
        if self.native_key is None:
            return value
        return {self.native_key: value}

    def test(self, actual: Any, expected: Any) -> bool:
        return _compare(actual, self.name, expected)

    def to_uri(self, field_name: str, value: Any) -> tuple[str, str]:
        key = field_name if self.suffix is None else f"{field_name}.{self.suffix}"
        return key, _format_value(value)

    def parse_uri(self, text: str, scalar_type: ScalarType = ScalarType.ANY) -> Any:
        """Parse a query-string value for a field of the given type.

        Raises ValueError when the text does not fit the type.
        """
        if scalar_type is ScalarType.STRING_ARRAY:
            return text if self.name == "contains" else text.split(",")
        return _parse_value(text, scalar_type, ordered=self.name in ("gt", "lt"))

    def accepts(self, scalar_type: ScalarType) -> bool:
        """Return whether this operator may be applied to a field of the given type."""
        return scalar_type is ScalarType.ANY or scalar_type in self.applies_to


_ALL_TYPES = frozenset(ScalarType)

EQUALS = FilterOperator("equals", None, None, _ALL_TYPES)
CONTAINS = FilterOperator(
    "contains", "contains", "_contains", frozenset({ScalarType.STRING, ScalarType.STRING_ARRAY})
)
STARTS_WITH = FilterOperator("startsWith", "startsWith", "_beginsWith", frozenset({ScalarType.STRING}))
GREATER_THAN = FilterOperator(
    "gt", "gt", "_greaterThan", frozenset({ScalarType.NUMBER, ScalarType.DATE})
)
LESS_THAN = FilterOperator("lt", "lt", "_lessThan", frozenset({ScalarType.NUMBER, ScalarType.DATE}))

OPERATORS: dict[str, FilterOperator] = {
    op.name: op for op in (EQUALS, CONTAINS, STARTS_WITH, GREATER_THAN, LESS_THAN)
}

# Query-string suffix -> operator ("field.contains=...")
URI_OPERATORS: dict[str, FilterOperator] = {
    op.suffix: op for op in OPERATORS.values() if op.suffix is not None
}

# Aliases accepted from callers building predicates in code
OPERATORS["greaterThan"] = GREATER_THAN
OPERATORS["lessThan"] = LESS_THAN


@dataclass(frozen=True)
class Predicate:
    """A filter operator applied to an expected value."""

    operator: FilterOperator
    value: Any

    @classmethod
    def of(cls, operator: str, value: Any) -> Predicate:
        try:
            return cls(OPERATORS[operator], value)
        except KeyError:
            raise ValueError(f"Unknown filter operator '{operator}'") from None

    def test(self, actual: Any) -> bool:
        return self.operator.test(actual, self.value)


@dataclass(frozen=True)
class SortSpec:
    field: str
    direction: str = "asc"

    def __post_init__(self) -> None:
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"Sort direction must be 'asc' or 'desc', got '{self.direction}'")

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


@dataclass(frozen=True)
class Pagination:
    limit: int | None = None
    offset: int = 0

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError("Pagination offset must not be negative")
        if self.limit is not None and self.limit < 0:
            raise ValueError("Pagination limit must not be negative")


def as_predicate(value: Any) -> Predicate:
    """Wrap a bare value as an equality predicate."""
    return value if isinstance(value, Predicate) else Predicate(EQUALS, value)


@dataclass(frozen=True)
class QueryState:
    """Accumulated filter/sort/pagination/expand for a collection address."""

    filter: Mapping[str, Predicate] = field(default_factory=dict)
    sort: SortSpec | None = None
    pagination: Pagination | None = None
    expand: tuple[str, ...] = ()

    def with_filter(self, filters: Mapping[str, Any]) -> QueryState:
        """Merge filters: union of keys, last write per key wins."""
        merged = dict(self.filter)
        for key, value in filters.items():
            merged[key] = as_predicate(value)
        return replace(self, filter=merged)

    def with_sort(self, sort: SortSpec) -> QueryState:
        return replace(self, sort=sort)

    def with_pagination(self, pagination: Pagination) -> QueryState:
        return replace(self, pagination=pagination)

    def with_expand(self, fields: Iterable[str]) -> QueryState:
        return replace(self, expand=tuple(dict.fromkeys(fields)))

    @property
    def is_empty(self) -> bool:
        return not self.filter and self.sort is None and self.pagination is None and not self.expand

    def filter_values(self) -> dict[str, Any]:
        """Return the filter as {field: expected value} (equality view)."""
        return {k: p.value for k, p in self.filter.items()}


EMPTY_QUERY = QueryState()


def _default_value_of(row: Any, field_name: str) -> Any:
    return row.get(field_name) if isinstance(row, Mapping) else None


def filter_rows(rows: list[Any], predicates: Mapping[str, Predicate],
                value_of: Callable[[Any, str], Any] = _default_value_of) -> list[Any]:
    if not predicates:
        return rows
    return [
        row for row in rows
        if all(pred.test(value_of(row, name)) for name, pred in predicates.items())
    ]


def sort_rows(rows: list[Any], sort: SortSpec | None,
              value_of: Callable[[Any, str], Any] = _default_value_of) -> list[Any]:
    """Stable single-key sort. None values always come last."""
    if sort is None:
        return rows
    present = [r for r in rows if value_of(r, sort.field) is not None]
    missing = [r for r in rows if value_of(r, sort.field) is None]
    try:
        ordered = sorted(present, key=lambda r: value_of(r, sort.field), reverse=sort.descending)
    except TypeError:
        # Mixed value types: fall back to comparing text
        ordered = sorted(present, key=lambda r: str(value_of(r, sort.field)),
                         reverse=sort.descending)
    return ordered + missing


def paginate_rows(rows: list[Any], pagination: Pagination | None) -> list[Any]:
    if pagination is None:
        return rows
    rows = rows[pagination.offset:]
    if pagination.limit is not None:
        rows = rows[:pagination.limit]
    return rows


def apply_query(rows: list[Any], state: QueryState,
                value_of: Callable[[Any, str], Any] = _default_value_of) -> list[Any]:
    """Apply filter, then sort, then pagination. Expansion is left to the caller."""
    rows = filter_rows(list(rows), state.filter, value_of)
    rows = sort_rows(rows, state.sort, value_of)
    return paginate_rows(rows, state.pagination)
