"""Error types with typed error codes.

Error code ranges:
- 1xxx: Parse (malformed URI)
- 2xxx: Routing (unknown scheme, unknown segment, unsupported addressing)
- 3xxx: Backing (round-trip failures, value type mismatches)
- 4xxx: Mutation (set on root, delete/move without a collection)
- 5xxx: Config
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Parse (1xxx)
    PARSE_MISSING_SCHEME = 1001
    PARSE_EMPTY_SCHEME = 1002
    PARSE_INVALID_SYNTAX = 1003
    PARSE_INVALID_INDEX = 1004
    PARSE_INVALID_QUERY = 1005

    # Routing (2xxx)
    ROUTING_UNKNOWN_SCHEME = 2001
    ROUTING_UNKNOWN_SEGMENT = 2002
    ROUTING_UNSUPPORTED_ADDRESSING = 2003
    ROUTING_INVALID_QUALIFIER = 2004
    ROUTING_INVALID_FILTER = 2005
    ROUTING_NOT_ENUMERABLE = 2006

    # Backing (3xxx)
    BACKING_ROUND_TRIP = 3001
    BACKING_TYPE_MISMATCH = 3002

    # Mutation (4xxx)
    MUTATION_CANNOT_SET_ROOT = 4001
    MUTATION_NO_PARENT_COLLECTION = 4002
    MUTATION_NOT_A_COLLECTION = 4003
    MUTATION_UNSUPPORTED = 4004

    # Config (5xxx)
    CONFIG_PARSE_ERROR = 5001
    CONFIG_INVALID_VALUE = 5002


@dataclass(eq=False)
class UriTreeError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'ROUTING_UNKNOWN_SEGMENT')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class ParseError(UriTreeError):
    """Malformed URI. Carries the character offset where lexing stopped."""

    position: int = 0

    @classmethod
    def missing_scheme(cls) -> ParseError:
        return cls(
            code=ErrorCode.PARSE_MISSING_SCHEME,
            message="Invalid URI: missing scheme (expected scheme://...)",
            position=0,
        )

    @classmethod
    def empty_scheme(cls) -> ParseError:
        return cls(
            code=ErrorCode.PARSE_EMPTY_SCHEME,
            message="Invalid URI: empty scheme",
            position=0,
        )

    @classmethod
    def syntax(cls, message: str, position: int) -> ParseError:
        return cls(
            code=ErrorCode.PARSE_INVALID_SYNTAX,
            message=f"Invalid URI: {message} at position {position}",
            position=position,
        )

    @classmethod
    def invalid_index(cls, text: str, position: int) -> ParseError:
        return cls(
            code=ErrorCode.PARSE_INVALID_INDEX,
            message=f"Invalid URI: index '{text}' is not an integer at position {position}",
            position=position,
            details={"index": text},
        )

    @classmethod
    def invalid_query(cls, reason: str, position: int) -> ParseError:
        return cls(
            code=ErrorCode.PARSE_INVALID_QUERY,
            message=f"Invalid URI query: {reason} at position {position}",
            position=position,
        )


@dataclass(eq=False)
class RoutingError(UriTreeError):
    """A URI that lexes but does not fit the registered schema."""

    alternatives: list[str] = field(default_factory=list)

    @classmethod
    def unknown_scheme(cls, scheme: str, known: list[str]) -> RoutingError:
        return cls(
            code=ErrorCode.ROUTING_UNKNOWN_SCHEME,
            message=f"Unknown scheme: {scheme}. Known: {', '.join(known)}",
            alternatives=list(known),
        )

    @classmethod
    def unknown_segment(cls, segment: str, available: list[str]) -> RoutingError:
        return cls(
            code=ErrorCode.ROUTING_UNKNOWN_SEGMENT,
            message=f"Unknown segment '{segment}'. Available: {', '.join(available)}",
            alternatives=list(available),
        )

    @classmethod
    def unsupported_addressing(
        cls, collection: str, mode: str, supported: list[str]
    ) -> RoutingError:
        return cls(
            code=ErrorCode.ROUTING_UNSUPPORTED_ADDRESSING,
            message=f"Collection '{collection}' does not support {mode} addressing",
            alternatives=list(supported),
        )

    @classmethod
    def invalid_qualifier(cls, segment: str, reason: str) -> RoutingError:
        return cls(
            code=ErrorCode.ROUTING_INVALID_QUALIFIER,
            message=f"Invalid qualifier on '{segment}': {reason}",
        )

    @classmethod
    def invalid_filter(cls, reason: str, available: list[str] | None = None) -> RoutingError:
        return cls(
            code=ErrorCode.ROUTING_INVALID_FILTER,
            message=reason,
            alternatives=list(available or []),
        )

    @classmethod
    def not_enumerable(cls, uri: str, supported: list[str]) -> RoutingError:
        return cls(
            code=ErrorCode.ROUTING_NOT_ENUMERABLE,
            message=f"Collection '{uri}' cannot be listed; address an element instead",
            alternatives=list(supported),
        )


@dataclass(eq=False)
class BackingError(UriTreeError):
    """Round-trip failure, wrapped with the URI that triggered it."""

    uri: str = ""

    @classmethod
    def round_trip(cls, uri: str, underlying: str) -> BackingError:
        return cls(
            code=ErrorCode.BACKING_ROUND_TRIP,
            message=f"{uri}: {underlying}",
            uri=uri,
            details={"underlying": underlying},
        )

    @classmethod
    def type_mismatch(cls, uri: str, expected: str, actual: Any) -> BackingError:
        return cls(
            code=ErrorCode.BACKING_TYPE_MISMATCH,
            message=f"{uri}: expected {expected}, got {type(actual).__name__}",
            uri=uri,
            details={"expected": expected, "actual": repr(actual)},
        )


@dataclass(eq=False)
class MutationError(UriTreeError):
    """Named failure conditions for create/move/delete/set."""

    uri: str = ""

    @classmethod
    def cannot_set_root(cls, uri: str) -> MutationError:
        return cls(
            code=ErrorCode.MUTATION_CANNOT_SET_ROOT,
            message=f"{uri}: cannot set root",
            uri=uri,
        )

    @classmethod
    def no_parent_collection(cls, uri: str, message: str) -> MutationError:
        return cls(
            code=ErrorCode.MUTATION_NO_PARENT_COLLECTION,
            message=f"{uri}: {message}",
            uri=uri,
        )

    @classmethod
    def not_a_collection(cls, uri: str, message: str) -> MutationError:
        return cls(
            code=ErrorCode.MUTATION_NOT_A_COLLECTION,
            message=f"{uri}: {message}",
            uri=uri,
        )

    @classmethod
    def unsupported(cls, uri: str, operation: str) -> MutationError:
        return cls(
            code=ErrorCode.MUTATION_UNSUPPORTED,
            message=f"{uri}: {operation} is not supported here",
            uri=uri,
            details={"operation": operation},
        )


@dataclass(eq=False)
class ConfigError(UriTreeError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> ConfigError:
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> ConfigError:
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class SchemaError(ValueError):
    """Raised while building or binding a schema. Never returned as a Result."""
