"""Parsing module for the schema DSL and resource URIs."""

from uritree.parsing.schema_parser import SchemaParser
from uritree.parsing.uri_parser import (
    IdQualifier,
    IndexQualifier,
    ParsedQuery,
    ParsedSegment,
    ParsedURI,
    UriParser,
    lex_uri,
    parse_uri,
)

__all__ = [
    "IdQualifier",
    "IndexQualifier",
    "ParsedQuery",
    "ParsedSegment",
    "ParsedURI",
    "SchemaParser",
    "UriParser",
    "lex_uri",
    "parse_uri",
]
