"""Parser for resource URIs.

Turns ``scheme://head[qualifier]/head...?query`` into a schema-independent
ParsedURI. Meaning (property, name address, id address) is only assigned
later by the router, which knows the schema.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Union
from urllib.parse import quote, unquote

import ply.yacc as yacc

from uritree.errors import ParseError
from uritree.parsing.uri_lexer import UriLexer
from uritree.query import URI_OPERATORS
from uritree.result import Err, Ok, Result
from uritree.uri import Id, Index, PathSegment, Prop, Root, is_integer

_SCHEME_RE = re.compile(r"[A-Za-z][A-Za-z0-9+.\-]*\Z")

# Reserved query keys; everything else is a filter
QUERY_KEYWORDS = ("sort", "limit", "offset", "expand")


@dataclass
class IndexQualifier:
    """``head[n]``"""

    value: int


@dataclass
class IdQualifier:
    """``head/1001``: a bare integer following an unqualified segment.

    `raw` keeps the original text so a collection whose numeric policy
    is NAME can address by name instead.
    """

    value: int
    raw: str


Qualifier = Union[IndexQualifier, IdQualifier]


@dataclass
class ParsedSegment:
    head: str
    qualifier: Qualifier | None = None
    position: int = 0


@dataclass
class FilterTerm:
    field: str
    operator: str
    raw_value: str
    position: int = 0


@dataclass
class ParsedQuery:
    """The query part, keys interpreted but values still raw text."""

    filters: list[FilterTerm] = field(default_factory=list)
    sort: tuple[str, str] | None = None
    limit: int | None = None
    offset: int | None = None
    expand: list[str] = field(default_factory=list)
    pairs: list[tuple[str, str | None]] = field(default_factory=list)

    def to_query_string(self) -> str:
        """Re-serialize the pairs in their original order."""
        out = []
        for key, value in self.pairs:
            if value is None:
                out.append(quote(key, safe="."))
            else:
                out.append(f"{quote(key, safe='.')}={quote(value, safe=',.')}")
        return "&".join(out)


@dataclass
class ParsedURI:
    scheme: str
    segments: list[ParsedSegment]
    query: ParsedQuery | None = None
    text: str = ""

    def path_segments(self) -> list[PathSegment]:
        """Schema-free segment sequence: heads become Prop, qualifiers Index/Id."""
        result: list[PathSegment] = [Root(self.scheme)]
        for seg in self.segments:
            result.append(Prop(seg.head))
            if isinstance(seg.qualifier, IndexQualifier):
                result.append(Index(seg.qualifier.value))
            elif isinstance(seg.qualifier, IdQualifier):
                result.append(Id(seg.qualifier.value))
        return result


class UriParser:
    """Parser for the path and query grammar."""

    tokens = UriLexer.tokens

    def __init__(self) -> None:
        self.lexer = UriLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self._offset = 0
        self._end = 0

    def p_uri_path(self, p: yacc.YaccProduction) -> None:
        """uri : segment_list"""
        p[0] = (p[1], None)

    def p_uri_query(self, p: yacc.YaccProduction) -> None:
        """uri : segment_list QMARK query"""
        p[0] = (p[1], p[3])

    def p_segment_list_single(self, p: yacc.YaccProduction) -> None:
        """segment_list : opt_segment"""
        p[0] = [p[1]] if p[1] is not None else []

    def p_segment_list_multiple(self, p: yacc.YaccProduction) -> None:
        """segment_list : segment_list SLASH opt_segment"""
        p[0] = p[1]
        if p[3] is not None:
            p[0].append(p[3])

    def p_opt_segment(self, p: yacc.YaccProduction) -> None:
        """opt_segment : segment
                       | empty"""
        p[0] = p[1]

    def p_segment_head(self, p: yacc.YaccProduction) -> None:
        """segment : TEXT"""
        p[0] = ParsedSegment(head=unquote(p[1]), position=p.lexpos(1) + self._offset)

    def p_segment_index(self, p: yacc.YaccProduction) -> None:
        """segment : TEXT LBRACKET TEXT RBRACKET"""
        text = unquote(p[3])
        if not is_integer(text):
            raise ParseError.invalid_index(text, p.lexpos(3) + self._offset)
        p[0] = ParsedSegment(
            head=unquote(p[1]),
            qualifier=IndexQualifier(int(text)),
            position=p.lexpos(1) + self._offset,
        )

    def p_query(self, p: yacc.YaccProduction) -> None:
        """query : pair_list
                 | empty"""
        p[0] = p[1] or []

    def p_pair_list_single(self, p: yacc.YaccProduction) -> None:
        """pair_list : pair"""
        p[0] = [p[1]]

    def p_pair_list_multiple(self, p: yacc.YaccProduction) -> None:
        """pair_list : pair_list AMP pair"""
        p[0] = p[1] + [p[3]]

    def p_pair_value(self, p: yacc.YaccProduction) -> None:
        """pair : QTEXT EQUALS QTEXT"""
        p[0] = (unquote(p[1]), unquote(p[3]), p.lexpos(1) + self._offset)

    def p_pair_empty_value(self, p: yacc.YaccProduction) -> None:
        """pair : QTEXT EQUALS"""
        p[0] = (unquote(p[1]), "", p.lexpos(1) + self._offset)

    def p_pair_flag(self, p: yacc.YaccProduction) -> None:
        """pair : QTEXT"""
        p[0] = (unquote(p[1]), None, p.lexpos(1) + self._offset)

    def p_empty(self, p: yacc.YaccProduction) -> None:
        """empty :"""
        p[0] = None

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise ParseError.syntax(f"unexpected '{p.value}'", p.lexpos + self._offset)
        raise ParseError.syntax("unexpected end of input", self._end)

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def parse(self, uri: str) -> ParsedURI:
        """Parse a URI, raising ParseError with a character position on failure."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        marker = uri.find("://")
        if marker < 0:
            raise ParseError.missing_scheme()
        scheme = uri[:marker]
        if not scheme:
            raise ParseError.empty_scheme()
        if not _SCHEME_RE.match(scheme):
            raise ParseError.syntax(f"invalid scheme '{scheme}'", 0)

        rest = uri[marker + 3:]
        self._offset = marker + 3
        self._end = len(uri)
        self.lexer.input(rest, self._offset)
        segments, pairs = self.parser.parse(lexer=self.lexer.lexer)

        return ParsedURI(
            scheme=scheme,
            segments=_fold_id_qualifiers(segments),
            query=_interpret_query(pairs) if pairs is not None else None,
            text=uri,
        )


def _fold_id_qualifiers(segments: list[ParsedSegment]) -> list[ParsedSegment]:
    """Attach a bare integer segment to an unqualified predecessor as an id."""
    folded: list[ParsedSegment] = []
    for seg in segments:
        prev = folded[-1] if folded else None
        if (
            prev is not None
            and prev.qualifier is None
            and seg.qualifier is None
            and is_integer(seg.head)
        ):
            prev.qualifier = IdQualifier(int(seg.head), raw=seg.head)
            continue
        folded.append(seg)
    return folded


def _parse_count(key: str, value: str | None, position: int) -> int:
    if value is None or not value.isdigit():
        raise ParseError.invalid_query(f"{key} must be a non-negative integer", position)
    return int(value)


def _interpret_query(pairs: list[tuple[str, str | None, int]]) -> ParsedQuery:
    query = ParsedQuery()
    for key, value, position in pairs:
        query.pairs.append((key, value))
        if key == "sort":
            if not value:
                raise ParseError.invalid_query("sort requires a field", position)
            sort_field, _, direction = value.partition(".")
            if direction and direction not in ("asc", "desc"):
                # A dotted field name without an explicit direction
                sort_field, direction = value, "asc"
            query.sort = (sort_field, direction or "asc")
        elif key == "limit":
            query.limit = _parse_count(key, value, position)
        elif key == "offset":
            query.offset = _parse_count(key, value, position)
        elif key == "expand":
            query.expand.extend(f for f in (value or "").split(",") if f)
        else:
            field_name, dot, suffix = key.rpartition(".")
            if not dot:
                field_name, operator = key, "equals"
            elif suffix in URI_OPERATORS:
                operator = URI_OPERATORS[suffix].name
            else:
                raise ParseError.invalid_query(f"unknown filter operator '{suffix}'", position)
            query.filters.append(FilterTerm(field_name, operator, value or "", position))
    return query


_parser: UriParser | None = None


def parse_uri(uri: str) -> ParsedURI:
    """Parse with a shared parser instance. Raises ParseError."""
    global _parser
    if _parser is None:
        _parser = UriParser()
    return _parser.parse(uri)


def lex_uri(uri: str) -> Result[ParsedURI]:
    """Parse a URI into scheme, segments and query, as a Result."""
    try:
        return Ok(parse_uri(uri))
    except ParseError as e:
        return Err(e)
