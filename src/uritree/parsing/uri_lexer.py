"""Lexer for the path and query parts of a resource URI."""

import ply.lex as lex

from uritree.errors import ParseError


class UriLexer:
    """Lexer for tokenizing everything after ``scheme://``.

    The path is lexed in the initial state; a ``?`` switches to the exclusive
    ``query`` state for the rest of the input. Only the literal characters
    ``[``, ``]`` and ``?`` are delimiters; their escapes (``%5B``, ``%5D``,
    ``%3F``) stay inside TEXT so encoded names decode back unchanged.
    """

    states = (("query", "exclusive"),)

    # Token list
    tokens = [
        "TEXT",
        "SLASH",
        "LBRACKET",
        "RBRACKET",
        "QMARK",
        "AMP",
        "EQUALS",
        "QTEXT",
    ]

    # Simple tokens
    t_SLASH = r"/"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"

    t_query_AMP = r"&"
    t_query_EQUALS = r"="

    # Whitespace is significant inside URIs
    t_ignore = ""
    t_query_ignore = ""

    def __init__(self) -> None:
        self.lexer: lex.LexToken = None  # type: ignore
        self.offset = 0

    def t_QMARK(self, t: lex.LexToken) -> lex.LexToken:
        r"\?"
        t.lexer.begin("query")
        return t

    def t_TEXT(self, t: lex.LexToken) -> lex.LexToken:
        r"(?:[^/\[\]?%]|%[0-9A-Fa-f]{2})+"
        return t

    def t_query_QTEXT(self, t: lex.LexToken) -> lex.LexToken:
        r"(?:[^&=%]|%[0-9A-Fa-f]{2})+"
        return t

    def t_error(self, t: lex.LexToken) -> None:
        raise ParseError.syntax(f"illegal character '{t.value[0]}'", t.lexpos + self.offset)

    def t_query_error(self, t: lex.LexToken) -> None:
        raise ParseError.invalid_query(f"illegal character '{t.value[0]}'", t.lexpos + self.offset)

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str, offset: int = 0) -> None:
        """Set the input string to tokenize.

        `offset` is the position of `data` within the full URI, added to
        error positions.
        """
        self.offset = offset
        self.lexer.begin("INITIAL")
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str, offset: int = 0) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data, offset)
        return list(iter(self.token, None))
