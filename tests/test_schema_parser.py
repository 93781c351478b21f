"""Tests for the schema definition DSL."""

import pytest

from uritree.errors import SchemaError
from uritree.parsing import SchemaParser
from uritree.parsing.schema_lexer import SchemaLexer
from uritree.types import (
    AddressingMode,
    CollectionSchema,
    CompoundSchema,
    MutationKind,
    NamespaceSchema,
    NumericSegments,
    ScalarSchema,
    ScalarType,
)

from conftest import MAIL_SCHEMA, first_word


class TestSchemaLexer:
    """Tests for the schema lexer."""

    def test_tokenize_property(self):
        """Test tokenizing a compound with one property."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("Account { name: string }")
        token_types = [t.type for t in tokens]

        assert token_types == [
            "IDENTIFIER",
            "LBRACE",
            "IDENTIFIER",
            "COLON",
            "IDENTIFIER",
            "RBRACE",
        ]

    def test_tokenize_keywords_and_strings(self):
        """Test reserved words and quoted backing names."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize('flag: settable boolean as "isFlagged"')
        assert [t.type for t in tokens] == ["IDENTIFIER", "COLON", "SETTABLE", "IDENTIFIER", "AS", "STRING"]
        assert tokens[-1].value == "isFlagged"

    def test_comments_ignored(self):
        """Test that comments produce no tokens."""
        lexer = SchemaLexer()
        lexer.build()

        tokens = lexer.tokenize("# a comment\nroot Mail {}")
        assert [t.type for t in tokens] == ["ROOT", "IDENTIFIER", "LBRACE", "RBRACE"]

    def test_illegal_character(self):
        """Test that illegal characters raise SyntaxError with a line number."""
        lexer = SchemaLexer()
        lexer.build()

        with pytest.raises(SyntaxError, match="line 2"):
            lexer.tokenize("Account {\n  name: @ }")


class TestSchemaParser:
    """Tests for parsing full schemas."""

    def _parse(self):
        return SchemaParser({"first_word": first_word}).parse(MAIL_SCHEMA)

    def test_root(self):
        """Test the declared root is recorded and bound."""
        registry = self._parse()
        root = registry.root()

        assert registry.root_name == "Mail"
        assert root.property_names() == ["accounts", "settings"]

    def test_scalars_and_modifiers(self):
        """Test scalar types, lazy, settable and alias."""
        message = self._parse().get_or_raise("Message")

        subject = message.get_property("subject")
        assert isinstance(subject, ScalarSchema)
        assert subject.type is ScalarType.STRING
        assert not subject.lazy

        assert message.get_property("content").lazy  # type: ignore[union-attr]
        assert message.get_property("readStatus").settable  # type: ignore[union-attr]
        assert message.get_property("flagged").backing_name("flagged") == "isFlagged"  # type: ignore[union-attr]
        assert message.get_property("dateReceived").type is ScalarType.DATE  # type: ignore[union-attr]

    def test_computed_property(self):
        """Test computed properties look up their function."""
        preview = self._parse().get_or_raise("Message").get_property("preview")

        assert isinstance(preview, ScalarSchema)
        assert preview.computed is first_word
        assert preview.type is ScalarType.STRING

    def test_collection(self):
        """Test addressing modes and mutation clauses."""
        mailbox = self._parse().get_or_raise("Mailbox")
        messages = mailbox.get_property("messages")

        assert isinstance(messages, CollectionSchema)
        assert messages.addressing == frozenset({AddressingMode.INDEX, AddressingMode.ID})
        assert messages.create.kind is MutationKind.DEFAULT
        assert messages.delete.kind is MutationKind.DEFAULT
        assert messages.move.kind is MutationKind.DEFAULT

        mailboxes = mailbox.get_property("mailboxes")
        assert not mailboxes.create.available  # type: ignore[union-attr]

    def test_self_reference(self):
        """Test a collection whose item is its own containing node."""
        registry = self._parse()
        mailbox = registry.get_or_raise("Mailbox")
        assert mailbox.get_property("mailboxes").item_schema is mailbox  # type: ignore[union-attr]

    def test_namespace(self):
        """Test namespace blocks become NamespaceSchema properties."""
        settings = self._parse().root().get_property("settings")

        assert isinstance(settings, NamespaceSchema)
        assert settings.property_names() == ["signature"]

    def test_forward_reference(self):
        """Test a node may reference one declared after it."""
        registry = SchemaParser().parse(
            "root Library { shelves: Shelf[index] }\nShelf { label: string }"
        )
        shelves = registry.root().get_property("shelves")
        assert shelves.item_schema is registry.get("Shelf")  # type: ignore[union-attr]

    def test_nested_compound_property(self):
        """Test a property typed by a compound name."""
        registry = SchemaParser().parse(
            "Address { city: string }\nroot Person { home: Address }"
        )
        home = registry.root().get_property("home")
        assert isinstance(home, CompoundSchema)
        assert home is registry.get("Address")

    def test_numeric_policy_clause(self):
        """Test the numeric clause sets the collection policy."""
        registry = SchemaParser().parse(
            "Tag { name: string }\nroot Tags { tags: Tag[name, id] numeric name }"
        )
        tags = registry.root().get_property("tags")
        assert tags.numeric_policy is NumericSegments.NAME  # type: ignore[union-attr]

    def test_enumerable_only_collection(self):
        """Test Item[] declares a collection with no addressing."""
        registry = SchemaParser().parse("Row { v: number }\nroot Log { rows: Row[] }")
        rows = registry.root().get_property("rows")
        assert rows.addressing == frozenset()  # type: ignore[union-attr]
        assert rows.enumerable  # type: ignore[union-attr]

    def test_custom_mutation_handler(self):
        """Test create = fn binds a custom handler."""

        def make_row(delegate, props):
            return "log://rows/1"

        registry = SchemaParser({"make_row": make_row}).parse(
            "Row { v: number }\nroot Log { rows: Row[index] create = make_row }"
        )
        rows = registry.root().get_property("rows")
        assert rows.create.kind is MutationKind.CUSTOM  # type: ignore[union-attr]
        assert rows.create.handler is make_row  # type: ignore[union-attr]

    def test_unknown_function(self):
        """Test an unmapped computed function is rejected."""
        with pytest.raises(SchemaError, match="Unknown function 'missing'"):
            SchemaParser().parse("root R { v: computed string = missing }")

    def test_unresolved_type(self):
        """Test unresolvable references are reported together."""
        with pytest.raises(ValueError, match=r"Cannot resolve types: \['Missing'\]"):
            SchemaParser().parse("root R { items: Missing[index] }")

    def test_requires_one_root(self):
        """Test that zero or two roots are rejected."""
        with pytest.raises(SchemaError, match="exactly one root"):
            SchemaParser().parse("A { v: number }")
        with pytest.raises(SchemaError, match="exactly one root"):
            SchemaParser().parse("root A { v: number }\nroot B { v: number }")

    def test_duplicate_node(self):
        """Test a node declared twice."""
        with pytest.raises(SchemaError, match="already defined"):
            SchemaParser().parse("A { v: number }\nA { w: number }\nroot R { a: A }")

    def test_duplicate_property(self):
        """Test a property declared twice in one node."""
        with pytest.raises(SchemaError, match="declared twice"):
            SchemaParser().parse("root R { v: number, v: string }")

    def test_lazy_compound_rejected(self):
        """Test modifiers on a compound-typed property."""
        with pytest.raises(SchemaError, match="not a scalar type"):
            SchemaParser().parse("A { v: number }\nroot R { a: lazy A }")

    def test_syntax_error(self):
        """Test malformed input raises SyntaxError."""
        with pytest.raises(SyntaxError):
            SchemaParser().parse("root R { v: }")

    def test_parser_is_reusable(self):
        """Test one parser instance parses several schemas."""
        parser = SchemaParser()
        first = parser.parse("root A { v: number }")
        second = parser.parse("root B { w: string }")

        assert first.root_name == "A"
        assert second.root_name == "B"
        assert "A" not in second
