"""Tests for specifier navigation, resolution and mutation."""

from datetime import datetime

import pytest

from uritree.backings.memory import MemoryStore
from uritree.config import ResolverConfig
from uritree.errors import ErrorCode, MutationError
from uritree.query import Predicate, STARTS_WITH
from uritree.result import Err, Ok
from uritree.router import Resolver, SchemeRegistry
from uritree.specifier import (
    CollectionSpecifier,
    ComputedSpecifier,
    CompoundSpecifier,
    Specifier,
    specifier_for,
)
from uritree.types import SchemaNode, collection, compound, lazy, scalar

INBOX = "mail://accounts/Work/mailboxes/INBOX"
MESSAGES = f"{INBOX}/messages"


def _notes_resolver(data, config=None, **mutations):
    note = compound("Note", {"name": scalar("string"), "body": lazy("string")})
    root = compound("Root", {"notes": collection(note, ("index", "name"), **mutations)})
    registry = SchemeRegistry()
    registry.register_scheme("n", MemoryStore(data, scheme="n").root, root)
    return Resolver(registry, config)


class TestNavigation:
    """Tests for moving between specifiers without round trips."""

    def test_attribute_navigation(self, resolver, store):
        """Test properties and addressers chain from the root."""
        root = resolver.root("mail").unwrap()

        subject = root.accounts.by_name("Work").mailboxes.by_name("INBOX").messages.by_id(1001).subject

        assert subject.uri() == f"{MESSAGES}/1001/subject"
        assert store.round_trips == 0
        assert subject.resolve().value == "Quarterly report"

    def test_item_access(self, spec):
        """Test properties by subscript and child()."""
        account = spec("mail://accounts/Work")

        assert account["name"].uri() == "mail://accounts/Work/name"
        assert account.child("mailboxes").uri() == "mail://accounts/Work/mailboxes"
        with pytest.raises(KeyError):
            account["bogus"]

    def test_unknown_property(self, spec):
        """Test the error lists available properties."""
        account = spec("mail://accounts/Work")
        with pytest.raises(AttributeError, match="'Account' has no property 'bogus'"):
            account.bogus

    def test_properties_in_dir(self, spec):
        """Test properties show up for introspection."""
        account = spec("mail://accounts/Work")

        assert account.properties() == ["name", "mailboxes"]
        assert "mailboxes" in dir(account)

    def test_addressers_follow_declared_modes(self, spec):
        """Test only declared addressing modes are available."""
        accounts = spec("mail://accounts")
        mailboxes = spec("mail://accounts/Work/mailboxes")
        messages = spec(MESSAGES)

        assert all(hasattr(accounts, m) for m in ("by_index", "by_name", "by_id"))
        assert hasattr(mailboxes, "by_name")
        assert not hasattr(mailboxes, "by_id")
        assert not hasattr(messages, "by_name")
        with pytest.raises(AttributeError, match="does not support id addressing"):
            mailboxes.by_id(1)

    def test_unrelated_attribute(self, spec):
        """Test other missing attributes raise normally."""
        assert not hasattr(spec("mail://accounts"), "frobnicate")

    def test_parent(self, spec):
        """Test children point back at their specifier."""
        account = spec("mail://accounts/Work")
        mailboxes = account.mailboxes
        inbox = mailboxes.by_name("INBOX")

        assert mailboxes.parent() is account
        assert inbox.parent() is mailboxes
        assert mailboxes.whose(name="INBOX").parent() is account

    def test_repr(self, spec):
        """Test the repr names the class and URI."""
        assert repr(spec("mail://accounts")) == "<CollectionSpecifier mail://accounts>"

    def test_cannot_bind_base_node(self, store):
        """Test binding needs a concrete schema node."""
        with pytest.raises(TypeError):
            specifier_for(SchemaNode(), store.root())


class TestResolution:
    """Tests for resolve() on each specifier kind."""

    def test_compound_resolves_eager_children(self, spec):
        """Test eager scalars are inlined, lazy ones and collections are not."""
        message = spec(f"{MESSAGES}/1001").resolve().unwrap()

        assert message["subject"] == "Quarterly report"
        assert message["dateReceived"] == datetime(2024, 3, 1, 9, 0)
        assert message["flagged"] is True
        assert isinstance(message["content"], Specifier)
        assert message["content"].uri() == f"{MESSAGES}/1001/content"
        assert isinstance(message["recipients"], CollectionSpecifier)

    def test_lazy_scalar_resolves_on_demand(self, spec):
        """Test a lazy child is resolved separately."""
        message = spec(f"{MESSAGES}/1002").resolve().unwrap()
        assert message["content"].resolve().value == "Tacos at noon?"

    def test_computed(self, spec):
        """Test computed values see the owning element."""
        preview = spec(f"{MESSAGES}/1001/preview")

        assert isinstance(preview, ComputedSpecifier)
        assert preview.resolve().value == "Numbers"
        assert preview.uri() == f"{MESSAGES}/1001/preview"

    def test_computed_failure(self, spec, mail_data):
        """Test errors raised by the function are returned."""
        mail_data["accounts"][0]["mailboxes"][0]["messages"][1]["content"] = 42

        result = spec(f"{MESSAGES}/1002/preview").resolve()
        assert "computed value failed" in result.message

    def test_namespace(self, spec):
        """Test a namespace resolves over the parent's position."""
        root = spec("mail://").resolve().unwrap()

        assert isinstance(root["accounts"], CollectionSpecifier)
        assert isinstance(root["settings"], dict)
        assert root["settings"]["signature"].resolve().value == "Sent from uritree"

    def test_type_mismatch(self, spec, mail_data):
        """Test backing values are checked against the declared type."""
        mail_data["signature"] = 5

        result = spec("mail://settings/signature").resolve()

        assert result.error.code is ErrorCode.BACKING_TYPE_MISMATCH
        assert result.message == "mail://settings/signature: expected string, got int"

    def test_missing_element(self, spec):
        """Test a missing element is an error, not an exception."""
        result = spec("mail://accounts/Nope").resolve()
        assert result.error.code is ErrorCode.BACKING_ROUND_TRIP

    def test_collection_values(self, spec):
        """Test collection elements carry their URI."""
        rows = spec("mail://accounts").resolve().unwrap()

        assert [r["name"] for r in rows] == ["Work", "Home"]
        assert [r["_uri"] for r in rows] == ["mail://accounts/Work", "mail://accounts/Home"]

    def test_collection_uris(self, uri_resolver):
        """Test the uris result mode."""
        messages = uri_resolver.specifier_from_uri(MESSAGES).unwrap()
        assert messages.resolve().value == [f"{MESSAGES}/1001", f"{MESSAGES}/1002"]

    def test_uri_key_is_configurable(self, schemes):
        """Test the element URI key can be renamed."""
        resolver = Resolver(schemes, ResolverConfig(uri_key="href"))
        rows = resolver.specifier_from_uri("mail://accounts").unwrap().resolve().unwrap()
        assert rows[0]["href"] == "mail://accounts/Work"

    def test_empty_collection(self, spec):
        """Test an empty collection resolves to an empty list."""
        assert spec("mail://accounts/Home/mailboxes/INBOX/messages").resolve().value == []

    def test_non_enumerable_collection(self):
        """Test a collection that cannot be listed still addresses elements."""
        resolver = _notes_resolver({"notes": [{"name": "a", "body": "x"}]}, enumerable=False)
        notes = resolver.specifier_from_uri("n://notes").unwrap()

        result = notes.resolve()

        assert result.error.code is ErrorCode.ROUTING_NOT_ENUMERABLE
        assert result.error.alternatives == ["index", "name"]
        assert notes.by_name("a").resolve().value["name"] == "a"

    def test_exists(self, spec):
        """Test exists reports reachability."""
        assert spec(INBOX).exists()
        assert not spec("mail://accounts/Work/mailboxes/Nope").exists()


class TestExpand:
    """Tests for resolving lazy fields inline."""

    def test_expand(self, spec):
        """Test expanded fields replace their specifiers."""
        rows = spec(MESSAGES).expand("content").resolve().unwrap()
        assert [r["content"] for r in rows] == ["Numbers are up this quarter.", "Tacos at noon?"]

    def test_expand_failure_keeps_specifier(self):
        """Test a failed expansion leaves the specifier in place."""
        resolver = _notes_resolver({"notes": [{"name": "a", "body": "x"}, {"name": "b"}]})
        notes = resolver.specifier_from_uri("n://notes?expand=body").unwrap()

        rows = notes.resolve().unwrap()

        assert rows[0]["body"] == "x"
        assert isinstance(rows[1]["body"], Specifier)

    def test_strict_expand(self):
        """Test strict expansion fails the whole resolution."""
        resolver = _notes_resolver(
            {"notes": [{"name": "a", "body": "x"}, {"name": "b"}]},
            ResolverConfig(strict_expand=True),
        )
        notes = resolver.specifier_from_uri("n://notes?expand=body").unwrap()

        result = notes.resolve()
        assert result.message == "n://notes[1]/body: property 'body' not found"


class TestQueryBuilders:
    """Tests for whose, sort_by and paginate."""

    def test_whose_plain_value(self, spec):
        """Test a bare value means equality."""
        unread = spec(MESSAGES).whose(readStatus=False)

        assert unread.uri() == f"{MESSAGES}?readStatus=false"
        assert [r["id"] for r in unread.resolve().unwrap()] == [1001]

    def test_whose_operator_pair(self, spec):
        """Test (operator, value) pairs."""
        rows = spec(MESSAGES).whose(subject=("contains", "plans")).resolve().unwrap()
        assert [r["id"] for r in rows] == [1002]

    def test_whose_predicate(self, spec):
        """Test explicit predicates."""
        mailboxes = spec("mail://accounts/Work/mailboxes")
        rows = mailboxes.whose({"name": Predicate(STARTS_WITH, "Arch")}).resolve().unwrap()
        assert [r["name"] for r in rows] == ["Archive"]

    def test_filters_merge(self, spec):
        """Test chained whose calls merge by key."""
        messages = (
            spec(MESSAGES)
            .whose(readStatus=False)
            .whose(sender="carol@example.com")
            .whose(readStatus=True)
        )

        assert messages.delegate.query_state().filter_values() == {
            "readStatus": True,
            "sender": "carol@example.com",
        }
        assert [r["id"] for r in messages.resolve().unwrap()] == [1002]

    def test_invalid_operator_for_type(self, spec):
        """Test operators are checked against the field type."""
        with pytest.raises(ValueError, match="does not apply to string field 'subject'"):
            spec(MESSAGES).whose(subject=("gt", "a"))

    def test_sort_and_paginate(self, spec):
        """Test sorting then paging."""
        messages = spec(MESSAGES).sort_by("dateReceived", "desc").paginate(limit=1)

        assert messages.uri() == f"{MESSAGES}?sort=dateReceived.desc&limit=1"
        assert [r["id"] for r in messages.resolve().unwrap()] == [1002]

    def test_builders_do_not_mutate(self, spec):
        """Test each builder returns a new specifier."""
        messages = spec(MESSAGES)
        messages.whose(readStatus=True)
        assert messages.uri() == MESSAGES

    def test_query_uri_routes_back(self, resolver, spec):
        """Test a built query URI resolves to the same rows."""
        built = spec("mail://accounts/Work/mailboxes").whose(unreadCount=("gt", 0)).sort_by("name")
        routed = resolver.specifier_from_uri(built.uri()).unwrap()

        assert routed.resolve().value == built.resolve().value


class TestMutations:
    """Tests for set, create, delete and move through specifiers."""

    def test_set(self, spec):
        """Test a settable property."""
        read = spec(f"{MESSAGES}/1001/readStatus")

        assert read.set(True).ok
        assert read.resolve().value is True

    def test_set_not_settable(self, spec):
        """Test set is refused on plain properties."""
        result = spec(f"{MESSAGES}/1001/subject").set("x")
        assert result.error.code is ErrorCode.MUTATION_UNSUPPORTED

    def test_set_wrong_type(self, spec):
        """Test set checks the value type before writing."""
        result = spec(f"{MESSAGES}/1001/readStatus").set("yes")
        assert result.error.code is ErrorCode.BACKING_TYPE_MISMATCH

    def test_set_computed(self, spec):
        """Test computed values cannot be set."""
        assert not spec(f"{MESSAGES}/1001/preview").set("x").ok

    def test_create(self, spec):
        """Test the returned URI routes to the new element."""
        result = spec(MESSAGES).create(subject="Hello")

        assert result.value == f"{MESSAGES}/1000"
        assert spec(f"{result.value}/subject").resolve().value == "Hello"

    def test_create_then_list(self, spec):
        """Test an element created with only some properties still lists."""
        spec(MESSAGES).create(subject="Hello").unwrap()

        rows = spec(MESSAGES).resolve().unwrap()

        assert len(rows) == 3
        assert rows[2]["subject"] == "Hello"
        assert rows[2]["sender"] is None
        assert rows[2]["preview"] is None
        assert rows[2]["_uri"] == f"{MESSAGES}/1000"

    def test_create_unsupported(self, spec):
        """Test collections without create."""
        result = spec("mail://accounts/Work/mailboxes").create(name="Drafts")
        assert result.error.code is ErrorCode.MUTATION_UNSUPPORTED

    def test_delete(self, spec):
        """Test delete returns the URI the element had."""
        message = spec(f"{MESSAGES}/1002")

        assert message.delete().value == f"{MESSAGES}/1002"
        assert not message.exists()

    def test_delete_unsupported(self, spec):
        """Test elements of collections without delete."""
        result = spec(INBOX).delete()
        assert result.error.code is ErrorCode.MUTATION_UNSUPPORTED

    def test_delete_outside_collection(self, spec):
        """Test only elements can be deleted."""
        result = spec(MESSAGES).delete()
        assert result.error.code is ErrorCode.MUTATION_NO_PARENT_COLLECTION

    def test_move(self, spec):
        """Test move returns the new URI."""
        message = spec(f"{MESSAGES}/1001")
        archive = spec("mail://accounts/Work/mailboxes/Archive/messages")

        result = message.move_to(archive)

        assert result.value == "mail://accounts/Work/mailboxes/Archive/messages/1001"
        assert spec(f"{result.value}/subject").resolve().value == "Quarterly report"
        assert not message.exists()

    def test_move_to_non_collection(self, spec):
        """Test the destination must be a collection."""
        result = spec(f"{MESSAGES}/1001").move_to(spec("mail://settings/signature"))
        assert result.error.code is ErrorCode.MUTATION_NOT_A_COLLECTION

    def test_move_unsupported(self, spec):
        """Test elements of collections without move."""
        result = spec(INBOX).move_to(spec("mail://accounts/Home/mailboxes"))
        assert result.error.code is ErrorCode.MUTATION_UNSUPPORTED


class TestCustomMutations:
    """Tests for handler-backed create, delete and move."""

    def test_custom_create(self):
        """Test a handler's string result becomes the URI."""
        calls = []

        def create(delegate, properties):
            calls.append(properties)
            return f"{delegate.uri()}/{properties['name']}"

        resolver = _notes_resolver({"notes": []}, create=create)
        notes = resolver.specifier_from_uri("n://notes").unwrap()

        assert notes.create(name="todo").value == "n://notes/todo"
        assert calls == [{"name": "todo"}]

    def test_custom_delete_result(self):
        """Test a handler may return a Result."""
        resolver = _notes_resolver(
            {"notes": [{"name": "a", "body": ""}]},
            delete=lambda delegate: Ok(delegate.uri()),
        )
        note = resolver.specifier_from_uri("n://notes/a").unwrap()
        assert note.delete().value == "n://notes/a"

    def test_custom_move(self):
        """Test a move handler gets both delegates."""
        seen = []

        def move(source, destination):
            seen.append((source.uri(), destination.uri()))
            return Err(MutationError.unsupported(source.uri(), "move"))

        resolver = _notes_resolver({"notes": [{"name": "a", "body": ""}]}, move=move)
        note = resolver.specifier_from_uri("n://notes/a").unwrap()
        notes = resolver.specifier_from_uri("n://notes").unwrap()

        assert not note.move_to(notes).ok
        assert seen == [("n://notes/a", "n://notes")]

    def test_handler_errors_are_returned(self):
        """Test library errors raised by a handler become results."""

        def delete(delegate):
            raise MutationError.unsupported(delegate.uri(), "delete")

        resolver = _notes_resolver({"notes": [{"name": "a", "body": ""}]}, delete=delete)
        result = resolver.specifier_from_uri("n://notes/a").unwrap().delete()
        assert result.error.code is ErrorCode.MUTATION_UNSUPPORTED

    def test_bad_handler_result(self):
        """Test handlers must return a Result or a URI."""
        resolver = _notes_resolver({"notes": []}, create=lambda delegate, props: 5)
        result = resolver.specifier_from_uri("n://notes").unwrap().create()
        assert result.message == "n://notes: mutation handler returned int"


class TestIdentity:
    """Tests for equality and hashing."""

    def test_equal_by_schema_and_uri(self, spec):
        """Test two routes to the same address are equal."""
        assert spec("mail://accounts/Work") == spec("mail://accounts/Work")
        assert spec("mail://accounts/Work") != spec("mail://accounts/Home")
        assert spec("mail://accounts[0]") != spec("mail://accounts/Work")

    def test_hashable(self, spec):
        """Test specifiers can be set members."""
        found = {spec("mail://accounts/Work"), spec("mail://accounts/Work"), spec("mail://accounts")}
        assert len(found) == 2

    def test_compound_specifier_type(self, spec):
        """Test elements bind to compound specifiers."""
        assert isinstance(spec("mail://accounts/Work"), CompoundSpecifier)


class TestScenarios:
    """End-to-end create and move over small collections."""

    def _resolver(self, data):
        note = compound("Note", {"name": scalar("string"), "body": lazy("string")})
        root = compound("Root", {
            "src": collection(note, ("index", "name"), create=True, move=True),
            "dst": collection(note, ("index", "name"), create=True, move=True),
        })
        registry = SchemeRegistry()
        registry.register_scheme("n", MemoryStore(data, scheme="n").root, root)
        return Resolver(registry)

    def test_create_then_find(self):
        """Test a created element is listed and reachable at its URI."""
        resolver = self._resolver({"src": [{"name": "A"}, {"name": "B"}], "dst": []})
        src = resolver.specifier_from_uri("n://src").unwrap()

        created = src.create(name="X")

        assert created.value == "n://src/X"
        assert len(src.resolve().unwrap()) == 3
        found = resolver.specifier_from_uri(created.value).unwrap().resolve().unwrap()
        assert found["name"] == "X"

    def test_create_with_delimiters_in_name(self):
        """Test a created element whose name holds URI delimiters routes back."""
        resolver = self._resolver({"src": [], "dst": []})
        src = resolver.specifier_from_uri("n://src").unwrap()

        created = src.create(name="[Gmail] What?")

        assert created.value == "n://src/%5BGmail%5D%20What%3F"
        found = resolver.specifier_from_uri(created.value).unwrap().resolve().unwrap()
        assert found["name"] == "[Gmail] What?"

    def test_move_between_collections(self):
        """Test a moved element leaves the source and appears in the destination."""
        resolver = self._resolver({"src": [{"name": "M", "body": "b"}], "dst": []})
        src = resolver.specifier_from_uri("n://src").unwrap()
        dst = resolver.specifier_from_uri("n://dst").unwrap()

        moved = src.by_name("M").move_to(dst)

        assert moved.value == "n://dst/M"
        assert src.resolve().value == []
        assert [r["name"] for r in dst.resolve().unwrap()] == ["M"]
