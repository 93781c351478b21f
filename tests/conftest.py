"""Shared fixtures: a small mail-like schema over in-memory data."""

import copy
import logging

import pytest
import structlog

from uritree.backings.memory import MemoryStore
from uritree.config import ResolverConfig
from uritree.parsing import SchemaParser
from uritree.router import Resolver, SchemeRegistry

MAIL_SCHEMA = """
# Mail-like test schema
Recipient {
    name: string,
    address: string,
}

Message {
    id: number,
    subject: string,
    sender: string,
    dateReceived: date,
    readStatus: settable boolean,
    flagged: boolean as "isFlagged",
    content: lazy string,
    preview: computed string = first_word,
    recipients: Recipient[name, index],
}

Mailbox {
    name: string,
    unreadCount: number,
    messages: Message[index, id] create delete move,
    mailboxes: Mailbox[name, index],
}

Account {
    name: string,
    mailboxes: Mailbox[name, index],
}

root Mail {
    accounts: Account[name, index, id],
    namespace settings {
        signature: lazy string,
    },
}
"""


def first_word(message):
    words = message.get("content", "").split()
    return words[0] if words else None


def _message(id_value, subject, sender, received, read, flagged, content, recipients=()):
    return {
        "id": id_value,
        "subject": subject,
        "sender": sender,
        "dateReceived": received,
        "readStatus": read,
        "isFlagged": flagged,
        "content": content,
        "recipients": list(recipients),
    }


MAIL_DATA = {
    "signature": "Sent from uritree",
    "accounts": [
        {
            "id": "acc1",
            "name": "Work",
            "mailboxes": [
                {
                    "name": "INBOX",
                    "unreadCount": 5,
                    "messages": [
                        _message(
                            1001, "Quarterly report", "alice@example.com",
                            "2024-03-01T09:00:00", False, True,
                            "Numbers are up this quarter.",
                            [{"name": "Bob", "address": "bob@example.com"}],
                        ),
                        _message(
                            1002, "Lunch plans", "carol@example.com",
                            "2024-03-02T12:30:00", True, False,
                            "Tacos at noon?",
                        ),
                    ],
                    "mailboxes": [],
                },
                {
                    "name": "Archive",
                    "unreadCount": 0,
                    "messages": [
                        _message(
                            2001, "Old thread", "dave@example.com",
                            "2023-11-20T08:15:00", True, False,
                            "Archived conversation.",
                        ),
                    ],
                    "mailboxes": [],
                },
                {
                    "name": "2024",
                    "unreadCount": 1,
                    "messages": [],
                    "mailboxes": [],
                },
            ],
        },
        {
            "id": "acc2",
            "name": "Home",
            "mailboxes": [
                {"name": "INBOX", "unreadCount": 0, "messages": [], "mailboxes": []},
            ],
        },
    ],
}


@pytest.fixture(autouse=True)
def reset_logging():
    """Start and end every test with unconfigured logging."""
    _unconfigure_logging()
    yield
    _unconfigure_logging()


def _unconfigure_logging():
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


@pytest.fixture
def mail_data():
    """A fresh copy of the mail data tree."""
    return copy.deepcopy(MAIL_DATA)


@pytest.fixture
def mail_registry():
    """The parsed and bound mail schema."""
    return SchemaParser({"first_word": first_word}).parse(MAIL_SCHEMA)


@pytest.fixture
def store(mail_data):
    return MemoryStore(mail_data, scheme="mail")


@pytest.fixture
def schemes(store, mail_registry):
    registry = SchemeRegistry()
    registry.register_scheme("mail", store.root, mail_registry.root())
    return registry


@pytest.fixture
def resolver(schemes):
    return Resolver(schemes)


@pytest.fixture
def uri_resolver(schemes):
    """A resolver whose collections resolve to element URIs."""
    return Resolver(schemes, ResolverConfig(collection_results="uris"))


@pytest.fixture
def spec(resolver):
    """Route a URI, failing the test on a routing error."""

    def _spec(uri):
        return resolver.specifier_from_uri(uri).unwrap()

    return _spec
