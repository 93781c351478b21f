"""Example usage of the uritree library."""

from uritree import MemoryStore, Resolver, SchemaParser, SchemeRegistry

# Describe the shape of the data using the DSL
schema_text = """
Message {
    id: number,
    subject: string,
    readStatus: settable boolean,
    content: lazy string,
}

Mailbox {
    name: string,
    unreadCount: number,
    messages: Message[index, id] create delete move,
}

root Mail {
    mailboxes: Mailbox[name, index],
}
"""

data = {
    "mailboxes": [
        {
            "name": "INBOX",
            "unreadCount": 2,
            "messages": [
                {"id": 1, "subject": "Welcome", "readStatus": False, "content": "Hello there."},
                {"id": 2, "subject": "Agenda", "readStatus": False, "content": "Items for Monday."},
            ],
        },
        {"name": "Archive", "unreadCount": 0, "messages": []},
    ]
}

# Parse the schema and register it under a scheme backed by the dict above
store = MemoryStore(data, scheme="mail")
schemes = SchemeRegistry()
schemes.register_scheme("mail", store.root, SchemaParser().parse(schema_text).root())
resolver = Resolver(schemes)

print("Mailboxes with unread mail:")
mailboxes = resolver.specifier_from_uri("mail://mailboxes?unreadCount.gt=0").unwrap()
for mailbox in mailboxes.resolve().unwrap():
    print(f"  {mailbox['name']} ({mailbox['unreadCount']}) -> {mailbox['_uri']}")

print("\nMessages in INBOX:")
messages = resolver.specifier_from_uri("mail://mailboxes/INBOX/messages?expand=content").unwrap()
for message in messages.resolve().unwrap():
    print(f"  [{message['id']}] {message['subject']}: {message['content']}")

# Mark a message read and file it away
message = resolver.specifier_from_uri("mail://mailboxes/INBOX/messages/1").unwrap()
message.readStatus.set(True).unwrap()
archive = resolver.specifier_from_uri("mail://mailboxes/Archive/messages").unwrap()
new_uri = message.move_to(archive).unwrap()
print(f"\nMoved message 1 to {new_uri}")

# Index addresses can be rewritten to stable ones
print(f"Canonical form of mail://mailboxes[1]/messages[0]: "
      f"{resolver.canonical_uri('mail://mailboxes[1]/messages[0]').unwrap()}")

print(f"\nRound trips made: {store.round_trips}")
