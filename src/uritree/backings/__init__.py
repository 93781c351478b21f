"""Delegate implementations for concrete backing stores."""

from uritree.backings.memory import MemoryDelegate, MemoryStore
from uritree.backings.remote import (
    RemoteCollection,
    RemoteDelegate,
    RemoteError,
    RemoteObject,
    RemoteSession,
)

__all__ = [
    "MemoryDelegate",
    "MemoryStore",
    "RemoteCollection",
    "RemoteDelegate",
    "RemoteError",
    "RemoteObject",
    "RemoteSession",
]
