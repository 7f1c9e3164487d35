"""User storage backends."""
from httpauth.backends.base import SnapshotUserStore, UserRecord, UserStore
from httpauth.backends.document import DocumentUserStore
from httpauth.backends.file import FileUserStore
from httpauth.backends.keyvalue import KeyValueUserStore
from httpauth.backends.sql import SQLUserStore

BACKENDS = {
    "file": FileUserStore,
    "sql": SQLUserStore,
    "keyvalue": KeyValueUserStore,
    "document": DocumentUserStore,
}


def create_backend(kind: str, target: str) -> UserStore:
    """Build a backend by name: a file path, database URL, redis URL or mongodb URL."""
    try:
        backend_cls = BACKENDS[kind]
    except KeyError:
        raise ValueError(f"Unknown backend {kind!r}; expected one of {', '.join(BACKENDS)}") from None
    return backend_cls(target)


__all__ = [
    "BACKENDS",
    "DocumentUserStore",
    "FileUserStore",
    "KeyValueUserStore",
    "SQLUserStore",
    "SnapshotUserStore",
    "UserRecord",
    "UserStore",
    "create_backend",
]
