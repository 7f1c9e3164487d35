"""User records and the storage interface every backend implements."""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace

from httpauth.errors import DeleteOfMissingUser, UserNotFound


@dataclass
class UserRecord:
    """A stored user. ``password_hash`` is only ever set by the authorizer."""

    username: str
    email: str = ""
    password_hash: str = ""
    role: str = ""

    def copy(self, **changes) -> UserRecord:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> UserRecord:
        return cls(
            username=data["username"],
            email=data.get("email", ""),
            password_hash=data.get("password_hash", ""),
            role=data.get("role", ""),
        )


class UserStore(ABC):
    """CRUD over user records keyed by username.

    Implementations must be safe to call from concurrent requests. ``save`` is
    an upsert and the last writer wins. Failures other than a missing user
    are raised as StoreError.
    """

    async def open(self) -> None:
        """Connect or load. Safe to call more than once."""

    @abstractmethod
    async def get(self, username: str) -> UserRecord:
        """Return a copy of the user; raise UserNotFound if absent."""

    @abstractmethod
    async def save(self, record: UserRecord) -> None:
        """Create the user, or fully replace the one with the same username."""

    @abstractmethod
    async def list(self) -> list[UserRecord]:
        """Return every user."""

    @abstractmethod
    async def delete(self, username: str) -> None:
        """Remove the user; raise DeleteOfMissingUser if absent."""

    async def close(self) -> None:
        """Release resources. Safe to call more than once."""

    async def __aenter__(self) -> UserStore:
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


class SnapshotUserStore(UserStore):
    """Keeps the whole user map in memory and rewrites it on every change.

    Every mutation holds one lock across modify-then-flush. Each write is
    O(number of users), which is fine for small deployments only.
    """

    def __init__(self):
        self._users: dict[str, UserRecord] = {}
        self._lock = asyncio.Lock()
        self._loaded = False

    @abstractmethod
    async def _load(self) -> dict[str, UserRecord]:
        """Read the stored snapshot."""

    @abstractmethod
    async def _flush(self, users: dict[str, UserRecord]) -> None:
        """Write the full snapshot."""

    async def open(self) -> None:
        async with self._lock:
            if not self._loaded:
                self._users = await self._load()
                self._loaded = True

    async def get(self, username: str) -> UserRecord:
        await self.open()
        user = self._users.get(username)
        if user is None:
            raise UserNotFound(f"user {username!r} not found")
        return user.copy()

    async def list(self) -> list[UserRecord]:
        await self.open()
        return [user.copy() for user in self._users.values()]

    async def save(self, record: UserRecord) -> None:
        await self.open()
        async with self._lock:
            users = dict(self._users)
            users[record.username] = record.copy()
            await self._flush(users)
            self._users = users

    async def delete(self, username: str) -> None:
        await self.open()
        async with self._lock:
            if username not in self._users:
                raise DeleteOfMissingUser(f"delete of nonexistent user {username!r}")
            users = dict(self._users)
            del users[username]
            await self._flush(users)
            self._users = users
