"""Document-store backend: one MongoDB document per user."""
from __future__ import annotations

import logging
from typing import Any, Optional

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from httpauth.backends.base import UserRecord, UserStore
from httpauth.errors import DeleteOfMissingUser, StoreError, UserNotFound

logger = logging.getLogger("httpauth.backends.document")

DEFAULT_DATABASE = "httpauth"
COLLECTION = "httpauth_users"

# Documents come back without Mongo's own id
_PROJECTION = {"_id": 0}


def _mongoerror(e: Exception) -> StoreError:
    return StoreError(f"documentbackend: {e}")


class DocumentUserStore(UserStore):
    """Users in a MongoDB collection with a unique index on ``username``.

    The database is taken from ``url`` (``mongodb://host/dbname``), falling
    back to ``httpauth``. Pass ``client`` to reuse an existing async client;
    the store then leaves it open on close.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Any = None,
        collection: str = COLLECTION,
    ):
        if client is None and not url:
            raise ValueError("Either a mongodb url or a client is required")
        self.url = url
        self.collection_name = collection
        self._client = client
        self._owns_client = client is None
        self._collection = None

    async def open(self) -> None:
        if self._collection is not None:
            return
        if self._client is None:
            self._client = AsyncMongoClient(self.url)
        collection = self._client.get_default_database(default=DEFAULT_DATABASE)[self.collection_name]
        try:
            await collection.create_index([("username", ASCENDING)], unique=True)
        except PyMongoError as e:
            raise _mongoerror(e) from e
        self._collection = collection

    async def get(self, username: str) -> UserRecord:
        await self.open()
        try:
            doc = await self._collection.find_one({"username": username}, _PROJECTION)
        except PyMongoError as e:
            raise _mongoerror(e) from e
        if doc is None:
            raise UserNotFound(f"user {username!r} not found")
        return UserRecord.from_dict(doc)

    async def list(self) -> list[UserRecord]:
        await self.open()
        try:
            cursor = self._collection.find({}, _PROJECTION).sort("username", ASCENDING)
            return [UserRecord.from_dict(doc) async for doc in cursor]
        except PyMongoError as e:
            raise _mongoerror(e) from e

    async def save(self, record: UserRecord) -> None:
        await self.open()
        try:
            try:
                await self._upsert(record)
            except DuplicateKeyError:
                # Two upserts raced to insert the same username
                logger.info("Concurrent insert of %s, retrying as update", record.username)
                await self._upsert(record)
        except PyMongoError as e:
            raise _mongoerror(e) from e

    async def _upsert(self, record: UserRecord) -> None:
        await self._collection.replace_one({"username": record.username}, record.to_dict(), upsert=True)

    async def delete(self, username: str) -> None:
        await self.open()
        try:
            result = await self._collection.delete_one({"username": username})
        except PyMongoError as e:
            raise _mongoerror(e) from e
        if result.deleted_count == 0:
            raise DeleteOfMissingUser(f"delete of nonexistent user {username!r}")

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None
        self._collection = None
