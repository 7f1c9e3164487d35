"""Tests for the user store backends: file, sql, keyvalue and document."""
import asyncio
from types import SimpleNamespace

import pytest
from pymongo.errors import ServerSelectionTimeoutError
from redis.exceptions import ConnectionError as RedisConnectionError

from httpauth import (
    DeleteOfMissingUser,
    DocumentUserStore,
    FileUserStore,
    KeyValueUserStore,
    MissingBackend,
    SQLUserStore,
    StoreError,
    UserNotFound,
    UserRecord,
    create_backend,
)
from httpauth.backends.keyvalue import USERDATA_KEY


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the key-value store."""

    def __init__(self):
        self.data = {}
        self.fail = False

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("connection refused")
        return self.data.get(key)

    async def set(self, key, value):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.data[key] = value.encode() if isinstance(value, str) else value

    async def aclose(self):
        pass


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction):
        self.docs = sorted(self.docs, key=lambda doc: doc[key], reverse=direction < 0)
        return self

    async def __aiter__(self):
        for doc in self.docs:
            yield doc


class FakeCollection:
    """Just enough of pymongo's AsyncCollection for the document store."""

    def __init__(self):
        self.docs = {}
        self.indexes = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise ServerSelectionTimeoutError("no servers available")

    async def create_index(self, keys, unique=False):
        self._check()
        self.indexes.append((keys, unique))

    async def find_one(self, query, projection=None):
        self._check()
        doc = self.docs.get(query["username"])
        return dict(doc) if doc is not None else None

    def find(self, query, projection=None):
        self._check()
        return FakeCursor([dict(doc) for doc in self.docs.values()])

    async def replace_one(self, query, doc, upsert=False):
        self._check()
        if upsert or query["username"] in self.docs:
            self.docs[query["username"]] = dict(doc)

    async def delete_one(self, query):
        self._check()
        removed = self.docs.pop(query["username"], None)
        return SimpleNamespace(deleted_count=0 if removed is None else 1)


class FakeMongoClient:
    def __init__(self):
        self.collection = FakeCollection()
        self.databases = []

    def get_default_database(self, default=None):
        self.databases.append(default)
        return {"httpauth_users": self.collection}

    async def close(self):
        pass


def _make_store(kind, tmp_path, redis, mongo):
    if kind == "file":
        path = tmp_path / "users.json"
        path.touch(exist_ok=True)
        return FileUserStore(path)
    if kind == "sql":
        return SQLUserStore(f"sqlite+aiosqlite:///{tmp_path / 'users.db'}")
    if kind == "keyvalue":
        return KeyValueUserStore(client=redis)
    return DocumentUserStore(client=mongo)


@pytest.fixture(params=["file", "sql", "keyvalue", "document"])
def make_store(request, tmp_path):
    """Factory for stores of one kind that share their underlying data."""
    redis, mongo = FakeRedis(), FakeMongoClient()
    return lambda: _make_store(request.param, tmp_path, redis, mongo)


@pytest.fixture
async def store(make_store):
    async with make_store() as store:
        yield store


def _user(username="username", email="email@example.com", role="user"):
    return UserRecord(username=username, email=email, password_hash="$2b$04$hash", role=role)


@pytest.mark.asyncio
async def test_crud_sequence(store):
    assert await store.list() == []
    with pytest.raises(UserNotFound):
        await store.get("username")

    await store.save(_user())
    assert await store.get("username") == _user()
    assert await store.list() == [_user()]

    await store.save(_user(email="changed@example.com", role="admin"))
    user = await store.get("username")
    assert user.email == "changed@example.com"
    assert user.role == "admin"
    assert len(await store.list()) == 1

    await store.save(_user(username="other"))
    assert sorted(u.username for u in await store.list()) == ["other", "username"]

    await store.delete("username")
    with pytest.raises(UserNotFound):
        await store.get("username")
    with pytest.raises(DeleteOfMissingUser):
        await store.delete("username")
    assert [u.username for u in await store.list()] == ["other"]


@pytest.mark.asyncio
async def test_get_returns_a_copy(store):
    await store.save(_user())
    user = await store.get("username")
    user.email = "mutated@example.com"
    assert (await store.get("username")).email == "email@example.com"


@pytest.mark.asyncio
async def test_data_survives_reopen(make_store):
    async with make_store() as store:
        await store.save(_user())
        await store.save(_user(username="gone"))
        await store.delete("gone")
    async with make_store() as store:
        assert await store.list() == [_user()]


@pytest.mark.asyncio
async def test_concurrent_saves(store):
    await asyncio.gather(*(store.save(_user(username=f"user{i}")) for i in range(10)))
    assert len(await store.list()) == 10


@pytest.mark.asyncio
async def test_concurrent_saves_same_user(store):
    await asyncio.gather(*(store.save(_user(email=f"{i}@example.com")) for i in range(5)))
    users = await store.list()
    assert len(users) == 1
    assert users[0].email.endswith("@example.com")


@pytest.mark.asyncio
async def test_file_store_requires_existing_file(tmp_path):
    store = FileUserStore(tmp_path / "missing.json")
    with pytest.raises(MissingBackend, match="missing backend file"):
        await store.open()
    assert isinstance(MissingBackend("x"), StoreError)


@pytest.mark.asyncio
async def test_file_store_corrupt_file(tmp_path):
    path = tmp_path / "users.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError):
        await FileUserStore(path).open()


@pytest.mark.asyncio
async def test_file_store_unwritable(tmp_path):
    path = tmp_path / "data" / "users.json"
    path.parent.mkdir()
    path.touch()
    store = FileUserStore(path)
    await store.open()
    path.unlink()
    path.parent.rmdir()
    with pytest.raises(StoreError):
        await store.save(_user())
    # A failed write leaves the in-memory map untouched
    assert await store.list() == []


@pytest.mark.asyncio
async def test_keyvalue_store_uses_fixed_key():
    client = FakeRedis()
    store = KeyValueUserStore(client=client)
    await store.save(_user())
    assert USERDATA_KEY in client.data


@pytest.mark.asyncio
async def test_keyvalue_store_refuses_unreadable_data():
    client = FakeRedis()
    client.data[USERDATA_KEY] = b"garbage"
    store = KeyValueUserStore(client=client)
    with pytest.raises(StoreError, match="unreadable"):
        await store.list()
    with pytest.raises(StoreError):
        await store.save(_user())
    assert client.data[USERDATA_KEY] == b"garbage"


@pytest.mark.asyncio
async def test_keyvalue_store_connection_errors():
    client = FakeRedis()
    client.fail = True
    with pytest.raises(StoreError, match="keyvaluebackend"):
        await KeyValueUserStore(client=client).open()


def test_keyvalue_store_needs_target():
    with pytest.raises(ValueError):
        KeyValueUserStore()


def test_create_backend(tmp_path):
    assert isinstance(create_backend("file", str(tmp_path / "a.json")), FileUserStore)
    assert isinstance(create_backend("keyvalue", "redis://localhost:6379/0"), KeyValueUserStore)
    assert isinstance(create_backend("document", "mongodb://localhost:27017/auth"), DocumentUserStore)
    with pytest.raises(ValueError):
        create_backend("ldap", "ldap://localhost")


@pytest.mark.asyncio
async def test_document_store_indexes_username():
    client = FakeMongoClient()
    async with DocumentUserStore(client=client) as store:
        await store.save(_user())
    assert client.databases == ["httpauth"]
    assert client.collection.indexes == [([("username", 1)], True)]
    assert client.collection.docs["username"] == _user().to_dict()


@pytest.mark.asyncio
async def test_document_store_connection_errors():
    client = FakeMongoClient()
    client.collection.fail = True
    with pytest.raises(StoreError, match="documentbackend"):
        await DocumentUserStore(client=client).open()


def test_document_store_needs_target():
    with pytest.raises(ValueError):
        DocumentUserStore()
