"""Flat-file backend: the whole user map as one JSON document."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from httpauth.backends.base import SnapshotUserStore, UserRecord
from httpauth.errors import MissingBackend, StoreError

logger = logging.getLogger("httpauth.backends.file")


class FileUserStore(SnapshotUserStore):
    """Users kept in memory and flushed to ``path`` on every change.

    The file must exist before the store is opened (create or touch it for a
    brand new backend); an empty file is an empty store.
    """

    def __init__(self, path: str | os.PathLike):
        super().__init__()
        self.path = Path(path)

    async def _load(self) -> dict[str, UserRecord]:
        if not self.path.exists():
            raise MissingBackend(f"filebackend: missing backend file {self.path}")
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except OSError as e:
            raise StoreError(f"filebackend: {e}") from e
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
            users = {name: UserRecord.from_dict(item) for name, item in data.items()}
        except (ValueError, KeyError, AttributeError, TypeError) as e:
            raise StoreError(f"filebackend: corrupt user file {self.path}: {e}") from e
        logger.info("Loaded %d user(s) from %s", len(users), self.path)
        return users

    async def _flush(self, users: dict[str, UserRecord]) -> None:
        data = {name: user.to_dict() for name, user in users.items()}
        try:
            await asyncio.to_thread(self._write_atomic, json.dumps(data, indent=2, sort_keys=True))
        except OSError as e:
            raise StoreError("filebackend: auth file can't be edited. Is the data folder there?") from e

    def _write_atomic(self, text: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
