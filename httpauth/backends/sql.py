"""Relational backend on SQLAlchemy's async ORM."""
from __future__ import annotations

import logging

from sqlalchemy import String, delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from httpauth.backends.base import UserRecord, UserStore
from httpauth.errors import DeleteOfMissingUser, StoreError, UserNotFound

logger = logging.getLogger("httpauth.backends.sql")


class Base(DeclarativeBase):
    """Base class for the backend's tables."""
    pass


class UserRow(Base):
    """One stored user, keyed by username."""

    __tablename__ = "httpauth_users"

    username: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    def to_record(self) -> UserRecord:
        return UserRecord(
            username=self.username,
            email=self.email,
            password_hash=self.password_hash,
            role=self.role,
        )


def _sqlerror(e: Exception) -> StoreError:
    return StoreError(f"sqlbackend: {e}")


class SQLUserStore(UserStore):
    """Users in the ``httpauth_users`` table of any SQLAlchemy async database.

    The table is created on open. Concurrent saves of the same new username
    both succeed: the loser of the insert race retries as an update.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.engine = create_async_engine(database_url, echo=echo)
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._ready = False

    async def open(self) -> None:
        if self._ready:
            return
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise _sqlerror(e) from e
        self._ready = True

    async def get(self, username: str) -> UserRecord:
        await self.open()
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(UserRow).where(UserRow.username == username))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise _sqlerror(e) from e
        if row is None:
            raise UserNotFound(f"user {username!r} not found")
        return row.to_record()

    async def list(self) -> list[UserRecord]:
        await self.open()
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(UserRow).order_by(UserRow.username))
                return [row.to_record() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise _sqlerror(e) from e

    async def save(self, record: UserRecord) -> None:
        await self.open()
        try:
            try:
                await self._merge(record)
            except IntegrityError:
                # Another request inserted the same username first
                logger.info("Concurrent insert of %s, retrying as update", record.username)
                await self._merge(record)
        except SQLAlchemyError as e:
            raise _sqlerror(e) from e

    async def _merge(self, record: UserRecord) -> None:
        async with self._session_factory() as session:
            await session.merge(
                UserRow(
                    username=record.username,
                    email=record.email,
                    password_hash=record.password_hash,
                    role=record.role,
                )
            )
            await session.commit()

    async def delete(self, username: str) -> None:
        await self.open()
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(UserRow).where(UserRow.username == username))
                await session.commit()
        except SQLAlchemyError as e:
            raise _sqlerror(e) from e
        if result.rowcount == 0:
            raise DeleteOfMissingUser(f"delete of nonexistent user {username!r}")

    async def close(self) -> None:
        await self.engine.dispose()
        self._ready = False
