"""User persistence.

``UserRepository`` is the capability the service depends on; anything with
these coroutines works (the SQLAlchemy adapter below, or a fake in tests).
Adapters raise ``RecordNotFoundError`` for missing rows and ``StorageError``
for everything else, and never retry.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol, Sequence

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from userapi.core.exceptions import RecordNotFoundError, StorageError, UniqueViolationError
from userapi.users.models import User

MAX_OFFSET = 2**63 - 1


class UserRepository(Protocol):
    async def create(self, user: User) -> User: ...

    async def get_by_id(self, user_id: int) -> User: ...

    async def get_by_email(self, email: str) -> User: ...

    async def list(self, page: int, limit: int) -> tuple[Sequence[User], int]: ...

    async def update(self, user: User) -> User: ...

    async def delete(self, user_id: int) -> None: ...


class SqlAlchemyUserRepository:
    def __init__(self, db: AsyncSession):
        self._db = db

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[None]:
        """Commit on success; roll back and translate driver errors on failure."""
        try:
            yield
            await self._db.commit()
        except RecordNotFoundError:
            await self._db.rollback()
            raise
        except StaleDataError as exc:
            await self._db.rollback()
            raise RecordNotFoundError(str(exc)) from exc
        except IntegrityError as exc:
            await self._db.rollback()
            raise UniqueViolationError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            await self._db.rollback()
            raise StorageError(str(exc)) from exc

    async def create(self, user: User) -> User:
        async with self._write():
            self._db.add(user)
        return await self._refresh(user)

    async def get_by_id(self, user_id: int) -> User:
        return await self._one(select(User).where(User.id == user_id), f"user id={user_id}")

    async def get_by_email(self, email: str) -> User:
        return await self._one(select(User).where(User.email == email), f"user email={email}")

    async def list(self, page: int, limit: int) -> tuple[Sequence[User], int]:
        offset = (page - 1) * limit
        try:
            total = await self._db.scalar(select(func.count()).select_from(User)) or 0
            # Past the last row either way; drivers reject offsets beyond BIGINT.
            if offset >= total or offset > MAX_OFFSET:
                return [], total
            result = await self._db.execute(
                select(User).order_by(User.id).offset(offset).limit(limit)
            )
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        return result.scalars().all(), total

    async def update(self, user: User) -> User:
        async with self._write():
            # No-op for entities already in this session; reattaches detached ones.
            self._db.add(user)
        return await self._refresh(user)

    async def delete(self, user_id: int) -> None:
        async with self._write():
            result = await self._db.execute(delete(User).where(User.id == user_id))
            if result.rowcount == 0:
                raise RecordNotFoundError(f"user id={user_id}")

    async def _one(self, stmt: Select[tuple[User]], what: str) -> User:
        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        user = result.scalar_one_or_none()
        if user is None:
            raise RecordNotFoundError(what)
        return user

    async def _refresh(self, user: User) -> User:
        try:
            await self._db.refresh(user)
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        return user
