"""Tests for user lifecycle rules."""
import logging

import pytest
from sqlalchemy import select

from userapi.core.exceptions import (
    EmailExistsError,
    RecordNotFoundError,
    ServiceError,
    StorageError,
    UniqueViolationError,
    UserNotFoundError,
)
from userapi.core.security import verify_password
from userapi.users.models import User
from userapi.users.service import UserService


@pytest.mark.asyncio
async def test_create_user_hashes_password(user_service, db):
    created = await user_service.create_user("John Doe", "john@example.com", "password123")

    assert created.id is not None
    assert created.name == "John Doe"
    assert not hasattr(created, "password")

    stored = (await db.execute(select(User).where(User.id == created.id))).scalar_one()
    assert stored.password != "password123"
    assert verify_password("password123", stored.password)


@pytest.mark.asyncio
async def test_create_user_duplicate_email_conflicts(user_service):
    await user_service.create_user("John Doe", "john@example.com", "password123")

    with pytest.raises(EmailExistsError) as exc:
        await user_service.create_user("Someone Else", "john@example.com", "different-pw")

    assert exc.value.status_code == 409
    assert exc.value.error == "email_exists"


@pytest.mark.asyncio
async def test_get_user_not_found(user_service):
    with pytest.raises(UserNotFoundError) as exc:
        await user_service.get_user(999999)

    assert exc.value.status_code == 404
    assert exc.value.error == "user_not_found"


@pytest.mark.asyncio
async def test_list_users_clamps_zero_to_defaults(user_service):
    for n in range(12):
        await user_service.create_user(f"User {n}", f"user{n}@example.com", "password123")

    clamped = await user_service.list_users(page=0, limit=0)
    defaults = await user_service.list_users(page=1, limit=10)

    assert clamped == defaults
    assert clamped.page == 1
    assert clamped.limit == 10
    assert clamped.total == 12
    assert len(clamped.users) == 10


@pytest.mark.asyncio
async def test_list_users_limit_above_max_falls_back_to_default(user_service):
    result = await user_service.list_users(page=2, limit=500)

    assert result.limit == 10
    assert result.page == 2


@pytest.mark.asyncio
async def test_list_users_second_page(user_service):
    for n in range(3):
        await user_service.create_user(f"User {n}", f"user{n}@example.com", "password123")

    result = await user_service.list_users(page=2, limit=2)

    assert result.total == 3
    assert [u.email for u in result.users] == ["user2@example.com"]


@pytest.mark.asyncio
async def test_update_user_changes_only_provided_fields(user_service):
    user = await user_service.create_user("John Doe", "john@example.com", "password123")

    renamed = await user_service.update_user(user.id, name="Johnny")
    assert renamed.name == "Johnny"
    assert renamed.email == "john@example.com"

    moved = await user_service.update_user(user.id, email="johnny@example.com")
    assert moved.name == "Johnny"
    assert moved.email == "johnny@example.com"
    assert moved.created_at == user.created_at


@pytest.mark.asyncio
async def test_update_user_email_taken_by_other_conflicts(user_service):
    await user_service.create_user("Alice", "alice@example.com", "password123")
    bob = await user_service.create_user("Bob", "bob@example.com", "password123")

    with pytest.raises(EmailExistsError):
        await user_service.update_user(bob.id, name="Robert", email="alice@example.com")

    unchanged = await user_service.get_user(bob.id)
    assert unchanged.name == "Bob"
    assert unchanged.email == "bob@example.com"


@pytest.mark.asyncio
async def test_update_user_own_email_is_allowed(user_service):
    user = await user_service.create_user("John Doe", "john@example.com", "password123")

    updated = await user_service.update_user(user.id, email="john@example.com")

    assert updated.email == "john@example.com"


@pytest.mark.asyncio
async def test_update_missing_user_not_found(user_service):
    with pytest.raises(UserNotFoundError):
        await user_service.update_user(42, name="Nobody")


@pytest.mark.asyncio
async def test_delete_user_then_get_not_found(user_service):
    user = await user_service.create_user("John Doe", "john@example.com", "password123")

    await user_service.delete_user(user.id)

    with pytest.raises(UserNotFoundError):
        await user_service.get_user(user.id)


@pytest.mark.asyncio
async def test_delete_missing_user_not_found(user_service):
    with pytest.raises(UserNotFoundError):
        await user_service.delete_user(999999)


class _BrokenRepository:
    """Every call fails the way a dropped database connection would."""

    def __init__(self, error: Exception):
        self.error = error

    async def create(self, user):
        raise self.error

    async def get_by_id(self, user_id):
        raise self.error

    async def get_by_email(self, email):
        raise RecordNotFoundError(email)

    async def list(self, page, limit):
        raise self.error

    async def update(self, user):
        raise self.error

    async def delete(self, user_id):
        raise self.error


@pytest.mark.asyncio
async def test_storage_failures_become_opaque_service_errors(caplog):
    service = UserService(_BrokenRepository(StorageError("connection refused to 10.0.0.5")), 4)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(ServiceError) as exc:
            await service.list_users(1, 10)

    assert exc.value.status_code == 500
    assert "10.0.0.5" not in exc.value.message
    assert any(r.levelno == logging.ERROR for r in caplog.records)

    with pytest.raises(ServiceError):
        await service.get_user(1)
    with pytest.raises(ServiceError):
        await service.create_user("John Doe", "john@example.com", "password123")


@pytest.mark.asyncio
async def test_insert_race_reported_as_conflict():
    """Both creates passed the pre-check; the unique index rejects the second."""
    service = UserService(_BrokenRepository(UniqueViolationError("duplicate key")), 4)

    with pytest.raises(EmailExistsError):
        await service.create_user("John Doe", "john@example.com", "password123")
