"""User lifecycle rules: email uniqueness, password hashing, partial updates."""
import asyncio
import logging

from userapi.core.exceptions import (
    EmailExistsError,
    RecordNotFoundError,
    ServiceError,
    StorageError,
    UniqueViolationError,
    UserNotFoundError,
)
from userapi.core.security import DEFAULT_BCRYPT_ROUNDS, hash_password
from userapi.users.models import User
from userapi.users.repository import UserRepository
from userapi.users.schemas import UserListResponse, UserResponse

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class UserService:
    def __init__(self, repository: UserRepository, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self._repo = repository
        self._bcrypt_rounds = bcrypt_rounds

    async def create_user(self, name: str, email: str, password: str) -> UserResponse:
        await self._ensure_email_free(email)

        try:
            # bcrypt is CPU-bound; keep it off the event loop.
            hashed = await asyncio.to_thread(hash_password, password, self._bcrypt_rounds)
        except ValueError:
            logger.exception("Failed to hash password")
            raise ServiceError("Failed to process password")

        user = User(name=name, email=email, password=hashed)
        try:
            user = await self._repo.create(user)
        except UniqueViolationError:
            # Lost the race against a concurrent insert; the unique index decides.
            raise EmailExistsError(email)
        except StorageError:
            logger.exception("Failed to create user")
            raise ServiceError("Failed to create user")

        logger.info("User created", extra={"user_id": user.id})
        return UserResponse.model_validate(user)

    async def get_user(self, user_id: int) -> UserResponse:
        user = await self._fetch(user_id)
        return UserResponse.model_validate(user)

    async def list_users(self, page: int, limit: int) -> UserListResponse:
        if page < 1:
            page = DEFAULT_PAGE
        if limit < 1 or limit > MAX_LIMIT:
            limit = DEFAULT_LIMIT

        try:
            users, total = await self._repo.list(page, limit)
        except StorageError:
            logger.exception("Failed to get users")
            raise ServiceError("Failed to get users")

        return UserListResponse(
            users=[UserResponse.model_validate(u) for u in users],
            total=total,
            page=page,
            limit=limit,
        )

    async def update_user(
        self, user_id: int, name: str | None = None, email: str | None = None
    ) -> UserResponse:
        user = await self._fetch(user_id)

        if email:
            await self._ensure_email_free(email, exclude_id=user.id)

        # Only touch the entity once every check has passed.
        if name:
            user.name = name
        if email:
            user.email = email

        try:
            user = await self._repo.update(user)
        except RecordNotFoundError:
            raise UserNotFoundError(user_id)
        except UniqueViolationError:
            raise EmailExistsError(email or user.email)
        except StorageError:
            logger.exception("Failed to update user", extra={"user_id": user_id})
            raise ServiceError("Failed to update user")

        return UserResponse.model_validate(user)

    async def delete_user(self, user_id: int) -> None:
        await self._fetch(user_id)

        try:
            await self._repo.delete(user_id)
        except RecordNotFoundError:
            raise UserNotFoundError(user_id)
        except StorageError:
            logger.exception("Failed to delete user", extra={"user_id": user_id})
            raise ServiceError("Failed to delete user")

        logger.info("User deleted", extra={"user_id": user_id})

    async def _fetch(self, user_id: int) -> User:
        try:
            return await self._repo.get_by_id(user_id)
        except RecordNotFoundError:
            raise UserNotFoundError(user_id)
        except StorageError:
            logger.exception("Failed to get user", extra={"user_id": user_id})
            raise ServiceError("Failed to get user")

    async def _ensure_email_free(self, email: str, exclude_id: int | None = None) -> None:
        try:
            existing = await self._repo.get_by_email(email)
        except RecordNotFoundError:
            return
        except StorageError:
            logger.exception("Failed to check email uniqueness")
            raise ServiceError("Failed to check email")

        if existing.id != exclude_id:
            raise EmailExistsError(email)
