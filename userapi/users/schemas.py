from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, EmailStr, Field, field_validator

Name = Annotated[str, Field(min_length=2, max_length=100)]
MAX_PASSWORD_BYTES = 72


class UserCreate(BaseModel):
    name: Name
    email: EmailStr
    password: Annotated[str, Field(min_length=6)]

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        # bcrypt rejects input longer than 72 bytes, not characters
        if len(value.encode()) > MAX_PASSWORD_BYTES:
            raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
        return value


class UserUpdate(BaseModel):
    """Partial update. Omitted, null and empty-string fields are left unchanged."""

    name: Name | None = None
    email: EmailStr | None = None

    @field_validator("name", "email", mode="before")
    @classmethod
    def _blank_as_missing(cls, value: object) -> object:
        if value == "":
            return None
        return value


class UserResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
    page: int
    limit: int


class ErrorResponse(BaseModel):
    error: str
    message: str
    code: int
