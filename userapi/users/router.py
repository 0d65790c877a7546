from typing import Annotated

from fastapi import APIRouter, Path, Query, Response

from userapi.core.dependencies import UserServiceDep
from userapi.users.schemas import (
    ErrorResponse,
    UserCreate,
    UserListResponse,
    UserResponse,
    UserUpdate,
)

router = APIRouter(prefix="/users", tags=["users"])

UserID = Annotated[int, Path(ge=0, le=2**32 - 1, description="User ID")]

_errors = {
    400: {"model": ErrorResponse, "description": "Invalid id or request body"},
    404: {"model": ErrorResponse, "description": "User not found"},
    409: {"model": ErrorResponse, "description": "Email already exists"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}


def _responses(*codes: int) -> dict[int | str, dict]:
    return {code: _errors[code] for code in codes}


def _as_int(value: str | None) -> int:
    # Unparseable values count as 0 and fall back to the defaults downstream.
    try:
        return int(value) if value is not None else 0
    except ValueError:
        return 0


@router.get("", response_model=UserListResponse, responses=_responses(500))
async def list_users(
    service: UserServiceDep,
    page: Annotated[str | None, Query(description="Page number (default 1)")] = None,
    limit: Annotated[str | None, Query(description="Items per page, 1-100 (default 10)")] = None,
) -> UserListResponse:
    """Retrieve a paginated list of users."""
    return await service.list_users(_as_int(page), _as_int(limit))


@router.get("/{user_id}", response_model=UserResponse, responses=_responses(400, 404, 500))
async def get_user(user_id: UserID, service: UserServiceDep) -> UserResponse:
    return await service.get_user(user_id)


@router.post(
    "",
    response_model=UserResponse,
    status_code=201,
    responses=_responses(400, 409, 500),
)
async def create_user(body: UserCreate, service: UserServiceDep) -> UserResponse:
    return await service.create_user(body.name, body.email, body.password)


@router.put("/{user_id}", response_model=UserResponse, responses=_responses(400, 404, 409, 500))
async def update_user(user_id: UserID, body: UserUpdate, service: UserServiceDep) -> UserResponse:
    """Update name and/or email. Omitted or empty fields keep their current value."""
    return await service.update_user(user_id, name=body.name, email=body.email)


@router.delete(
    "/{user_id}",
    status_code=204,
    response_class=Response,
    responses=_responses(400, 404, 500),
)
async def delete_user(user_id: UserID, service: UserServiceDep) -> Response:
    await service.delete_user(user_id)
    return Response(status_code=204)
