"""User CRUD endpoints."""

import uuid
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import AliasChoices, BaseModel, Field

from src.userhub.api.http.deps import get_user_service
from src.userhub.core.services.user import (
    ConflictingUserError,
    MissingParametersError,
    UserNotFoundError,
    UserService,
    UserServiceError,
    UserValidationError,
)
from src.userhub.entities.core.user import User, UserUpdate

router = APIRouter(tags=["users"])

_DOB_ALIASES = AliasChoices("date_of_birth", "dob")


class CreateUserRequest(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str
    date_of_birth: date = Field(validation_alias=_DOB_ALIASES)


class UpdateUserRequest(BaseModel):
    """Fields left out of the body (or sent as null) are not changed."""

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    date_of_birth: date | None = Field(default=None, validation_alias=_DOB_ALIASES)

    def to_update(self) -> UserUpdate:
        return UserUpdate(
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            date_of_birth=self.date_of_birth,
        )


class UserResponse(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    date_of_birth: date
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls.model_validate(user.model_dump())


class InvalidUserIdError(ValueError):
    pass


def _parse_user_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError as e:
        raise InvalidUserIdError(raw) from e


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


async def user_service_error_handler(
    request: Request, exc: UserServiceError
) -> JSONResponse:
    """Translate service failures into JSON error responses."""
    if isinstance(exc, UserNotFoundError):
        return _message(status.HTTP_404_NOT_FOUND, exc.reason)
    if isinstance(exc, (UserValidationError, MissingParametersError)):
        return _message(status.HTTP_400_BAD_REQUEST, exc.reason)
    if isinstance(exc, ConflictingUserError):
        return _message(status.HTTP_409_CONFLICT, exc.reason)

    # InternalServiceError and anything unmapped
    logger.bind(error_type=type(exc).__name__, reason=exc.reason).error(
        "Internal error while handling user request"
    )
    return _message(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal error")


async def invalid_user_id_handler(
    request: Request, exc: InvalidUserIdError
) -> JSONResponse:
    return _message(status.HTTP_400_BAD_REQUEST, "Invalid UUID format")


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
async def create_user(
    body: CreateUserRequest, service: UserService = Depends(get_user_service)
) -> UserResponse:
    user = User.new(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        date_of_birth=body.date_of_birth,
    )
    created = await service.create_user(user)
    return UserResponse.from_user(created)


@router.get("", response_model=UserResponse)
async def get_user_by_email(
    email: str | None = Query(default=None),
    service: UserService = Depends(get_user_service),
) -> UserResponse | JSONResponse:
    if email is None:
        return _message(status.HTTP_400_BAD_REQUEST, "email query parameter is required")
    user = await service.get_user_by_email(email)
    return UserResponse.from_user(user)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str, service: UserService = Depends(get_user_service)
) -> UserResponse:
    user = await service.get_user(_parse_user_id(user_id))
    return UserResponse.from_user(user)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await service.update_user(_parse_user_id(user_id), body.to_update())
    return UserResponse.from_user(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str, service: UserService = Depends(get_user_service)
) -> Response:
    await service.delete_user(_parse_user_id(user_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
