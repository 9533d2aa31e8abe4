from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..dependencies import Services, get_services
from ..errors import NotFoundError
from ..models import public_user
from ..schemas import (
    ErrorListResponse,
    ErrorResponse,
    UserCreatedResponse,
    UserOut,
    UserRegistration,
    UserResponse,
)

router = APIRouter(
    prefix="/api/v1/users",
    tags=["users"],
)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=UserCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create a user account. No authentication required.",
    responses={
        201: {"description": "User created successfully"},
        422: {"model": ErrorListResponse, "description": "Validation error"},
    },
)
def create_user(payload: UserRegistration, services: Services = Depends(get_services)) -> UserCreatedResponse:
    """
    Register a new user.
    """
    data = payload.user
    user = services.credentials.register(data.name, data.email, data.password)
    return UserCreatedResponse(
        message="User created successfully",
        user=UserOut(**public_user(user)),
    )


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get User",
    description="Public profile of a user by ID.",
    responses={
        200: {"description": "User found"},
        404: {"model": ErrorResponse, "description": "User not found"},
    },
)
def get_user(user_id: int, services: Services = Depends(get_services)) -> UserResponse:
    user = services.credentials.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return UserResponse(user=UserOut(**public_user(user)))
