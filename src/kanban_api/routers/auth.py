from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ..dependencies import Services, get_services
from ..models import public_user
from ..schemas import ErrorResponse, LoginRequest, LoginResponse, UserOut

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"

router = APIRouter(
    prefix="/api/v1",
    tags=["auth"],
)


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Login",
    description="Exchange email and password for a bearer token valid for 24 hours.",
    responses={
        200: {"description": "Login successful"},
        401: {"model": ErrorResponse, "description": "Invalid email or password"},
    },
)
def login(payload: LoginRequest, services: Services = Depends(get_services)):
    """
    Verify credentials and issue an access token.
    """
    user = services.credentials.authenticate(payload.email, payload.password)
    if user is None:
        logger.info("Failed login attempt")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": INVALID_CREDENTIALS},
        )

    token = services.tokens.issue(user["id"])
    logger.info("User %s logged in", user["id"])
    return LoginResponse(
        message="Login successful",
        token=token,
        user=UserOut(**public_user(user)),
    )
