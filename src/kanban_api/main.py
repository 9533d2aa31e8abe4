from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .dependencies import build_services
from .errors import AuthError, NotFoundError, ValidationError
from .routers import auth as auth_router
from .routers import tasks as tasks_router
from .routers import users as users_router
from .security import TokenService
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized"

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "auth", "description": "Exchange credentials for a bearer token."},
    {"name": "users", "description": "Registration and public user profiles."},
    {
        "name": "tasks",
        "description": "CRUD operations for the caller's Kanban tasks (todo/doing/test/done).",
    },
]


def _format_validation_errors(exc: RequestValidationError) -> List[str]:
    """
    Turn pydantic error details into "<field> <message>" strings.
    """
    messages = []
    for err in exc.errors():
        # Drop the "body" marker and the {"task": ...}/{"user": ...} envelope key
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "task", "user")]
        field = ".".join(loc)
        msg = err.get("msg", "is invalid")
        messages.append(f"{field} {msg}".strip())
    return messages


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {"errors": ["column Input should be 'todo', 'doing', 'test' or 'done'", ...]}
        """
        return JSONResponse(status_code=422, content={"errors": _format_validation_errors(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"errors": exc.messages})

    @app.exception_handler(AuthError)
    async def auth_handler(request: Request, exc: AuthError) -> JSONResponse:
        # The reason stays server-side; every variant looks the same on the wire
        return JSONResponse(
            status_code=401,
            content={"error": UNAUTHORIZED_MESSAGE},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, tokens: Optional[TokenService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Settings are read once (from the environment unless given) and the services
    built from them live on ``app.state.services`` for the app's lifetime.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Kanban Backend",
        description="Token-authenticated API for per-user Kanban task boards.",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )
    app.state.services = build_services(settings, tokens=tokens)

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    # PUBLIC_INTERFACE
    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {"message": "Healthy", "backend": settings.persistence_backend}

    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(tasks_router.router)
    return app


def configure_logging(level: str) -> None:
    """Root logger setup for the served process; library code only creates loggers."""
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


_settings = get_settings()
configure_logging(_settings.log_level)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("kanban_api.main:app", host="0.0.0.0", port=8000)
