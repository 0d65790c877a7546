import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from userapi.config import Settings, settings as default_settings
from userapi.core.exceptions import AppError, InvalidRequestError
from userapi.core.logging import configure_logging
from userapi.core.middleware import (
    RateLimitMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    UnhandledErrorMiddleware,
)
from userapi.db.base import Base
from userapi.db.session import create_engine, create_session_factory
from userapi.users.models import User  # noqa: F401
from userapi.users.router import router as users_router

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _error_body(error: str, message: str, code: int) -> dict[str, Any]:
    return {"error": error, "message": message, "code": code}


def _describe(errors: list[dict[str, Any]]) -> str:
    parts = []
    for err in errors:
        field = ".".join(str(p) for p in err.get("loc", ())[1:]) or "body"
        parts.append(f"{field}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.error, exc.message, exc.status_code),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = list(exc.errors())
    if any(err.get("loc", ())[:1] == ("path",) for err in errors):
        error = InvalidRequestError("Invalid user ID", error="invalid_id")
    elif any(
        err.get("type") == "json_invalid" or tuple(err.get("loc", ())) == ("body",)
        for err in errors
    ):
        error = InvalidRequestError("Invalid request body", error="invalid_request")
    else:
        error = InvalidRequestError(_describe(errors))
    return await app_error_handler(request, error)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level, settings.log_format)

    engine = create_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            logger.critical("Failed to connect to database", exc_info=True)
            raise
        logger.info("Database connected successfully")

        if settings.db_auto_migrate:
            logger.info("Running database migrations")
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Starting server",
            extra={"host": settings.app_host, "port": settings.app_port, "env": settings.app_env},
        )
        yield
        await engine.dispose()
        logger.info("Database connections closed")

    app = FastAPI(
        title="User API",
        version=VERSION,
        description="CRUD service for user accounts.",
        docs_url="/swagger",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)

    # Added innermost first; the request id must wrap everything that logs.
    app.add_middleware(UnhandledErrorMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    if settings.rate_limit_per_second > 0:
        app.add_middleware(
            RateLimitMiddleware,
            rate=settings.rate_limit_per_second,
            burst=settings.rate_limit_burst,
        )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(users_router)
    # Versioned alias of the same routes, kept out of the schema to avoid duplicate operation ids.
    app.include_router(users_router, prefix="/api/v1", include_in_schema=False)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    return app


app = create_app()
