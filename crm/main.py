import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm.config import settings
from crm.db.base import engine
from crm.errors import CRMError
from crm.routers import analytics, audience, auth, campaigns, customers, users
from crm.services.dispatcher import SendDispatcher

logger = logging.getLogger(__name__)


def _error_body(message: str) -> dict:
    return {"success": False, "message": message}


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    message = str(first.get("msg") or "Invalid request.")
    message = message.removeprefix("Value error, ")
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if location and first.get("type") != "value_error":
        return f"{location}: {message}"
    return message


def _check_database() -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))


@asynccontextmanager
async def _app_lifespan(app: FastAPI) -> AsyncIterator[None]:
    try:
        _check_database()
    except Exception:
        logger.exception("Database is unreachable; refusing to start")
        raise
    dispatcher: SendDispatcher = app.state.dispatcher
    dispatcher.start_scheduler()
    try:
        yield
    finally:
        await dispatcher.shutdown()


def create_app() -> FastAPI:
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    app = FastAPI(
        title="Marketing CRM API",
        version=settings.API_VERSION,
        default_response_class=ORJSONResponse,
        lifespan=_app_lifespan,
    )
    app.state.dispatcher = SendDispatcher()

    allow_origins = sorted(set(settings.BACKEND_CORS_ORIGINS + [settings.FRONTEND_URL]))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(CRMError)
    async def crm_error_handler(_request: Request, exc: CRMError) -> ORJSONResponse:
        return ORJSONResponse(status_code=exc.status_code, content=_error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError) -> ORJSONResponse:
        return ORJSONResponse(status_code=400, content=_error_body(_validation_message(exc)))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("Unhandled server exception", exc_info=exc)
        return ORJSONResponse(status_code=500, content=_error_body("Internal server error."))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {
            "status": "OK",
            "message": "Marketing CRM API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.API_VERSION,
        }

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(audience.router)
    app.include_router(campaigns.router)
    app.include_router(customers.router)
    app.include_router(analytics.router)
    if settings.DEBUG_ENDPOINTS_ENABLED:
        app.include_router(analytics.debug_router)

    return app


app = create_app()
