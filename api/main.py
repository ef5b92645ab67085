"""
api/main.py -- FastAPI application entry point for Tokengate.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- allows the configured browser origin, with credentials
                       so the token cookies travel on cross-origin calls
  2. log_requests   -- one access-log line per request

Lifespan wires the components from an explicit Settings instance (no module
reads global config): UserStore -> PasswordHasher -> TokenSigner ->
SessionManager and RequestAuthenticator, all parked on app.state. Shutdown
closes the store.

Error path: every rejection reaches the client through the exception
handlers registered in _register_exception_handlers(). Route handlers never
write an error body themselves.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from api.models import ApiErrorResponse, HealthResponse
from api.routes.v1.auth import router as users_router
from auth.dependencies import RequestAuthenticator
from auth.errors import MSG_INTERNAL, AuthFailure
from auth.passwords import PasswordHasher
from auth.session import SessionManager
from auth.store import UserStore
from auth.tokens import TokenSigner
from core.config import Settings, get_settings

__version__ = "0.1.0"

logger = logging.getLogger("tokengate.api")


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_components(app: FastAPI, store: UserStore) -> None:
    """Construct the session components around store and attach them to app.state.

    Split out of lifespan so tests can wire an isolated in-memory store.
    """
    settings: Settings = app.state.settings
    signer = TokenSigner.from_settings(settings)
    app.state.user_store = store
    app.state.session_manager = SessionManager(
        store,
        PasswordHasher(rounds=settings.bcrypt_rounds),
        signer,
        revoke_on_password_change=settings.revoke_sessions_on_password_change,
    )
    app.state.authenticator = RequestAuthenticator(store, signer)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store on startup and close it on shutdown."""
    settings: Settings = app.state.settings
    logger.info("Tokengate API starting up (port=%s)", settings.port)
    build_components(app, UserStore(settings.database_url))
    logger.info("User store initialized")

    yield

    app.state.user_store.close()
    logger.info("Tokengate API shutdown complete")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app for the given settings (default: environment)."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app = FastAPI(
        title="Tokengate API",
        description="Credential-based authentication with rotating refresh tokens.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    app.include_router(users_router, prefix="/api/v1", tags=["Users"])

    @app.get("/api/v1/health", tags=["Health"])
    def health(request: Request) -> HealthResponse:
        """Return liveness, version, and whether the store answers."""
        try:
            database = "ok" if request.app.state.user_store.ping() else "error"
        except SQLAlchemyError:
            logger.exception("Health check could not reach the database")
            database = "error"
        return HealthResponse(version=__version__, components={"app": "ok", "database": database})

    _register_exception_handlers(app)
    return app


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same error envelope so clients can parse failures
# uniformly: {statusCode, data: null, message, errors, success: false}.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, message: str, errors: list | None = None) -> JSONResponse:
    body = ApiErrorResponse(status_code=status_code, message=message, errors=errors or [])
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body.model_dump(by_alias=True)))


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthFailure)
    async def auth_failure_handler(request: Request, exc: AuthFailure) -> JSONResponse:
        error = exc.error
        if error.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, error.message)
        return _error_response(error.status_code, error.message, error.errors)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed bodies are a client error: 400 with pydantic's error list."""
        errors = [
            {"field": ".".join(str(part) for part in err.get("loc", ())[1:]), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(400, "Request validation failed", errors)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Framework-raised HTTP errors (404 route, 405 method) in the same envelope."""
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The raw exception is logged only, never written to the response body.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(500, MSG_INTERNAL)


app = create_app()
