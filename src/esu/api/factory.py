"""FastAPI application factory.

Wires the authentication boundary, error rendering and the resource routers.
"""

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from esu.api.auth import get_jwt_secret, resolve_identity
from esu.api.errors import GENERIC_SERVER_ERROR, Unauthenticated
from esu.api.permissions import is_unauthenticated_request
from esu.observability.correlation import correlation_id_middleware
from esu.observability.logging import get_logger, log_event

from .routes import bookings, hotels, promotions, ratings, room_types, users

logger = get_logger(__name__)

UNAUTHORIZED_BODY = {"error": "未授权"}


def create_app() -> FastAPI:
    """Create the FastAPI app.

    Raises:
        RuntimeError: If JWT_SECRET is not configured.
    """
    get_jwt_secret()

    app = FastAPI(
        title="ESU Back Office",
        docs_url=None,
        redoc_url=None,
    )

    # Authentication boundary: every request except the allow-list must carry
    # a valid token before any handler runs.
    @app.middleware("http")
    async def authentication_boundary(request: Request, call_next) -> Response:
        if is_unauthenticated_request(request.method, request.url.path):
            return await call_next(request)
        try:
            request.state.identity = resolve_identity(request)
        except Unauthenticated as exc:
            log_event(
                logger,
                logging.WARNING,
                "request rejected at auth boundary",
                method=request.method,
                path=request.url.path,
                reason=exc.message,
            )
            return JSONResponse(status_code=401, content=UNAUTHORIZED_BODY)
        return await call_next(request)

    # Registered last so it wraps the boundary and its log lines.
    app.middleware("http")(correlation_id_middleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"message": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled error",
            exc_info=exc,
            extra={"extra_fields": {"method": request.method, "path": request.url.path}},
        )
        return JSONResponse(status_code=500, content={"message": GENERIC_SERVER_ERROR})

    @app.get("/health")
    def health() -> dict:
        """Health check endpoint."""
        return {"status": "ok"}

    app.include_router(users.router)
    app.include_router(hotels.router)
    app.include_router(room_types.router)
    app.include_router(promotions.router)
    app.include_router(bookings.router)
    app.include_router(ratings.router)

    return app
