from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any, Awaitable, Callable
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from fast_order.api import routes_auth, routes_pages, routes_qbo
from fast_order.core.config import get_settings
from fast_order.core import logging as logging_utils

RequestHandler = Callable[[Request], Awaitable[Response]]


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    logging_utils.configure_logging(settings.log_level)
    logger = logging.getLogger("fast_order.lifespan")
    logger.info(
        "application_startup",
        extra={
            "environment": settings.qb_environment,
            "realm_configured": settings.qb_realm_id is not None,
        },
    )
    try:
        yield
    finally:
        logger.info("application_shutdown")


def _error_response(
    request: Request,
    status_code: int,
    message: str,
    details: Any = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    payload = {
        "code": status_code,
        "error": message,
        "details": details,
        "correlation_id": request_id,
    }
    response = JSONResponse(status_code=status_code, content=payload)
    if request_id:
        response.headers["X-Request-Id"] = request_id
    return response


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Fast Order",
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: RequestHandler):
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        logging_utils.set_request_context(request_id=request_id)
        start = perf_counter()
        logger = logging.getLogger("fast_order.request")
        request.state.response_status = None
        try:
            response = await call_next(request)
            request.state.response_status = response.status_code
            response.headers["X-Request-Id"] = request_id
            return response
        except Exception:
            request.state.response_status = status.HTTP_500_INTERNAL_SERVER_ERROR
            raise
        finally:
            duration_ms = (perf_counter() - start) * 1000
            logger.info(
                "request_completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": request.state.response_status,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            logging_utils.clear_request_context()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message: str
        details = None
        if isinstance(exc.detail, str):
            message = exc.detail
        elif isinstance(exc.detail, dict) and "message" in exc.detail:
            message = str(exc.detail["message"])
            details = exc.detail.get("details")
        else:
            message = "Request failed"
            details = exc.detail
        return _error_response(request, exc.status_code, message, details)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            jsonable_errors(exc),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger = logging.getLogger("fast_order.errors")
        logger.exception(
            "unhandled_error",
            extra={"correlation_id": getattr(request.state, "request_id", None)},
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
        )

    app.include_router(routes_auth.router)
    app.include_router(routes_qbo.router)
    app.include_router(routes_pages.router)

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": settings.app_version}

    app.include_router(routes_pages.fallback_router)
    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    errors = []
    for error in exc.errors():
        errors.append({key: value for key, value in error.items() if key in {"type", "loc", "msg"}})
    return errors


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "fast_order.main:create_app",
        host="0.0.0.0",
        port=settings.port,
        reload=False,
        factory=True,
    )


if __name__ == "__main__":
    run()
