"""
Error handling for the API.

Domain errors (StorefrontError subclasses) are mapped to JSON responses by
registered exception handlers. Anything else that escapes a route is caught
by ErrorHandlerMiddleware, a pure ASGI middleware (not BaseHTTPMiddleware)
so async generator dependencies like get_db_session() keep working.
"""
import json

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from storefront.core.exceptions import (
    DuplicateOrderError,
    InvalidTransitionError,
    OrderPersistenceError,
    StorefrontError,
)
from storefront.core.logging import get_logger

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = 5


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Translate a domain error into ``{"detail", "code"}`` with its status."""
    content: dict = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, InvalidTransitionError):
        content.update(field=exc.axis, current=exc.current, target=exc.target)
    if isinstance(exc, OrderPersistenceError) and exc.order_numbers:
        content["orderNumbers"] = exc.order_numbers

    headers = {}
    if exc.retryable:
        headers["Retry-After"] = str(RETRY_AFTER_SECONDS)
        logger.error(
            "Retryable failure",
            code=exc.code,
            error=exc.message,
            path=request.url.path,
        )
    elif isinstance(exc, DuplicateOrderError) or exc.status_code >= 404:
        logger.warning("Request failed", code=exc.code, error=exc.message, path=request.url.path)
    else:
        logger.info("Request rejected", code=exc.code, error=exc.message, path=request.url.path)

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)


class ErrorHandlerMiddleware:
    """
    Pure ASGI error handler that catches unhandled exceptions
    and returns proper JSON 500 responses.

    Does NOT catch HTTPException; those are handled by FastAPI's
    default exception handler and must pass through unchanged.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except HTTPException:
            raise
        except Exception as e:
            if response_started:
                # Headers already sent, can't change the response
                logger.exception(
                    "Unhandled exception after response started",
                    error=str(e),
                    path=scope.get("path", "unknown"),
                )
                raise

            logger.exception(
                "Unhandled exception",
                error=str(e),
                path=scope.get("path", "unknown"),
            )

            body = json.dumps({
                "detail": "Internal server error",
                "type": type(e).__name__,
            }).encode("utf-8")

            await send({
                "type": "http.response.start",
                "status": 500,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            })
            await send({
                "type": "http.response.body",
                "body": body,
            })
