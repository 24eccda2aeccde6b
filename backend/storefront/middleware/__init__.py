"""
Middleware package.
"""
from storefront.middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from storefront.middleware.request_id import RequestIdMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RequestIdMiddleware",
    "register_exception_handlers",
]
