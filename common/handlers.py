"""
Exception handlers shared by every FastAPI application in the cluster.

They turn domain errors and framework routing errors into the
{"message": <text>} bodies clients expect.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.errors import ErrorMessages, InvalidEndpoint, InvalidMethod, ServiceError

logger = logging.getLogger(__name__)


def error_response(error: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    """
    Install the error handlers on an application.

    Args:
        app: Application to configure
    """

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code} {exc}")
        return error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def routing_error_handler(request: Request, exc: StarletteHTTPException):
        # No route for the path
        if exc.status_code == 404:
            return error_response(InvalidEndpoint())
        # Route exists but not for this verb
        if exc.status_code == 405:
            return error_response(InvalidMethod())
        return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"message": ErrorMessages.INTERNAL_ERROR})
