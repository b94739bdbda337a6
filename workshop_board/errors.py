"""Error taxonomy shared by the API and the web gateway.

Every failure reaches the client as ``{"error": message}`` with the status
code of its kind. Internal detail (tracebacks, database messages, field
level validation issues) is only written to the server log.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class WorkshopError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str = None, **extra):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)


class BadRequest(WorkshopError):
    status_code = 400
    message = "Invalid payload"


class Unauthorized(WorkshopError):
    status_code = 401
    message = "Unauthorized"


class InvalidCredentials(Unauthorized):
    message = "Invalid credentials"


class Forbidden(WorkshopError):
    status_code = 403
    message = "Insufficient permissions"


class NotFound(WorkshopError):
    status_code = 404
    message = "Not found"


class Conflict(WorkshopError):
    status_code = 409
    message = "Conflict"


class ServerError(WorkshopError):
    pass


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def workshop_error_handler(request: Request, exc: WorkshopError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message, **exc.extra)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected payload for %s %s: %s", request.method, request.url.path, exc.errors())
    return error_response(400, BadRequest.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return error_response(500, ServerError.message)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, ServerError.message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkshopError, workshop_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
