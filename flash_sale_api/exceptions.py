import logging
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class APIException(Exception):
    """ Base class for all exceptions in the Flash Sale API. """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class ValidationException(APIException):
    """ Exception is raised when the input is malformed or out of range. """

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation error"


class AuthException(APIException):
    """ Exception is raised when the session is missing, invalid or lacks the required role. """

    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Unauthorized"


class NotFoundException(APIException):
    """ Exception is raised when a referenced entity does not exist. """

    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class ConflictException(APIException):
    """ Exception is raised on a uniqueness violation. """

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Resource already exists"


def error_body(message: str, details: Any = None) -> dict:
    body = {"error": message}
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return body


def create_exception_handler(status_code: int, detail: Any) -> Callable[[Request, Exception], JSONResponse]:
    async def exception_handler(request: Request, exception: Exception):
        return JSONResponse(
            content=error_body(detail),
            status_code=status_code
        )

    return exception_handler


async def api_exception_handler(request: Request, exception: APIException) -> JSONResponse:
    return JSONResponse(
        content=error_body(exception.message, exception.details),
        status_code=exception.status_code
    )


async def http_exception_handler(request: Request, exception: StarletteHTTPException) -> JSONResponse:
    # unknown paths and unsupported methods raised by the router
    return JSONResponse(
        content=error_body(exception.detail),
        status_code=exception.status_code,
        headers=getattr(exception, "headers", None)
    )


async def request_validation_exception_handler(request: Request, exception: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        content=error_body("Validation error", exception.errors()),
        status_code=status.HTTP_400_BAD_REQUEST
    )


async def unhandled_exception_handler(request: Request, exception: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exception)
    return JSONResponse(
        content=error_body("Internal server error"),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
