import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError


logger = logging.getLogger(__name__)


class LibraryError(Exception):
    """Base class for errors that end a request with a JSON ``{message}`` body."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        return {"message": self.message}


class ValidationError(LibraryError):
    """Field-level violations collected by the validation engine."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"

    def __init__(self, errors: List[Dict[str, Any]], message: str = None):
        super().__init__(message)
        self.errors = errors

    def to_body(self) -> Dict[str, Any]:
        return {"errors": self.errors}


class BadRequestError(LibraryError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class AuthenticationError(LibraryError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "You must be authenticated"


class AuthorizationError(LibraryError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have the required permissions"


class LoanPreconditionError(LibraryError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Loan request not allowed"


class ReservedRoleError(LibraryError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "This role cannot be deleted"


class NotFoundError(LibraryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ConflictError(LibraryError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "The resource conflicts with an existing one"


class InternalError(LibraryError):
    pass


async def library_error_handler(request: Request, exc: LibraryError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    # reshape FastAPI's decoding errors into the validation engine's body
    errors = {}
    for err in exc.errors():
        prop = str(err["loc"][-1]) if err.get("loc") else "body"
        errors.setdefault(prop, {})[err.get("type", "invalid")] = err.get("msg", "Invalid value")
    body = [{"property": prop, "infos": infos} for prop, infos in errors.items()]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"errors": body})


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(status_code=ConflictError.status_code, content=ConflictError().to_body())


async def persistence_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Persistence failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=InternalError.status_code, content=InternalError().to_body())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LibraryError, library_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, persistence_error_handler)
