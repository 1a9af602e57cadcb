"""Translate service errors into RFC 7807 error responses."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from mapping_service.core.exceptions import (
    DatabaseError,
    DuplicateMappingError,
    NotFoundError,
    ValidationError,
)
from mapping_service.utils.logging import get_logger
from mapping_service.utils.responses import create_error_detail

LOGGER = get_logger(__name__)

DUPLICATE_ERROR_CODE = 1409


def _dump(value: Any) -> Any:
    return value.model_dump(mode="json") if hasattr(value, "model_dump") else value


def _error_response(status_code: int, error_detail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": error_detail.model_dump(mode="json")})


async def duplicate_mapping_handler(request: Request, exc: DuplicateMappingError) -> JSONResponse:
    LOGGER.error(f"Duplicate mapping exception: {exc.message}", extra={"kind": exc.kind, "level": exc.level})
    error_detail = create_error_detail(
        title="Duplicate Mapping",
        status=status.HTTP_409_CONFLICT,
        detail=exc.message,
        request=request,
        error_code=DUPLICATE_ERROR_CODE,
        more_info={"existing": _dump(exc.existing), "duplicate": _dump(exc.duplicate)},
        conflict_level=exc.level,
    )
    return _error_response(status.HTTP_409_CONFLICT, error_detail)


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    LOGGER.info(f"Not found: {exc.message}")
    error_detail = create_error_detail(
        title="Mapping Not Found",
        status=status.HTTP_404_NOT_FOUND,
        detail=exc.message,
        request=request,
    )
    return _error_response(status.HTTP_404_NOT_FOUND, error_detail)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    LOGGER.info(f"Validation failure: {exc.message}")
    error_detail = create_error_detail(
        title="Bad Request",
        status=status.HTTP_400_BAD_REQUEST,
        detail=exc.message,
        request=request,
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, error_detail)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    LOGGER.info(f"Request validation failure: {exc.errors()}")
    error_detail = create_error_detail(
        title="Bad Request",
        status=status.HTTP_400_BAD_REQUEST,
        detail="; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        ),
        request=request,
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, error_detail)


async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.error(f"Mapping store failure: {exc}", exc_info=exc)
    error_detail = create_error_detail(
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="The mapping store could not complete the request",
        request=request,
    )
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error_detail)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DuplicateMappingError, duplicate_mapping_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(DatabaseError, storage_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)
