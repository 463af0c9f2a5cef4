"""Typed application errors.

Services raise these instead of driver exceptions; the HTTP layer maps
``status_code`` onto the response.
"""
from __future__ import annotations

import functools
import sqlite3
from typing import Any, TypeVar

import asyncpg
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import PyMongoError

ModelT = TypeVar("ModelT", bound=BaseModel)

STORE_ERRORS: tuple[type[BaseException], ...] = (
    sqlite3.Error,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    PyMongoError,
)


class AppError(Exception):
    """Base application error carrying an HTTP-style status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(AppError):
    def __init__(self, message: str = "Validation failed.", errors: list[dict[str, str]] | None = None):
        super().__init__(message, 400)
        self.errors = list(errors or [])

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError, prefix: str = "") -> "ValidationError":
        errors = []
        for item in exc.errors():
            field = ".".join(str(part) for part in item.get("loc", ()))
            if prefix:
                field = f"{prefix}.{field}" if field else prefix
            errors.append({"field": field, "message": str(item.get("msg", "Invalid value"))})
        return cls("Validation failed.", errors)


class NotFoundError(AppError):
    def __init__(self, resource: str = "Resource", identifier: str = ""):
        if identifier:
            message = f"{resource} with identifier '{identifier}' not found."
        else:
            message = f"{resource} not found."
        super().__init__(message, 404)
        self.resource = resource
        self.identifier = identifier


class ForbiddenError(AppError):
    def __init__(self, message: str = "You do not have permission to perform this action."):
        super().__init__(message, 403)


class DatabaseError(AppError):
    def __init__(self, message: str = "Database operation failed.", original_error: BaseException | None = None):
        super().__init__(message, 500)
        self.original_error = original_error


def translate_store_errors(func):
    """Re-raise driver exceptions from an async service call as DatabaseError."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any):
        try:
            return await func(*args, **kwargs)
        except AppError:
            raise
        except STORE_ERRORS as exc:
            raise DatabaseError(f"{func.__name__} failed: {exc}", exc) from exc

    return wrapper


def format_error_response(error: AppError) -> dict[str, Any]:
    response: dict[str, Any] = {
        "status": error.status,
        "message": error.message,
        "statusCode": error.status_code,
    }
    errors = getattr(error, "errors", None)
    if errors:
        response["errors"] = errors
    return response


def validate_payload(model: type[ModelT], data: Any, prefix: str = "") -> ModelT:
    """Validate ``data`` against ``model``, reporting every failing field at once."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc, prefix) from exc
