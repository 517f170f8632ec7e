"""
Application error taxonomy.

Every failure the API reports is an `ApplicationError`. Ids are part of the
public contract (clients match on them), so never renumber an existing one.

`format_error` is the boundary formatter: it maps storage and untyped
exceptions into the taxonomy right before a response is rendered.
"""

from __future__ import annotations

import enum
from typing import Any, Iterable

import asyncpg
from fastapi import status


class ErrorType(str, enum.Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    COLLECTION = "collection"
    DATABASE = "database"
    FILES = "files"
    SYSTEM = "system"
    VALIDATION = "validation"


class ApplicationError(Exception):
    """
    A typed failure with a stable id and an HTTP status hint.

    Optional attachments:
    - errors: sub-errors of an ErrorCollection
    - info: validation detail ({name, type, path, message})
    - updated_item: the stored row that won a concurrency conflict
    - create_errors / update_errors / delete_errors: BatchError buckets
    """

    def __init__(
        self,
        id: int,
        type: ErrorType,
        name: str,
        message: str,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.id = id
        self.type = type
        self.short_name = name
        self.name = f"ApplicationError:{name}"
        self.message = message
        self.status = status
        self.errors: list[ApplicationError] | None = None
        self.info: dict[str, Any] | None = None
        self.updated_item: dict[str, Any] | None = None
        self.create_errors: list[ApplicationError] | None = None
        self.update_errors: list[ApplicationError] | None = None
        self.delete_errors: list[ApplicationError] | None = None

    def __repr__(self) -> str:
        return f"ApplicationError(id={self.id}, name={self.short_name!r}, status={self.status})"

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "message": self.message,
        }
        if self.errors is not None:
            body["errors"] = [e.to_dict() for e in self.errors]
        if self.info is not None:
            body["info"] = self.info
        if self.updated_item is not None:
            body["updatedItem"] = self.updated_item
        if self.create_errors is not None:
            body["createErrors"] = [e.to_dict() for e in self.create_errors]
        if self.update_errors is not None:
            body["updateErrors"] = [e.to_dict() for e in self.update_errors]
        if self.delete_errors is not None:
            body["deleteErrors"] = [e.to_dict() for e in self.delete_errors]
        return body


def _with_details(message: str, details: str | None) -> str:
    return f"{message} {details}" if details else message


def system_error(exc: BaseException) -> ApplicationError:
    return ApplicationError(
        90000,
        ErrorType.SYSTEM,
        type(exc).__name__,
        str(exc) or "An unexpected error occurred.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def missing_model_name_error(model_name: str | None) -> ApplicationError:
    return ApplicationError(
        90001,
        ErrorType.DATABASE,
        "MissingModelNameError",
        f"Invalid model name '{model_name}'. You must provide an existing model name.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def missing_token_error() -> ApplicationError:
    return ApplicationError(
        90002,
        ErrorType.AUTHENTICATION,
        "MissingTokenError",
        "The JWT is missing. You must provide it in the header or as a POST body parameter.",
        status.HTTP_403_FORBIDDEN,
    )


def invalid_token_error() -> ApplicationError:
    return ApplicationError(
        90003,
        ErrorType.AUTHENTICATION,
        "InvalidTokenError",
        "The JWT token is invalid. Please try again with a valid token.",
        status.HTTP_403_FORBIDDEN,
    )


def expired_token_error() -> ApplicationError:
    return ApplicationError(
        90004,
        ErrorType.AUTHENTICATION,
        "ExpiredTokenError",
        "The JWT token has expired. Please request a new token and try again.",
        status.HTTP_403_FORBIDDEN,
    )


def invalid_authentication_error() -> ApplicationError:
    return ApplicationError(
        90005,
        ErrorType.AUTHENTICATION,
        "InvalidAuthentication",
        "The credentials supplied were incorrect, please try again.",
        status.HTTP_403_FORBIDDEN,
    )


def unauthorized_error(details: str | None = None) -> ApplicationError:
    return ApplicationError(
        90006,
        ErrorType.AUTHORIZATION,
        "UnauthorizedError",
        _with_details("You are not authorized to perform the requested operation.", details),
        status.HTTP_401_UNAUTHORIZED,
    )


def offset_error() -> ApplicationError:
    return ApplicationError(
        90007,
        ErrorType.DATABASE,
        "OffsetError",
        "Offset must be an integer value greater than or equal to zero.",
        status.HTTP_400_BAD_REQUEST,
    )


def limit_error() -> ApplicationError:
    return ApplicationError(
        90008,
        ErrorType.DATABASE,
        "LimitError",
        "Limit must be an integer value greater than or equal to one.",
        status.HTTP_400_BAD_REQUEST,
    )


def missing_field_error(model_name: str, field_name: str) -> ApplicationError:
    err = ApplicationError(
        90009,
        ErrorType.DATABASE,
        "MissingFieldError",
        f"The entity '{model_name}' does not have a field called '{field_name}'.",
        status.HTTP_400_BAD_REQUEST,
    )
    err.info = {"modelName": model_name, "fieldName": field_name}
    return err


def concurrency_error(updated_item: dict[str, Any]) -> ApplicationError:
    err = ApplicationError(
        90010,
        ErrorType.DATABASE,
        "ConcurrencyError",
        "The item you are attempting to update is stale. Please update the item's "
        "timestamp then try again. You may want to merge updated data as well.",
        status.HTTP_409_CONFLICT,
    )
    err.updated_item = updated_item
    return err


def no_end_point_error(url: str) -> ApplicationError:
    return ApplicationError(
        90011,
        ErrorType.DATABASE,
        "NoEndPointError",
        f"The end point '{url}' does not exist.",
        status.HTTP_404_NOT_FOUND,
    )


def item_not_found_error(item_id: Any, model_name: str, key_name: str = "id") -> ApplicationError:
    err = ApplicationError(
        90012,
        ErrorType.DATABASE,
        "ItemNotFoundError",
        f"The item of type '{model_name}' with {key_name} = '{item_id}' was not found.",
        status.HTTP_404_NOT_FOUND,
    )
    err.info = {"id": item_id, "modelName": model_name}
    return err


def field_include_exclude_error() -> ApplicationError:
    return ApplicationError(
        90014,
        ErrorType.DATABASE,
        "FieldIncludeExcludeError",
        "You cannot mix included fields and excluded fields. You must provide one or the other.",
        status.HTTP_400_BAD_REQUEST,
    )


def bad_input_error(details: str | None = None) -> ApplicationError:
    return ApplicationError(
        90015,
        ErrorType.VALIDATION,
        "BadInputError",
        _with_details(
            "The JSON input is not properly formatted or a query parameter is invalid. "
            "Please check your data and try again.",
            details,
        ),
        status.HTTP_400_BAD_REQUEST,
    )


def invalid_property_error(property_name: str) -> ApplicationError:
    return ApplicationError(
        90016,
        ErrorType.DATABASE,
        "InvalidPropertyError",
        f"The property '{property_name}' is invalid.",
        status.HTTP_400_BAD_REQUEST,
    )


def body_not_allowed_error() -> ApplicationError:
    return ApplicationError(
        90017,
        ErrorType.DATABASE,
        "BodyNotAllowedError",
        "The DELETE method does not allow body elements. Please try your call without a body.",
        status.HTTP_400_BAD_REQUEST,
    )


def validation_error(info: dict[str, Any]) -> ApplicationError:
    err = ApplicationError(
        90019,
        ErrorType.VALIDATION,
        "ValidationError",
        "One or more property values is missing or invalid. Please check your submission and try again.",
        status.HTTP_400_BAD_REQUEST,
    )
    err.info = info
    return err


def batch_error(
    create_errors: list[ApplicationError],
    update_errors: list[ApplicationError],
    delete_errors: list[ApplicationError],
    errors: list[ApplicationError] | None = None,
) -> ApplicationError:
    err = ApplicationError(
        90020,
        ErrorType.DATABASE,
        "BatchError",
        "One or more errors occurred when trying to apply the batch process.",
        status.HTTP_400_BAD_REQUEST,
    )
    err.errors = list(errors) if errors else []
    err.create_errors = list(create_errors)
    err.update_errors = list(update_errors)
    err.delete_errors = list(delete_errors)
    return err


def unsupported_media_type_error() -> ApplicationError:
    return ApplicationError(
        90022,
        ErrorType.VALIDATION,
        "UnsupportedMediaTypeError",
        "Unsupported media type. Please check your submission and try again. "
        "Media type must be application/json.",
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    )


def invalid_file_error(details: str | None = None) -> ApplicationError:
    return ApplicationError(
        90024,
        ErrorType.FILES,
        "InvalidFileError",
        _with_details("The file you attempted to upload is invalid.", details),
        status.HTTP_400_BAD_REQUEST,
    )


def file_not_found_error(file_path: str) -> ApplicationError:
    return ApplicationError(
        90026,
        ErrorType.FILES,
        "FileNotFoundError",
        f"The file you requested to download was not found: {file_path}",
        status.HTTP_400_BAD_REQUEST,
    )


def hash_failed_error(exc: BaseException) -> ApplicationError:
    return ApplicationError(
        90027,
        ErrorType.VALIDATION,
        "HashFailedError",
        f"The system failed to hash a password. {exc}",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def lock_held_error(entity: str, item_id: Any) -> ApplicationError:
    err = ApplicationError(
        90030,
        ErrorType.DATABASE,
        "LockHeldError",
        f"The item of type '{entity}' with id = '{item_id}' is locked by another owner.",
        status.HTTP_409_CONFLICT,
    )
    err.info = {"entity": entity, "id": item_id}
    return err


def lock_not_found_error(token: str) -> ApplicationError:
    return ApplicationError(
        90031,
        ErrorType.DATABASE,
        "LockNotFoundError",
        f"No active lock exists for token '{token}'.",
        status.HTTP_404_NOT_FOUND,
    )


def error_collection(errors: Iterable[ApplicationError]) -> ApplicationError:
    """
    Wrap several errors as one. A single error is returned as-is.
    """
    errors = list(errors)
    if len(errors) == 1:
        return errors[0]
    err = ApplicationError(
        90100,
        ErrorType.COLLECTION,
        "ErrorCollection",
        "One or more errors occurred.",
        status.HTTP_400_BAD_REQUEST,
    )
    err.errors = errors
    return err


# Constraint violations that describe bad caller data rather than a storage fault.
_VALIDATION_VIOLATIONS = (
    asyncpg.exceptions.NotNullViolationError,
    asyncpg.exceptions.CheckViolationError,
    asyncpg.exceptions.UniqueViolationError,
    asyncpg.exceptions.StringDataRightTruncationError,
)


def _storage_error(exc: asyncpg.PostgresError) -> ApplicationError:
    if isinstance(exc, _VALIDATION_VIOLATIONS):
        info = {
            "name": type(exc).__name__,
            "type": getattr(exc, "sqlstate", None),
            "path": getattr(exc, "column_name", None) or getattr(exc, "constraint_name", None),
            "message": getattr(exc, "message", None) or str(exc),
        }
        return error_collection([validation_error(info)])

    if isinstance(exc, asyncpg.exceptions.ForeignKeyViolationError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return ApplicationError(
        91001,
        ErrorType.DATABASE,
        type(exc).__name__,
        getattr(exc, "message", None) or str(exc),
        code,
    )


def format_error(exc: BaseException) -> ApplicationError:
    """
    Convert any exception into an ApplicationError for the response body.
    """
    if isinstance(exc, ApplicationError):
        return exc
    if isinstance(exc, asyncpg.PostgresError):
        return _storage_error(exc)
    return system_error(exc)
