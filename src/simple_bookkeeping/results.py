"""Tagged action results.

Every server action returns either ``Success(data)`` or
``Failure(ActionError(code, message, details))``. ``to_dict`` renders the
``{"success": ..., "data"/"error": ...}`` shape sent to callers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

import structlog
from pydantic import BaseModel, ValidationError

from simple_bookkeeping.config import get_settings
from simple_bookkeeping.errors import get_secure_error_message

logger = structlog.get_logger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


class ErrorCode(str, Enum):
    """Error codes carried by failed action results."""

    # Authentication
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    SESSION_EXPIRED = "SESSION_EXPIRED"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    REQUIRED_FIELD_MISSING = "REQUIRED_FIELD_MISSING"
    INVALID_FORMAT = "INVALID_FORMAT"

    # Database
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    DATABASE_ERROR = "DATABASE_ERROR"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"

    # Business rules
    INVALID_OPERATION = "INVALID_OPERATION"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"

    # System
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"


@dataclass(frozen=True)
class ActionError:
    code: ErrorCode
    message: str
    details: Any = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            result["details"] = self.details
        return result


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "data": self.data}


@dataclass(frozen=True)
class Failure:
    error: ActionError

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.error.to_dict()}


ActionResult = Union[Success[T], Failure]


class ActionFailed(Exception):
    """Raised inside an action to short-circuit with a Failure result."""

    def __init__(self, code: ErrorCode, message: str, details: Any = None):
        super().__init__(message)
        self.error = ActionError(code, message, details)


def failure(code: ErrorCode, message: str, details: Any = None) -> Failure:
    return Failure(ActionError(code, message, details))


def unauthorized() -> Failure:
    return failure(ErrorCode.UNAUTHORIZED, "認証が必要です。ログインしてください。")


def forbidden() -> Failure:
    return failure(ErrorCode.FORBIDDEN, "この操作を行う権限がありません。")


def not_found(resource: str) -> Failure:
    return failure(ErrorCode.NOT_FOUND, f"{resource}が見つかりません。")


def validation_failure(message: str, details: Any = None) -> Failure:
    return failure(ErrorCode.VALIDATION_ERROR, message, details)


def internal_error(error: BaseException | None = None) -> Failure:
    """Generic internal error in the configured language.

    Exception text is attached only when ``DEBUG_ERRORS`` is set outside
    production.
    """
    settings = get_settings()
    logger.error("internal_error", error=repr(error) if error else None)
    details = None
    if error is not None and settings.expose_error_details:
        details = {"error": str(error)}
    return failure(ErrorCode.INTERNAL_ERROR, get_secure_error_message(error), details)


def network_error(error: BaseException) -> Failure:
    return failure(ErrorCode.NETWORK_ERROR, get_secure_error_message(error))



def rate_limited(retry_after: int | None = None) -> Failure:
    if retry_after:
        message = f"リクエスト数が制限を超えました。{retry_after}秒後に再試行してください。"
    else:
        message = "リクエスト数が制限を超えました。しばらく待ってから再試行してください。"
    return failure(ErrorCode.LIMIT_EXCEEDED, message, {"retry_after": retry_after})


def handle_database_error(error: Any) -> Failure:
    """Map a database error code to a user-safe Failure.

    Unknown codes fall through to the generic internal error so that
    table names and constraint names never reach the caller.
    """
    code = getattr(error, "code", None)
    logger.warning("database_error", code=code)

    if code == "PGRST301":
        return unauthorized()
    if code in ("PGRST200", "42501"):
        return forbidden()
    if code == "23505":
        return failure(ErrorCode.ALREADY_EXISTS, "このデータは既に存在します。")
    if code == "23503":
        return failure(
            ErrorCode.CONSTRAINT_VIOLATION,
            "関連するデータが存在しないため、操作を実行できません。",
        )
    return internal_error(error if isinstance(error, BaseException) else None)


def error_details(error: ValidationError) -> dict[str, list[str]]:
    """Group pydantic errors by dotted field path (``general`` for model-level)."""
    details: dict[str, list[str]] = {}
    for issue in error.errors():
        path = ".".join(str(part) for part in issue["loc"]) or "general"
        details.setdefault(path, []).append(_issue_message(issue))
    return details


def format_validation_error(error: ValidationError) -> str:
    parts = []
    for issue in error.errors():
        path = ".".join(str(part) for part in issue["loc"])
        message = _issue_message(issue)
        parts.append(f"{path}: {message}" if path else message)
    return ", ".join(parts)


def _issue_message(issue: Any) -> str:
    message = str(issue["msg"])
    # pydantic prefixes messages raised from validators
    for prefix in ("Value error, ", "Assertion failed, "):
        if message.startswith(prefix):
            return message[len(prefix):]
    return message


def validate_input(model: type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` against ``model``.

    Raises:
        ActionFailed: with VALIDATION_ERROR and every failing field
            collected in ``details``.
    """
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ActionFailed(
            ErrorCode.VALIDATION_ERROR,
            format_validation_error(exc),
            error_details(exc),
        ) from exc
