"""User-safe error messages.

Maps arbitrary exceptions onto a small set of error categories and
returns generic messages for them, so that internal identifiers, hosts and
stack traces never reach end users. Specific well-known error codes get
fixed messages; authentication failures use the same wording whether or not
the account exists.
"""

import re
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from simple_bookkeeping.config import get_settings

logger = structlog.get_logger(__name__)


class ErrorType(str, Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    DATABASE = "database"
    EXTERNAL_SERVICE = "external_service"


class Language(str, Enum):
    JA = "ja"
    EN = "en"


GENERIC_MESSAGES: dict[ErrorType, dict[Language, str]] = {
    ErrorType.AUTHENTICATION: {
        Language.JA: "認証情報が正しくありません",
        Language.EN: "Invalid credentials",
    },
    ErrorType.AUTHORIZATION: {
        Language.JA: "このアクションを実行する権限がありません",
        Language.EN: "You do not have permission to perform this action",
    },
    ErrorType.VALIDATION: {
        Language.JA: "入力内容に問題があります",
        Language.EN: "Invalid input provided",
    },
    ErrorType.NOT_FOUND: {
        Language.JA: "リソースが見つかりません",
        Language.EN: "Resource not found",
    },
    ErrorType.RATE_LIMIT: {
        Language.JA: "リクエストが多すぎます。しばらくしてからお試しください",
        Language.EN: "Too many requests. Please try again later",
    },
    ErrorType.SERVER_ERROR: {
        Language.JA: "サーバーエラーが発生しました。しばらくしてからお試しください",
        Language.EN: "A server error occurred. Please try again later",
    },
    ErrorType.NETWORK: {
        Language.JA: "ネットワークエラーが発生しました。接続を確認してください",
        Language.EN: "Network error. Please check your connection",
    },
    ErrorType.DATABASE: {
        Language.JA: "データベースエラーが発生しました",
        Language.EN: "Database error occurred",
    },
    ErrorType.EXTERNAL_SERVICE: {
        Language.JA: "外部サービスとの通信に失敗しました",
        Language.EN: "Failed to communicate with external service",
    },
}

_INVALID_LOGIN = {
    Language.JA: "メールアドレスまたはパスワードが正しくありません",
    Language.EN: "Invalid email or password",
}

SPECIFIC_MESSAGES: dict[str, dict[Language, str]] = {
    "auth/invalid-credentials": _INVALID_LOGIN,
    # same wording as invalid credentials: do not reveal whether the user exists
    "auth/user-not-found": _INVALID_LOGIN,
    "auth/wrong-password": _INVALID_LOGIN,
    "auth/email-already-in-use": {
        Language.JA: "登録処理に失敗しました",
        Language.EN: "Registration failed",
    },
    "auth/weak-password": {
        Language.JA: "パスワードが弱すぎます。より強力なパスワードを設定してください",
        Language.EN: "Password is too weak. Please use a stronger password",
    },
    "auth/expired-token": {
        Language.JA: "セッションが期限切れです。再度ログインしてください",
        Language.EN: "Session expired. Please login again",
    },
    "auth/invalid-token": {
        Language.JA: "無効な認証トークンです",
        Language.EN: "Invalid authentication token",
    },
    "rate-limit/too-many-attempts": {
        Language.JA: "ログイン試行回数が多すぎます。15分後に再試行してください",
        Language.EN: "Too many login attempts. Please try again in 15 minutes",
    },
    "validation/invalid-email": {
        Language.JA: "有効なメールアドレスを入力してください",
        Language.EN: "Please enter a valid email address",
    },
    "validation/required-field": {
        Language.JA: "必須項目です",
        Language.EN: "This field is required",
    },
    "validation/invalid-format": {
        Language.JA: "入力形式が正しくありません",
        Language.EN: "Invalid format",
    },
    "account/not-verified": {
        Language.JA: "メールアドレスの確認が必要です",
        Language.EN: "Email verification required",
    },
    "account/suspended": {
        Language.JA: "アカウントが一時停止されています",
        Language.EN: "Account suspended",
    },
}

SENSITIVE_PATTERNS = [
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),  # email
    re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),  # card number
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),  # SSN
    re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*"),
    re.compile(r"[A-Za-z0-9]{32,}"),  # API keys and tokens
]


def _default_language() -> Language:
    return Language(get_settings().error_language)


def _contains(text: str, *needles: str) -> bool:
    return any(needle in text for needle in needles)


def determine_error_type(error: BaseException) -> ErrorType:
    """Categorize an exception by keywords in its message and class name.

    Order matters: authorization is checked before authentication so that
    "user lacks permission" is not reported as a login problem, and
    database before network because connection errors mention both.
    """
    message = str(error).lower()
    name = type(error).__name__.lower()

    if _contains(message, "rate", "limit", "too many"):
        return ErrorType.RATE_LIMIT

    if _contains(
        message,
        "permission",
        "forbidden",
        "unauthorized",
        "access denied",
        "insufficient privileges",
    ) or "forbidden" in name:
        return ErrorType.AUTHORIZATION

    if _contains(
        message,
        "auth",
        "login",
        "password",
        "credentials",
        "user not found",
        "account does not exist",
        "invalid email or password",
    ) or "auth" in name:
        return ErrorType.AUTHENTICATION

    if (
        _contains(message, "database", "sql", "query", "postgresql", "mysql", "econnrefused")
        or ("connection" in message and _contains(message, "5432", "db"))
        or "database" in name
    ):
        return ErrorType.DATABASE

    if (
        _contains(message, "network", "fetch", "enotfound", "connection refused")
        or ("connection" in message and "database" not in message)
        or "network" in name
    ):
        return ErrorType.NETWORK

    if _contains(message, "validation", "invalid input", "field is required") or (
        "validation" in name
    ):
        return ErrorType.VALIDATION

    if (
        ("not found" in message and "user not found" not in message)
        or "404" in message
        or "notfound" in name
    ):
        return ErrorType.NOT_FOUND

    return ErrorType.SERVER_ERROR


def get_secure_error_message(error: Any, language: Language | None = None) -> str:
    """Return a message that is safe to show to end users."""
    language = language or _default_language()

    if isinstance(error, str) and error in SPECIFIC_MESSAGES:
        return SPECIFIC_MESSAGES[error][language]

    if isinstance(error, BaseException):
        code = getattr(error, "code", None) or str(error)
        if isinstance(code, str) and code in SPECIFIC_MESSAGES:
            return SPECIFIC_MESSAGES[code][language]
        return GENERIC_MESSAGES[determine_error_type(error)][language]

    return GENERIC_MESSAGES[ErrorType.SERVER_ERROR][language]


def is_error_type(error: Any, error_type: ErrorType) -> bool:
    if isinstance(error, BaseException):
        return determine_error_type(error) == error_type
    return False


def sanitize_error_for_logging(error: BaseException | str) -> str:
    """Redact emails, card numbers, bearer tokens and long keys."""
    message = error if isinstance(error, str) else str(error)
    for pattern in SENSITIVE_PATTERNS:
        message = pattern.sub("[REDACTED]", message)
    return message


def log_error_securely(
    error: BaseException,
    context: dict[str, Any] | None = None,
    user_id: str | None = None,
    session_id: str | None = None,
) -> None:
    """Log an error; in production only its category is recorded."""
    settings = get_settings()
    info = {
        "user_id": user_id or "anonymous",
        "session_id": session_id or "no-session",
        "environment": settings.app_env,
    }

    if settings.is_production:
        logger.error("application_error", error_type=determine_error_type(error).value, **info)
        return

    logger.error(
        "application_error",
        error=sanitize_error_for_logging(error),
        error_class=type(error).__name__,
        context=context or {},
        exc_info=error,
        **info,
    )


def create_error_response(error: Any, language: Language | None = None) -> dict[str, Any]:
    """Build the standard ``{"success": False, "error": ...}`` payload."""
    language = language or _default_language()
    error_type = (
        determine_error_type(error) if isinstance(error, BaseException) else ErrorType.SERVER_ERROR
    )
    body: dict[str, Any] = {
        "message": get_secure_error_message(error, language),
        "type": error_type.value,
    }
    if get_settings().expose_error_details:
        body["code"] = str(error)

    return {
        "success": False,
        "error": body,
        "timestamp": datetime.now(UTC).isoformat(),
    }
