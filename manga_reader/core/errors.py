"""
Application error taxonomy.

Every error that crosses a service boundary is an AppError carrying an
ErrorKind discriminator. The kind's value is the stable machine-readable
code rendered to clients; the HTTP status comes from STATUS_BY_KIND.
"""
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Stable error codes exposed to API clients."""
    INTERNAL = "INTERNAL_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    VALIDATION = "VALIDATION_ERROR"
    DATABASE = "DATABASE_ERROR"
    MANGA_NOT_FOUND = "MANGA_NOT_FOUND"
    CHAPTER_NOT_FOUND = "CHAPTER_NOT_FOUND"
    PAGE_NOT_FOUND = "PAGE_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_EXISTS = "USER_ALREADY_EXISTS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    JWT_INVALID = "JWT_INVALID"
    JWT_EXPIRED = "JWT_EXPIRED"


STATUS_BY_KIND = {
    ErrorKind.INTERNAL: 500,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.DATABASE: 500,
    ErrorKind.MANGA_NOT_FOUND: 404,
    ErrorKind.CHAPTER_NOT_FOUND: 404,
    ErrorKind.PAGE_NOT_FOUND: 404,
    ErrorKind.USER_NOT_FOUND: 404,
    ErrorKind.USER_EXISTS: 409,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.JWT_INVALID: 401,
    ErrorKind.JWT_EXPIRED: 401,
}

# Kinds grouped by what callers branch on
NOT_FOUND_KINDS = frozenset({
    ErrorKind.NOT_FOUND,
    ErrorKind.MANGA_NOT_FOUND,
    ErrorKind.CHAPTER_NOT_FOUND,
    ErrorKind.PAGE_NOT_FOUND,
    ErrorKind.USER_NOT_FOUND,
})
CONFLICT_KINDS = frozenset({ErrorKind.CONFLICT, ErrorKind.USER_EXISTS})
AUTH_KINDS = frozenset({
    ErrorKind.UNAUTHORIZED,
    ErrorKind.INVALID_CREDENTIALS,
    ErrorKind.JWT_INVALID,
    ErrorKind.JWT_EXPIRED,
})

# Kinds whose message must stay generic; the cause is only logged
OPAQUE_KINDS = frozenset({ErrorKind.INTERNAL, ErrorKind.DATABASE})


class AppError(Exception):
    """
    An error with a stable code, a client-safe message and optional details.

    Args:
        kind: Discriminator; decides the code and HTTP status
        message: Human-readable message shown to the client
        details: Structured data shown to the client (validation hints, etc.)
        cause: Underlying exception, logged server-side and never rendered
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[Any] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details
        self.cause = cause

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def status_code(self) -> int:
        return status_for(self.kind)

    @property
    def is_not_found(self) -> bool:
        return self.kind in NOT_FOUND_KINDS

    @property
    def is_conflict(self) -> bool:
        return self.kind in CONFLICT_KINDS

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message

    def __repr__(self) -> str:
        return f"AppError({self.kind.value!r}, {self.message!r})"


def status_for(kind: ErrorKind) -> int:
    """HTTP status for an error kind. Every ErrorKind has an entry."""
    try:
        return STATUS_BY_KIND[kind]
    except KeyError:
        raise AssertionError(f"unmapped error kind: {kind!r}")


# ── Constructors ─────────────────────────────────────────────────────────

def internal_error(message: str = "Internal server error", cause: Optional[BaseException] = None) -> AppError:
    return AppError(ErrorKind.INTERNAL, message, cause=cause)


def bad_request(message: str, cause: Optional[BaseException] = None) -> AppError:
    return AppError(ErrorKind.BAD_REQUEST, message, cause=cause)


def unauthorized(message: str = "Authorization required") -> AppError:
    return AppError(ErrorKind.UNAUTHORIZED, message)


def forbidden(message: str = "Access denied") -> AppError:
    return AppError(ErrorKind.FORBIDDEN, message)


def not_found(message: str) -> AppError:
    return AppError(ErrorKind.NOT_FOUND, message)


def conflict(message: str, cause: Optional[BaseException] = None) -> AppError:
    return AppError(ErrorKind.CONFLICT, message, cause=cause)


def validation_error(message: str, details: Optional[Any] = None) -> AppError:
    return AppError(ErrorKind.VALIDATION, message, details=details)


def database_error(cause: Optional[BaseException] = None) -> AppError:
    return AppError(ErrorKind.DATABASE, "Database error", cause=cause)


def manga_not_found(manga_id: Any) -> AppError:
    return AppError(ErrorKind.MANGA_NOT_FOUND, f"Manga with ID {manga_id} not found")


def chapter_not_found(chapter_id: Any) -> AppError:
    return AppError(ErrorKind.CHAPTER_NOT_FOUND, f"Chapter with ID {chapter_id} not found")


def page_not_found(page_id: Any) -> AppError:
    return AppError(ErrorKind.PAGE_NOT_FOUND, f"Page with ID {page_id} not found")


def user_not_found(identifier: Any) -> AppError:
    return AppError(ErrorKind.USER_NOT_FOUND, f"User {identifier} not found")


def user_exists(username: str, cause: Optional[BaseException] = None) -> AppError:
    return AppError(ErrorKind.USER_EXISTS, f"User with username {username} already exists", cause=cause)


def invalid_credentials() -> AppError:
    return AppError(ErrorKind.INVALID_CREDENTIALS, "Invalid username or password")


def jwt_invalid(reason: Optional[str] = None, cause: Optional[BaseException] = None) -> AppError:
    details = {"reason": reason} if reason else None
    return AppError(ErrorKind.JWT_INVALID, "Invalid authorization token", details=details, cause=cause)


def jwt_expired() -> AppError:
    return AppError(ErrorKind.JWT_EXPIRED, "Authorization token has expired")
