"""
Error taxonomy for the access-control layer.

Every failure of the decision engine is raised as a subclass of AuthError and
identified by a stable ErrorCode. The codes are what callers should branch on;
the message text is only a rendering of the code (see fieldguard.messages) and
may change with the locale.

    AuthError
    ├── MissingCredential    HTTP_HEADER_IS_EMPTY   no credential supplied
    ├── TokenNotFound        NOT_FOUND              credential matches no token
    ├── TokenInactive        NOT_ACTIVE             token found but deactivated
    ├── NoAccess             NO_ACCESS              no permission row for "type:name"
    └── TokenAlreadyExists   TOKEN_ALREADY_EXISTS   duplicate token at creation

The ``status_code`` attribute is a hint for transports (401 for
authentication failures, 403 for authorization failures). Translating errors
into transport responses is the caller's job.
"""

from enum import Enum
from typing import Any

from fieldguard.messages import FALLBACK_LOCALE, get_error


class ErrorCode(str, Enum):
    """Stable error codes shared by the decision engine and the token store."""

    MISSING_CREDENTIAL = "HTTP_HEADER_IS_EMPTY"
    TOKEN_NOT_FOUND = "NOT_FOUND"
    TOKEN_INACTIVE = "NOT_ACTIVE"
    NO_ACCESS = "NO_ACCESS"
    TOKEN_ALREADY_EXISTS = "TOKEN_ALREADY_EXISTS"


class AuthError(Exception):
    """
    Base class for all access-control failures.

    Attributes:
        code: Stable ErrorCode identifying the failure
        status_code: Transport hint (401 authentication, 403 authorization)
        context: Structured details, e.g. {"field": "query:user"}
        message: Text rendered in FALLBACK_LOCALE (also str(error))
    """

    code: ErrorCode = ErrorCode.TOKEN_NOT_FOUND
    status_code: int = 401

    def __init__(self, **context: Any):
        self.context = context
        self.message = self.render()
        super().__init__(self.message)

    def render(self, locale: str | None = None, default_locale: str = FALLBACK_LOCALE) -> str:
        """Render this error for display in ``locale``."""
        return get_error(self.code, locale, default_locale=default_locale, **self.context)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, **self.context}


class MissingCredential(AuthError):
    code = ErrorCode.MISSING_CREDENTIAL


class TokenNotFound(AuthError):
    code = ErrorCode.TOKEN_NOT_FOUND


class TokenInactive(AuthError):
    code = ErrorCode.TOKEN_INACTIVE


class NoAccess(AuthError):
    """Raised when a token has no permission row for the requested operation key."""

    code = ErrorCode.NO_ACCESS
    status_code = 403

    def __init__(self, field: str):
        self.field = field
        super().__init__(field=field)


class TokenAlreadyExists(AuthError):
    """Raised by the token store when a token string is already taken."""

    code = ErrorCode.TOKEN_ALREADY_EXISTS
    status_code = 409
