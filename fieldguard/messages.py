"""
Human-readable error text for access-control error codes.

The decision engine only raises errors by code (see fieldguard.errors). This
module renders a code into display text for a given locale:

- The locale comes from the caller, or from ``default_locale`` when omitted.
  The server passes ``settings.locale`` explicitly, so nothing in here reads
  process-wide configuration.
- An unknown locale falls back to FALLBACK_LOCALE.
- A code with no entry in the resolved locale renders as the bare code string.

Messages may contain ``{{NAME}}`` placeholders that are filled from keyword
arguments, e.g. ``get_error("NO_ACCESS", "en", field="query:user")``.
"""

from typing import Any

FALLBACK_LOCALE = "ru"

ERROR_MESSAGES: dict[str, dict[str, str]] = {
    "ru": {
        "NO_ACCESS": "Нет доступа к полю «{{FIELD}}»",
        "NOT_FOUND": "Токен не найден",
        "NOT_ACTIVE": "Токен доступа приостановлен",
        "HTTP_HEADER_IS_EMPTY": "HTTP заголовок Authorization не передан",
        "TOKEN_ALREADY_EXISTS": "Токен уже существует",
    },
    "ua": {
        "NO_ACCESS": "немає доступу до поля «{{FIELD}}»",
        "NOT_FOUND": "Токен не знайдено",
        "NOT_ACTIVE": "Токен доступу призупинено",
        "HTTP_HEADER_IS_EMPTY": "HTTP заголовок Authorization не переданий",
        "TOKEN_ALREADY_EXISTS": "Токен вже існує",
    },
    "en": {
        "NO_ACCESS": "Have no access to «{{FIELD}}»",
        "NOT_FOUND": "Token not found",
        "NOT_ACTIVE": "Access token is suspended",
        "HTTP_HEADER_IS_EMPTY": "Authorization HTTP header not presented",
        "TOKEN_ALREADY_EXISTS": "Token already exists",
    },
}


def resolve_locale(locale: str | None, default_locale: str = FALLBACK_LOCALE) -> str:
    """Return a supported locale for ``locale``, using the fallbacks described above."""
    if not locale:
        locale = default_locale
    if locale not in ERROR_MESSAGES:
        locale = FALLBACK_LOCALE
    return locale


def get_error(
    code: Any,
    locale: str | None = None,
    *,
    default_locale: str = FALLBACK_LOCALE,
    **params: Any,
) -> str:
    """
    Render an error code as display text.

    Args:
        code: Error code, either a plain string or an ErrorCode member
        locale: Desired locale (optional)
        default_locale: Locale used when ``locale`` is omitted
        **params: Values for ``{{NAME}}`` placeholders

    Returns:
        The localized message, or the bare code when the locale has no entry
    """
    # ErrorCode is a str enum; .value keeps the bare code out of "ErrorCode.X"
    key = getattr(code, "value", code)
    messages = ERROR_MESSAGES[resolve_locale(locale, default_locale)]

    text = messages.get(key)
    if text is None:
        return str(key)

    for name, value in params.items():
        text = text.replace("{{" + name.upper() + "}}", str(value))
    return text
