"""
Unit tests for the error taxonomy (fieldguard/errors.py) and message lookup
(fieldguard/messages.py).
"""

import pytest

from fieldguard.errors import (
    AuthError,
    ErrorCode,
    MissingCredential,
    NoAccess,
    TokenAlreadyExists,
    TokenInactive,
    TokenNotFound,
)
from fieldguard.messages import FALLBACK_LOCALE, get_error, resolve_locale


class TestGetError:
    def test_english(self):
        assert get_error("NOT_FOUND", "en") == "Token not found"

    def test_ukrainian(self):
        assert get_error("NOT_ACTIVE", "ua") == "Токен доступу призупинено"

    def test_default_locale_is_used_when_omitted(self):
        assert get_error("NOT_FOUND", default_locale="en") == "Token not found"

    def test_fallback_locale_without_default(self):
        assert FALLBACK_LOCALE == "ru"
        assert get_error("NOT_FOUND") == "Токен не найден"

    def test_unknown_locale_falls_back(self):
        assert get_error("NOT_FOUND", "de") == get_error("NOT_FOUND", FALLBACK_LOCALE)

    def test_unknown_code_renders_bare_code(self):
        assert get_error("SOMETHING_ELSE", "en") == "SOMETHING_ELSE"

    def test_enum_codes(self):
        assert get_error(ErrorCode.TOKEN_ALREADY_EXISTS, "en") == "Token already exists"

    def test_placeholder_substitution(self):
        text = get_error("NO_ACCESS", "en", field="query:user")

        assert text == "Have no access to «query:user»"

    @pytest.mark.parametrize(
        "locale, expected",
        [(None, "ru"), ("", "ru"), ("en", "en"), ("xx", "ru")],
    )
    def test_resolve_locale(self, locale, expected):
        assert resolve_locale(locale) == expected


class TestErrors:
    @pytest.mark.parametrize(
        "error, code, status_code",
        [
            (MissingCredential(), ErrorCode.MISSING_CREDENTIAL, 401),
            (TokenNotFound(), ErrorCode.TOKEN_NOT_FOUND, 401),
            (TokenInactive(), ErrorCode.TOKEN_INACTIVE, 401),
            (NoAccess(field="query:user"), ErrorCode.NO_ACCESS, 403),
            (TokenAlreadyExists(), ErrorCode.TOKEN_ALREADY_EXISTS, 409),
        ],
    )
    def test_codes_and_status(self, error, code, status_code):
        assert isinstance(error, AuthError)
        assert error.code == code
        assert error.status_code == status_code

    def test_codes_are_stable_strings(self):
        assert [c.value for c in ErrorCode] == [
            "HTTP_HEADER_IS_EMPTY",
            "NOT_FOUND",
            "NOT_ACTIVE",
            "NO_ACCESS",
            "TOKEN_ALREADY_EXISTS",
        ]

    def test_render_in_locale(self):
        error = NoAccess(field="mutation:deleteUser")

        assert error.render("en") == "Have no access to «mutation:deleteUser»"
        assert error.render("ua") == "немає доступу до поля «mutation:deleteUser»"

    def test_message_uses_fallback_locale(self):
        assert str(TokenNotFound()) == "Токен не найден"

    def test_to_dict(self):
        error = NoAccess(field="query:user")

        assert error.to_dict() == {
            "code": "NO_ACCESS",
            "message": "Нет доступа к полю «query:user»",
            "field": "query:user",
        }
