"""
Shared test fixtures for the fieldguard test suite.

Key fixtures:
- store: A fresh, empty InMemoryStore for every test
- make_token: A factory that creates a token in the store and returns its record
- grant: A factory that stores a permission row for a token
- make_auth_header: A factory returning "Bearer <token>" for a new token

Testing approach:
- test_auth.py, test_rules.py, test_store.py, test_messages.py: unit tests of
  the decision engine, the structural filter, the store and error rendering.
- test_tools.py: integration tests of the MCP server. Requests go through the
  full Starlette -> FastMCP -> AccessMiddleware -> tool pipeline in memory.
- test_manage_tokens.py: the management CLI against a temporary store file.
"""

import itertools

import pytest

from fieldguard.store import InMemoryStore, Token

_token_counter = itertools.count(1)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def make_token(store):
    """
    Factory fixture to create tokens for testing.

    Usage in tests:
        def test_something(make_token):
            token = make_token(is_root=True)
            # token is the stored Token record
    """

    def _make_token(
        title: str = "test-token",
        token: str | None = None,
        is_root: bool = False,
        is_active: bool = True,
        site_id: int = 0,
    ) -> Token:
        value = token or f"test-token-{next(_token_counter)}"
        token_id = store.create_token(title, value, site_id=site_id, is_root=is_root)
        if not is_active:
            store.set_active(token_id, False)
        return store.get_token(token_id)

    return _make_token


@pytest.fixture
def grant(store):
    """
    Factory fixture to store permission rows.

    Usage in tests:
        grant(token, "query:user")                              # full access
        grant(token, "query:user", fields={"name": True})       # partial access
    """

    def _grant(token: Token, query_key: str, fields=None, is_full: bool | None = None):
        if is_full is None:
            is_full = fields is None
        return store.grant(token.id, query_key, is_full=is_full, fields=fields)

    return _grant


@pytest.fixture
def make_auth_header(make_token):
    """Factory returning (token, "Bearer <token>") for a newly created token."""

    def _make_auth_header(**kwargs) -> tuple[Token, str]:
        token = make_token(**kwargs)
        return token, f"Bearer {token.token}"

    return _make_auth_header
