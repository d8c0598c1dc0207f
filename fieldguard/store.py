"""
Token and permission records, the store contracts, and an in-memory store.

The decision engine (fieldguard.auth) never talks to a database. It depends on
two small lookup contracts:

    TokenStore.find_token(token)                     -> Token | None
    PermissionStore.find_permission(token_id, key)   -> Permission | None

InMemoryStore implements both, plus the administrative operations used by the
management CLI (create, grant, revoke, deactivate, delete). It can be saved
to and loaded from a JSON file, which is how the server gets its tokens.

Uniqueness rules are enforced inside the store under a lock, at insert time:
- the token string is unique across all tokens (TokenAlreadyExists)
- a token has at most one permission per query key (grant replaces it)
"""

import json
import logging
import secrets
import threading
import time
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Protocol

from fieldguard.errors import TokenAlreadyExists

logger = logging.getLogger(__name__)

OPERATION_TYPES = ("query", "mutation")


def make_query_key(operation_type: str, name: str) -> str:
    """
    Build the operation key for a field, e.g. ("query", "user") -> "query:user".

    Both parts are case sensitive and used verbatim.
    """
    if operation_type not in OPERATION_TYPES:
        raise ValueError(
            f"Unknown operation type {operation_type!r}, expected one of {OPERATION_TYPES}"
        )
    return f"{operation_type}:{name}"


def generate_token(length: int = 64) -> str:
    """Generate a random URL-safe token string of ``length`` characters."""
    return secrets.token_urlsafe(length)[:length]


@dataclass(frozen=True)
class Token:
    """A credential holder. ``token`` is the secret presented by clients."""

    id: int
    token: str
    title: str
    site_id: int = 0
    is_active: bool = True
    is_root: bool = False
    created_at: float = 0.0
    last_used: float | None = None


@dataclass(frozen=True)
class Permission:
    """
    One token's grant to one operation key.

    ``fields`` is the serialized allow-tree (JSON text). It is only decoded at
    resolution time, see fieldguard.rules.parse_rules.
    """

    id: int
    token_id: int
    query_key: str
    is_full: bool = True
    fields: str = "[]"


class TokenStore(Protocol):
    def find_token(self, token: str) -> Token | None:
        """Return the token whose string equals ``token`` exactly."""

    def create_token(
        self, title: str, token: str, *, site_id: int = 0, is_root: bool = False
    ) -> int:
        """Insert a token and return its id. Raises TokenAlreadyExists."""


class PermissionStore(Protocol):
    def find_permission(self, token_id: int, query_key: str) -> Permission | None:
        """Return the permission of ``token_id`` for ``query_key``."""


class AccessStore(TokenStore, PermissionStore, Protocol):
    """A store that can answer both lookups."""


class InMemoryStore:
    """Thread-safe in-memory implementation of TokenStore and PermissionStore."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens: dict[int, Token] = {}
        self._token_ids: dict[str, int] = {}
        self._permissions: dict[tuple[int, str], Permission] = {}
        self._next_token_id = 1
        self._next_permission_id = 1

    # ----- Lookups used by the decision engine -----

    def find_token(self, token: str) -> Token | None:
        token_id = self._token_ids.get(token)
        if token_id is None:
            return None
        return self._tokens.get(token_id)

    def find_permission(self, token_id: int, query_key: str) -> Permission | None:
        return self._permissions.get((token_id, query_key))

    # ----- Administration -----

    def get_token(self, token_id: int) -> Token | None:
        return self._tokens.get(token_id)

    def tokens(self) -> list[Token]:
        return sorted(self._tokens.values(), key=lambda t: t.id)

    def permissions(self, token_id: int) -> list[Permission]:
        return sorted(
            (p for p in self._permissions.values() if p.token_id == token_id),
            key=lambda p: p.id,
        )

    def create_token(
        self,
        title: str,
        token: str,
        *,
        site_id: int = 0,
        is_root: bool = False,
        is_active: bool = True,
        created_at: float | None = None,
    ) -> int:
        with self._lock:
            if token in self._token_ids:
                raise TokenAlreadyExists()

            record = Token(
                id=self._next_token_id,
                token=token,
                title=title,
                site_id=site_id,
                is_active=is_active,
                is_root=is_root,
                created_at=time.time() if created_at is None else created_at,
            )
            self._next_token_id += 1
            self._tokens[record.id] = record
            self._token_ids[token] = record.id

        logger.info(
            "Token created",
            extra={"auth_data": {"token_id": record.id, "is_root": is_root}},
        )
        return record.id

    def set_active(self, token_id: int, is_active: bool) -> Token:
        with self._lock:
            record = self._require_token(token_id)
            record = replace(record, is_active=is_active)
            self._tokens[token_id] = record
        return record

    def touch(self, token_id: int, when: float | None = None) -> Token:
        """Record a use of the token in ``last_used``."""
        with self._lock:
            record = self._require_token(token_id)
            record = replace(record, last_used=time.time() if when is None else when)
            self._tokens[token_id] = record
        return record

    def delete_token(self, token_id: int) -> bool:
        """Delete a token together with all of its permissions."""
        with self._lock:
            record = self._tokens.pop(token_id, None)
            if record is None:
                return False
            del self._token_ids[record.token]
            for key in [k for k in self._permissions if k[0] == token_id]:
                del self._permissions[key]
        return True

    def grant(
        self,
        token_id: int,
        query_key: str,
        *,
        is_full: bool = True,
        fields: Any = None,
    ) -> Permission:
        """
        Create or replace the permission of ``token_id`` for ``query_key``.

        ``fields`` may be JSON text or a structure that is serialized to JSON.
        """
        operation_type, _, name = query_key.partition(":")
        make_query_key(operation_type, name)

        if fields is None:
            fields = "[]"
        elif not isinstance(fields, str):
            fields = json.dumps(fields)

        with self._lock:
            self._require_token(token_id)
            existing = self._permissions.get((token_id, query_key))
            if existing is not None:
                permission = replace(existing, is_full=is_full, fields=fields)
            else:
                permission = Permission(
                    id=self._next_permission_id,
                    token_id=token_id,
                    query_key=query_key,
                    is_full=is_full,
                    fields=fields,
                )
                self._next_permission_id += 1
            self._permissions[(token_id, query_key)] = permission
        return permission

    def revoke(self, token_id: int, query_key: str) -> bool:
        with self._lock:
            return self._permissions.pop((token_id, query_key), None) is not None

    def _require_token(self, token_id: int) -> Token:
        record = self._tokens.get(token_id)
        if record is None:
            raise KeyError(f"Token {token_id} not found")
        return record

    # ----- Serialization -----

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokens": [asdict(t) for t in self.tokens()],
            "permissions": [
                asdict(p)
                for p in sorted(self._permissions.values(), key=lambda p: p.id)
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InMemoryStore":
        store = cls()
        for row in data.get("tokens", []):
            record = Token(
                id=int(row["id"]),
                token=row["token"],
                title=row.get("title", ""),
                site_id=int(row.get("site_id", 0)),
                is_active=bool(row.get("is_active", True)),
                is_root=bool(row.get("is_root", False)),
                created_at=float(row.get("created_at", 0.0)),
                last_used=row.get("last_used"),
            )
            if record.token in store._token_ids:
                raise TokenAlreadyExists()
            store._tokens[record.id] = record
            store._token_ids[record.token] = record.id
            store._next_token_id = max(store._next_token_id, record.id + 1)

        for row in data.get("permissions", []):
            fields = row.get("fields", "[]")
            permission = Permission(
                id=int(row["id"]),
                token_id=int(row["token_id"]),
                query_key=row["query_key"],
                is_full=bool(row.get("is_full", True)),
                fields=fields if isinstance(fields, str) else json.dumps(fields),
            )
            if permission.token_id not in store._tokens:
                logger.warning(
                    "Skipping permission for unknown token",
                    extra={
                        "auth_data": {
                            "token_id": permission.token_id,
                            "query_key": permission.query_key,
                        }
                    },
                )
                continue
            store._permissions[(permission.token_id, permission.query_key)] = permission
            store._next_permission_id = max(store._next_permission_id, permission.id + 1)
        return store


def load_store(path: Path) -> InMemoryStore:
    """Load a store from a JSON file. A missing file yields an empty store."""
    path = Path(path)
    if not path.exists():
        logger.warning("Token store file %s not found, starting empty", path)
        return InMemoryStore()
    return InMemoryStore.from_dict(json.loads(path.read_text(encoding="utf-8")))


def save_store(store: InMemoryStore, path: Path) -> None:
    path = Path(path)
    path.write_text(json.dumps(store.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
