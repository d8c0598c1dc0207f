"""
API fields exposed by the server and their operation types.

Each MCP tool is one field of the API. Its permission key is built from the
operation type registered here and the tool name:

    FIELD_OPERATIONS = {"user": "query"}   ->   permission key "query:user"

A tool missing from FIELD_OPERATIONS is never callable by a non-root token,
and is denied for root tokens too (the middleware cannot build its key).

The fields themselves operate on a small user directory, which stands in for
the business logic sitting behind the access layer.
"""

import copy
from typing import Any

from fastmcp.exceptions import ToolError

FIELD_OPERATIONS: dict[str, str] = {
    "user": "query",
    "users": "query",
    "updateUser": "mutation",
    "deleteUser": "mutation",
}

SAMPLE_USERS: list[dict[str, Any]] = [
    {
        "id": 1,
        "name": "Alice Moreau",
        "email": "alice@example.com",
        "ssn": "078-05-1120",
        "address": {"city": "Lyon", "zip": "69001", "street": "Rue de la Republique 1"},
    },
    {
        "id": 2,
        "name": "Bohdan Kovalenko",
        "email": "bohdan@example.com",
        "ssn": "219-09-9999",
        "address": {"city": "Kyiv", "zip": "01001", "street": "Khreshchatyk 22"},
    },
    {
        "id": 3,
        "name": "Chen Wei",
        "email": "chen@example.com",
        "ssn": "457-55-5462",
        "address": {"city": "Taipei", "zip": "100", "street": "Zhongshan Rd 5"},
    },
]


class UserDirectory:
    """In-memory user records backing the API fields."""

    def __init__(self, users: list[dict[str, Any]] | None = None):
        records = SAMPLE_USERS if users is None else users
        self._users = {u["id"]: copy.deepcopy(u) for u in records}

    def user(self, id: int) -> dict:
        """Return a single user record."""
        return copy.deepcopy(self._get(id))

    def users(self) -> dict:
        """Return all user records."""
        return {"users": [copy.deepcopy(u) for u in self._users.values()]}

    def update_user(
        self,
        id: int,
        name: str | None = None,
        email: str | None = None,
        address: dict[str, Any] | None = None,
    ) -> dict:
        """Update the given attributes of a user and return the record."""
        record = self._get(id)
        if name is not None:
            record["name"] = name
        if email is not None:
            record["email"] = email
        if address is not None:
            record["address"].update(address)
        return copy.deepcopy(record)

    def delete_user(self, id: int) -> dict:
        """Delete a user."""
        deleted = self._users.pop(id, None) is not None
        return {"id": id, "deleted": deleted}

    def _get(self, id: int) -> dict[str, Any]:
        record = self._users.get(id)
        if record is None:
            raise ToolError(f"User {id} not found")
        return record
