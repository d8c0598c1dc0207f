"""
MCP server exposing the API fields behind the access-control layer.

This module creates and runs a FastMCP server with:
- One tool per API field (see fieldguard.tools.FIELD_OPERATIONS)
- Token authentication: every MCP request must carry an active token
- Per-field authorization with partial access: results (and mutation
  arguments) are pruned to the allow-tree of the token's permission
- Health and readiness HTTP endpoints
- Structured JSON logging for all access decisions

Architecture:
    The access flow for every MCP request:

    1. Client sends "Authorization: Bearer <token>" (a bare token works too)
    2. AccessMiddleware reads the header via get_http_request()
    3. auth.check_token() validates the token against the store
    4. For tools/list: only fields the token may call are listed
    5. For tools/call: auth.check_permission() resolves "<type>:<tool>",
       mutation arguments are pruned, the tool runs, and its structured
       result is pruned before it is returned

Running the server:
    python -m fieldguard.server
"""

import json
import logging
import sys
import uuid
from typing import Sequence

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from fieldguard.auth import AccessDecision, check_permission, check_token
from fieldguard.config import settings
from fieldguard.errors import AuthError, NoAccess
from fieldguard.store import InMemoryStore, Token, load_store
from fieldguard.tools import FIELD_OPERATIONS, UserDirectory

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

        {"timestamp": "2026-02-06 10:30:00,000", "level": "INFO", "logger": "fieldguard",
         "message": "Field call authorized", "token_id": 3, "query_key": "query:user"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "auth_data"):
            log_entry.update(record.auth_data)
        return json.dumps(log_entry, ensure_ascii=False)


handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(JSONLogFormatter())

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[handler],
)
logger = logging.getLogger("fieldguard")


def credential_from_header(value: str | None) -> str | None:
    """
    Extract the token from an Authorization header value.

    Surrounding whitespace and an optional "Bearer" scheme (any case) are
    stripped. Returns None when nothing is left.
    """
    if value is None:
        return None
    value = value.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == "bearer":
        value = rest.strip()
    return value or None


# ---------------------------------------------------------------------------
# Access Middleware
# ---------------------------------------------------------------------------


class AccessMiddleware(Middleware):
    """
    Token authentication and per-field authorization middleware.

    - tools/list responses only contain fields the token holds a permission for
    - tools/call requests are rejected when the token has no permission for the
      field, and partially authorized calls get their arguments (mutations)
      and results pruned to the permission's allow-tree
    """

    def __init__(self, store: InMemoryStore, locale: str | None = None):
        self._store = store
        self._locale = locale or settings.locale

    def _get_credential(self) -> str | None:
        """Return the credential of the current HTTP request, if any."""
        try:
            request = get_http_request()
        except RuntimeError:
            return None
        return credential_from_header(request.headers.get("authorization"))

    def _deny(self, error: AuthError, request_id: str, **auth_data) -> ToolError:
        logger.warning(
            "Access denied",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "decision": "denied",
                    "reason": error.code.value,
                    **auth_data,
                }
            },
        )
        return ToolError(error.render(self._locale))

    def _authenticate(self, request_id: str) -> Token:
        try:
            token = check_token(self._get_credential(), self._store)
        except AuthError as e:
            raise self._deny(e, request_id) from e

        self._store.touch(token.id)
        logger.info(
            "Authentication successful",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "token_id": token.id,
                    "is_root": token.is_root,
                    "decision": "authenticated",
                }
            },
        )
        return token

    def _resolve(self, token: Token, tool_name: str) -> AccessDecision:
        operation_type = FIELD_OPERATIONS.get(tool_name)
        if operation_type is None:
            # Unknown operation type means no key can be built: deny
            raise NoAccess(field=tool_name)
        return check_permission(token, operation_type, tool_name, self._store)

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        request_id = str(uuid.uuid4())[:8]
        token = self._authenticate(request_id)

        all_tools = await call_next(context)

        authorized_tools = []
        for tool in all_tools:
            try:
                self._resolve(token, tool.name)
            except NoAccess:
                continue
            authorized_tools.append(tool)

        logger.info(
            "Field list filtered by permissions",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "token_id": token.id,
                    "total_fields": len(all_tools),
                    "authorized_fields": [t.name for t in authorized_tools],
                    "decision": "filtered",
                }
            },
        )
        return authorized_tools

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        request_id = str(uuid.uuid4())[:8]
        tool_name = context.message.name
        token = self._authenticate(request_id)

        try:
            decision = self._resolve(token, tool_name)
        except NoAccess as e:
            raise self._deny(e, request_id, token_id=token.id, field=e.field) from e

        logger.info(
            "Field call authorized",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "token_id": token.id,
                    "query_key": decision.query_key,
                    "is_full": decision.is_full,
                    "decision": "allowed",
                }
            },
        )

        if decision.is_full:
            return await call_next(context)

        if FIELD_OPERATIONS[tool_name] == "mutation":
            arguments = decision.apply(context.message.arguments or {})
            context = context.copy(
                message=context.message.model_copy(update={"arguments": arguments})
            )

        result = await call_next(context)

        if result.structured_content is None:
            # Nothing structured to prune: return nothing rather than raw text
            logger.warning(
                "Unstructured result under partial access dropped",
                extra={"auth_data": {"request_id": request_id, "query_key": decision.query_key}},
            )
            return ToolResult(structured_content={})

        return ToolResult(structured_content=decision.apply(result.structured_content))


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_server(
    store: InMemoryStore,
    directory: UserDirectory | None = None,
    locale: str | None = None,
) -> FastMCP:
    """Build the MCP server for ``store``, with every API field registered."""
    directory = directory or UserDirectory()

    server = FastMCP(
        name="fieldguard",
        instructions=(
            "User directory API behind a token-based access layer. "
            "Fields and their visible attributes depend on the caller's token."
        ),
        middleware=[AccessMiddleware(store, locale=locale)],
    )

    server.tool(name="user", description="Fetch one user by id.")(directory.user)
    server.tool(name="users", description="List all users.")(directory.users)
    server.tool(name="updateUser", description="Update a user's attributes.")(
        directory.update_user
    )
    server.tool(name="deleteUser", description="Delete a user by id.")(directory.delete_user)

    # Health endpoints are unauthenticated and expose no data.
    async def health_check(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    async def readiness_check(request: Request) -> Response:
        if not any(t.is_active for t in store.tokens()):
            return JSONResponse(
                {"status": "not_ready", "reason": "no active tokens"},
                status_code=503,
            )
        return JSONResponse({"status": "ready"})

    server.custom_route("/health", methods=["GET"])(health_check)
    server.custom_route("/ready", methods=["GET"])(readiness_check)

    return server


store = load_store(settings.store_path)
mcp = create_server(store)


if __name__ == "__main__":
    logger.info(
        "Starting fieldguard MCP server on %s:%d (transport=streamable-http)",
        settings.host,
        settings.port,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )
