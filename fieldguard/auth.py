"""
Token validation and permission resolution.

This module is the decision engine of the access-control layer:

- check_token():      Authentication. Is the credential an existing, active token?
- check_permission(): Authorization. May this token use the field "type:name",
                      and if only partially, which sub-fields?
- authorize():        Both steps in one call.

Everything here is a pure function of its arguments and the store lookups it
makes. No records are written (not even ``last_used``), nothing is cached,
and no state is shared between calls, so the functions are safe to call from
any number of concurrent requests.

Security concepts:
- **Fail closed**: every failure raises immediately; a malformed permission
  payload decodes to "no fields allowed", never to "all fields allowed".
- **Root tokens are a trust boundary**: a token with ``is_root`` set is granted
  full access to every field without any permission row being consulted.
  Issue such tokens only to fully trusted operators.
"""

from dataclasses import dataclass
from typing import Any

from fieldguard.errors import MissingCredential, NoAccess, TokenInactive, TokenNotFound
from fieldguard.rules import EMPTY_RULES, AllowWithChildren, filter_fields, parse_rules
from fieldguard.store import AccessStore, PermissionStore, Token, TokenStore, make_query_key


@dataclass(frozen=True)
class AccessDecision:
    """
    The outcome of a successful permission check.

    Attributes:
        token_id: The token the decision was made for
        query_key: The operation key, e.g. "query:user"
        is_full: True when the whole field (and everything nested) is allowed
        fields: The allow-tree to prune with; always empty when is_full is set
    """

    token_id: int
    query_key: str
    is_full: bool
    fields: AllowWithChildren = EMPTY_RULES

    def apply(self, data: Any) -> Any:
        """Return ``data`` reduced to what this decision allows."""
        return filter_fields(data, self)


def check_token(credential: str | None, store: TokenStore) -> Token:
    """
    Validate a raw credential against the token store.

    The lookup is an exact string match on the token value.

    Args:
        credential: The credential extracted from the request, or None

    Returns:
        The active Token record

    Raises:
        MissingCredential: No credential was supplied
        TokenNotFound: No token matches the credential
        TokenInactive: The token exists but has been deactivated
    """
    if not credential:
        raise MissingCredential()

    token = store.find_token(credential)
    if token is None:
        raise TokenNotFound()

    if not token.is_active:
        raise TokenInactive()

    return token


def check_permission(
    token: Token, operation_type: str, name: str, store: PermissionStore
) -> AccessDecision:
    """
    Resolve the access a validated token has to one field.

    Args:
        token: A token returned by check_token()
        operation_type: "query" or "mutation"
        name: Field name, case sensitive

    Returns:
        AccessDecision with either is_full set or the allow-tree to prune with

    Raises:
        NoAccess: The token has no permission row for "type:name"
        ValueError: operation_type is not a known operation type
    """
    query_key = make_query_key(operation_type, name)

    if token.is_root:
        return AccessDecision(token_id=token.id, query_key=query_key, is_full=True)

    permission = store.find_permission(token.id, query_key)
    if permission is None:
        raise NoAccess(field=query_key)

    if permission.is_full:
        return AccessDecision(token_id=token.id, query_key=query_key, is_full=True)

    return AccessDecision(
        token_id=token.id,
        query_key=query_key,
        is_full=False,
        fields=parse_rules(permission.fields),
    )


def authorize(
    credential: str | None, operation_type: str, name: str, store: AccessStore
) -> AccessDecision:
    """Validate ``credential`` and resolve its access to "type:name"."""
    token = check_token(credential, store)
    return check_permission(token, operation_type, name, store)
