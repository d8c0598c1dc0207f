"""
CLI utility to manage the token store used by the fieldguard server.

The server reads tokens and their permissions from a JSON file
(FIELDGUARD_STORE_PATH, default tokens.json). This script creates tokens,
grants and revokes field permissions, and lists what is stored.

Usage examples:

    # New token with a generated secret
    python -m scripts.manage_tokens add --title "reporting bot"

    # Root token (full access to every field, no permission rows needed)
    python -m scripts.manage_tokens add --title "admin" --root

    # Full access to one field
    python -m scripts.manage_tokens grant 1 query:users

    # Partial access: only name and city are visible
    python -m scripts.manage_tokens grant 1 query:user --fields '{"name": true, "address": {"city": true}}'

    # Revoke, deactivate, list
    python -m scripts.manage_tokens revoke 1 query:user
    python -m scripts.manage_tokens disable 1
    python -m scripts.manage_tokens list

The printed token can be used with curl:

    curl -X POST http://localhost:8080/mcp \\
      -H "Content-Type: application/json" \\
      -H "Authorization: Bearer <token>" \\
      -d '{"jsonrpc":"2.0","id":1,"method":"initialize",...}'
"""

import argparse
import datetime
import json
import sys
from pathlib import Path

from fieldguard.config import settings
from fieldguard.errors import TokenAlreadyExists
from fieldguard.rules import dump_rules, parse_rules
from fieldguard.store import Permission, generate_token, load_store, save_store


def describe_access(permission: Permission) -> str:
    if permission.is_full:
        return "full"
    return json.dumps(dump_rules(parse_rules(permission.fields)))


def add_token(args: argparse.Namespace) -> int:
    store = load_store(args.store)
    token = args.token or generate_token()
    try:
        token_id = store.create_token(
            args.title, token, site_id=args.site_id, is_root=args.root
        )
    except TokenAlreadyExists as e:
        print(f"Error: {e.render('en')}", file=sys.stderr)
        return 1
    save_store(store, args.store)

    print(f"Id:     {token_id}")
    print(f"Title:  {args.title}")
    print(f"Root:   {args.root}")
    print()
    print(f"Token: {token}")
    return 0


def grant_permission(args: argparse.Namespace) -> int:
    store = load_store(args.store)
    if args.fields is not None:
        try:
            json.loads(args.fields)
        except ValueError as e:
            print(f"Error: --fields is not valid JSON: {e}", file=sys.stderr)
            return 1
    try:
        permission = store.grant(
            args.token_id,
            args.query_key,
            is_full=args.fields is None,
            fields=args.fields,
        )
    except (KeyError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    save_store(store, args.store)

    print(
        f"Granted {permission.query_key} to token {permission.token_id}: "
        f"{describe_access(permission)}"
    )
    return 0


def revoke_permission(args: argparse.Namespace) -> int:
    store = load_store(args.store)
    if not store.revoke(args.token_id, args.query_key):
        print(f"Error: token {args.token_id} has no permission {args.query_key}", file=sys.stderr)
        return 1
    save_store(store, args.store)
    print(f"Revoked {args.query_key} from token {args.token_id}")
    return 0


def set_token_active(args: argparse.Namespace) -> int:
    store = load_store(args.store)
    is_active = args.command == "enable"
    try:
        store.set_active(args.token_id, is_active)
    except KeyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    save_store(store, args.store)
    print(f"Token {args.token_id} {'enabled' if is_active else 'disabled'}")
    return 0


def delete_token(args: argparse.Namespace) -> int:
    store = load_store(args.store)
    if not store.delete_token(args.token_id):
        print(f"Error: token {args.token_id} not found", file=sys.stderr)
        return 1
    save_store(store, args.store)
    print(f"Token {args.token_id} deleted")
    return 0


def list_tokens(args: argparse.Namespace) -> int:
    store = load_store(args.store)
    for token in store.tokens():
        created = datetime.datetime.fromtimestamp(token.created_at, datetime.timezone.utc)
        flags = []
        if token.is_root:
            flags.append("root")
        if not token.is_active:
            flags.append("disabled")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"{token.id}: {token.title} (created {created.isoformat()}){suffix}")
        for permission in store.permissions(token.id):
            print(f"    {permission.query_key}: {describe_access(permission)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage API tokens and field permissions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=settings.store_path,
        help="Token store file (default: FIELDGUARD_STORE_PATH or tokens.json)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Create a token")
    add.add_argument("--title", required=True, help="Human label for the token")
    add.add_argument("--token", help="Token string (default: random 64 characters)")
    add.add_argument("--site-id", type=int, default=0, help="Owner site id (default: 0)")
    add.add_argument("--root", action="store_true", help="Grant unrestricted access")
    add.set_defaults(handler=add_token)

    grant = commands.add_parser("grant", help="Grant a token access to a field")
    grant.add_argument("token_id", type=int)
    grant.add_argument("query_key", help="Operation key, e.g. query:user")
    grant.add_argument(
        "--fields",
        help="JSON allow-tree for partial access (omit for full access)",
    )
    grant.set_defaults(handler=grant_permission)

    revoke = commands.add_parser("revoke", help="Revoke a token's access to a field")
    revoke.add_argument("token_id", type=int)
    revoke.add_argument("query_key")
    revoke.set_defaults(handler=revoke_permission)

    for name in ("enable", "disable"):
        toggle = commands.add_parser(name, help=f"{name.capitalize()} a token")
        toggle.add_argument("token_id", type=int)
        toggle.set_defaults(handler=set_token_active)

    delete = commands.add_parser("delete", help="Delete a token and its permissions")
    delete.add_argument("token_id", type=int)
    delete.set_defaults(handler=delete_token)

    listing = commands.add_parser("list", help="List tokens and permissions")
    listing.set_defaults(handler=list_tokens)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
