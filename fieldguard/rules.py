"""
Allow-trees and the structural permission filter.

A permission row that does not grant full access stores an allow-tree: the
set of keys (and nested keys) of a field's result or input that a token may
see. In memory an allow-tree is one of three node types:

    AllowAll                  keep the value as it is
    Deny                      drop the key
    AllowWithChildren({...})  keep the key, filter its nested mapping

Stored rows use JSON. Both of these shapes are accepted and may be mixed:

    {"name": true, "address": {"city": true}}
    ["name", "email", {"address": ["city"]}]

Decoding fails closed: invalid JSON, a scalar at the top level, nesting deeper
than MAX_RULE_DEPTH, or a rule value that is neither ``true`` nor a nested
structure never grants access.

In the list shape, strings allow a key and objects contribute their entries to
the same level. Other entries (numbers, null, booleans, nested lists) are
ignored. When several entries name the same key the result does not depend on
their order: a Deny wins over anything, a nested rule wins over ``true``, and
two nested rules are merged key by key.

Allow-trees are immutable. ``children`` is a read-only mapping, so the shared
EMPTY_RULES instance returned by every failed decode cannot be widened.

The filter walks the *data* tree, not the allow-tree. Keys missing from the
rule are removed, nested mappings are filtered recursively, and every element
of a sequence is filtered with the same nested rule. Surviving keys keep their
original order and the input is never modified.
"""

import copy
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

logger = logging.getLogger(__name__)

MAX_RULE_DEPTH = 32


@dataclass(frozen=True)
class AllowAll:
    """Terminal allowed entry: the value is kept without further pruning."""


@dataclass(frozen=True)
class Deny:
    """The key is removed from the output."""


@dataclass(frozen=True)
class AllowWithChildren:
    """Nested rule: only the listed child keys of a mapping survive."""

    children: Mapping[str, "AllowNode"] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "children", MappingProxyType(dict(self.children)))

    def __hash__(self):
        return hash(tuple(self.children.items()))

    def get(self, key: Any) -> "AllowNode":
        if not isinstance(key, str):
            key = str(key)
        return self.children.get(key, DENY)


AllowNode = Union[AllowAll, Deny, AllowWithChildren]

ALLOW_ALL = AllowAll()
DENY = Deny()
EMPTY_RULES = AllowWithChildren()


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def parse_rules(raw: Any) -> AllowWithChildren:
    """
    Decode a stored ``fields`` payload into an allow-tree.

    ``raw`` may be JSON text (str/bytes) or an already-decoded structure.
    Anything that does not decode to a mapping or list yields EMPTY_RULES.
    """
    try:
        if isinstance(raw, (str, bytes, bytearray)):
            raw = json.loads(raw)
        node = _to_node(raw)
    except (ValueError, RecursionError):
        logger.warning("Malformed permission fields payload, treating as empty")
        return EMPTY_RULES

    if isinstance(node, AllowWithChildren):
        return node
    return EMPTY_RULES


def _to_node(value: Any, depth: int = 0) -> AllowNode:
    if depth > MAX_RULE_DEPTH:
        raise ValueError(f"allow-tree nested deeper than {MAX_RULE_DEPTH} levels")
    if value is True:
        return ALLOW_ALL
    if isinstance(value, Mapping):
        return AllowWithChildren({str(k): _to_node(v, depth + 1) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return _from_sequence(value, depth)
    # false, null, numbers and strings as rule values
    return DENY


def _from_sequence(items: list | tuple, depth: int) -> AllowWithChildren:
    children: dict[str, AllowNode] = {}
    for item in items:
        if isinstance(item, str):
            entries = {item: ALLOW_ALL}
        elif isinstance(item, Mapping):
            entries = _to_node(item, depth).children
        else:
            continue
        for key, node in entries.items():
            children[key] = _merge(children[key], node) if key in children else node
    return AllowWithChildren(children)


def _merge(left: AllowNode, right: AllowNode) -> AllowNode:
    """Combine two rules for the same key; the narrower one wins."""
    if isinstance(left, Deny) or isinstance(right, Deny):
        return DENY
    if isinstance(left, AllowAll):
        return right
    if isinstance(right, AllowAll):
        return left
    children = dict(left.children)
    for key, node in right.children.items():
        children[key] = _merge(children[key], node) if key in children else node
    return AllowWithChildren(children)


def dump_rules(node: AllowNode) -> Any:
    """Convert an allow-tree back into its JSON object form."""
    if isinstance(node, AllowAll):
        return True
    if isinstance(node, Deny):
        return False
    return {key: dump_rules(child) for key, child in node.children.items()}


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def prune(data: Any, rule: AllowNode) -> Any:
    """
    Return a copy of ``data`` containing only what ``rule`` allows.

    A top-level DENY yields None. A nested rule applied to a scalar keeps the
    scalar, since there is nothing below it to prune.
    """
    if isinstance(rule, Deny):
        return None
    if isinstance(rule, AllowAll):
        return copy.deepcopy(data)

    if isinstance(data, Mapping):
        result = {}
        for key, value in data.items():
            child = rule.get(key)
            if isinstance(child, Deny):
                continue
            result[key] = prune(value, child)
        return result

    if isinstance(data, (list, tuple)):
        # uniform schema: every element gets the same nested rule
        items = [prune(item, rule) for item in data]
        return tuple(items) if isinstance(data, tuple) else items

    return copy.deepcopy(data)


def filter_fields(data: Any, decision: Any) -> Any:
    """
    Apply an access decision to a data tree.

    Full access passes ``data`` through untouched. Otherwise ``data`` is pruned
    to ``decision.fields``.
    """
    if decision.is_full:
        return data
    return prune(data, decision.fields)
