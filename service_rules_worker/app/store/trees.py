"""
Content-type trees for the rules namespace.

/bookmarks/rules
  /actions      descriptions of the actions services implement
  /conditions   descriptions of the conditions services implement
  /configured   rules configured by users
  /compiled     work "compiled" from rules, to be run by a worker

Each service keeps the same layout under /bookmarks/services/<name>/rules.
"""

from typing import Any, Dict, Optional


def _collection(list_type: str, item_type: str) -> Dict[str, Any]:
    return {
        "_type": list_type,
        "_rev": 0,
        "*": {"_type": item_type, "_rev": 0},
    }


RULES_SUBTREE: Dict[str, Any] = {
    "_type": "application/vnd.oada.rules.1+json",
    "_rev": 0,
    "actions": _collection(
        "application/vnd.oada.rules.actions.1+json",
        "application/vnd.oada.rules.action.1+json"
    ),
    "conditions": _collection(
        "application/vnd.oada.rules.conditions.1+json",
        "application/vnd.oada.rules.condition.1+json"
    ),
    "configured": _collection(
        "application/vnd.oada.rules.configured.1+json",
        "application/vnd.oada.rule.configured.1+json"
    ),
    "compiled": _collection(
        "application/vnd.oada.rules.compiled.1+json",
        "application/vnd.oada.rule.compiled.1+json"
    ),
}

rules_tree: Dict[str, Any] = {
    "bookmarks": {
        "_type": "application/vnd.oada.bookmarks.1+json",
        "_rev": 0,
        "rules": RULES_SUBTREE,
    }
}

service_rules_tree: Dict[str, Any] = {
    "bookmarks": {
        "_type": "application/vnd.oada.bookmarks.1+json",
        "_rev": 0,
        "services": {
            "_type": "application/vnd.oada.services.1+json",
            "_rev": 0,
            "*": {
                "_type": "application/vnd.oada.service.1+json",
                "_rev": 0,
                "rules": RULES_SUBTREE,
            },
        },
    }
}


def tree_node(tree: Dict[str, Any], path: str) -> Optional[Dict[str, Any]]:
    """Find the tree node describing ``path`` (``*`` matches any segment)."""
    node: Optional[Dict[str, Any]] = tree
    for segment in (part for part in path.split("/") if part):
        if node is None:
            return None
        node = node.get(segment, node.get("*"))
    return node


def tree_content_type(tree: Dict[str, Any], path: str) -> Optional[str]:
    """Content type the tree declares for ``path``, if any."""
    node = tree_node(tree, path)
    return node.get("_type") if node else None
