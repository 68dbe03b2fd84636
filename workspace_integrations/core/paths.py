"""
xAPI path helpers.

Paths address a command, status, config or event on a device and may be
written with dots or spaces: "Audio.Volume" and "Audio Volume" are the same.
"""

import re
from typing import Any

_LIST_SEGMENT = re.compile(r"(.*)\[(\d+)\]")


def normalize_path(path: str) -> str:
    """Space separated -> dot separated."""
    return path.replace(" ", ".")


def path_match(actual: str, pattern: str) -> bool:
    """
    Check whether a notification path matches a registered listener pattern.

    Both sides are normalized (spaces -> dots, lower case) and the pattern
    matches when it is contained anywhere in the actual path. This lets
    "RoomAnalytics" match "RoomAnalytics.PeopleCount.Current".

    Caveats, kept for compatibility with existing listeners:
    - Containment is not segment aware: "A" also matches "Alpha.Beta".
    - An empty pattern matches every path.
    """
    actual = normalize_path(actual).lower()
    pattern = normalize_path(pattern).lower()
    return pattern in actual


def remove_path(path: str, tree: Any) -> Any:
    """
    Walk down a result tree along a path, so that querying "Audio.Volume"
    returns the volume value instead of {"Audio": {"Volume": ...}}.

    A "*" segment stops the descent at that level.
    """
    node = tree
    for key in normalize_path(path).split("."):
        if key == "*":
            continue
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _make_branch(tree: dict, key: str, value: Any) -> None:
    segments = key.split(".")
    parent = tree
    for i, segment in enumerate(segments):
        is_leaf = i == len(segments) - 1
        list_match = _LIST_SEGMENT.fullmatch(segment)

        if list_match:
            name, index = list_match.groups()
            entries = parent.setdefault(name, [])
            entry = next((e for e in entries if e.get("id") == index), None)
            if entry is None:
                entry = {"id": index}
                entries.append(entry)
            if is_leaf:
                entry["value"] = value
            parent = entry
        elif is_leaf:
            parent[segment] = value
        else:
            parent = parent.setdefault(segment, {})


def to_tree(items: dict[str, Any]) -> dict:
    """
    Turn a flat config listing into a nested tree.

    {"Audio.DefaultVolume": {"value": 33}} -> {"Audio": {"DefaultVolume": 33}}
    Indexed segments ("Video.Input.Connector[1].Name") become lists of
    objects keyed by "id".
    """
    tree: dict = {}
    for key in sorted(items):
        entry = items[key]
        value = entry.get("value") if isinstance(entry, dict) else entry
        _make_branch(tree, key, value)
    return tree


def short_name(device_id: str) -> str:
    """Shorten a long device id for log output."""
    return f"{device_id[:8]}...{device_id[-8:]}"
