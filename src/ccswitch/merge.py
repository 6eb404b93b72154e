# Merge engine for live configuration documents
import copy
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any

from ccswitch.models import Document


class _Remove:
    """Sentinel type for REMOVE."""

    _instance: "_Remove | None" = None

    def __new__(cls) -> "_Remove":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REMOVE"

    def __deepcopy__(self, memo: dict[int, Any]) -> "_Remove":
        return self


# ABOUTME: Patch value that deletes the key from the existing document
REMOVE = _Remove()


@dataclass(frozen=True)
class Replace:
    """Patch value that replaces a subtree wholesale instead of recursing.

    ABOUTME: Used where the patch owns a whole entry, e.g. mcpServers.<id>
    """
    value: Any


def merge(existing: Document, patch: Document) -> Document:
    """Recursively apply patch on top of existing.

    ABOUTME: Returns a new document; neither argument is mutated
    ABOUTME: Maps recurse, scalars and lists replace, unnamed keys are kept verbatim
    ABOUTME: REMOVE deletes a key, Replace(value) swaps a subtree without recursing

    Args:
        existing: Current live document (e.g. decoded settings.json)
        patch: Keys owned by the canonical model

    Returns:
        Merged document, with existing key order kept and new keys appended

    Examples:
        >>> merge({"a": {"x": 1}, "b": 2}, {"a": {"y": 3}})
        {'a': {'x': 1, 'y': 3}, 'b': 2}
        >>> merge({"a": 1, "b": 2}, {"a": REMOVE})
        {'b': 2}
    """
    result = copy.deepcopy(existing)
    for key, value in patch.items():
        if value is REMOVE:
            result.pop(key, None)
        elif isinstance(value, Replace):
            result[key] = copy.deepcopy(value.value)
        elif isinstance(value, dict):
            base = result.get(key)
            result[key] = merge(base if isinstance(base, dict) else {}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def strip_common_values(target: Document, common: Document) -> Document:
    """Drop every value in target that equals the common snippet's value.

    ABOUTME: Recurses into maps and drops maps left empty by the stripping
    ABOUTME: Keys whose value differs from the common value are kept

    Examples:
        >>> strip_common_values({"env": {"A": "1", "B": "2"}}, {"env": {"A": "1"}})
        {'env': {'B': '2'}}
    """
    result = copy.deepcopy(target)
    for key, common_value in common.items():
        if key not in result:
            continue
        value = result[key]
        if isinstance(value, dict) and isinstance(common_value, dict):
            stripped = strip_common_values(value, common_value)
            if stripped:
                result[key] = stripped
            else:
                del result[key]
        elif value == common_value:
            del result[key]
    return result


def removal_patch(keys: list[str] | set[str] | tuple[str, ...]) -> Document:
    """Build a patch that deletes each of keys."""
    return {key: REMOVE for key in keys}


def stale_keys_patch(old: Document, new: Document) -> Document:
    """Patch removing every key old supplies that new does not.

    ABOUTME: Recurses where both sides hold a map, so shared siblings stay untouched

    Examples:
        >>> stale_keys_patch({"model": "a", "env": {"K": "1", "X": "2"}}, {"env": {"K": "3"}})
        {'model': REMOVE, 'env': {'X': REMOVE}}
    """
    patch: Document = {}
    for key, value in old.items():
        if key not in new:
            patch[key] = REMOVE
        elif isinstance(value, dict) and isinstance(new[key], dict):
            nested = stale_keys_patch(value, new[key])
            if nested:
                patch[key] = nested
    return patch


def restrict_to(document: Document, shape: Document) -> Document:
    """Keep only the keys of document that shape also has.

    ABOUTME: Recurses where both sides hold a map and drops maps left empty

    Examples:
        >>> restrict_to({"env": {"A": "1", "B": "2"}, "theme": "dark"}, {"env": {"A": None}})
        {'env': {'A': '1'}}
    """
    result: Document = {}
    for key, value in document.items():
        if key not in shape:
            continue
        if isinstance(value, dict) and isinstance(shape[key], dict):
            nested = restrict_to(value, shape[key])
            if nested:
                result[key] = nested
        else:
            result[key] = copy.deepcopy(value)
    return result


def drop_stale_keys(existing: Document, old: Document, new: Document) -> Document:
    """Remove from existing the keys old supplied and new does not.

    ABOUTME: Only keys present in existing are touched; no empty maps are created
    """
    return merge(existing, restrict_to(stale_keys_patch(old, new), existing))


def merge_into(target: MutableMapping, patch: Document) -> None:
    """In-place merge() for format-preserving documents such as tomlkit's.

    ABOUTME: Existing tables are edited where they are, so comments and layout survive
    """
    for key, value in patch.items():
        if value is REMOVE:
            if key in target:
                del target[key]
        elif isinstance(value, Replace):
            target[key] = copy.deepcopy(value.value)
        elif isinstance(value, dict):
            base = target.get(key)
            if isinstance(base, MutableMapping):
                merge_into(base, value)
            else:
                target[key] = merge({}, value)
        else:
            target[key] = copy.deepcopy(value)
