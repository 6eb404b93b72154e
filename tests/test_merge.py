# ABOUTME: Tests for the merge engine
# ABOUTME: Covers recursive merge, REMOVE/Replace markers and common value stripping
from ccswitch.merge import (
    REMOVE,
    Replace,
    drop_stale_keys,
    merge,
    merge_into,
    removal_patch,
    restrict_to,
    stale_keys_patch,
    strip_common_values,
)


class TestMerge:
    """Tests for merge function."""

    def test_unnamed_keys_preserved(self):
        """Keys the patch doesn't name survive byte-for-byte."""
        existing = {"theme": "dark", "permissions": {"allow": ["Bash(ls)"]}}

        result = merge(existing, {"env": {"ANTHROPIC_BASE_URL": "https://relay"}})

        assert result["theme"] == "dark"
        assert result["permissions"] == {"allow": ["Bash(ls)"]}
        assert result["env"] == {"ANTHROPIC_BASE_URL": "https://relay"}

    def test_maps_recurse(self):
        result = merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3, "z": 4}})
        assert result == {"a": {"x": 1, "y": 3, "z": 4}}

    def test_lists_replace(self):
        """Lists are scalar-like and replaced wholesale."""
        result = merge({"args": ["a", "b"]}, {"args": ["c"]})
        assert result == {"args": ["c"]}

    def test_map_replaces_scalar(self):
        result = merge({"a": 1}, {"a": {"b": 2}})
        assert result == {"a": {"b": 2}}

    def test_remove_marker(self):
        result = merge({"a": 1, "b": 2}, {"a": REMOVE, "missing": REMOVE})
        assert result == {"b": 2}

    def test_nested_remove(self):
        result = merge({"env": {"A": "1", "B": "2"}}, {"env": {"A": REMOVE}})
        assert result == {"env": {"B": "2"}}

    def test_replace_does_not_recurse(self):
        """Replace swaps the subtree instead of merging into it."""
        existing = {"mcpServers": {"fs": {"command": "old", "cwd": "/tmp"}}}

        result = merge(existing, {"mcpServers": {"fs": Replace({"command": "new"})}})

        assert result == {"mcpServers": {"fs": {"command": "new"}}}

    def test_inputs_not_mutated(self):
        existing = {"a": {"x": 1}}
        patch = {"a": {"y": 2}}

        merge(existing, patch)

        assert existing == {"a": {"x": 1}}
        assert patch == {"a": {"y": 2}}

    def test_key_order_kept(self):
        result = merge({"b": 1, "a": 2}, {"a": 3, "c": 4})
        assert list(result) == ["b", "a", "c"]

    def test_idempotent(self):
        existing = {"a": {"x": 1}, "keep": True}
        patch = {"a": {"y": 2}, "gone": REMOVE}

        once = merge(existing, patch)

        assert merge(once, patch) == once

    def test_remove_is_singleton(self):
        import copy

        assert copy.deepcopy(REMOVE) is REMOVE
        assert repr(REMOVE) == "REMOVE"


class TestStripCommonValues:
    """Tests for strip_common_values function."""

    def test_strips_equal_values(self):
        result = strip_common_values({"env": {"A": "1", "B": "2"}}, {"env": {"A": "1"}})
        assert result == {"env": {"B": "2"}}

    def test_keeps_differing_values(self):
        result = strip_common_values({"model": "opus"}, {"model": "sonnet"})
        assert result == {"model": "opus"}

    def test_drops_emptied_maps(self):
        result = strip_common_values({"env": {"A": "1"}, "x": 1}, {"env": {"A": "1"}})
        assert result == {"x": 1}

    def test_missing_keys_ignored(self):
        assert strip_common_values({"a": 1}, {"b": 2}) == {"a": 1}


def test_removal_patch():
    """removal_patch maps each key to REMOVE."""
    patch = removal_patch(("A", "B"))

    assert patch == {"A": REMOVE, "B": REMOVE}
    assert merge({"A": 1, "B": 2, "C": 3}, patch) == {"C": 3}


class TestKeyOwnership:
    """Tests for the helpers that keep provider-owned keys from leaking."""

    def test_stale_keys_patch_recurses(self):
        old = {"model": "opus", "env": {"A": "1", "B": "2"}, "ui": "dark"}
        new = {"env": {"A": "3"}, "ui": "light"}

        assert stale_keys_patch(old, new) == {"model": REMOVE, "env": {"B": REMOVE}}

    def test_restrict_to_drops_emptied_maps(self):
        document = {"env": {"A": "1", "X": "2"}, "perm": {"allow": []}, "model": "m"}

        assert restrict_to(document, {"env": {"A": None}, "model": None}) == {
            "env": {"A": "1"},
            "model": "m",
        }
        assert restrict_to({"env": {"X": "2"}}, {"env": {"A": None}}) == {}

    def test_drop_stale_keys_only_touches_present_keys(self):
        existing = {"env": {"A": "1"}, "permissions": {"deny": ["x"]}}
        old = {"model": "opus", "env": {"A": "1"}, "general": {"vim": True}}

        assert drop_stale_keys(existing, old, {}) == {"permissions": {"deny": ["x"]}}

    def test_merge_into_edits_in_place(self):
        target = {"keep": 1, "table": {"a": 1, "b": 2}, "gone": True}

        merge_into(target, {"table": {"b": REMOVE, "c": 3}, "gone": REMOVE, "new": {"x": 1}})

        assert target == {"keep": 1, "table": {"a": 1, "c": 3}, "new": {"x": 1}}

    def test_merge_into_replace_swaps_subtree(self):
        target = {"table": {"a": 1}}

        merge_into(target, {"table": Replace({"b": 2})})

        assert target == {"table": {"b": 2}}
