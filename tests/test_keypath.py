"""Tests for key path helpers."""

from sync_settings.keypath import (
    ValueKind,
    delete_value_at_key_path,
    get_value_at_key_path,
    has_key_path,
    join_key_path,
    kind_of,
    set_value_at_key_path,
    split_key_path,
)


class TestKinds:
    def test_mapping_is_branch(self):
        assert kind_of({"a": 1}) is ValueKind.BRANCH
        assert kind_of({}) is ValueKind.BRANCH

    def test_arrays_and_scalars_are_leaves(self):
        for value in ([1, 2], [{"a": 1}], "x", 3, 1.5, True, None):
            assert kind_of(value) is ValueKind.LEAF


class TestKeyPaths:
    def test_split_plain(self):
        assert split_key_path("editor.fontSize") == ["editor", "fontSize"]
        assert split_key_path("") == []

    def test_escaped_dot_round_trips(self):
        path = join_key_path(join_key_path("", "file-icons"), "a.b")
        assert path == "file-icons.a\\.b"
        assert split_key_path(path) == ["file-icons", "a.b"]

    def test_get_and_has(self):
        tree = {"editor": {"fontSize": 14, "flag": None}}
        assert get_value_at_key_path(tree, "editor.fontSize") == 14
        assert get_value_at_key_path(tree, "editor.missing") is None
        assert get_value_at_key_path(tree, "editor.fontSize.deeper") is None
        assert has_key_path(tree, "editor.flag")
        assert not has_key_path(tree, "editor.missing")
        assert not has_key_path(None, "editor")

    def test_set_creates_intermediate_mappings(self):
        tree = {"sync-settings": "not a mapping"}
        set_value_at_key_path(tree, "sync-settings.hiddenSettings._lastBackupTime", "t")
        assert tree == {"sync-settings": {"hiddenSettings": {"_lastBackupTime": "t"}}}

    def test_delete(self):
        tree = {"a": {"b": 1, "c": 2}}
        assert delete_value_at_key_path(tree, "a.b")
        assert tree == {"a": {"c": 2}}
        assert not delete_value_at_key_path(tree, "a.b")
        assert not delete_value_at_key_path(tree, "x.y")
        assert not delete_value_at_key_path(None, "a")
