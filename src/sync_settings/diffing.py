"""Diff computation between a local and a backup snapshot."""

import difflib
from typing import Any, List, Mapping, Optional

from .config_store import ConfigStore
from .constants import GLOBAL_SCOPE, PATCH_CONTEXT_LINES
from .core import (
    DiffResult,
    FileEntry,
    FilesDiff,
    PackageInfo,
    PackagesDiff,
    PackageUpdate,
    SettingChange,
    SettingsDiff,
    StateSnapshot,
)
from .keypath import ValueKind, join_key_path, kind_of

NO_NEWLINE_MARKER = "\\ No newline at end of file\n"


def compute_diff(local: StateSnapshot, backup: StateSnapshot, config: ConfigStore) -> DiffResult:
    """
    Compare the local snapshot against a backup snapshot.

    Args:
        local: Snapshot of this machine.
        backup: Snapshot classified from the remote backup.
        config: Live config store, read for ``old_value`` of updated settings.

    Returns:
        DiffResult whose sub-diffs are None where nothing differs.

    Note:
        ``old_value`` is read from the config store when the diff is
        computed, not from ``local``. A config change made after the local
        snapshot was built shows up in ``old_value``.
    """
    return DiffResult(
        settings=diff_settings(local.settings, backup.settings, config),
        packages=diff_packages(local.packages, backup.packages),
        files=diff_files(local.files, backup.files),
    )


# ============= Settings =============

def _as_tree(value: Any) -> Mapping[str, Any]:
    return value if kind_of(value) is ValueKind.BRANCH else {}


def _scoped_key_path(scope: str, key_path: str) -> str:
    """Prefix a non-global scope selector onto a scope-relative key path."""
    if scope == GLOBAL_SCOPE:
        return key_path
    return f"{scope}.{key_path}" if key_path else scope


def _flatten(
    value: Any,
    scope: str,
    key_path: str,
    config: Optional[ConfigStore] = None,
) -> List[SettingChange]:
    """Flatten a value into one change per leaf.

    ``key_path`` is relative to ``scope``. When ``config`` is given each
    change carries the live ``old_value``.
    """
    if kind_of(value) is ValueKind.BRANCH:
        changes: List[SettingChange] = []
        for key in sorted(value):
            changes.extend(_flatten(value[key], scope, join_key_path(key_path, key), config))
        return changes

    change = SettingChange(key_path=_scoped_key_path(scope, key_path), value=value, scope=scope)
    if config is not None:
        change.old_value = config.get(key_path, scope)
    return [change]


def _diff_branch(
    local: Mapping[str, Any],
    backup: Mapping[str, Any],
    scope: str,
    prefix: str,
    config: ConfigStore,
    diff: SettingsDiff,
) -> None:
    for key in sorted(set(local) | set(backup)):
        key_path = join_key_path(prefix, key)
        if key not in local:
            diff.added.extend(_flatten(backup[key], scope, key_path))
            continue
        if key not in backup:
            diff.deleted.extend(_flatten(local[key], scope, key_path))
            continue

        local_value, backup_value = local[key], backup[key]
        local_kind, backup_kind = kind_of(local_value), kind_of(backup_value)
        if local_kind is ValueKind.BRANCH and backup_kind is ValueKind.BRANCH:
            _diff_branch(local_value, backup_value, scope, key_path, config, diff)
        elif local_kind is ValueKind.LEAF and backup_kind is ValueKind.LEAF:
            if local_value != backup_value:
                diff.updated.extend(_flatten(backup_value, scope, key_path, config))
        else:
            # branch on one side, leaf on the other
            diff.updated.extend(_flatten(backup_value, scope, key_path, config))


def _flatten_scopes(settings: Mapping[str, Any]) -> List[SettingChange]:
    changes: List[SettingChange] = []
    for scope in sorted(settings):
        changes.extend(_flatten(_as_tree(settings[scope]), scope, ""))
    return changes


def diff_settings(
    local: Optional[Mapping[str, Any]],
    backup: Optional[Mapping[str, Any]],
    config: ConfigStore,
) -> Optional[SettingsDiff]:
    """Leaf-level diff of two scoped settings trees.

    Key paths of non-global scopes start with the scope selector; the
    global ``*`` scope is left out. Each change also carries its scope.
    """
    if local is not None and backup is not None:
        diff = SettingsDiff(added=[], updated=[], deleted=[])
        for scope in sorted(set(local) | set(backup)):
            _diff_branch(
                _as_tree(local.get(scope)),
                _as_tree(backup.get(scope)),
                scope,
                "",
                config,
                diff,
            )
        if not (diff.added or diff.updated or diff.deleted):
            return None
        return SettingsDiff(
            added=diff.added or None,
            updated=diff.updated or None,
            deleted=diff.deleted or None,
        )
    if backup is not None:
        return SettingsDiff(added=_flatten_scopes(backup))
    if local is not None:
        return SettingsDiff(deleted=_flatten_scopes(local))
    return None


# ============= Packages =============

def packages_equivalent(local: PackageInfo, backup: PackageInfo) -> bool:
    """Field equality; a differing install source presence alone is a change."""
    if (local.install_source is None) != (backup.install_source is None):
        return False
    return local == backup


def diff_packages(
    local: Optional[Mapping[str, PackageInfo]],
    backup: Optional[Mapping[str, PackageInfo]],
) -> Optional[PackagesDiff]:
    if local is not None and backup is not None:
        added = {name: backup[name] for name in sorted(backup) if name not in local}
        deleted = {name: local[name] for name in sorted(local) if name not in backup}
        updated = {
            name: PackageUpdate(backup=backup[name], local=local[name])
            for name in sorted(set(local) & set(backup))
            if not packages_equivalent(local[name], backup[name])
        }
        if not (added or updated or deleted):
            return None
        return PackagesDiff(
            added=added or None,
            updated=updated or None,
            deleted=deleted or None,
        )
    if backup is not None:
        return PackagesDiff(added=dict(backup))
    if local is not None:
        return PackagesDiff(deleted=dict(local))
    return None


# ============= Files =============

def make_patch(before: str, after: str) -> str:
    """Unified diff from the local content to the backup content.

    The patch is plain ``difflib`` output: it opens directly with the
    ``--- local`` / ``+++ backup`` headers, with no ``Index:`` or ``====``
    separator lines before them, and keeps two lines of context. A side
    without a trailing newline gets the ``\\ No newline at end of file``
    marker.
    """
    lines = difflib.unified_diff(
        before.splitlines(keepends=True),
        after.splitlines(keepends=True),
        fromfile="local",
        tofile="backup",
        n=PATCH_CONTEXT_LINES,
    )
    patch = []
    for line in lines:
        if line.endswith("\n"):
            patch.append(line)
        else:
            patch.append(line + "\n")
            patch.append(NO_NEWLINE_MARKER)
    return "".join(patch)


def diff_files(
    local: Optional[Mapping[str, FileEntry]],
    backup: Optional[Mapping[str, FileEntry]],
) -> Optional[FilesDiff]:
    """Content diff over the union of file names.

    Stays None unless at least one file differs.
    """
    local = local or {}
    backup = backup or {}
    diff: Optional[FilesDiff] = None

    def add(bucket: str, name: str, entry: FileEntry) -> None:
        nonlocal diff
        if diff is None:
            diff = FilesDiff()
        if getattr(diff, bucket) is None:
            setattr(diff, bucket, {})
        getattr(diff, bucket)[name] = entry

    for name in sorted(set(local) | set(backup)):
        local_file = local.get(name)
        backup_file = backup.get(name)
        if local_file is not None and backup_file is not None:
            if local_file.content != backup_file.content:
                patch = make_patch(local_file.content, backup_file.content)
                add("updated", name, FileEntry(path=backup_file.path, content=patch))
        elif backup_file is not None:
            add("added", name, backup_file)
        elif local_file is not None:
            add("deleted", name, local_file)
    return diff
