"""Mapping between remote blob sets and snapshots.

A backup is a flat set of named text blobs. ``classify_blobs`` assigns each
blob to a slot of a ``StateSnapshot``; ``snapshot_to_blobs`` is the inverse
used when uploading.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import SyncProfile
from .constants import GLOBAL_SCOPE, PACKAGES_BLOB, SETTINGS_BLOB
from .context import SyncContext
from .core import FileEntry, PackageInfo, StateSnapshot
from .errors import BlobParseError
from .extensions import ExtensionManager
from .ignore import GlobSpec
from .snapshot import filter_packages, sanitize_file_name, unsanitize_file_name

logger = logging.getLogger(__name__)


def blob_content(blob: Any) -> Optional[str]:
    """Text of a blob given as ``{"content": ...}`` or a bare string."""
    if isinstance(blob, Mapping):
        return blob.get("content")
    return blob


def parse_settings(name: str, content: str) -> Dict[str, Any]:
    """Parse the settings blob into a scoped tree.

    Trees saved without scopes are the global scope.

    Raises:
        BlobParseError: If the blob is not a JSON object
    """
    try:
        settings = json.loads(content)
    except ValueError as e:
        raise BlobParseError(name, e) from e
    if not isinstance(settings, dict):
        raise BlobParseError(name, ValueError("expected a JSON object"))
    if GLOBAL_SCOPE not in settings:
        settings = {GLOBAL_SCOPE: settings}
    return settings


def parse_packages(name: str, content: str) -> Dict[str, PackageInfo]:
    """Parse the packages blob.

    Accepts the mapping form keyed by name, or the legacy list of
    descriptors that carry their own ``name``.

    Raises:
        BlobParseError: If the blob is malformed
    """
    try:
        data = json.loads(content)
        if isinstance(data, list):
            data = {pkg["name"]: {k: v for k, v in pkg.items() if k != "name"} for pkg in data}
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object or array")
        return {pkg_name: PackageInfo.model_validate(info) for pkg_name, info in data.items()}
    except (ValueError, TypeError, KeyError) as e:
        raise BlobParseError(name, e) from e


def _well_known_slots(profile: SyncProfile, ctx: SyncContext) -> Dict[str, Tuple[bool, Path]]:
    """Blob name -> (enabled, local path) for the aliased well-known files."""
    return {
        "keymap.cson": (profile.sync_keymap, ctx.keymap_path),
        "keymap.json": (profile.sync_keymap, ctx.keymap_path),
        "styles.css": (profile.sync_styles, ctx.styles_path),
        "styles.less": (profile.sync_styles, ctx.styles_path),
        "init.coffee": (profile.sync_init, ctx.config_dir / "init.coffee"),
        "init.js": (profile.sync_init, ctx.config_dir / "init.js"),
        "snippets.cson": (profile.sync_snippets, ctx.config_dir / "snippets.cson"),
        "snippets.json": (profile.sync_snippets, ctx.config_dir / "snippets.json"),
    }


def classify_blobs(
    blobs: Mapping[str, Any],
    profile: SyncProfile,
    ctx: SyncContext,
    extensions: ExtensionManager,
) -> StateSnapshot:
    """
    Build a snapshot from a backup's blobs.

    Each blob is visited once. Blobs the profile does not sync are ignored.

    Args:
        blobs: Blob name -> ``{"content": str}`` (or bare string)
        profile: Sync profile deciding which slots are enabled
        ctx: Editor context resolving local paths
        extensions: Extension manager for the community-only filter

    Returns:
        StateSnapshot of the backup

    Raises:
        BlobParseError: If the settings or packages blob is malformed. No
            partial snapshot is produced.
    """
    settings: Optional[Dict[str, Any]] = None
    packages: Optional[Dict[str, PackageInfo]] = None
    files: Dict[str, FileEntry] = {}

    well_known = _well_known_slots(profile, ctx)
    extra_files = {unsanitize_file_name(f) for f in profile.extra_files}
    include = GlobSpec(profile.extra_files_glob)
    exclude = GlobSpec(profile.ignore_files_glob)

    for name, blob in blobs.items():
        content = blob_content(blob)
        if content is None:
            continue

        if name == SETTINGS_BLOB:
            if profile.sync_settings:
                settings = parse_settings(name, content)
        elif name == PACKAGES_BLOB:
            if profile.syncs_packages:
                packages = filter_packages(parse_packages(name, content), profile, extensions)
        elif name in well_known:
            enabled, path = well_known[name]
            if enabled:
                files[name] = FileEntry(path=str(path), content=content)
        else:
            rel = unsanitize_file_name(name)
            if not ctx.contains(rel):
                logger.warning(f"Refusing backup file outside the config directory: {name}")
            elif rel in extra_files or (include.matches(rel) and not exclude.matches(rel)):
                files[sanitize_file_name(rel)] = FileEntry(path=str(ctx.resolve(rel)), content=content)
            else:
                logger.debug(f"Ignoring unrecognized backup file {name}")

    return StateSnapshot.build(settings=settings, packages=packages, files=files)


def snapshot_to_blobs(snapshot: StateSnapshot) -> Dict[str, Dict[str, Optional[str]]]:
    """Serialize a snapshot into the blob set uploaded on backup."""
    blobs: Dict[str, Dict[str, Optional[str]]] = {}
    if snapshot.settings is not None:
        blobs[SETTINGS_BLOB] = {
            "content": json.dumps(snapshot.settings, indent="\t", ensure_ascii=False),
        }
    if snapshot.packages is not None:
        data = {name: info.to_blob() for name, info in snapshot.packages.items()}
        blobs[PACKAGES_BLOB] = {"content": json.dumps(data, indent="\t", ensure_ascii=False)}
    for name, entry in (snapshot.files or {}).items():
        blobs[name] = {"content": entry.content}
    return blobs
