"""Local snapshot builder.

Captures what this machine would back up: the settings tree minus
blacklisted keys, installed packages, and the synced files.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .config import SyncProfile, blacklisted_keys
from .config_store import ConfigStore
from .constants import CONFIG_FILE, GLOBAL_SCOPE, PATH_SEPARATOR_SUBSTITUTE, TOKEN_KEY
from .context import SyncContext
from .core import FileEntry, PackageInfo, StateSnapshot
from .errors import SensitiveFileError
from .extensions import ExtensionManager
from .ignore import GlobSpec
from .keypath import delete_value_at_key_path, sort_mapping

logger = logging.getLogger(__name__)

KEYMAP_PLACEHOLDER = "# keymap file (not found)"
STYLES_PLACEHOLDER = "// styles file (not found)"
INIT_PLACEHOLDER = "# initialization file (not found)"
SNIPPETS_PLACEHOLDER = "# snippets file (not found)"


# ============= File Helpers =============

def read_file_content(path: Union[str, Path], placeholder: Optional[str] = None) -> Optional[str]:
    """Read a text file, substituting ``placeholder`` when it has nothing.

    Whitespace-only files count as empty.

    Returns:
        File content, or placeholder (possibly None) if missing or empty
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Error reading file {path}. Probably doesn't exist. ({e})")
        return placeholder
    return content if content.strip() else placeholder


def placeholder_comment(name: str) -> str:
    """Comment standing in for a missing extra file, in the file's own syntax."""
    ext = Path(name).suffix.lower()
    start, end = "#", ""
    if ext in (".less", ".scss", ".js"):
        start = "//"
    elif ext == ".css":
        start, end = "/*", "*/"
    return f"{start} {name} (not found) {end}"


def sanitize_file_name(name: str) -> str:
    """Flatten a relative path into a single blob name."""
    return name.replace("/", PATH_SEPARATOR_SUBSTITUTE)


def unsanitize_file_name(name: str) -> str:
    return name.replace(PATH_SEPARATOR_SUBSTITUTE, "/")


# ============= Packages =============

def filter_packages(
    packages: Mapping[str, PackageInfo],
    profile: SyncProfile,
    extensions: ExtensionManager,
) -> Dict[str, PackageInfo]:
    """Keep the packages the profile syncs, sorted by name."""
    result: Dict[str, PackageInfo] = {}
    for name, info in packages.items():
        if info.theme and not profile.sync_themes:
            continue
        if not info.theme and not profile.sync_packages:
            continue
        if profile.only_sync_community_packages and extensions.is_bundled_package(name):
            continue
        result[name] = info
    return sort_mapping(result)


def metadata_without_duplicates(extensions: ExtensionManager) -> Dict[str, Dict[str, Any]]:
    """Package metadata keyed by resolved install path.

    Several names can resolve to one real directory (symlinked dev
    packages); each directory is reported once.
    """
    path_to_metadata: Dict[str, Dict[str, Any]] = {}
    metadata = extensions.get_available_package_metadata()
    for path, meta in zip(extensions.get_available_package_paths(), metadata):
        path_to_metadata[os.path.realpath(path)] = meta

    packages: Dict[str, Dict[str, Any]] = {}
    for name in extensions.get_available_package_names():
        package_path = extensions.resolve_package_path(name)
        real_path = os.path.realpath(package_path) if package_path else None
        if real_path and path_to_metadata.get(real_path):
            packages[real_path] = path_to_metadata[real_path]
        else:
            logger.warning(f"Could not correlate package name, path, and metadata for {name}")
    return packages


def get_local_packages(profile: SyncProfile, extensions: ExtensionManager) -> Dict[str, PackageInfo]:
    """Installed packages the profile syncs."""
    packages: Dict[str, PackageInfo] = {}
    for meta in metadata_without_duplicates(extensions).values():
        name = meta.get("name")
        if not name:
            continue
        packages[name] = PackageInfo.model_validate({
            "version": meta.get("version"),
            "theme": meta.get("theme"),
            "apmInstallSource": meta.get("apmInstallSource"),
        })
    return filter_packages(packages, profile, extensions)


# ============= Builder =============

class LocalSnapshotBuilder:
    """Builds a ``StateSnapshot`` of this machine for a sync profile."""

    def __init__(
        self,
        profile: SyncProfile,
        ctx: SyncContext,
        config: ConfigStore,
        extensions: ExtensionManager,
    ):
        self.profile = profile
        self.ctx = ctx
        self.config = config
        self.extensions = extensions

    def build(self) -> StateSnapshot:
        """Capture settings, packages and files.

        Raises:
            SensitiveFileError: If an extra file would upload the credential
        """
        profile = self.profile
        settings = self.filtered_settings() if profile.sync_settings else None
        packages = get_local_packages(profile, self.extensions) if profile.syncs_packages else None

        files: Dict[str, FileEntry] = {}
        well_known = (
            (profile.sync_keymap, self.ctx.keymap_path, KEYMAP_PLACEHOLDER),
            (profile.sync_styles, self.ctx.styles_path, STYLES_PLACEHOLDER),
            (profile.sync_init, self.ctx.init_script_path, INIT_PLACEHOLDER),
            (profile.sync_snippets, self.ctx.snippets_path, SNIPPETS_PLACEHOLDER),
        )
        for enabled, path, placeholder in well_known:
            if not enabled:
                continue
            content = read_file_content(path, None if profile.remove_unfamiliar_files else placeholder)
            if content is not None:
                files[path.name] = FileEntry(path=str(path), content=content)

        for name in profile.extra_files:
            self.add_extra_file(files, name)

        if profile.extra_files_glob:
            include = GlobSpec(profile.extra_files_glob)
            exclude = GlobSpec(profile.ignore_files_glob)
            for rel in self.ctx.iter_files(include, exclude):
                self.add_extra_file(files, rel)

        return StateSnapshot.build(settings=settings, packages=packages, files=files)

    def filtered_settings(self) -> Dict[str, Any]:
        """Deep copy of every scope with blacklisted keys removed."""
        settings = {GLOBAL_SCOPE: self.config.settings(), **self.config.scoped_settings()}
        for key in blacklisted_keys(self.profile):
            delete_value_at_key_path(settings[GLOBAL_SCOPE], key)
        return settings

    def add_extra_file(self, files: Dict[str, FileEntry], name: str) -> None:
        """Add a config-dir relative file unless it is already present."""
        name = unsanitize_file_name(name)
        file_name = sanitize_file_name(name)
        if file_name in files:
            return
        if (
            name == CONFIG_FILE
            and self.config.get(TOKEN_KEY)
            and self.profile.hidden_settings.warn_backup_config
        ):
            raise SensitiveFileError(name)

        path = self.ctx.resolve(name)
        placeholder = None if self.profile.remove_unfamiliar_files else placeholder_comment(name)
        content = read_file_content(path, placeholder)
        if content is not None:
            files[file_name] = FileEntry(path=str(path), content=content)


def build_local_snapshot(
    profile: SyncProfile,
    ctx: SyncContext,
    config: ConfigStore,
    extensions: ExtensionManager,
) -> StateSnapshot:
    return LocalSnapshotBuilder(profile, ctx, config, extensions).build()
