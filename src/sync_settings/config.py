"""Sync profile: our options read from the config store.

Options live under the ``sync-settings`` namespace of the global scope and
use the editor's camelCase key names.
"""

import os
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config_store import ConfigStore
from .constants import (
    CONFIG_NAMESPACE,
    DEFAULT_DESCRIPTION,
    GIST_ID_ENV,
    GIST_ID_KEY,
    REMOVE_KEYS,
    TOKEN_ENV,
    TOKEN_KEY,
)


class HiddenSettings(BaseModel):
    """Bookkeeping options not meant to be edited through the UI."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    warn_backup_config: bool = Field(default=True, alias="_warnBackupConfig")
    last_backup_time: Optional[str] = Field(default=None, alias="_lastBackupTime")


class SyncProfile(BaseModel):
    """Which categories are synced and how."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sync_settings: bool = Field(default=True, alias="syncSettings")
    blacklisted_keys: List[str] = Field(default_factory=list, alias="blacklistedKeys")
    sync_packages: bool = Field(default=True, alias="syncPackages")
    sync_themes: bool = Field(default=True, alias="syncThemes")
    sync_keymap: bool = Field(default=True, alias="syncKeymap")
    sync_styles: bool = Field(default=True, alias="syncStyles")
    sync_init: bool = Field(default=True, alias="syncInit")
    sync_snippets: bool = Field(default=True, alias="syncSnippets")
    extra_files: List[str] = Field(default_factory=list, alias="extraFiles")
    extra_files_glob: List[str] = Field(default_factory=list, alias="extraFilesGlob")
    ignore_files_glob: List[str] = Field(default_factory=list, alias="ignoreFilesGlob")
    check_for_updated_backup: bool = Field(default=True, alias="checkForUpdatedBackup")
    remove_obsolete_packages: bool = Field(default=False, alias="removeObsoletePackages")
    remove_unfamiliar_files: bool = Field(default=False, alias="removeUnfamiliarFiles")
    only_sync_community_packages: bool = Field(default=False, alias="onlySyncCommunityPackages")
    install_latest_version: bool = Field(default=False, alias="installLatestVersion")
    gist_description: str = Field(default=DEFAULT_DESCRIPTION, alias="gistDescription")
    hidden_settings: HiddenSettings = Field(default_factory=HiddenSettings, alias="hiddenSettings")

    @field_validator("blacklisted_keys", "extra_files", "extra_files_glob", "ignore_files_glob", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        # an unset list option is stored as null
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("gist_description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> Any:
        if not value:
            return DEFAULT_DESCRIPTION
        return value

    @property
    def syncs_packages(self) -> bool:
        """True when either package category is enabled."""
        return self.sync_packages or self.sync_themes


def load_profile(config: ConfigStore) -> SyncProfile:
    """Read the profile from the config store, filling defaults."""
    data = config.get(CONFIG_NAMESPACE) or {}
    return SyncProfile.model_validate(data)


def blacklisted_keys(profile: SyncProfile) -> List[str]:
    """Reserved keys unioned with the user's list, order preserved."""
    keys = list(REMOVE_KEYS)
    for key in profile.blacklisted_keys:
        if key and key not in keys:
            keys.append(key)
    return keys


def get_personal_access_token(config: ConfigStore) -> Optional[str]:
    """Access token from config, falling back to $GITHUB_TOKEN."""
    token = config.get(TOKEN_KEY)
    if token:
        return token
    return os.environ.get(TOKEN_ENV) or None


def get_gist_id(config: ConfigStore) -> Optional[str]:
    """Backup identifier from config, falling back to $GIST_ID."""
    gist_id = config.get(GIST_ID_KEY)
    if gist_id:
        return str(gist_id).strip()
    env_id = os.environ.get(GIST_ID_ENV)
    return env_id.strip() if env_id else None
