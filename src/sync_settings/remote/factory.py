"""Factory for creating backup store instances."""

import os
from pathlib import Path
from typing import Optional

from .base import BackupStore
from .fs import FilesystemBackupStore
from .gist import GITHUB_API_URL, GistBackupStore

BACKUP_DIR_ENV = "SYNC_SETTINGS_BACKUP_DIR"
GITHUB_API_ENV = "GITHUB_API_URL"


def make_backup_store(token: Optional[str], backup_dir: Optional[Path] = None) -> BackupStore:
    """
    Create the backup store for the current environment.

    Args:
        token: Personal access token (unused by the filesystem store)
        backup_dir: Directory for a filesystem store; falls back to
            $SYNC_SETTINGS_BACKUP_DIR. Without one, backups go to GitHub Gist.

    Returns:
        BackupStore instance
    """
    backup_dir = backup_dir or os.environ.get(BACKUP_DIR_ENV)
    if backup_dir:
        return FilesystemBackupStore(Path(backup_dir).expanduser())
    return GistBackupStore(token, api_url=os.environ.get(GITHUB_API_ENV, GITHUB_API_URL))
