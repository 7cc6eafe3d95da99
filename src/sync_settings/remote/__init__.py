"""Remote backup store implementations."""

from .base import BackupStore
from .factory import make_backup_store
from .fs import FilesystemBackupStore
from .gist import GistBackupStore

__all__ = ["BackupStore", "FilesystemBackupStore", "GistBackupStore", "make_backup_store"]
