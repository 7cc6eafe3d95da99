"""Constants for sync-settings."""

# Namespace of our own keys inside the host configuration store
CONFIG_NAMESPACE = "sync-settings"

# Main configuration file inside the editor config directory
CONFIG_FILE = "config.yaml"
CONFIG_LOCK_FILE = ".config.yaml.lock"

# Blob names in the remote backup
SETTINGS_BLOB = "settings.json"
PACKAGES_BLOB = "packages.json"
README_BLOB = "README"

# Reserved character replacing "/" so nested file names are flat blob keys
PATH_SEPARATOR_SUBSTITUTE = "\\"

# Global settings scope
GLOBAL_SCOPE = "*"

# Keys that never leave the machine and are never overwritten by a restore
REMOVE_KEYS = [
    "sync-settings.gistId",
    "sync-settings.personalAccessToken",
    "sync-settings.hiddenSettings._lastBackupTime",
    # legacy keys
    "sync-settings._analyticsUserId",
    "sync-settings._lastBackupHash",
    "sync-settings.hiddenSettings._lastBackupHash",
]

LAST_BACKUP_TIME_KEY = "sync-settings.hiddenSettings._lastBackupTime"
GIST_ID_KEY = "sync-settings.gistId"
TOKEN_KEY = "sync-settings.personalAccessToken"

# Environment fallbacks for the credential and the backup identifier
TOKEN_ENV = "GITHUB_TOKEN"
GIST_ID_ENV = "GIST_ID"

# Upper bound on concurrent package installs/removals
MAX_CONCURRENCY = 8

# Lines of context in file patches
PATCH_CONTEXT_LINES = 2

DEFAULT_DESCRIPTION = "Editor configuration backup by sync-settings"
README_CONTENT = "# Generated by sync-settings"

SYNC_VERSION = "0.1.0"
