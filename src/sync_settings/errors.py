"""Custom exceptions for sync-settings.

This module defines typed exceptions for better error handling and clearer
error messages throughout the application.
"""


class SyncError(RuntimeError):
    """Base class for all sync-related errors."""
    pass


# Configuration Errors
class ConfigError(SyncError):
    """Base class for configuration errors the user can fix and retry."""
    pass


class MissingCredentialError(ConfigError):
    """No personal access token configured."""

    def __init__(self):
        super().__init__(
            "No personal access token configured. "
            "Set sync-settings.personalAccessToken or the GITHUB_TOKEN environment variable."
        )


class MissingRemoteIdError(ConfigError):
    """No backup identifier configured."""

    def __init__(self):
        super().__init__(
            "No backup id configured. "
            "Set sync-settings.gistId or the GIST_ID environment variable."
        )


class SensitiveFileError(ConfigError):
    """An extra file would leak the access credential."""

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(
            f"Backing up '{file_name}' would upload your personal access token. "
            f"Remove it from extraFiles or disable hiddenSettings._warnBackupConfig."
        )


# Remote Errors
class RemoteError(SyncError):
    """Base class for backup store communication errors."""
    pass


class NetworkError(RemoteError):
    """Network connectivity issue with the backup store."""
    pass


class AuthError(RemoteError):
    """Authentication failed (401/403)."""

    def __init__(self, message: str = "Bad credentials"):
        super().__init__(message)


class NotFoundError(RemoteError):
    """Backup not found (404)."""

    def __init__(self, message: str = "Not Found"):
        super().__init__(message)


class RemoteShapeError(RemoteError):
    """Response is missing fields we rely on."""

    def __init__(self, missing: str):
        self.missing = missing
        super().__init__(f"Could not interpret backup store response: missing '{missing}'")


# Backup Format Errors
class BlobParseError(SyncError):
    """A blob in the backup could not be parsed."""

    def __init__(self, name: str, cause: Exception):
        self.name = name
        self.cause = cause
        super().__init__(f"Error parsing the file '{name}'. ({cause})")


# Package Errors
class PackageOperationError(SyncError):
    """Installing or removing a single package failed."""

    def __init__(self, action: str, name: str, detail: str = ""):
        self.action = action
        self.name = name
        self.detail = detail
        message = f"{action} {name} failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)
