"""High-level service layer for sync operations."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, Union

from .blobs import classify_blobs, snapshot_to_blobs
from .config import (
    SyncProfile,
    blacklisted_keys,
    get_gist_id,
    get_personal_access_token,
    load_profile,
)
from .config_store import ConfigStore, FileConfigStore
from .constants import (
    GIST_ID_KEY,
    GLOBAL_SCOPE,
    LAST_BACKUP_TIME_KEY,
    README_BLOB,
    README_CONTENT,
)
from .context import SyncContext
from .core import OutcomeStatus, StateSnapshot, SyncOutcome
from .diffing import compute_diff
from .errors import (
    AuthError,
    BlobParseError,
    MissingCredentialError,
    MissingRemoteIdError,
    NotFoundError,
    RemoteShapeError,
    SensitiveFileError,
)
from .extensions import DirectoryExtensionManager, ExtensionManager
from .keypath import deep_clone, delete_value_at_key_path, set_value_at_key_path
from .notify import ConsoleNotifier, Notifier
from .packages import install_missing_packages, remove_obsolete_packages
from .remote import BackupStore, make_backup_store
from .snapshot import build_local_snapshot, get_local_packages
from .utils import atomic_write_text, format_iso_date

logger = logging.getLogger(__name__)

ResponsePath = Sequence[Union[str, int]]


@dataclass
class SyncDeps:
    """Dependency injection container for testability."""
    ctx: SyncContext
    config: ConfigStore
    extensions: ExtensionManager
    notifier: Notifier
    store_factory: Callable[[Optional[str]], BackupStore] = make_backup_store


def validate_response(res: Any, *paths: ResponsePath) -> None:
    """Check that every path leads to a non-empty value in a store response.

    Raises:
        RemoteShapeError: Naming the first missing path
    """
    for path in paths:
        value = res
        for key in path:
            try:
                value = value[key]
            except (KeyError, IndexError, TypeError):
                value = None
            if value is None or value == "":
                logger.error(f"Could not interpret result: {res!r}")
                raise RemoteShapeError(".".join(str(k) for k in path))


class SyncService:
    """High-level service for backup, restore and update checks.

    Every flow:
    - Loads the profile fresh from the config store
    - Returns a ``SyncOutcome`` the caller inspects to decide on retries
    - Emits exactly one notification when it aborts
    """

    def __init__(self, deps: Optional[SyncDeps] = None):
        """Initialize with deps, or defaults for the current user.

        Args:
            deps: Full dependency injection (for testing)
        """
        if deps is None:
            ctx = SyncContext()
            deps = SyncDeps(
                ctx=ctx,
                config=FileConfigStore(ctx.config_path, ctx.lock_path),
                extensions=DirectoryExtensionManager(ctx.packages_dir),
                notifier=ConsoleNotifier(),
            )
        self.deps = deps

    @property
    def profile(self) -> SyncProfile:
        """Load current sync profile."""
        return load_profile(self.deps.config)

    @property
    def notifier(self) -> Notifier:
        return self.deps.notifier

    # ============= Helpers =============

    def _open_store(self, require_remote_id: bool = True) -> Tuple[BackupStore, Optional[str]]:
        token = get_personal_access_token(self.deps.config)
        store = self.deps.store_factory(token)
        if store.requires_credential and not token:
            raise MissingCredentialError()
        remote_id = get_gist_id(self.deps.config)
        if require_remote_id and not remote_id:
            raise MissingRemoteIdError()
        return store, remote_id

    def _local_snapshot(self, profile: SyncProfile) -> StateSnapshot:
        return build_local_snapshot(profile, self.deps.ctx, self.deps.config, self.deps.extensions)

    def _backup_snapshot(self, res: Dict[str, Any], profile: SyncProfile) -> StateSnapshot:
        return classify_blobs(res["files"], profile, self.deps.ctx, self.deps.extensions)

    async def _fetch(self, store: BackupStore, remote_id: str) -> Dict[str, Any]:
        res = await store.get(remote_id)
        validate_response(res, ("files",), ("history", 0, "committed_at"))
        return res

    async def _guard(self, label: str, flow: Callable[[], Awaitable[SyncOutcome]]) -> SyncOutcome:
        """Run a flow, turning each abort path into one notification.

        Transport errors other than a missing backup or a rejected
        credential are reported and re-raised.
        """
        signal = self.notifier.progress(label)
        try:
            return await flow()
        except MissingCredentialError as e:
            self.notifier.warning("No personal access token configured", detail=str(e))
            return SyncOutcome(status=OutcomeStatus.NEEDS_CREDENTIAL, message=str(e))
        except MissingRemoteIdError as e:
            self.notifier.warning("No backup id configured", detail=str(e))
            return SyncOutcome(status=OutcomeStatus.NEEDS_REMOTE_ID, message=str(e))
        except AuthError as e:
            logger.warning(f"{label} failed: {e}")
            self.notifier.warning("Invalid personal access token", detail=str(e))
            return SyncOutcome(status=OutcomeStatus.NEEDS_CREDENTIAL, message=str(e))
        except NotFoundError as e:
            logger.warning(f"{label} failed: {e}")
            self.notifier.warning("Invalid backup id", detail=str(e))
            return SyncOutcome(status=OutcomeStatus.NEEDS_REMOTE_ID, message=str(e))
        except SensitiveFileError as e:
            self.notifier.warning("Backup aborted", detail=str(e))
            return SyncOutcome(status=OutcomeStatus.ABORTED, message=str(e))
        except RemoteShapeError as e:
            self.notifier.error("Error retrieving your settings.", detail=str(e))
            return SyncOutcome(status=OutcomeStatus.ABORTED, message=str(e))
        except BlobParseError as e:
            self.notifier.error(str(e))
            return SyncOutcome(status=OutcomeStatus.ABORTED, message=str(e))
        except Exception as e:
            logger.error(f"{label} failed: {e}")
            self.notifier.error(f"Error {label}", detail=str(e), dismissable=True)
            raise
        finally:
            signal.dismiss()

    # ============= Flows =============

    async def check_for_update(self, auto_check: bool = False) -> SyncOutcome:
        """Compare this machine against the backup.

        Args:
            auto_check: Silent check; no notification when up to date
        """
        async def flow() -> SyncOutcome:
            store, remote_id = self._open_store()
            res = await self._fetch(store, remote_id)
            profile = self.profile
            backup = self._backup_snapshot(res, profile)
            local = self._local_snapshot(profile)
            diff = compute_diff(local, backup, self.deps.config)
            backup_time = res["history"][0]["committed_at"]

            if diff.has_changes:
                last_backup_time = profile.hidden_settings.last_backup_time
                self.notifier.warning(
                    "Your settings are out of date.",
                    detail=(
                        f"Last Backup: {format_iso_date(last_backup_time)}\n"
                        f"Server Backup: {format_iso_date(backup_time)}"
                    ),
                )
                return SyncOutcome(
                    status=OutcomeStatus.UPDATE_AVAILABLE,
                    message=diff.summary(),
                    diff=diff,
                    backup_time=backup_time,
                    remote_id=remote_id,
                )

            if not auto_check:
                self.notifier.success(
                    "Your settings are synchronized.",
                    detail=f"Last Backup: {format_iso_date(backup_time)}",
                )
            return SyncOutcome(
                status=OutcomeStatus.UP_TO_DATE,
                diff=diff,
                backup_time=backup_time,
                remote_id=remote_id,
            )

        return await self._guard("checking backup", flow)

    async def auto_check(self) -> Optional[SyncOutcome]:
        """Silent startup check, skipped when checkForUpdatedBackup is off."""
        if not self.profile.check_for_updated_backup:
            return None
        return await self.check_for_update(auto_check=True)

    async def backup(self) -> SyncOutcome:
        """Upload this machine's snapshot as a new backup revision."""
        async def flow() -> SyncOutcome:
            profile = self.profile
            local = self._local_snapshot(profile)
            files: Dict[str, Any] = snapshot_to_blobs(local)

            store, remote_id = self._open_store()
            if profile.remove_unfamiliar_files:
                res = await self._fetch(store, remote_id)
                diff = compute_diff(local, self._backup_snapshot(res, profile), self.deps.config)
                if diff.files and diff.files.added:
                    for name in diff.files.added:
                        files[name] = None

            res = await store.update(remote_id, profile.gist_description, files)
            validate_response(res, ("html_url",), ("history", 0, "committed_at"))

            backup_time = res["history"][0]["committed_at"]
            self.deps.config.set(LAST_BACKUP_TIME_KEY, backup_time)
            url = res["html_url"]
            self.notifier.success("Your settings were successfully backed up.", detail=url)
            return SyncOutcome(
                status=OutcomeStatus.COMPLETED,
                backup_time=backup_time,
                url=url,
                remote_id=remote_id,
            )

        return await self._guard("backing up settings", flow)

    async def restore(self) -> SyncOutcome:
        """Make this machine match the backup."""
        async def flow() -> SyncOutcome:
            store, remote_id = self._open_store()
            res = await self._fetch(store, remote_id)
            profile = self.profile
            backup = self._backup_snapshot(res, profile)

            if profile.remove_unfamiliar_files:
                local = self._local_snapshot(profile)
                diff = compute_diff(local, backup, self.deps.config)
                if diff.files and diff.files.deleted:
                    for name, entry in diff.files.deleted.items():
                        logger.info(f"Removing unfamiliar file {name}")
                        Path(entry.path).unlink(missing_ok=True)

            if backup.settings is not None:
                self.apply_settings(backup.settings, profile)
                # restored settings may change our own options
                profile = self.profile

            if backup.packages is not None:
                extensions = self.deps.extensions
                local_packages = get_local_packages(profile, extensions)
                await install_missing_packages(
                    backup.packages,
                    local_packages,
                    extensions,
                    self.notifier,
                    install_latest_version=profile.install_latest_version,
                )
                if profile.remove_obsolete_packages:
                    await remove_obsolete_packages(
                        backup.packages,
                        get_local_packages(profile, extensions),
                        extensions,
                        self.notifier,
                    )

            for entry in (backup.files or {}).values():
                atomic_write_text(Path(entry.path), entry.content)

            backup_time = res["history"][0]["committed_at"]
            self.deps.config.set(LAST_BACKUP_TIME_KEY, backup_time)
            self.notifier.success("Your settings were successfully synchronized.")
            return SyncOutcome(
                status=OutcomeStatus.COMPLETED,
                backup_time=backup_time,
                remote_id=remote_id,
            )

        return await self._guard("restoring settings", flow)

    def apply_settings(self, settings: Dict[str, Any], profile: SyncProfile) -> None:
        """Replace each scope with the backup's tree, keeping blacklisted keys.

        Blacklisted keys take their live value. One the live config does not
        have is removed from the incoming tree.
        """
        settings = deep_clone(settings)
        if GLOBAL_SCOPE not in settings:
            # backed up without scopes
            settings = {GLOBAL_SCOPE: settings}
        global_tree = settings[GLOBAL_SCOPE]
        if not isinstance(global_tree, dict):
            global_tree = settings[GLOBAL_SCOPE] = {}

        config = self.deps.config
        for key in blacklisted_keys(profile):
            value = config.get(key)
            if value is not None:
                set_value_at_key_path(global_tree, key, value)
            else:
                delete_value_at_key_path(global_tree, key)

        for scope, tree in settings.items():
            if isinstance(tree, dict):
                config.set_scope(scope, tree)
            else:
                logger.warning(f"Skipping settings for scope {scope}: not a mapping")

    async def view_diff(self) -> SyncOutcome:
        """Compute the diff against the backup without reporting it."""
        async def flow() -> SyncOutcome:
            store, remote_id = self._open_store()
            res = await self._fetch(store, remote_id)
            profile = self.profile
            diff = compute_diff(
                self._local_snapshot(profile),
                self._backup_snapshot(res, profile),
                self.deps.config,
            )
            return SyncOutcome(
                status=OutcomeStatus.COMPLETED,
                message=diff.summary(),
                diff=diff,
                backup_time=res["history"][0]["committed_at"],
                remote_id=remote_id,
            )

        return await self._guard("comparing with backup", flow)

    async def fork(self, remote_id: str) -> SyncOutcome:
        """Fork another backup and make the fork this machine's backup."""
        async def flow() -> SyncOutcome:
            store, _ = self._open_store(require_remote_id=False)
            res = await store.fork(remote_id)
            validate_response(res, ("id",))
            new_id = str(res["id"])
            self.deps.config.set(GIST_ID_KEY, new_id)
            url = store.url_for(new_id)
            self.notifier.success(
                "Forked successfully",
                detail=f"Your new backup has been created with id {new_id} ({url}) "
                "which has been saved to your config file.",
            )
            return SyncOutcome(status=OutcomeStatus.COMPLETED, url=url, remote_id=new_id)

        return await self._guard("forking a backup", flow)

    async def create_backup(self) -> SyncOutcome:
        """Create an empty backup and save its id."""
        async def flow() -> SyncOutcome:
            store, _ = self._open_store(require_remote_id=False)
            res = await store.create({
                "description": self.profile.gist_description,
                "public": False,
                "files": {README_BLOB: {"content": README_CONTENT}},
            })
            validate_response(res, ("id",))
            new_id = str(res["id"])
            self.deps.config.set(GIST_ID_KEY, new_id)
            url = store.url_for(new_id)
            self.notifier.success("Created a new backup", detail=url)
            return SyncOutcome(status=OutcomeStatus.COMPLETED, url=url, remote_id=new_id)

        return await self._guard("creating a backup", flow)

    def backup_url(self) -> Optional[str]:
        """Where the configured backup can be viewed, if one is configured."""
        remote_id = get_gist_id(self.deps.config)
        if not remote_id:
            return None
        token = get_personal_access_token(self.deps.config)
        return self.deps.store_factory(token).url_for(remote_id)
