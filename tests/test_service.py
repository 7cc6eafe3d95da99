"""End-to-end tests for the sync service against the filesystem store."""

import json
from unittest.mock import MagicMock

import pytest

from sync_settings.core import OutcomeStatus
from sync_settings.errors import AuthError, NetworkError, RemoteShapeError
from sync_settings.remote import GistBackupStore
from sync_settings.service import validate_response


class StubStore:
    """Store whose reads return or raise whatever the test queues."""

    requires_credential = False

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error

    async def get(self, remote_id):
        if self.error is not None:
            raise self.error
        return self.response

    def url_for(self, remote_id):
        return f"stub://{remote_id}"


async def make_backup(backup_store, config_store, files):
    """Store a backup made of raw blobs and point the config at it."""
    res = await backup_store.create({"files": {name: {"content": c} for name, c in files.items()}})
    config_store.set("sync-settings.gistId", res["id"])
    return res["id"]


class TestValidateResponse:
    def test_present_values(self):
        validate_response({"files": {}, "history": [{"committed_at": "t"}]}, ("files",), ("history", 0, "committed_at"))

    @pytest.mark.parametrize("res", [
        {"history": []},
        {"history": [{}]},
        {"history": [{"committed_at": ""}]},
        {"history": None},
        None,
    ])
    def test_missing_values(self, res):
        with pytest.raises(RemoteShapeError) as exc:
            validate_response(res, ("history", 0, "committed_at"))
        assert exc.value.missing == "history.0.committed_at"


class TestCreateAndBackup:
    @pytest.mark.asyncio
    async def test_create_backup_saves_id(self, make_service, config_store, backup_store, notifier):
        outcome = await make_service().create_backup()

        assert outcome.status is OutcomeStatus.COMPLETED
        assert config_store.get("sync-settings.gistId") == outcome.remote_id
        stored = await backup_store.get(outcome.remote_id)
        assert list(stored["files"]) == ["README"]
        assert notifier.of("success") == ["Created a new backup"]
        assert notifier.active == []

    @pytest.mark.asyncio
    async def test_backup_uploads_snapshot(self, make_service, config_store, backup_store, notifier, write_file):
        write_file("keymap.cson", "'body': {}")
        service = make_service()
        await service.create_backup()

        outcome = await service.backup()

        assert outcome.status is OutcomeStatus.COMPLETED
        assert outcome.url.startswith("file://")
        assert config_store.get("sync-settings.hiddenSettings._lastBackupTime") == outcome.backup_time
        stored = (await backup_store.get(outcome.remote_id))["files"]
        assert set(stored) == {
            "README", "settings.json", "packages.json",
            "keymap.cson", "styles.less", "init.coffee", "snippets.cson",
        }
        settings = json.loads(stored["settings.json"]["content"])
        assert settings["*"]["sync-settings"] == {}
        assert "token-123" not in stored["settings.json"]["content"]
        assert json.loads(stored["packages.json"]["content"]) == {
            "linter": {"version": "1.0.0"},
            "one-dark-ui": {"version": "2.0.0", "theme": True},
        }
        assert stored["keymap.cson"]["content"] == "'body': {}"
        assert notifier.of("success")[-1] == "Your settings were successfully backed up."

    @pytest.mark.asyncio
    async def test_backup_removes_unfamiliar_files(self, make_service, config_store, backup_store):
        remote_id = await make_backup(backup_store, config_store, {"stale.txt": "old", "README": "#"})
        config_store.set("sync-settings.removeUnfamiliarFiles", True)
        config_store.set("sync-settings.extraFilesGlob", ["*.txt"])

        await make_service().backup()

        stored = (await backup_store.get(remote_id))["files"]
        assert "stale.txt" not in stored
        assert "README" in stored

    @pytest.mark.asyncio
    async def test_backup_refuses_config_with_token(self, make_service, config_store, notifier):
        config_store.set("sync-settings.extraFiles", ["config.yaml"])

        outcome = await make_service().backup()

        assert outcome.status is OutcomeStatus.ABORTED
        assert notifier.of("warning") == ["Backup aborted"]
        assert notifier.of("success") == []


class TestCheckForUpdate:
    @pytest.mark.asyncio
    async def test_up_to_date_after_backup(self, make_service, notifier):
        service = make_service()
        await service.create_backup()
        await service.backup()

        outcome = await service.check_for_update()

        assert outcome.status is OutcomeStatus.UP_TO_DATE
        assert not outcome.diff.has_changes
        assert notifier.of("success")[-1] == "Your settings are synchronized."

    @pytest.mark.asyncio
    async def test_update_available(self, make_service, config_store, notifier):
        service = make_service()
        await service.create_backup()
        await service.backup()
        config_store.set("editor.fontSize", 20)

        outcome = await service.check_for_update()

        assert outcome.status is OutcomeStatus.UPDATE_AVAILABLE
        [change] = outcome.diff.settings.updated
        assert (change.key_path, change.value, change.old_value) == ("editor.fontSize", 14, 20)
        assert notifier.of("warning") == ["Your settings are out of date."]
        detail = notifier.messages[-1][2]
        assert "Last Backup:" in detail and "Server Backup:" in detail

    @pytest.mark.asyncio
    async def test_auto_check_is_silent_when_up_to_date(self, make_service, notifier):
        service = make_service()
        await service.create_backup()
        await service.backup()
        before = len(notifier.messages)

        outcome = await service.auto_check()

        assert outcome.status is OutcomeStatus.UP_TO_DATE
        assert len(notifier.messages) == before

    @pytest.mark.asyncio
    async def test_auto_check_disabled(self, make_service, config_store, notifier):
        config_store.set("sync-settings.checkForUpdatedBackup", False)
        assert await make_service().auto_check() is None
        assert notifier.messages == []


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_matches_backup(self, make_service, config_store, extensions, notifier, write_file, config_dir):
        write_file("keymap.cson", "'body': {}")
        service = make_service()
        await service.create_backup()
        backed_up = await service.backup()

        config_store.set("editor.fontSize", 20)
        config_store.set("sync-settings.personalAccessToken", "rotated")
        write_file("keymap.cson", "changed")
        extensions.packages.pop("linter")

        outcome = await service.restore()

        assert outcome.status is OutcomeStatus.COMPLETED
        assert config_store.get("editor.fontSize") == 14
        # blacklisted keys keep their live values
        assert config_store.get("sync-settings.personalAccessToken") == "rotated"
        assert config_store.get("sync-settings.gistId") == backed_up.remote_id
        assert (config_dir / "keymap.cson").read_text() == "'body': {}"
        assert [(d.name, d.version) for d in extensions.installed] == [("linter", "1.0.0")]
        assert extensions.uninstalled == []
        assert notifier.of("success")[-1] == "Your settings were successfully synchronized."
        assert notifier.active == []

    @pytest.mark.asyncio
    async def test_restore_never_writes_outside_config_dir(
        self, make_service, config_store, backup_store, config_dir
    ):
        await make_backup(backup_store, config_store, {
            "..\\evil.sh": "rm -rf ~",
            "nested\\ok.txt": "ok",
        })
        config_store.set("sync-settings.extraFilesGlob", ["**"])

        outcome = await make_service().restore()

        assert outcome.status is OutcomeStatus.COMPLETED
        assert not (config_dir.parent / "evil.sh").exists()
        assert (config_dir / "nested" / "ok.txt").read_text() == "ok"

    @pytest.mark.asyncio
    async def test_forged_blacklisted_keys_never_applied(self, make_service, config_store, backup_store):
        settings = {"*": {
            "editor": {"fontSize": 30},
            "sync-settings": {
                "personalAccessToken": "attacker",
                "gistId": "attacker-gist",
                "_analyticsUserId": "tracking",
            },
        }}
        remote_id = await make_backup(backup_store, config_store, {"settings.json": json.dumps(settings)})

        outcome = await make_service().restore()

        assert outcome.status is OutcomeStatus.COMPLETED
        assert config_store.get("editor.fontSize") == 30
        assert config_store.get("sync-settings.personalAccessToken") == "token-123"
        assert config_store.get("sync-settings.gistId") == remote_id
        assert config_store.get("sync-settings._analyticsUserId") is None

    @pytest.mark.asyncio
    async def test_scoped_settings_restored(self, make_service, config_store, backup_store):
        settings = {"*": {"editor": {"fontSize": 12}}, ".source.python": {"editor": {"tabLength": 4}}}
        await make_backup(backup_store, config_store, {"settings.json": json.dumps(settings)})

        await make_service().restore()

        assert config_store.get("editor.tabLength", scope=".source.python") == 4
        assert config_store.get("editor.tabLength") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("broken", ["settings.json", "packages.json"])
    async def test_parse_error_applies_nothing(
        self, broken, make_service, config_store, backup_store, extensions, notifier, config_dir
    ):
        blobs = {
            "settings.json": json.dumps({"*": {"editor": {"fontSize": 30}}}),
            "packages.json": json.dumps({"minimap": {"version": "4.0"}}),
            "keymap.cson": "'body': {}",
        }
        blobs[broken] = "{broken"
        await make_backup(backup_store, config_store, blobs)
        before = config_store.settings()

        outcome = await make_service().restore()

        assert outcome.status is OutcomeStatus.ABORTED
        [error] = notifier.of("error")
        assert error.startswith(f"Error parsing the file '{broken}'.")
        assert len(notifier.messages) == 1
        assert config_store.settings() == before
        assert extensions.installed == []
        assert not (config_dir / "keymap.cson").exists()

    @pytest.mark.asyncio
    async def test_remove_obsolete_packages(self, make_service, config_store, backup_store, extensions):
        packages = {"linter": {"version": "1.0.0"}}
        await make_backup(backup_store, config_store, {"packages.json": json.dumps(packages)})
        config_store.set("sync-settings.removeObsoletePackages", True)

        await make_service().restore()

        assert extensions.installed == []
        assert [d.name for d in extensions.uninstalled] == ["one-dark-ui"]

    @pytest.mark.asyncio
    async def test_remove_unfamiliar_local_files(self, make_service, config_store, backup_store, write_file):
        local_only = write_file("local-only.txt", "bye")
        await make_backup(backup_store, config_store, {"README": "#"})
        config_store.set("sync-settings.extraFiles", ["local-only.txt"])
        config_store.set("sync-settings.removeUnfamiliarFiles", True)

        outcome = await make_service().restore()

        assert outcome.ok
        assert not local_only.exists()


class TestAbortPaths:
    @pytest.mark.asyncio
    async def test_missing_credential(self, make_service, config_store, notifier, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        config_store.unset("sync-settings.personalAccessToken")
        session = MagicMock()

        outcome = await make_service(store=GistBackupStore(None, session=session)).backup()

        assert outcome.status is OutcomeStatus.NEEDS_CREDENTIAL
        assert outcome.retryable
        assert notifier.of("warning") == ["No personal access token configured"]
        session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_remote_id(self, make_service, config_store, notifier, monkeypatch):
        monkeypatch.delenv("GIST_ID", raising=False)
        config_store.unset("sync-settings.gistId")

        outcome = await make_service().check_for_update()

        assert outcome.status is OutcomeStatus.NEEDS_REMOTE_ID
        assert notifier.of("warning") == ["No backup id configured"]

    @pytest.mark.asyncio
    async def test_unknown_backup_id(self, make_service, notifier):
        outcome = await make_service().restore()

        assert outcome.status is OutcomeStatus.NEEDS_REMOTE_ID
        assert notifier.of("warning") == ["Invalid backup id"]
        assert notifier.active == []

    @pytest.mark.asyncio
    async def test_rejected_credential(self, make_service, notifier):
        outcome = await make_service(store=StubStore(error=AuthError())).check_for_update()
        assert outcome.status is OutcomeStatus.NEEDS_CREDENTIAL
        assert notifier.of("warning") == ["Invalid personal access token"]

    @pytest.mark.asyncio
    async def test_malformed_response(self, make_service, notifier):
        store = StubStore(response={"files": {}, "history": []})
        outcome = await make_service(store=store).check_for_update()
        assert outcome.status is OutcomeStatus.ABORTED
        assert notifier.of("error") == ["Error retrieving your settings."]

    @pytest.mark.asyncio
    async def test_other_errors_reported_once_and_raised(self, make_service, notifier):
        service = make_service(store=StubStore(error=NetworkError("connection reset")))

        with pytest.raises(NetworkError):
            await service.restore()

        assert notifier.of("error") == ["Error restoring settings"]
        assert len(notifier.messages) == 1
        assert notifier.active == []


class TestForkAndView:
    @pytest.mark.asyncio
    async def test_fork(self, make_service, config_store, backup_store, notifier):
        source = await backup_store.create({"files": {"settings.json": {"content": "{}"}}})

        outcome = await make_service().fork(source["id"])

        assert outcome.status is OutcomeStatus.COMPLETED
        assert outcome.remote_id != source["id"]
        assert config_store.get("sync-settings.gistId") == outcome.remote_id
        assert notifier.of("success") == ["Forked successfully"]

    @pytest.mark.asyncio
    async def test_fork_unknown(self, make_service, notifier):
        outcome = await make_service().fork("missing")
        assert outcome.status is OutcomeStatus.NEEDS_REMOTE_ID

    @pytest.mark.asyncio
    async def test_view_diff_is_quiet(self, make_service, config_store, backup_store, notifier):
        await make_backup(backup_store, config_store, {"packages.json": json.dumps({"minimap": {"version": "4.0"}})})
        notifier.messages.clear()

        outcome = await make_service().view_diff()

        assert outcome.status is OutcomeStatus.COMPLETED
        assert list(outcome.diff.packages.added) == ["minimap"]
        assert list(outcome.diff.packages.deleted) == ["linter", "one-dark-ui"]
        assert outcome.backup_time
        assert notifier.messages == []

    def test_backup_url(self, make_service, config_store, monkeypatch):
        monkeypatch.delenv("GIST_ID", raising=False)
        service = make_service()
        assert service.backup_url().endswith("/abc.json")
        config_store.unset("sync-settings.gistId")
        assert service.backup_url() is None
