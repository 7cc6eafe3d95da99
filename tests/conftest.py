"""Shared test fixtures and utilities."""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from sync_settings.config_store import FileConfigStore
from sync_settings.context import SyncContext
from sync_settings.core import PackageDescriptor
from sync_settings.errors import PackageOperationError
from sync_settings.remote import FilesystemBackupStore
from sync_settings.service import SyncDeps, SyncService


class RecordingProgress:
    def __init__(self, notifier: "RecordingNotifier", message: str):
        self.notifier = notifier
        self.message = message
        self.dismissed = False

    def dismiss(self):
        assert not self.dismissed, f"progress dismissed twice: {self.message}"
        self.dismissed = True
        self.notifier.active.remove(self)


class RecordingNotifier:
    """Notifier that records every message by level."""

    def __init__(self):
        self.messages: List[tuple] = []
        self.active: List[RecordingProgress] = []
        self.max_active = 0

    def _record(self, level, message, detail=None):
        self.messages.append((level, message, detail))

    def info(self, message, detail=None):
        self._record("info", message, detail)

    def success(self, message, detail=None):
        self._record("success", message, detail)

    def warning(self, message, detail=None):
        self._record("warning", message, detail)

    def error(self, message, detail=None, dismissable=False):
        self._record("error", message, detail)

    def progress(self, message):
        handle = RecordingProgress(self, message)
        self.active.append(handle)
        self.max_active = max(self.max_active, len(self.active))
        return handle

    def of(self, level) -> List[str]:
        return [m for lvl, m, _ in self.messages if lvl == level]


class FakeExtensionManager:
    """In-memory extension manager.

    ``packages`` maps name -> package.json metadata.
    """

    def __init__(self, root: Path, packages: Optional[Dict[str, dict]] = None, bundled=()):
        self.root = Path(root)
        self.packages: Dict[str, dict] = {}
        self.bundled = set(bundled)
        self.installed: List[PackageDescriptor] = []
        self.uninstalled: List[PackageDescriptor] = []
        self.fail = set()
        for name, meta in (packages or {}).items():
            self.add(name, **meta)

    def add(self, name, **meta):
        path = self.root / name
        path.mkdir(parents=True, exist_ok=True)
        self.packages[name] = {"name": name, **meta}

    def get_available_package_metadata(self):
        return [self.packages[name] for name in sorted(self.packages)]

    def get_available_package_paths(self):
        return [str(self.root / name) for name in sorted(self.packages)]

    def get_available_package_names(self):
        return sorted(self.packages)

    def resolve_package_path(self, name):
        return str(self.root / name) if name in self.packages else None

    def is_bundled_package(self, name):
        return name in self.bundled

    async def install(self, descriptor):
        if descriptor.name in self.fail:
            raise PackageOperationError("Installing", descriptor.name, "boom")
        self.installed.append(descriptor)

    async def uninstall(self, descriptor):
        if descriptor.name in self.fail:
            raise PackageOperationError("Removing", descriptor.name, "boom")
        self.uninstalled.append(descriptor)
        self.packages.pop(descriptor.name, None)


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "atom"
    path.mkdir()
    return path


@pytest.fixture
def sync_ctx(config_dir):
    return SyncContext(config_dir)


@pytest.fixture
def config_store(sync_ctx):
    """Config store with every file category enabled and no extras."""
    store = FileConfigStore(sync_ctx.config_path, sync_ctx.lock_path)
    store.set_scope("*", {
        "editor": {"fontSize": 14, "tabLength": 2},
        "core": {"themes": ["one-dark-ui", "one-dark-syntax"]},
        "sync-settings": {"personalAccessToken": "token-123", "gistId": "abc"},
    })
    return store


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def extensions(tmp_path):
    return FakeExtensionManager(tmp_path / "packages", {
        "linter": {"version": "1.0.0"},
        "one-dark-ui": {"version": "2.0.0", "theme": "ui"},
    })


@pytest.fixture
def backup_store(tmp_path):
    return FilesystemBackupStore(tmp_path / "backups")


@pytest.fixture
def make_service(sync_ctx, config_store, extensions, notifier, backup_store):
    """Factory fixture wiring a service against the filesystem store."""
    def _make(store=None):
        deps = SyncDeps(
            ctx=sync_ctx,
            config=config_store,
            extensions=extensions,
            notifier=notifier,
            store_factory=lambda token: store or backup_store,
        )
        return SyncService(deps)
    return _make


@pytest.fixture
def write_file(config_dir):
    """Factory fixture to write files relative to the config dir."""
    def _write(path: str, content: str = "test content"):
        file_path = config_dir / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path
    return _write
