"""Core data models for sync-settings.

Snapshots and diffs:
--------------------
A ``StateSnapshot`` captures settings, packages and files from one side
(the local machine or a remote backup). Each category is either absent
(``None``: not synced, or not present in the backup) or a mapping, possibly
empty. Absence and emptiness drive different diff branches, so the
distinction is preserved everywhere.

A ``DiffResult`` is derived from two snapshots, consumed immediately by the
caller and discarded.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .keypath import sort_mapping


# ============= Packages =============

class InstallSource(BaseModel):
    """Where a package was installed from when it isn't the package index."""

    type: str = "git"
    source: str


class PackageInfo(BaseModel):
    """Installed package as stored in packages.json (keyed by name)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: Optional[str] = None
    theme: bool = False
    install_source: Optional[InstallSource] = Field(default=None, alias="apmInstallSource")

    @field_validator("theme", mode="before")
    @classmethod
    def _coerce_theme(cls, value: Any) -> bool:
        # package metadata uses "ui"/"syntax" strings for themes
        return bool(value)

    @field_validator("install_source", mode="before")
    @classmethod
    def _coerce_install_source(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"type": "git", "source": value}
        return value

    def to_blob(self) -> Dict[str, Any]:
        """Serialize in the packages.json shape (omitting defaults)."""
        data: Dict[str, Any] = {"version": self.version}
        if self.theme:
            data["theme"] = True
        if self.install_source:
            data["apmInstallSource"] = self.install_source.model_dump()
        return data

    def describe(self, name: str) -> "PackageDescriptor":
        return PackageDescriptor(name=name, **self.model_dump())


class PackageDescriptor(PackageInfo):
    """Package info carrying its name, the unit of install/uninstall."""

    name: str

    @property
    def kind(self) -> str:
        return "theme" if self.theme else "package"


# ============= Files =============

class FileEntry(BaseModel):
    """A synced file: absolute path on this machine plus its text."""

    path: str
    content: str


# ============= Snapshots =============

class StateSnapshot(BaseModel):
    """Normalized capture of settings, packages and files from one side."""

    model_config = ConfigDict(frozen=True)

    settings: Optional[Dict[str, Any]] = None
    packages: Optional[Dict[str, PackageInfo]] = None
    files: Optional[Dict[str, FileEntry]] = None

    @classmethod
    def build(
        cls,
        settings: Optional[Dict[str, Any]] = None,
        packages: Optional[Mapping[str, PackageInfo]] = None,
        files: Optional[Mapping[str, FileEntry]] = None,
    ) -> "StateSnapshot":
        """Finalize collected parts into a snapshot.

        Packages and files are sorted by key; an empty file map becomes
        absent.
        """
        return cls(
            settings=settings,
            packages=sort_mapping(packages) if packages is not None else None,
            files=sort_mapping(files) if files else None,
        )


# ============= Diffs =============

class SettingChange(BaseModel):
    """A single differing settings leaf."""

    key_path: str
    value: Any = None
    old_value: Any = None
    scope: str = "*"


class SettingsDiff(BaseModel):
    added: Optional[List[SettingChange]] = None
    updated: Optional[List[SettingChange]] = None
    deleted: Optional[List[SettingChange]] = None


class PackageUpdate(BaseModel):
    """Both sides of a package that differs, for reinstall decisions."""

    backup: PackageInfo
    local: PackageInfo


class PackagesDiff(BaseModel):
    added: Optional[Dict[str, PackageInfo]] = None
    updated: Optional[Dict[str, PackageUpdate]] = None
    deleted: Optional[Dict[str, PackageInfo]] = None


class FilesDiff(BaseModel):
    added: Optional[Dict[str, FileEntry]] = None
    updated: Optional[Dict[str, FileEntry]] = None  # content holds the patch
    deleted: Optional[Dict[str, FileEntry]] = None


class DiffResult(BaseModel):
    """Result of comparing a local snapshot against a backup snapshot."""

    settings: Optional[SettingsDiff] = None
    packages: Optional[PackagesDiff] = None
    files: Optional[FilesDiff] = None

    @property
    def has_changes(self) -> bool:
        """True when any sub-diff is present."""
        return bool(self.settings or self.packages or self.files)

    def summary(self) -> str:
        """Get human-readable summary."""
        if not self.has_changes:
            return "No differences"
        parts = []
        for label, sub in (("settings", self.settings), ("packages", self.packages), ("files", self.files)):
            if sub is None:
                continue
            counts = []
            for bucket, sign in (("added", "+"), ("updated", "~"), ("deleted", "-")):
                entries = getattr(sub, bucket)
                if entries:
                    counts.append(f"{sign}{len(entries)}")
            parts.append(f"{label} {' '.join(counts)}")
        return ", ".join(parts)


# ============= Batch Results =============

class BatchResult(BaseModel):
    """Aggregate outcome of a batch of package operations."""

    action: str
    succeeded: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed


# ============= Outcomes =============

class OutcomeStatus(str, Enum):
    """How a sync operation ended."""

    COMPLETED = "completed"
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    NEEDS_CREDENTIAL = "needs_credential"
    NEEDS_REMOTE_ID = "needs_remote_id"
    ABORTED = "aborted"


class SyncOutcome(BaseModel):
    """Result of backup/restore/check, letting the caller decide on retries."""

    status: OutcomeStatus
    message: str = ""
    detail: Optional[str] = None
    diff: Optional[DiffResult] = None
    backup_time: Optional[str] = None
    url: Optional[str] = None
    remote_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (
            OutcomeStatus.COMPLETED,
            OutcomeStatus.UP_TO_DATE,
            OutcomeStatus.UPDATE_AVAILABLE,
        )

    @property
    def retryable(self) -> bool:
        """True when fixing configuration and calling again may succeed."""
        return self.status in (OutcomeStatus.NEEDS_CREDENTIAL, OutcomeStatus.NEEDS_REMOTE_ID)
