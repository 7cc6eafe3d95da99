"""Install and remove packages to match a backup."""

from typing import List, Mapping

from .batch import BatchExecutor
from .constants import MAX_CONCURRENCY
from .core import BatchResult, PackageDescriptor, PackageInfo
from .extensions import ExtensionManager
from .notify import Notifier


def missing_packages(
    backup: Mapping[str, PackageInfo],
    local: Mapping[str, PackageInfo],
) -> List[PackageDescriptor]:
    """Backup packages absent locally or installed from a different kind of source."""
    missing = []
    for name in sorted(backup):
        info = backup[name]
        installed = local.get(name)
        if installed is None or (info.install_source is None) != (installed.install_source is None):
            missing.append(info.describe(name))
    return missing


def obsolete_packages(
    backup: Mapping[str, PackageInfo],
    local: Mapping[str, PackageInfo],
) -> List[PackageDescriptor]:
    """Local packages the backup does not have."""
    return [local[name].describe(name) for name in sorted(local) if name not in backup]


def install_target(descriptor: PackageDescriptor, install_latest_version: bool = False) -> PackageDescriptor:
    """Descriptor actually handed to the extension manager.

    With ``install_latest_version`` the pinned version is dropped. A package
    with an install source is installed from that source, unpinned.
    """
    if install_latest_version:
        return descriptor.model_copy(update={"version": None})
    if descriptor.install_source is not None:
        return descriptor.model_copy(update={"name": descriptor.install_source.source, "version": None})
    return descriptor


def _concurrency(count: int) -> int:
    return max(1, min(count, MAX_CONCURRENCY))


async def install_missing_packages(
    backup: Mapping[str, PackageInfo],
    local: Mapping[str, PackageInfo],
    extensions: ExtensionManager,
    notifier: Notifier,
    install_latest_version: bool = False,
) -> BatchResult:
    """Install every backup package missing locally."""
    items = missing_packages(backup, local)

    async def install(descriptor: PackageDescriptor) -> None:
        await extensions.install(install_target(descriptor, install_latest_version))

    executor = BatchExecutor("installing", notifier, concurrency=_concurrency(len(items)))
    return await executor.run(items, install)


async def remove_obsolete_packages(
    backup: Mapping[str, PackageInfo],
    local: Mapping[str, PackageInfo],
    extensions: ExtensionManager,
    notifier: Notifier,
) -> BatchResult:
    """Remove every local package the backup does not list."""
    items = obsolete_packages(backup, local)

    executor = BatchExecutor("removing", notifier, concurrency=_concurrency(len(items)))
    return await executor.run(items, extensions.uninstall)
