"""Host extension manager.

Enumerates installed packages from the editor's packages directory and
installs or removes them through the ``apm`` command line tool.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .core import PackageDescriptor
from .errors import PackageOperationError

logger = logging.getLogger(__name__)

PACKAGE_MANIFEST = "package.json"


class ExtensionManager(Protocol):
    """Access to installed extensions."""

    def get_available_package_metadata(self) -> List[Dict[str, Any]]:
        """Metadata of every available package, aligned with the path list."""
        ...

    def get_available_package_paths(self) -> List[str]:
        ...

    def get_available_package_names(self) -> List[str]:
        ...

    def resolve_package_path(self, name: str) -> Optional[str]:
        ...

    def is_bundled_package(self, name: str) -> bool:
        ...

    async def install(self, descriptor: PackageDescriptor) -> None:
        """Install a package; raises PackageOperationError on failure."""
        ...

    async def uninstall(self, descriptor: PackageDescriptor) -> None:
        """Remove a package; raises PackageOperationError on failure."""
        ...


class DirectoryExtensionManager:
    """Extension manager backed by package directories and the apm CLI.

    Each immediate subdirectory holding a ``package.json`` is a package.
    Packages found under ``bundled_dir`` ship with the editor.
    """

    def __init__(
        self,
        packages_dir: Path,
        bundled_dir: Optional[Path] = None,
        apm_command: str = "apm",
    ):
        self.packages_dir = Path(packages_dir)
        self.bundled_dir = Path(bundled_dir) if bundled_dir else None
        self.apm_command = apm_command

    def _search_dirs(self) -> Iterable[Path]:
        if self.bundled_dir is not None:
            yield self.bundled_dir
        yield self.packages_dir

    def _package_dirs(self) -> List[Path]:
        dirs: List[Path] = []
        for base in self._search_dirs():
            if not base.is_dir():
                continue
            for child in sorted(base.iterdir()):
                if (child / PACKAGE_MANIFEST).is_file():
                    dirs.append(child)
        return dirs

    def _read_manifest(self, package_dir: Path) -> Dict[str, Any]:
        with (package_dir / PACKAGE_MANIFEST).open(encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{package_dir / PACKAGE_MANIFEST} is not an object")
        data.setdefault("name", package_dir.name)
        return data

    def get_available_package_paths(self) -> List[str]:
        return [str(d) for d in self._package_dirs()]

    def get_available_package_names(self) -> List[str]:
        return [d.name for d in self._package_dirs()]

    def get_available_package_metadata(self) -> List[Dict[str, Any]]:
        metadata: List[Dict[str, Any]] = []
        for package_dir in self._package_dirs():
            try:
                metadata.append(self._read_manifest(package_dir))
            except (OSError, ValueError) as e:
                # keep alignment with the path list
                logger.warning(f"Could not read metadata for {package_dir.name}: {e}")
                metadata.append({})
        return metadata

    def resolve_package_path(self, name: str) -> Optional[str]:
        for base in reversed(list(self._search_dirs())):
            candidate = base / name
            if (candidate / PACKAGE_MANIFEST).is_file():
                return str(candidate)
        return None

    def is_bundled_package(self, name: str) -> bool:
        if self.bundled_dir is None:
            return False
        return (self.bundled_dir / name / PACKAGE_MANIFEST).is_file()

    async def _run_apm(self, action: str, name: str, *args: str) -> None:
        env = os.environ.copy()
        env["ATOM_HOME"] = str(self.packages_dir.parent)
        try:
            proc = await asyncio.create_subprocess_exec(
                self.apm_command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise PackageOperationError(action, name, str(e)) from e

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            detail = (stderr or stdout).decode("utf-8", errors="replace").strip()
            raise PackageOperationError(action, name, detail)
        logger.debug("%s %s: %s", action, name, stdout.decode("utf-8", errors="replace").strip())

    async def install(self, descriptor: PackageDescriptor) -> None:
        target = descriptor.name
        if descriptor.version:
            target = f"{descriptor.name}@{descriptor.version}"
        logger.info(f"Installing {descriptor.kind} {descriptor.name}...")
        await self._run_apm("Installing", descriptor.name, "install", target)
        logger.info(f"Installed {descriptor.kind} {descriptor.name}")

    async def uninstall(self, descriptor: PackageDescriptor) -> None:
        logger.info(f"Removing {descriptor.kind} {descriptor.name}...")
        await self._run_apm("Removing", descriptor.name, "uninstall", descriptor.name)
        logger.info(f"Removed {descriptor.kind} {descriptor.name}")
