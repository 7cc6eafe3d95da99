"""Editor context for resolving config directory paths."""

import os
from pathlib import Path
from typing import List, Optional, Union

from .constants import CONFIG_FILE, CONFIG_LOCK_FILE
from .ignore import GlobSpec

HOME_ENV = "ATOM_HOME"


def default_config_dir() -> Path:
    """Editor config directory: $ATOM_HOME or ~/.atom."""
    env_home = os.environ.get(HOME_ENV)
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".atom"


class SyncContext:
    """Resolves the well-known files inside the editor config directory."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir or default_config_dir()).resolve()

    @property
    def config_path(self) -> Path:
        """Main configuration file (holds the credential, never synced as a file)."""
        return self.config_dir / CONFIG_FILE

    @property
    def lock_path(self) -> Path:
        return self.config_dir / CONFIG_LOCK_FILE

    @property
    def packages_dir(self) -> Path:
        return self.config_dir / "packages"

    @property
    def keymap_path(self) -> Path:
        return self._first_existing("keymap.json", "keymap.cson")

    @property
    def styles_path(self) -> Path:
        return self.config_dir / "styles.less"

    @property
    def init_script_path(self) -> Path:
        return self._first_existing("init.js", "init.coffee")

    @property
    def snippets_path(self) -> Path:
        return self._first_existing("snippets.json", "snippets.cson")

    def _first_existing(self, preferred: str, fallback: str) -> Path:
        candidate = self.config_dir / preferred
        if candidate.exists():
            return candidate
        return self.config_dir / fallback

    def resolve(self, name: Union[str, Path]) -> Path:
        """Absolute path of a config-dir relative name."""
        return (self.config_dir / name).resolve()

    def contains(self, rel_path: str) -> bool:
        """Check that a relative POSIX path stays inside the config dir.

        Absolute paths and ``..`` segments are refused outright, then the
        resolved target must still sit under ``config_dir``.
        """
        if not rel_path or not rel_path.strip():
            return False
        if rel_path.startswith(("/", "\\")) or ".." in rel_path.split("/"):
            return False
        try:
            self.resolve(rel_path).relative_to(self.config_dir)
        except ValueError:
            return False
        return True

    def iter_files(self, include: GlobSpec, exclude: Optional[GlobSpec] = None) -> List[str]:
        """List config-dir relative POSIX paths matching ``include``.

        Walks recursively, dotfiles included, files only. Directories that
        ``exclude`` rules out entirely are not traversed.

        Returns:
            Sorted list of relative paths
        """
        matches: List[str] = []
        root = self.config_dir
        if not root.exists():
            return matches
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            if exclude is not None:
                dirnames[:] = [
                    d for d in dirnames
                    if exclude.should_traverse(f"{rel_dir}/{d}" if rel_dir != "." else d)
                ]
            for name in filenames:
                rel = f"{rel_dir}/{name}" if rel_dir != "." else name
                if not include.matches(rel):
                    continue
                if exclude is not None and exclude.matches(rel):
                    continue
                matches.append(rel)
        return sorted(matches)
