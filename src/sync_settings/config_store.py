"""Host configuration store.

The store holds the editor's settings as a tree per scope selector:
``"*"`` is the global scope, other keys (``".source.python"``) hold
scoped overrides. Our own options live in the global scope under the
``sync-settings`` namespace.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

import portalocker
import yaml

from .constants import GLOBAL_SCOPE
from .keypath import (
    deep_clone,
    delete_value_at_key_path,
    get_value_at_key_path,
    has_key_path,
    set_value_at_key_path,
)
from .utils import atomic_write_text

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[str, Any, Any], None]


class ConfigStore(Protocol):
    """Typed access to the host configuration by key path."""

    def get(self, key_path: str, scope: str = GLOBAL_SCOPE) -> Any:
        """Return the value at ``key_path`` (None when unset)."""
        ...

    def set(self, key_path: str, value: Any, scope: str = GLOBAL_SCOPE) -> None:
        ...

    def unset(self, key_path: str, scope: str = GLOBAL_SCOPE) -> None:
        ...

    def settings(self) -> Dict[str, Any]:
        """Deep copy of the global settings tree."""
        ...

    def scoped_settings(self) -> Dict[str, Dict[str, Any]]:
        """Deep copy of every non-global scope's overrides."""
        ...

    def set_scope(self, scope: str, tree: Dict[str, Any]) -> None:
        """Replace a whole scope's tree."""
        ...

    def on_did_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register ``callback(key_path, new, old)``; returns a disposer."""
        ...


class FileConfigStore:
    """Config store persisted as a YAML file with locked atomic writes."""

    def __init__(self, path: Path, lock_path: Optional[Path] = None):
        self.path = Path(path)
        self.lock_path = Path(lock_path) if lock_path else self.path.with_name(f".{self.path.name}.lock")
        self._callbacks: List[ChangeCallback] = []
        self._data: Dict[str, Dict[str, Any]] = {}
        self.reload()

    def reload(self) -> None:
        """Re-read the file from disk."""
        if not self.path.exists():
            self._data = {GLOBAL_SCOPE: {}}
            return

        with self.path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration at {self.path} is not a mapping")

        # Files written without scopes hold the global tree directly
        if GLOBAL_SCOPE not in data:
            data = {GLOBAL_SCOPE: data}
        self._data = data

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = yaml.safe_dump(self._data, default_flow_style=False, sort_keys=False, allow_unicode=True)
        with portalocker.Lock(str(self.lock_path), "w", timeout=30):
            atomic_write_text(self.path, text)

    def _scope_tree(self, scope: str) -> Dict[str, Any]:
        return self._data.setdefault(scope, {})

    def _notify(self, key_path: str, new: Any, old: Any) -> None:
        for callback in list(self._callbacks):
            callback(key_path, new, old)

    def get(self, key_path: str, scope: str = GLOBAL_SCOPE) -> Any:
        if not key_path:
            return deep_clone(self._data.get(scope, {}))
        if scope != GLOBAL_SCOPE:
            scoped = self._data.get(scope)
            if has_key_path(scoped, key_path):
                return deep_clone(get_value_at_key_path(scoped, key_path))
        return deep_clone(get_value_at_key_path(self._data.get(GLOBAL_SCOPE), key_path))

    def set(self, key_path: str, value: Any, scope: str = GLOBAL_SCOPE) -> None:
        if not key_path:
            self.set_scope(scope, value)
            return
        old = self.get(key_path, scope)
        set_value_at_key_path(self._scope_tree(scope), key_path, deep_clone(value))
        self._save()
        self._notify(key_path, value, old)

    def unset(self, key_path: str, scope: str = GLOBAL_SCOPE) -> None:
        old = self.get(key_path, scope)
        if delete_value_at_key_path(self._data.get(scope), key_path):
            self._save()
            self._notify(key_path, None, old)

    def settings(self) -> Dict[str, Any]:
        return deep_clone(self._data.get(GLOBAL_SCOPE, {}))

    def scoped_settings(self) -> Dict[str, Dict[str, Any]]:
        return {
            scope: deep_clone(tree)
            for scope, tree in self._data.items()
            if scope != GLOBAL_SCOPE
        }

    def set_scope(self, scope: str, tree: Dict[str, Any]) -> None:
        if not isinstance(tree, dict):
            raise ValueError(f"Settings for scope '{scope}' must be a mapping")
        old = deep_clone(self._data.get(scope, {}))
        self._data[scope] = deep_clone(tree)
        self._save()
        logger.debug("Replaced settings for scope %s", scope)
        self._notify("", tree, old)

    def on_did_change(self, callback: ChangeCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def dispose() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return dispose
