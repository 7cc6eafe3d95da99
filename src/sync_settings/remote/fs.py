"""Filesystem backup store for offline use and testing."""

import json
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import NotFoundError, RemoteError
from ..utils import atomic_write_text, get_iso_timestamp
from .base import Response


class FilesystemBackupStore:
    """
    Local directory store with the same response shapes as a Gist.

    Each backup is one JSON document: base_dir/<id>.json
    """

    requires_credential = False

    def __init__(self, base_dir: Path):
        """
        Initialize filesystem store.

        Args:
            base_dir: Directory holding backup documents
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, remote_id: str) -> Path:
        if not remote_id or "/" in remote_id or remote_id.startswith("."):
            raise NotFoundError()
        return self.base_dir / f"{remote_id}.json"

    def _load(self, remote_id: str) -> Dict[str, Any]:
        path = self._path(remote_id)
        if not path.exists():
            raise NotFoundError()
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise RemoteError(f"Corrupt backup document {path}: {e}") from e

    def _save(self, doc: Dict[str, Any]) -> None:
        atomic_write_text(self._path(doc["id"]), json.dumps(doc, indent=2, ensure_ascii=False))

    def _response(self, doc: Dict[str, Any]) -> Response:
        return {**doc, "html_url": self.url_for(doc["id"])}

    def _commit(self, doc: Dict[str, Any]) -> None:
        history = doc.setdefault("history", [])
        history.insert(0, {"version": uuid.uuid4().hex, "committed_at": get_iso_timestamp()})

    async def create(self, spec: Dict[str, Any]) -> Response:
        doc = {
            "id": uuid.uuid4().hex,
            "description": spec.get("description", ""),
            "public": bool(spec.get("public", False)),
            "files": {
                name: {"filename": name, "content": entry["content"]}
                for name, entry in (spec.get("files") or {}).items()
                if entry and entry.get("content") is not None
            },
            "history": [],
        }
        self._commit(doc)
        self._save(doc)
        return self._response(doc)

    async def get(self, remote_id: str) -> Response:
        return self._response(self._load(remote_id))

    async def update(
        self,
        remote_id: str,
        description: Optional[str],
        files: Dict[str, Optional[Dict[str, Any]]],
    ) -> Response:
        doc = self._load(remote_id)
        if description is not None:
            doc["description"] = description
        stored = doc.setdefault("files", {})
        for name, entry in files.items():
            if entry is None or entry.get("content") is None:
                stored.pop(name, None)
            else:
                stored[name] = {"filename": name, "content": entry["content"]}
        self._commit(doc)
        self._save(doc)
        return self._response(doc)

    async def delete(self, remote_id: str) -> None:
        path = self._path(remote_id)
        if not path.exists():
            raise NotFoundError()
        path.unlink()

    async def fork(self, remote_id: str) -> Response:
        source = self._load(remote_id)
        doc = {
            **source,
            "id": uuid.uuid4().hex,
            "fork_of": {"id": remote_id},
            "history": [],
        }
        self._commit(doc)
        self._save(doc)
        return self._response(doc)

    def url_for(self, remote_id: str) -> str:
        return self._path(remote_id).absolute().as_uri()
