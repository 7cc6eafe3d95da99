"""Base protocol for remote backup stores."""

from typing import Any, Dict, Optional, Protocol

Response = Dict[str, Any]


class BackupStore(Protocol):
    """
    Protocol for remote backup stores.

    A backup is a versioned set of named text files. Responses are plain
    dicts in the GitHub Gist shape::

        {"id": ..., "html_url": ..., "files": {name: {"content": ...}},
         "history": [{"committed_at": ...}, ...]}

    with the newest revision first in ``history``.
    """

    # Whether operations need a personal access token
    requires_credential: bool

    async def create(self, spec: Dict[str, Any]) -> Response:
        """
        Create a new backup.

        Args:
            spec: ``{"description": str, "public": bool, "files": {...}}``

        Returns:
            Response carrying the new ``id``
        """
        ...

    async def get(self, remote_id: str) -> Response:
        """
        Fetch the latest revision of a backup.

        Raises:
            NotFoundError: If no backup has this id
            AuthError: If the credential is rejected
        """
        ...

    async def update(
        self,
        remote_id: str,
        description: Optional[str],
        files: Dict[str, Optional[Dict[str, Any]]],
    ) -> Response:
        """
        Create a new revision.

        Files not named in ``files`` are kept. A file mapped to ``None`` is
        deleted from the backup.

        Returns:
            Response carrying ``html_url`` and ``history``
        """
        ...

    async def delete(self, remote_id: str) -> None:
        ...

    async def fork(self, remote_id: str) -> Response:
        """Copy someone's backup into a new one owned by the caller."""
        ...

    def url_for(self, remote_id: str) -> str:
        """Location a user can open to view the backup."""
        ...
