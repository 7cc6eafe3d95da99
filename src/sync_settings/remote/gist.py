"""GitHub Gist backup store."""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from ..errors import AuthError, NetworkError, NotFoundError, RemoteError
from .base import Response

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GIST_WEB_URL = "https://gist.github.com"


def error_message(resp: requests.Response) -> str:
    """Message GitHub put in an error body, or the HTTP reason."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.reason or f"HTTP {resp.status_code}"


class GistBackupStore:
    """
    Backup store on the GitHub Gist REST API.

    Calls are made with ``requests`` on a worker thread so the event loop
    keeps running while waiting on the network.
    """

    requires_credential = True

    def __init__(
        self,
        token: Optional[str],
        api_url: str = GITHUB_API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize Gist store.

        Args:
            token: Personal access token with the ``gist`` scope
            api_url: GitHub API base URL (GitHub Enterprise uses its own)
            session: Requests session (injected in tests)
            timeout: Per-request timeout in seconds
        """
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.api_url}{path}"
        try:
            resp = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise NetworkError(f"Cannot connect to {self.api_url}: {e}") from e

        if resp.status_code == 404:
            raise NotFoundError()
        if resp.status_code in (401, 403):
            raise AuthError(error_message(resp))
        if resp.status_code >= 500:
            raise NetworkError(f"GitHub error {resp.status_code}: {error_message(resp)}")
        if resp.status_code >= 400:
            raise RemoteError(error_message(resp))

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            content_type = resp.headers.get("content-type", "unknown")
            raise RemoteError(f"Expected JSON from {url} but got {content_type}") from e

    def _fetch_raw(self, url: str) -> str:
        try:
            resp = self.session.get(url, headers=self._headers(), timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Cannot download {url}: {e}") from e
        return resp.text

    def _get(self, remote_id: str) -> Response:
        gist = self._request("GET", f"/gists/{remote_id}")
        # files over 1 MB come back truncated with a raw_url
        for name, entry in (gist.get("files") or {}).items():
            if isinstance(entry, dict) and entry.get("truncated") and entry.get("raw_url"):
                logger.debug(f"Downloading truncated file {name}")
                entry["content"] = self._fetch_raw(entry["raw_url"])
        return gist

    async def create(self, spec: Dict[str, Any]) -> Response:
        return await asyncio.to_thread(self._request, "POST", "/gists", spec)

    async def get(self, remote_id: str) -> Response:
        return await asyncio.to_thread(self._get, remote_id)

    async def update(
        self,
        remote_id: str,
        description: Optional[str],
        files: Dict[str, Optional[Dict[str, Any]]],
    ) -> Response:
        payload: Dict[str, Any] = {"files": files}
        if description is not None:
            payload["description"] = description
        return await asyncio.to_thread(self._request, "PATCH", f"/gists/{remote_id}", payload)

    async def delete(self, remote_id: str) -> None:
        await asyncio.to_thread(self._request, "DELETE", f"/gists/{remote_id}")

    async def fork(self, remote_id: str) -> Response:
        return await asyncio.to_thread(self._request, "POST", f"/gists/{remote_id}/forks")

    def url_for(self, remote_id: str) -> str:
        return f"{GIST_WEB_URL}/{remote_id}"
