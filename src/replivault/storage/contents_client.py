# Storage - Repository Contents API Client
#
# Thin httpx client for a GitHub-style "file contents" endpoint:
#   GET    /repos/{owner}/{repo}/contents/{path}?ref={branch}
#   PUT    /repos/{owner}/{repo}/contents/{path}   (create / update)
#
# Updates must carry the blob sha of the committed content
# they replace; the API rejects them (409) if the file moved on.
#
# Every request has an explicit timeout. Only GETs are retried (bounded,
# exponential backoff, network-level failures only). PUTs are
# never retried: a whole-file replacement retried blindly can clobber
# another writer's commit.

import base64
import binascii
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..core.errors import ConflictFailure, NetworkFailure, SerializationFailure

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"
USER_AGENT = "replivault/0.1"

# Retry configuration (GET only)
MAX_RETRIES = 3
INITIAL_BACKOFF_SEC = 1.0
BACKOFF_MULTIPLIER = 2.0
REQUEST_TIMEOUT_SEC = 15.0

# Status codes the contents API uses for a stale or missing sha
_CONFLICT_STATUSES = (409, 422)


@dataclass
class CommitIdentity:
    name: str
    email: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "email": self.email}


@dataclass
class RemoteFile:
    """A file fetched from the contents endpoint."""

    path: str
    sha: str
    content: str  # decoded UTF-8 text
    size: int = 0


class ContentsClient:
    """Client for one repository branch on a contents API.

    Usage::

        client = ContentsClient("octo", "secrets", token="ghp_...")
        remote = client.get_file("vault.json")    # None if absent
        sha = client.put_file("vault.json", text, "Update vault",
                              sha=client.get_sha("vault.json"))
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        branch: str = "main",
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = REQUEST_TIMEOUT_SEC,
        max_retries: int = MAX_RETRIES,
        identity: Optional[CommitIdentity] = None,
        backoff: float = INITIAL_BACKOFF_SEC,
    ):
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._identity = identity
        self._backoff = backoff

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_file(self, path: str) -> Optional[RemoteFile]:
        """Fetch and decode a file. Returns None when the API answers 404."""
        data = self._get_contents(path)
        if data is None:
            return None
        encoding = data.get("encoding", "base64")
        if encoding != "base64":
            raise SerializationFailure(f"unsupported content encoding: {encoding}")
        try:
            raw = base64.b64decode(data.get("content", "").replace("\n", ""), validate=True)
            text = raw.decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise SerializationFailure(f"cannot decode {path}: {exc}") from exc

        return RemoteFile(
            path=data.get("path", path),
            sha=data["sha"],
            content=text,
            size=data.get("size", len(raw)),
        )

    def get_sha(self, path: str) -> Optional[str]:
        """Blob sha of a file, without decoding its content. None when absent."""
        data = self._get_contents(path)
        return data["sha"] if data is not None else None

    def put_file(
        self,
        path: str,
        content: str,
        message: str,
        sha: Optional[str] = None,
    ) -> str:
        """Create (no sha) or update (sha of the replaced blob) a file.

        Returns:
            The sha of the newly committed blob.

        Raises:
            ConflictFailure: The API rejected the sha (someone else committed).
            NetworkFailure: Transport error, timeout, or other error status.
        """
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha
        if self._identity:
            body["author"] = self._identity.to_dict()
            body["committer"] = self._identity.to_dict()

        resp = self._request("PUT", self._contents_path(path), json=body)
        if resp.status_code in _CONFLICT_STATUSES:
            raise ConflictFailure(
                f"remote {path} changed since it was read "
                f"(HTTP {resp.status_code}); reload before saving again"
            )
        self._raise_for_status(resp, f"PUT {path}")
        return self._json(resp).get("content", {}).get("sha", "")

    def get_repository(self) -> Dict[str, Any]:
        """Fetch repository metadata; used to check reachability and auth."""
        resp = self._request("GET", f"/repos/{self.owner}/{self.repo}")
        self._raise_for_status(resp, "GET repository")
        return self._json(resp)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _contents_path(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{path.lstrip('/')}"

    def _get_contents(self, path: str) -> Optional[Dict[str, Any]]:
        resp = self._request("GET", self._contents_path(path), params={"ref": self.branch})
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, f"GET {path}")
        data = self._json(resp)
        if "sha" not in data:
            raise SerializationFailure(f"remote response for {path} has no sha")
        return data

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Execute an HTTP request.

        GETs are retried on network errors, 429 and 5xx with exponential
        backoff. Other methods get exactly one attempt.
        """
        url = f"{self._base_url}{path}"
        attempts = self._max_retries if method == "GET" else 1
        backoff = self._backoff
        last_exc: Optional[NetworkFailure] = None

        for attempt in range(1, attempts + 1):
            try:
                resp = httpx.request(
                    method,
                    url,
                    headers=self._build_headers(),
                    params=params,
                    json=json,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as exc:
                last_exc = NetworkFailure(
                    f"{method} {path} timed out after {self._timeout}s", timeout=True
                )
                last_exc.__cause__ = exc
            except httpx.HTTPError as exc:
                last_exc = NetworkFailure(f"{method} {path} failed: {exc}")
                last_exc.__cause__ = exc
            else:
                logger.debug("%s %s -> %d", method, path, resp.status_code)
                if resp.status_code == 429 or resp.status_code >= 500:
                    last_exc = NetworkFailure(
                        f"{method} {path} returned HTTP {resp.status_code}",
                        status_code=resp.status_code,
                    )
                    if attempt == attempts:
                        return resp
                else:
                    return resp

            if attempt < attempts:
                logger.warning(
                    "Remote request failed (%s), retrying in %.1fs (attempt %d/%d)",
                    last_exc, backoff, attempt, attempts,
                )
                time.sleep(backoff)
                backoff *= BACKOFF_MULTIPLIER

        raise last_exc

    @staticmethod
    def _raise_for_status(resp: httpx.Response, action: str) -> None:
        if resp.status_code >= 400:
            raise NetworkFailure(
                f"{action}: remote API error (HTTP {resp.status_code}): {resp.text[:200]}",
                status_code=resp.status_code,
            )

    @staticmethod
    def _json(resp: httpx.Response) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise SerializationFailure(f"remote returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise SerializationFailure("remote returned an unexpected JSON payload")
        return data
