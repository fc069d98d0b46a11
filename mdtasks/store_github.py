"""GitHub contents API document store."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, unquote

import httpx

from mdtasks.errors import DocumentNotFoundError, StoreConflictError, StoreError
from mdtasks.task_store import DocumentIdentity, StoredDocument

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
FILE_URL_PATTERN = re.compile(
    r"github\.com/(?P<owner>[^/]+)/(?P<repo>[^/]+)/blob/(?P<branch>[^/]+)/(?P<path>.+)$"
)


@dataclass(frozen=True)
class GitHubFileLocation:
    owner: str
    repo: str
    branch: str
    path: str

    @property
    def identity(self) -> DocumentIdentity:
        return DocumentIdentity(path=self.path, ref=self.branch)


def parse_github_file_url(url: str) -> GitHubFileLocation:
    """Parse `https://github.com/<owner>/<repo>/blob/<branch>/<path>`."""
    match = FILE_URL_PATTERN.search(url.strip())
    if not match:
        raise ValueError(
            "File URL must look like "
            "https://github.com/owner/repo/blob/branch/path/to/file.md"
        )
    return GitHubFileLocation(
        owner=match.group("owner"),
        repo=match.group("repo"),
        branch=match.group("branch"),
        path=unquote(match.group("path")),
    )


class GitHubDocumentStore:
    """Reads and compare-and-swap writes a file through the contents API.

    The content token is the blob SHA GitHub reports for the file.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        api_token: str,
        *,
        api_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._owner = owner
        self._repo = repo
        self._http = httpx.Client(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    def close(self) -> None:
        self._http.close()

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self._owner}/{self._repo}/contents/{quote(path)}"

    def _request(
        self, operation: str, identity_path: str, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            return self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s failed for %s: %s", operation, identity_path, exc)
            raise StoreError(
                "GitHub request failed.",
                {"operation": operation, "path": identity_path, "error": str(exc)},
            ) from exc

    def _raise_for_status(
        self, operation: str, identity_path: str, response: httpx.Response
    ) -> None:
        if response.is_success:
            return
        try:
            detail = response.json().get("message", "")
        except ValueError:
            detail = response.text
        logger.error(
            "%s failed for %s: HTTP %d %s",
            operation,
            identity_path,
            response.status_code,
            detail,
        )
        raise StoreError(
            f"GitHub returned HTTP {response.status_code}.",
            {
                "operation": operation,
                "path": identity_path,
                "status": response.status_code,
                "error": detail,
            },
        )

    def get(self, identity: DocumentIdentity) -> StoredDocument:
        params = {"ref": identity.ref} if identity.ref else None
        response = self._request(
            "fetch", identity.path, "GET", self._contents_url(identity.path), params=params
        )
        if response.status_code == 404:
            raise DocumentNotFoundError(
                "Task document not found.",
                {"path": identity.path, "ref": identity.ref},
            )
        self._raise_for_status("fetch", identity.path, response)

        data = response.json()
        if not isinstance(data, dict) or data.get("type") != "file":
            raise StoreError(
                "Path is not a file.",
                {"operation": "fetch", "path": identity.path},
            )
        try:
            raw = base64.b64decode(data.get("content", "").replace("\n", ""))
            content = raw.decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise StoreError(
                "Task document is not valid UTF-8 content.",
                {"operation": "fetch", "path": identity.path},
            ) from exc
        return StoredDocument(content=content, token=data["sha"])

    def put(
        self,
        identity: DocumentIdentity,
        content: str,
        token: str | None,
        message: str,
    ) -> str:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if identity.ref:
            body["branch"] = identity.ref
        if token:
            body["sha"] = token

        response = self._request(
            "save", identity.path, "PUT", self._contents_url(identity.path), json=body
        )
        # 409: stale sha. 422 without a sha: someone created the file first.
        if response.status_code == 409 or (response.status_code == 422 and not token):
            raise StoreConflictError(
                "Task document changed since it was read.",
                {"path": identity.path, "token": token},
            )
        self._raise_for_status("save", identity.path, response)
        new_token = response.json()["content"]["sha"]
        logger.info("Saved %s (%s)", identity.path, new_token)
        return new_token

    def parent_ref(self, ref: str) -> str | None:
        response = self._request(
            "commit lookup",
            ref,
            "GET",
            f"/repos/{self._owner}/{self._repo}/commits/{ref}",
        )
        self._raise_for_status("commit lookup", ref, response)
        parents = response.json().get("parents") or []
        return parents[0]["sha"] if parents else None
