import base64
import json

import httpx
import pytest

from mdtasks.errors import DocumentNotFoundError, StoreConflictError, StoreError
from mdtasks.store_github import GitHubDocumentStore, parse_github_file_url
from mdtasks.task_store import DocumentIdentity

IDENTITY = DocumentIdentity(path="lists/tasks.md", ref="main")


def _store(handler):
    return GitHubDocumentStore(
        "octo", "notes", "secret", transport=httpx.MockTransport(handler)
    )


def _file_payload(content: str, sha: str = "abc123") -> dict:
    return {
        "type": "file",
        "sha": sha,
        "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
    }


def test_parse_github_file_url():
    location = parse_github_file_url(
        "https://github.com/octo/notes/blob/main/lists/my%20tasks.md"
    )

    assert (location.owner, location.repo, location.branch) == ("octo", "notes", "main")
    assert location.path == "lists/my tasks.md"
    assert location.identity == DocumentIdentity(path="lists/my tasks.md", ref="main")


def test_parse_github_file_url_rejects_other_urls():
    with pytest.raises(ValueError):
        parse_github_file_url("https://example.com/tasks.md")


def test_get_decodes_content_and_returns_sha():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json=_file_payload("# Tasks\n"))

    document = _store(handler).get(IDENTITY)

    assert document.content == "# Tasks\n"
    assert document.token == "abc123"
    assert seen["url"] == (
        "https://api.github.com/repos/octo/notes/contents/lists/tasks.md?ref=main"
    )
    assert seen["auth"] == "Bearer secret"


def test_get_missing_file_raises_not_found():
    store = _store(lambda request: httpx.Response(404, json={"message": "Not Found"}))

    with pytest.raises(DocumentNotFoundError):
        store.get(IDENTITY)


def test_get_server_error_is_store_error():
    store = _store(lambda request: httpx.Response(500, json={"message": "oops"}))

    with pytest.raises(StoreError) as excinfo:
        store.get(IDENTITY)

    assert excinfo.value.error.details["status"] == 500
    assert excinfo.value.error.details["operation"] == "fetch"


def test_transport_failure_is_store_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(StoreError) as excinfo:
        _store(handler).get(IDENTITY)

    assert excinfo.value.error.details["path"] == "lists/tasks.md"


def test_put_sends_sha_branch_and_content():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": {"sha": "def456"}})

    token = _store(handler).put(IDENTITY, "hello\n", "abc123", "[bot] update - now")

    assert token == "def456"
    assert seen["method"] == "PUT"
    body = seen["body"]
    assert body["sha"] == "abc123"
    assert body["branch"] == "main"
    assert body["message"] == "[bot] update - now"
    assert base64.b64decode(body["content"]).decode("utf-8") == "hello\n"


def test_put_stale_sha_is_conflict():
    store = _store(lambda request: httpx.Response(409, json={"message": "conflict"}))

    with pytest.raises(StoreConflictError):
        store.put(IDENTITY, "x", "old", "msg")


def test_put_create_race_is_conflict():
    store = _store(lambda request: httpx.Response(422, json={"message": "sha missing"}))

    with pytest.raises(StoreConflictError):
        store.put(IDENTITY, "x", None, "msg")


def test_put_unprocessable_with_sha_is_store_error():
    store = _store(lambda request: httpx.Response(422, json={"message": "bad"}))

    with pytest.raises(StoreError) as excinfo:
        store.put(IDENTITY, "x", "abc", "msg")

    assert not isinstance(excinfo.value, StoreConflictError)


def test_parent_ref_reads_first_parent():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/octo/notes/commits/c2"
        return httpx.Response(200, json={"sha": "c2", "parents": [{"sha": "c1"}]})

    assert _store(handler).parent_ref("c2") == "c1"


def test_parent_ref_of_root_commit_is_none():
    store = _store(lambda request: httpx.Response(200, json={"sha": "c1", "parents": []}))

    assert store.parent_ref("c1") is None
