"""Local git repository document store."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path, PurePosixPath

from dulwich import porcelain
from dulwich.object_store import tree_lookup_path
from dulwich.objects import Blob
from dulwich.repo import Repo

from mdtasks.errors import DocumentNotFoundError, StoreConflictError, StoreError
from mdtasks.task_store import DocumentIdentity, StoredDocument

logger = logging.getLogger(__name__)


def _atomic_write(target_path: Path, content: str) -> None:
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=target_path.parent, delete=False, newline=""
        ) as temp_file:
            temp_path = Path(temp_file.name)
            temp_file.write(content)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.replace(temp_path, target_path)
    finally:
        if temp_path is not None and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass


def _ensure_git_repo(repo_root: Path) -> Repo:
    try:
        if (repo_root / ".git").exists():
            return Repo(str(repo_root))
        repo_root.mkdir(parents=True, exist_ok=True)
        return porcelain.init(str(repo_root))
    except Exception as exc:
        raise StoreError(
            "Git repository could not be initialized.",
            {"operation": "init", "path": str(repo_root)},
        ) from exc


def _relative_path(raw_path: str) -> PurePosixPath:
    candidate = PurePosixPath(raw_path.replace("\\", "/"))
    if candidate.is_absolute() or ".." in candidate.parts or not candidate.parts:
        raise StoreError(
            "Document path must stay inside the repository.",
            {"path": raw_path},
        )
    return candidate


class GitDocumentStore:
    """Keeps the task document in a local repository, one commit per write.

    The content token is the blob SHA of the file at the branch head. A
    local repository has no server arbitrating writers, so the
    compare-and-swap step is serialized here.
    """

    def __init__(self, repo_root: Path) -> None:
        self._root = Path(repo_root)
        self._repo = _ensure_git_repo(self._root)
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve_commit(self, ref: str | None) -> bytes:
        refs = self._repo.refs
        if ref is None:
            try:
                return self._repo.head()
            except KeyError as exc:
                raise DocumentNotFoundError(
                    "Repository has no commits yet.", {"ref": ref}
                ) from exc

        ref_bytes = ref.encode("utf-8")
        for candidate in (ref_bytes, b"refs/heads/" + ref_bytes, b"refs/tags/" + ref_bytes):
            if candidate in refs:
                return refs[candidate]
        try:
            return self._repo[ref_bytes].id
        except (KeyError, ValueError) as exc:
            raise DocumentNotFoundError("Unknown ref.", {"ref": ref}) from exc

    def _read_blob(self, identity: DocumentIdentity) -> Blob:
        relative = _relative_path(identity.path)
        commit_id = self._resolve_commit(identity.ref)
        tree_id = self._repo[commit_id].tree
        try:
            _mode, blob_id = tree_lookup_path(
                self._repo.get_object, tree_id, relative.as_posix().encode("utf-8")
            )
        except KeyError as exc:
            raise DocumentNotFoundError(
                "Task document not found.",
                {"path": identity.path, "ref": identity.ref},
            ) from exc
        return self._repo[blob_id]

    def _current_token(self, identity: DocumentIdentity) -> str | None:
        try:
            return self._read_blob(identity.with_ref(None)).id.decode("ascii")
        except DocumentNotFoundError:
            return None

    def _check_branch(self, identity: DocumentIdentity) -> None:
        if identity.ref is None:
            return
        try:
            active = porcelain.active_branch(self._repo).decode("utf-8")
        except (KeyError, IndexError):
            return
        if identity.ref != active:
            raise StoreError(
                "Writes are only supported on the checked-out branch.",
                {"operation": "save", "ref": identity.ref, "branch": active},
            )

    def get(self, identity: DocumentIdentity) -> StoredDocument:
        blob = self._read_blob(identity)
        try:
            content = blob.data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StoreError(
                "Task document must be UTF-8 encoded.",
                {"operation": "fetch", "path": identity.path},
            ) from exc
        return StoredDocument(content=content, token=blob.id.decode("ascii"))

    def put(
        self,
        identity: DocumentIdentity,
        content: str,
        token: str | None,
        message: str,
    ) -> str:
        relative = _relative_path(identity.path)
        target_path = self._root.joinpath(*relative.parts)
        self._check_branch(identity)

        with self._lock:
            current = self._current_token(identity)
            if current != token:
                raise StoreConflictError(
                    "Task document changed since it was read.",
                    {"path": identity.path, "token": token, "current": current},
                )

            original = (
                target_path.read_bytes() if target_path.exists() else None
            )
            target_path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write(target_path, content)
            try:
                self._repo.get_worktree().stage([relative.as_posix()])
                commit_sha = porcelain.commit(self._repo, message=message)
            except Exception as exc:
                self._rollback(target_path, relative, original)
                raise StoreError(
                    "Git commit failed; write rolled back.",
                    {"operation": "save", "path": identity.path},
                ) from exc

        if isinstance(commit_sha, bytes):
            commit_sha = commit_sha.decode("ascii")
        logger.info("Committed %s as %s", identity.path, commit_sha)
        return Blob.from_string(content.encode("utf-8")).id.decode("ascii")

    def _rollback(
        self, target_path: Path, relative: PurePosixPath, original: bytes | None
    ) -> None:
        try:
            if original is None:
                target_path.unlink(missing_ok=True)
            else:
                target_path.write_bytes(original)
            self._repo.get_worktree().stage([relative.as_posix()])
        except Exception:
            logger.exception("Rollback of %s failed", relative)

    def parent_ref(self, ref: str) -> str | None:
        commit = self._repo[self._resolve_commit(ref)]
        if not commit.parents:
            return None
        return commit.parents[0].decode("ascii")
