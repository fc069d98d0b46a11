"""Change reports for commits that edited the task document externally."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from mdtasks.errors import DocumentNotFoundError, StoreError
from mdtasks.task_constants import BOT_COMMIT_PATTERNS
from mdtasks.task_diff import analyze_diff, has_changes
from mdtasks.task_models import TaskDiff
from mdtasks.task_store import DocumentIdentity, DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class CommitInfo:
    sha: str
    message: str = ""
    author: str = ""
    url: str = ""
    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> CommitInfo:
        author = payload.get("author") or {}
        return cls(
            sha=str(payload.get("id") or payload.get("sha") or ""),
            message=str(payload.get("message") or ""),
            author=str(author.get("name", "")) if isinstance(author, dict) else str(author),
            url=str(payload.get("url") or ""),
            added=[str(path) for path in payload.get("added") or []],
            modified=[str(path) for path in payload.get("modified") or []],
        )

    def touches(self, path: str) -> bool:
        return any(path.endswith(changed) for changed in self.added + self.modified)


@dataclass
class CommitReport:
    commit: CommitInfo
    diff: TaskDiff


def is_external_commit(message: str) -> bool:
    """False for commits this service wrote itself."""
    return not any(pattern.match(message) for pattern in BOT_COMMIT_PATTERNS)


class CommitSync:
    """Diffs the task document across each externally authored commit."""

    def __init__(self, store: DocumentStore, identity: DocumentIdentity) -> None:
        self._store = store
        self._identity = identity

    def _content_at(self, ref: str | None) -> str:
        if ref is None:
            return ""
        try:
            return self._store.get(self._identity.with_ref(ref)).content
        except DocumentNotFoundError:
            return ""

    def report(self, commit: CommitInfo) -> CommitReport | None:
        after = self._store.get(self._identity.with_ref(commit.sha)).content
        before = self._content_at(self._store.parent_ref(commit.sha))
        diff = analyze_diff(before, after)
        if not has_changes(diff):
            logger.info("No task changes in commit %s", commit.sha)
            return None
        return CommitReport(commit=commit, diff=diff)

    def reports(self, commits: list[CommitInfo]) -> list[CommitReport]:
        relevant = [
            commit
            for commit in commits
            if is_external_commit(commit.message) and commit.touches(self._identity.path)
        ]
        if not relevant:
            logger.info("No external commits touched %s", self._identity.path)
            return []

        results: list[CommitReport] = []
        for commit in relevant:
            try:
                report = self.report(commit)
            except StoreError:
                logger.exception("Error processing commit %s", commit.sha)
                continue
            if report is not None:
                results.append(report)
        return results
