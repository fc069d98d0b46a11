"""Compare-and-swap document store contract."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Protocol


@dataclass(frozen=True)
class DocumentIdentity:
    """Where a document lives: a path inside the store plus a ref."""

    path: str
    ref: str | None = None

    def with_ref(self, ref: str | None) -> DocumentIdentity:
        return replace(self, ref=ref)


@dataclass(frozen=True)
class StoredDocument:
    content: str
    token: str


class DocumentStore(Protocol):
    """Whole-document storage with compare-and-swap writes.

    `get` raises `DocumentNotFoundError` when nothing exists at the identity.
    `put` accepts the write only if `token` matches the current content
    (`None` means "create"); otherwise it raises `StoreConflictError`. Any
    other failure is a `StoreError`. `put` returns the new content token.
    """

    def get(self, identity: DocumentIdentity) -> StoredDocument: ...

    def put(
        self,
        identity: DocumentIdentity,
        content: str,
        token: str | None,
        message: str,
    ) -> str: ...

    def parent_ref(self, ref: str) -> str | None: ...
