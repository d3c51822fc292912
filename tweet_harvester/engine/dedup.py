"""In-memory deduplication and pending index for extracted records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .parser import Record


@dataclass(frozen=True)
class IndexStats:
    stored: int
    pending: int
    sent: int
    processed: int


class LocalDedupIndex:
    """Track which identities were delivered, are in flight, or await pickup.

    ``admit`` is the only dedup gate on the agent side. Callers must run it
    from the agent's serial task queue so no two admissions interleave.
    """

    def __init__(self) -> None:
        self.sent: set[str] = set()
        self.pending: set[str] = set()
        self.store: dict[str, Record] = {}
        self.processed: set[str] = set()

    def admit(self, record: Record | None) -> bool:
        if record is None or not record.identity:
            return False
        identity = record.identity
        if identity in self.sent or identity in self.pending:
            return False
        self.store[identity] = record
        self.pending.add(identity)
        self.processed.add(identity)
        return True

    def snapshot(self) -> list[Record]:
        """Records not yet confirmed as delivered."""

        return list(self.store.values())

    def mark_sent(self, identities: Iterable[str]) -> None:
        for identity in identities:
            self.store.pop(identity, None)
            self.pending.discard(identity)
            self.sent.add(identity)

    def release(self, identities: Iterable[str]) -> None:
        """Drop identities from the in-flight set; their records stay stored."""

        for identity in identities:
            self.pending.discard(identity)

    def was_processed(self, identity: str) -> bool:
        return identity in self.processed

    def has_unsent(self) -> bool:
        return bool(self.store)

    def stats(self) -> IndexStats:
        return IndexStats(
            stored=len(self.store),
            pending=len(self.pending),
            sent=len(self.sent),
            processed=len(self.processed),
        )


__all__ = ["IndexStats", "LocalDedupIndex"]
