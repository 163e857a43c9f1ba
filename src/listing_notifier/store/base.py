from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Iterable

from listing_notifier.models import SeenEntry


class SeenIds(ABC):
    """Ids of entries already processed, bound to one open connection."""

    @abstractmethod
    def contains_any(self, ids: Iterable[int]) -> set[int]:
        """Return the subset of ``ids`` that is already stored."""

    @abstractmethod
    def insert_all(self, ids: Iterable[int]) -> None:
        """Durably record ``ids`` in a single write. Existing ids are left untouched."""

    @abstractmethod
    def has_seen(self, entry_id: int) -> SeenEntry | None:
        """Return the stored entry, otherwise None."""

    @abstractmethod
    def recent_ids(self, limit: int) -> list[int]:
        """Return up to ``limit`` ids, most recently stored first."""

    @abstractmethod
    def prune(self, keep: int) -> int:
        """Delete all but the newest ``keep`` ids and return how many were removed."""


class Store(ABC):
    @abstractmethod
    def init_db(self) -> None:
        """Create any required schema."""

    @abstractmethod
    def session(self) -> AbstractContextManager[SeenIds]:
        """Open a connection for the duration of a ``with`` block."""
