from __future__ import annotations

from abc import ABC, abstractmethod

from listing_notifier.models import Record


class Notifier(ABC):
    @abstractmethod
    def post(self, record: Record) -> None:
        """Send a record to a destination. Raises DispatchError on failure."""
