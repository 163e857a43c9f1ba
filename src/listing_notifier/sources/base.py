from __future__ import annotations

from abc import ABC, abstractmethod

from listing_notifier.models import CandidateEntry, Record


class ListingSource(ABC):
    def __init__(self, source_id: str) -> None:
        self.source_id = source_id

    @abstractmethod
    def fetch_listing(self, url: str) -> list[CandidateEntry]:
        """Fetch the listing page and return its cards in display order.

        Raises FetchError or ParseError when the page cannot be used.
        """

    @abstractmethod
    def fetch_detail(self, url: str) -> Record | None:
        """Fetch one entry's detail page.

        Returns None when the page is not an eligible entry (stale, removed).
        Raises FetchError or ParseError on transient or structural failures.
        """
