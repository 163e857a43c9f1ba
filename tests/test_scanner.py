from __future__ import annotations

from typing import Iterable

import pytest

from listing_notifier.errors import FetchError, ParseError, PersistenceError
from listing_notifier.models import CandidateEntry, Record, SeenEntry
from listing_notifier.scanner import ListingScanner
from listing_notifier.sources.base import ListingSource
from listing_notifier.store.base import SeenIds
from listing_notifier.store.sqlite_store import SQLiteStore

LISTING_URL = "https://www.olx.ua/uk/list/"


def _url(entry_id: int) -> str:
    return f"https://www.olx.ua/d/uk/obyavlenie/flat-ID{entry_id}.html"


def _record(entry_id: int, images: int = 3) -> Record:
    return Record(
        url=_url(entry_id),
        title=f"Flat {entry_id}",
        price="10 000 грн.",
        description="Nice flat",
        image_urls=[f"https://img.example/{entry_id}/{index}.jpg" for index in range(images)],
    )


class StaticSource(ListingSource):
    def __init__(
        self,
        candidates: list[CandidateEntry],
        details: dict[str, Record | None | Exception] | None = None,
    ) -> None:
        super().__init__(source_id="test_source")
        self.candidates = candidates
        self.details = details or {}
        self.detail_calls: list[str] = []

    def fetch_listing(self, url: str) -> list[CandidateEntry]:
        return list(self.candidates)

    def fetch_detail(self, url: str) -> Record | None:
        self.detail_calls.append(url)
        outcome = self.details.get(url)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None and url not in self.details:
            return _record(int(url.rsplit("ID", 1)[1].split(".")[0]))
        return outcome


class BrokenListingSource(StaticSource):
    def fetch_listing(self, url: str) -> list[CandidateEntry]:
        raise FetchError("listing timed out")


class MemorySeenIds(SeenIds):
    def __init__(self, ids: Iterable[int] = ()) -> None:
        self.ids = set(ids)
        self.writes: list[list[int]] = []

    def contains_any(self, ids: Iterable[int]) -> set[int]:
        return {entry_id for entry_id in ids if entry_id in self.ids}

    def insert_all(self, ids: Iterable[int]) -> None:
        batch = list(ids)
        self.writes.append(batch)
        self.ids.update(batch)

    def has_seen(self, entry_id: int) -> SeenEntry | None:
        return None

    def recent_ids(self, limit: int) -> list[int]:
        return sorted(self.ids, reverse=True)[:limit]

    def prune(self, keep: int) -> int:
        return 0


class FailingWriteSeenIds(MemorySeenIds):
    def insert_all(self, ids: Iterable[int]) -> None:
        raise PersistenceError("database is locked")


def _candidate(entry_id: int, promoted: bool = False) -> CandidateEntry:
    return CandidateEntry(id=entry_id, detail_url=_url(entry_id), is_promoted=promoted)


def test_scan_stops_after_consecutive_seen_and_ignores_trailing_new() -> None:
    source = StaticSource([_candidate(9), _candidate(8), _candidate(7), _candidate(6), _candidate(5)])
    seen = MemorySeenIds({8, 7, 6})

    result = ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen)

    assert [record.id for record in result.records] == [9]
    assert result.new_ids == [9]
    assert result.stopped_early is True
    assert _url(5) not in source.detail_calls
    assert seen.writes == [[9]]


def test_scan_tolerates_seen_entries_interleaved_with_new_ones() -> None:
    source = StaticSource(
        [_candidate(20), _candidate(3), _candidate(19), _candidate(2), _candidate(1), _candidate(18)]
    )
    seen = MemorySeenIds({3, 2, 1})

    result = ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen)

    assert result.new_ids == [20, 19, 18]
    assert result.stopped_early is False
    assert [record.id for record in result.records] == [20, 19, 18]


def test_promoted_entries_are_not_recorded_and_do_not_count_as_seen() -> None:
    source = StaticSource(
        [
            _candidate(50, promoted=True),
            _candidate(12),
            _candidate(11),
            _candidate(40, promoted=True),
            _candidate(41, promoted=True),
            _candidate(10),
            _candidate(9),
        ]
    )
    seen = MemorySeenIds({11, 10, 41})

    result = ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen)

    assert result.promoted == 3
    assert result.new_ids == [12, 9]
    assert 50 not in seen.ids
    assert 40 not in seen.ids
    assert _url(50) not in source.detail_calls
    assert _url(40) not in source.detail_calls


def test_absent_entries_are_recorded_but_not_returned() -> None:
    source = StaticSource([_candidate(3), _candidate(2)], details={_url(3): None})
    seen = MemorySeenIds()

    result = ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen)

    assert [record.id for record in result.records] == [2]
    assert result.absent == 1
    assert seen.ids == {3, 2}


def test_detail_errors_are_contained_and_not_recorded() -> None:
    source = StaticSource(
        [_candidate(4), _candidate(3), _candidate(2)],
        details={
            _url(4): FetchError("read timeout"),
            _url(3): ParseError("no title"),
        },
    )
    seen = MemorySeenIds()

    result = ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen)

    assert [record.id for record in result.records] == [2]
    assert seen.ids == {2}
    assert len(result.errors) == 2


def test_duplicate_card_after_failed_fetch_is_not_fetched_again() -> None:
    source = StaticSource(
        [_candidate(4), _candidate(4), _candidate(3)],
        details={_url(4): FetchError("read timeout")},
    )
    seen = MemorySeenIds()

    result = ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen)

    assert source.detail_calls == [_url(4), _url(3)]
    assert result.already_seen == 1
    assert len(result.errors) == 1
    assert seen.ids == {3}


def test_listing_failure_propagates_without_writes() -> None:
    source = BrokenListingSource([])
    seen = MemorySeenIds()

    with pytest.raises(FetchError):
        ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen)

    assert seen.writes == []


def test_persistence_failure_propagates() -> None:
    source = StaticSource([_candidate(1)])

    with pytest.raises(PersistenceError):
        ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, FailingWriteSeenIds())


def test_new_ids_are_written_once_in_a_single_batch() -> None:
    source = StaticSource([_candidate(3), _candidate(2), _candidate(1)])
    seen = MemorySeenIds()

    ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen)

    assert seen.writes == [[3, 2, 1]]


def test_scan_without_persist_leaves_store_untouched() -> None:
    source = StaticSource([_candidate(3)])
    seen = MemorySeenIds()

    result = ListingScanner(source=source, existing_attempts=3).scan(LISTING_URL, seen, persist=False)

    assert result.new_ids == [3]
    assert seen.writes == []


def test_second_scan_of_unchanged_listing_finds_nothing(tmp_path) -> None:
    store = SQLiteStore(str(tmp_path / "state.sqlite"))
    store.init_db()
    source = StaticSource([_candidate(3), _candidate(2), _candidate(1)])
    scanner = ListingScanner(source=source, existing_attempts=3)

    with store.session() as seen:
        first = scanner.scan(LISTING_URL, seen)
    with store.session() as seen:
        second = scanner.scan(LISTING_URL, seen)

    assert len(first.records) == 3
    assert second.records == []
    assert second.new_ids == []
    assert second.stopped_early is True


def test_existing_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ListingScanner(source=StaticSource([]), existing_attempts=0)
