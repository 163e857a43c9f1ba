from __future__ import annotations

import pytest

from listing_notifier.dispatch import NotificationDispatcher
from listing_notifier.errors import FetchError, PersistenceError
from listing_notifier.filters import PhotoCountFilter
from listing_notifier.models import CandidateEntry, Record
from listing_notifier.notifiers.base import Notifier
from listing_notifier.scanner import ListingScanner
from listing_notifier.service import ListingWatchService
from listing_notifier.sources.base import ListingSource
from listing_notifier.store.sqlite_store import SQLiteStore

LISTING_URL = "https://www.olx.ua/uk/nedvizhimost/kvartiry/"


def _url(entry_id: int) -> str:
    return f"https://www.olx.ua/d/uk/obyavlenie/flat-ID{entry_id}.html"


class StaticSource(ListingSource):
    def __init__(self, candidates: list[CandidateEntry], images: dict[int, int] | None = None) -> None:
        super().__init__(source_id="test_source")
        self.candidates = candidates
        self.images = images or {}
        self.detail_calls: list[str] = []
        self.listing_error: Exception | None = None

    def fetch_listing(self, url: str) -> list[CandidateEntry]:
        if self.listing_error is not None:
            raise self.listing_error
        return list(self.candidates)

    def fetch_detail(self, url: str) -> Record | None:
        self.detail_calls.append(url)
        entry_id = int(url.rsplit("ID", 1)[1].split(".")[0])
        return Record(
            url=url,
            title=f"Flat {entry_id}",
            price="9 000 грн.",
            description="Near metro",
            image_urls=[f"https://img.example/{entry_id}/{n}.jpg" for n in range(self.images.get(entry_id, 3))],
        )


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.calls: list[int | None] = []

    def post(self, record: Record) -> None:
        self.calls.append(record.id)


class BrokenStore(SQLiteStore):
    def session(self):
        raise PersistenceError("disk I/O error")


def _service(store: SQLiteStore, source: StaticSource, notifier: Notifier) -> ListingWatchService:
    return ListingWatchService(
        listing_url=LISTING_URL,
        scanner=ListingScanner(source=source, existing_attempts=3),
        store=store,
        dispatcher=NotificationDispatcher(
            notifier=notifier,
            record_filter=PhotoCountFilter(min_images=2),
            delay_seconds=0,
        ),
    )


def _candidate(entry_id: int, promoted: bool = False) -> CandidateEntry:
    return CandidateEntry(id=entry_id, detail_url=_url(entry_id), is_promoted=promoted)


def _store(tmp_path) -> SQLiteStore:
    store = SQLiteStore(str(tmp_path / "state.sqlite"))
    store.init_db()
    return store


def test_end_to_end_only_new_entry_is_fetched_recorded_and_sent(tmp_path) -> None:
    store = _store(tmp_path)
    with store.session() as seen:
        seen.insert_all([3, 2, 1])

    source = StaticSource(
        [_candidate(5), _candidate(4, promoted=True), _candidate(3), _candidate(2), _candidate(1)]
    )
    notifier = RecordingNotifier()

    report = _service(store, source, notifier).run_cycle()

    assert source.detail_calls == [_url(5)]
    assert notifier.calls == [5]
    assert report.scan.new_ids == [5]
    assert report.scan.stopped_early is True
    with store.session() as seen:
        assert seen.contains_any([5, 4]) == {5}


def test_dedupe_prevents_double_posting_across_restarts(tmp_path) -> None:
    source = StaticSource([_candidate(7), _candidate(6)])
    notifier = RecordingNotifier()

    _service(_store(tmp_path), source, notifier).run_cycle()
    # A fresh store object over the same file stands in for a process restart.
    second = _service(_store(tmp_path), source, notifier).run_cycle()

    assert notifier.calls == [7, 6]
    assert second.scan.records == []
    assert second.dispatch.outcomes == []


def test_entry_with_one_photo_is_recorded_but_not_sent(tmp_path) -> None:
    store = _store(tmp_path)
    source = StaticSource([_candidate(8), _candidate(9)], images={8: 1})
    notifier = RecordingNotifier()

    report = _service(store, source, notifier).run_cycle()

    assert notifier.calls == [9]
    assert [record.id for record, _ in report.dispatch.skipped] == [8]
    with store.session() as seen:
        assert seen.has_seen(8) is not None


def test_listing_failure_aborts_cycle_without_writes_or_sends(tmp_path) -> None:
    store = _store(tmp_path)
    source = StaticSource([_candidate(1)])
    source.listing_error = FetchError("listing timed out")
    notifier = RecordingNotifier()

    with pytest.raises(FetchError):
        _service(store, source, notifier).run_cycle()

    assert notifier.calls == []
    with store.session() as seen:
        assert seen.recent_ids(10) == []


def test_store_failure_aborts_cycle_before_dispatch(tmp_path) -> None:
    source = StaticSource([_candidate(1)])
    notifier = RecordingNotifier()

    with pytest.raises(PersistenceError):
        _service(BrokenStore(str(tmp_path / "state.sqlite")), source, notifier).run_cycle()

    assert notifier.calls == []
    assert source.detail_calls == []


def test_dry_run_previews_without_recording_or_sending(tmp_path) -> None:
    store = _store(tmp_path)
    source = StaticSource([_candidate(3), _candidate(2)], images={2: 1})
    notifier = RecordingNotifier()
    previews: list[int | None] = []

    service = _service(store, source, notifier)
    service.dry_run = True
    service.preview_callback = lambda record: previews.append(record.id)
    report = service.run_cycle()

    assert previews == [3]
    assert notifier.calls == []
    assert [record.id for record, _ in report.dispatch.skipped] == [2]
    with store.session() as seen:
        assert seen.contains_any([3, 2]) == set()
