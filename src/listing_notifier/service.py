from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from listing_notifier.dispatch import DispatchReport, NotificationDispatcher
from listing_notifier.models import Record
from listing_notifier.notifiers import build_media_group
from listing_notifier.scanner import ListingScanner, ScanResult
from listing_notifier.store import Store

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleReport:
    scan: ScanResult
    dispatch: DispatchReport = field(default_factory=DispatchReport)

    @property
    def ok(self) -> bool:
        return not self.scan.errors and self.dispatch.failed == 0


class ListingWatchService:
    def __init__(
        self,
        *,
        listing_url: str,
        scanner: ListingScanner,
        store: Store,
        dispatcher: NotificationDispatcher,
        dry_run: bool = False,
        preview_callback: Callable[[Record], None] | None = None,
    ) -> None:
        self.listing_url = listing_url
        self.scanner = scanner
        self.store = store
        self.dispatcher = dispatcher
        self.dry_run = dry_run
        self.preview_callback = preview_callback or _default_preview

    def run_cycle(self) -> CycleReport:
        """Scan, record new ids, then dispatch.

        Listing failures and store failures propagate before anything is sent.
        """
        logger.info("Started parsing list page %s", self.listing_url)
        with self.store.session() as seen:
            scan = self.scanner.scan(self.listing_url, seen, persist=not self.dry_run)

        report = CycleReport(scan=scan)
        if self.dry_run:
            scheduled, skipped = self.dispatcher.plan(scan.records)
            for record, _ in scheduled:
                self.preview_callback(record)
            report.dispatch.skipped.extend(skipped)
        else:
            report.dispatch = self.dispatcher.dispatch(scan.records)

        logger.info(
            "Cycle complete | candidates=%d promoted=%d new=%d records=%d "
            "sent=%d failed=%d skipped=%d detail_errors=%d",
            scan.candidates,
            scan.promoted,
            len(scan.new_ids),
            len(scan.records),
            report.dispatch.sent,
            report.dispatch.failed,
            len(report.dispatch.skipped),
            len(scan.errors),
        )
        return report


def _default_preview(record: Record) -> None:
    media = build_media_group(record)
    print(f"[DRY RUN] WOULD POST: {record.title}")
    print(f"  URL: {record.url}")
    print(f"  Price: {record.price or 'Not specified'}")
    print(f"  Photos: {len(media)} of {len(record.image_urls)}")
    print("")
