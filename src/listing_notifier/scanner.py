from __future__ import annotations

import logging
from dataclasses import dataclass, field

from listing_notifier.errors import FetchError, ParseError
from listing_notifier.models import CandidateEntry, Record
from listing_notifier.sources import ListingSource
from listing_notifier.store import SeenIds

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScanResult:
    records: list[Record] = field(default_factory=list)
    new_ids: list[int] = field(default_factory=list)
    candidates: int = 0
    promoted: int = 0
    already_seen: int = 0
    absent: int = 0
    errors: list[str] = field(default_factory=list)
    stopped_early: bool = False


class ListingScanner:
    """Walks a listing page newest-first and collects entries not seen before.

    The walk stops once ``existing_attempts`` already-seen entries appear in a
    row; a few seen entries interleaved with new ones (relists bumped above
    fresh content) are tolerated. Promoted cards are ignored entirely.

    Ids of new entries are written to the store in one call before the scan
    returns, including entries whose details turned out to be ineligible.
    Entries whose detail fetch failed are not recorded, so the next cycle
    retries them.
    """

    def __init__(self, *, source: ListingSource, existing_attempts: int) -> None:
        if existing_attempts < 1:
            raise ValueError("existing_attempts must be >= 1")
        self.source = source
        self.existing_attempts = existing_attempts

    def scan(self, listing_url: str, seen: SeenIds, *, persist: bool = True) -> ScanResult:
        candidates = self.source.fetch_listing(listing_url)
        result = ScanResult(candidates=len(candidates))

        organic: list[CandidateEntry] = []
        for candidate in candidates:
            if candidate.is_promoted:
                result.promoted += 1
                continue
            organic.append(candidate)

        known = seen.contains_any(candidate.id for candidate in organic)

        attempted: set[int] = set()
        consecutive_seen = 0
        for candidate in organic:
            if candidate.id in known or candidate.id in attempted:
                consecutive_seen += 1
                result.already_seen += 1
                if consecutive_seen >= self.existing_attempts:
                    logger.info(
                        "Stopping scan after %d consecutive already-seen entries (last id=%d)",
                        consecutive_seen,
                        candidate.id,
                    )
                    result.stopped_early = True
                    break
                continue

            consecutive_seen = 0
            attempted.add(candidate.id)
            try:
                record = self.source.fetch_detail(candidate.detail_url)
            except (FetchError, ParseError) as exc:
                message = f"detail fetch failed for {candidate.id} ({candidate.detail_url}): {exc}"
                logger.warning(message)
                result.errors.append(message)
                continue

            result.new_ids.append(candidate.id)
            if record is None:
                result.absent += 1
                continue

            record.id = candidate.id
            result.records.append(record)

        if persist and result.new_ids:
            seen.insert_all(result.new_ids)
            logger.info("Recorded %d new ids as seen", len(result.new_ids))

        return result
