from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable, Union

from listing_notifier.filters import Filter
from listing_notifier.models import Record
from listing_notifier.notifiers import Notifier

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Sent:
    record: Record
    offset_seconds: float
    started_at: float


@dataclass(slots=True, frozen=True)
class Failed:
    record: Record
    offset_seconds: float
    started_at: float
    reason: str


SendOutcome = Union[Sent, Failed]


@dataclass(slots=True)
class DispatchReport:
    outcomes: list[SendOutcome] = field(default_factory=list)
    skipped: list[tuple[Record, str]] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for outcome in self.outcomes if isinstance(outcome, Sent))

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if isinstance(outcome, Failed))


class NotificationDispatcher:
    """Send records one media group at a time, staggered by a fixed delay.

    The n-th eligible record is submitted ``n * delay_seconds`` after the
    dispatch started, independently of how long earlier sends take. The call
    returns once every submitted send has finished. A failed send becomes a
    ``Failed`` outcome and never raises.
    """

    def __init__(
        self,
        *,
        notifier: Notifier,
        record_filter: Filter,
        delay_seconds: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.notifier = notifier
        self.record_filter = record_filter
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._clock = clock

    def plan(self, records: Iterable[Record]) -> tuple[list[tuple[Record, float]], list[tuple[Record, str]]]:
        """Split records into (record, offset) pairs to send and (record, reason) pairs to skip."""
        scheduled: list[tuple[Record, float]] = []
        skipped: list[tuple[Record, str]] = []
        for record in records:
            verdict = self.record_filter.evaluate(record)
            if not verdict.matched:
                logger.warning("Skipping advertisement %s: %s", record.url, verdict.reason_text())
                skipped.append((record, verdict.reason_text()))
                continue
            scheduled.append((record, len(scheduled) * self.delay_seconds))
        return scheduled, skipped

    def dispatch(self, records: Iterable[Record]) -> DispatchReport:
        scheduled, skipped = self.plan(records)
        report = DispatchReport(skipped=skipped)
        if not scheduled:
            return report

        futures: list[Future[SendOutcome]] = []
        start = self._clock()
        # One worker per send: a slow send must never queue the ones after it.
        with ThreadPoolExecutor(max_workers=len(scheduled), thread_name_prefix="dispatch") as executor:
            for record, offset in scheduled:
                wait = start + offset - self._clock()
                if wait > 0:
                    self._sleep(wait)
                futures.append(executor.submit(self._send, record, offset, start))

            report.outcomes.extend(future.result() for future in futures)

        logger.info(
            "Dispatch complete | sent=%d failed=%d skipped=%d",
            report.sent,
            report.failed,
            len(report.skipped),
        )
        return report

    def _send(self, record: Record, offset: float, start: float) -> SendOutcome:
        started_at = self._clock() - start
        try:
            self.notifier.post(record)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to send advertisement %s: %s", record.url, exc)
            return Failed(record=record, offset_seconds=offset, started_at=started_at, reason=str(exc))

        logger.info("Sent advertisement %s", record.url)
        return Sent(record=record, offset_seconds=offset, started_at=started_at)
