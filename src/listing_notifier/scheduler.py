from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Union

from listing_notifier.errors import ListingNotifierError

logger = logging.getLogger(__name__)


class SchedulerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class CycleSucceeded:
    value: Any


@dataclass(slots=True, frozen=True)
class CycleFailed:
    error: Exception
    expected: bool


CycleOutcome = Union[CycleSucceeded, CycleFailed]


class CycleScheduler:
    """Runs one cycle at a time, forever, with a fixed pause between cycles.

    Every cycle is wrapped so that any exception becomes a ``CycleFailed``
    outcome. The next cycle starts ``interval_seconds`` after the previous one
    fully returned, whatever its outcome: a failed cycle waits the same
    interval as a successful one and is never restarted immediately.
    """

    def __init__(
        self,
        run_cycle: Callable[[], Any],
        *,
        interval_seconds: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._run_cycle = run_cycle
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self.state = SchedulerState.IDLE
        self.last_outcome: CycleOutcome | None = None
        self.cycles = 0

    def run_one(self) -> CycleOutcome:
        self._transition(SchedulerState.RUNNING)
        self.cycles += 1
        try:
            outcome: CycleOutcome = CycleSucceeded(self._run_cycle())
        except ListingNotifierError as exc:
            logger.error("Cycle %d failed: %s", self.cycles, exc)
            outcome = CycleFailed(error=exc, expected=True)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Cycle %d crashed with an unhandled error; restarting", self.cycles)
            outcome = CycleFailed(error=exc, expected=False)

        if isinstance(outcome, CycleFailed):
            self._transition(SchedulerState.ERROR)
        self._transition(SchedulerState.IDLE)
        self.last_outcome = outcome
        return outcome

    def run_forever(self, max_cycles: int | None = None) -> None:
        logger.info(
            "Scheduling cycles every %.1f seconds%s",
            self.interval_seconds,
            f" (max {max_cycles})" if max_cycles is not None else "",
        )
        while max_cycles is None or self.cycles < max_cycles:
            self.run_one()
            if max_cycles is not None and self.cycles >= max_cycles:
                break
            self._sleep(self.interval_seconds)

    def _transition(self, state: SchedulerState) -> None:
        logger.debug("Scheduler %s -> %s", self.state.value, state.value)
        self.state = state
