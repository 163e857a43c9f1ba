from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from listing_notifier.models import Record


@dataclass(slots=True)
class FilterResult:
    matched: bool
    reasons: list[str] = field(default_factory=list)

    def reason_text(self) -> str:
        return "; ".join(self.reasons) if self.reasons else "no specific reason"


class Filter(ABC):
    @abstractmethod
    def evaluate(self, record: Record) -> FilterResult:
        """Evaluate a record and return the send decision with reasons."""
