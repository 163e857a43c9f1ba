from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True, frozen=True)
class CandidateEntry:
    id: int
    detail_url: str
    is_promoted: bool = False


@dataclass(slots=True)
class Record:
    url: str
    title: str
    price: str
    description: str
    image_urls: list[str] = field(default_factory=list)
    posted_label: str | None = None
    id: int | None = None


@dataclass(slots=True, frozen=True)
class SeenEntry:
    id: int
    first_seen_at: datetime
