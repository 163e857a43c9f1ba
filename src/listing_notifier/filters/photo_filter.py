from __future__ import annotations

from listing_notifier.models import Record

from .base import Filter, FilterResult


class PhotoCountFilter(Filter):
    """Require at least ``min_images`` photos; a media group needs two or more."""

    def __init__(self, min_images: int = 2) -> None:
        self.min_images = min_images

    def evaluate(self, record: Record) -> FilterResult:
        count = len(record.image_urls)
        if count < self.min_images:
            return FilterResult(
                matched=False,
                reasons=[f"only {count} photo(s), need at least {self.min_images}"],
            )
        return FilterResult(matched=True, reasons=[f"{count} photos"])
