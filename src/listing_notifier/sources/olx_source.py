from __future__ import annotations

import logging
import re

import requests
from bs4 import BeautifulSoup, Tag

from listing_notifier.config import ListingSettings
from listing_notifier.errors import FetchError, ParseError
from listing_notifier.models import CandidateEntry, Record
from listing_notifier.utils.url_utils import absolute_url

from .base import ListingSource
from .registry import register_source

logger = logging.getLogger(__name__)

_GRID_SELECTOR = ".listing-grid-container"
_CARD_SELECTOR = '[data-cy="l-card"]'
_PROMOTED_SELECTOR = '[data-testid="adCard-featured"]'
_POSTED_AT_SELECTOR = '[data-cy="ad-posted-at"]'
_PHOTO_SELECTOR = '[data-cy="adPhotos-swiperSlide"] img'
_TITLE_SELECTOR = '[data-cy="ad_title"]'
_PRICE_SELECTOR = '[data-testid="ad-price-container"] h3'
_DESCRIPTION_SELECTOR = '[data-cy="ad_description"] > div'
_DIGITS = re.compile(r"^\d+$")
_MULTISPACE = re.compile(r"[ \t\r\f\v]+")


class OlxSource(ListingSource):
    def __init__(self, settings: ListingSettings) -> None:
        super().__init__(source_id=settings.type)
        self.base_url = settings.base_url
        self.timeout_seconds = settings.timeout_seconds
        self.fresh_marker = settings.fresh_marker
        self.headers = {"User-Agent": settings.user_agent}

    def fetch_listing(self, url: str) -> list[CandidateEntry]:
        page = self._get(url)
        soup = BeautifulSoup(page, "html.parser")

        container = soup.select_one(_GRID_SELECTOR) or soup
        cards = container.select(_CARD_SELECTOR)
        if not cards:
            raise ParseError(f"listing page {url} has no cards matching {_CARD_SELECTOR}")

        candidates: list[CandidateEntry] = []
        for position, card in enumerate(cards):
            candidate = self._card_to_candidate(card)
            if candidate is None:
                logger.warning("Skipping listing card #%d without id or link on %s", position, url)
                continue
            candidates.append(candidate)

        logger.info(
            "Listing %s returned %d cards (%d promoted)",
            url,
            len(candidates),
            sum(1 for candidate in candidates if candidate.is_promoted),
        )
        return candidates

    def fetch_detail(self, url: str) -> Record | None:
        page = self._get(url)
        soup = BeautifulSoup(page, "html.parser")

        posted_label = _text(soup.select_one(_POSTED_AT_SELECTOR))
        if not posted_label.startswith(self.fresh_marker):
            logger.info("Skipping %s: posted label %r is outside the tracked window", url, posted_label)
            return None

        title = _text(soup.select_one(_TITLE_SELECTOR)) or _text(soup.select_one("h1"))
        if not title:
            raise ParseError(f"detail page {url} has no title")

        image_urls: list[str] = []
        for image in soup.select(_PHOTO_SELECTOR):
            src = str(image.get("src") or image.get("data-src") or "").strip()
            if src and src not in image_urls:
                image_urls.append(src)

        logger.info("Parsed advertisement %s (%d images)", url, len(image_urls))
        return Record(
            url=url,
            title=title,
            price=_text(soup.select_one(_PRICE_SELECTOR)),
            description=_multiline_text(soup.select_one(_DESCRIPTION_SELECTOR)),
            image_urls=image_urls,
            posted_label=posted_label,
        )

    def _card_to_candidate(self, card: Tag) -> CandidateEntry | None:
        raw_id = str(card.get("id") or card.get("data-id") or "").strip()
        link = card.select_one("a[href]")
        if not _DIGITS.match(raw_id) or link is None:
            return None

        detail_url = absolute_url(self.base_url, str(link.get("href")))
        if not detail_url:
            return None

        return CandidateEntry(
            id=int(raw_id),
            detail_url=detail_url,
            is_promoted=card.select_one(_PROMOTED_SELECTOR) is not None,
        )

    def _get(self, url: str) -> str:
        try:
            response = requests.get(url, timeout=self.timeout_seconds, headers=self.headers)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(f"failed to fetch {url}: {exc}") from exc
        return response.text


def _text(element: Tag | None) -> str:
    if element is None:
        return ""
    return _MULTISPACE.sub(" ", element.get_text(" ", strip=True)).strip()


def _multiline_text(element: Tag | None) -> str:
    if element is None:
        return ""
    lines = [
        _MULTISPACE.sub(" ", line).strip()
        for line in element.get_text("\n").splitlines()
    ]
    return "\n".join(line for line in lines if line)


@register_source("olx")
def _build_olx_source(settings: ListingSettings) -> ListingSource:
    return OlxSource(settings)
