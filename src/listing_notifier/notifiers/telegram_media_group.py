from __future__ import annotations

import html
import json
import logging
from typing import Any

import requests

from listing_notifier.config import TELEGRAM_MEDIA_GROUP_LIMIT
from listing_notifier.errors import DispatchError
from listing_notifier.models import Record

from .base import Notifier

logger = logging.getLogger(__name__)

CAPTION_LIMIT = 1024
_ELLIPSIS = "…"


class TelegramMediaGroupNotifier(Notifier):
    def __init__(
        self,
        *,
        bot_token: str,
        chat_id: str,
        api_base_url: str = "https://api.telegram.org",
        max_images: int = TELEGRAM_MEDIA_GROUP_LIMIT,
        timeout_seconds: int = 15,
    ) -> None:
        self.chat_id = chat_id
        self.endpoint = f"{api_base_url.rstrip('/')}/bot{bot_token}/sendMediaGroup"
        self.max_images = max_images
        self.timeout_seconds = timeout_seconds

    def post(self, record: Record) -> None:
        media = build_media_group(record, self.max_images)
        logger.info("Telegram request for %s (%d photos)", record.url, len(media))
        try:
            response = requests.post(
                self.endpoint,
                data={"chat_id": self.chat_id, "media": json.dumps(media, ensure_ascii=False)},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise DispatchError(f"sendMediaGroup failed for {record.url}: {_redact(str(exc))}") from exc

        if response.status_code >= 400:
            raise DispatchError(
                f"Telegram returned {response.status_code} for {record.url}: {response.text}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise DispatchError(f"Telegram returned a non-JSON body for {record.url}") from exc

        if not isinstance(body, dict) or not body.get("ok", False):
            description = body.get("description") if isinstance(body, dict) else body
            raise DispatchError(f"Telegram rejected {record.url}: {description}")


def build_media_group(record: Record, max_images: int = TELEGRAM_MEDIA_GROUP_LIMIT) -> list[dict[str, Any]]:
    media: list[dict[str, Any]] = [
        {"type": "photo", "media": url} for url in record.image_urls[:max_images]
    ]
    if media:
        media[0]["caption"] = render_caption(record)
        media[0]["parse_mode"] = "HTML"
    return media


def render_caption(record: Record) -> str:
    title = record.title.strip()
    price = record.price.strip()
    description = record.description.strip()

    # Telegram counts the caption limit on the visible text, after markup is parsed.
    visible_overhead = len(title) + len(price) + len("\n\n\n")
    budget = CAPTION_LIMIT - visible_overhead
    if budget <= 0:
        description = ""
        title = _truncate(title, CAPTION_LIMIT - len(price) - len("\n\n\n"))
    elif len(description) > budget:
        description = _truncate(description, budget)

    lines = [
        f'<a href="{html.escape(record.url, quote=True)}">{html.escape(title)}</a>',
        f"<strong>{html.escape(price)}</strong>",
        "",
        html.escape(description),
    ]
    return "\n".join(lines).rstrip()


def _truncate(value: str, limit: int) -> str:
    if limit <= 0:
        return ""
    if len(value) <= limit:
        return value
    return value[: max(limit - len(_ELLIPSIS), 0)].rstrip() + _ELLIPSIS


def _redact(message: str) -> str:
    # requests includes the full URL, which embeds the bot token.
    start = message.find("/bot")
    if start == -1:
        return message
    end = message.find("/", start + 4)
    if end == -1:
        return message
    return f"{message[: start + 4]}<redacted>{message[end:]}"
