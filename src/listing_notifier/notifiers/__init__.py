"""Notifier implementations."""

from .base import Notifier
from .telegram_media_group import (
    TelegramMediaGroupNotifier,
    build_media_group,
    render_caption,
)

__all__ = [
    "Notifier",
    "TelegramMediaGroupNotifier",
    "build_media_group",
    "render_caption",
]
