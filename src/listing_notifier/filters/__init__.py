"""Filter implementations."""

from .base import Filter, FilterResult
from .photo_filter import PhotoCountFilter

__all__ = ["Filter", "FilterResult", "PhotoCountFilter"]
