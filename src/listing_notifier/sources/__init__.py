"""Listing source implementations and registry."""

from .base import ListingSource
from .olx_source import OlxSource
from .registry import (
    SourceRegistrationError,
    create_source,
    register_source,
    registered_source_types,
)

__all__ = [
    "ListingSource",
    "OlxSource",
    "SourceRegistrationError",
    "create_source",
    "register_source",
    "registered_source_types",
]
