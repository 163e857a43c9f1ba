from __future__ import annotations

from typing import Callable

from listing_notifier.config import ListingSettings

from .base import ListingSource

ListingSourceFactory = Callable[[ListingSettings], ListingSource]

_SITE_PARSERS: dict[str, ListingSourceFactory] = {}


class SourceRegistrationError(ValueError):
    """Raised for an unknown listing site type or a site registered twice."""


def register_source(site_type: str) -> Callable[[ListingSourceFactory], ListingSourceFactory]:
    """Register the parser factory that handles ``listing.type == site_type``."""
    key = site_type.strip().lower()

    def decorator(factory: ListingSourceFactory) -> ListingSourceFactory:
        existing = _SITE_PARSERS.get(key)
        if existing is not None and existing is not factory:
            raise SourceRegistrationError(f"Listing site '{key}' already has a parser")
        _SITE_PARSERS[key] = factory
        return factory

    return decorator


def create_source(settings: ListingSettings) -> ListingSource:
    factory = _SITE_PARSERS.get(settings.type.strip().lower())
    if factory is None:
        raise SourceRegistrationError(
            f"No parser for listing site '{settings.type}' (known: {', '.join(registered_source_types()) or 'none'})"
        )
    return factory(settings)


def registered_source_types() -> list[str]:
    return sorted(_SITE_PARSERS)
