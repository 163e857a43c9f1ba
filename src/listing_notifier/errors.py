from __future__ import annotations


class ListingNotifierError(Exception):
    """Base class for errors raised while running a cycle."""


class FetchError(ListingNotifierError):
    """Network failure or timeout while fetching a listing or detail page."""


class ParseError(ListingNotifierError):
    """Page structure did not match what the parser expects."""


class PersistenceError(ListingNotifierError):
    """Dedup store unavailable or a write failed."""


class DispatchError(ListingNotifierError):
    """Notification endpoint rejected or failed a send."""
