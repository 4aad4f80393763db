from __future__ import annotations

from typing import Any


class ListingError(Exception):
    """Base for errors surfaced to callers of the listing core."""

    code = "listing_error"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFound(ListingError):
    code = "not_found"

    def __init__(self, listing_id: str):
        super().__init__(f"Listing {listing_id} not found")
        self.listing_id = listing_id


class NotOwner(ListingError):
    code = "not_owner"

    def __init__(self, listing_id: str, actor_id: str):
        super().__init__(f"Actor {actor_id} cannot act on listing {listing_id}")
        self.listing_id = listing_id
        self.actor_id = actor_id


class InvalidTransition(ListingError):
    """Requested transition is not in the graph from the current status, or lost a concurrent race."""

    code = "invalid_transition"

    def __init__(self, listing_id: str, *, current: str, requested: str, reason: str | None = None):
        message = f"Cannot {requested} a listing with status: {current}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, details=[{"current": current, "requested": requested}])
        self.listing_id = listing_id
        self.current = current
        self.requested = requested


class IncompleteListing(ListingError):
    """Publish gate failed. Carries every violated rule, not only the first."""

    code = "incomplete_listing"

    def __init__(self, listing_id: str, violations: list[dict[str, Any]]):
        super().__init__("Listing is incomplete", details=violations)
        self.listing_id = listing_id
        self.violations = violations


class ProviderError(Exception):
    """Embedding provider failure. Recoverable; never surfaced by lifecycle operations."""


class ProviderUnavailable(ProviderError):
    pass


class ProviderTimeout(ProviderError):
    pass


class InvalidQuery(ListingError):
    """Free-text search query is missing or too short to embed."""

    code = "invalid_query"

    def __init__(self, message: str):
        super().__init__(message)
