from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from app.services.auth import Actor
from app.services.embedding_sync import SyncScheduler
from app.services.errors import IncompleteListing, InvalidTransition, NotOwner
from app.services.listing_status import (
    MIN_DESCRIPTION_LENGTH,
    MIN_TITLE_LENGTH,
    ListingStatus,
    Transition,
    target_status,
)
from app.services.listing_store import ListingRecord, ListingStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    listing_id: str
    transition: Transition
    previous_status: ListingStatus
    status: ListingStatus
    published_at: datetime | None


def ensure_owner(record: ListingRecord, actor: Actor) -> None:
    if actor.is_admin:
        return
    if actor.agent_id is None or actor.agent_id != record.agent_id:
        raise NotOwner(record.id, actor.agent_id or actor.api_key_id)


def publish_violations(record: ListingRecord) -> list[dict[str, Any]]:
    """Every publish rule the listing breaks (empty list = publishable)."""
    violations: list[dict[str, Any]] = []
    content = record.content

    if len(content.title or "") < MIN_TITLE_LENGTH:
        violations.append({
            "field": "title",
            "rule": "min_length",
            "min_length": MIN_TITLE_LENGTH,
            "message": f"Title must be at least {MIN_TITLE_LENGTH} characters",
        })
    if len(content.description or "") < MIN_DESCRIPTION_LENGTH:
        violations.append({
            "field": "description",
            "rule": "min_length",
            "min_length": MIN_DESCRIPTION_LENGTH,
            "message": f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters",
        })
    if record.price is None or record.price <= 0:
        violations.append({
            "field": "price",
            "rule": "positive",
            "message": "Price must be set and greater than zero",
        })
    return violations


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleEngine:
    """
    The only writer of listing status.

    Each operation reads the persisted status, checks ownership, the state graph
    and (for publish) the completeness gate, then applies the move with a status
    compare-and-swap. The publish CAS also re-checks the gate in SQL. A lost CAS is
    never retried: it is reported as IncompleteListing when a concurrent edit broke
    the gate, otherwise as InvalidTransition.
    """

    def __init__(
        self,
        store: ListingStore,
        scheduler: SyncScheduler,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.scheduler = scheduler
        self._clock = clock

    async def publish(self, listing_id: str, actor: Actor) -> TransitionResult:
        result = await self._apply(Transition.PUBLISH, listing_id, actor)
        # fire-and-forget: the outcome of the embedding never changes the outcome of publish
        self.scheduler.schedule(listing_id)
        return result

    async def unlist(self, listing_id: str, actor: Actor) -> TransitionResult:
        # the embedding is kept for a fast republish; retrieval ignores non-available listings
        return await self._apply(Transition.UNLIST, listing_id, actor)

    async def reserve(self, listing_id: str, actor: Actor) -> TransitionResult:
        return await self._apply(Transition.RESERVE, listing_id, actor)

    async def release(self, listing_id: str, actor: Actor) -> TransitionResult:
        return await self._apply(Transition.RELEASE, listing_id, actor)

    async def close(self, listing_id: str, actor: Actor) -> TransitionResult:
        return await self._apply(Transition.CLOSE, listing_id, actor)

    async def apply(self, transition: Transition, listing_id: str, actor: Actor) -> TransitionResult:
        handler = getattr(self, transition.value)
        return await handler(listing_id, actor)

    async def _apply(self, transition: Transition, listing_id: str, actor: Actor) -> TransitionResult:
        record = await self.store.read(listing_id)
        ensure_owner(record, actor)

        next_status = target_status(transition, record.status)
        if next_status is None:
            raise InvalidTransition(listing_id, current=record.status.value, requested=transition.value)

        is_publish = transition == Transition.PUBLISH
        published_at = None
        if is_publish:
            violations = publish_violations(record)
            if violations:
                raise IncompleteListing(listing_id, violations)
            published_at = self._clock()

        applied = await self.store.compare_and_swap_status(
            listing_id,
            record.status,
            next_status,
            published_at=published_at,
            actor_id=actor.api_key_id,
            require_publishable=is_publish,
        )
        if not applied:
            current = await self.store.read(listing_id)
            log.info(
                "%s on listing %s lost the race: expected %s, found %s",
                transition.value, listing_id, record.status.value, current.status.value,
            )
            if is_publish and current.status == record.status:
                # status held, so a concurrent edit broke the gate
                violations = publish_violations(current)
                if violations:
                    raise IncompleteListing(listing_id, violations)
            raise InvalidTransition(
                listing_id,
                current=current.status.value,
                requested=transition.value,
                reason="listing changed concurrently",
            )

        updated = await self.store.read(listing_id)
        log.info("listing %s: %s -> %s (%s)", listing_id, record.status.value, next_status.value, transition.value)
        return TransitionResult(
            listing_id=listing_id,
            transition=transition,
            previous_status=record.status,
            status=next_status,
            published_at=updated.published_at,
        )
