from __future__ import annotations

import logging
from typing import Any

from app.schemas.listing import ListingCreate, ListingOut, SimilarListingOut
from app.services.auth import Actor
from app.services.embedding_sync import SyncScheduler, is_embedding_stale
from app.services.embedding_text import ListingContent, content_fingerprint
from app.services.errors import IncompleteListing, InvalidTransition, NotOwner
from app.services.lifecycle import ensure_owner
from app.services.listing_status import ListingStatus, is_embeddable
from app.services.listing_store import ListingRecord, ListingStore
from app.services.similarity import SimilarListing

log = logging.getLogger(__name__)


def content_from_create(data: ListingCreate) -> ListingContent:
    return ListingContent(
        title=data.title,
        property_type=data.property_type.value,
        transaction_type=data.transaction_type.value,
        description=data.description,
        province=data.province,
        city=data.city,
        district=data.district,
        bedrooms=data.bedrooms,
        bathrooms=data.bathrooms,
        features=tuple(data.features),
    )


def listing_out(record: ListingRecord) -> ListingOut:
    content = record.content
    return ListingOut(
        id=record.id,
        agent_id=record.agent_id,
        status=record.status.value,
        title=content.title,
        description=content.description,
        property_type=content.property_type,
        transaction_type=content.transaction_type,
        province=content.province,
        city=content.city,
        district=content.district,
        bedrooms=content.bedrooms,
        bathrooms=content.bathrooms,
        features=list(content.features),
        price=record.price,
        published_at=record.published_at,
        embedding_version=record.embedding_version,
        content_fingerprint=record.content_fingerprint,
        embedding_stale=is_embeddable(record.status) and is_embedding_stale(record),
        embedding_error=record.embedding_error,
    )


async def create_listing(*, store: ListingStore, actor: Actor, data: ListingCreate) -> ListingRecord:
    """New listings always start as drafts owned by the creating agent; drafts are not vectorized."""
    if not actor.agent_id:
        raise NotOwner("new", actor.api_key_id)

    record = await store.create(
        agent_id=actor.agent_id,
        content=content_from_create(data),
        price=data.price,
        actor_id=actor.api_key_id,
    )
    log.info("listing %s created as draft by agent %s", record.id, actor.agent_id)
    return record


async def update_listing_content(
    *,
    store: ListingStore,
    scheduler: SyncScheduler,
    listing_id: str,
    actor: Actor,
    changes: dict[str, Any],
) -> ListingRecord:
    """
    Apply a partial content edit. Status is never written here.

    Once a listing has left draft its embedding follows its content: a material
    change (one that moves the fingerprint) schedules a sync.
    Raises NotFound, NotOwner, InvalidTransition (closed listings are frozen)
    and IncompleteListing (clearing the price of a published listing).
    """
    record = await store.read(listing_id)
    ensure_owner(record, actor)

    if record.status == ListingStatus.CLOSED:
        raise InvalidTransition(listing_id, current=record.status.value, requested="edit")

    if "price" in changes and changes["price"] is None and record.status != ListingStatus.DRAFT:
        raise IncompleteListing(listing_id, [{
            "field": "price",
            "rule": "positive",
            "message": "Price cannot be removed once a listing is published",
        }])

    if not changes:
        return record

    before = content_fingerprint(record.content)
    # conditional on the status the checks above ran against
    applied = await store.update_content(
        listing_id, changes, expected_status=record.status, actor_id=actor.api_key_id
    )
    if not applied:
        current = await store.read(listing_id)
        reason = None if current.status == ListingStatus.CLOSED else "status changed concurrently"
        raise InvalidTransition(listing_id, current=current.status.value, requested="edit", reason=reason)

    updated = await store.read(listing_id)
    if is_embeddable(updated.status) and content_fingerprint(updated.content) != before:
        scheduler.schedule(listing_id)

    return updated


def similar_listing_out(item: SimilarListing) -> SimilarListingOut:
    return SimilarListingOut(
        id=item.id,
        title=item.title,
        property_type=item.property_type,
        transaction_type=item.transaction_type,
        price=item.price,
        province=item.province,
        city=item.city,
        district=item.district,
        bedrooms=item.bedrooms,
        bathrooms=item.bathrooms,
        features=list(item.features),
        published_at=item.published_at,
        similarity=item.similarity,
    )
