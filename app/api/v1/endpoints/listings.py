from fastapi import APIRouter, Depends

from app.api.v1.deps import get_lifecycle_engine, get_listing_store, get_sync_scheduler
from app.schemas.listing import ListingCreate, ListingOut, ListingUpdate, TransitionOut
from app.services.auth import Actor, get_actor, require_agent
from app.services.embedding_sync import SyncScheduler
from app.services.errors import NotFound, NotOwner
from app.services.lifecycle import LifecycleEngine, ensure_owner
from app.services.listing_status import ListingStatus, Transition
from app.services.listing_store import SqlListingStore
from app.services.listings import create_listing, listing_out, update_listing_content

router = APIRouter()


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_draft_listing(
    payload: ListingCreate,
    actor: Actor = Depends(require_agent),
    store: SqlListingStore = Depends(get_listing_store),
) -> ListingOut:
    record = await create_listing(store=store, actor=actor, data=payload)
    return listing_out(record)


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def get_listing(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    store: SqlListingStore = Depends(get_listing_store),
) -> ListingOut:
    record = await store.read(listing_id)

    # Only the owner (or an admin) can see draft/unlisted listings
    if record.status in (ListingStatus.DRAFT, ListingStatus.UNLISTED):
        try:
            ensure_owner(record, actor)
        except NotOwner:
            raise NotFound(listing_id) from None

    return listing_out(record)


@router.patch("/listings/{listing_id}", response_model=ListingOut)
async def update_listing(
    listing_id: str,
    payload: ListingUpdate,
    actor: Actor = Depends(get_actor),
    store: SqlListingStore = Depends(get_listing_store),
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> ListingOut:
    record = await update_listing_content(
        store=store,
        scheduler=scheduler,
        listing_id=listing_id,
        actor=actor,
        changes=payload.changes(),
    )
    return listing_out(record)


@router.post("/listings/{listing_id}/{transition}", response_model=TransitionOut)
async def transition_listing(
    listing_id: str,
    transition: Transition,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> TransitionOut:
    result = await engine.apply(transition, listing_id, actor)
    return TransitionOut(
        listing_id=result.listing_id,
        transition=result.transition.value,
        previous_status=result.previous_status.value,
        status=result.status.value,
        published_at=result.published_at,
    )
