from datetime import datetime, timedelta, timezone

from app.services.embedding_sync import EmbeddingSync, SyncStatus, is_embedding_stale
from app.services.embedding_text import content_fingerprint
from app.services.errors import ProviderTimeout, ProviderUnavailable
from app.services.listing_status import ListingStatus
from app.services.listing_store import SqlListingStore
from app.services.listings import update_listing_content
from tests.helpers import FakeEmbeddingProvider, RecordingScheduler


async def test_draft_is_not_vectorized(make_listing, embedding_sync, provider, store):
    listing = await make_listing()

    outcome = await embedding_sync.sync(listing.id)

    assert outcome.status == SyncStatus.SKIPPED
    assert provider.calls == []
    assert (await store.read(listing.id)).embedding is None


async def test_closed_is_not_vectorized(make_listing, embedding_sync, provider):
    listing = await make_listing(status=ListingStatus.CLOSED)

    outcome = await embedding_sync.sync(listing.id)

    assert outcome.status == SyncStatus.SKIPPED
    assert provider.calls == []


async def test_first_sync_embeds_published_listing(make_listing, embedding_sync, provider, store):
    listing = await make_listing(status=ListingStatus.AVAILABLE)

    outcome = await embedding_sync.sync(listing.id)

    assert outcome.status == SyncStatus.EMBEDDED
    assert outcome.embedding_version == 1
    after = await store.read(listing.id)
    assert after.embedding is not None
    assert len(after.embedding) == provider.dimensions
    assert after.embedding_version == 1
    assert after.content_fingerprint == content_fingerprint(after.content)
    assert not is_embedding_stale(after)


async def test_sync_is_idempotent(make_listing, embedding_sync, provider, store):
    listing = await make_listing(status=ListingStatus.AVAILABLE)

    await embedding_sync.sync(listing.id)
    second = await embedding_sync.sync(listing.id)

    assert second.status == SyncStatus.UNCHANGED
    assert len(provider.calls) == 1
    assert (await store.read(listing.id)).embedding_version == 1


async def test_unlisted_listing_keeps_its_embedding_fresh(make_listing, embedding_sync, store):
    listing = await make_listing(status=ListingStatus.UNLISTED)

    outcome = await embedding_sync.sync(listing.id)

    assert outcome.status == SyncStatus.EMBEDDED
    assert (await store.read(listing.id)).embedding is not None


async def test_content_edit_bumps_version_once(make_listing, embedding_sync, store, agent_actor):
    listing = await make_listing(status=ListingStatus.AVAILABLE)
    await embedding_sync.sync(listing.id)
    first = await store.read(listing.id)

    scheduler = RecordingScheduler()
    await update_listing_content(
        store=store,
        scheduler=scheduler,
        listing_id=listing.id,
        actor=agent_actor,
        changes={"description": first.content.description + " Newly renovated kitchen."},
    )
    assert scheduler.scheduled == [listing.id]
    assert is_embedding_stale(await store.read(listing.id))

    outcome = await embedding_sync.sync(listing.id)

    assert outcome.status == SyncStatus.EMBEDDED
    after = await store.read(listing.id)
    assert after.embedding_version == first.embedding_version + 1
    assert after.content_fingerprint != first.content_fingerprint
    assert after.content_fingerprint == content_fingerprint(after.content)


async def test_price_edit_does_not_schedule_sync(make_listing, embedding_sync, store, agent_actor):
    listing = await make_listing(status=ListingStatus.AVAILABLE)
    await embedding_sync.sync(listing.id)

    scheduler = RecordingScheduler()
    await update_listing_content(
        store=store,
        scheduler=scheduler,
        listing_id=listing.id,
        actor=agent_actor,
        changes={"price": listing.price + 1},
    )

    assert scheduler.scheduled == []
    assert not is_embedding_stale(await store.read(listing.id))


async def test_provider_failure_leaves_triple_untouched(make_listing, embedding_sync, provider, store):
    listing = await make_listing(status=ListingStatus.AVAILABLE)
    await embedding_sync.sync(listing.id)
    before = await store.read(listing.id)
    await store.update_content(listing.id, {"title": "Renovated two bedroom condo in Makati"}, actor_id="test")

    provider.fail_with = ProviderUnavailable("upstream 503")
    outcome = await embedding_sync.sync(listing.id)

    assert outcome.status == SyncStatus.FAILED
    assert "ProviderUnavailable" in outcome.error
    after = await store.read(listing.id)
    assert after.embedding == before.embedding
    assert after.embedding_version == before.embedding_version
    assert after.content_fingerprint == before.content_fingerprint
    assert after.embedding_attempts == 1
    assert after.embedding_retry_at is not None
    assert "upstream 503" in after.embedding_error


async def test_wrong_dimensions_count_as_provider_failure(make_listing, store):
    class ShortProvider(FakeEmbeddingProvider):
        async def embed(self, text):
            return (await super().embed(text))[:10]

    listing = await make_listing(status=ListingStatus.AVAILABLE)

    outcome = await EmbeddingSync(store, ShortProvider()).sync(listing.id)

    assert outcome.status == SyncStatus.FAILED
    after = await store.read(listing.id)
    assert after.embedding is None
    assert after.embedding_version == 0


async def test_successful_sync_clears_retry_marker(make_listing, provider, store):
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    listing = await make_listing(status=ListingStatus.AVAILABLE)

    provider.fail_with = ProviderTimeout("timed out")
    await EmbeddingSync(store, provider, clock=lambda: now).sync(listing.id)
    provider.fail_with = None
    outcome = await EmbeddingSync(store, provider, clock=lambda: now).sync(listing.id)

    assert outcome.status == SyncStatus.EMBEDDED
    after = await store.read(listing.id)
    assert after.embedding_error is None
    assert after.embedding_attempts == 0
    assert after.embedding_retry_at is None


async def test_sweep_embeds_stale_listings(make_listing, embedding_sync, store):
    draft = await make_listing()
    fresh = await make_listing(status=ListingStatus.AVAILABLE)
    await embedding_sync.sync(fresh.id)
    missing = await make_listing(status=ListingStatus.AVAILABLE)
    unlisted = await make_listing(status=ListingStatus.UNLISTED)
    closed = await make_listing(status=ListingStatus.CLOSED)

    report = await embedding_sync.sweep(batch_size=2)

    assert report.scanned == 3
    assert report.stale == 2
    assert report.embedded == 2
    assert report.failed == 0
    for listing_id in (missing.id, unlisted.id):
        assert not is_embedding_stale(await store.read(listing_id))
    assert (await store.read(draft.id)).embedding is None
    assert (await store.read(closed.id)).embedding is None

    again = await embedding_sync.sweep(batch_size=2)
    assert again.stale == 0


async def test_sweep_respects_retry_marker(make_listing, provider, store):
    now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    listing = await make_listing(status=ListingStatus.AVAILABLE)

    provider.fail_with = ProviderTimeout("timed out")
    await EmbeddingSync(store, provider, clock=lambda: now).sync(listing.id)
    provider.fail_with = None

    too_soon = await EmbeddingSync(store, provider, clock=lambda: now + timedelta(seconds=1)).sweep()
    assert too_soon.scanned == 0

    later = await EmbeddingSync(store, provider, clock=lambda: now + timedelta(hours=2)).sweep()
    assert later.embedded == 1
    assert not is_embedding_stale(await store.read(listing.id))


async def test_sweep_counts_failures(make_listing, embedding_sync, provider):
    await make_listing(status=ListingStatus.AVAILABLE)
    provider.fail_with = ProviderUnavailable("down")

    report = await embedding_sync.sweep()

    assert report.stale == 1
    assert report.failed == 1
    assert report.embedded == 0


async def test_concurrent_sync_converges(make_listing, session_factory, store):
    """A second worker embeds the listing while we wait on the provider; we lose the CAS and accept its write."""
    listing = await make_listing(status=ListingStatus.AVAILABLE)

    class RacingProvider(FakeEmbeddingProvider):
        async def embed(self, text):
            if not self.calls:
                async with session_factory() as other:
                    await EmbeddingSync(SqlListingStore(other), FakeEmbeddingProvider()).sync(listing.id)
            return await super().embed(text)

    outcome = await EmbeddingSync(store, RacingProvider()).sync(listing.id)

    assert outcome.status == SyncStatus.UNCHANGED
    after = await store.read(listing.id)
    assert after.embedding_version == 1
    assert after.content_fingerprint == content_fingerprint(after.content)


async def test_edit_during_embedding_leaves_listing_stale(make_listing, session_factory, embedding_sync, store):
    """The stored fingerprint always describes the text that was embedded, never newer content."""
    listing = await make_listing(status=ListingStatus.AVAILABLE)

    class EditingProvider(FakeEmbeddingProvider):
        async def embed(self, text):
            if not self.calls:
                async with session_factory() as other:
                    await SqlListingStore(other).update_content(
                        listing.id, {"title": "Penthouse with skyline views in Makati"}, actor_id="test"
                    )
            return await super().embed(text)

    outcome = await EmbeddingSync(store, EditingProvider()).sync(listing.id)

    assert outcome.status == SyncStatus.EMBEDDED
    assert outcome.content_fingerprint == content_fingerprint(listing.content)
    after = await store.read(listing.id)
    assert is_embedding_stale(after)

    follow_up = await embedding_sync.sync(listing.id)
    assert follow_up.status == SyncStatus.EMBEDDED
    assert follow_up.embedding_version == 2
