import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from app.core.config import settings
import app.models  # noqa: F401  # ensures Models are registered
from app.services.embedding_provider import OpenAIEmbeddingProvider
from app.services.embedding_sync import EmbeddingSync
from app.services.errors import NotFound
from app.services.listing_store import SqlListingStore

log = logging.getLogger(__name__)


async def _sync_listing_embedding(listing_id: str) -> str:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    provider = OpenAIEmbeddingProvider()

    try:
        async with Session() as db:
            outcome = await EmbeddingSync(SqlListingStore(db), provider).sync(listing_id)
    finally:
        await provider.aclose()
        await engine.dispose()

    return outcome.status.value


# No Celery-level retries: provider failures are recorded on the listing and
# picked up again by the sweeper once their backoff expires.
@celery.task(name="worker.tasks.sync_listing_embedding", bind=True)
def sync_listing_embedding(self, listing_id: str) -> str:
    try:
        return asyncio.run(_sync_listing_embedding(listing_id))
    except NotFound:
        log.warning("sync requested for unknown listing %s", listing_id)
        return "not_found"
