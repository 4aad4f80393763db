import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from app.core.config import settings
import app.models  # noqa: F401  # ensures Models are registered
from app.services.embedding_provider import OpenAIEmbeddingProvider
from app.services.embedding_sync import EmbeddingSync, SweepReport
from app.services.listing_store import SqlListingStore


log = logging.getLogger(__name__)

POLL_SECONDS = settings.embedding_sweep_poll_seconds
BATCH_SIZE = settings.embedding_sweep_batch_size


async def _tick(provider: OpenAIEmbeddingProvider) -> SweepReport:
    log.info("tick: start")
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with Session() as db:
            return await EmbeddingSync(SqlListingStore(db), provider).sweep(batch_size=BATCH_SIZE)
    finally:
        await engine.dispose()


async def main():
    logging.basicConfig(level=logging.INFO)
    log.info("sweeper: started")

    # Stopping at any point is safe: staleness is derived from persisted rows on every tick.
    provider = OpenAIEmbeddingProvider()
    try:
        while True:
            try:
                await _tick(provider)
            except Exception:
                log.exception("sweeper: tick crashed")
            await asyncio.sleep(POLL_SECONDS)
    finally:
        await provider.aclose()


if __name__ == "__main__":
    asyncio.run(main())
