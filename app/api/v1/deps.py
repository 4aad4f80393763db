from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.services.embedding_provider import EmbeddingProvider, OpenAIEmbeddingProvider
from app.services.embedding_sync import EmbeddingSync, SyncScheduler
from app.services.lifecycle import LifecycleEngine
from app.services.listing_store import SqlListingStore
from app.services.similarity import SimilarityRetriever
from app.services.sync_scheduler import CelerySyncScheduler


def get_listing_store(db: AsyncSession = Depends(get_db)) -> SqlListingStore:
    return SqlListingStore(db)


def get_sync_scheduler() -> SyncScheduler:
    return CelerySyncScheduler()


@lru_cache
def get_embedding_provider() -> EmbeddingProvider:
    return OpenAIEmbeddingProvider()


def get_lifecycle_engine(
    store: SqlListingStore = Depends(get_listing_store),
    scheduler: SyncScheduler = Depends(get_sync_scheduler),
) -> LifecycleEngine:
    return LifecycleEngine(store, scheduler)


def get_similarity_retriever(
    store: SqlListingStore = Depends(get_listing_store),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
) -> SimilarityRetriever:
    return SimilarityRetriever(store, provider)


def get_embedding_sync(
    store: SqlListingStore = Depends(get_listing_store),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
) -> EmbeddingSync:
    return EmbeddingSync(store, provider)
