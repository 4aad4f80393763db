import os

# Settings are read at import time; point everything at local, offline defaults first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("INTERNAL_ADMIN_KEY", "test-internal")
os.environ.setdefault("API_KEY_PEPPER", "test-pepper")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")

from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base + all models so metadata is complete
from app.models.base import Base
from app.models import Agent, ApiKey, Listing  # noqa: F401

from app.api.v1.deps import get_embedding_provider, get_sync_scheduler
from app.core.db import get_db
from app.main import app
from app.services.auth import Actor
from app.services.embedding_sync import EmbeddingSync
from app.services.embedding_text import ListingContent
from app.services.lifecycle import LifecycleEngine
from app.services.listing_status import ListingStatus
from app.services.listing_store import SqlListingStore
from app.services.similarity import SimilarityRetriever

from tests.fixtures_seed import seed_admin, seed_agent, seed_other_agent  # noqa: F401
from tests.helpers import VALID_CONTENT, FakeEmbeddingProvider, RecordingScheduler


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    # a file database so separate sessions get separate connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session):
    return SqlListingStore(db_session)


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def lifecycle(store, scheduler):
    return LifecycleEngine(store, scheduler)


@pytest.fixture
def embedding_sync(store, provider):
    return EmbeddingSync(store, provider)


@pytest.fixture
def retriever(store, provider):
    return SimilarityRetriever(store, provider)


@pytest.fixture
def agent_actor(seed_agent):
    return Actor(api_key_id=seed_agent["agent_api_key_id"], role="agent", agent_id=seed_agent["agent_id"])


@pytest.fixture
def other_actor(seed_other_agent):
    return Actor(
        api_key_id=seed_other_agent["agent_api_key_id"], role="agent", agent_id=seed_other_agent["agent_id"]
    )


@pytest.fixture
def admin_actor(seed_admin):
    return Actor(api_key_id=seed_admin["admin_api_key_id"], role="admin", agent_id=None)


# how to reach each status from draft through the lifecycle engine
PATH_TO_STATUS = {
    ListingStatus.DRAFT: [],
    ListingStatus.AVAILABLE: ["publish"],
    ListingStatus.RESERVED: ["publish", "reserve"],
    ListingStatus.UNLISTED: ["publish", "unlist"],
    ListingStatus.CLOSED: ["publish", "close"],
}


@pytest.fixture
def make_listing(store, admin_actor, seed_agent, scheduler):
    async def _make(
        *,
        status: ListingStatus = ListingStatus.DRAFT,
        content: ListingContent = VALID_CONTENT,
        price: Decimal | None = Decimal("8500000.00"),
        engine: LifecycleEngine | None = None,
    ):
        record = await store.create(agent_id=seed_agent["agent_id"], content=content, price=price, actor_id="test")
        engine = engine or LifecycleEngine(store, RecordingScheduler())
        for step in PATH_TO_STATUS[status]:
            await getattr(engine, step)(record.id, admin_actor)
        return await store.read(record.id)

    return _make


@pytest_asyncio.fixture
async def client(session_factory, scheduler, provider):
    """
    HTTP client over the ASGI app with a fresh session per request,
    a recording sync scheduler and the fake embedding provider.
    """
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_sync_scheduler] = lambda: scheduler
    app.dependency_overrides[get_embedding_provider] = lambda: provider

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
