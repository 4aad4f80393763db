from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from app.core.telemetry import get_tracer
from app.services.embedding_provider import EmbeddingProvider
from app.services.errors import InvalidQuery
from app.services.listing_status import is_retrievable
from app.services.listing_store import EmbeddingCandidate, ListingRecord, ListingStore, SearchFilters

log = logging.getLogger(__name__)
tracer = get_tracer(__name__)

MIN_K = 1
MAX_K = 12
DEFAULT_K = 6

DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 50
MIN_QUERY_LENGTH = 2


@dataclass(frozen=True)
class SimilarListing:
    id: str
    title: str
    property_type: str
    transaction_type: str
    price: Decimal | None
    province: str
    city: str
    district: str | None
    bedrooms: int | None
    bathrooms: int | None
    features: tuple[str, ...]
    published_at: datetime | None
    similarity: float


def clamp_k(k: int) -> int:
    return max(MIN_K, min(MAX_K, k))


def _norm(v: Sequence[float]) -> float:
    return math.sqrt(math.fsum(x * x for x in v))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"dimension mismatch: {len(a)} != {len(b)}")
    na, nb = _norm(a), _norm(b)
    if na == 0.0 or nb == 0.0:
        return 0.0
    return math.fsum(x * y for x, y in zip(a, b)) / (na * nb)


def _published_ts(c: EmbeddingCandidate) -> float:
    return c.published_at.timestamp() if c.published_at else float("-inf")


def _summary(record: ListingRecord, similarity: float) -> SimilarListing:
    content = record.content
    return SimilarListing(
        id=record.id,
        title=content.title,
        property_type=content.property_type,
        transaction_type=content.transaction_type,
        price=record.price,
        province=content.province,
        city=content.city,
        district=content.district,
        bedrooms=content.bedrooms,
        bathrooms=content.bathrooms,
        features=content.features,
        published_at=record.published_at,
        similarity=similarity,
    )


@dataclass(frozen=True)
class SearchPage:
    results: list[SimilarListing]
    total: int


# listings can leave `available` between the scan and the re-read; score a few
# extra so a page is still full after they are dropped
OVERFETCH = 2


class SimilarityRetriever:
    """
    Exact cosine scan over eligible listings.

    The store filters candidates (available, has an embedding, not the subject,
    plus any search filters) before anything is scored, so an indexed
    nearest-neighbour lookup can replace the scan behind
    `list_available_with_embedding` without touching the ranking.
    `find_similar` never calls the embedding provider; `search` calls it once
    to embed the query.
    """

    def __init__(self, store: ListingStore, provider: EmbeddingProvider | None = None):
        self.store = store
        self.provider = provider

    async def find_similar(self, listing_id: str, k: int = DEFAULT_K) -> list[SimilarListing]:
        k = clamp_k(k)
        with tracer.start_as_current_span("similarity.find_similar") as span:
            span.set_attribute("listing.id", listing_id)
            span.set_attribute("similarity.k", k)

            subject = await self.store.read(listing_id)
            if not subject.embedding:
                return []

            candidates = await self.store.list_available_with_embedding(exclude_id=listing_id)
            span.set_attribute("similarity.candidates", len(candidates))

            scored = _rank(subject.embedding, candidates, exclude_id=listing_id)
            return await self._resolve(scored, k)

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        offset: int = 0,
    ) -> SearchPage:
        """
        Rank available listings against a free-text query.

        Raises InvalidQuery for a query shorter than MIN_QUERY_LENGTH, and lets
        ProviderUnavailable / ProviderTimeout through: there is nothing to rank
        without a query vector.
        """
        text = (query or "").strip()
        if len(text) < MIN_QUERY_LENGTH:
            raise InvalidQuery(f"Search query must be at least {MIN_QUERY_LENGTH} characters")
        if self.provider is None:
            raise RuntimeError("search requires an embedding provider")

        limit = max(1, min(MAX_SEARCH_LIMIT, limit))
        offset = max(0, offset)

        with tracer.start_as_current_span("similarity.search") as span:
            span.set_attribute("search.limit", limit)
            span.set_attribute("search.offset", offset)

            # listing text is lower-cased before embedding; the query must match
            vector = await self.provider.embed(text.lower())

            candidates = await self.store.list_available_with_embedding(filters=filters)
            span.set_attribute("similarity.candidates", len(candidates))

            scored = _rank(vector, candidates)
            results = await self._resolve(scored[offset:], limit)
            return SearchPage(results=results, total=len(scored))

    async def _resolve(self, scored: list[tuple[float, EmbeddingCandidate]], k: int) -> list[SimilarListing]:
        top = scored[: k * OVERFETCH]
        records = await self.store.read_many([c.id for _, c in top])

        results: list[SimilarListing] = []
        for score, c in top:
            record = records.get(c.id)
            # status may have moved between the candidate scan and this read
            if record is None or not is_retrievable(record.status):
                continue
            results.append(_summary(record, score))
            if len(results) == k:
                break
        return results


def _rank(
    query: Sequence[float], candidates: list[EmbeddingCandidate], *, exclude_id: str | None = None
) -> list[tuple[float, EmbeddingCandidate]]:
    scored: list[tuple[float, EmbeddingCandidate]] = []
    for c in candidates:
        if c.id == exclude_id:
            continue
        if len(c.embedding) != len(query):
            log.warning("skipping listing %s: embedding has %d dimensions", c.id, len(c.embedding))
            continue
        scored.append((cosine_similarity(query, c.embedding), c))

    # best score first; equal scores -> most recently published first
    scored.sort(key=lambda s: (-s[0], -_published_ts(s[1])))
    return scored
