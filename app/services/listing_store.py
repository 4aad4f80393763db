from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Protocol, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.listing import Listing
from app.services.embedding_text import ListingContent
from app.services.errors import NotFound
from app.services.listing_status import (
    EMBEDDABLE_STATUSES,
    MIN_DESCRIPTION_LENGTH,
    MIN_TITLE_LENGTH,
    ListingStatus,
)

# Columns a content edit may write. status and the embedding triple are deliberately absent.
CONTENT_COLUMNS = (
    "title",
    "description",
    "property_type",
    "transaction_type",
    "province",
    "city",
    "district",
    "bedrooms",
    "bathrooms",
    "features",
    "price",
)


@dataclass(frozen=True)
class ListingRecord:
    id: str
    agent_id: str
    status: ListingStatus
    content: ListingContent
    price: Decimal | None
    published_at: datetime | None
    embedding: list[float] | None
    embedding_version: int
    content_fingerprint: str | None
    embedding_error: str | None = None
    embedding_attempts: int = 0
    embedding_retry_at: datetime | None = None


@dataclass(frozen=True)
class EmbeddingCandidate:
    id: str
    embedding: list[float]
    published_at: datetime | None


@dataclass(frozen=True)
class SearchFilters:
    """Structured narrowing for free-text search. Unset fields do not filter."""

    property_type: str | None = None
    transaction_type: str | None = None
    price_min: Decimal | None = None
    price_max: Decimal | None = None
    province: str | None = None  # case-insensitive substring
    city: str | None = None  # case-insensitive substring
    bedrooms_min: int | None = None
    bedrooms_max: int | None = None
    bathrooms_min: int | None = None
    bathrooms_max: int | None = None


def _filter_clauses(filters: SearchFilters) -> list:
    clauses = []
    if filters.property_type:
        clauses.append(Listing.property_type == filters.property_type)
    if filters.transaction_type:
        clauses.append(Listing.transaction_type == filters.transaction_type)
    if filters.price_min is not None:
        clauses.append(Listing.price >= filters.price_min)
    if filters.price_max is not None:
        clauses.append(Listing.price <= filters.price_max)
    if filters.province:
        clauses.append(Listing.province.ilike(f"%{filters.province}%"))
    if filters.city:
        clauses.append(Listing.city.ilike(f"%{filters.city}%"))
    if filters.bedrooms_min is not None:
        clauses.append(Listing.bedrooms >= filters.bedrooms_min)
    if filters.bedrooms_max is not None:
        clauses.append(Listing.bedrooms <= filters.bedrooms_max)
    if filters.bathrooms_min is not None:
        clauses.append(Listing.bathrooms >= filters.bathrooms_min)
    if filters.bathrooms_max is not None:
        clauses.append(Listing.bathrooms <= filters.bathrooms_max)
    return clauses


class ListingStore(Protocol):
    async def read(self, listing_id: str) -> ListingRecord: ...

    async def read_many(self, listing_ids: Sequence[str]) -> dict[str, ListingRecord]: ...

    async def create(
        self, *, agent_id: str, content: ListingContent, price: Decimal | None, actor_id: str | None
    ) -> ListingRecord: ...

    async def update_content(
        self,
        listing_id: str,
        changes: dict[str, Any],
        *,
        expected_status: ListingStatus | None = None,
        actor_id: str | None,
    ) -> bool: ...

    async def compare_and_swap_status(
        self,
        listing_id: str,
        expected: ListingStatus,
        next_status: ListingStatus,
        *,
        published_at: datetime | None = None,
        actor_id: str | None = None,
        require_publishable: bool = False,
    ) -> bool: ...

    async def compare_and_swap_embedding(
        self,
        listing_id: str,
        expected_fingerprint: str | None,
        new_embedding: list[float],
        new_fingerprint: str,
        new_version: int,
    ) -> bool: ...

    async def record_embedding_failure(self, listing_id: str, *, error: str, retry_at: datetime) -> None: ...

    async def list_available_with_embedding(
        self, *, exclude_id: str | None = None, filters: SearchFilters | None = None
    ) -> list[EmbeddingCandidate]: ...

    async def list_sync_candidates(
        self, *, now: datetime, after_id: str | None, limit: int
    ) -> list[ListingRecord]: ...


def utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


def content_from_row(row: Listing) -> ListingContent:
    return ListingContent(
        title=row.title or "",
        property_type=row.property_type,
        transaction_type=row.transaction_type,
        description=row.description,
        province=row.province or "",
        city=row.city or "",
        district=row.district,
        bedrooms=row.bedrooms,
        bathrooms=row.bathrooms,
        features=tuple(row.features or ()),
    )


def record_from_row(row: Listing) -> ListingRecord:
    return ListingRecord(
        id=row.id,
        agent_id=row.agent_id,
        status=ListingStatus(row.status),
        content=content_from_row(row),
        price=row.price,
        published_at=utc(row.published_at),
        embedding=list(row.embedding) if row.embedding is not None else None,
        embedding_version=row.embedding_version or 0,
        content_fingerprint=row.content_fingerprint,
        embedding_error=row.embedding_error,
        embedding_attempts=row.embedding_attempts or 0,
        embedding_retry_at=utc(row.embedding_retry_at),
    )


class SqlListingStore:
    """
    ListingStore over an AsyncSession.

    Every write is a single conditional UPDATE followed by a commit; the
    affected row count is the answer to "did it apply". No row locks are held
    between a read and the write that depends on it.
    """

    def __init__(self, db: AsyncSession):
        self._db = db

    async def _select(self, *where) -> list[Listing]:
        stmt = select(Listing).where(*where).execution_options(populate_existing=True)
        return list((await self._db.execute(stmt)).scalars().all())

    async def read(self, listing_id: str) -> ListingRecord:
        rows = await self._select(Listing.id == listing_id)
        if not rows:
            raise NotFound(listing_id)
        return record_from_row(rows[0])

    async def read_many(self, listing_ids: Sequence[str]) -> dict[str, ListingRecord]:
        if not listing_ids:
            return {}
        rows = await self._select(Listing.id.in_(list(listing_ids)))
        return {r.id: record_from_row(r) for r in rows}

    async def create(
        self, *, agent_id: str, content: ListingContent, price: Decimal | None, actor_id: str | None
    ) -> ListingRecord:
        row = Listing(
            agent_id=agent_id,
            status=ListingStatus.DRAFT.value,
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
            price=price,
            embedding_version=0,
            embedding_attempts=0,
            created_by=actor_id,
            updated_by=actor_id,
        )
        self._db.add(row)
        await self._db.flush()
        listing_id = row.id
        await self._db.commit()
        return await self.read(listing_id)

    async def update_content(
        self,
        listing_id: str,
        changes: dict[str, Any],
        *,
        expected_status: ListingStatus | None = None,
        actor_id: str | None,
    ) -> bool:
        """
        Write content columns. Returns False when the listing is closed, or when
        `expected_status` is given and the stored status no longer matches it.
        """
        unknown = set(changes) - set(CONTENT_COLUMNS)
        if unknown:
            raise ValueError(f"not content fields: {sorted(unknown)}")

        values = dict(changes)
        if "features" in values:
            values["features"] = list(values["features"] or [])
        values["updated_by"] = actor_id

        # closed listings are frozen
        where = [Listing.id == listing_id, Listing.status != ListingStatus.CLOSED.value]
        if expected_status is not None:
            where.append(Listing.status == expected_status.value)

        result = await self._db.execute(update(Listing).where(*where).values(**values))
        if (result.rowcount or 0) == 0:
            await self._db.rollback()
            return False
        await self._db.commit()
        return True

    async def compare_and_swap_status(
        self,
        listing_id: str,
        expected: ListingStatus,
        next_status: ListingStatus,
        *,
        published_at: datetime | None = None,
        actor_id: str | None = None,
        require_publishable: bool = False,
    ) -> bool:
        values: dict[str, Any] = {"status": next_status.value, "updated_by": actor_id}
        if published_at is not None:
            # first publish wins; republishing keeps the original timestamp
            values["published_at"] = func.coalesce(Listing.published_at, published_at)

        where = [Listing.id == listing_id, Listing.status == expected.value]
        if require_publishable:
            # the publish gate again, against the row as it is now: an edit may
            # have landed after the caller's read
            where += [
                Listing.price > 0,
                func.length(Listing.title) >= MIN_TITLE_LENGTH,
                func.length(func.coalesce(Listing.description, "")) >= MIN_DESCRIPTION_LENGTH,
            ]

        result = await self._db.execute(update(Listing).where(*where).values(**values))
        if (result.rowcount or 0) == 0:
            await self._db.rollback()
            return False
        await self._db.commit()
        return True

    async def compare_and_swap_embedding(
        self,
        listing_id: str,
        expected_fingerprint: str | None,
        new_embedding: list[float],
        new_fingerprint: str,
        new_version: int,
    ) -> bool:
        if expected_fingerprint is None:
            fingerprint_matches = Listing.content_fingerprint.is_(None)
        else:
            fingerprint_matches = Listing.content_fingerprint == expected_fingerprint

        result = await self._db.execute(
            update(Listing)
            .where(
                Listing.id == listing_id,
                fingerprint_matches,
                Listing.embedding_version == new_version - 1,
            )
            .values(
                embedding=list(new_embedding),
                content_fingerprint=new_fingerprint,
                embedding_version=new_version,
                embedding_error=None,
                embedding_attempts=0,
                embedding_retry_at=None,
            )
        )
        if (result.rowcount or 0) == 0:
            await self._db.rollback()
            return False
        await self._db.commit()
        return True

    async def record_embedding_failure(self, listing_id: str, *, error: str, retry_at: datetime) -> None:
        await self._db.execute(
            update(Listing)
            .where(Listing.id == listing_id)
            .values(
                embedding_error=error[:2000],
                embedding_attempts=Listing.embedding_attempts + 1,
                embedding_retry_at=retry_at,
            )
        )
        await self._db.commit()

    async def list_available_with_embedding(
        self, *, exclude_id: str | None = None, filters: SearchFilters | None = None
    ) -> list[EmbeddingCandidate]:
        stmt = select(Listing.id, Listing.embedding, Listing.published_at).where(
            Listing.status == ListingStatus.AVAILABLE.value,
            Listing.embedding.is_not(None),
        )
        if exclude_id is not None:
            stmt = stmt.where(Listing.id != exclude_id)
        if filters is not None:
            stmt = stmt.where(*_filter_clauses(filters))

        rows = (await self._db.execute(stmt)).all()
        return [
            EmbeddingCandidate(id=r.id, embedding=list(r.embedding), published_at=utc(r.published_at))
            for r in rows
            if r.embedding
        ]

    async def list_sync_candidates(
        self, *, now: datetime, after_id: str | None, limit: int
    ) -> list[ListingRecord]:
        where = [
            Listing.status.in_([s.value for s in EMBEDDABLE_STATUSES]),
            (Listing.embedding_retry_at.is_(None)) | (Listing.embedding_retry_at <= now),
        ]
        if after_id is not None:
            where.append(Listing.id > after_id)

        stmt = (
            select(Listing)
            .where(*where)
            .order_by(Listing.id.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        rows = (await self._db.execute(stmt)).scalars().all()
        return [record_from_row(r) for r in rows]
