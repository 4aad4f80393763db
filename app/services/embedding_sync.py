from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Protocol

from app.core.telemetry import get_tracer
from app.services.embedding_provider import EmbeddingProvider
from app.services.embedding_text import build_embedding_text, content_fingerprint
from app.services.errors import ProviderError, ProviderUnavailable
from app.services.listing_status import is_embeddable
from app.services.listing_store import ListingRecord, ListingStore
from app.services.retry import next_retry_at

log = logging.getLogger(__name__)
tracer = get_tracer(__name__)

# lost embedding CAS -> re-read and try again, at most this many times per call
MAX_CAS_ATTEMPTS = 3


class SyncStatus(str, Enum):
    EMBEDDED = "embedded"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class SyncOutcome:
    listing_id: str
    status: SyncStatus
    embedding_version: int
    content_fingerprint: str | None
    error: str | None = None


@dataclass
class SweepReport:
    scanned: int = 0
    stale: int = 0
    embedded: int = 0
    failed: int = 0
    skipped: int = 0

    def count(self, outcome: SyncOutcome) -> None:
        if outcome.status == SyncStatus.EMBEDDED:
            self.embedded += 1
        elif outcome.status == SyncStatus.FAILED:
            self.failed += 1
        else:
            self.skipped += 1


class SyncScheduler(Protocol):
    def schedule(self, listing_id: str) -> None:
        """Request a sync out of the caller's critical path. Must not raise."""
        ...


def is_embedding_stale(record: ListingRecord) -> bool:
    return record.embedding is None or record.content_fingerprint != content_fingerprint(record.content)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmbeddingSync:
    """
    Keeps (embedding, embedding_version, content_fingerprint) consistent with listing content.

    Provider failures stop here: they are logged, recorded as a retry marker on the
    listing and reported in the outcome. The stored triple is never partially written.
    """

    def __init__(
        self,
        store: ListingStore,
        provider: EmbeddingProvider,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.provider = provider
        self._clock = clock

    async def sync(self, listing_id: str) -> SyncOutcome:
        with tracer.start_as_current_span("embedding_sync.sync") as span:
            span.set_attribute("listing.id", listing_id)
            outcome = await self._sync(listing_id)
            span.set_attribute("embedding_sync.status", outcome.status.value)
            return outcome

    async def _sync(self, listing_id: str) -> SyncOutcome:
        record = await self.store.read(listing_id)

        for _ in range(MAX_CAS_ATTEMPTS):
            if not is_embeddable(record.status):
                return SyncOutcome(
                    listing_id, SyncStatus.SKIPPED, record.embedding_version, record.content_fingerprint
                )

            fingerprint = content_fingerprint(record.content)
            if record.embedding is not None and record.content_fingerprint == fingerprint:
                return SyncOutcome(listing_id, SyncStatus.UNCHANGED, record.embedding_version, fingerprint)

            try:
                vector = await self.provider.embed(build_embedding_text(record.content))
                if len(vector) != self.provider.dimensions:
                    raise ProviderUnavailable(
                        f"expected {self.provider.dimensions} dimensions, got {len(vector)}"
                    )
            except ProviderError as e:
                return await self._record_failure(record, e)

            new_version = record.embedding_version + 1
            swapped = await self.store.compare_and_swap_embedding(
                listing_id,
                expected_fingerprint=record.content_fingerprint,
                new_embedding=vector,
                new_fingerprint=fingerprint,
                new_version=new_version,
            )
            if swapped:
                log.info("embedded listing %s v%d (%s)", listing_id, new_version, fingerprint)
                return SyncOutcome(listing_id, SyncStatus.EMBEDDED, new_version, fingerprint)

            # someone else wrote the triple since we read it; converge on whatever is current now
            log.info("embedding CAS lost for listing %s, re-reading", listing_id)
            record = await self.store.read(listing_id)

        if record.embedding is not None and record.content_fingerprint == content_fingerprint(record.content):
            return SyncOutcome(listing_id, SyncStatus.UNCHANGED, record.embedding_version, record.content_fingerprint)
        return SyncOutcome(
            listing_id, SyncStatus.SUPERSEDED, record.embedding_version, record.content_fingerprint
        )

    async def _record_failure(self, record: ListingRecord, error: ProviderError) -> SyncOutcome:
        message = f"{type(error).__name__}: {error}"
        retry_at = next_retry_at(record.embedding_attempts + 1, now=self._clock())
        log.warning("embedding sync failed for listing %s (%s); retry after %s", record.id, message, retry_at)
        await self.store.record_embedding_failure(record.id, error=message, retry_at=retry_at)
        return SyncOutcome(
            record.id, SyncStatus.FAILED, record.embedding_version, record.content_fingerprint, error=message
        )

    async def sweep(self, *, batch_size: int = 100) -> SweepReport:
        """
        Re-sync every embeddable listing whose embedding is missing or stale.

        Walks listings in id order so a stopped sweep can simply be started again;
        nothing it needs lives in memory between runs.
        """
        report = SweepReport()
        now = self._clock()
        after_id: str | None = None

        with tracer.start_as_current_span("embedding_sync.sweep") as span:
            while True:
                batch = await self.store.list_sync_candidates(now=now, after_id=after_id, limit=batch_size)
                if not batch:
                    break

                for record in batch:
                    report.scanned += 1
                    if not is_embedding_stale(record):
                        continue
                    report.stale += 1
                    report.count(await self.sync(record.id))

                after_id = batch[-1].id
                if len(batch) < batch_size:
                    break

            span.set_attribute("embedding_sync.scanned", report.scanned)
            span.set_attribute("embedding_sync.embedded", report.embedded)

        log.info(
            "sweep: scanned=%d stale=%d embedded=%d failed=%d skipped=%d",
            report.scanned, report.stale, report.embedded, report.failed, report.skipped,
        )
        return report
