from fastapi import APIRouter, Depends

from app.api.v1.deps import get_embedding_sync
from app.core.config import settings
from app.schemas.embedding import SweepReportOut, SyncOutcomeOut
from app.services.embedding_sync import EmbeddingSync
from app.services.internal_admin import require_internal_admin

router = APIRouter()


@router.post(
    "/internal/embeddings/sweep",
    response_model=SweepReportOut,
    dependencies=[Depends(require_internal_admin)],
)
async def internal_sweep_embeddings(sync: EmbeddingSync = Depends(get_embedding_sync)) -> SweepReportOut:
    report = await sync.sweep(batch_size=settings.embedding_sweep_batch_size)
    return SweepReportOut(
        scanned=report.scanned,
        stale=report.stale,
        embedded=report.embedded,
        failed=report.failed,
        skipped=report.skipped,
    )


@router.post(
    "/internal/listings/{listing_id}/embedding/sync",
    response_model=SyncOutcomeOut,
    dependencies=[Depends(require_internal_admin)],
)
async def internal_sync_listing_embedding(
    listing_id: str,
    sync: EmbeddingSync = Depends(get_embedding_sync),
) -> SyncOutcomeOut:
    outcome = await sync.sync(listing_id)
    return SyncOutcomeOut(
        listing_id=outcome.listing_id,
        status=outcome.status.value,
        embedding_version=outcome.embedding_version,
        content_fingerprint=outcome.content_fingerprint,
        error=outcome.error,
    )
