from pydantic import BaseModel


class SyncOutcomeOut(BaseModel):
    listing_id: str
    status: str
    embedding_version: int
    content_fingerprint: str | None
    error: str | None = None


class SweepReportOut(BaseModel):
    scanned: int
    stale: int
    embedded: int
    failed: int
    skipped: int
