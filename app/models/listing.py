from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from app.core.ids import LISTING_PREFIX, gen_id
from app.models.base import AuditMixin, Base, JSONType, NullableJSONType


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'available', 'reserved', 'unlisted', 'closed')",
            name="ck_listings_status",
        ),
        CheckConstraint(
            "status <> 'available' OR (price IS NOT NULL AND price > 0)",
            name="ck_listings_available_priced",
        ),
        # similarity candidates and the stale-embedding sweep both filter on status first
        Index("ix_listings_status_id", "status", "id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id(LISTING_PREFIX))

    agent_id: Mapped[str] = mapped_column(String, ForeignKey("agents.id"), nullable=False, index=True)

    # "draft" | "available" | "reserved" | "unlisted" | "closed"
    # written only through the lifecycle engine's conditional updates
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")

    # content that feeds the embedding text
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    property_type: Mapped[str] = mapped_column(String(30), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(10), nullable=False)
    province: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    district: Mapped[str | None] = mapped_column(String(120), nullable=True)
    bedrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    features: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # embedding triple: embedding, embedding_version, content_fingerprint are updated together
    embedding: Mapped[list | None] = mapped_column(NullableJSONType, nullable=True)
    embedding_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    content_fingerprint: Mapped[str | None] = mapped_column(String(80), nullable=True)

    # retry marker left by a failed sync; never touches the triple
    embedding_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    embedding_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    embedding_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
