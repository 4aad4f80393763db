from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0003_listing_embeddings"
down_revision = "0002_add_listings"
branch_labels = None
depends_on = None


def upgrade():
    # embedding triple (always written together)
    op.add_column("listings", sa.Column("embedding", postgresql.JSONB(astext_type=sa.Text()), nullable=True))
    op.add_column("listings", sa.Column("embedding_version", sa.Integer(), nullable=False, server_default="0"))
    op.add_column("listings", sa.Column("content_fingerprint", sa.String(length=80), nullable=True))

    # retry marker for failed syncs
    op.add_column("listings", sa.Column("embedding_error", sa.Text(), nullable=True))
    op.add_column("listings", sa.Column("embedding_attempts", sa.Integer(), nullable=False, server_default="0"))
    op.add_column("listings", sa.Column("embedding_retry_at", sa.DateTime(timezone=True), nullable=True))


def downgrade():
    op.drop_column("listings", "embedding_retry_at")
    op.drop_column("listings", "embedding_attempts")
    op.drop_column("listings", "embedding_error")
    op.drop_column("listings", "content_fingerprint")
    op.drop_column("listings", "embedding_version")
    op.drop_column("listings", "embedding")
