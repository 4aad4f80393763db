from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0002_add_listings"
down_revision = "0001_agents_api_keys"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("agent_id", sa.String(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),

        sa.Column("title", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("property_type", sa.String(length=30), nullable=False),
        sa.Column("transaction_type", sa.String(length=10), nullable=False),
        sa.Column("province", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("city", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("district", sa.String(length=120), nullable=True),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Integer(), nullable=True),
        sa.Column("features", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("price", sa.Numeric(14, 2), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),

        sa.CheckConstraint(
            "status IN ('draft', 'available', 'reserved', 'unlisted', 'closed')",
            name="ck_listings_status",
        ),
        sa.CheckConstraint(
            "status <> 'available' OR (price IS NOT NULL AND price > 0)",
            name="ck_listings_available_priced",
        ),
    )

    op.create_index("ix_listings_agent_id", "listings", ["agent_id"])
    op.create_index("ix_listings_status_id", "listings", ["status", "id"])


def downgrade():
    op.drop_index("ix_listings_status_id", table_name="listings")
    op.drop_index("ix_listings_agent_id", table_name="listings")
    op.drop_table("listings")
