from alembic import op
import sqlalchemy as sa


revision = "20261019_create_gifts"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "gifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("public_id", sa.String(length=32), nullable=False),
        sa.Column("recipient_email", sa.String(length=320), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("is_claimed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_gifts_amount_positive"),
        sa.CheckConstraint(
            "(is_claimed AND claimed_at IS NOT NULL) OR (NOT is_claimed AND claimed_at IS NULL)",
            name="ck_gifts_claimed_at_matches_flag",
        ),
    )
    op.create_index("ix_gifts_public_id", "gifts", ["public_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_gifts_public_id", table_name="gifts")
    op.drop_table("gifts")
