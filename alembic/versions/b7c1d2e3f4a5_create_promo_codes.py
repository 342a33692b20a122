"""create_promo_codes

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "b7c1d2e3f4a5"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "promo_codes",
        sa.Column("code", sa.String(length=6), primary_key=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.BigInteger(), nullable=False),
        sa.Column("redeemed_by", sa.BigInteger(), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "amount >= 10000 AND amount <= 200000",
            name="ck_promo_codes_amount_range",
        ),
        sa.CheckConstraint(
            "(redeemed_by IS NULL AND redeemed_at IS NULL) "
            "OR (redeemed_by IS NOT NULL AND redeemed_at IS NOT NULL)",
            name="ck_promo_codes_redeemed_pair",
        ),
        if_not_exists=True,
    )


def downgrade() -> None:
    op.drop_table("promo_codes")
