"""Accounts, brands and automation_config tables"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


MARKETPLACE = sa.Enum("US", "Canada", "Mexico", name="marketplace")


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account_name", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("password", sa.Text(), nullable=False),
        sa.Column("two_fa_key", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_name", name="uq_accounts_account_name"),
    )
    op.create_table(
        "brands",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("brand_name", sa.String(length=255), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("brand_url", sa.Text(), nullable=False, server_default=""),
        sa.Column("marketplace", MARKETPLACE, nullable=False, server_default="US"),
        sa.Column("cookies", sa.Text(), nullable=False, server_default=""),
        sa.Column("cookies_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_brands_account_id", "brands", ["account_id"])
    op.create_table(
        "automation_config",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("headless", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("timeout_ms", sa.Integer(), nullable=False, server_default="180000"),
        sa.Column(
            "seller_central_url",
            sa.Text(),
            nullable=False,
            server_default="https://sellercentral.amazon.com/home",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("automation_config")
    op.drop_index("ix_brands_account_id", table_name="brands")
    op.drop_table("brands")
    op.drop_table("accounts")
    MARKETPLACE.drop(op.get_bind(), checkfirst=True)
