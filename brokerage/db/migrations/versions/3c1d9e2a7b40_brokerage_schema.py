"""Brokerage schema.

- organizations
- profiles
- transactions (optimistic version counter)
- billing_records (one royalty charge per organization and period)
- audit_log
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c1d9e2a7b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("royalty_percentage", sa.Numeric(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('active', 'pending_payment', 'suspended')", name="ck_organizations_status"
        ),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="child"),
        sa.Column(
            "organization_id",
            sa.Uuid(),
            sa.ForeignKey("organizations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("default_split_percentage", sa.Numeric(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('god', 'parent', 'child')", name="ck_profiles_role"),
    )
    op.create_index("ix_profiles_organization_id", "profiles", ["organization_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.Uuid(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("agent_id", sa.Uuid(), sa.ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("property_id", sa.Uuid(), nullable=True),
        sa.Column("custom_property_title", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("actual_price", sa.Numeric(), nullable=False),
        sa.Column("sides", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("commission_percentage", sa.Numeric(), nullable=False),
        sa.Column("agent_split_percentage", sa.Numeric(), nullable=False),
        sa.Column("royalty_percentage_at_closure", sa.Numeric(), nullable=False),
        sa.Column("gross_commission", sa.Numeric(), nullable=False),
        sa.Column("master_commission_amount", sa.Numeric(), nullable=False),
        sa.Column("net_commission", sa.Numeric(), nullable=False),
        sa.Column("office_commission_amount", sa.Numeric(), nullable=False),
        sa.Column("buyer_name", sa.Text(), nullable=True),
        sa.Column("seller_name", sa.Text(), nullable=True),
        sa.Column("buyer_id", sa.Uuid(), nullable=True),
        sa.Column("seller_id", sa.Uuid(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("actual_price > 0", name="ck_transactions_actual_price_positive"),
        sa.CheckConstraint("sides >= 1", name="ck_transactions_sides_positive"),
    )
    op.create_index("ix_transactions_organization_id", "transactions", ["organization_id"])
    op.create_index("ix_transactions_agent_id", "transactions", ["agent_id"])
    op.create_index("ix_transactions_org_date", "transactions", ["organization_id", "transaction_date"])

    op.create_table(
        "billing_records",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "organization_id",
            sa.Uuid(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("concept", sa.Text(), nullable=False),
        sa.Column("billing_type", sa.Text(), nullable=False, server_default="royalty"),
        sa.Column("amount", sa.Numeric(), nullable=False),
        sa.Column("original_amount", sa.Numeric(), nullable=True),
        sa.Column("surcharge_amount", sa.Numeric(), nullable=False, server_default="0"),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("first_due_date", sa.Date(), nullable=True),
        sa.Column("second_due_date", sa.Date(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method", sa.Text(), nullable=True),
        sa.Column("receipt_url", sa.Text(), nullable=True),
        sa.Column(
            "payment_details",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=True,
        ),
        sa.Column("period", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'paid', 'overdue', 'cancelled')", name="ck_billing_records_status"
        ),
        sa.CheckConstraint(
            "billing_type IN ('royalty', 'commission', 'advertising', 'penalty', 'adjustment', 'other')",
            name="ck_billing_records_billing_type",
        ),
    )
    op.create_index("ix_billing_records_organization_id", "billing_records", ["organization_id"])
    op.create_index("ix_billing_records_org_status", "billing_records", ["organization_id", "status"])
    op.create_index(
        "uq_billing_records_royalty_period",
        "billing_records",
        ["organization_id", "period", "billing_type"],
        unique=True,
        postgresql_where=sa.text("billing_type = 'royalty'"),
        sqlite_where=sa.text("billing_type = 'royalty'"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("organization_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column(
            "details",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_organization_id", "audit_log", ["organization_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_index("uq_billing_records_royalty_period", table_name="billing_records")
    op.drop_table("billing_records")
    op.drop_table("transactions")
    op.drop_table("profiles")
    op.drop_table("organizations")
