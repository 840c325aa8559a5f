"""Partner balances, ledger, ad bids/placements, orders, notification outbox

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "partner_balances",
        sa.Column("partner_id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("cash_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cash_points_service", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bid_tickets_general", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bid_tickets_service", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("cash_points >= 0", name="ck_balance_cash_points_nonneg"),
        sa.CheckConstraint("cash_points_service >= 0", name="ck_balance_cash_points_service_nonneg"),
        sa.CheckConstraint("bid_tickets_general >= 0", name="ck_balance_bid_tickets_general_nonneg"),
        sa.CheckConstraint("bid_tickets_service >= 0", name="ck_balance_bid_tickets_service_nonneg"),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("delta_points", sa.Integer(), nullable=False),
        sa.Column("delta_cash_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("delta_cash_points_service", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("delta_bid_tickets_general", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("delta_bid_tickets_service", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("spent_general", sa.Integer(), nullable=True),
        sa.Column("spent_service", sa.Integer(), nullable=True),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("bid_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("request_id", sa.String(length=128), nullable=True),
        sa.Column("idempotency_key", sa.String(length=160), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("idempotency_key", name="uq_ledger_entries_idempotency_key"),
    )
    op.create_index("ix_ledger_entries_partner_id", "ledger_entries", ["partner_id"])
    op.create_index("ix_ledger_entries_bid_id", "ledger_entries", ["bid_id"])
    op.create_index("ix_ledger_entries_partner_created", "ledger_entries", ["partner_id", "created_at"])

    # Ledger is append-only
    op.execute("""
        CREATE OR REPLACE FUNCTION ledger_entries_immutable() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'ledger_entries is append-only';
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER trg_ledger_entries_immutable
        BEFORE UPDATE OR DELETE ON ledger_entries
        FOR EACH ROW EXECUTE FUNCTION ledger_entries_immutable()
    """)

    op.create_table(
        "ad_bids",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=128), nullable=False),
        sa.Column("category", sa.String(length=80), nullable=False),
        sa.Column("region", sa.String(length=120), nullable=False),
        sa.Column("region_detail", sa.String(length=120), nullable=True),
        sa.Column("region_key", sa.String(length=250), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("week_key", sa.String(length=10), nullable=False),
        sa.Column("week_start", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("week_end", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("result_rank", sa.Integer(), nullable=True),
        sa.Column("refund_amount", sa.Integer(), nullable=True),
        sa.Column("refunded_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_ad_bids_amount_pos"),
        sa.CheckConstraint("status IN ('pending','won','lost','late')", name="ck_ad_bids_status"),
    )
    op.create_index("ix_ad_bids_partner_id", "ad_bids", ["partner_id"])
    op.create_index("ix_ad_bids_week_group_status", "ad_bids", ["week_key", "category", "region_key", "status"])

    op.create_table(
        "ad_placements",
        sa.Column("id", sa.String(length=320), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=128), nullable=False),
        sa.Column("category", sa.String(length=80), nullable=False),
        sa.Column("region", sa.String(length=120), nullable=False),
        sa.Column("region_key", sa.String(length=250), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("week_key", sa.String(length=10), nullable=False),
        sa.Column("week_start", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("week_end", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("bid_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("bid_created_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("placed_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("week_key", "category", "region_key", "rank", name="uq_ad_placements_slot"),
    )
    op.create_index("ix_ad_placements_partner_id", "ad_placements", ["partner_id"])
    op.create_index("ix_ad_placements_week_key", "ad_placements", ["week_key"])

    op.create_table(
        "partner_accounts",
        sa.Column("partner_id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("grade", sa.String(length=40), nullable=True),
        sa.Column("approved_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("subscription_status", sa.String(length=16), nullable=False, server_default="none"),
        sa.Column("subscription_plan", sa.String(length=16), nullable=True),
        sa.Column("subscription_auto_renew", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("subscription_provider", sa.String(length=16), nullable=True),
        sa.Column("subscription_period_start", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("subscription_end_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "point_orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=24), nullable=False),
        sa.Column("provider", sa.String(length=16), nullable=False),
        sa.Column("display_amount_krw", sa.Integer(), nullable=True),
        sa.Column("amount_supply_krw", sa.Integer(), nullable=False),
        sa.Column("amount_pay_krw", sa.Integer(), nullable=False),
        sa.Column("credited_points", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="paid"),
        sa.Column("external_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("external_id", name="uq_point_orders_external_id"),
    )
    op.create_index("ix_point_orders_partner_id", "point_orders", ["partner_id"])

    op.create_table(
        "notification_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=128), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("dedupe_key", sa.String(length=160), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("dispatched_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("dedupe_key", name="uq_notification_events_dedupe_key"),
    )
    op.create_index("ix_notification_events_partner_id", "notification_events", ["partner_id"])


def downgrade() -> None:
    op.drop_index("ix_notification_events_partner_id", table_name="notification_events")
    op.drop_table("notification_events")
    op.drop_index("ix_point_orders_partner_id", table_name="point_orders")
    op.drop_table("point_orders")
    op.drop_table("partner_accounts")
    op.drop_index("ix_ad_placements_week_key", table_name="ad_placements")
    op.drop_index("ix_ad_placements_partner_id", table_name="ad_placements")
    op.drop_table("ad_placements")
    op.drop_index("ix_ad_bids_week_group_status", table_name="ad_bids")
    op.drop_index("ix_ad_bids_partner_id", table_name="ad_bids")
    op.drop_table("ad_bids")
    op.execute("DROP TRIGGER IF EXISTS trg_ledger_entries_immutable ON ledger_entries")
    op.execute("DROP FUNCTION IF EXISTS ledger_entries_immutable()")
    op.drop_index("ix_ledger_entries_partner_created", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_bid_id", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_partner_id", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_table("partner_balances")
