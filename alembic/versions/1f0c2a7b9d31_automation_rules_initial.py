"""automation rules engine initial schema

Revision ID: 1f0c2a7b9d31
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = "1f0c2a7b9d31"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(bind, table_name: str) -> bool:
    insp = sa.inspect(bind)
    return table_name in insp.get_table_names()


def upgrade() -> None:
    bind = op.get_bind()

    if not _table_exists(bind, "automation_rules"):
        op.create_table(
            "automation_rules",
            sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("organization_id", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.String(length=2000), nullable=False, server_default=""),
            sa.Column("event", sa.String(length=50), nullable=False),
            sa.Column("priority", sa.Integer(), nullable=False, server_default="100"),
            sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("countries", sa.JSON(), nullable=False),
            sa.Column("order_currency_in", sa.JSON(), nullable=False),
            sa.Column("conditions", sa.JSON(), nullable=True),
            sa.Column("actions", sa.JSON(), nullable=True),
            sa.Column("scope", sa.String(length=20), nullable=True),
            sa.Column("cooldown_days", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )
        op.create_index("ix_automation_rules_organization_id", "automation_rules", ["organization_id"])
        op.create_index(
            "ix_automation_rules_org_event_enabled_priority",
            "automation_rules",
            ["organization_id", "event", "enabled", "priority"],
        )

    if not _table_exists(bind, "automation_events"):
        op.create_table(
            "automation_events",
            sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("organization_id", sa.String(length=100), nullable=False),
            sa.Column("event_id", sa.String(length=150), nullable=False),
            sa.Column("event", sa.String(length=50), nullable=False),
            sa.Column("source", sa.String(length=20), nullable=True),
            sa.Column("context", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="PENDING"),
            sa.Column("error_code", sa.String(length=50), nullable=True),
            sa.Column("error_message", sa.String(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("processed_at", sa.TIMESTAMP(), nullable=True),
            sa.UniqueConstraint("organization_id", "event_id", name="uq_automation_events_organization_event_id"),
        )

    if not _table_exists(bind, "rule_executions"):
        op.create_table(
            "rule_executions",
            sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("event_id", UUID(as_uuid=True), sa.ForeignKey("automation_events.id"), nullable=False),
            sa.Column(
                "rule_id",
                UUID(as_uuid=True),
                sa.ForeignKey("automation_rules.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("result", sa.String(length=20), nullable=True),
            sa.Column("details", sa.JSON(), nullable=True),
            sa.Column("executed_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )

    if not _table_exists(bind, "notification_outbox"):
        op.create_table(
            "notification_outbox",
            sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("organization_id", sa.String(length=100), nullable=False),
            sa.Column("event_id", UUID(as_uuid=True), sa.ForeignKey("automation_events.id"), nullable=True),
            sa.Column(
                "rule_id",
                UUID(as_uuid=True),
                sa.ForeignKey("automation_rules.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("action_index", sa.Integer(), nullable=False),
            sa.Column("action_type", sa.String(length=50), nullable=False),
            sa.Column("channel", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("reason", sa.String(length=200), nullable=True),
            sa.Column("subject", sa.String(length=500), nullable=True),
            sa.Column("message", sa.String(), nullable=True),
            sa.Column("url", sa.String(length=2000), nullable=True),
            sa.Column("variables", sa.JSON(), nullable=True),
            sa.Column("coupon_id", sa.String(length=100), nullable=True),
            sa.Column("client_id", sa.String(length=100), nullable=True),
            sa.Column("dedupe_key", sa.String(length=64), nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("dedupe_key", name="uq_notification_outbox_dedupe_key"),
        )

    if not _table_exists(bind, "rule_locks"):
        op.create_table(
            "rule_locks",
            sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("organization_id", sa.String(length=100), nullable=False),
            sa.Column(
                "rule_id",
                UUID(as_uuid=True),
                sa.ForeignKey("automation_rules.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("dedupe_key", sa.String(length=200), nullable=False),
            sa.Column("client_id", sa.String(length=100), nullable=True),
            sa.Column("order_id", sa.String(length=100), nullable=True),
            sa.Column("lock_until", sa.TIMESTAMP(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("rule_id", "dedupe_key", name="uq_rule_locks_rule_id_dedupe_key"),
        )

    if not _table_exists(bind, "coupons"):
        op.create_table(
            "coupons",
            sa.Column("id", sa.String(length=100), primary_key=True, nullable=False),
            sa.Column("organization_id", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("code", sa.String(length=100), nullable=False),
            sa.Column("countries", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )
        op.create_index("ix_coupons_organization_id", "coupons", ["organization_id"])

    if not _table_exists(bind, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.String(length=100), primary_key=True, nullable=False),
            sa.Column("organization_id", sa.String(length=100), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
        )
        op.create_index("ix_products_organization_id", "products", ["organization_id"])

    if not _table_exists(bind, "customers"):
        op.create_table(
            "customers",
            sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
            sa.Column("organization_id", sa.String(length=100), nullable=False),
            sa.Column("client_id", sa.String(length=100), nullable=False),
            sa.Column("country", sa.String(length=2), nullable=True),
            sa.Column("last_order_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.text("now()"), nullable=True),
            sa.UniqueConstraint("organization_id", "client_id", name="uq_customers_organization_client_id"),
        )


def downgrade() -> None:
    bind = op.get_bind()

    for table in (
        "rule_locks",
        "notification_outbox",
        "rule_executions",
        "automation_events",
        "automation_rules",
        "coupons",
        "products",
        "customers",
    ):
        if _table_exists(bind, table):
            op.drop_table(table)
