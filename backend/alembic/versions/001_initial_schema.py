"""Initial schema: events, queue counters, orders and participant groups.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("start_datetime", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_datetime", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_seats", sa.Integer(), nullable=False),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("organizer_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("max_seats > 0", name="check_max_seats_positive"),
    )
    op.create_index("ix_events_start_datetime", "events", ["start_datetime"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])

    # One counter row per (event, prefix); the upsert locks exactly this row
    op.create_table(
        "queue_counters",
        sa.Column("event_id", sa.String(32), sa.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("prefix", sa.String(8), primary_key=True, server_default=sa.text("''")),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("last_number >= 0", name="check_last_number_non_negative"),
    )

    # Orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("event_id", sa.String(32), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("buyer_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_orders_event_id", "orders", ["event_id"])
    op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])

    # Participant groups: the unit of check-in
    op.create_table(
        "participant_groups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.String(32), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("group_id", sa.String(32), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("event_id", sa.String(32), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("queue_number", sa.String(16), nullable=False),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("phone_number", sa.String(32), nullable=False, server_default=sa.text("''")),
        sa.Column("identity_fact", sa.String(64), nullable=False, server_default=sa.text("''")),
        sa.Column("attendance", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("cancelled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("qr_code", sa.Text(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # Store-level backstop against a queue number issued twice
        sa.UniqueConstraint("event_id", "queue_number", name="uq_group_event_queue_number"),
        sa.UniqueConstraint("order_id", "group_id", name="uq_group_order_group_id"),
        sa.CheckConstraint("NOT (cancelled AND attendance)", name="check_cancelled_not_attended"),
    )
    op.create_index("ix_participant_groups_order_id", "participant_groups", ["order_id"])
    op.create_index("ix_participant_groups_phone_number", "participant_groups", ["phone_number"])
    # Capacity count: WHERE event_id = ? AND cancelled = false
    op.create_index("ix_groups_event_cancelled", "participant_groups", ["event_id", "cancelled"])


def downgrade() -> None:
    op.drop_table("participant_groups")
    op.drop_table("orders")
    op.drop_table("queue_counters")
    op.drop_table("events")
