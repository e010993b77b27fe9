"""timeline tables

Revision ID: 3c1f0a7d52b4
Revises: 
Create Date: 2026-10-17 09:12:44.318205

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '3c1f0a7d52b4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _reservation_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("date", sa.Text(), nullable=False),
        sa.Column("time", sa.Text(), nullable=False, server_default="00:00"),
        sa.Column("guest_name", sa.Text(), nullable=False, server_default=""),
        sa.Column("guest_count", sa.Integer(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="waiting"),
        sa.Column("table_ids", sa.ARRAY(sa.Text()), nullable=False, server_default="{}"),
        sa.Column("zone_id", sa.Text(), sa.ForeignKey("zone.id"), nullable=True),
        sa.Column("cleared", sa.Boolean(), nullable=False, server_default=sa.false()),
    ]


def upgrade() -> None:
    op.create_table(
        "zone",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False, server_default=""),
    )
    op.create_table(
        "dining_table",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("zone_id", sa.Text(), sa.ForeignKey("zone.id", ondelete="CASCADE"), nullable=False),
        sa.Column("number", sa.Integer(), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
    )
    op.create_table("reservation", *_reservation_columns())
    op.create_index("ix_reservation_date", "reservation", ["date"])
    op.create_table("event_reservation", *_reservation_columns())
    op.create_index("ix_event_reservation_date", "event_reservation", ["date"])

    op.create_table(
        "reservation_adjustment",
        sa.Column("reservation_id", sa.Text(), nullable=False),
        sa.Column("date", sa.Text(), nullable=False),
        sa.Column("start_min", sa.Integer(), nullable=False),
        sa.Column("end_min", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("reservation_id", "date"),
        sa.CheckConstraint("start_min BETWEEN 0 AND 1440", name="ck_adjustment_start"),
        sa.CheckConstraint("end_min <= 1800 AND end_min - start_min >= 15", name="ck_adjustment_end"),
    )
    op.create_index("ix_reservation_adjustment_date", "reservation_adjustment", ["date"])


def downgrade() -> None:
    op.drop_index("ix_reservation_adjustment_date", table_name="reservation_adjustment")
    op.drop_table("reservation_adjustment", schema="public")
    op.drop_index("ix_event_reservation_date", table_name="event_reservation")
    op.drop_table("event_reservation", schema="public")
    op.drop_index("ix_reservation_date", table_name="reservation")
    op.drop_table("reservation", schema="public")
    op.drop_table("dining_table", schema="public")
    op.drop_table("zone", schema="public")
