"""Add structured day fraction, leave type and active usage pointer to DTR rows

Revision ID: 0002_dtr_leave_fields
Revises: 0001_initial
Create Date: 2026-10-12 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0002_dtr_leave_fields"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

dtr_day_fraction = postgresql.ENUM("FULL", "HALF", name="dtr_day_fraction", create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    dtr_day_fraction.create(bind, checkfirst=True)

    op.add_column(
        "daily_time_records",
        sa.Column("day_fraction", dtr_day_fraction, nullable=False, server_default=sa.text("'FULL'")),
    )
    op.add_column(
        "daily_time_records",
        sa.Column("leave_type_id", sa.Integer(), nullable=True),
    )
    op.add_column(
        "daily_time_records",
        sa.Column("active_leave_usage_transaction_id", sa.Integer(), nullable=True),
    )
    op.create_foreign_key(
        "fk_daily_time_records_leave_type_id",
        "daily_time_records",
        "leave_types",
        ["leave_type_id"],
        ["id"],
        ondelete="SET NULL",
    )
    op.create_foreign_key(
        "fk_daily_time_records_active_leave_usage",
        "daily_time_records",
        "leave_balance_transactions",
        ["active_leave_usage_transaction_id"],
        ["id"],
        ondelete="SET NULL",
    )
    op.create_index(
        "uq_daily_time_records_active_leave_usage",
        "daily_time_records",
        ["active_leave_usage_transaction_id"],
        unique=True,
        postgresql_where=sa.text("active_leave_usage_transaction_id IS NOT NULL"),
    )

    op.execute(
        "UPDATE daily_time_records SET day_fraction = 'HALF' "
        "WHERE strpos(coalesce(remarks, ''), '[DTR_DAY_FRACTION:HALF]') > 0"
    )

    # Existing rows keep a NULL pointer; readers fall back to the latest ledger entry.


def downgrade() -> None:
    op.drop_index("uq_daily_time_records_active_leave_usage", table_name="daily_time_records")
    op.drop_constraint("fk_daily_time_records_active_leave_usage", "daily_time_records", type_="foreignkey")
    op.drop_constraint("fk_daily_time_records_leave_type_id", "daily_time_records", type_="foreignkey")
    op.drop_column("daily_time_records", "active_leave_usage_transaction_id")
    op.drop_column("daily_time_records", "leave_type_id")
    op.drop_column("daily_time_records", "day_fraction")

    bind = op.get_bind()
    dtr_day_fraction.drop(bind, checkfirst=True)
