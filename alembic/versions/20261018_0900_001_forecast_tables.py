"""forecast records and daily accuracy metrics

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -- forecast_records --
    op.create_table(
        "forecast_records",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("asset", sa.String(16), nullable=False),
        sa.Column("granularity", sa.String(8), nullable=False),
        sa.Column("provider", sa.String(16), nullable=False),
        sa.Column("generation_time", sa.BigInteger(), nullable=False),
        sa.Column("target_time", sa.BigInteger(), nullable=False),
        sa.Column("predicted_price", sa.Float(), nullable=False),
        sa.Column("actual_price", sa.Float(), nullable=True),
        sa.Column("accuracy_score", sa.Float(), nullable=True),
        sa.Column("model_version", sa.String(64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "asset",
            "granularity",
            "generation_time",
            "target_time",
            "provider",
            name="uq_forecast_records_identity",
        ),
    )
    op.create_index(
        "ix_forecast_records_window",
        "forecast_records",
        ["asset", "granularity", "provider", "target_time"],
    )
    op.create_index(
        "ix_forecast_records_unresolved",
        "forecast_records",
        ["asset", "granularity", "target_time", "actual_price"],
    )

    # -- daily_accuracy_metrics --
    op.create_table(
        "daily_accuracy_metrics",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("asset", sa.String(16), nullable=False),
        sa.Column("granularity", sa.String(8), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("mae", sa.Float(), nullable=True),
        sa.Column("rmse", sa.Float(), nullable=True),
        sa.Column("accuracy_percentage", sa.Float(), nullable=True),
        sa.Column("forecasts_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "asset", "granularity", "date", name="uq_daily_accuracy_metrics_key"
        ),
    )


def downgrade() -> None:
    op.drop_table("daily_accuracy_metrics")
    op.drop_index("ix_forecast_records_unresolved", table_name="forecast_records")
    op.drop_index("ix_forecast_records_window", table_name="forecast_records")
    op.drop_table("forecast_records")
