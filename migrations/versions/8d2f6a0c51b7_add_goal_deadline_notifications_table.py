"""add goal_deadline_notifications table

Revision ID: 8d2f6a0c51b7
Revises: 3b7c1e9a2f44
Create Date: 2026-10-19 14:03:27.906114

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "8d2f6a0c51b7"
down_revision: Union[str, Sequence[str], None] = "3b7c1e9a2f44"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "goal_deadline_notifications",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("goal_id", sa.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "days_before_deadline",
            sa.Integer,
            nullable=False,
            comment="Milestone: 7, 3 or 1",
        ),
        sa.Column("deadline_date", sa.Date, nullable=False),
        sa.Column(
            "notified_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        # One notice per goal and milestone
        sa.UniqueConstraint(
            "goal_id",
            "days_before_deadline",
            name="goal_deadline_notifications_goal_days_key",
        ),
        sa.CheckConstraint(
            "days_before_deadline > 0",
            name="goal_deadline_notifications_days_check",
        ),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("goal_deadline_notifications")
