"""add background_jobs table

Revision ID: 3b7c1e9a2f44
Revises:
Create Date: 2026-10-19 09:12:40.518302

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7c1e9a2f44"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "background_jobs",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "job_type", sa.Text, nullable=False, comment="Handler key for the payload"
        ),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            default={},
            comment="Job-specific parameters",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            default="pending",
            comment="Job status: pending|processing|done|failed",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            default=0,
            comment="Failed execution attempts",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            default=3,
            comment="Attempts before the job is abandoned",
        ),
        sa.Column("last_error", sa.Text, nullable=True, comment="Last error message"),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "executed_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When the job completed",
        ),
        # Constraints
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'done', 'failed')",
            name="background_jobs_status_check",
        ),
        sa.CheckConstraint(
            "attempts >= 0 AND attempts <= max_attempts",
            name="background_jobs_attempts_check",
        ),
    )

    # Pending/failed scans and stuck job recovery filter on status + updated_at,
    # retention cleanup on updated_at alone
    op.create_index(
        "ix_background_jobs_status_updated_at",
        "background_jobs",
        ["status", "updated_at"],
    )
    op.create_index(
        "ix_background_jobs_updated_at", "background_jobs", ["updated_at"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_background_jobs_updated_at", table_name="background_jobs")
    op.drop_index("ix_background_jobs_status_updated_at", table_name="background_jobs")
    op.drop_table("background_jobs")
