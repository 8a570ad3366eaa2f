"""add_sync_run_progress

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 09:12:41.530214

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Stale-run detection looks at the last checkpoint, not the start time
    op.add_column('sync_runs', sa.Column('last_progress_at', sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column('sync_runs', 'last_progress_at')
