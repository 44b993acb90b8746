"""create_provisioning_tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-17 10:12:44.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('provisioning_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner', sa.String(32), nullable=False),
        sa.Column('project_name', sa.String(64), nullable=False),
        sa.Column('project_id', sa.String(128), nullable=False),
        sa.Column('chat_id', sa.String(128), nullable=True),
        sa.Column('deployment_id', sa.String(128), nullable=True),
        sa.Column('custom_domain', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner')
    )

    op.create_table('provisioning_jobs',
        sa.Column('job_id', sa.String(64), nullable=False),
        sa.Column('owner', sa.String(32), nullable=False),
        sa.Column('request', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('worker_id', sa.String(64), nullable=True),
        sa.Column('available_at', sa.Float(), nullable=False),
        sa.Column('heartbeat_at', sa.Float(), nullable=True),
        sa.Column('finished_at', sa.Float(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('job_id')
    )

    op.create_index('ix_provisioning_jobs_owner', 'provisioning_jobs', ['owner'])
    op.create_index('ix_provisioning_jobs_status_available', 'provisioning_jobs', ['status', 'available_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_provisioning_jobs_status_available', 'provisioning_jobs')
    op.drop_index('ix_provisioning_jobs_owner', 'provisioning_jobs')
    op.drop_table('provisioning_jobs')
    op.drop_table('provisioning_records')
