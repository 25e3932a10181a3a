"""create run, run_raw_data and run_loop tables

Revision ID: 001
Revises:
Create Date: 2025-12-22 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'run',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration', sa.Float(), nullable=False),
        sa.Column('distance', sa.Float(), nullable=False),
        sa.Column('activity_type', sa.Text(), nullable=True),
        sa.Column('polyline', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='synced'),
        sa.Column('metadata', JSON_TYPE, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('synced', 'overlapping')", name='ck_run_status'),
    )
    op.create_index('ix_run_user_id', 'run', ['user_id'])
    # Overlap lookups filter by user and time window
    op.create_index('ix_run_user_time_window', 'run', ['user_id', 'start_time', 'end_time'])

    op.create_table(
        'run_raw_data',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('raw_data', JSON_TYPE, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['run_id'], ['run.id'], ),
        sa.UniqueConstraint('run_id', name='uq_run_raw_data_run_id'),
    )

    op.create_table(
        'run_loop',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('cycle_key', sa.Text(), nullable=False),
        sa.Column('loop_start_index', sa.Integer(), nullable=False),
        sa.Column('loop_end_index', sa.Integer(), nullable=False),
        sa.Column('boundary_hexes', JSON_TYPE, nullable=False),
        sa.Column('enclosed_hexes', JSON_TYPE, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['run_id'], ['run.id'], ),
        # Upserts conflict on this; one loop per run
        sa.UniqueConstraint('run_id', name='uq_run_loop_run_id'),
    )
    op.create_index('ix_run_loop_cycle_key', 'run_loop', ['cycle_key'])


def downgrade() -> None:
    op.drop_index('ix_run_loop_cycle_key', table_name='run_loop')
    op.drop_table('run_loop')
    op.drop_table('run_raw_data')
    op.drop_index('ix_run_user_time_window', table_name='run')
    op.drop_index('ix_run_user_id', table_name='run')
    op.drop_table('run')
