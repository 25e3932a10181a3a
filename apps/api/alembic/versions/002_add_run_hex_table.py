"""add run_hex table for the stored hex path

Revision ID: 002
Revises: 001
Create Date: 2025-12-29 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'run_hex',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('sequence_index', sa.Integer(), nullable=False),
        sa.Column('h3_index', sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(['run_id'], ['run.id'], ),
        sa.UniqueConstraint('run_id', 'sequence_index', name='uq_run_hex_run_sequence'),
    )
    op.create_index('ix_run_hex_h3_index', 'run_hex', ['h3_index'])


def downgrade() -> None:
    op.drop_index('ix_run_hex_h3_index', table_name='run_hex')
    op.drop_table('run_hex')
