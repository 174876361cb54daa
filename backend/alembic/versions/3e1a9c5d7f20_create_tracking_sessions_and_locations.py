"""create tracking_sessions and location_entries

Revision ID: 3e1a9c5d7f20
Revises:
Create Date: 2025-06-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3e1a9c5d7f20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'tracking_sessions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('narrative', sa.String(), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tracking_sessions_start_date', 'tracking_sessions', ['start_date'])
    op.create_index('ix_tracking_sessions_is_active', 'tracking_sessions', ['is_active'])
    # at most one active session
    op.create_index(
        'uq_tracking_sessions_single_active',
        'tracking_sessions',
        ['is_active'],
        unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    op.create_table(
        'location_entries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('session_id', sa.String(length=36), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accuracy', sa.Float(), nullable=False),
        sa.Column('altitude', sa.Float(), nullable=False),
        sa.Column('speed', sa.Float(), nullable=False),
        sa.Column('course', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['tracking_sessions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_location_entries_session_id', 'location_entries', ['session_id'])
    op.create_index('ix_location_entries_timestamp', 'location_entries', ['timestamp'])


def downgrade() -> None:
    op.drop_index('ix_location_entries_timestamp', table_name='location_entries')
    op.drop_index('ix_location_entries_session_id', table_name='location_entries')
    op.drop_table('location_entries')
    op.drop_index('uq_tracking_sessions_single_active', table_name='tracking_sessions')
    op.drop_index('ix_tracking_sessions_is_active', table_name='tracking_sessions')
    op.drop_index('ix_tracking_sessions_start_date', table_name='tracking_sessions')
    op.drop_table('tracking_sessions')
