"""Initial workflow schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

BOOKING_PARTITIONS = (
    ('bookings_air', 'AIR'),
    ('bookings_cint', 'CINT'),
)


def _create_booking_partition(table_name: str, team: str) -> None:
    op.create_table(table_name,
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('booking_number', sa.String(length=32), nullable=False),
        sa.Column('project_type', sa.String(length=32), nullable=False),
        sa.Column('primary_team', sa.String(length=8), nullable=False),
        sa.Column('current_step', sa.String(length=32), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_by', sa.String(length=128), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(f"primary_team = '{team}'", name=f'ck_{table_name}_team'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f(f'ix_{table_name}_booking_number'), table_name, ['booking_number'], unique=False)
    op.create_index(op.f(f'ix_{table_name}_current_step'), table_name, ['current_step'], unique=False)
    op.create_index(op.f(f'ix_{table_name}_created_at'), table_name, ['created_at'], unique=False)


def upgrade() -> None:
    """Upgrade database schema."""
    # One table per department; a booking lives in exactly one
    for table_name, team in BOOKING_PARTITIONS:
        _create_booking_partition(table_name, team)

    # Daily booking number counters, one row per prefix and year
    op.create_table('booking_sequences',
        sa.Column('key', sa.String(length=16), nullable=False),
        sa.Column('last_date', sa.String(length=4), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('sequence >= 0', name='ck_booking_sequence_non_negative'),
        sa.PrimaryKeyConstraint('key')
    )

    # Collaboration requests reference bookings weakly; no foreign key across partitions
    op.create_table('collaboration_requests',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('booking_id', sa.String(length=36), nullable=False),
        sa.Column('requested_by_team', sa.String(length=8), nullable=False),
        sa.Column('requested_by_user_id', sa.String(length=128), nullable=False),
        sa.Column('requested_by_user_name', sa.String(length=255), nullable=False),
        sa.Column('requested_to_team', sa.String(length=8), nullable=False),
        sa.Column('requested_to_user_ids', sa.JSON(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('priority', sa.String(length=8), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('due_date', sa.DateTime(), nullable=True),
        sa.Column('response', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('assigned_to', sa.String(length=128), nullable=True),
        sa.Column('responded_by_user_id', sa.String(length=128), nullable=True),
        sa.Column('responded_by_user_name', sa.String(length=255), nullable=True),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('requested_by_team <> requested_to_team', name='ck_collaboration_other_team'),
        sa.CheckConstraint('length(title) > 0', name='ck_collaboration_title_not_empty'),
        sa.CheckConstraint('length(description) > 0', name='ck_collaboration_description_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_collaboration_requests_booking_id'), 'collaboration_requests', ['booking_id'], unique=False)
    op.create_index(op.f('ix_collaboration_requests_requested_by_team'), 'collaboration_requests', ['requested_by_team'], unique=False)
    op.create_index(op.f('ix_collaboration_requests_requested_by_user_id'), 'collaboration_requests', ['requested_by_user_id'], unique=False)
    op.create_index(op.f('ix_collaboration_requests_requested_to_team'), 'collaboration_requests', ['requested_to_team'], unique=False)
    op.create_index(op.f('ix_collaboration_requests_status'), 'collaboration_requests', ['status'], unique=False)
    op.create_index(op.f('ix_collaboration_requests_due_date'), 'collaboration_requests', ['due_date'], unique=False)
    op.create_index(op.f('ix_collaboration_requests_created_at'), 'collaboration_requests', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('collaboration_requests')
    op.drop_table('booking_sequences')
    for table_name, _ in reversed(BOOKING_PARTITIONS):
        op.drop_index(op.f(f'ix_{table_name}_created_at'), table_name=table_name)
        op.drop_index(op.f(f'ix_{table_name}_current_step'), table_name=table_name)
        op.drop_index(op.f(f'ix_{table_name}_booking_number'), table_name=table_name)
        op.drop_table(table_name)
