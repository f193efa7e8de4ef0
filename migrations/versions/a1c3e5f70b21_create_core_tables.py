"""Create users, therapists, sessions and notifications

Revision ID: a1c3e5f70b21
Revises:
Create Date: 2025-03-01 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f70b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLite는 INTEGER PRIMARY KEY만 autoincrement
pk_type = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', pk_type, primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='client'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("role in ('client','therapist','admin')", name='ck_users_role'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'therapists',
        sa.Column('id', pk_type, primary_key=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('bio', sa.Text(), nullable=False, server_default=''),
        sa.Column('specialties', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'sessions',
        sa.Column('id', pk_type, primary_key=True),
        sa.Column('therapist_id', sa.BigInteger(), sa.ForeignKey('therapists.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('client_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('format', sa.String(20), nullable=False),
        sa.Column('private_notes', sa.Text(), nullable=True),
        sa.Column('shared_notes', sa.Text(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('start_time < end_time', name='ck_sessions_time_range'),
        sa.CheckConstraint(
            "status in ('scheduled','completed','canceled','rescheduled','no_show')",
            name='ck_sessions_status',
        ),
        sa.CheckConstraint(
            "type in ('initial','regular','follow_up','emergency')", name='ck_sessions_type'
        ),
        sa.CheckConstraint(
            "format in ('video','audio','chat','in_person','hybrid')", name='ck_sessions_format'
        ),
    )
    op.create_index('idx_sessions_therapist_time', 'sessions', ['therapist_id', 'start_time', 'end_time'])
    op.create_index('idx_sessions_client', 'sessions', ['client_id'])

    op.create_table(
        'notifications',
        sa.Column('id', pk_type, primary_key=True),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('channels', sa.JSON(), nullable=False),
        sa.Column('scheduled_for', sa.DateTime(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('claimed_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_notifications_due', 'notifications', ['sent_at', 'scheduled_for'])
    op.create_index('idx_notifications_user_time', 'notifications', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('idx_notifications_user_time', table_name='notifications')
    op.drop_index('idx_notifications_due', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('idx_sessions_client', table_name='sessions')
    op.drop_index('idx_sessions_therapist_time', table_name='sessions')
    op.drop_table('sessions')
    op.drop_table('therapists')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
