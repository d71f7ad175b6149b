"""Create chat_events table

Revision ID: 3f1c9b2d7e10
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9b2d7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        'chat_events',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), primary_key=True, autoincrement=True),
        sa.Column('event_type', sa.String(32), nullable=False),
        sa.Column('partner_code', sa.String(80), nullable=False),
        sa.Column('access_type', sa.String(16), nullable=False),
        sa.Column('anonymous_user_id', sa.String(255), nullable=False),
        sa.Column('session_id', sa.String(255), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=False), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Composite indexes for the rollup filters
    op.create_index('idx_type_timestamp', 'chat_events', ['event_type', 'timestamp'])
    op.create_index('idx_partner_access_timestamp', 'chat_events', ['partner_code', 'access_type', 'timestamp'])
    op.create_index('idx_user_timestamp', 'chat_events', ['anonymous_user_id', 'timestamp'])


def downgrade():
    op.drop_index('idx_user_timestamp', 'chat_events')
    op.drop_index('idx_partner_access_timestamp', 'chat_events')
    op.drop_index('idx_type_timestamp', 'chat_events')
    op.drop_table('chat_events')
