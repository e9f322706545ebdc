"""Create period records

Revision ID: 5d2a7c41e9b0
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5d2a7c41e9b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('period_records',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('shop', sa.String(length=255), nullable=False),
    sa.Column('year', sa.Integer(), nullable=False),
    sa.Column('period_number', sa.Integer(), nullable=False),
    sa.Column('period_label', sa.String(length=20), nullable=False),
    sa.Column('frequency', sa.String(length=20), nullable=False),
    sa.Column('status', sa.Enum('IN_PROGRESS', 'SUCCESS', 'FAILED', name='periodstatus', schema='upsell'), nullable=False),
    sa.Column('success', sa.Boolean(), nullable=False),
    sa.Column('order_count', sa.Integer(), nullable=False),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('attempts', sa.Integer(), nullable=False),
    sa.Column('trigger', sa.String(length=100), nullable=True),
    sa.Column('claimed_at', sa.DateTime(), nullable=True),
    sa.Column('processed_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('shop', 'year', 'period_number', name='uq_period_records_shop_period'),
    schema='upsell'
    )
    op.create_index('ix_period_records_shop_status', 'period_records', ['shop', 'status'], unique=False, schema='upsell')


def downgrade() -> None:
    op.drop_index('ix_period_records_shop_status', table_name='period_records', schema='upsell')
    op.drop_table('period_records', schema='upsell')
    sa.Enum(name='periodstatus', schema='upsell').drop(op.get_bind(), checkfirst=True)
