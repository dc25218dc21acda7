"""add rate_limit_windows table

Revision ID: 8e4b0f61a2d7
Revises: 3c1d9a7e52f4
Create Date: 2026-10-06 16:40:51.402117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8e4b0f61a2d7'
down_revision: Union[str, Sequence[str], None] = '3c1d9a7e52f4'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('rate_limit_windows',
    sa.Column('company_id', sa.String(), nullable=False),
    sa.Column('window_start', sa.DateTime(), nullable=False),
    sa.Column('call_count', sa.Integer(), nullable=False),
    sa.Column('next_slot_at', sa.DateTime(), nullable=False),
    sa.Column('version', sa.Integer(), nullable=False),
    sa.PrimaryKeyConstraint('company_id')
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('rate_limit_windows')
