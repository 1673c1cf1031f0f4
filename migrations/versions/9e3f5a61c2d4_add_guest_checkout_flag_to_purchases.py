"""add_guest_checkout_flag_to_purchases

Revision ID: 9e3f5a61c2d4
Revises: 4c1d2e7a9b10
Create Date: 2026-10-19 16:40:02.517330

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '9e3f5a61c2d4'
down_revision: Union[str, None] = '4c1d2e7a9b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'purchases',
        sa.Column('is_guest_checkout', sa.Boolean(), server_default=sa.false(), nullable=False)
    )
    # Unconfirmed guest checkouts have no buyer yet.
    op.execute("UPDATE purchases SET is_guest_checkout = true WHERE user_id IS NULL")


def downgrade() -> None:
    op.drop_column('purchases', 'is_guest_checkout')
