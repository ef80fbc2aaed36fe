"""Create complaints table

Revision ID: create_complaints_table
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'create_complaints_table'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the complaints table with its dedup constraint."""
    op.create_table(
        'complaints',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(255), nullable=False),
        sa.Column('complainant_id', sa.String(255), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('country', sa.String(100), nullable=False),
        sa.Column('counter', sa.Integer, nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('creation_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('update_date', sa.DateTime(timezone=True), nullable=True),
        # One complaint per product and complainant
        sa.UniqueConstraint('product_id', 'complainant_id', name='uq_complaints_product_complainant'),
    )

    op.create_index('ix_complaints_creation_date', 'complaints', ['creation_date'])


def downgrade() -> None:
    """Drop the complaints table."""
    op.drop_index('ix_complaints_creation_date', table_name='complaints')
    op.drop_table('complaints')
